"""
Scoring module: trust heuristics and prompt refinement.

- trust.py: inline TrustAnnotator and the detailed check_trust() report
- refine.py: prompt refinement via a chat model with local rules as fallback
  (imported directly, since it depends on the dispatcher package)
"""

from arena.scoring.trust import (
    TrustAnnotator,
    TrustFactors,
    TrustReport,
    check_trust,
    get_trust_annotator,
)

__all__ = [
    "TrustAnnotator",
    "TrustFactors",
    "TrustReport",
    "check_trust",
    "get_trust_annotator",
]
