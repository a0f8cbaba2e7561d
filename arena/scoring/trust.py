"""
Trust scoring.

Two heuristics live here:
- TrustAnnotator: the inline score attached to every successful envelope
- check_trust(): the detailed report served by POST /trust/check

Both are text heuristics, not fact checking. Scores are integers in
[0, 100]. The random jitter applied on top can be disabled or seeded
through settings so tests and replays are reproducible.
"""

import logging
import random
import re
from dataclasses import dataclass, field

from arena.config import get_settings
from arena.registry.models import ProviderFamily, get_target_registry

logger = logging.getLogger(__name__)

BASE_SCORE = 70
LENGTH_BONUS_THRESHOLD = 100
MAX_SCORE = 100
JITTER_RANGE = 10  # randrange upper bound, so 0..9

CITATION_PHRASES = re.compile(r"\b(according to|research shows|studies indicate)\b", re.IGNORECASE)
DIGIT = re.compile(r"\d")
BRACKETED_REFERENCE = re.compile(r"\[[^\]]*\]|\([^)]*\)")
HEDGING = re.compile(r"\b(might|could|possibly|perhaps|likely)\b", re.IGNORECASE)
ABSOLUTES = re.compile(r"\b(always|never|all|none|every|completely)\b", re.IGNORECASE)


class TrustAnnotator:
    """
    Inline trust score for response content.

    Scoring: base 70, +10 when content is longer than 100 characters,
    +10 when it contains a digit, +10 when it contains a citation phrase.
    Jitter of 0-9 points is added last and the result is capped at 100.

    Example:
        annotator = TrustAnnotator(jitter=False)
        annotator.annotate("According to the 2023 census...")  # 90
    """

    def __init__(self, jitter: bool = True, seed: int | None = None):
        self._jitter = jitter
        self._random = random.Random(seed)

    def base_score(self, content: str) -> int:
        score = BASE_SCORE
        if len(content) > LENGTH_BONUS_THRESHOLD:
            score += 10
        if DIGIT.search(content):
            score += 10
        if CITATION_PHRASES.search(content):
            score += 10
        return score

    def annotate(self, content: str) -> int:
        score = self.base_score(content)
        if self._jitter:
            score += self._random.randrange(JITTER_RANGE)
        return min(MAX_SCORE, score)

    def jitter(self, score: int) -> int:
        """Apply the configured jitter to an externally computed score."""
        if self._jitter:
            score += self._random.randrange(JITTER_RANGE)
        return min(MAX_SCORE, score)


_annotator: TrustAnnotator | None = None


def get_trust_annotator() -> TrustAnnotator:
    """
    Get the process-wide annotator, configured from settings.

    Returns:
        The singleton TrustAnnotator instance
    """
    global _annotator
    if _annotator is None:
        settings = get_settings()
        _annotator = TrustAnnotator(jitter=settings.trust_jitter, seed=settings.trust_seed)
        logger.debug(
            f"Trust annotator initialized: jitter={settings.trust_jitter}, seeded={settings.trust_seed is not None}"
        )
    return _annotator


# =============================================================================
# DETAILED TRUST CHECK
# =============================================================================


@dataclass(frozen=True)
class TrustFactors:
    factual_accuracy: int
    source_reliability: int
    logical_consistency: int
    completeness: int

    @property
    def average(self) -> float:
        return (
            self.factual_accuracy + self.source_reliability + self.logical_consistency + self.completeness
        ) / 4


@dataclass(frozen=True)
class TrustReport:
    """Result of a detailed trust check."""

    trust_score: int
    confidence: int
    factors: TrustFactors
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


def _source_reliability_bonus(model: str | None) -> int:
    """Registered chat targets get a higher reliability bonus than unknown models."""
    if model is None:
        return 10
    target = get_target_registry().get_target(model)
    if target is not None and target.family == ProviderFamily.CHAT:
        return 20
    return 10


def check_trust(
    content: str,
    model: str | None = None,
    context: str | None = None,
    annotator: TrustAnnotator | None = None,
) -> TrustReport:
    """
    Score content on four factors and collect warnings and suggestions.

    Args:
        content: Text to evaluate (must be non-empty)
        model: Target identifier that produced the content, if known
        context: Original question; accepted for API compatibility, unused
        annotator: Source of confidence jitter (defaults to the global one)

    Returns:
        TrustReport with overall score, confidence, and factor breakdown

    Raises:
        ValueError: If content is empty
    """
    if not content:
        raise ValueError("content must not be empty")

    length = len(content)
    has_numbers = DIGIT.search(content) is not None
    has_citations = BRACKETED_REFERENCE.search(content) is not None
    has_hedging = HEDGING.search(content) is not None
    has_absolutes = ABSOLUTES.search(content) is not None

    factors = TrustFactors(
        factual_accuracy=min(
            100, 60 + (15 if has_numbers else 0) + (20 if has_citations else 0) + (5 if has_hedging else 0)
        ),
        source_reliability=min(100, 50 + (30 if has_citations else 0) + _source_reliability_bonus(model)),
        logical_consistency=min(100, 70 + (15 if length > 200 else 0) - (10 if has_absolutes else 0)),
        completeness=min(90, length // 10),
    )
    trust_score = round(factors.average)

    warnings: list[str] = []
    suggestions: list[str] = []

    if has_absolutes:
        warnings.append("Contains absolute statements that may be overgeneralized")
        suggestions.append("Consider using more nuanced language")

    if not has_citations and length > 300:
        warnings.append("Long response without citations or references")
        suggestions.append("Add sources or references to support claims")

    if trust_score < 70:
        suggestions.append("Request clarification or additional sources")

    annotator = annotator or get_trust_annotator()
    return TrustReport(
        trust_score=trust_score,
        confidence=annotator.jitter(trust_score),
        factors=factors,
        warnings=warnings,
        suggestions=suggestions,
    )
