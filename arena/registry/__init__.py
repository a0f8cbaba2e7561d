"""
Registry module: Target pool configuration and fallback map.

This module contains:
- models.py: Static registry of chat and image targets with per-model
  endpoints, generation defaults, and the fal -> Hugging Face fallback map

Public API:
- ProviderFamily: Enum for upstream integration groups
- Modality: Enum for output kind (text/image)
- TargetMetadata: Pydantic model for target configuration
- TargetRegistry: Central registry class
- get_target_registry: Singleton accessor function
"""

from arena.registry.models import (
    FAL_PREFIX,
    HUGGINGFACE_PREFIX,
    Modality,
    ProviderFamily,
    TargetMetadata,
    TargetRegistry,
    get_target_registry,
)

__all__ = [
    "FAL_PREFIX",
    "HUGGINGFACE_PREFIX",
    "ProviderFamily",
    "Modality",
    "TargetMetadata",
    "TargetRegistry",
    "get_target_registry",
]
