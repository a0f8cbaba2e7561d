"""
Routing Resolver - maps a target identifier to the adapters that serve it.

Routing is purely lexical: the identifier prefix decides the provider family,
checked in a fixed priority order:
1. "fal-ai/"  -> fal.ai image generation
2. "hf-"      -> Hugging Face image generation
3. anything else -> OpenRouter chat completion

Both lookups are pure and total. They never raise and never touch the
network, so they are safe to call for arbitrary caller input.
"""

import logging
from dataclasses import dataclass

from arena.registry.models import (
    FAL_PREFIX,
    HUGGINGFACE_PREFIX,
    ProviderFamily,
    get_target_registry,
)

logger = logging.getLogger(__name__)


# Priority order matters: first match wins.
FAMILY_PREFIXES: tuple[tuple[str, ProviderFamily], ...] = (
    (FAL_PREFIX, ProviderFamily.FAL),
    (HUGGINGFACE_PREFIX, ProviderFamily.HUGGINGFACE),
)

DEFAULT_FAMILY = ProviderFamily.CHAT


@dataclass(frozen=True)
class RoutePlan:
    """
    Routing decision for one target.

    Attributes:
        target: The requested target identifier
        family: Provider family of the requested target
        fallback_target: Alternate target in another family, if any
        fallback_family: Provider family of the alternate target
    """

    target: str
    family: ProviderFamily
    fallback_target: str | None = None
    fallback_family: ProviderFamily | None = None

    @property
    def has_fallback(self) -> bool:
        """Whether a fallback target exists for this route."""
        return self.fallback_target is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "target": self.target,
            "family": self.family.value,
            "fallback_target": self.fallback_target,
            "fallback_family": self.fallback_family.value if self.fallback_family else None,
        }


def resolve_family(target: str) -> ProviderFamily:
    """
    Classify a target identifier into its provider family.

    Args:
        target: Any target identifier (arbitrary strings are accepted)

    Returns:
        The matching ProviderFamily, CHAT when no prefix matches
    """
    for prefix, family in FAMILY_PREFIXES:
        if target.startswith(prefix):
            return family
    return DEFAULT_FAMILY


def resolve_fallback(target: str) -> str | None:
    """
    Look up the alternate target used when the primary family fails.

    Args:
        target: The primary target identifier

    Returns:
        The fallback identifier, or None when the map has no entry
    """
    return get_target_registry().get_fallback(target)


def plan_route(target: str) -> RoutePlan:
    """
    Build the full routing plan for a target.

    Args:
        target: The requested target identifier

    Returns:
        RoutePlan with primary family and optional fallback
    """
    family = resolve_family(target)
    fallback = resolve_fallback(target)
    plan = RoutePlan(
        target=target,
        family=family,
        fallback_target=fallback,
        fallback_family=resolve_family(fallback) if fallback else None,
    )
    logger.debug(
        f"Route plan for '{target}': family={family.value}, fallback={fallback or 'none'}"
    )
    return plan
