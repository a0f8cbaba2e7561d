"""
Router module: Target-to-provider routing.

This module contains:
- resolver.py: Prefix-based family classification and fallback lookup

Public API:
- resolve_family(): Classify a target identifier into a ProviderFamily
- resolve_fallback(): Look up the alternate target for a primary target
- plan_route(): Bundle both decisions into a RoutePlan
- RoutePlan: Result dataclass for routing decisions
- FAMILY_PREFIXES: Prefix priority table
"""

from arena.router.resolver import (
    DEFAULT_FAMILY,
    FAMILY_PREFIXES,
    RoutePlan,
    plan_route,
    resolve_fallback,
    resolve_family,
)

__all__ = [
    "DEFAULT_FAMILY",
    "FAMILY_PREFIXES",
    "RoutePlan",
    "plan_route",
    "resolve_fallback",
    "resolve_family",
]
