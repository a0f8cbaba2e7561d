"""
Dispatcher module: adapters, single-target coordination, and fan-out.

Key exports:
- ConversationTurn / SamplingParams / RequestEnvelope / CredentialSet: inputs
- ResponseEnvelope / TokenUsage: normalized output
- DispatchResult / AdapterOutcome / Attempt: explicit result values
- DispatchError and subclasses: typed failure taxonomy
- invoke(): call one adapter, returning an AdapterOutcome
- dispatch(): one target with one-hop fallback
- compare() / iter_compare(): concurrent fan-out over many targets
"""

from arena.dispatcher.errors import (
    CompositeFallbackFailure,
    CredentialMissing,
    DispatchError,
    NetworkFailure,
    NoCredentialsAvailable,
    RejectionCause,
    UpstreamMalformed,
    UpstreamRejected,
)
from arena.dispatcher.types import (
    AdapterOutcome,
    Attempt,
    ConversationTurn,
    CredentialSet,
    DispatchResult,
    RequestEnvelope,
    ResponseEnvelope,
    SamplingParams,
    TokenUsage,
    estimate_tokens,
)
from arena.dispatcher.handlers import ProviderClients, get_clients, invoke
from arena.dispatcher.coordinator import dispatch
from arena.dispatcher.fanout import compare, iter_compare

__all__ = [
    # Errors
    "DispatchError",
    "CredentialMissing",
    "UpstreamRejected",
    "UpstreamMalformed",
    "NetworkFailure",
    "NoCredentialsAvailable",
    "CompositeFallbackFailure",
    "RejectionCause",
    # Data classes
    "ConversationTurn",
    "SamplingParams",
    "RequestEnvelope",
    "CredentialSet",
    "ResponseEnvelope",
    "TokenUsage",
    "AdapterOutcome",
    "Attempt",
    "DispatchResult",
    "estimate_tokens",
    # Adapters and orchestration
    "ProviderClients",
    "get_clients",
    "invoke",
    "dispatch",
    "compare",
    "iter_compare",
]
