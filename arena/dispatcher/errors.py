"""
Dispatch error taxonomy.

Adapters raise these internally; everything above the adapter layer carries
them as values inside result objects (AdapterOutcome, DispatchResult) rather
than letting them propagate. Every error has a stable machine-readable code
and serializes to a plain dict for API responses.
"""

from enum import Enum


class RejectionCause(str, Enum):
    """Classified reason for a non-2xx upstream response."""

    INVALID_CREDENTIAL = "invalid_credential"  # 401
    FORBIDDEN_BALANCE = "forbidden_balance"  # 403 exhausted balance, 402 credits
    FORBIDDEN_LOCKED = "forbidden_locked"  # 403 account locked
    FORBIDDEN_OTHER = "forbidden_other"  # 403 anything else
    BAD_REQUEST = "bad_request"  # 400
    NOT_FOUND = "not_found"  # 404
    RATE_LIMITED = "rate_limited"  # 429
    UNAVAILABLE = "unavailable"  # 503, model loading
    OTHER = "other"


class DispatchError(Exception):
    """Base error for anything that prevents a target from producing a response."""

    code = "DISPATCH_ERROR"

    def __init__(self, message: str, *, target: str | None = None, provider: str | None = None):
        super().__init__(message)
        self.message = message
        self.target = target
        self.provider = provider

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "target": self.target,
            "provider": self.provider,
        }


class CredentialMissing(DispatchError):
    """No usable credential for the adapter; raised before any network call."""

    code = "CREDENTIAL_MISSING"


class UpstreamRejected(DispatchError):
    """The provider answered with a non-2xx status."""

    code = "UPSTREAM_REJECTED"

    def __init__(
        self,
        message: str,
        *,
        cause: RejectionCause,
        status_code: int | None = None,
        target: str | None = None,
        provider: str | None = None,
    ):
        super().__init__(message, target=target, provider=provider)
        self.cause = cause
        self.status_code = status_code

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["cause"] = self.cause.value
        data["status_code"] = self.status_code
        return data


class UpstreamMalformed(DispatchError):
    """2xx response that lacks the expected content (no image URL, no message)."""

    code = "UPSTREAM_MALFORMED"


class NetworkFailure(DispatchError):
    """Transport-level failure: connection error, timeout, broken stream."""

    code = "NETWORK_FAILURE"


class NoCredentialsAvailable(DispatchError):
    """Neither the primary family nor any fallback family has a credential."""

    code = "NO_CREDENTIALS_AVAILABLE"


class CompositeFallbackFailure(DispatchError):
    """Both the primary call and the fallback call failed."""

    code = "FALLBACK_FAILED"

    def __init__(self, primary: DispatchError, fallback: DispatchError, *, target: str | None = None):
        message = (
            f"Primary and fallback both failed. "
            f"Primary ({primary.target}): {primary.message}. "
            f"Fallback ({fallback.target}): {fallback.message}"
        )
        super().__init__(message, target=target)
        self.primary = primary
        self.fallback = fallback

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["primary"] = self.primary.to_dict()
        data["fallback"] = self.fallback.to_dict()
        return data


CREDENTIAL_ERRORS = (CredentialMissing, NoCredentialsAvailable)
