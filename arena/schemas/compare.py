"""
Pydantic Schemas for the Arena API

This module defines the request and response models for the HTTP surface:
- CompareRequest / CompareResponse: fan-out over many targets
- ChatCompletionRequest / EnvelopeResponse: single-target, OpenAI-shaped
- Routing, model listing, health, config, and metrics schemas
- Prompt refinement, trust check, and chat history schemas
- Error responses

Request bodies accept both camelCase and snake_case field names.
Conversion utilities at the bottom turn internal dataclasses into these
models; the internal types are only imported for type checking so this
module stays free of runtime dependencies on the dispatcher.
"""

from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from arena.dispatcher.errors import DispatchError
    from arena.dispatcher.types import DispatchResult, ResponseEnvelope
    from arena.scoring.refine import RefinementResult
    from arena.scoring.trust import TrustReport


CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# =============================================================================
# REQUEST MODELS
# =============================================================================


class ChatTurn(BaseModel):
    """One message of conversation history."""

    role: Literal["user", "assistant", "system"] = Field(
        ...,
        description="Author of the message",
    )

    content: str = Field(
        ...,
        description="Message text",
    )


class SamplingOptions(BaseModel):
    """Optional generation parameters shared by every target in a request."""

    model_config = CAMEL_CONFIG

    temperature: float | None = Field(
        default=None,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for chat targets",
    )

    max_output_units: int | None = Field(
        default=None,
        gt=0,
        description="Maximum output tokens for chat targets",
    )

    output_format: Literal["jpeg", "png"] | None = Field(
        default=None,
        description="Image format for image targets",
    )


class ProviderCredentials(BaseModel):
    """
    Per-request provider secrets.

    chatFamily is the OpenRouter key, imageFamilyA the fal.ai key, and
    imageFamilyB the Hugging Face key. Values are never echoed back.
    """

    model_config = CAMEL_CONFIG

    chat_family: str | None = Field(default=None, description="OpenRouter API key")
    image_family_a: str | None = Field(default=None, description="fal.ai API key")
    image_family_b: str | None = Field(default=None, description="Hugging Face API token")

    def __repr__(self) -> str:
        return "ProviderCredentials(<redacted>)"


class CompareRequest(BaseModel):
    """
    Request body for the /compare endpoint.

    Example:
        {
            "targets": ["openai/gpt-4o-mini", "fal-ai/flux-dev"],
            "turnsByTarget": {
                "openai/gpt-4o-mini": [{"role": "user", "content": "A red fox"}],
                "fal-ai/flux-dev": [{"role": "user", "content": "A red fox"}]
            },
            "credentials": {"chatFamily": "sk-or-...", "imageFamilyA": "fal-..."}
        }
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        json_schema_extra={
            "examples": [
                {
                    "targets": ["openai/gpt-4o-mini", "fal-ai/flux-dev"],
                    "turnsByTarget": {
                        "openai/gpt-4o-mini": [{"role": "user", "content": "A red fox"}],
                        "fal-ai/flux-dev": [{"role": "user", "content": "A red fox"}],
                    },
                    "credentials": {"chatFamily": "sk-or-...", "imageFamilyA": "fal-..."},
                }
            ]
        },
    )

    targets: list[str] = Field(
        ...,
        min_length=1,
        description="Target identifiers to query concurrently",
    )

    turns_by_target: dict[str, list[ChatTurn]] = Field(
        default_factory=dict,
        description="Conversation history per target",
    )

    credentials: ProviderCredentials = Field(
        default_factory=ProviderCredentials,
        description="Provider secrets for this request",
    )

    sampling: SamplingOptions | None = Field(
        default=None,
        description="Generation parameters shared by all targets",
    )

    @field_validator("targets")
    @classmethod
    def targets_not_blank(cls, v: list[str]) -> list[str]:
        cleaned = [t.strip() for t in v]
        if any(not t for t in cleaned):
            raise ValueError("target identifiers cannot be blank")
        return cleaned

    @model_validator(mode="after")
    def align_turn_keys(self) -> "CompareRequest":
        """Strip turnsByTarget keys the same way targets are stripped."""
        aligned: dict[str, list[ChatTurn]] = {}
        for key, turns in self.turns_by_target.items():
            target = key.strip()
            if target in aligned:
                raise ValueError(f"turnsByTarget has more than one entry for target '{target}'")
            aligned[target] = turns
        self.turns_by_target = aligned
        return self


class ChatCompletionRequest(BaseModel):
    """
    OpenAI-shaped request body for /chat/completions.

    Credentials come from X-API-Key-* headers rather than the body.
    """

    model_config = ConfigDict(extra="ignore")

    model: str = Field(
        ...,
        min_length=1,
        description="Target identifier",
    )

    messages: list[ChatTurn] = Field(
        default_factory=list,
        description="Conversation history; the last message is the image prompt for image targets",
    )

    stream: bool = Field(
        default=False,
        description="Accepted for compatibility; responses are never streamed",
    )

    temperature: float | None = Field(default=None, ge=0.0, le=2.0)

    max_tokens: int | None = Field(default=None, gt=0)

    output_format: Literal["jpeg", "png"] | None = Field(default=None)


class RefineRequest(BaseModel):
    """Request body for /prompt/refine."""

    model_config = CAMEL_CONFIG

    prompt: str = Field(..., min_length=1, description="Prompt to improve")

    task_type: str = Field(
        default="general",
        description="general, coding, creative, analytical, image_generation, text_generation",
    )

    target_model: str | None = Field(default=None, description="Model the prompt is meant for")


class TrustCheckRequest(BaseModel):
    """Request body for /trust/check."""

    content: str = Field(..., min_length=1, description="Text to evaluate")
    model: str | None = Field(default=None, description="Target that produced the text")
    context: str | None = Field(default=None, description="Original question, if any")


class HistoryRequest(BaseModel):
    """Request body for POST /chat/history."""

    model_config = CAMEL_CONFIG

    action: Literal["create", "update", "addMessage"]
    chat_data: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# RESPONSE MODELS
# =============================================================================


class UsageInfo(BaseModel):
    """Token accounting in OpenAI naming."""

    prompt_tokens: int = Field(..., ge=0)
    completion_tokens: int = Field(..., ge=0)
    total_tokens: int = Field(..., ge=0)
    estimated: bool = Field(
        default=False,
        description="True when counts are a character-length approximation",
    )


class ResponseMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


class ResponseChoice(BaseModel):
    index: int = 0
    message: ResponseMessage
    finish_reason: str = "stop"


class EnvelopeResponse(BaseModel):
    """
    Normalized response for one target.

    For image targets, content is an image URL or a base64 data URL.
    """

    id: str
    object: Literal["chat.completion", "image.generation"]
    created: int
    model: str = Field(..., description="Target that served the response")
    choices: list[ResponseChoice]
    usage: UsageInfo
    response_time_ms: float = Field(..., ge=0.0)
    family: str
    trust_score: int | None = Field(default=None, ge=0, le=100)
    fallback_used: bool = False
    fallback_from: str | None = Field(
        default=None,
        description="Originally requested target when a fallback served the response",
    )


class DispatchErrorDetail(BaseModel):
    """Typed dispatch failure, serialized."""

    code: str
    message: str
    target: str | None = None
    provider: str | None = None
    cause: str | None = None
    status_code: int | None = None
    primary: "DispatchErrorDetail | None" = None
    fallback: "DispatchErrorDetail | None" = None


class AttemptInfo(BaseModel):
    target: str
    family: str
    success: bool
    error_code: str | None = None


class TargetResult(BaseModel):
    """Outcome for one target of a /compare call."""

    status: Literal["ok", "error"]
    response: EnvelopeResponse | None = None
    error: DispatchErrorDetail | None = None
    attempts: list[AttemptInfo] = Field(default_factory=list)
    latency_ms: float = Field(default=0.0, ge=0.0)


class CompareResponse(BaseModel):
    """
    Response from /compare: one entry per distinct requested target.

    Example:
        {
            "results": {
                "openai/gpt-4o-mini": {"status": "ok", "response": {...}},
                "fal-ai/flux-dev": {"status": "error", "error": {"code": "NO_CREDENTIALS_AVAILABLE", ...}}
            },
            "succeeded": 1,
            "failed": 1,
            "elapsed_ms": 1520.4
        }
    """

    results: dict[str, TargetResult]
    succeeded: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    elapsed_ms: float = Field(..., ge=0.0)


class RouteResponse(BaseModel):
    """Routing plan for a target (debug view)."""

    target: str
    family: str
    fallback_target: str | None = None
    fallback_family: str | None = None
    registered: bool = Field(..., description="Whether the target is in the registry")
    endpoint: str = Field(..., description="Provider endpoint or model path that would be called")


class TargetInfo(BaseModel):
    target_id: str
    display_name: str
    family: str
    modality: str
    vendor: str
    endpoint: str


class ModelsResponse(BaseModel):
    targets: list[TargetInfo]
    fallbacks: dict[str, str]


class RefineResponse(BaseModel):
    original_prompt: str
    refined_prompt: str
    improvements: list[str]
    confidence: int = Field(..., ge=0, le=100)
    fallback_used: bool = False


class TrustFactorsInfo(BaseModel):
    factual_accuracy: int = Field(..., ge=0, le=100)
    source_reliability: int = Field(..., ge=0, le=100)
    logical_consistency: int = Field(..., ge=0, le=100)
    completeness: int = Field(..., ge=0, le=100)


class TrustCheckResponse(BaseModel):
    trust_score: int = Field(..., ge=0, le=100)
    confidence: int = Field(..., ge=0, le=100)
    factors: TrustFactorsInfo
    warnings: list[str]
    suggestions: list[str]


class MessageResponse(BaseModel):
    message: str


# =============================================================================
# ERROR MODELS
# =============================================================================


class ErrorCodes:
    """
    Standard error codes for API responses.

    These codes enable programmatic error handling by clients
    without parsing human-readable messages.
    """

    VALIDATION_ERROR = "VALIDATION_ERROR"
    TOO_MANY_TARGETS = "TOO_MANY_TARGETS"
    API_KEY_REQUIRED = "API_KEY_REQUIRED"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorDetail(BaseModel):
    """Error information for API error responses."""

    code: str = Field(
        ...,
        description="Machine-readable error code for programmatic handling",
    )

    message: str = Field(
        ...,
        description="Human-readable error message",
    )

    field: str | None = Field(
        default=None,
        description="Field that caused the error (for validation errors)",
    )

    dispatch: DispatchErrorDetail | None = Field(
        default=None,
        description="Underlying dispatch error for upstream failures",
    )


class ErrorResponse(BaseModel):
    """
    Standard error response format for all API errors.

    Example:
        {
            "error": {
                "code": "API_KEY_REQUIRED",
                "message": "OpenRouter API key required",
                "field": null
            }
        }
    """

    error: ErrorDetail


# =============================================================================
# METRICS MODELS
# =============================================================================


class TargetMetrics(BaseModel):
    """Dispatch statistics for one requested target."""

    target: str
    request_count: int = Field(..., ge=0)
    success_count: int = Field(..., ge=0)
    fallback_count: int = Field(..., ge=0)
    total_tokens: int = Field(..., ge=0)
    avg_latency_ms: float = Field(..., ge=0.0)
    errors_by_code: dict[str, int] = Field(default_factory=dict)


class MetricsResponse(BaseModel):
    """Response from the /metrics endpoint."""

    total_requests: int = Field(..., ge=0)
    total_successes: int = Field(..., ge=0)
    total_fallbacks: int = Field(..., ge=0)
    success_rate_percent: float = Field(..., ge=0.0, le=100.0)
    total_input_tokens: int = Field(..., ge=0)
    total_output_tokens: int = Field(..., ge=0)
    avg_latency_ms: float = Field(..., ge=0.0)
    requests_by_family: dict[str, int] = Field(default_factory=dict)
    requests_by_target: dict[str, TargetMetrics] = Field(default_factory=dict)
    errors_by_code: dict[str, int] = Field(default_factory=dict)


# =============================================================================
# HEALTH & CONFIG MODELS
# =============================================================================


class ComponentHealth(BaseModel):
    """Health of one component (registry or a provider family)."""

    name: str
    status: Literal["healthy", "degraded", "unhealthy"]
    message: str | None = None


class HealthResponse(BaseModel):
    """
    Response from the /health endpoint.

    Provider families without a server-side key report "degraded": they
    still work when callers send their own credentials.
    """

    status: Literal["healthy", "degraded", "unhealthy"]
    service: str = "arena"
    version: str
    components: list[ComponentHealth] = Field(default_factory=list)
    uptime_seconds: float | None = Field(default=None, ge=0.0)


class ConfigResponse(BaseModel):
    """Non-secret runtime configuration."""

    version: str
    server_keys_configured: dict[str, bool]
    request_timeout_seconds: float
    default_temperature: float
    default_max_tokens: int
    max_targets: int
    trust_jitter: bool
    track_metrics: bool


# =============================================================================
# CONVERSION UTILITIES
# =============================================================================


def envelope_response_from(envelope: "ResponseEnvelope") -> EnvelopeResponse:
    """
    Convert a ResponseEnvelope dataclass to its API model.

    Args:
        envelope: Envelope produced by an adapter and annotated by the coordinator

    Returns:
        EnvelopeResponse for serialization
    """
    return EnvelopeResponse(
        id=envelope.id,
        object=envelope.object,
        created=envelope.created,
        model=envelope.model,
        choices=[
            ResponseChoice(
                index=choice.index,
                message=ResponseMessage(content=choice.message.content),
                finish_reason=choice.finish_reason,
            )
            for choice in envelope.choices
        ],
        usage=UsageInfo(**envelope.usage.to_dict()),
        response_time_ms=round(envelope.response_time_ms, 2),
        family=envelope.family.value,
        trust_score=envelope.trust_score,
        fallback_used=envelope.fallback_used,
        fallback_from=envelope.fallback_from,
    )


def error_detail_from(error: "DispatchError") -> DispatchErrorDetail:
    """Convert a DispatchError (and any nested errors) to its API model."""
    return DispatchErrorDetail.model_validate(error.to_dict())


def target_result_from(result: "DispatchResult") -> TargetResult:
    """
    Convert a DispatchResult to a per-target entry of CompareResponse.

    Args:
        result: Coordinator result for one target

    Returns:
        TargetResult with status "ok" and a response, or "error" and an error
    """
    attempts = [AttemptInfo(**attempt.to_dict()) for attempt in result.attempts]
    latency_ms = round(result.latency_ms, 2)
    if result.success:
        return TargetResult(
            status="ok",
            response=envelope_response_from(result.envelope),
            attempts=attempts,
            latency_ms=latency_ms,
        )
    return TargetResult(
        status="error",
        error=error_detail_from(result.error),
        attempts=attempts,
        latency_ms=latency_ms,
    )


def build_compare_response(results: dict[str, "DispatchResult"], elapsed_ms: float) -> CompareResponse:
    """
    Build the /compare response from fan-out results.

    Args:
        results: Target -> DispatchResult from the orchestrator
        elapsed_ms: Wall-clock time for the whole fan-out

    Returns:
        CompareResponse ready for API serialization
    """
    entries = {target: target_result_from(result) for target, result in results.items()}
    succeeded = sum(1 for entry in entries.values() if entry.status == "ok")
    return CompareResponse(
        results=entries,
        succeeded=succeeded,
        failed=len(entries) - succeeded,
        elapsed_ms=round(elapsed_ms, 2),
    )


def refine_response_from(result: "RefinementResult") -> RefineResponse:
    return RefineResponse(
        original_prompt=result.original_prompt,
        refined_prompt=result.refined_prompt,
        improvements=list(result.improvements),
        confidence=result.confidence,
        fallback_used=result.fallback_used,
    )


def trust_response_from(report: "TrustReport") -> TrustCheckResponse:
    return TrustCheckResponse(
        trust_score=report.trust_score,
        confidence=report.confidence,
        factors=TrustFactorsInfo(
            factual_accuracy=report.factors.factual_accuracy,
            source_reliability=report.factors.source_reliability,
            logical_consistency=report.factors.logical_consistency,
            completeness=report.factors.completeness,
        ),
        warnings=list(report.warnings),
        suggestions=list(report.suggestions),
    )
