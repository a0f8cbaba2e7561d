"""
Schemas module: Pydantic models for the HTTP API.

See compare.py for request, response, error, metrics, and health models
plus the conversion utilities that build them from internal types.
"""

from arena.schemas.compare import (
    ChatCompletionRequest,
    ChatTurn,
    CompareRequest,
    CompareResponse,
    ComponentHealth,
    ConfigResponse,
    DispatchErrorDetail,
    EnvelopeResponse,
    ErrorCodes,
    ErrorDetail,
    ErrorResponse,
    HealthResponse,
    HistoryRequest,
    MessageResponse,
    MetricsResponse,
    ModelsResponse,
    ProviderCredentials,
    RefineRequest,
    RefineResponse,
    RouteResponse,
    SamplingOptions,
    TargetInfo,
    TargetMetrics,
    TargetResult,
    TrustCheckRequest,
    TrustCheckResponse,
    build_compare_response,
    envelope_response_from,
    error_detail_from,
    refine_response_from,
    target_result_from,
    trust_response_from,
)

__all__ = [
    "ChatCompletionRequest",
    "ChatTurn",
    "CompareRequest",
    "CompareResponse",
    "ComponentHealth",
    "ConfigResponse",
    "DispatchErrorDetail",
    "EnvelopeResponse",
    "ErrorCodes",
    "ErrorDetail",
    "ErrorResponse",
    "HealthResponse",
    "HistoryRequest",
    "MessageResponse",
    "MetricsResponse",
    "ModelsResponse",
    "ProviderCredentials",
    "RefineRequest",
    "RefineResponse",
    "RouteResponse",
    "SamplingOptions",
    "TargetInfo",
    "TargetMetrics",
    "TargetResult",
    "TrustCheckRequest",
    "TrustCheckResponse",
    "build_compare_response",
    "envelope_response_from",
    "error_detail_from",
    "refine_response_from",
    "target_result_from",
    "trust_response_from",
]
