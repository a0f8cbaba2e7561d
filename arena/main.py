"""
Arena: FastAPI Application Entry Point

This module initializes the FastAPI application and defines the endpoints:
- /compare: Send one request to many targets concurrently
- /chat/completions: Single-target, OpenAI-shaped completion with fallback
- /route: Routing plan for a target (debug)
- /models: Registered targets and the fallback map
- /health, /config, /metrics: Operational endpoints
- /prompt/refine, /trust/check, /chat/history: Supporting services

The application uses a lifespan context manager to:
1. Load configuration and configure logging at startup
2. Report which server-side provider keys are present (never their values)
3. Close the shared HTTP client on shutdown
"""

from contextlib import asynccontextmanager
import logging
import time

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from arena import __version__
from arena.config import Settings, configure_logging, get_settings
from arena.dispatcher import (
    ConversationTurn,
    CredentialSet,
    RequestEnvelope,
    SamplingParams,
    compare,
    dispatch,
)
from arena.dispatcher.errors import CREDENTIAL_ERRORS
from arena.dispatcher.handlers import close_clients
from arena.history.store import (
    ChatMessage,
    ChatRecord,
    add_message,
    create_chat,
    get_conversation_store,
    update_chat,
)
from arena.metrics import MetricsReporter
from arena.registry import ProviderFamily, get_target_registry
from arena.router import plan_route
from arena.schemas import (
    ChatCompletionRequest,
    CompareRequest,
    CompareResponse,
    ComponentHealth,
    ConfigResponse,
    EnvelopeResponse,
    ErrorCodes,
    ErrorDetail,
    ErrorResponse,
    HealthResponse,
    HistoryRequest,
    MessageResponse,
    MetricsResponse,
    ModelsResponse,
    RefineRequest,
    RefineResponse,
    RouteResponse,
    TargetInfo,
    TrustCheckRequest,
    TrustCheckResponse,
    build_compare_response,
    envelope_response_from,
    error_detail_from,
    refine_response_from,
    trust_response_from,
)
from arena.scoring.refine import refine
from arena.scoring.trust import check_trust

logger = logging.getLogger(__name__)

_start_time: float = 0.0

CREDENTIAL_HEADERS = {
    ProviderFamily.CHAT: "X-API-Key-OpenRouter",
    ProviderFamily.FAL: "X-API-Key-Fal",
    ProviderFamily.HUGGINGFACE: "X-API-Key-HuggingFace",
}


def server_credentials(settings: Settings) -> CredentialSet:
    """Credentials configured on the server, used only to fill gaps."""

    def reveal(secret) -> str | None:
        return secret.get_secret_value() if secret is not None else None

    return CredentialSet(
        chat=reveal(settings.openrouter_api_key),
        fal=reveal(settings.fal_key),
        huggingface=reveal(settings.huggingface_api_key),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup/shutdown events.

    Server-side keys are optional, so startup never fails on a missing key;
    it only reports which families can be served without caller credentials.
    """
    settings = get_settings()
    configure_logging(settings)

    logger.info("=" * 60)
    logger.info("Arena starting up...")
    logger.info("=" * 60)
    logger.info(f"OpenRouter base URL: {settings.openrouter_base_url}")
    logger.info(f"fal.ai base URL: {settings.fal_base_url}")
    logger.info(f"Hugging Face base URL: {settings.huggingface_base_url}")
    logger.info(f"Request timeout: {settings.request_timeout_seconds}s")
    logger.info(f"Max targets per comparison: {settings.max_targets}")
    logger.info(f"Trust jitter: {'enabled' if settings.trust_jitter else 'disabled'}")
    logger.info(f"Metrics tracking: {'enabled' if settings.track_metrics else 'disabled'}")

    for family, configured in server_credentials(settings).configured().items():
        logger.info(f"Server {family} key: {'configured' if configured else 'absent (caller must supply)'}")

    registry = get_target_registry()
    logger.info(
        f"Registry ready: {len(registry.get_target_ids())} targets, "
        f"{len(registry.get_fallback_map())} fallback pairs"
    )

    global _start_time
    _start_time = time.time()

    logger.info("=" * 60)
    logger.info("Arena ready to accept requests")

    yield  # Application runs here

    logger.info("Arena shutting down...")
    await close_clients()


app = FastAPI(
    title="Arena",
    description="Side-by-side comparison across chat and image generation providers",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, code: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, **extra)).model_dump(
            exclude_none=True
        ),
    )


@app.get("/")
async def root():
    """
    Root endpoint with API information.
    """
    return {
        "name": "Arena",
        "description": "Multi-provider AI comparison gateway",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "config": "/config",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check registry status and which provider families have server-side keys.",
)
async def health_check(settings: Settings = Depends(get_settings)):
    """
    Health check endpoint for monitoring and orchestration.

    A provider family without a server key is "degraded" rather than
    unhealthy, since callers can still supply their own key.
    """
    components = []
    overall_status = "healthy"

    registry = get_target_registry()
    target_count = len(registry.get_target_ids())
    components.append(
        ComponentHealth(
            name="registry",
            status="healthy" if target_count else "unhealthy",
            message=f"{target_count} targets registered",
        )
    )
    if not target_count:
        overall_status = "unhealthy"

    for family, configured in server_credentials(settings).configured().items():
        components.append(
            ComponentHealth(
                name=family,
                status="healthy" if configured else "degraded",
                message="server key configured" if configured else "caller must supply a key",
            )
        )

    uptime = time.time() - _start_time if _start_time > 0 else 0.0

    return HealthResponse(
        status=overall_status,
        version=__version__,
        components=components,
        uptime_seconds=uptime,
    )


@app.get("/config", response_model=ConfigResponse)
async def show_config(settings: Settings = Depends(get_settings)):
    """
    Returns non-sensitive configuration values.

    API keys are SecretStr and only their presence is reported.
    """
    return ConfigResponse(
        version=__version__,
        server_keys_configured=server_credentials(settings).configured(),
        request_timeout_seconds=settings.request_timeout_seconds,
        default_temperature=settings.default_temperature,
        default_max_tokens=settings.default_max_tokens,
        max_targets=settings.max_targets,
        trust_jitter=settings.trust_jitter,
        track_metrics=settings.track_metrics,
    )


@app.get("/models", response_model=ModelsResponse)
async def list_models():
    """
    List all registered targets and the fallback map.

    Unregistered identifiers are still accepted by /compare and
    /chat/completions; see /route for how they would be served.
    """
    registry = get_target_registry()
    return ModelsResponse(
        targets=[
            TargetInfo(
                target_id=t.target_id,
                display_name=t.display_name,
                family=t.family.value,
                modality=t.modality.value,
                vendor=t.vendor,
                endpoint=t.endpoint,
            )
            for t in registry.list_targets()
        ],
        fallbacks=registry.get_fallback_map(),
    )


@app.post("/route", response_model=RouteResponse)
async def show_route(
    target: str = Query(
        ...,
        description="Target identifier to resolve",
        min_length=1,
        examples=["fal-ai/flux-dev", "hf-runwayml/stable-diffusion-v1-5", "openai/gpt-4o-mini"],
    )
):
    """
    Show how a target would be served without calling any provider.

    Returns the provider family, the fallback target (if any), whether the
    identifier is registered, and the endpoint that would be called.
    """
    plan = plan_route(target)
    registry = get_target_registry()
    profile = registry.profile_for(target, plan.family)
    return RouteResponse(
        **plan.to_dict(),
        registered=registry.get_target(target) is not None,
        endpoint=profile.endpoint,
    )


@app.post(
    "/compare",
    response_model=CompareResponse,
    responses={422: {"model": ErrorResponse}},
    summary="Compare targets",
    description="Send the same request to several targets concurrently.",
)
async def compare_targets(request: CompareRequest, settings: Settings = Depends(get_settings)):
    """
    Fan-out endpoint.

    Every distinct target gets exactly one entry in the response, either a
    normalized envelope or a typed error. Per-target failures never fail
    the request as a whole.
    """
    unique_targets = list(dict.fromkeys(request.targets))
    if len(unique_targets) > settings.max_targets:
        return _error_response(
            422,
            ErrorCodes.TOO_MANY_TARGETS,
            f"At most {settings.max_targets} targets can be compared at once",
            field="targets",
        )

    credentials = CredentialSet(
        chat=request.credentials.chat_family,
        fal=request.credentials.image_family_a,
        huggingface=request.credentials.image_family_b,
    ).merged_with(server_credentials(settings))

    turns_by_target = {
        target: tuple(ConversationTurn(role=t.role, content=t.content) for t in turns)
        for target, turns in request.turns_by_target.items()
    }

    sampling = SamplingParams()
    if request.sampling is not None:
        sampling = SamplingParams(
            temperature=request.sampling.temperature,
            max_tokens=request.sampling.max_output_units,
            output_format=request.sampling.output_format,
        )

    start_time = time.perf_counter()
    results = await compare(unique_targets, turns_by_target, credentials, sampling)
    elapsed_ms = (time.perf_counter() - start_time) * 1000

    return build_compare_response(results, elapsed_ms)


@app.post(
    "/chat/completions",
    response_model=EnvelopeResponse,
    responses={
        401: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Single-target completion",
    description="OpenAI-shaped completion for one target, with fal.ai to Hugging Face fallback.",
)
async def chat_completions(
    request: ChatCompletionRequest,
    http_request: Request,
    settings: Settings = Depends(get_settings),
):
    """
    Single-target endpoint.

    Credentials are read from the X-API-Key-OpenRouter, X-API-Key-Fal and
    X-API-Key-HuggingFace headers, falling back to server-configured keys.
    """
    headers = http_request.headers
    credentials = CredentialSet(
        chat=headers.get(CREDENTIAL_HEADERS[ProviderFamily.CHAT]),
        fal=headers.get(CREDENTIAL_HEADERS[ProviderFamily.FAL]),
        huggingface=headers.get(CREDENTIAL_HEADERS[ProviderFamily.HUGGINGFACE]),
    ).merged_with(server_credentials(settings))

    logger.info(f"Chat completion request: model={request.model}, credentials={credentials!r}")

    envelope = RequestEnvelope(
        target=request.model,
        turns=tuple(ConversationTurn(role=m.role, content=m.content) for m in request.messages),
        sampling=SamplingParams(
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            output_format=request.output_format,
        ),
        stream=request.stream,
    )
    result = await dispatch(envelope, credentials)

    if result.success:
        return envelope_response_from(result.envelope)

    error = result.error
    detail = error_detail_from(error)
    if isinstance(error, CREDENTIAL_ERRORS):
        return _error_response(401, ErrorCodes.API_KEY_REQUIRED, error.message, dispatch=detail)
    return _error_response(502, ErrorCodes.UPSTREAM_ERROR, error.message, dispatch=detail)


@app.get(
    "/metrics",
    response_model=MetricsResponse,
    summary="Get metrics",
    description="Aggregated dispatch counts, failures, fallbacks, latency and tokens.",
)
async def get_metrics():
    reporter = MetricsReporter()
    return reporter.generate_report()


@app.post("/prompt/refine", response_model=RefineResponse)
async def refine_prompt(
    request: RefineRequest,
    http_request: Request,
    settings: Settings = Depends(get_settings),
):
    """
    Improve a prompt before sending it to the compared targets.

    Uses a chat model when an OpenRouter key is available (header or
    server), otherwise local rules.
    """
    credentials = CredentialSet(
        chat=http_request.headers.get(CREDENTIAL_HEADERS[ProviderFamily.CHAT])
    ).merged_with(server_credentials(settings))

    result = await refine(
        request.prompt,
        task_type=request.task_type,
        target_model=request.target_model,
        credential=credentials.for_family(ProviderFamily.CHAT),
    )
    return refine_response_from(result)


@app.post("/trust/check", response_model=TrustCheckResponse)
async def trust_check(request: TrustCheckRequest):
    """Detailed heuristic trust report for a piece of generated text."""
    report = check_trust(request.content, model=request.model, context=request.context)
    return trust_response_from(report)


@app.get("/chat/history", response_model=ChatRecord | list[ChatRecord])
async def get_history(id: str | None = Query(default=None, description="Chat ID")):
    """Return one stored session by ID, or all sessions."""
    store = get_conversation_store()
    if id is None:
        return store.list_all()

    record = store.get(id)
    if record is None:
        raise HTTPException(
            status_code=404,
            detail={"code": ErrorCodes.NOT_FOUND, "message": f"Chat not found: {id}"},
        )
    return record


@app.post("/chat/history", response_model=ChatRecord)
async def save_history(request: HistoryRequest):
    """
    Create a session, update one, or append a message.

    chatData carries the session fields for create/update, and
    {chatId, message} for addMessage.
    """
    store = get_conversation_store()
    data = request.chat_data

    try:
        return _apply_history_action(store, request.action, data)
    except ValidationError as e:
        first_error = e.errors()[0] if e.errors() else {}
        raise HTTPException(
            status_code=422,
            detail={
                "code": ErrorCodes.VALIDATION_ERROR,
                "message": first_error.get("msg", "Invalid chatData"),
                "field": ".".join(["chatData", *(str(loc) for loc in first_error.get("loc", ()))]),
            },
        )


def _apply_history_action(store, action: str, data: dict) -> ChatRecord:
    match action:
        case "create":
            messages = [ChatMessage.model_validate(m) for m in data.get("messages", [])]
            return create_chat(
                store,
                preview=data.get("preview"),
                models=data.get("models"),
                messages=messages,
            )
        case "update":
            chat_id = data.get("id")
            if not chat_id:
                raise HTTPException(
                    status_code=400,
                    detail={"code": ErrorCodes.VALIDATION_ERROR, "message": "Chat ID required", "field": "chatData.id"},
                )
            try:
                return update_chat(store, chat_id, data)
            except KeyError:
                raise HTTPException(
                    status_code=404,
                    detail={"code": ErrorCodes.NOT_FOUND, "message": f"Chat not found: {chat_id}"},
                )
        case "addMessage":
            chat_id = data.get("chatId") or data.get("chat_id")
            if not chat_id or "message" not in data:
                raise HTTPException(
                    status_code=400,
                    detail={
                        "code": ErrorCodes.VALIDATION_ERROR,
                        "message": "chatId and message are required",
                        "field": "chatData",
                    },
                )
            return add_message(store, chat_id, ChatMessage.model_validate(data["message"]))


@app.delete("/chat/history", response_model=MessageResponse)
async def delete_history(id: str | None = Query(default=None, description="Chat ID, or 'all'")):
    """Delete one session, or every session when id is 'all'."""
    store = get_conversation_store()

    if id is None:
        raise HTTPException(
            status_code=400,
            detail={"code": ErrorCodes.VALIDATION_ERROR, "message": "Chat ID required", "field": "id"},
        )

    if id == "all":
        store.clear()
        return MessageResponse(message="All chats cleared successfully")

    if not store.delete(id):
        raise HTTPException(
            status_code=404,
            detail={"code": ErrorCodes.NOT_FOUND, "message": f"Chat not found: {id}"},
        )
    return MessageResponse(message="Chat deleted successfully")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle Pydantic validation errors.

    Returns the first validation error's message and field location.
    """
    errors = exc.errors()
    first_error = errors[0] if errors else {}

    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": ErrorCodes.VALIDATION_ERROR,
                "message": first_error.get("msg", "Validation failed"),
                "field": ".".join(str(loc) for loc in first_error.get("loc", [])),
            }
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(
    request: Request, exc: HTTPException
) -> JSONResponse:
    """Handle HTTP exceptions with the standard error envelope."""
    detail = exc.detail
    if isinstance(detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": detail})
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": "HTTP_ERROR", "message": str(detail)}},
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Logs the full exception and returns a generic message so internals
    (including any credential) never reach the client.
    """
    logger.exception("Unhandled exception")
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": ErrorCodes.INTERNAL_ERROR,
                "message": "An unexpected error occurred",
            }
        },
    )
