"""
Dispatcher Handlers - Provider-specific adapters.

This module handles the actual API calls to the three upstream families,
abstracting away provider differences behind one adapter contract:

    invoke_<family>(target, turns, sampling, credential) -> ResponseEnvelope

Adapters raise the typed errors from ``arena.dispatcher.errors``. The public
``invoke()`` wraps them and returns an AdapterOutcome value instead, so no
exception leaves the adapter layer.

Key components:
- ProviderClients: Lazy-initialized shared HTTP client and OpenAI SDK factory
- invoke_chat(): OpenRouter chat completion via the OpenAI SDK
- invoke_fal(): fal.ai image generation (JSON with image URL)
- invoke_huggingface(): Hugging Face image generation (raw image bytes)
- classify_rejection(): Maps non-2xx statuses to actionable messages
- invoke(): Unified interface routing to the correct adapter
"""

import json
import logging
import time
from typing import Sequence

import httpx
import openai
from openai import AsyncOpenAI

from arena.config import get_settings
from arena.dispatcher.errors import (
    CredentialMissing,
    DispatchError,
    NetworkFailure,
    RejectionCause,
    UpstreamMalformed,
    UpstreamRejected,
)
from arena.dispatcher.payloads import (
    BinaryImagePayload,
    ChatCompletionPayload,
    FalImagePayload,
    JsonImagePayload,
    ProviderPayload,
    parse_payload,
)
from arena.dispatcher.types import (
    AdapterOutcome,
    ConversationTurn,
    ResponseEnvelope,
    SamplingParams,
    TokenUsage,
    last_turn_content,
)
from arena.registry.models import ProviderFamily, get_target_registry

logger = logging.getLogger(__name__)

PROVIDER_NAMES = {
    ProviderFamily.CHAT: "OpenRouter",
    ProviderFamily.FAL: "fal.ai",
    ProviderFamily.HUGGINGFACE: "Hugging Face",
}

HUGGINGFACE_GUIDANCE_SCALE = 7.5
HUGGINGFACE_NEGATIVE_PROMPT = "low quality, blurry, distorted, ugly, bad anatomy"


class ProviderClients:
    """
    Lazy-initialized provider clients.

    One httpx.AsyncClient is shared by every adapter so connections are
    pooled and every call is bounded by the configured timeout. OpenAI SDK
    clients are cheap wrappers built per call because the API key comes
    from the caller, not from settings.
    """

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self._settings = get_settings()
        self._http = http_client

    @property
    def http(self) -> httpx.AsyncClient:
        """
        Get the shared HTTP client (lazy initialization).

        Returns:
            httpx.AsyncClient with the configured request timeout.
        """
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.request_timeout_seconds)
            )
            logger.debug("Initialized shared HTTP client")
        return self._http

    def openai_for(self, api_key: str) -> AsyncOpenAI:
        """
        Build an OpenAI SDK client pointed at OpenRouter.

        SDK retries are disabled: a failed call goes straight to the
        coordinator, which decides whether a fallback applies.
        """
        return AsyncOpenAI(
            api_key=api_key,
            base_url=self._settings.openrouter_base_url,
            http_client=self.http,
            timeout=self._settings.request_timeout_seconds,
            max_retries=0,
        )

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None


# Global client instance (singleton pattern)
_clients: ProviderClients | None = None


def get_clients() -> ProviderClients:
    """
    Get the global provider clients instance.

    Uses lazy initialization to create clients only when first needed.

    Returns:
        The singleton ProviderClients instance.
    """
    global _clients
    if _clients is None:
        _clients = ProviderClients()
    return _clients


async def close_clients() -> None:
    """Close the shared HTTP client; called on application shutdown."""
    global _clients
    if _clients is not None:
        await _clients.aclose()
        _clients = None


# =============================================================================
# ERROR CLASSIFICATION
# =============================================================================


def classify_rejection(status_code: int, detail: str, provider: str) -> tuple[RejectionCause, str]:
    """
    Turn an upstream status code into a cause and a message the caller can act on.

    Args:
        status_code: HTTP status returned by the provider
        detail: Error text extracted from the response body (may be empty)
        provider: Human-readable provider name for the message

    Returns:
        Tuple of (RejectionCause, message)
    """
    detail_lower = detail.lower()

    if status_code == 401:
        return (
            RejectionCause.INVALID_CREDENTIAL,
            f"Invalid {provider} API key. Please check your API key in settings.",
        )

    if status_code == 403:
        if "exhausted balance" in detail_lower:
            return (
                RejectionCause.FORBIDDEN_BALANCE,
                f"{provider} account balance exhausted. Please top up your account.",
            )
        if "user is locked" in detail_lower:
            return (
                RejectionCause.FORBIDDEN_LOCKED,
                f"{provider} account is locked. Please check your account status.",
            )
        return (
            RejectionCause.FORBIDDEN_OTHER,
            f"{provider} API access forbidden. Please check your API key and account permissions.",
        )

    if status_code == 402:
        return (
            RejectionCause.FORBIDDEN_BALANCE,
            f"{provider} credits exhausted. Please add credits to your account.",
        )

    if status_code == 400:
        return (
            RejectionCause.BAD_REQUEST,
            f"{provider} API bad request: {detail or 'Invalid request parameters'}",
        )

    if status_code == 404:
        return RejectionCause.NOT_FOUND, f"{provider} model not found or not available"

    if status_code == 429:
        return (
            RejectionCause.RATE_LIMITED,
            f"{provider} rate limit exceeded. Please try again later.",
        )

    if status_code == 503:
        return (
            RejectionCause.UNAVAILABLE,
            f"{provider} model is currently loading or unavailable. Please try again in a few moments.",
        )

    suffix = f" - {detail}" if detail else ""
    return RejectionCause.OTHER, f"{provider} API error: {status_code}{suffix}"


def _error_detail(response: httpx.Response) -> str:
    """Extract a short error description from an upstream error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500].strip()

    if isinstance(body, dict):
        for key in ("detail", "error", "message"):
            value = body.get(key)
            if isinstance(value, dict):
                value = value.get("message") or json.dumps(value)
            if value:
                return str(value)[:500]
    return json.dumps(body)[:500]


def _rejection(status_code: int, detail: str, family: ProviderFamily, target: str) -> UpstreamRejected:
    provider = PROVIDER_NAMES[family]
    cause, message = classify_rejection(status_code, detail, provider)
    return UpstreamRejected(
        message,
        cause=cause,
        status_code=status_code,
        target=target,
        provider=family.value,
    )


def _require_credential(credential: str | None, family: ProviderFamily, target: str) -> str:
    if credential is None or not credential.strip():
        raise CredentialMissing(
            f"{PROVIDER_NAMES[family]} API key required",
            target=target,
            provider=family.value,
        )
    return credential.strip()


async def _post(
    client: httpx.AsyncClient,
    url: str,
    *,
    family: ProviderFamily,
    target: str,
    headers: dict[str, str],
    body: dict,
) -> httpx.Response:
    """POST JSON, mapping transport errors and non-2xx statuses to typed errors."""
    try:
        response = await client.post(url, headers=headers, json=body)
    except httpx.TimeoutException as e:
        raise NetworkFailure(
            f"{PROVIDER_NAMES[family]} request timed out",
            target=target,
            provider=family.value,
        ) from e
    except httpx.HTTPError as e:
        raise NetworkFailure(
            f"{PROVIDER_NAMES[family]} request failed: {e}",
            target=target,
            provider=family.value,
        ) from e

    if not response.is_success:
        detail = _error_detail(response)
        logger.warning(
            f"{PROVIDER_NAMES[family]} rejected request: target={target}, "
            f"status={response.status_code}, detail={detail[:200]}"
        )
        raise _rejection(response.status_code, detail, family, target)

    return response


def _json_body(response: httpx.Response, family: ProviderFamily) -> object:
    try:
        return response.json()
    except ValueError as e:
        raise UpstreamMalformed(f"{PROVIDER_NAMES[family]} returned a non-JSON body") from e


def _image_content(payload: ProviderPayload, default_mime: str) -> str:
    """Extract a displayable image reference from any image payload."""
    match payload.kind:
        case "fal":
            return payload.image_url()
        case "json_image":
            return payload.resolve(default_mime)
        case "binary_image":
            return payload.data_url()
        case _:
            raise UpstreamMalformed(f"Payload of kind '{payload.kind}' carries no image")


# =============================================================================
# ADAPTERS
# =============================================================================


async def invoke_chat(
    target: str,
    turns: Sequence[ConversationTurn],
    sampling: SamplingParams,
    credential: str | None,
) -> ResponseEnvelope:
    """
    Run a chat completion on OpenRouter.

    The request body is the OpenAI-compatible ``{model, messages,
    temperature, max_tokens}``. When OpenRouter omits usage, counts are
    estimated from character length.

    Args:
        target: Chat target identifier (OpenRouter model slug)
        turns: Conversation history, sent in order
        sampling: Temperature / max tokens overrides
        credential: OpenRouter API key

    Returns:
        ResponseEnvelope with the assistant reply.
    """
    api_key = _require_credential(credential, ProviderFamily.CHAT, target)
    settings = get_settings()
    clients = get_clients()
    profile = get_target_registry().profile_for(target, ProviderFamily.CHAT)

    messages = [turn.to_message() for turn in turns]
    temperature = (
        sampling.temperature if sampling.temperature is not None else settings.default_temperature
    )
    max_tokens = sampling.max_tokens if sampling.max_tokens is not None else settings.default_max_tokens

    start_time = time.perf_counter()

    try:
        raw = await clients.openai_for(api_key).chat.completions.with_raw_response.create(
            model=profile.endpoint,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            extra_headers={
                "HTTP-Referer": settings.site_url,
                "X-Title": settings.app_title,
            },
        )
    except openai.APIStatusError as e:
        detail = _error_detail(e.response)
        logger.warning(
            f"OpenRouter rejected request: target={target}, status={e.status_code}, detail={detail[:200]}"
        )
        raise _rejection(e.status_code, detail, ProviderFamily.CHAT, target) from e
    except openai.APITimeoutError as e:
        raise NetworkFailure("OpenRouter request timed out", target=target, provider="chat") from e
    except openai.APIConnectionError as e:
        raise NetworkFailure(f"OpenRouter request failed: {e}", target=target, provider="chat") from e

    payload = parse_payload(
        ChatCompletionPayload, _json_body(raw.http_response, ProviderFamily.CHAT), "OpenRouter"
    )
    content, finish_reason = payload.first_content()

    latency_ms = (time.perf_counter() - start_time) * 1000

    if payload.usage is not None and payload.usage.complete:
        usage = TokenUsage(
            input_tokens=payload.usage.prompt_tokens,
            output_tokens=payload.usage.completion_tokens,
        )
    else:
        usage = TokenUsage.estimate(" ".join(turn.content for turn in turns), content)

    logger.info(
        f"OpenRouter dispatch completed: target={target}, "
        f"latency={latency_ms:.0f}ms, tokens={usage.total_tokens}"
        f"{' (estimated)' if usage.estimated else ''}"
    )

    return ResponseEnvelope.build(
        id=payload.id,
        created=payload.created,
        model=target,
        object="chat.completion",
        content=content,
        finish_reason=finish_reason,
        usage=usage,
        response_time_ms=latency_ms,
        family=ProviderFamily.CHAT,
    )


async def invoke_fal(
    target: str,
    turns: Sequence[ConversationTurn],
    sampling: SamplingParams,
    credential: str | None,
) -> ResponseEnvelope:
    """
    Generate an image on fal.ai.

    The prompt is the last turn's content. Inference steps and image size
    come from the registry; only output_format is caller-controlled.

    Args:
        target: fal-ai/ target identifier
        turns: Conversation history (only the last turn is used)
        sampling: Only output_format is honoured
        credential: fal.ai API key

    Returns:
        ResponseEnvelope whose content is the remote image URL.
    """
    api_key = _require_credential(credential, ProviderFamily.FAL, target)
    settings = get_settings()
    clients = get_clients()
    profile = get_target_registry().profile_for(target, ProviderFamily.FAL)
    prompt = last_turn_content(turns)

    body = {
        "prompt": prompt,
        "image_size": profile.image_size,
        "num_inference_steps": profile.inference_steps,
        "num_images": 1,
        "enable_safety_checker": False,
    }
    if sampling.output_format:
        body["output_format"] = sampling.output_format

    if profile.is_default_profile:
        logger.info(f"Unknown fal.ai target '{target}', using default endpoint {profile.endpoint}")

    start_time = time.perf_counter()
    response = await _post(
        clients.http,
        f"{settings.fal_base_url}/{profile.endpoint}",
        family=ProviderFamily.FAL,
        target=target,
        headers={"Authorization": f"Key {api_key}"},
        body=body,
    )
    payload = parse_payload(FalImagePayload, _json_body(response, ProviderFamily.FAL), "fal.ai")
    image_url = _image_content(payload, "image/png")
    latency_ms = (time.perf_counter() - start_time) * 1000

    logger.info(
        f"fal.ai dispatch completed: target={target}, endpoint={profile.endpoint}, "
        f"latency={latency_ms:.0f}ms"
    )

    return ResponseEnvelope.build(
        model=target,
        object="image.generation",
        content=image_url,
        usage=TokenUsage.estimate(prompt),
        response_time_ms=latency_ms,
        family=ProviderFamily.FAL,
    )


async def invoke_huggingface(
    target: str,
    turns: Sequence[ConversationTurn],
    sampling: SamplingParams,
    credential: str | None,
) -> ResponseEnvelope:
    """
    Generate an image on the Hugging Face Inference API.

    The API usually answers with raw image bytes, which are base64-encoded
    into a data URL. JSON answers carrying a URL or base64 image are
    accepted as well.

    Args:
        target: hf- target identifier
        turns: Conversation history (only the last turn is used)
        sampling: Only output_format is honoured (data URL mime type)
        credential: Hugging Face API token

    Returns:
        ResponseEnvelope whose content is a data URL or remote URL.
    """
    api_key = _require_credential(credential, ProviderFamily.HUGGINGFACE, target)
    settings = get_settings()
    clients = get_clients()
    profile = get_target_registry().profile_for(target, ProviderFamily.HUGGINGFACE)
    prompt = last_turn_content(turns)

    body = {
        "inputs": prompt,
        "parameters": {
            "num_inference_steps": profile.inference_steps,
            "guidance_scale": HUGGINGFACE_GUIDANCE_SCALE,
            "width": profile.width,
            "height": profile.height,
            "negative_prompt": HUGGINGFACE_NEGATIVE_PROMPT,
        },
    }
    headers = {"Authorization": f"Bearer {api_key}"}
    if profile.inference_provider:
        headers["X-Provider"] = profile.inference_provider

    if profile.is_default_profile:
        logger.info(f"Unknown Hugging Face target '{target}', using default model {profile.endpoint}")

    default_mime = f"image/{sampling.output_format}" if sampling.output_format else "image/png"

    start_time = time.perf_counter()
    response = await _post(
        clients.http,
        f"{settings.huggingface_base_url}/{profile.endpoint}",
        family=ProviderFamily.HUGGINGFACE,
        target=target,
        headers=headers,
        body=body,
    )

    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type == "application/json":
        payload = parse_payload(
            JsonImagePayload, _json_body(response, ProviderFamily.HUGGINGFACE), "Hugging Face"
        )
    else:
        payload = BinaryImagePayload(
            data=response.content,
            mime_type=content_type if content_type.startswith("image/") else default_mime,
        )
    image = _image_content(payload, default_mime)
    latency_ms = (time.perf_counter() - start_time) * 1000

    logger.info(
        f"Hugging Face dispatch completed: target={target}, model={profile.endpoint}, "
        f"latency={latency_ms:.0f}ms, payload={payload.kind}"
    )

    return ResponseEnvelope.build(
        model=target,
        object="image.generation",
        content=image,
        usage=TokenUsage.estimate(prompt),
        response_time_ms=latency_ms,
        family=ProviderFamily.HUGGINGFACE,
    )


async def invoke(
    family: ProviderFamily,
    target: str,
    turns: Sequence[ConversationTurn],
    sampling: SamplingParams,
    credential: str | None,
) -> AdapterOutcome:
    """
    Call the adapter for a family and return its outcome as a value.

    This is the main entry point for the adapter layer. Typed errors are
    returned in the outcome; unexpected exceptions are logged with their
    traceback and returned as a generic DispatchError.

    Args:
        family: Provider family selecting the adapter
        target: Target identifier
        turns: Conversation history
        sampling: Sampling parameters
        credential: Secret for this family (None if absent)

    Returns:
        AdapterOutcome with either an envelope or an error.
    """
    logger.info(f"Dispatching to {target} via {family.value}")

    match family:
        case ProviderFamily.CHAT:
            adapter = invoke_chat
        case ProviderFamily.FAL:
            adapter = invoke_fal
        case ProviderFamily.HUGGINGFACE:
            adapter = invoke_huggingface
        case _:
            logger.error(f"Unknown provider family: {family}")
            return AdapterOutcome(
                target=target,
                family=family,
                error=DispatchError(f"Unknown provider family: {family}", target=target),
            )

    try:
        envelope = await adapter(target, turns, sampling, credential)
    except DispatchError as e:
        e.target = e.target or target
        e.provider = e.provider or family.value
        logger.error(f"{PROVIDER_NAMES[family]} dispatch failed for {target}: [{e.code}] {e.message}")
        return AdapterOutcome(target=target, family=family, error=e)
    except Exception as e:
        logger.exception(f"Unexpected error from {PROVIDER_NAMES[family]} adapter for {target}")
        return AdapterOutcome(
            target=target,
            family=family,
            error=DispatchError(
                f"{PROVIDER_NAMES[family]} adapter error: {e}",
                target=target,
                provider=family.value,
            ),
        )

    return AdapterOutcome(target=target, family=family, envelope=envelope)
