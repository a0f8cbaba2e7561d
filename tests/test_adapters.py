"""
Provider Adapter Tests

Exercises the three adapters against httpx.MockTransport so the real
request building, response validation, and error classification run
without network access.

Test Categories:
1. TestClassifyRejection - Status code to cause/message mapping
2. TestChatAdapter - OpenRouter via the OpenAI SDK
3. TestFalAdapter - fal.ai JSON responses
4. TestHuggingFaceAdapter - Binary and JSON image responses
5. TestInvoke - Errors returned as values, never raised
"""

import base64
import json

import httpx
import pytest

from arena.dispatcher.errors import (
    CredentialMissing,
    NetworkFailure,
    RejectionCause,
    UpstreamMalformed,
    UpstreamRejected,
)
from arena.dispatcher.handlers import (
    classify_rejection,
    invoke,
    invoke_chat,
    invoke_fal,
    invoke_huggingface,
)
from arena.dispatcher.types import ConversationTurn, SamplingParams
from arena.registry.models import ProviderFamily

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-data"

TURNS = (
    ConversationTurn(role="system", content="You are concise."),
    ConversationTurn(role="user", content="A red fox in the snow"),
)


def chat_body(content="A fox is a small canid.", usage=True):
    body = {
        "id": "gen-123",
        "created": 1700000000,
        "model": "openai/gpt-4o-mini",
        "choices": [
            {"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}
        ],
    }
    if usage:
        body["usage"] = {"prompt_tokens": 12, "completion_tokens": 7, "total_tokens": 19}
    return body


class TestClassifyRejection:
    """Unit tests for classify_rejection()."""

    def test_401(self):
        cause, message = classify_rejection(401, "", "fal.ai")
        assert cause == RejectionCause.INVALID_CREDENTIAL
        assert "Invalid fal.ai API key" in message

    def test_403_exhausted_balance(self):
        cause, _ = classify_rejection(403, "Exhausted balance. Top up at fal.ai", "fal.ai")
        assert cause == RejectionCause.FORBIDDEN_BALANCE

    def test_403_locked(self):
        cause, _ = classify_rejection(403, "User is locked", "fal.ai")
        assert cause == RejectionCause.FORBIDDEN_LOCKED

    @pytest.mark.parametrize("detail", ["Region blocked", "Feature not unlocked for this plan"])
    def test_403_locked_needs_exact_phrase(self, detail):
        cause, _ = classify_rejection(403, detail, "fal.ai")
        assert cause == RejectionCause.FORBIDDEN_OTHER

    def test_403_other(self):
        cause, message = classify_rejection(403, "nope", "fal.ai")
        assert cause == RejectionCause.FORBIDDEN_OTHER
        assert "forbidden" in message

    def test_400_includes_detail(self):
        cause, message = classify_rejection(400, "prompt too long", "Hugging Face")
        assert cause == RejectionCause.BAD_REQUEST
        assert "prompt too long" in message

    @pytest.mark.parametrize(
        "status,cause",
        [
            (402, RejectionCause.FORBIDDEN_BALANCE),
            (404, RejectionCause.NOT_FOUND),
            (429, RejectionCause.RATE_LIMITED),
            (503, RejectionCause.UNAVAILABLE),
            (500, RejectionCause.OTHER),
            (418, RejectionCause.OTHER),
        ],
    )
    def test_other_statuses(self, status, cause):
        assert classify_rejection(status, "", "OpenRouter")[0] == cause


class TestChatAdapter:
    @pytest.mark.asyncio
    async def test_success_with_reported_usage(self, mock_transport):
        requests = mock_transport(lambda request: httpx.Response(200, json=chat_body()))

        envelope = await invoke_chat("openai/gpt-4o-mini", TURNS, SamplingParams(), "or-key")

        assert envelope.content == "A fox is a small canid."
        assert envelope.id == "gen-123"
        assert envelope.created == 1700000000
        assert envelope.model == "openai/gpt-4o-mini"
        assert envelope.object == "chat.completion"
        assert envelope.family == ProviderFamily.CHAT
        assert envelope.usage.input_tokens == 12
        assert envelope.usage.output_tokens == 7
        assert not envelope.usage.estimated
        assert envelope.response_time_ms >= 0
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_request_shape(self, mock_transport):
        requests = mock_transport(lambda request: httpx.Response(200, json=chat_body()))

        await invoke_chat("openai/gpt-4o-mini", TURNS, SamplingParams(), "or-key")

        request = requests[0]
        body = json.loads(request.content)
        assert str(request.url) == "https://openrouter.ai/api/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer or-key"
        assert request.headers["HTTP-Referer"] == "http://localhost:3000"
        assert request.headers["X-Title"] == "Arena"
        assert body["model"] == "openai/gpt-4o-mini"
        assert body["messages"] == [t.to_message() for t in TURNS]
        assert body["temperature"] == 0.7
        assert body["max_tokens"] == 1000

    @pytest.mark.asyncio
    async def test_sampling_overrides(self, mock_transport):
        requests = mock_transport(lambda request: httpx.Response(200, json=chat_body()))

        await invoke_chat(
            "openai/gpt-4o-mini", TURNS, SamplingParams(temperature=0.1, max_tokens=50), "or-key"
        )

        body = json.loads(requests[0].content)
        assert body["temperature"] == 0.1
        assert body["max_tokens"] == 50

    @pytest.mark.asyncio
    async def test_missing_usage_is_estimated(self, mock_transport):
        mock_transport(lambda request: httpx.Response(200, json=chat_body(content="abcdefgh", usage=False)))

        envelope = await invoke_chat("openai/gpt-4o-mini", TURNS, SamplingParams(), "or-key")

        joined = "You are concise. A red fox in the snow"
        assert envelope.usage.estimated
        assert envelope.usage.input_tokens == -(-len(joined) // 4)
        assert envelope.usage.output_tokens == 2

    @pytest.mark.asyncio
    async def test_turns_not_mutated(self, mock_transport):
        mock_transport(lambda request: httpx.Response(200, json=chat_body()))
        turns = list(TURNS)

        await invoke_chat("openai/gpt-4o-mini", turns, SamplingParams(), "or-key")

        assert turns == list(TURNS)

    @pytest.mark.asyncio
    async def test_401_rejected(self, mock_transport):
        mock_transport(
            lambda request: httpx.Response(401, json={"error": {"message": "No auth credentials found", "code": 401}})
        )

        with pytest.raises(UpstreamRejected) as exc_info:
            await invoke_chat("openai/gpt-4o-mini", TURNS, SamplingParams(), "bad-key")

        assert exc_info.value.cause == RejectionCause.INVALID_CREDENTIAL
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_402_credits_exhausted(self, mock_transport):
        mock_transport(lambda request: httpx.Response(402, json={"error": {"message": "Insufficient credits"}}))

        with pytest.raises(UpstreamRejected) as exc_info:
            await invoke_chat("openai/gpt-4o-mini", TURNS, SamplingParams(), "or-key")

        assert exc_info.value.cause == RejectionCause.FORBIDDEN_BALANCE

    @pytest.mark.asyncio
    async def test_empty_choices_malformed(self, mock_transport):
        mock_transport(lambda request: httpx.Response(200, json={"id": "x", "choices": []}))

        with pytest.raises(UpstreamMalformed):
            await invoke_chat("openai/gpt-4o-mini", TURNS, SamplingParams(), "or-key")

    @pytest.mark.asyncio
    async def test_empty_content_malformed(self, mock_transport):
        mock_transport(lambda request: httpx.Response(200, json=chat_body(content="")))

        with pytest.raises(UpstreamMalformed):
            await invoke_chat("openai/gpt-4o-mini", TURNS, SamplingParams(), "or-key")

    @pytest.mark.asyncio
    async def test_missing_credential_makes_no_request(self, mock_transport):
        requests = mock_transport(lambda request: httpx.Response(200, json=chat_body()))

        with pytest.raises(CredentialMissing):
            await invoke_chat("openai/gpt-4o-mini", TURNS, SamplingParams(), "  ")

        assert requests == []


class TestFalAdapter:
    @pytest.mark.asyncio
    async def test_success_images_list(self, mock_transport):
        requests = mock_transport(
            lambda request: httpx.Response(200, json={"images": [{"url": "https://fal.media/a.png"}], "seed": 7})
        )

        envelope = await invoke_fal("fal-ai/flux-dev", TURNS, SamplingParams(), "fal-key")

        assert envelope.content == "https://fal.media/a.png"
        assert envelope.object == "image.generation"
        assert envelope.family == ProviderFamily.FAL
        assert envelope.usage.input_tokens == -(-len("A red fox in the snow") // 4)
        assert envelope.usage.output_tokens == 0

        request = requests[0]
        body = json.loads(request.content)
        assert str(request.url) == "https://fal.run/fal-ai/flux/dev"
        assert request.headers["Authorization"] == "Key fal-key"
        assert body == {
            "prompt": "A red fox in the snow",
            "image_size": "landscape_4_3",
            "num_inference_steps": 4,
            "num_images": 1,
            "enable_safety_checker": False,
        }

    @pytest.mark.asyncio
    async def test_success_single_image_field(self, mock_transport):
        mock_transport(lambda request: httpx.Response(200, json={"image": {"url": "https://fal.media/b.png"}}))

        envelope = await invoke_fal("fal-ai/recraft-v3", TURNS, SamplingParams(), "fal-key")

        assert envelope.content == "https://fal.media/b.png"

    @pytest.mark.asyncio
    async def test_output_format_and_steps(self, mock_transport):
        requests = mock_transport(lambda request: httpx.Response(200, json={"images": [{"url": "u"}]}))

        await invoke_fal("fal-ai/recraft-v3", TURNS, SamplingParams(output_format="jpeg"), "fal-key")

        body = json.loads(requests[0].content)
        assert body["output_format"] == "jpeg"
        assert body["num_inference_steps"] == 20

    @pytest.mark.asyncio
    async def test_unknown_target_uses_default_endpoint(self, mock_transport):
        requests = mock_transport(lambda request: httpx.Response(200, json={"images": [{"url": "u"}]}))

        await invoke_fal("fal-ai/brand-new", TURNS, SamplingParams(), "fal-key")

        assert str(requests[0].url) == "https://fal.run/fal-ai/flux/schnell"

    @pytest.mark.asyncio
    async def test_empty_history_uses_placeholder(self, mock_transport):
        requests = mock_transport(lambda request: httpx.Response(200, json={"images": [{"url": "u"}]}))

        await invoke_fal("fal-ai/flux-dev", (), SamplingParams(), "fal-key")

        assert json.loads(requests[0].content)["prompt"] == "A beautiful landscape"

    @pytest.mark.asyncio
    async def test_no_image_url_malformed(self, mock_transport):
        mock_transport(lambda request: httpx.Response(200, json={"images": []}))

        with pytest.raises(UpstreamMalformed) as exc_info:
            await invoke_fal("fal-ai/flux-dev", TURNS, SamplingParams(), "fal-key")

        assert "No image URL" in exc_info.value.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,detail,cause",
        [
            (401, "Unauthorized", RejectionCause.INVALID_CREDENTIAL),
            (403, "Exhausted balance", RejectionCause.FORBIDDEN_BALANCE),
            (403, "User is locked", RejectionCause.FORBIDDEN_LOCKED),
            (403, "Forbidden", RejectionCause.FORBIDDEN_OTHER),
            (400, "bad prompt", RejectionCause.BAD_REQUEST),
        ],
    )
    async def test_rejections(self, mock_transport, status, detail, cause):
        mock_transport(lambda request: httpx.Response(status, json={"detail": detail}))

        with pytest.raises(UpstreamRejected) as exc_info:
            await invoke_fal("fal-ai/flux-dev", TURNS, SamplingParams(), "fal-key")

        assert exc_info.value.cause == cause
        assert exc_info.value.status_code == status
        assert exc_info.value.provider == "fal"

    @pytest.mark.asyncio
    async def test_connection_error_is_network_failure(self, mock_transport):
        def fail(request):
            raise httpx.ConnectError("connection refused", request=request)

        mock_transport(fail)

        with pytest.raises(NetworkFailure):
            await invoke_fal("fal-ai/flux-dev", TURNS, SamplingParams(), "fal-key")

    @pytest.mark.asyncio
    async def test_timeout_is_network_failure(self, mock_transport):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        mock_transport(slow)

        with pytest.raises(NetworkFailure) as exc_info:
            await invoke_fal("fal-ai/flux-dev", TURNS, SamplingParams(), "fal-key")

        assert "timed out" in exc_info.value.message


class TestHuggingFaceAdapter:
    @pytest.mark.asyncio
    async def test_binary_response_becomes_data_url(self, mock_transport):
        requests = mock_transport(
            lambda request: httpx.Response(200, content=PNG_BYTES, headers={"Content-Type": "image/png"})
        )

        envelope = await invoke_huggingface(
            "hf-black-forest-labs/flux.1-dev", TURNS, SamplingParams(), "hf-key"
        )

        expected = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
        assert envelope.content == expected
        assert envelope.family == ProviderFamily.HUGGINGFACE
        assert envelope.usage.output_tokens == 0

        request = requests[0]
        body = json.loads(request.content)
        assert str(request.url) == "https://api-inference.huggingface.co/models/black-forest-labs/FLUX.1-dev"
        assert request.headers["Authorization"] == "Bearer hf-key"
        assert "X-Provider" not in request.headers
        assert body["inputs"] == "A red fox in the snow"
        assert body["parameters"]["num_inference_steps"] == 4
        assert body["parameters"]["guidance_scale"] == 7.5
        assert body["parameters"]["width"] == 1024
        assert body["parameters"]["negative_prompt"]

    @pytest.mark.asyncio
    async def test_mime_from_output_format(self, mock_transport):
        mock_transport(
            lambda request: httpx.Response(
                200, content=b"jpeg-bytes", headers={"Content-Type": "application/octet-stream"}
            )
        )

        envelope = await invoke_huggingface(
            "hf-runwayml/stable-diffusion-v1-5", TURNS, SamplingParams(output_format="jpeg"), "hf-key"
        )

        assert envelope.content.startswith("data:image/jpeg;base64,")

    @pytest.mark.asyncio
    async def test_json_response_with_url(self, mock_transport):
        mock_transport(lambda request: httpx.Response(200, json={"url": "https://cdn.example/img.png"}))

        envelope = await invoke_huggingface(
            "hf-stabilityai/stable-diffusion-xl-base-1.0", TURNS, SamplingParams(), "hf-key"
        )

        assert envelope.content == "https://cdn.example/img.png"

    @pytest.mark.asyncio
    async def test_json_response_without_image_malformed(self, mock_transport):
        mock_transport(lambda request: httpx.Response(200, json={"status": "done"}))

        with pytest.raises(UpstreamMalformed):
            await invoke_huggingface("hf-unknown", TURNS, SamplingParams(), "hf-key")

    @pytest.mark.asyncio
    async def test_empty_body_malformed(self, mock_transport):
        mock_transport(lambda request: httpx.Response(200, content=b"", headers={"Content-Type": "image/png"}))

        with pytest.raises(UpstreamMalformed):
            await invoke_huggingface("hf-unknown", TURNS, SamplingParams(), "hf-key")

    @pytest.mark.asyncio
    async def test_provider_override_header(self, mock_transport):
        requests = mock_transport(
            lambda request: httpx.Response(200, content=PNG_BYTES, headers={"Content-Type": "image/png"})
        )

        await invoke_huggingface("hf-compvis/stable-diffusion-v1-4", TURNS, SamplingParams(), "hf-key")

        assert requests[0].headers["X-Provider"] == "nebius"

    @pytest.mark.asyncio
    async def test_unknown_target_uses_default_model(self, mock_transport):
        requests = mock_transport(
            lambda request: httpx.Response(200, content=PNG_BYTES, headers={"Content-Type": "image/png"})
        )

        await invoke_huggingface("hf-not-registered", TURNS, SamplingParams(), "hf-key")

        assert str(requests[0].url).endswith("/stabilityai/stable-diffusion-xl-base-1.0")

    @pytest.mark.asyncio
    async def test_model_loading_unavailable(self, mock_transport):
        mock_transport(lambda request: httpx.Response(503, json={"error": "Model is currently loading"}))

        with pytest.raises(UpstreamRejected) as exc_info:
            await invoke_huggingface("hf-black-forest-labs/flux.1-dev", TURNS, SamplingParams(), "hf-key")

        assert exc_info.value.cause == RejectionCause.UNAVAILABLE


class TestInvoke:
    """invoke() converts every adapter failure into a returned value."""

    @pytest.mark.asyncio
    async def test_success_outcome(self, mock_transport):
        mock_transport(lambda request: httpx.Response(200, json={"images": [{"url": "u"}]}))

        outcome = await invoke(ProviderFamily.FAL, "fal-ai/flux-dev", TURNS, SamplingParams(), "fal-key")

        assert outcome.success
        assert outcome.envelope.content == "u"
        assert outcome.error is None

    @pytest.mark.asyncio
    async def test_missing_credential_outcome(self, mock_transport):
        requests = mock_transport(lambda request: httpx.Response(200, json={}))

        outcome = await invoke(ProviderFamily.HUGGINGFACE, "hf-x", TURNS, SamplingParams(), None)

        assert not outcome.success
        assert isinstance(outcome.error, CredentialMissing)
        assert outcome.error.target == "hf-x"
        assert requests == []

    @pytest.mark.asyncio
    async def test_malformed_error_gets_target_attached(self, mock_transport):
        mock_transport(lambda request: httpx.Response(200, json=["not", "an", "object"]))

        outcome = await invoke(ProviderFamily.FAL, "fal-ai/flux-dev", TURNS, SamplingParams(), "fal-key")

        assert isinstance(outcome.error, UpstreamMalformed)
        assert outcome.error.target == "fal-ai/flux-dev"
        assert outcome.error.provider == "fal"
