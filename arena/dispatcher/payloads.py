"""
Typed upstream payloads.

Each provider family has its own response model, validated at the adapter
boundary. The union is tagged by ``kind`` so callers can branch on the
payload type without inspecting raw JSON. Nothing loosely-typed leaves the
adapter: payloads are converted to a ResponseEnvelope right after
validation.

Validation failures and missing content raise UpstreamMalformed.
"""

import base64
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from arena.dispatcher.errors import UpstreamMalformed


# =============================================================================
# CHAT COMPLETION (OpenAI-compatible)
# =============================================================================


class ChatMessagePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str | None = None
    content: str | None = None


class ChatChoicePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int = 0
    message: ChatMessagePayload | None = None
    finish_reason: str | None = None


class ChatUsagePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prompt_tokens: int | None = Field(default=None, ge=0)
    completion_tokens: int | None = Field(default=None, ge=0)
    total_tokens: int | None = Field(default=None, ge=0)

    @property
    def complete(self) -> bool:
        return self.prompt_tokens is not None and self.completion_tokens is not None


class ChatCompletionPayload(BaseModel):
    """OpenAI-style ``{id, created, choices, usage}`` body."""

    model_config = ConfigDict(extra="ignore")

    kind: Literal["chat"] = "chat"
    id: str | None = None
    created: int | None = None
    model: str | None = None
    choices: list[ChatChoicePayload] = Field(default_factory=list)
    usage: ChatUsagePayload | None = None

    def first_content(self) -> tuple[str, str]:
        """
        Return (content, finish_reason) of the first choice.

        Raises:
            UpstreamMalformed: If there is no choice or its content is empty.
        """
        if not self.choices:
            raise UpstreamMalformed("Chat completion response contained no choices")
        choice = self.choices[0]
        content = choice.message.content if choice.message else None
        if not content:
            raise UpstreamMalformed("Chat completion response contained no message content")
        return content, choice.finish_reason or "stop"


# =============================================================================
# IMAGE GENERATION (JSON with URL, or raw bytes)
# =============================================================================


class ImageRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str | None = None
    content_type: str | None = None


class FalImagePayload(BaseModel):
    """fal.ai result: ``{images: [{url}]}`` or ``{image: {url}}``."""

    model_config = ConfigDict(extra="ignore")

    kind: Literal["fal"] = "fal"
    images: list[ImageRef] = Field(default_factory=list)
    image: ImageRef | None = None
    seed: int | None = None

    def image_url(self) -> str:
        """
        Raises:
            UpstreamMalformed: If neither images[0].url nor image.url is present.
        """
        if self.images and self.images[0].url:
            return self.images[0].url
        if self.image is not None and self.image.url:
            return self.image.url
        raise UpstreamMalformed("No image URL returned from fal.ai")


class JsonImagePayload(BaseModel):
    """
    JSON answer from an image endpoint that returns links or base64 instead
    of raw bytes (some Hugging Face inference providers do this).
    """

    model_config = ConfigDict(extra="ignore")

    kind: Literal["json_image"] = "json_image"
    url: str | None = None
    image_url: str | None = None
    images: list[ImageRef] = Field(default_factory=list)
    data: list[dict[str, Any]] = Field(default_factory=list)

    def resolve(self, default_mime: str) -> str:
        """
        Return a remote URL or a data URL.

        Raises:
            UpstreamMalformed: If no image reference can be found.
        """
        for candidate in (self.url, self.image_url):
            if candidate:
                return candidate
        if self.images and self.images[0].url:
            return self.images[0].url
        if self.data:
            entry = self.data[0]
            if entry.get("url"):
                return str(entry["url"])
            if entry.get("b64_json"):
                return f"data:{default_mime};base64,{entry['b64_json']}"
        raise UpstreamMalformed("Image response JSON did not contain an image")


class BinaryImagePayload(BaseModel):
    """Raw image bytes, re-encoded as a base64 data URL."""

    kind: Literal["binary_image"] = "binary_image"
    data: bytes
    mime_type: str = "image/png"

    def data_url(self) -> str:
        if not self.data:
            raise UpstreamMalformed("Image response body was empty")
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


ProviderPayload = Annotated[
    Union[ChatCompletionPayload, FalImagePayload, JsonImagePayload, BinaryImagePayload],
    Field(discriminator="kind"),
]


def parse_payload(model: type[BaseModel], data: Any, provider: str) -> Any:
    """
    Validate raw upstream JSON into a typed payload.

    Raises:
        UpstreamMalformed: If the JSON does not match the expected shape.
    """
    if not isinstance(data, dict):
        raise UpstreamMalformed(f"{provider} returned a non-object JSON body")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise UpstreamMalformed(f"{provider} returned an unexpected response shape: {e.error_count()} invalid field(s)") from e
