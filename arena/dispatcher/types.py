"""
Dispatch data model.

Immutable value types passed between the orchestrator, coordinator, and
adapters. All of them are created fresh per call and discarded once the
caller has consumed the result.

Key components:
- ConversationTurn / SamplingParams / RequestEnvelope: normalized request
- TokenUsage: input/output unit accounting (reported or estimated)
- ResponseEnvelope: canonical response shape every adapter produces
- CredentialSet: per-call provider secrets
- AdapterOutcome / Attempt / DispatchResult: explicit success-or-error results
"""

import math
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Literal

from arena.dispatcher.errors import DispatchError
from arena.registry.models import ProviderFamily

Role = Literal["user", "assistant", "system"]

DEFAULT_IMAGE_PROMPT = "A beautiful landscape"
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """
    Approximate token count from character length.

    One unit per 4 characters, rounded up. This is a deterministic
    approximation, not a tokenizer count, and is only used when the
    provider does not report usage.
    """
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass(frozen=True)
class ConversationTurn:
    """One message of dialogue history."""

    role: Role
    content: str

    def to_message(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class SamplingParams:
    """
    Optional caller-controlled generation parameters.

    Unset values are filled from settings by the adapter. output_format only
    applies to image targets; all other image parameters are fixed per model.
    """

    temperature: float | None = None
    max_tokens: int | None = None
    output_format: Literal["jpeg", "png"] | None = None


@dataclass(frozen=True)
class RequestEnvelope:
    """
    One logical request for a single target.

    Attributes:
        target: Target identifier to serve the request
        turns: Ordered conversation history (last turn is the prompt)
        sampling: Optional sampling parameters
        stream: Accepted for API compatibility; responses are never streamed
    """

    target: str
    turns: tuple[ConversationTurn, ...] = ()
    sampling: SamplingParams = field(default_factory=SamplingParams)
    stream: bool = False

    @property
    def prompt(self) -> str:
        """Content of the last turn, used as the image prompt."""
        return last_turn_content(self.turns)


def last_turn_content(turns: tuple[ConversationTurn, ...] | list[ConversationTurn]) -> str:
    """
    Return the last turn's content as the image prompt.

    The placeholder prompt is used when there are no turns and also when
    the last turn's content is empty, so an image target never receives a
    blank prompt.
    """
    if not turns:
        return DEFAULT_IMAGE_PROMPT
    return turns[-1].content or DEFAULT_IMAGE_PROMPT


@dataclass(frozen=True)
class TokenUsage:
    """
    Input/output unit counts for one response.

    estimated is True when the counts were derived from character length
    instead of being reported by the provider.
    """

    input_tokens: int = 0
    output_tokens: int = 0
    estimated: bool = False

    def __post_init__(self):
        if self.input_tokens < 0 or self.output_tokens < 0:
            raise ValueError("token counts must be non-negative")

    @property
    def total_tokens(self) -> int:
        """Total units consumed (input + output)."""
        return self.input_tokens + self.output_tokens

    @classmethod
    def estimate(cls, input_text: str, output_text: str = "") -> "TokenUsage":
        return cls(
            input_tokens=estimate_tokens(input_text),
            output_tokens=estimate_tokens(output_text),
            estimated=True,
        )

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.input_tokens,
            "completion_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "estimated": self.estimated,
        }


@dataclass(frozen=True)
class ResponseMessage:
    role: Literal["assistant"]
    content: str


@dataclass(frozen=True)
class Choice:
    index: int
    message: ResponseMessage
    finish_reason: str = "stop"


@dataclass(frozen=True)
class ResponseEnvelope:
    """
    Canonical response produced by every adapter.

    Attributes:
        id: Provider response ID, or a generated one
        created: Unix timestamp (seconds)
        model: Target identifier that actually served the response
        object: "chat.completion" or "image.generation"
        choices: Exactly one choice
        usage: Token accounting
        response_time_ms: Wall-clock duration of the upstream call
        family: Provider family that served the response
        trust_score: Heuristic score 0-100, set by the annotator
        fallback_used: True when a fallback target served the request
        fallback_from: Originally requested target when fallback_used
    """

    id: str
    created: int
    model: str
    object: str
    choices: tuple[Choice, ...]
    usage: TokenUsage
    response_time_ms: float
    family: ProviderFamily
    trust_score: int | None = None
    fallback_used: bool = False
    fallback_from: str | None = None

    def __post_init__(self):
        if len(self.choices) != 1:
            raise ValueError("a response envelope carries exactly one choice")

    @classmethod
    def build(
        cls,
        *,
        model: str,
        object: str,
        content: str,
        usage: TokenUsage,
        response_time_ms: float,
        family: ProviderFamily,
        finish_reason: str = "stop",
        id: str | None = None,
        created: int | None = None,
    ) -> "ResponseEnvelope":
        """Assemble an envelope around a single assistant message."""
        return cls(
            id=id or f"{family.value}-{uuid.uuid4().hex[:24]}",
            created=created if created is not None else int(time.time()),
            model=model,
            object=object,
            choices=(
                Choice(
                    index=0,
                    message=ResponseMessage(role="assistant", content=content),
                    finish_reason=finish_reason,
                ),
            ),
            usage=usage,
            response_time_ms=response_time_ms,
            family=family,
        )

    @property
    def content(self) -> str:
        """Text (or image URL) of the single choice."""
        return self.choices[0].message.content

    def with_trust_score(self, score: int) -> "ResponseEnvelope":
        return replace(self, trust_score=score)

    def as_fallback(self, requested_target: str) -> "ResponseEnvelope":
        return replace(self, fallback_used=True, fallback_from=requested_target)


@dataclass(frozen=True)
class CredentialSet:
    """
    Per-call provider secrets. Blank strings count as absent.

    The core reads credentials only from this object and never stores them.
    """

    chat: str | None = None
    fal: str | None = None
    huggingface: str | None = None

    def for_family(self, family: ProviderFamily) -> str | None:
        match family:
            case ProviderFamily.CHAT:
                value = self.chat
            case ProviderFamily.FAL:
                value = self.fal
            case ProviderFamily.HUGGINGFACE:
                value = self.huggingface
            case _:
                value = None
        if value is None or not value.strip():
            return None
        return value.strip()

    def has(self, family: ProviderFamily) -> bool:
        return self.for_family(family) is not None

    def merged_with(self, defaults: "CredentialSet") -> "CredentialSet":
        """Fill absent secrets from another set (caller-supplied wins)."""
        return CredentialSet(
            chat=self.for_family(ProviderFamily.CHAT) or defaults.for_family(ProviderFamily.CHAT),
            fal=self.for_family(ProviderFamily.FAL) or defaults.for_family(ProviderFamily.FAL),
            huggingface=self.for_family(ProviderFamily.HUGGINGFACE)
            or defaults.for_family(ProviderFamily.HUGGINGFACE),
        )

    def configured(self) -> dict[str, bool]:
        """Which families have a credential, without exposing values."""
        return {family.value: self.has(family) for family in ProviderFamily}

    def __repr__(self) -> str:
        flags = ", ".join(f"{name}={'set' if ok else 'absent'}" for name, ok in self.configured().items())
        return f"CredentialSet({flags})"


@dataclass(frozen=True)
class AdapterOutcome:
    """Result of one adapter call: exactly one of envelope/error is set."""

    target: str
    family: ProviderFamily
    envelope: ResponseEnvelope | None = None
    error: DispatchError | None = None

    @property
    def success(self) -> bool:
        return self.error is None and self.envelope is not None


@dataclass(frozen=True)
class Attempt:
    """Record of one upstream attempt made while serving a target."""

    target: str
    family: ProviderFamily
    success: bool
    error_code: str | None = None

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "family": self.family.value,
            "success": self.success,
            "error_code": self.error_code,
        }


@dataclass(frozen=True)
class DispatchResult:
    """
    Final outcome for one requested target.

    Attributes:
        target: The requested target identifier
        envelope: Normalized response on success
        error: Typed error on failure
        attempts: Upstream attempts in the order they were made
        latency_ms: Wall-clock time for the whole dispatch, fallback included
    """

    target: str
    envelope: ResponseEnvelope | None = None
    error: DispatchError | None = None
    attempts: tuple[Attempt, ...] = ()
    latency_ms: float = 0.0

    @property
    def success(self) -> bool:
        """Check if dispatch completed without errors."""
        return self.error is None and self.envelope is not None

    @property
    def fallback_used(self) -> bool:
        return self.envelope is not None and self.envelope.fallback_used
