"""
Target Registry

This module defines every upstream target the gateway knows about, grouped
into three provider families:
- chat: OpenAI-compatible text completion through OpenRouter
- fal: image generation through fal.ai (identifiers start with "fal-ai/")
- huggingface: image generation through the Hugging Face Inference API
  (identifiers start with "hf-")

Each entry carries the provider-specific endpoint and the fixed generation
defaults (inference steps, output resolution) for that model. The tables are
built once per process and only ever read afterwards.

Identifiers that are not registered still resolve: chat identifiers pass
through to OpenRouter unchanged, and prefixed image identifiers use the
family's default profile (fal: "fal-ai/flux/schnell", Hugging Face:
"stabilityai/stable-diffusion-xl-base-1.0").

The fallback map pairs fal targets with an equivalent Hugging Face target,
used when fal fails or no fal credential is available.
"""

from enum import Enum
from pydantic import BaseModel, Field


class ProviderFamily(str, Enum):
    """Upstream integration groups a target identifier can belong to."""

    CHAT = "chat"  # OpenRouter, OpenAI-compatible
    FAL = "fal"  # fal.ai image generation
    HUGGINGFACE = "huggingface"  # Hugging Face Inference image generation


class Modality(str, Enum):
    """Kind of output a target produces."""

    TEXT = "text"
    IMAGE = "image"


FAL_PREFIX = "fal-ai/"
HUGGINGFACE_PREFIX = "hf-"

DEFAULT_FAL_ENDPOINT = "fal-ai/flux/schnell"
DEFAULT_HUGGINGFACE_MODEL = "stabilityai/stable-diffusion-xl-base-1.0"

FAL_IMAGE_SIZE = "landscape_4_3"
FLUX_INFERENCE_STEPS = 4
FAL_INFERENCE_STEPS = 20


class TargetMetadata(BaseModel):
    """
    Complete metadata for a registered target.

    This class holds everything an adapter needs to call the model:
    1. The family (which adapter handles it)
    2. The provider-specific endpoint or model path
    3. Fixed generation defaults for image models
    """

    target_id: str = Field(
        ...,
        description="Identifier callers use to select the model",
    )

    display_name: str = Field(
        ...,
        description="Human-readable model name",
    )

    family: ProviderFamily = Field(
        ...,
        description="Provider family that serves this target",
    )

    modality: Modality = Field(
        ...,
        description="Output modality",
    )

    vendor: str = Field(
        default="",
        description="Organisation that publishes the model",
    )

    endpoint: str = Field(
        ...,
        description="Provider-specific endpoint or model path used in API calls",
    )

    inference_steps: int | None = Field(
        default=None,
        gt=0,
        description="Diffusion steps sent to image providers",
    )

    width: int | None = Field(
        default=None,
        gt=0,
        description="Output width in pixels (Hugging Face)",
    )

    height: int | None = Field(
        default=None,
        gt=0,
        description="Output height in pixels (Hugging Face)",
    )

    image_size: str | None = Field(
        default=None,
        description="Named output size preset (fal.ai)",
    )

    inference_provider: str | None = Field(
        default=None,
        description="Hugging Face inference provider override (X-Provider header)",
    )

    is_default_profile: bool = Field(
        default=False,
        description="True when an unregistered identifier was mapped to the family default",
    )


class TargetRegistry:
    """
    Central registry of all known targets and the fallback map.

    The registry follows a singleton-like pattern where target definitions
    are loaded once and reused throughout the application lifecycle.

    Attributes:
        _targets: Dictionary mapping target IDs to their metadata
        _fallbacks: Dictionary mapping a primary target to its alternate
    """

    def __init__(self) -> None:
        self._targets: dict[str, TargetMetadata] = {}
        self._fallbacks: dict[str, str] = {}
        self._initialize_chat_targets()
        self._initialize_fal_targets()
        self._initialize_huggingface_targets()
        self._initialize_fallback_map()

    def _initialize_chat_targets(self) -> None:
        """Register OpenRouter chat models (endpoint = OpenRouter model slug)."""
        chat_models = [
            ("openai/gpt-4o-mini", "GPT-4o Mini", "OpenAI"),
            ("deepseek-ai/deepseek-coder-33b-instruct", "DeepSeek Coder 33B", "DeepSeek"),
            ("anthropic/claude-3-5-sonnet", "Claude 3.5 Sonnet", "Anthropic"),
            ("meta-llama/llama-3.2-90b-vision-instruct", "Llama 3.2 90B Vision", "Meta"),
            ("microsoft/wizardlm-2-8x22b", "WizardLM-2 8x22B", "Microsoft"),
            ("google/gemma-2-27b-it", "Gemma 2 27B", "Google"),
            ("qwen/qwen-2.5-72b-instruct", "Qwen 2.5 72B", "Alibaba"),
            ("mistralai/mixtral-8x22b-instruct", "Mixtral 8x22B", "Mistral AI"),
        ]
        for target_id, name, vendor in chat_models:
            self._register(
                TargetMetadata(
                    target_id=target_id,
                    display_name=name,
                    family=ProviderFamily.CHAT,
                    modality=Modality.TEXT,
                    vendor=vendor,
                    endpoint=target_id,
                )
            )

    def _initialize_fal_targets(self) -> None:
        """Register fal.ai image models with their run endpoints."""
        fal_models = [
            ("fal-ai/flux-pro/v1.1", "FLUX.1 [pro]", "Black Forest Labs", "fal-ai/flux-pro/v1.1"),
            ("fal-ai/flux-dev", "FLUX.1 [dev]", "Black Forest Labs", "fal-ai/flux/dev"),
            (
                "fal-ai/stable-diffusion-v3-medium",
                "Stable Diffusion 3 Medium",
                "Stability AI",
                "fal-ai/stable-diffusion-v3-medium",
            ),
            ("fal-ai/playground-v2.5", "Playground v2.5", "Playground AI", "fal-ai/playground-v2.5"),
            ("fal-ai/recraft-v3", "Recraft V3", "Recraft", "fal-ai/recraft-v3"),
        ]
        for target_id, name, vendor, endpoint in fal_models:
            self._register(
                TargetMetadata(
                    target_id=target_id,
                    display_name=name,
                    family=ProviderFamily.FAL,
                    modality=Modality.IMAGE,
                    vendor=vendor,
                    endpoint=endpoint,
                    inference_steps=_fal_steps_for(target_id),
                    image_size=FAL_IMAGE_SIZE,
                )
            )

    def _initialize_huggingface_targets(self) -> None:
        """Register Hugging Face image models with steps and resolution."""

        self._register(
            TargetMetadata(
                target_id="hf-black-forest-labs/flux.1-dev",
                display_name="FLUX.1 [HF]",
                family=ProviderFamily.HUGGINGFACE,
                modality=Modality.IMAGE,
                vendor="Black Forest Labs",
                endpoint="black-forest-labs/FLUX.1-dev",
                inference_steps=4,
                width=1024,
                height=1024,
            )
        )

        self._register(
            TargetMetadata(
                target_id="hf-stabilityai/stable-diffusion-xl-base-1.0",
                display_name="SDXL Base 1.0 [HF]",
                family=ProviderFamily.HUGGINGFACE,
                modality=Modality.IMAGE,
                vendor="Stability AI",
                endpoint=DEFAULT_HUGGINGFACE_MODEL,
                inference_steps=25,
                width=1024,
                height=1024,
            )
        )

        self._register(
            TargetMetadata(
                target_id="hf-runwayml/stable-diffusion-v1-5",
                display_name="SD v1.5 [HF]",
                family=ProviderFamily.HUGGINGFACE,
                modality=Modality.IMAGE,
                vendor="RunwayML",
                endpoint="runwayml/stable-diffusion-v1-5",
                inference_steps=25,
                width=512,  # SD 1.5 was trained at 512px
                height=512,
            )
        )

        self._register(
            TargetMetadata(
                target_id="hf-compvis/stable-diffusion-v1-4",
                display_name="SDXL Base 1.0 [Nebius]",
                family=ProviderFamily.HUGGINGFACE,
                modality=Modality.IMAGE,
                vendor="Nebius",
                endpoint=DEFAULT_HUGGINGFACE_MODEL,
                inference_steps=25,
                width=1024,
                height=1024,
                inference_provider="nebius",
            )
        )

    def _initialize_fallback_map(self) -> None:
        """Map fal.ai targets to their closest Hugging Face equivalent."""
        self._fallbacks = {
            "fal-ai/flux-pro/v1.1": "hf-black-forest-labs/flux.1-dev",
            "fal-ai/flux-dev": "hf-black-forest-labs/flux.1-dev",
            "fal-ai/stable-diffusion-v3-medium": "hf-stabilityai/stable-diffusion-xl-base-1.0",
            "fal-ai/playground-v2.5": "hf-runwayml/stable-diffusion-v1-5",
            "fal-ai/recraft-v3": "hf-stabilityai/stable-diffusion-xl-base-1.0",
        }

    def _register(self, target: TargetMetadata) -> None:
        """Register a target in the registry."""
        self._targets[target.target_id] = target

    def get_target(self, target_id: str) -> TargetMetadata | None:
        """
        Retrieve registered target metadata by ID.

        Args:
            target_id: The identifier callers use for the model

        Returns:
            TargetMetadata if registered, None otherwise
        """
        return self._targets.get(target_id)

    def profile_for(self, target_id: str, family: ProviderFamily) -> TargetMetadata:
        """
        Return call parameters for a target, never failing on unknown IDs.

        Registered targets return their own metadata. Unregistered chat
        identifiers are passed to OpenRouter as-is; unregistered image
        identifiers get the family's default endpoint and defaults.

        Args:
            target_id: The identifier callers use for the model
            family: The provider family the identifier was resolved to

        Returns:
            TargetMetadata describing how to call the target
        """
        known = self._targets.get(target_id)
        if known is not None and known.family == family:
            return known

        match family:
            case ProviderFamily.FAL:
                return TargetMetadata(
                    target_id=target_id,
                    display_name=target_id,
                    family=family,
                    modality=Modality.IMAGE,
                    endpoint=DEFAULT_FAL_ENDPOINT,
                    inference_steps=_fal_steps_for(target_id),
                    image_size=FAL_IMAGE_SIZE,
                    is_default_profile=True,
                )
            case ProviderFamily.HUGGINGFACE:
                return TargetMetadata(
                    target_id=target_id,
                    display_name=target_id,
                    family=family,
                    modality=Modality.IMAGE,
                    endpoint=DEFAULT_HUGGINGFACE_MODEL,
                    inference_steps=25,
                    width=1024,
                    height=1024,
                    is_default_profile=True,
                )
            case _:
                return TargetMetadata(
                    target_id=target_id,
                    display_name=target_id,
                    family=ProviderFamily.CHAT,
                    modality=Modality.TEXT,
                    endpoint=target_id,
                    is_default_profile=known is None,
                )

    def get_fallback(self, target_id: str) -> str | None:
        """
        Look up the alternate target for a primary target.

        Args:
            target_id: The primary target identifier

        Returns:
            The fallback target identifier, or None if no entry exists
        """
        return self._fallbacks.get(target_id)

    def get_fallback_map(self) -> dict[str, str]:
        """
        Return the primary-to-fallback mapping.

        Returns:
            Copy of the fallback map
        """
        return self._fallbacks.copy()

    def list_targets(self, family: ProviderFamily | None = None) -> list[TargetMetadata]:
        """
        Return registered targets, optionally filtered by family.

        Args:
            family: Only return targets of this family when given

        Returns:
            List of TargetMetadata instances
        """
        if family is None:
            return list(self._targets.values())
        return [t for t in self._targets.values() if t.family == family]

    def get_target_ids(self) -> list[str]:
        """
        Return all registered target IDs.

        Returns:
            List of target ID strings
        """
        return list(self._targets.keys())


def _fal_steps_for(target_id: str) -> int:
    """FLUX models are distilled for very few steps; everything else uses 20."""
    return FLUX_INFERENCE_STEPS if "flux" in target_id else FAL_INFERENCE_STEPS


_registry_instance: TargetRegistry | None = None


def get_target_registry() -> TargetRegistry:
    """
    Get the global target registry instance.

    Uses lazy initialization to create the registry only when needed.
    This ensures consistent access to target metadata throughout the application.

    Returns:
        The singleton TargetRegistry instance
    """
    global _registry_instance
    if _registry_instance is None:
        _registry_instance = TargetRegistry()
    return _registry_instance
