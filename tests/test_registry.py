"""
Target Registry Tests

Validates registered targets, per-model call profiles, default profiles for
unknown identifiers, and the fallback map.
"""

from arena.registry.models import (
    DEFAULT_FAL_ENDPOINT,
    DEFAULT_HUGGINGFACE_MODEL,
    Modality,
    ProviderFamily,
    get_target_registry,
)


class TestRegisteredTargets:
    """Tests for the static target tables."""

    def test_singleton(self):
        assert get_target_registry() is get_target_registry()

    def test_families_are_populated(self):
        registry = get_target_registry()

        assert len(registry.list_targets(ProviderFamily.CHAT)) >= 1
        assert len(registry.list_targets(ProviderFamily.FAL)) == 5
        assert len(registry.list_targets(ProviderFamily.HUGGINGFACE)) == 4

    def test_list_targets_filter(self):
        registry = get_target_registry()
        fal = registry.list_targets(ProviderFamily.FAL)

        assert all(t.family == ProviderFamily.FAL for t in fal)
        assert all(t.modality == Modality.IMAGE for t in fal)
        assert len(registry.list_targets()) == len(registry.get_target_ids())

    def test_fal_flux_dev_endpoint(self):
        target = get_target_registry().get_target("fal-ai/flux-dev")

        assert target.endpoint == "fal-ai/flux/dev"
        assert target.inference_steps == 4
        assert target.image_size == "landscape_4_3"

    def test_fal_non_flux_steps(self):
        target = get_target_registry().get_target("fal-ai/recraft-v3")

        assert target.endpoint == "fal-ai/recraft-v3"
        assert target.inference_steps == 20

    def test_huggingface_profiles(self):
        registry = get_target_registry()

        flux = registry.get_target("hf-black-forest-labs/flux.1-dev")
        assert flux.endpoint == "black-forest-labs/FLUX.1-dev"
        assert (flux.width, flux.height) == (1024, 1024)

        sd15 = registry.get_target("hf-runwayml/stable-diffusion-v1-5")
        assert (sd15.width, sd15.height) == (512, 512)
        assert sd15.inference_steps == 25

    def test_nebius_provider_override(self):
        target = get_target_registry().get_target("hf-compvis/stable-diffusion-v1-4")

        assert target.inference_provider == "nebius"
        assert target.endpoint == DEFAULT_HUGGINGFACE_MODEL

    def test_unknown_target(self):
        assert get_target_registry().get_target("nope") is None


class TestProfileFor:
    """profile_for() must return call parameters for any identifier."""

    def test_registered_target_returns_itself(self):
        registry = get_target_registry()
        profile = registry.profile_for("fal-ai/flux-dev", ProviderFamily.FAL)

        assert profile is registry.get_target("fal-ai/flux-dev")
        assert not profile.is_default_profile

    def test_unknown_fal_flux_uses_default_endpoint(self):
        profile = get_target_registry().profile_for("fal-ai/flux-new", ProviderFamily.FAL)

        assert profile.endpoint == DEFAULT_FAL_ENDPOINT
        assert profile.inference_steps == 4
        assert profile.is_default_profile

    def test_unknown_fal_non_flux_steps(self):
        profile = get_target_registry().profile_for("fal-ai/other", ProviderFamily.FAL)

        assert profile.endpoint == DEFAULT_FAL_ENDPOINT
        assert profile.inference_steps == 20

    def test_unknown_huggingface_uses_sdxl(self):
        profile = get_target_registry().profile_for("hf-unknown/model", ProviderFamily.HUGGINGFACE)

        assert profile.endpoint == DEFAULT_HUGGINGFACE_MODEL
        assert profile.inference_steps == 25
        assert (profile.width, profile.height) == (1024, 1024)
        assert profile.inference_provider is None
        assert profile.is_default_profile

    def test_unknown_chat_passes_through(self):
        profile = get_target_registry().profile_for("vendor/new-model", ProviderFamily.CHAT)

        assert profile.endpoint == "vendor/new-model"
        assert profile.modality == Modality.TEXT


class TestFallbackMap:
    def test_every_fallback_is_registered_huggingface_target(self):
        registry = get_target_registry()

        for primary, fallback in registry.get_fallback_map().items():
            assert registry.get_target(primary).family == ProviderFamily.FAL
            assert registry.get_target(fallback).family == ProviderFamily.HUGGINGFACE

    def test_fallback_map_is_a_copy(self):
        registry = get_target_registry()
        mapping = registry.get_fallback_map()
        mapping["fal-ai/flux-dev"] = "changed"

        assert registry.get_fallback("fal-ai/flux-dev") == "hf-black-forest-labs/flux.1-dev"
