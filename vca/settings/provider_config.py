"""Provider/runtime configuration for image generation.

Architectural role:
    Centralizes provider endpoints, settings-store keys and credential lookup
    for `vca.image.service` and the provider clients.

Resolution order for every setting:
    1. Value stored in the settings store.
    2. Environment variable named after the upper-cased key (for example
       `google_api_key` -> `GOOGLE_API_KEY`), including values from `.env`.
    3. Built-in default.

Determinism:
    `load_generation_config` returns a frozen snapshot. The workflow takes one
    snapshot per generation call and passes it to the dispatcher, so a call
    never observes a settings change halfway through.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from dotenv import load_dotenv

from vca.settings.store import SettingsStore

load_dotenv()


# Settings-store keys.
KEY_PROVIDER = "ai_provider"
KEY_GOOGLE_API_KEY = "google_api_key"
KEY_GOOGLE_VERTEX_KEY = "google_vertex_key"
KEY_IMAGE_MODEL = "ai_image_gen_model"
KEY_REPLICATE_API_KEY = "replicate_api_key"
KEY_REPLICATE_ASPECT_RATIO = "replicate_aspect_ratio"
KEY_REPLICATE_OUTPUT_FORMAT = "replicate_output_format"
KEY_REPLICATE_RESOLUTION = "replicate_resolution"
KEY_REPLICATE_SAFETY_FILTER = "replicate_safety_filter"
KEY_PROMPT_TEMPLATE = "vca_prompt_template"

PROVIDER_AI_STUDIO = "ai_studio"
PROVIDER_VERTEX_AI = "vertex_ai"

DEFAULT_IMAGE_MODEL = "gemini-3-pro-image-preview"
DEFAULT_ASPECT_RATIO = "match_input_image"
DEFAULT_OUTPUT_FORMAT = "jpg"
DEFAULT_RESOLUTION = "2K"
DEFAULT_SAFETY_FILTER = "block_only_high"

# Model ids carrying this prefix are served by the create-then-poll provider.
REPLICATE_MODEL_PREFIX = "replicate:"
# Replicate models whose ids contain this marker accept resolution/safety params.
REPLICATE_PRO_MARKER = "nano-banana-pro"

GEMINI_API_BASE = os.getenv(
    "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta/models"
).rstrip("/")
GEMINI_URL_TEMPLATE = GEMINI_API_BASE + "/{model}:generateContent"

REPLICATE_API_BASE = os.getenv("REPLICATE_API_BASE", "https://api.replicate.com/v1").rstrip("/")

REQUEST_TIMEOUT_SECONDS = float(os.getenv("VCA_REQUEST_TIMEOUT_SECONDS", "120"))


def resolve_setting(store: SettingsStore | None, key: str, default: Any = None) -> Any:
    """Resolve one setting from the store, then the environment, then `default`.

    Empty strings count as missing.
    """
    if store is not None:
        value = store.get(key)
        if value not in (None, ""):
            return value
    env_value = os.getenv(key.upper())
    if env_value:
        return env_value
    return default


def model_display_name(model_id: str | None) -> str:
    """Human-readable label for a configured model id."""
    model_id = model_id or DEFAULT_IMAGE_MODEL
    if "nano-banana-pro" in model_id:
        return "Nano Banana Pro"
    if "nano-banana" in model_id:
        return "Nano Banana"
    if "gemini-2.5" in model_id:
        return "Gemini 2.5 Flash"
    return "Gemini 3 Pro"


@dataclass(frozen=True)
class GenerationConfig:
    """Immutable settings snapshot for one generation call.

    Attributes:
        provider: Google credential source (`ai_studio` or `vertex_ai`).
        model_id: Selected image model; the `replicate:` prefix selects the
            asynchronous provider.
        google_api_key: Credential for the Gemini endpoint, already selected
            according to `provider`.
        replicate_api_key: Bearer token for Replicate.
    """

    model_id: str = DEFAULT_IMAGE_MODEL
    provider: str = PROVIDER_AI_STUDIO
    google_api_key: str | None = None
    replicate_api_key: str | None = None
    replicate_aspect_ratio: str = DEFAULT_ASPECT_RATIO
    replicate_output_format: str = DEFAULT_OUTPUT_FORMAT
    replicate_resolution: str = DEFAULT_RESOLUTION
    replicate_safety_filter: str = DEFAULT_SAFETY_FILTER
    request_timeout: float = REQUEST_TIMEOUT_SECONDS

    @property
    def is_replicate(self) -> bool:
        return self.model_id.startswith(REPLICATE_MODEL_PREFIX)

    @property
    def replicate_model_name(self) -> str:
        """Model path without prefix, e.g. `google/nano-banana`."""
        return self.model_id[len(REPLICATE_MODEL_PREFIX):] if self.is_replicate else self.model_id

    @property
    def is_pro_variant(self) -> bool:
        return REPLICATE_PRO_MARKER in self.replicate_model_name

    @property
    def display_name(self) -> str:
        return model_display_name(self.model_id)


def load_generation_config(store: SettingsStore | None) -> GenerationConfig:
    """Build a `GenerationConfig` snapshot from the settings store."""
    provider = resolve_setting(store, KEY_PROVIDER, PROVIDER_AI_STUDIO)
    google_key_name = KEY_GOOGLE_VERTEX_KEY if provider == PROVIDER_VERTEX_AI else KEY_GOOGLE_API_KEY

    return GenerationConfig(
        model_id=resolve_setting(store, KEY_IMAGE_MODEL, DEFAULT_IMAGE_MODEL),
        provider=provider,
        google_api_key=resolve_setting(store, google_key_name),
        replicate_api_key=resolve_setting(store, KEY_REPLICATE_API_KEY),
        replicate_aspect_ratio=resolve_setting(store, KEY_REPLICATE_ASPECT_RATIO, DEFAULT_ASPECT_RATIO),
        replicate_output_format=resolve_setting(store, KEY_REPLICATE_OUTPUT_FORMAT, DEFAULT_OUTPUT_FORMAT),
        replicate_resolution=resolve_setting(store, KEY_REPLICATE_RESOLUTION, DEFAULT_RESOLUTION),
        replicate_safety_filter=resolve_setting(store, KEY_REPLICATE_SAFETY_FILTER, DEFAULT_SAFETY_FILTER),
    )
