"""Gemini `generateContent` image client (synchronous provider).

Processing flow:
    1. Require the Google credential selected in the `GenerationConfig`.
    2. Build `contents[0].parts` from inline base64 reference images followed
       by one trailing text part (prompt plus a fixed photorealism suffix).
    3. POST once to `{model}:generateContent` and parse the JSON response.
    4. Inspect `promptFeedback` and `candidates[0].finishReason` for
       moderation stops.
    5. Return the first inline image payload as a data URI.

Error handling strategy:
    - Missing credential -> `MissingCredential`.
    - Transport failure, non-2xx status or non-JSON body -> `ProviderRequestFailed`.
    - Moderation stop -> `SafetyBlocked`.
    - Successful response without an image -> `None` (soft "no result"; the
      caller decides on a fallback).

Determinism:
    Request assembly is deterministic for fixed inputs/configuration. Output
    remains provider dependent.

Security considerations:
    The API key travels in the `x-goog-api-key` header and is never logged.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Sequence

import httpx

from vca.core.errors import MissingCredential, ProviderRequestFailed, SafetyBlocked
from vca.image.reference import ImageReference, guess_mime_type
from vca.settings.provider_config import GEMINI_URL_TEMPLATE, GenerationConfig


logger = logging.getLogger(__name__)

COMPOSITE_SUFFIX = (
    "\n\nCRITICAL: Create a photorealistic composite showing the plant naturally planted "
    "inside the container. Preserve all original textures, colors, and lighting. "
    "The result must look like a single photograph."
)

GENERATION_CONFIG = {
    "temperature": 0.4,
    "topP": 0.8,
    "topK": 40,
    "responseModalities": ["IMAGE"],
}

# Finish reasons that mean the provider refused to produce content.
SAFETY_FINISH_REASONS = frozenset(
    {"SAFETY", "RECITATION", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII", "IMAGE_SAFETY"}
)


def build_gemini_payload(prompt: str, reference_images: Sequence[bytes]) -> dict:
    """Assemble the `generateContent` request body.

    Images come first, in the given order, followed by the text part.
    """
    parts: list[dict[str, Any]] = []
    for image in reference_images:
        parts.append({
            "inline_data": {
                "mime_type": guess_mime_type(image),
                "data": base64.b64encode(image).decode("ascii"),
            }
        })
    parts.append({"text": f"{prompt}{COMPOSITE_SUFFIX}"})

    return {
        "contents": [{"parts": parts}],
        "generationConfig": dict(GENERATION_CONFIG),
    }


def extract_image(data: dict) -> ImageReference | None:
    """Parse a `generateContent` response body.

    Returns:
        Data-URI reference for the first inline image, or `None`.

    Raises:
        SafetyBlocked: When the prompt or the candidate was blocked.
    """
    feedback = data.get("promptFeedback") or {}
    block_reason = feedback.get("blockReason")
    if block_reason:
        raise SafetyBlocked(str(block_reason))

    candidates = data.get("candidates") or []
    if not candidates:
        return None

    candidate = candidates[0]
    finish_reason = candidate.get("finishReason")
    if finish_reason in SAFETY_FINISH_REASONS:
        raise SafetyBlocked(finish_reason)
    if finish_reason and finish_reason != "STOP":
        logger.warning("Gemini stopped early: %s", finish_reason)

    content = candidate.get("content") or {}
    for part in content.get("parts") or []:
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return ImageReference(f"data:{mime_type};base64,{inline['data']}")
        if part.get("text"):
            logger.info("Gemini text part: %s", part["text"][:200])

    return None


async def send_gemini_request(
    prompt: str,
    reference_images: Sequence[bytes],
    config: GenerationConfig,
    client: httpx.AsyncClient,
) -> ImageReference | None:
    """Run one Gemini image-generation round trip.

    Args:
        prompt: Staging prompt text.
        reference_images: Raw product/container image bytes.
        config: Settings snapshot (model id and credential).
        client: Open HTTP client.

    Returns:
        Generated image reference, or `None` when the response held no image.
    """
    if not config.google_api_key:
        raise MissingCredential(
            f"Google API key not configured for provider '{config.provider}'."
        )

    url = GEMINI_URL_TEMPLATE.format(model=config.model_id)
    headers = {
        "Content-Type": "application/json",
        "x-goog-api-key": config.google_api_key,
    }
    payload = build_gemini_payload(prompt, reference_images)

    logger.info(
        "Calling Gemini model=%s images=%d", config.model_id, len(reference_images)
    )

    try:
        response = await client.post(url, json=payload, headers=headers)
    except httpx.RequestError as exc:
        raise ProviderRequestFailed(f"Gemini request failed: {exc}") from exc

    if response.status_code != 200:
        raise ProviderRequestFailed(
            f"Gemini API error ({response.status_code}): {response.text[:500]}",
            status_code=response.status_code,
        )

    try:
        data = response.json()
    except ValueError as exc:
        raise ProviderRequestFailed("Gemini returned a non-JSON response.") from exc

    image = extract_image(data if isinstance(data, dict) else {})
    if image is None:
        logger.warning("Gemini returned no image in response")
    return image
