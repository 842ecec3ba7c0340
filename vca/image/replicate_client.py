"""Replicate predictions client (asynchronous create-then-poll provider).

Processing flow:
    1. Require the Replicate API token from the `GenerationConfig`.
    2. Build the prediction input from prompt, reference images (as data
       URIs), aspect ratio and output format; "pro" model variants also get
       resolution and safety-filter level.
    3. Create the prediction job.
    4. Poll the job once per `poll_interval` seconds, up to `max_attempts`.
    5. Return the output URL once the job succeeds.

Error handling strategy:
    - Missing token -> `MissingCredential`.
    - Create/poll transport failures, non-2xx status or a body that is not a
      JSON object -> `ProviderRequestFailed`.
    - `failed` / `canceled` job -> `ProviderRequestFailed` with provider message.
    - Attempt budget exhausted -> `ProviderTimeout`.
    - `succeeded` without output -> `None` (soft "no result").

Concurrency:
    Each poll tick is an `await` on `asyncio.sleep` plus one GET, so the
    enclosing task can be cancelled between ticks. Only the last observed
    status is kept.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

import httpx

from vca.core.errors import MissingCredential, ProviderRequestFailed, ProviderTimeout
from vca.image.reference import ImageReference, to_data_uri
from vca.settings.provider_config import REPLICATE_API_BASE, GenerationConfig


logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 1.0
MAX_POLL_ATTEMPTS = 60

TERMINAL_STATUSES = ("succeeded", "failed", "canceled")


def build_replicate_input(
    prompt: str,
    reference_images: Sequence[bytes],
    config: GenerationConfig,
) -> dict[str, Any]:
    """Assemble the `input` object of a prediction request."""
    payload: dict[str, Any] = {
        "prompt": prompt,
        "image_input": [to_data_uri(image) for image in reference_images],
        "aspect_ratio": config.replicate_aspect_ratio,
        "output_format": config.replicate_output_format,
    }
    if config.is_pro_variant:
        payload["resolution"] = config.replicate_resolution
        payload["safety_filter_level"] = config.replicate_safety_filter
    return payload


def _first_output(output: Any) -> str | None:
    if isinstance(output, list):
        return output[0] if output else None
    return output or None


async def _request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    headers: dict[str, str],
    json_body: dict | None = None,
) -> httpx.Response:
    try:
        return await client.request(method, url, headers=headers, json=json_body)
    except httpx.RequestError as exc:
        raise ProviderRequestFailed(f"Replicate request failed: {exc}") from exc


def _json_object(response: httpx.Response, what: str) -> dict:
    try:
        data = response.json()
    except ValueError as exc:
        raise ProviderRequestFailed(f"Replicate returned a non-JSON {what} response.") from exc
    if not isinstance(data, dict):
        raise ProviderRequestFailed(f"Replicate returned an unexpected {what} response.")
    return data


async def send_replicate_request(
    prompt: str,
    reference_images: Sequence[bytes],
    config: GenerationConfig,
    client: httpx.AsyncClient,
    poll_interval: float = POLL_INTERVAL_SECONDS,
    max_attempts: int = MAX_POLL_ATTEMPTS,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> ImageReference | None:
    """Create a Replicate prediction and poll it to completion.

    Args:
        prompt: Staging prompt text.
        reference_images: Raw product/container image bytes.
        config: Settings snapshot; `model_id` carries the `replicate:` prefix.
        client: Open HTTP client.
        poll_interval: Seconds between status checks.
        max_attempts: Poll budget before `ProviderTimeout`.
        sleep: Awaitable delay used between polls.

    Returns:
        Remote URL reference of the generated image, or `None`.
    """
    if not config.replicate_api_key:
        raise MissingCredential("Replicate API token not configured.")

    model_name = config.replicate_model_name
    headers = {
        "Authorization": f"Bearer {config.replicate_api_key}",
        "Content-Type": "application/json",
    }
    body = {"input": build_replicate_input(prompt, reference_images, config)}

    logger.info(
        "Creating Replicate prediction model=%s pro=%s images=%d",
        model_name,
        config.is_pro_variant,
        len(reference_images),
    )
    create_response = await _request(
        client, "POST", f"{REPLICATE_API_BASE}/models/{model_name}/predictions", headers, body
    )
    if create_response.status_code not in (200, 201, 202):
        raise ProviderRequestFailed(
            f"Replicate API error ({create_response.status_code}): {create_response.text[:500]}",
            status_code=create_response.status_code,
        )

    prediction_id = _json_object(create_response, "create").get("id")
    if not prediction_id:
        raise ProviderRequestFailed("Replicate did not return a prediction id.")
    logger.info("Prediction created: %s", prediction_id)

    status_url = f"{REPLICATE_API_BASE}/predictions/{prediction_id}"
    for attempt in range(max_attempts):
        await sleep(poll_interval)

        status_response = await _request(client, "GET", status_url, headers)
        if status_response.status_code == 429:
            logger.warning("Replicate rate limited poll %d/%d", attempt + 1, max_attempts)
            continue
        if status_response.status_code != 200:
            raise ProviderRequestFailed(
                f"Replicate status error ({status_response.status_code}): "
                f"{status_response.text[:500]}",
                status_code=status_response.status_code,
            )

        status_data = _json_object(status_response, "status")
        status = status_data.get("status")
        logger.info("Prediction %s status=%s (%d/%d)", prediction_id, status, attempt + 1, max_attempts)

        if status == "succeeded":
            image_url = _first_output(status_data.get("output"))
            if not image_url:
                logger.warning("Replicate succeeded without output for %s", prediction_id)
                return None
            return ImageReference(image_url)
        if status == "failed":
            raise ProviderRequestFailed(
                f"Replicate generation failed: {status_data.get('error') or 'unknown error'}"
            )
        if status == "canceled":
            raise ProviderRequestFailed("Replicate generation was canceled.")

    raise ProviderTimeout(
        f"Replicate generation timed out after {max_attempts} status checks."
    )
