"""Image generation dispatcher used by the staging workflow.

Role in pipeline:
    - Receives prompt, reference image bytes and a `GenerationConfig` snapshot.
    - Selects the provider path from the configured model id: the
      `replicate:` prefix routes to the create-then-poll client, everything
      else to the Gemini client.
    - Returns an `ImageReference` (or `None` for a soft "no result").

Error handling strategy:
    Provider exceptions (`vca.core.errors`) propagate unchanged; the workflow
    owns the fallback policy.

State:
    The dispatcher keeps no mutable state between calls. Each call opens its
    own `httpx.AsyncClient`; an injected transport is shared for tests.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

import httpx

from vca.image.client import send_gemini_request
from vca.image.reference import DEFAULT_FETCH_TIMEOUT, ImageReference
from vca.image.replicate_client import (
    MAX_POLL_ATTEMPTS,
    POLL_INTERVAL_SECONDS,
    send_replicate_request,
)
from vca.settings.provider_config import GenerationConfig


logger = logging.getLogger(__name__)


class ImageGenerationDispatcher:
    """Routes generation requests to the synchronous or asynchronous provider."""

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_poll_attempts: int = MAX_POLL_ATTEMPTS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.sleep = sleep

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=self.transport,
        )

    async def generate(
        self,
        prompt: str,
        reference_images: Sequence[bytes],
        config: GenerationConfig,
    ) -> ImageReference | None:
        """Generate one image with the provider selected by `config.model_id`."""
        logger.debug(
            "Dispatching model=%s to %s",
            config.model_id,
            "replicate" if config.is_replicate else "gemini",
        )
        async with self._client(config.request_timeout) as client:
            if config.is_replicate:
                return await send_replicate_request(
                    prompt,
                    reference_images,
                    config,
                    client,
                    poll_interval=self.poll_interval,
                    max_attempts=self.max_poll_attempts,
                    sleep=self.sleep,
                )
            return await send_gemini_request(prompt, reference_images, config, client)

    async def fetch_reference(self, reference: ImageReference | str) -> bytes:
        """Download (or decode) a reference image through the same transport."""
        reference = ImageReference.coerce(reference)
        async with self._client(DEFAULT_FETCH_TIMEOUT) as client:
            return await reference.fetch_bytes(client)
