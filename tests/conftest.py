"""Shared fixtures: sample records and in-process fakes for the dispatcher and notifier."""

import asyncio

import httpx
import pytest

from vca.core.types import ContainerSpec, ProductSpec, Topping
from vca.image.reference import ImageReference
from vca.settings.provider_config import GenerationConfig


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


class RecordingNotifier:
    """Notifier that keeps every notice for assertions."""

    def __init__(self):
        self.notices = []

    def notify(self, message, level="info", duration_ms=None):
        self.notices.append((level, message))

    def levels(self):
        return [level for level, _ in self.notices]

    def messages(self):
        return [message for _, message in self.notices]


class FakeDispatcher:
    """Dispatcher double returning queued outcomes (references, None or exceptions)."""

    def __init__(self, outcomes=(), broken_urls=()):
        self.outcomes = list(outcomes)
        self.broken_urls = set(broken_urls)
        self.calls = []
        self.fetches = []

    async def generate(self, prompt, reference_images, config):
        self.calls.append((prompt, list(reference_images), config))
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def fetch_reference(self, reference):
        uri = ImageReference.coerce(reference).uri
        self.fetches.append(uri)
        if uri in self.broken_urls:
            raise httpx.ConnectError("unreachable")
        return b"bytes:" + uri.encode()


class BlockingDispatcher(FakeDispatcher):
    """Dispatcher whose `generate` waits until cancelled."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.cancelled = False

    async def generate(self, prompt, reference_images, config):
        self.calls.append((prompt, list(reference_images), config))
        self.started.set()
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled = True
            raise


@pytest.fixture
def product():
    return ProductSpec(
        id="p-1",
        name="Gum Tree",
        height_cm=180,
        pot_height_cm=15,
        main_image="https://cdn.example.com/gum-tree.jpg",
    )


@pytest.fixture
def container():
    return ContainerSpec(
        id="c-1",
        name="White Textured Pot",
        height_cm=30,
        diameter_cm=31,
        topping=Topping.WHITE_PEBBLES,
        image_url="https://cdn.example.com/white-pot.jpg",
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def gemini_config():
    return GenerationConfig(model_id="gemini-3-pro-image-preview", google_api_key="test-key")
