"""
Tests for `ImageReference`.
"""

import httpx
import pytest

from vca.image.reference import ImageKind, ImageReference, guess_mime_type, to_data_uri

from tests.conftest import PNG_BYTES


class TestImageReference:

    def test_kinds(self):
        assert ImageReference("data:image/png;base64,QUJD").kind is ImageKind.DATA_URI
        assert ImageReference("https://x/img.png").kind is ImageKind.URL
        assert ImageReference.error().kind is ImageKind.SENTINEL
        assert ImageReference.error().is_error

    def test_mime_type(self):
        assert ImageReference("data:image/webp;base64,QUJD").mime_type == "image/webp"
        assert ImageReference("https://x/img.png").mime_type is None

    def test_from_bytes_sniffs_type(self):
        ref = ImageReference.from_bytes(PNG_BYTES)
        assert ref.uri.startswith("data:image/png;base64,")

    def test_guess_mime_type_defaults_to_jpeg(self):
        assert guess_mime_type(b"GIF89a....") == "image/gif"
        assert guess_mime_type(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"
        assert guess_mime_type(b"\xff\xd8\xff") == "image/jpeg"

    def test_coerce(self):
        ref = ImageReference("https://x/a.png")
        assert ImageReference.coerce(ref) is ref
        assert ImageReference.coerce("https://x/a.png") == ref


class TestFetchBytes:

    async def test_data_uri(self):
        assert await ImageReference(to_data_uri(PNG_BYTES)).fetch_bytes() == PNG_BYTES

    async def test_url_through_client(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"jpeg"))
        async with httpx.AsyncClient(transport=transport) as client:
            assert await ImageReference("https://x/a.jpg").fetch_bytes(client) == b"jpeg"

    async def test_sentinel_cannot_be_fetched(self):
        with pytest.raises(ValueError):
            await ImageReference.error().fetch_bytes()

    @pytest.mark.parametrize(
        "uri",
        ["data:image/png,plain", "data:image/png;base64,", "data:image/png;base64,@@@"],
    )
    async def test_malformed_data_uri(self, uri):
        with pytest.raises(ValueError):
            await ImageReference(uri).fetch_bytes()
