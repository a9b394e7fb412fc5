"""
QrBites Maintenance - Cloudinary Client Tests

Tests for locator classification, public id handling, request signing and the
upload/destroy calls. Uses httpx.MockTransport to avoid hitting Cloudinary.
"""

import hashlib

import httpx
import pytest

from services.maintenance.cloudinary_client import (
    CloudinaryClient, RemoteDescriptor, build_public_id, extract_public_id,
    is_remote_asset, sign_params,
)
from services.maintenance.exceptions import (
    AssetFileNotFoundError, TransferError, UploadError,
)


# =============================================================================
# MOCK DATA
# =============================================================================

REMOTE_LOGO = "https://res.cloudinary.com/qrbites/image/upload/v1712345678/qrbites/restaurants/logo.png"

MOCK_UPLOAD_RESPONSE = {
    "public_id": "qrbites/restaurants/restaurant_abc_1700000000000",
    "secure_url": "https://res.cloudinary.com/qrbites/image/upload/v1700000000/qrbites/restaurants/restaurant_abc_1700000000000.jpg",
    "url": "http://res.cloudinary.com/qrbites/image/upload/v1700000000/qrbites/restaurants/restaurant_abc_1700000000000.jpg",
    "width": 1200,
    "height": 800,
    "format": "jpg",
    "bytes": 48213,
}


class RecordingHandler:
    """MockTransport handler that records requests and replies with a fixed response."""

    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.payload = payload if payload is not None else MOCK_UPLOAD_RESPONSE
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.payload)


def make_client(tmp_path, handler=None, **kwargs):
    transport = httpx.MockTransport(handler or RecordingHandler())
    return CloudinaryClient(
        cloud_name=kwargs.pop("cloud_name", "qrbites"),
        api_key=kwargs.pop("api_key", "key-123"),
        api_secret=kwargs.pop("api_secret", "secret-456"),
        asset_base_dir=tmp_path,
        transport=transport,
        **kwargs,
    )


def write_upload(tmp_path, relative="uploads/restaurants/abc.jpg", content=b"\xff\xd8\xff jpeg"):
    path = tmp_path / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

class TestUtilityFunctions:
    """Tests for module-level helpers."""

    def test_is_remote_asset(self):
        assert is_remote_asset(REMOTE_LOGO) is True
        assert is_remote_asset("/uploads/restaurants/abc.jpg") is False
        assert is_remote_asset("") is False
        assert is_remote_asset(None) is False

    def test_extract_public_id_with_version(self):
        assert extract_public_id(REMOTE_LOGO) == "qrbites/restaurants/logo"

    def test_extract_public_id_with_transformation(self):
        url = "https://res.cloudinary.com/qrbites/image/upload/c_limit,w_1200/v99/qrbites/menus/m1.webp"
        assert extract_public_id(url) == "qrbites/menus/m1"

    def test_extract_public_id_without_version(self):
        url = "https://res.cloudinary.com/qrbites/image/upload/qrbites/profiles/avatar.jpg"
        assert extract_public_id(url) == "qrbites/profiles/avatar"

    def test_extract_public_id_local_path(self):
        assert extract_public_id("/uploads/restaurants/abc.jpg") is None

    def test_build_public_id(self):
        assert build_public_id("menuItem", "65f0", 1700000000000) == "menuItem_65f0_1700000000000"

    def test_sign_params_sorted_and_filtered(self):
        params = {"timestamp": 1700000000, "folder": "qrbites/restaurants", "file": "x", "api_key": "k"}
        expected = hashlib.sha1(
            b"folder=qrbites/restaurants&timestamp=1700000000secret"
        ).hexdigest()
        assert sign_params(params, "secret") == expected


class TestRemoteDescriptor:
    """Tests for RemoteDescriptor construction."""

    def test_from_url_is_reused(self):
        descriptor = RemoteDescriptor.from_url(REMOTE_LOGO)
        assert descriptor.reused is True
        assert descriptor.url == REMOTE_LOGO
        assert descriptor.public_id == "qrbites/restaurants/logo"
        assert descriptor.format == "png"

    def test_from_upload(self):
        descriptor = RemoteDescriptor.from_upload(MOCK_UPLOAD_RESPONSE)
        assert descriptor.reused is False
        assert descriptor.url == MOCK_UPLOAD_RESPONSE["secure_url"]
        assert descriptor.width == 1200
        assert descriptor.height == 800

    def test_to_dict_omits_unknown_dimensions(self):
        d = RemoteDescriptor(url="https://res.cloudinary.com/x.jpg", public_id="x").to_dict()
        assert d == {"url": "https://res.cloudinary.com/x.jpg", "publicId": "x"}


# =============================================================================
# CLIENT
# =============================================================================

class TestCloudinaryClient:
    """Tests for the REST client."""

    def test_is_configured(self, tmp_path):
        assert make_client(tmp_path).is_configured() is True
        assert make_client(tmp_path, api_secret=None).is_configured() is False

    @pytest.mark.asyncio
    async def test_upload_sends_signed_multipart(self, tmp_path):
        handler = RecordingHandler()
        client = make_client(tmp_path, handler)

        result = await client.upload(b"image-bytes", {
            "folder": "qrbites/restaurants",
            "public_id": "restaurant_abc_1",
            "tags": ["migration", "restaurant", "abc"],
        })

        assert result["public_id"] == MOCK_UPLOAD_RESPONSE["public_id"]
        assert len(handler.requests) == 1
        request = handler.requests[0]
        assert str(request.url) == "https://api.cloudinary.com/v1_1/qrbites/image/upload"
        body = request.content
        assert b'name="signature"' in body
        assert b'name="api_key"' in body
        assert b"key-123" in body
        assert b"migration,restaurant,abc" in body
        assert b"image-bytes" in body

    @pytest.mark.asyncio
    async def test_upload_error_status(self, tmp_path):
        handler = RecordingHandler(status_code=401, payload={"error": {"message": "Invalid Signature"}})
        client = make_client(tmp_path, handler)

        with pytest.raises(UploadError) as exc_info:
            await client.upload(b"data")

        assert exc_info.value.status_code == 401
        assert "Invalid Signature" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_upload_non_json_body(self, tmp_path):
        """A proxy page instead of the API response is an UploadError."""
        client = make_client(
            tmp_path,
            lambda request: httpx.Response(200, text="<html>gateway</html>", headers={"content-type": "text/html"}),
        )

        with pytest.raises(UploadError) as exc_info:
            await client.upload(b"data")

        assert "unexpected response body" in str(exc_info.value)
        assert exc_info.value.status_code == 200

    @pytest.mark.asyncio
    async def test_error_body_not_an_object(self, tmp_path):
        client = make_client(tmp_path, RecordingHandler(status_code=502, payload=["bad gateway"]))

        with pytest.raises(UploadError) as exc_info:
            await client.upload(b"data")

        assert exc_info.value.status_code == 502
        assert "bad gateway" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_upload_response_without_url(self, tmp_path):
        client = make_client(tmp_path, RecordingHandler(payload={"public_id": "qrbites/x"}))

        with pytest.raises(UploadError) as exc_info:
            await client.upload(b"data")

        assert "missing the asset url or public_id" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_upload_requires_credentials(self, tmp_path):
        handler = RecordingHandler()
        client = make_client(tmp_path, handler, api_key=None)

        with pytest.raises(TransferError):
            await client.upload(b"data")
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_destroy(self, tmp_path):
        handler = RecordingHandler(payload={"result": "ok"})
        client = make_client(tmp_path, handler)

        assert await client.destroy("qrbites/restaurants/logo") is True
        assert str(handler.requests[0].url).endswith("/image/destroy")

    @pytest.mark.asyncio
    async def test_destroy_not_found(self, tmp_path):
        client = make_client(tmp_path, RecordingHandler(payload={"result": "not found"}))
        assert await client.destroy("missing") is False


class TestTransfer:
    """Tests for the migration transfer path."""

    @pytest.mark.asyncio
    async def test_remote_locator_is_not_uploaded(self, tmp_path):
        """Already-migrated URLs are returned without a network call."""
        handler = RecordingHandler()
        client = make_client(tmp_path, handler)

        descriptor = await client.transfer(REMOTE_LOGO, "restaurant", "abc")

        assert descriptor.reused is True
        assert descriptor.url == REMOTE_LOGO
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_local_file_is_uploaded(self, tmp_path):
        write_upload(tmp_path)
        handler = RecordingHandler()
        client = make_client(tmp_path, handler)

        descriptor = await client.transfer("/uploads/restaurants/abc.jpg", "restaurant", "abc")

        assert descriptor.reused is False
        assert descriptor.public_id == MOCK_UPLOAD_RESPONSE["public_id"]
        body = handler.requests[0].content
        assert b"qrbites/restaurants" in body
        assert b"restaurant_abc_" in body

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        handler = RecordingHandler()
        client = make_client(tmp_path, handler)

        with pytest.raises(AssetFileNotFoundError) as exc_info:
            await client.transfer("/uploads/restaurants/missing.jpg", "restaurant", "abc")

        assert "File not found" in str(exc_info.value)
        assert handler.requests == []

    def test_path_outside_base_dir_rejected(self, tmp_path):
        base = tmp_path / "app"
        base.mkdir()
        (tmp_path / "secret.txt").write_text("nope")
        client = make_client(base)

        with pytest.raises(AssetFileNotFoundError):
            client.resolve_local_path("../secret.txt")

    def test_check_classifies_locators(self, tmp_path):
        path = write_upload(tmp_path)
        client = make_client(tmp_path)

        assert client.check(REMOTE_LOGO) == "remote"
        assert client.check("/uploads/restaurants/abc.jpg") == path.resolve()
