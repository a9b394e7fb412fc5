"""
QrBites - Cloudinary Asset Transfer Client

Uploads local media files to Cloudinary through its signed REST upload API and
returns a canonical RemoteDescriptor for each transferred asset.

Idempotency:
- A locator that already points at Cloudinary is never re-uploaded; a
  descriptor is synthesized from the URL instead.
- Public ids are {entity_type}_{entity_id}_{epoch_ms}. They are not content
  addressed, so a locator misclassified as local is uploaded again.
"""

import hashlib
import logging
import os
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

import httpx

from .exceptions import AssetFileNotFoundError, TransferError, UploadError

logger = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

CLOUDINARY_API_BASE = "https://api.cloudinary.com/v1_1"
CLOUDINARY_HOST_MARKER = "cloudinary.com"

# Uniform transform applied to every migrated asset: bound to 1200x1200, good quality
DEFAULT_TRANSFORMATION = "c_limit,h_1200,w_1200/q_auto:good"

# Parameters never included in the request signature
UNSIGNED_PARAMS = {"file", "cloud_name", "resource_type", "api_key"}

_VERSION_SEGMENT = re.compile(r"^v\d+$")


# =============================================================================
# REMOTE DESCRIPTOR
# =============================================================================

@dataclass
class RemoteDescriptor:
    """Canonical identifying payload for an asset stored in Cloudinary."""
    url: str
    public_id: Optional[str]
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None
    bytes: Optional[int] = None

    # True when synthesized from an existing Cloudinary URL (no upload happened)
    reused: bool = field(default=False, compare=False)

    @classmethod
    def from_url(cls, url: str) -> "RemoteDescriptor":
        """Build a descriptor for an asset that already lives in Cloudinary."""
        path = urlparse(url).path
        extension = os.path.splitext(path)[1].lstrip(".")
        return cls(
            url=url,
            public_id=extract_public_id(url),
            format=extension or None,
            reused=True,
        )

    @classmethod
    def from_upload(cls, result: Dict[str, Any]) -> "RemoteDescriptor":
        """Build a descriptor from a Cloudinary upload response."""
        return cls(
            url=result.get("secure_url") or result.get("url"),
            public_id=result.get("public_id"),
            width=result.get("width"),
            height=result.get("height"),
            format=result.get("format"),
            bytes=result.get("bytes"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"url": self.url, "publicId": self.public_id}
        for key in ("width", "height", "format", "bytes"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


def is_remote_asset(locator: Optional[str]) -> bool:
    """Check whether a locator already points at Cloudinary."""
    return bool(locator) and CLOUDINARY_HOST_MARKER in locator


def extract_public_id(url: Optional[str]) -> Optional[str]:
    """
    Extract the public id from a Cloudinary delivery URL.

    https://res.cloudinary.com/demo/image/upload/v1712/qrbites/restaurants/logo.png
    -> qrbites/restaurants/logo
    """
    if not is_remote_asset(url):
        return None

    path = urlparse(url).path
    if "/upload/" in path:
        segments = [s for s in path.split("/upload/", 1)[1].split("/") if s]
        # Everything after the version segment is the public id; transformations precede it
        for index, segment in enumerate(segments):
            if _VERSION_SEGMENT.match(segment):
                segments = segments[index + 1:]
                break
    else:
        segments = [s for s in path.split("/") if s][-1:]

    if not segments:
        return None

    segments[-1] = os.path.splitext(segments[-1])[0]
    return "/".join(segments) or None


def build_public_id(entity_type: str, entity_id: Any, timestamp_ms: Optional[int] = None) -> str:
    """Generate the public id for a migrated asset."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{entity_type}_{entity_id}_{timestamp_ms}"


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """Compute the Cloudinary request signature (SHA-1 of sorted params + secret)."""
    to_sign = "&".join(
        f"{key}={value}"
        for key, value in sorted(params.items())
        if key not in UNSIGNED_PARAMS and value not in (None, "")
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


# =============================================================================
# CLOUDINARY CLIENT
# =============================================================================

class CloudinaryClient:
    """
    Cloudinary REST client with local-file resolution for migrations.

    Usage:
        client = CloudinaryClient(cloud_name, api_key, api_secret, asset_base_dir="/srv/app")
        descriptor = await client.transfer("/uploads/restaurants/abc.jpg", "restaurant", "65f0...")
    """

    def __init__(
        self,
        cloud_name: Optional[str],
        api_key: Optional[str],
        api_secret: Optional[str],
        asset_base_dir: Union[str, Path] = ".",
        folder_prefix: str = "qrbites",
        transformation: str = DEFAULT_TRANSFORMATION,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._cloud_name = cloud_name
        self._api_key = api_key
        self._api_secret = api_secret
        self.asset_base_dir = Path(asset_base_dir).resolve()
        self.folder_prefix = folder_prefix
        self.transformation = transformation
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings) -> "CloudinaryClient":
        return cls(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            asset_base_dir=settings.asset_base_dir,
            folder_prefix=settings.cloudinary_folder,
            timeout=settings.cloudinary_upload_timeout,
        )

    def is_configured(self) -> bool:
        """Check if Cloudinary credentials are configured."""
        return bool(self._cloud_name and self._api_key and self._api_secret)

    def _endpoint(self, action: str, resource_type: str = "image") -> str:
        return f"{CLOUDINARY_API_BASE}/{self._cloud_name}/{resource_type}/{action}"

    def _signed(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_configured():
            raise TransferError(
                "Cloudinary is not configured. Set CLOUDINARY_CLOUD_NAME, "
                "CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET."
            )
        params = {k: v for k, v in params.items() if v not in (None, "")}
        params["timestamp"] = int(time.time())
        params["signature"] = sign_params(params, self._api_secret)
        params["api_key"] = self._api_key
        return params

    async def _post(self, url: str, data: Dict[str, Any], files: Optional[Dict] = None) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url, data=data, files=files)
        except httpx.HTTPError as e:
            raise UploadError(f"Cloudinary request failed: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code >= 400:
            error = body.get("error") if isinstance(body, dict) else None
            message = (error.get("message") if isinstance(error, dict) else None) or resp.text[:200]
            raise UploadError(
                f"Cloudinary returned {resp.status_code}: {message}",
                status_code=resp.status_code,
            )

        if not isinstance(body, dict):
            raise UploadError(
                f"Cloudinary returned an unexpected response body: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        return body

    # -------------------------------------------------------------------------
    # Remote operations
    # -------------------------------------------------------------------------

    async def upload(self, buffer: bytes, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Upload a byte buffer.

        Options: folder, public_id, tags (list), transformation, resource_type.
        Returns the raw Cloudinary response (secure_url, public_id, width, ...).
        """
        options = dict(options or {})
        resource_type = options.pop("resource_type", "image")
        tags: List[str] = options.pop("tags", None) or []

        params = {
            "folder": options.get("folder"),
            "public_id": options.get("public_id"),
            "tags": ",".join(str(t) for t in tags),
            "transformation": options.get("transformation", self.transformation),
            "overwrite": "true" if options.get("public_id") else None,
        }
        data = self._signed(params)
        files = {"file": (options.get("public_id") or "upload", buffer)}

        result = await self._post(self._endpoint("upload", resource_type), data, files)
        if not (result.get("secure_url") or result.get("url")) or not result.get("public_id"):
            raise UploadError("Cloudinary upload response is missing the asset url or public_id")

        logger.info(f"Uploaded to Cloudinary: {result.get('secure_url') or result.get('url')}")
        return result

    async def destroy(self, public_id: str, resource_type: str = "image") -> bool:
        """Delete an asset. Returns True when Cloudinary reports it removed."""
        data = self._signed({"public_id": public_id, "invalidate": "true"})
        result = await self._post(self._endpoint("destroy", resource_type), data)
        deleted = result.get("result") == "ok"
        if deleted:
            logger.info(f"Deleted from Cloudinary: {public_id}")
        else:
            logger.warning(f"Cloudinary destroy for {public_id} returned {result.get('result')}")
        return deleted

    # -------------------------------------------------------------------------
    # Migration helpers
    # -------------------------------------------------------------------------

    def resolve_local_path(self, source_locator: str) -> Path:
        """
        Resolve a local locator ("/uploads/restaurants/abc.jpg") under the asset base dir.

        Raises AssetFileNotFoundError if the file is missing or escapes the base dir.
        """
        relative = source_locator.lstrip("/\\")
        path = (self.asset_base_dir / relative).resolve()

        if path != self.asset_base_dir and self.asset_base_dir not in path.parents:
            raise AssetFileNotFoundError(str(path))
        if not path.is_file():
            raise AssetFileNotFoundError(str(path))
        return path

    def check(self, source_locator: str) -> Union[str, Path]:
        """Classify a locator without transferring it: "remote" or the resolved local path."""
        if is_remote_asset(source_locator):
            return "remote"
        return self.resolve_local_path(source_locator)

    async def transfer(self, source_locator: str, entity_type: str, entity_id: Any) -> RemoteDescriptor:
        """
        Transfer one asset to Cloudinary.

        Already-remote locators are returned as a reused descriptor without a
        network call. Raises AssetFileNotFoundError or UploadError.
        """
        if is_remote_asset(source_locator):
            return RemoteDescriptor.from_url(source_locator)

        path = self.resolve_local_path(source_locator)
        buffer = path.read_bytes()

        public_id = build_public_id(entity_type, entity_id)
        result = await self.upload(buffer, {
            "folder": f"{self.folder_prefix}/{entity_type}s",
            "public_id": public_id,
            "tags": ["migration", entity_type, str(entity_id)],
        })
        return RemoteDescriptor.from_upload(result)
