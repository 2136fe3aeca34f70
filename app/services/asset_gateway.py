"""
Cloudinary image hosting for report and profile photos.

Uploads go through the signed upload API with an incoming transformation,
so the stored asset is already resized and compressed. Deletion is best
effort: it never raises and hands back a CleanupResult the caller has to
acknowledge.

Usage:
    gateway = AssetGateway(settings)
    asset = await gateway.upload(content, REPORT_PHOTO)
    result = await gateway.delete(asset.url)
    result.acknowledge(f"report {report.id} image")
"""

import hashlib
import logging
import re
import time
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

import httpx
from fastapi import UploadFile

from app.config import Settings, settings
from app.core.exceptions import UploadFailedError, ValidationError

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.cloudinary.com/v1_1"

_VERSION_SEGMENT = re.compile(r"^v\d+$")
_TRANSFORMATION_SEGMENT = re.compile(r"^[a-z]{1,3}_[^,]+(,[a-z]{1,3}_[^,]+)*$")


@dataclass(frozen=True)
class UploadOptions:
    folder: str
    width: int
    height: int
    crop: str = "limit"
    gravity: str | None = None
    quality: str | None = None
    fetch_format: str | None = None
    progressive: bool = False

    @property
    def transformation(self) -> str:
        """Cloudinary transformation string, e.g. c_limit,h_1200,w_1200/f_auto,q_auto:good"""
        resize = [f"c_{self.crop}"]
        if self.gravity:
            resize.append(f"g_{self.gravity}")
        resize.extend([f"h_{self.height}", f"w_{self.width}"])

        steps = [",".join(resize)]
        optimize = []
        if self.fetch_format:
            optimize.append(f"f_{self.fetch_format}")
        if self.quality:
            optimize.append(f"q_{self.quality}")
        if optimize:
            steps.append(",".join(optimize))
        return "/".join(steps)


# Never upscale, cap at 1200x1200, let Cloudinary pick quality and format
REPORT_PHOTO = UploadOptions(
    folder="civic_issues",
    width=1200,
    height=1200,
    crop="limit",
    quality="auto:good",
    fetch_format="auto",
    progressive=True,
)

PROFILE_PHOTO = UploadOptions(
    folder="profile_photos",
    width=200,
    height=200,
    crop="fill",
    gravity="face",
)


@dataclass(frozen=True)
class UploadedAsset:
    url: str
    public_id: str
    bytes_stored: int
    width: int
    height: int
    format: str


@dataclass(frozen=True)
class CleanupResult:
    """Outcome of a best-effort remote delete."""

    url: str
    deleted: bool
    error: str | None = None

    def acknowledge(self, context: str) -> bool:
        if self.deleted:
            logger.info(f"Deleted hosted image for {context}: {self.url}")
        else:
            logger.warning(
                f"Could not delete hosted image for {context} ({self.url}): {self.error}"
            )
        return self.deleted


def public_id_from_url(url: str) -> str | None:
    """
    Derive the Cloudinary public id from a delivery URL.

    https://res.cloudinary.com/demo/image/upload/v1712/civic_issues/abc.jpg
    -> civic_issues/abc
    """
    segments = [s for s in urlparse(url).path.split("/") if s]
    if "upload" not in segments:
        return None
    segments = segments[segments.index("upload") + 1:]

    versions = [i for i, s in enumerate(segments) if _VERSION_SEGMENT.match(s)]
    if versions:
        segments = segments[versions[-1] + 1:]
    else:
        while segments and _TRANSFORMATION_SEGMENT.match(segments[0]):
            segments = segments[1:]

    if not segments:
        return None

    last = segments[-1]
    if "." in last:
        segments[-1] = last.rsplit(".", 1)[0]
    return "/".join(segments)


def sign_params(params: dict[str, str], api_secret: str) -> str:
    """SHA-1 signature over the alphabetically sorted parameters."""
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


async def read_image_upload(file: UploadFile, config: Settings = settings) -> bytes:
    """Read an uploaded image, rejecting non-images and oversized files."""
    if not file.content_type or not file.content_type.startswith("image/"):
        raise ValidationError("Only image files are allowed", field=file.filename)

    content = await file.read()
    if not content:
        raise ValidationError("Uploaded image is empty", field=file.filename)
    if len(content) > config.MAX_UPLOAD_SIZE:
        raise ValidationError(
            f"File too large. Maximum size: {config.MAX_UPLOAD_SIZE // (1024 * 1024)}MB",
            field=file.filename,
        )
    return content


class AssetGateway:
    """Cloudinary upload / destroy over the REST API."""

    def __init__(
        self,
        config: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.cloud_name = config.CLOUDINARY_CLOUD_NAME
        self.api_key = config.CLOUDINARY_API_KEY
        self.api_secret = config.CLOUDINARY_API_SECRET
        self.timeout = config.CLOUDINARY_UPLOAD_TIMEOUT
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def _endpoint(self, action: str) -> str:
        return f"{API_BASE_URL}/{self.cloud_name}/image/{action}"

    def _signed(self, params: dict[str, str]) -> dict[str, str]:
        params = {**params, "timestamp": str(int(time.time()))}
        return {
            **params,
            "api_key": self.api_key,
            "signature": sign_params(params, self.api_secret),
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self.timeout)

    async def upload(self, content: bytes, options: UploadOptions) -> UploadedAsset:
        """
        Upload image bytes with the given transformation.

        Raises:
            UploadFailedError: on any transport or service error. Nothing is
                returned unless the host confirmed the asset.
        """
        if not self.is_configured:
            logger.error("Cloudinary is not configured, refusing upload")
            raise UploadFailedError("Image upload failed: image hosting is not configured")

        params = {
            "folder": options.folder,
            "transformation": options.transformation,
        }
        if options.progressive:
            params["flags"] = "progressive"

        started = time.monotonic()
        try:
            async with self._client() as client:
                response = await client.post(
                    self._endpoint("upload"),
                    data=self._signed(params),
                    files={"file": ("upload", content)},
                )
        except httpx.TimeoutException:
            logger.error(f"Cloudinary upload timed out after {self.timeout}s")
            raise UploadFailedError("Image upload failed: request timed out")
        except httpx.RequestError as e:
            logger.error(f"Cloudinary upload request failed: {e}")
            raise UploadFailedError(f"Image upload failed: {e}")

        if response.status_code != 200:
            try:
                detail = response.json().get("error", {}).get("message", response.text)
            except ValueError:
                detail = response.text[:500]
            logger.error(f"Cloudinary upload failed: {response.status_code} - {detail}")
            raise UploadFailedError(f"Image upload failed: {detail}")

        try:
            result = response.json()
            asset = UploadedAsset(
                url=result["secure_url"],
                public_id=result["public_id"],
                bytes_stored=int(result.get("bytes", 0)),
                width=int(result.get("width", 0)),
                height=int(result.get("height", 0)),
                format=result.get("format", ""),
            )
        except (ValueError, KeyError) as e:
            logger.error(f"Unexpected Cloudinary upload response: {e}")
            raise UploadFailedError("Image upload failed: unexpected response from image host")

        original_size = len(content)
        ratio = ((original_size - asset.bytes_stored) / original_size) * 100 if original_size else 0.0
        logger.info(
            "Uploaded %s (%dx%d %s): %dKB -> %dKB, %.1f%% smaller, %dms",
            asset.public_id,
            asset.width,
            asset.height,
            asset.format,
            original_size // 1024,
            asset.bytes_stored // 1024,
            ratio,
            int((time.monotonic() - started) * 1000),
        )
        return asset

    async def delete(self, url: str) -> CleanupResult:
        """Destroy the asset behind a delivery URL. Never raises."""
        public_id = public_id_from_url(url)
        if public_id is None:
            return CleanupResult(url=url, deleted=False, error="not a Cloudinary delivery URL")
        if not self.is_configured:
            return CleanupResult(url=url, deleted=False, error="image hosting is not configured")

        try:
            async with self._client() as client:
                response = await client.post(
                    self._endpoint("destroy"),
                    data=self._signed({"public_id": public_id}),
                )
            result = response.json().get("result") if response.status_code == 200 else None
        except (httpx.HTTPError, ValueError) as e:
            return CleanupResult(url=url, deleted=False, error=str(e))

        # "not found" means it is already gone
        if result in ("ok", "not found"):
            return CleanupResult(url=url, deleted=True)
        return CleanupResult(
            url=url,
            deleted=False,
            error=f"status {response.status_code}, result {result!r}",
        )


@lru_cache
def get_asset_gateway() -> AssetGateway:
    """FastAPI dependency; one gateway per process."""
    return AssetGateway(settings)
