import httpx
import pytest

from app.config import settings
from app.core.exceptions import UploadFailedError, ValidationError
from app.services import asset_gateway
from app.services.asset_gateway import (
    PROFILE_PHOTO,
    REPORT_PHOTO,
    AssetGateway,
    public_id_from_url,
    read_image_upload,
    sign_params,
)

CLOUDINARY = {
    "CLOUDINARY_CLOUD_NAME": "demo",
    "CLOUDINARY_API_KEY": "key123",
    "CLOUDINARY_API_SECRET": "shh",
}

UPLOAD_RESPONSE = {
    "secure_url": "https://res.cloudinary.com/demo/image/upload/v1700000000/civic_issues/abc.jpg",
    "public_id": "civic_issues/abc",
    "bytes": 1024,
    "width": 1200,
    "height": 900,
    "format": "jpg",
}


def make_gateway(handler, **overrides) -> AssetGateway:
    config = settings.model_copy(update={**CLOUDINARY, **overrides})
    return AssetGateway(config, transport=httpx.MockTransport(handler))


class FakeUpload:
    def __init__(self, content: bytes, content_type: str | None, filename: str = "photo.jpg"):
        self.content = content
        self.content_type = content_type
        self.filename = filename

    async def read(self) -> bytes:
        return self.content


# ==================== URL parsing ====================


@pytest.mark.parametrize(
    "url,public_id",
    [
        (
            "https://res.cloudinary.com/demo/image/upload/v1712/civic_issues/abc.jpg",
            "civic_issues/abc",
        ),
        (
            "https://res.cloudinary.com/demo/image/upload/c_limit,h_1200,w_1200/v1712/civic_issues/abc.jpg",
            "civic_issues/abc",
        ),
        ("https://res.cloudinary.com/demo/image/upload/abc.png", "abc"),
        (
            "https://res.cloudinary.com/demo/image/upload/c_fill,g_face,h_200,w_200/profile_photos/me.jpg",
            "profile_photos/me",
        ),
        ("https://res.cloudinary.com/demo/image/upload/v1712/folder/name.with.dots.webp", "folder/name.with.dots"),
    ],
)
def test_public_id_from_url(url, public_id):
    assert public_id_from_url(url) == public_id


@pytest.mark.parametrize(
    "url",
    [
        "https://example.com/images/abc.jpg",
        "https://res.cloudinary.com/demo/image/upload/",
        "not a url",
    ],
)
def test_public_id_from_url_unknown(url):
    assert public_id_from_url(url) is None


# ==================== Transformations ====================


def test_report_photo_transformation():
    assert REPORT_PHOTO.folder == "civic_issues"
    assert REPORT_PHOTO.transformation == "c_limit,h_1200,w_1200/f_auto,q_auto:good"
    assert REPORT_PHOTO.progressive is True


def test_profile_photo_transformation():
    assert PROFILE_PHOTO.folder == "profile_photos"
    assert PROFILE_PHOTO.transformation == "c_fill,g_face,h_200,w_200"


def test_sign_params_sorts_keys():
    first = sign_params({"timestamp": "1", "folder": "a"}, "secret")
    second = sign_params({"folder": "a", "timestamp": "1"}, "secret")

    assert first == second
    assert len(first) == 40
    assert first != sign_params({"folder": "a", "timestamp": "1"}, "other")


# ==================== Upload ====================


@pytest.mark.asyncio
async def test_upload_sends_signed_request(monkeypatch):
    monkeypatch.setattr(asset_gateway.time, "time", lambda: 1700000000)
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.content
        return httpx.Response(200, json=UPLOAD_RESPONSE)

    gateway = make_gateway(handler)
    asset = await gateway.upload(b"\xff\xd8" + b"x" * 4096, REPORT_PHOTO)

    assert asset.url == UPLOAD_RESPONSE["secure_url"]
    assert asset.public_id == "civic_issues/abc"
    assert asset.bytes_stored == 1024
    assert seen["url"] == "https://api.cloudinary.com/v1_1/demo/image/upload"

    expected_signature = sign_params(
        {
            "flags": "progressive",
            "folder": "civic_issues",
            "timestamp": "1700000000",
            "transformation": "c_limit,h_1200,w_1200/f_auto,q_auto:good",
        },
        "shh",
    )
    body = seen["body"]
    assert expected_signature.encode() in body
    assert b"key123" in body
    assert b"shh" not in body
    assert b"c_limit,h_1200,w_1200/f_auto,q_auto:good" in body


@pytest.mark.asyncio
async def test_upload_service_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "Invalid Signature"}})

    with pytest.raises(UploadFailedError) as exc_info:
        await make_gateway(handler).upload(b"img", REPORT_PHOTO)

    assert "Invalid Signature" in exc_info.value.message


@pytest.mark.asyncio
async def test_upload_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(UploadFailedError):
        await make_gateway(handler).upload(b"img", REPORT_PHOTO)


@pytest.mark.asyncio
async def test_upload_unexpected_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"public_id": "no-url"})

    with pytest.raises(UploadFailedError):
        await make_gateway(handler).upload(b"img", REPORT_PHOTO)


@pytest.mark.asyncio
async def test_upload_not_configured():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=UPLOAD_RESPONSE)

    gateway = make_gateway(handler, CLOUDINARY_API_SECRET="")

    assert gateway.is_configured is False
    with pytest.raises(UploadFailedError):
        await gateway.upload(b"img", REPORT_PHOTO)
    assert calls == []


# ==================== Delete ====================


@pytest.mark.asyncio
@pytest.mark.parametrize("result", ["ok", "not found"])
async def test_delete_counts_missing_asset_as_deleted(result):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.content
        return httpx.Response(200, json={"result": result})

    outcome = await make_gateway(handler).delete(UPLOAD_RESPONSE["secure_url"])

    assert outcome.deleted is True
    assert outcome.acknowledge("test image") is True
    assert seen["url"] == "https://api.cloudinary.com/v1_1/demo/image/destroy"
    assert b"civic_issues%2Fabc" in seen["body"]


@pytest.mark.asyncio
async def test_delete_never_raises_on_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    outcome = await make_gateway(handler).delete(UPLOAD_RESPONSE["secure_url"])

    assert outcome.deleted is False
    assert "connection refused" in outcome.error
    assert outcome.acknowledge("test image") is False


@pytest.mark.asyncio
async def test_delete_reports_service_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    outcome = await make_gateway(handler).delete(UPLOAD_RESPONSE["secure_url"])

    assert outcome.deleted is False
    assert "500" in outcome.error


@pytest.mark.asyncio
async def test_delete_skips_foreign_urls():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"result": "ok"})

    outcome = await make_gateway(handler).delete("https://example.com/pic.jpg")

    assert outcome.deleted is False
    assert calls == []


# ==================== Incoming files ====================


@pytest.mark.asyncio
async def test_read_image_upload_accepts_images():
    content = await read_image_upload(FakeUpload(b"\xff\xd8data", "image/jpeg"))

    assert content == b"\xff\xd8data"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "upload",
    [
        FakeUpload(b"%PDF", "application/pdf", "doc.pdf"),
        FakeUpload(b"", "image/png"),
        FakeUpload(b"data", None),
    ],
)
async def test_read_image_upload_rejects(upload):
    with pytest.raises(ValidationError):
        await read_image_upload(upload)


@pytest.mark.asyncio
async def test_read_image_upload_size_limit():
    small = settings.model_copy(update={"MAX_UPLOAD_SIZE": 10})

    with pytest.raises(ValidationError) as exc_info:
        await read_image_upload(FakeUpload(b"x" * 11, "image/png"), small)

    assert "too large" in exc_info.value.message
