import asyncio
import base64

import httpx
import pytest

from cuepoint.schemas.jobs import ImageUpload
from cuepoint.services.storage import (
    ImageUploadError,
    SupabaseImageStorage,
    decode_image_data,
    image_extension,
)

PNG_DATA = base64.b64encode(b"\x89PNG fake image").decode()


def _upload(handler, images: list[ImageUpload]) -> list[str]:
    async def run() -> list[str]:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            storage = SupabaseImageStorage(
                supabase_url="https://example.supabase.co/",
                service_role_key="service-key",
                bucket="job-images",
                timeout_seconds=5,
                client=client,
            )
            return await storage.upload_job_images("job-1", images)

    return asyncio.run(run())


def test_uploads_return_public_urls_in_input_order() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"Key": request.url.path})

    images = [
        ImageUpload(data=PNG_DATA, content_type="image/png"),
        ImageUpload(data=f"data:image/jpeg;base64,{PNG_DATA}", content_type="image/jpeg"),
    ]

    urls = _upload(handler, images)

    assert len(urls) == 2
    assert urls[0].startswith("https://example.supabase.co/storage/v1/object/public/job-images/job-job-1-")
    assert urls[0].endswith(".png")
    assert "-0-" in urls[0]
    assert urls[1].endswith(".jpg")
    assert "-1-" in urls[1]

    assert len(requests) == 2
    for request in requests:
        assert request.method == "POST"
        assert request.url.path.startswith("/storage/v1/object/job-images/job-job-1-")
        assert request.headers["Authorization"] == "Bearer service-key"
        assert request.headers["apikey"] == "service-key"
        assert request.headers["x-upsert"] == "false"
        assert request.content == b"\x89PNG fake image"


def test_any_rejected_upload_fails_the_batch() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith(".gif"):
            return httpx.Response(413, json={"error": "too large"})
        return httpx.Response(200, json={})

    images = [
        ImageUpload(data=PNG_DATA, content_type="image/png"),
        ImageUpload(data=PNG_DATA, content_type="image/gif"),
    ]

    with pytest.raises(ImageUploadError) as exc_info:
        _upload(handler, images)

    assert exc_info.value.index == 1


def test_transport_errors_become_upload_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ImageUploadError):
        _upload(handler, [ImageUpload(data=PNG_DATA, content_type="image/png")])


def test_invalid_base64_fails_before_any_request() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={})

    with pytest.raises(ImageUploadError):
        _upload(handler, [ImageUpload(data="%%%not-base64%%%")])

    assert requests == []


def test_no_images_needs_no_configuration() -> None:
    storage = SupabaseImageStorage(supabase_url=None, service_role_key=None, bucket="job-images", timeout_seconds=5)
    assert asyncio.run(storage.upload_job_images("job-1", [])) == []


def test_unconfigured_storage_rejects_uploads() -> None:
    storage = SupabaseImageStorage(supabase_url=None, service_role_key=None, bucket="job-images", timeout_seconds=5)
    with pytest.raises(ImageUploadError):
        asyncio.run(storage.upload_job_images("job-1", [ImageUpload(data=PNG_DATA)]))


def test_image_extension() -> None:
    assert image_extension("image/jpeg") == "jpg"
    assert image_extension("image/svg+xml") == "svg"
    assert image_extension("image/webp") == "webp"
    assert image_extension("image/png; charset=binary") == "png"


def test_decode_image_data_accepts_data_urls() -> None:
    assert decode_image_data(f"data:image/png;base64,{PNG_DATA}") == b"\x89PNG fake image"
    with pytest.raises(ValueError):
        decode_image_data("")
