from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import secrets
import time
from functools import lru_cache

import httpx
from opentelemetry import trace

from cuepoint.core.config import get_settings
from cuepoint.schemas.jobs import ImageUpload

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class ImageUploadError(Exception):
    """Raised when any image of a batch could not be stored."""

    def __init__(self, message: str, *, index: int | None = None) -> None:
        super().__init__(message)
        self.index = index


class SupabaseImageStorage:
    def __init__(
        self,
        supabase_url: str | None,
        service_role_key: str | None,
        bucket: str,
        timeout_seconds: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = supabase_url.rstrip("/") if supabase_url else None
        self.service_role_key = service_role_key
        self.bucket = bucket
        self.timeout_seconds = timeout_seconds
        self._client = client

    def public_url(self, object_name: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{object_name}"

    async def upload_job_images(self, job_id: str, images: list[ImageUpload]) -> list[str]:
        """Upload all images concurrently and return their public URLs in input order.

        Any single failure fails the batch. Objects already written by the
        other uploads are left in the bucket.
        """
        if not images:
            return []
        if not self.base_url or not self.service_role_key:
            raise ImageUploadError("image storage is not configured")

        stamp = int(time.time() * 1000)
        names = [build_object_name(job_id, image, index=index, stamp=stamp) for index, image in enumerate(images)]

        with tracer.start_as_current_span("job_images.upload") as span:
            span.set_attribute("job.id", job_id)
            span.set_attribute("job_images.count", len(images))
            if self._client is not None:
                return await self._upload_all(self._client, names, images)
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                return await self._upload_all(client, names, images)

    async def _upload_all(self, client: httpx.AsyncClient, names: list[str], images: list[ImageUpload]) -> list[str]:
        results = await asyncio.gather(
            *(self._upload_one(client, name, image, index) for index, (name, image) in enumerate(zip(names, images))),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                if isinstance(result, ImageUploadError):
                    raise result
                raise ImageUploadError(str(result)) from result
        return [self.public_url(name) for name in names]

    async def _upload_one(self, client: httpx.AsyncClient, name: str, image: ImageUpload, index: int) -> None:
        try:
            content = decode_image_data(image.data)
        except ValueError as exc:
            raise ImageUploadError(f"image {index} is not valid base64", index=index) from exc

        headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key or "",
            "Content-Type": image.content_type,
            "x-upsert": "false",
        }
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{name}"
        try:
            response = await client.post(url, content=content, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("image upload request failed", extra={"object_name": name})
            raise ImageUploadError(f"image {index} upload failed", index=index) from exc

        if response.status_code >= 300:
            logger.warning(
                "image upload rejected",
                extra={"object_name": name, "status_code": response.status_code},
            )
            raise ImageUploadError(f"image {index} upload rejected with status {response.status_code}", index=index)


def decode_image_data(data: str) -> bytes:
    # Browsers send data URLs ("data:image/png;base64,....").
    payload = data.split(",", maxsplit=1)[1] if data.startswith("data:") else data
    try:
        content = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("invalid base64 image data") from exc
    if not content:
        raise ValueError("empty image data")
    return content


def image_extension(content_type: str) -> str:
    subtype = content_type.split("/", maxsplit=1)[-1].split(";", maxsplit=1)[0].strip().lower()
    if subtype == "jpeg":
        return "jpg"
    if subtype.startswith("svg"):
        return "svg"
    return subtype or "bin"


def build_object_name(job_id: str, image: ImageUpload, *, index: int, stamp: int) -> str:
    return f"job-{job_id}-{stamp}-{index}-{secrets.token_hex(4)}.{image_extension(image.content_type)}"


@lru_cache
def get_image_storage() -> SupabaseImageStorage:
    settings = get_settings()
    return SupabaseImageStorage(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        bucket=settings.storage_bucket,
        timeout_seconds=settings.storage_timeout_seconds,
    )
