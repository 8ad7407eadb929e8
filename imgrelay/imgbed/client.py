"""
Image host client — multipart upload returning the public URL.

The host answers with one of:
    {"src": "/file/a.jpg"}
    {"data": [{"src": "/file/a.jpg"}]}
    [{"src": "/file/a.jpg"}]
Relative src values are resolved against the configured base URL.
"""
import re
import time
from datetime import datetime
from typing import Any, Callable

import httpx

from imgrelay.exceptions import HttpError
from imgrelay.logging_config import get_logger
from imgrelay.utils.http import (
    RetryPolicy,
    elapsed_ms,
    read_json_safe,
    send_request,
    status_error,
    truncate_text,
)

logger = get_logger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"
DEFAULT_EXTENSION = "jpg"

EXTENSION_TO_MIME_TYPE = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "avif": "image/avif",
    "svg": "image/svg+xml",
}

MIME_TYPE_TO_EXTENSION = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/bmp": "bmp",
    "image/avif": "avif",
    "image/svg+xml": "svg",
}

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)


# ── Filename / MIME helpers ───────────────────────────────────────────────────

def build_timestamp_filename(moment: datetime | None = None) -> str:
    """yyyyMMdd_HHmmss in local time."""
    return (moment or datetime.now()).strftime("%Y%m%d_%H%M%S")


def normalize_mime_type(content_type: str | None) -> str | None:
    if not content_type:
        return None
    mime_type = content_type.split(";", 1)[0].strip().lower()
    return mime_type or None


def extension_from_path(source_path: str | None) -> str | None:
    if not source_path:
        return None
    path = source_path.split("?", 1)[0].split("#", 1)[0]
    filename = path.rsplit("/", 1)[-1]
    _, dot, extension = filename.rpartition(".")
    if not dot or not extension:
        return None
    return extension.lower()


def pick_upload_mime_type(content_type: str | None, source_path: str | None = None) -> str:
    """Trust an image/* content type, else guess from the path, else jpeg."""
    mime_type = normalize_mime_type(content_type)
    if mime_type and mime_type.startswith("image/"):
        return mime_type

    extension = extension_from_path(source_path)
    if extension in EXTENSION_TO_MIME_TYPE:
        return EXTENSION_TO_MIME_TYPE[extension]

    return DEFAULT_MIME_TYPE


def pick_filename_extension(mime_type: str) -> str:
    return MIME_TYPE_TO_EXTENSION.get(mime_type, DEFAULT_EXTENSION)


# ── Response helpers ──────────────────────────────────────────────────────────

def pick_src(payload: Any) -> str | None:
    if isinstance(payload, list):
        first = payload[0] if payload else None
        src = first.get("src") if isinstance(first, dict) else None
        return src if isinstance(src, str) else None

    if not isinstance(payload, dict):
        return None

    if isinstance(payload.get("src"), str):
        return payload["src"]

    data = payload.get("data")
    if isinstance(data, list) and data and isinstance(data[0], dict):
        src = data[0].get("src")
        return src if isinstance(src, str) else None
    return None


def join_url(base_url: str, path_or_url: str) -> str:
    if _ABSOLUTE_URL.match(path_or_url):
        return path_or_url
    path = path_or_url if path_or_url.startswith("/") else f"/{path_or_url}"
    return f"{base_url.rstrip('/')}{path}"


# ── Client ────────────────────────────────────────────────────────────────────

class ImgBedClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        upload_url: str,
        upload_token: str,
        retry_policy: RetryPolicy,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._client = client
        self._base_url = base_url
        self._upload_url = upload_url
        self._upload_token = upload_token
        self._retry = retry_policy
        self._clock = clock

    async def upload(
        self,
        content: bytes,
        content_type: str | None,
        source_path: str | None = None,
    ) -> str:
        """Upload image bytes, return the absolute hosted URL."""
        started_at = time.monotonic()
        mime_type = pick_upload_mime_type(content_type, source_path)

        async def _call(attempt: int) -> str:
            filename = f"{build_timestamp_filename(self._clock())}.{pick_filename_extension(mime_type)}"
            response = await send_request(
                self._client,
                "POST",
                self._upload_url,
                headers={"Authorization": f"Bearer {self._upload_token}"},
                files={"file": (filename, content, mime_type)},
            )
            text = response.text
            if not response.is_success:
                raise status_error("ImgBed upload", response, text)

            src = pick_src(read_json_safe(text))
            if not src:
                raise HttpError(
                    f"ImgBed upload invalid response: {truncate_text(text)}",
                    retryable=False,
                )
            return join_url(self._base_url, src)

        url = await self._retry.run(_call, url=self._upload_url)

        logger.info(
            "imgbed_upload_success",
            bytes=len(content),
            uploaded_url=url,
            cost_ms=elapsed_ms(started_at),
        )
        return url
