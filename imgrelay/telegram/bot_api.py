"""
Telegram Bot API client — download files and post channel replies.

Every network call goes through the shared RetryPolicy: timeouts, 5xx and 429
are retried, 4xx and malformed bodies are not.
"""
import time

import httpx

from imgrelay.exceptions import HttpError
from imgrelay.logging_config import get_logger
from imgrelay.models import DownloadedFile
from imgrelay.utils.http import (
    RetryPolicy,
    elapsed_ms,
    read_json_safe,
    send_request,
    status_error,
    transport_errors,
    truncate_text,
)

logger = get_logger(__name__)


class TelegramBotApi:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        bot_token: str,
        retry_policy: RetryPolicy,
        max_download_bytes: int,
        api_base_url: str = "https://api.telegram.org",
    ):
        self._client = client
        self._bot_token = bot_token
        self._retry = retry_policy
        self._max_download_bytes = max_download_bytes
        self._api_base_url = api_base_url.rstrip("/")

    def _method_url(self, method: str) -> str:
        return f"{self._api_base_url}/bot{self._bot_token}/{method}"

    def _file_url(self, file_path: str) -> str:
        return f"{self._api_base_url}/file/bot{self._bot_token}/{file_path}"

    # ── Download ──────────────────────────────────────────────────────────────

    async def get_file_path(self, file_id: str) -> str:
        """Resolve file_id → file_path via getFile."""

        async def _call(attempt: int) -> str:
            response = await send_request(
                self._client, "POST", self._method_url("getFile"), json={"file_id": file_id}
            )
            text = response.text
            if not response.is_success:
                raise status_error("Telegram getFile", response, text)

            payload = read_json_safe(text)
            result = payload.get("result") if isinstance(payload, dict) and payload.get("ok") else None
            file_path = result.get("file_path") if isinstance(result, dict) else None
            if not isinstance(file_path, str) or not file_path:
                raise HttpError(
                    f"Telegram getFile invalid response: {truncate_text(text)}",
                    retryable=False,
                )
            return file_path

        return await self._retry.run(_call, url=self._method_url("getFile"))

    async def _fetch_bytes(self, file_path: str) -> tuple[bytes, str | None]:
        url = self._file_url(file_path)

        async def _call(attempt: int) -> tuple[bytes, str | None]:
            with transport_errors(url):
                async with self._client.stream("GET", url) as response:
                    if not response.is_success:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise status_error("Telegram file download", response, body)

                    declared = response.headers.get("content-length")
                    if declared and declared.isdigit() and int(declared) > self._max_download_bytes:
                        raise self._too_large(int(declared))

                    content = bytearray()
                    async for chunk in response.aiter_bytes():
                        content.extend(chunk)
                        if len(content) > self._max_download_bytes:
                            raise self._too_large(len(content))
                    return bytes(content), response.headers.get("content-type")

        return await self._retry.run(_call, url=url)

    @staticmethod
    def _too_large(size: int) -> HttpError:
        return HttpError(f"Downloaded file exceeds MAX_UPLOAD_BYTES: {size}", retryable=False)

    async def download_file(self, file_id: str) -> DownloadedFile:
        """Fetch the raw bytes behind a Telegram file_id."""
        started_at = time.monotonic()

        file_path = await self.get_file_path(file_id)
        content, content_type = await self._fetch_bytes(file_path)

        logger.info(
            "telegram_download_success",
            file_id=file_id,
            bytes=len(content),
            cost_ms=elapsed_ms(started_at),
        )
        return DownloadedFile(content=content, content_type=content_type, file_path=file_path)

    # ── Reply ─────────────────────────────────────────────────────────────────

    async def send_message(self, chat_id: str, text: str) -> None:
        """Post plain text to a chat."""
        started_at = time.monotonic()

        async def _call(attempt: int) -> None:
            response = await send_request(
                self._client,
                "POST",
                self._method_url("sendMessage"),
                json={"chat_id": chat_id, "text": text, "disable_web_page_preview": False},
            )
            raw = response.text
            if not response.is_success:
                raise status_error("Telegram sendMessage", response, raw)

            payload = read_json_safe(raw)
            if not isinstance(payload, dict) or not payload.get("ok"):
                raise HttpError(
                    f"Telegram sendMessage invalid response: {truncate_text(raw)}",
                    retryable=False,
                )

        await self._retry.run(_call, url=self._method_url("sendMessage"))

        logger.info(
            "telegram_channel_reply_success",
            chat_id=chat_id,
            cost_ms=elapsed_ms(started_at),
        )
