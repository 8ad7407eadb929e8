"""
Webhook orchestrator — the photo relay pipeline for one inbound update.

Pipeline:
1. Parse the update → ignored if it is not an allow-listed photo post
2. Message-key dedup → answer with the stored URL (Telegram redelivery, edits)
3. File-id dedup → reuse the URL of an already uploaded file (forwards, resends)
4. Otherwise download from Telegram, then upload to the image host
5. Record the URL under the message key (and under the file id for fresh uploads)
6. Optionally reply in the channel; a failed reply is logged, never escalated
7. Emit one outcome log record

Download/upload errors fail the whole update and store nothing.
Concurrent deliveries of the same message wait on a per-key lock. Messages
sharing a file id join one in-flight download+upload task, which keeps running
if its request is cancelled, so each file is uploaded at most once per process.
"""
import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Collection

import structlog

from imgrelay.logging_config import get_logger
from imgrelay.models import DownloadedFile, PhotoEvent
from imgrelay.storage.dedup_store import DedupStore
from imgrelay.telegram.parse_update import parse_update
from imgrelay.utils.http import elapsed_ms
from imgrelay.utils.idempotency import KeyedLock, make_message_key

logger = get_logger(__name__)

URL_PLACEHOLDER = "{url}"

DownloadFn = Callable[[str], Awaitable[DownloadedFile]]
UploadFn = Callable[[bytes, str | None, str | None], Awaitable[str]]
ReplyFn = Callable[[str, str], Awaitable[None]]


@dataclass(frozen=True)
class WebhookDependencies:
    """Outbound collaborators, injectable for tests."""

    download: DownloadFn  # file_id -> DownloadedFile
    upload: UploadFn  # (content, content_type, source_path) -> hosted url
    reply: ReplyFn  # (chat_id, text) -> None


class OutcomeStatus(str, Enum):
    IGNORED = "ignored"
    DEDUPLICATED = "deduplicated"
    PROCESSED = "processed"
    FAILED = "failed"


@dataclass(frozen=True)
class WebhookOutcome:
    status: OutcomeStatus
    url: str | None = None
    event: PhotoEvent | None = None
    error: str | None = None


def render_reply_text(url: str, template: str | None = None) -> str:
    """
    No template → bare URL.
    Template with {url} → every placeholder substituted.
    Template without it → URL appended after a space.
    """
    if not template:
        return url
    if URL_PLACEHOLDER in template:
        return template.replace(URL_PLACEHOLDER, url)
    return f"{template} {url}".strip()


def extract_update_id(payload: Any) -> int | None:
    if not isinstance(payload, dict):
        return None
    value = payload.get("update_id")
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


class WebhookOrchestrator:
    def __init__(
        self,
        *,
        dedup_store: DedupStore,
        dependencies: WebhookDependencies,
        allowed_chat_ids: Collection[str],
        enable_reply: bool = True,
        reply_template: str | None = None,
    ):
        self._dedup = dedup_store
        self._deps = dependencies
        self._allowed_chat_ids = allowed_chat_ids
        self._enable_reply = enable_reply
        self._reply_template = reply_template
        self._message_locks = KeyedLock()
        self._uploads: dict[str, asyncio.Future[str]] = {}  # file_id -> in-flight download+upload

    async def handle(self, update: Any) -> WebhookOutcome:
        """Run the pipeline for one raw update. Never raises for ordinary errors."""
        started_at = time.monotonic()
        update_id = extract_update_id(update)

        event = parse_update(update, self._allowed_chat_ids)
        if event is None:
            logger.debug("telegram_update_ignored", update_id=update_id)
            return WebhookOutcome(OutcomeStatus.IGNORED)

        log = logger.bind(
            update_id=update_id,
            chat_id=event.chat_id,
            message_id=event.message_id,
            file_id=event.file_id,
        )
        message_key = make_message_key(event.chat_id, event.message_id)

        try:
            async with self._message_locks.hold(message_key):
                existing = self._dedup.get_message_upload_url(message_key)
                if existing is not None:
                    log.info(
                        "telegram_update_dedup_message_hit",
                        uploaded_url=existing,
                        cost_ms=elapsed_ms(started_at),
                    )
                    return WebhookOutcome(OutcomeStatus.DEDUPLICATED, url=existing, event=event)

                uploaded_url = await self._resolve_url(event, log)
                # Source of truth for "this message has been answered"
                self._dedup.set_message_upload_url(message_key, uploaded_url)
        except Exception as e:
            log.error(
                "telegram_update_failed",
                cost_ms=elapsed_ms(started_at),
                error=e,
                exc_info=True,
            )
            return WebhookOutcome(OutcomeStatus.FAILED, event=event, error=str(e) or type(e).__name__)

        if self._enable_reply:
            await self._reply_best_effort(event, uploaded_url, log)

        log.info(
            "telegram_update_processed",
            uploaded_url=uploaded_url,
            is_edited=event.is_edited,
            cost_ms=elapsed_ms(started_at),
        )
        return WebhookOutcome(OutcomeStatus.PROCESSED, url=uploaded_url, event=event)

    async def _resolve_url(self, event: PhotoEvent, log: structlog.stdlib.BoundLogger) -> str:
        cached = self._dedup.get_file_upload_url(event.file_id)
        if cached is not None:
            log.info("telegram_update_dedup_file_hit", uploaded_url=cached)
            return cached

        task = self._uploads.get(event.file_id)
        if task is None:
            task = asyncio.ensure_future(self._download_and_upload(event))
            self._uploads[event.file_id] = task
            task.add_done_callback(partial(self._forget_upload, event.file_id))
        else:
            log.info("telegram_update_upload_in_flight")
        # Downstream calls run to completion even if the inbound request goes away;
        # a redelivery joins the same task instead of uploading again
        return await asyncio.shield(task)

    def _forget_upload(self, file_id: str, task: asyncio.Future) -> None:
        if self._uploads.get(file_id) is task:
            del self._uploads[file_id]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            # also reached when the request that started the task was cancelled
            logger.warning("relay_upload_task_failed", file_id=file_id, error=error)

    async def _download_and_upload(self, event: PhotoEvent) -> str:
        downloaded = await self._deps.download(event.file_id)
        uploaded_url = await self._deps.upload(
            downloaded.content, downloaded.content_type, downloaded.file_path
        )
        self._dedup.set_file_upload_url(event.file_id, uploaded_url)
        return uploaded_url

    async def _reply_best_effort(
        self, event: PhotoEvent, uploaded_url: str, log: structlog.stdlib.BoundLogger
    ) -> None:
        """The image is already hosted; a failed reply must not change the outcome."""
        text = render_reply_text(uploaded_url, self._reply_template)
        try:
            await self._deps.reply(event.chat_id, text)
        except Exception as e:
            log.error(
                "telegram_channel_reply_failed",
                uploaded_url=uploaded_url,
                error=e,
            )
