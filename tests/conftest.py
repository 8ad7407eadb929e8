"""Shared fixtures: settings builder and fake outbound collaborators."""
import pytest

from imgrelay.config import Settings
from imgrelay.models import DownloadedFile
from imgrelay.webhooks.orchestrator import WebhookDependencies

HOSTED_URL = "https://imgbed.example/img/a.jpg"


def build_settings(**overrides) -> Settings:
    values = {
        "telegram_bot_token": "bot-token",
        "telegram_allowed_chat_ids": "-100123",
        "imgbed_base_url": "https://imgbed.example",
        "imgbed_upload_token": "upload-token",
        "request_timeout_ms": 100,
        "retry_max_attempts": 2,
        "retry_base_delay_ms": 0,
        "max_upload_bytes": 1024 * 1024,
        "log_level": "error",
        "dedup_store_type": "memory",
        "enable_channel_reply": True,
        "channel_reply_template": None,
        "telegram_webhook_secret": None,
        "sentry_dsn": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeCollaborators:
    """Records every call; set *_error to make a stage fail."""

    def __init__(self, url: str = HOSTED_URL):
        self.url = url
        self.download_error: Exception | None = None
        self.upload_error: Exception | None = None
        self.reply_error: Exception | None = None
        self.downloads: list[str] = []
        self.uploads: list[tuple[bytes, str | None, str | None]] = []
        self.replies: list[tuple[str, str]] = []

    async def download(self, file_id: str) -> DownloadedFile:
        self.downloads.append(file_id)
        if self.download_error:
            raise self.download_error
        return DownloadedFile(content=b"img-bytes", content_type="image/jpeg", file_path=f"photos/{file_id}.jpg")

    async def upload(self, content: bytes, content_type: str | None, source_path: str | None = None) -> str:
        self.uploads.append((content, content_type, source_path))
        if self.upload_error:
            raise self.upload_error
        return self.url

    async def reply(self, chat_id: str, text: str) -> None:
        self.replies.append((chat_id, text))
        if self.reply_error:
            raise self.reply_error

    def dependencies(self) -> WebhookDependencies:
        return WebhookDependencies(download=self.download, upload=self.upload, reply=self.reply)


def photo_update(message_id: int, *, file_id: str | None = None, chat_id=-100123, edited: bool = False) -> dict:
    envelope = "edited_channel_post" if edited else "channel_post"
    file_id = file_id or f"file-{message_id}"
    return {
        "update_id": 1000 + message_id,
        envelope: {
            "message_id": message_id,
            "chat": {"id": chat_id},
            "photo": [{"file_id": file_id, "file_unique_id": f"u-{message_id}"}],
        },
    }


@pytest.fixture
def settings() -> Settings:
    return build_settings()


@pytest.fixture
def collaborators() -> FakeCollaborators:
    return FakeCollaborators()


@pytest.fixture
def make_settings():
    return build_settings


@pytest.fixture
def make_update():
    return photo_update
