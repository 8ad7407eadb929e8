"""
Domain models shared by the parser, the collaborators and the orchestrator.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class PhotoEvent:
    """A channel post that carries an image we should relay."""

    chat_id: str
    message_id: int
    file_id: str
    file_unique_id: str
    is_edited: bool


@dataclass(frozen=True)
class DownloadedFile:
    content: bytes
    content_type: str | None
    file_path: str | None = None  # Telegram-side path, used as a filename hint
