"""
Update parser — turns a raw Telegram webhook payload into a PhotoEvent.

Only channel posts (new or edited) from allow-listed chats that carry a photo
or an image document are accepted. Anything else yields None; the parser never
raises, so malformed payloads can't turn into 500s.
"""
from typing import Any, Collection

from imgrelay.models import PhotoEvent


def _is_object(value: Any) -> bool:
    return isinstance(value, dict)


def _is_int(value: Any) -> bool:
    # bool is an int subclass, but true/false is not a message id
    return isinstance(value, int) and not isinstance(value, bool)


def _pick_channel_post(update: dict) -> tuple[dict, bool] | None:
    """Return (post, is_edited) when exactly one channel envelope is present."""
    post = update.get("channel_post")
    edited = update.get("edited_channel_post")
    if _is_object(post) and not _is_object(edited):
        return post, False
    if _is_object(edited) and not _is_object(post):
        return edited, True
    return None


def _chat_id(post: dict) -> str | None:
    chat = post.get("chat")
    if not _is_object(chat):
        return None
    raw = chat.get("id")
    if _is_int(raw) or isinstance(raw, str):
        return str(raw)
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    return None


def _file_from_photo(post: dict) -> dict | None:
    photo = post.get("photo")
    if not isinstance(photo, list) or not photo:
        return None
    # Telegram lists sizes ascending; the last one is the original resolution
    largest = photo[-1]
    if not _is_object(largest) or not isinstance(largest.get("file_id"), str):
        return None
    return largest


def _file_from_document(post: dict) -> dict | None:
    document = post.get("document")
    if not _is_object(document):
        return None
    mime_type = document.get("mime_type")
    if not isinstance(mime_type, str) or not mime_type.startswith("image/"):
        return None
    if not isinstance(document.get("file_id"), str):
        return None
    return document


def parse_update(update: Any, allowed_chat_ids: Collection[str]) -> PhotoEvent | None:
    """Extract a PhotoEvent from an inbound update, or None if it is not one of ours."""
    if not _is_object(update):
        return None

    picked = _pick_channel_post(update)
    if picked is None:
        return None
    post, is_edited = picked

    message_id = post.get("message_id")
    if not _is_int(message_id):
        return None

    chat_id = _chat_id(post)
    if chat_id is None or chat_id not in allowed_chat_ids:
        return None

    file_ref = _file_from_photo(post) or _file_from_document(post)
    if file_ref is None:
        return None

    file_unique_id = file_ref.get("file_unique_id")
    return PhotoEvent(
        chat_id=chat_id,
        message_id=message_id,
        file_id=file_ref["file_id"],
        file_unique_id=file_unique_id if isinstance(file_unique_id, str) else "",
        is_edited=is_edited,
    )
