"""Tests for the channel-post update parser."""
import pytest

from imgrelay.models import PhotoEvent
from imgrelay.telegram.parse_update import parse_update

ALLOWED = frozenset({"-100123"})


# ---------------------------------------------------------------------------
# accepted updates
# ---------------------------------------------------------------------------

class TestAcceptedUpdates:
    def test_channel_post_photo_picks_largest(self):
        update = {
            "update_id": 1,
            "channel_post": {
                "message_id": 42,
                "chat": {"id": -100123},
                "photo": [
                    {"file_id": "small", "file_unique_id": "u1"},
                    {"file_id": "large", "file_unique_id": "u2"},
                ],
            },
        }
        assert parse_update(update, ALLOWED) == PhotoEvent(
            chat_id="-100123",
            message_id=42,
            file_id="large",
            file_unique_id="u2",
            is_edited=False,
        )

    def test_edited_channel_post(self):
        update = {
            "edited_channel_post": {
                "message_id": 5,
                "chat": {"id": "-100123"},
                "photo": [{"file_id": "f1", "file_unique_id": "ux"}],
            },
        }
        event = parse_update(update, ALLOWED)
        assert event is not None
        assert event.is_edited is True
        assert event.file_id == "f1"
        assert event.chat_id == "-100123"

    def test_image_document(self):
        update = {
            "channel_post": {
                "message_id": 7,
                "chat": {"id": -100123},
                "document": {"file_id": "doc-1", "file_unique_id": "d1", "mime_type": "image/png"},
            },
        }
        event = parse_update(update, ALLOWED)
        assert event is not None
        assert event.file_id == "doc-1"
        assert event.file_unique_id == "d1"

    def test_photo_wins_over_document(self):
        update = {
            "channel_post": {
                "message_id": 8,
                "chat": {"id": -100123},
                "photo": [{"file_id": "photo-1"}],
                "document": {"file_id": "doc-1", "mime_type": "image/png"},
            },
        }
        assert parse_update(update, ALLOWED).file_id == "photo-1"

    def test_document_used_when_photo_unusable(self):
        update = {
            "channel_post": {
                "message_id": 8,
                "chat": {"id": -100123},
                "photo": [{"width": 10}],
                "document": {"file_id": "doc-1", "mime_type": "image/jpeg"},
            },
        }
        assert parse_update(update, ALLOWED).file_id == "doc-1"

    def test_missing_unique_id_defaults_to_empty(self):
        update = {
            "channel_post": {
                "message_id": 9,
                "chat": {"id": -100123},
                "photo": [{"file_id": "f1", "file_unique_id": 123}],
            },
        }
        assert parse_update(update, ALLOWED).file_unique_id == ""


# ---------------------------------------------------------------------------
# ignored updates
# ---------------------------------------------------------------------------

class TestIgnoredUpdates:
    @pytest.mark.parametrize("update", [None, [], "text", 42, True])
    def test_non_object(self, update):
        assert parse_update(update, ALLOWED) is None

    def test_no_channel_envelope(self):
        update = {"message": {"message_id": 1, "chat": {"id": -100123}, "photo": [{"file_id": "f1"}]}}
        assert parse_update(update, ALLOWED) is None

    def test_both_envelopes(self):
        post = {"message_id": 1, "chat": {"id": -100123}, "photo": [{"file_id": "f1"}]}
        assert parse_update({"channel_post": post, "edited_channel_post": post}, ALLOWED) is None

    def test_chat_not_allow_listed(self):
        update = {"channel_post": {"message_id": 1, "chat": {"id": -100999}, "photo": [{"file_id": "f1"}]}}
        assert parse_update(update, ALLOWED) is None

    def test_text_only_post(self):
        update = {"channel_post": {"message_id": 1, "chat": {"id": -100123}, "text": "hello"}}
        assert parse_update(update, ALLOWED) is None

    def test_non_image_document(self):
        update = {
            "channel_post": {
                "message_id": 1,
                "chat": {"id": -100123},
                "document": {"file_id": "doc", "mime_type": "application/pdf"},
            },
        }
        assert parse_update(update, ALLOWED) is None

    @pytest.mark.parametrize("message_id", [None, "42", 4.2, True])
    def test_bad_message_id(self, message_id):
        update = {"channel_post": {"message_id": message_id, "chat": {"id": -100123}, "photo": [{"file_id": "f1"}]}}
        assert parse_update(update, ALLOWED) is None

    @pytest.mark.parametrize("chat", [None, {}, {"id": None}, {"id": [1]}, "chat"])
    def test_bad_chat(self, chat):
        update = {"channel_post": {"message_id": 1, "chat": chat, "photo": [{"file_id": "f1"}]}}
        assert parse_update(update, ALLOWED) is None

    def test_malformed_shapes(self):
        assert parse_update({"channel_post": {}}, ALLOWED) is None
        assert parse_update(
            {"channel_post": {"message_id": 1, "chat": {"id": -100123}, "photo": [{}]}}, ALLOWED
        ) is None
        assert parse_update(
            {"channel_post": {"message_id": 1, "chat": {"id": -100123}, "photo": []}}, ALLOWED
        ) is None
