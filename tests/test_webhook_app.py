"""HTTP-level tests for the FastAPI app."""
import pytest
from fastapi.testclient import TestClient

from imgrelay.exceptions import HttpError
from imgrelay.main import create_app
from imgrelay.storage.dedup_store import MemoryDedupStore
from imgrelay.webhooks.router_factory import MAX_BODY_BYTES, SECRET_HEADER, WEBHOOK_PATH
from tests.conftest import HOSTED_URL, build_settings, photo_update


@pytest.fixture
def store():
    return MemoryDedupStore()


@pytest.fixture
def client(collaborators, store):
    app = create_app(build_settings(), dedup_store=store, dependencies=collaborators.dependencies())
    with TestClient(app) as test_client:
        yield test_client


# ---------------------------------------------------------------------------
# routes
# ---------------------------------------------------------------------------

class TestRoutes:
    def test_healthz(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"ok": True}

    def test_unknown_path(self, client):
        response = client.get("/nope")
        assert response.status_code == 404
        assert response.json() == {"ok": False, "error": "Not Found: /nope"}

    def test_wrong_method_keeps_envelope(self, client):
        response = client.get(WEBHOOK_PATH)
        assert response.status_code == 405
        assert response.json()["ok"] is False

    def test_app_state(self, client, store):
        assert client.app.state.dedup_store is store


# ---------------------------------------------------------------------------
# webhook
# ---------------------------------------------------------------------------

class TestWebhook:
    def test_photo_is_relayed(self, client, collaborators, store):
        response = client.post(WEBHOOK_PATH, json=photo_update(42))

        assert response.status_code == 200
        assert response.json() == {"ok": True, "url": HOSTED_URL}
        assert collaborators.replies == [("-100123", HOSTED_URL)]
        assert store.get_message_upload_url("-100123:42") == HOSTED_URL

    def test_redelivery_is_deduplicated(self, client, collaborators):
        client.post(WEBHOOK_PATH, json=photo_update(42))
        response = client.post(WEBHOOK_PATH, json=photo_update(42))

        assert response.status_code == 200
        assert response.json() == {"ok": True, "dedup": True, "url": HOSTED_URL}
        assert len(collaborators.uploads) == 1

    def test_non_photo_update_is_ignored(self, client, collaborators):
        response = client.post(WEBHOOK_PATH, json={"update_id": 1, "message": {"text": "hi"}})

        assert response.status_code == 200
        assert response.json() == {"ok": True, "ignored": True}
        assert collaborators.downloads == []

    @pytest.mark.parametrize("payload", [[], "text", 5, True])
    def test_non_object_json_is_ignored(self, client, payload):
        response = client.post(WEBHOOK_PATH, json=payload)
        assert response.status_code == 200
        assert response.json() == {"ok": True, "ignored": True}

    def test_upload_failure_is_500(self, client, collaborators, store):
        collaborators.upload_error = HttpError("ImgBed upload HTTP 401", status=401)

        response = client.post(WEBHOOK_PATH, json=photo_update(42))

        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "ImgBed upload HTTP 401"}
        assert store.message_count == 0

    def test_reply_failure_still_ok(self, client, collaborators):
        collaborators.reply_error = HttpError("Telegram sendMessage HTTP 500", retryable=True, status=500)

        response = client.post(WEBHOOK_PATH, json=photo_update(42))

        assert response.status_code == 200
        assert response.json() == {"ok": True, "url": HOSTED_URL}

    def test_invalid_json_is_400(self, client, collaborators):
        response = client.post(
            WEBHOOK_PATH, content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "Invalid JSON payload"}
        assert collaborators.downloads == []

    def test_deeply_nested_json_is_400(self, client, collaborators):
        body = b"[" * 100_000 + b"]" * 100_000
        assert len(body) < MAX_BODY_BYTES

        response = client.post(WEBHOOK_PATH, content=body, headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "Invalid JSON payload"}
        assert collaborators.downloads == []

    def test_oversized_body_is_413(self, client):
        response = client.post(
            WEBHOOK_PATH,
            content=b" " * (MAX_BODY_BYTES + 1),
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 413
        assert response.json() == {"ok": False, "error": "Payload Too Large"}


class TestWebhookSecret:
    @pytest.fixture
    def secured(self, collaborators):
        settings = build_settings(telegram_webhook_secret="s3cret")
        app = create_app(settings, dependencies=collaborators.dependencies())
        with TestClient(app) as test_client:
            yield test_client

    def test_missing_secret_is_403(self, secured, collaborators):
        response = secured.post(WEBHOOK_PATH, json=photo_update(42))

        assert response.status_code == 403
        assert response.json() == {"ok": False, "error": "Invalid webhook secret"}
        assert collaborators.downloads == []

    def test_wrong_secret_is_403(self, secured):
        response = secured.post(WEBHOOK_PATH, json=photo_update(42), headers={SECRET_HEADER: "nope"})
        assert response.status_code == 403

    def test_matching_secret_is_accepted(self, secured):
        response = secured.post(WEBHOOK_PATH, json=photo_update(42), headers={SECRET_HEADER: "s3cret"})

        assert response.status_code == 200
        assert response.json() == {"ok": True, "url": HOSTED_URL}
