"""
Webhook router factory — creates the POST /telegram/webhook endpoint.

Pipeline for every incoming update:
1. Verify Telegram secret token (only when one is configured) → 403 if invalid
2. Read and decode the JSON body → 413 if too large, 400 if not JSON
3. Hand the payload to the orchestrator
4. Map the outcome to the response body
Telegram always gets a definitive status; malformed payloads never 500.
"""
import json

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from imgrelay.logging_config import get_logger
from imgrelay.webhooks.orchestrator import OutcomeStatus, WebhookOrchestrator, WebhookOutcome

logger = get_logger(__name__)

WEBHOOK_PATH = "/telegram/webhook"
SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"
MAX_BODY_BYTES = 512 * 1024


class WebhookResponse(BaseModel):
    ok: bool
    ignored: bool | None = None
    dedup: bool | None = None
    url: str | None = None
    error: str | None = None


def error_response(status_code: int, message: str) -> JSONResponse:
    body = WebhookResponse(ok=False, error=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def outcome_response(outcome: WebhookOutcome) -> JSONResponse:
    if outcome.status is OutcomeStatus.FAILED:
        return error_response(500, outcome.error or "Internal Server Error")

    if outcome.status is OutcomeStatus.IGNORED:
        body = WebhookResponse(ok=True, ignored=True)
    elif outcome.status is OutcomeStatus.DEDUPLICATED:
        body = WebhookResponse(ok=True, dedup=True, url=outcome.url)
    else:
        body = WebhookResponse(ok=True, url=outcome.url)
    return JSONResponse(status_code=200, content=body.model_dump(exclude_none=True))


def create_webhook_router(
    orchestrator: WebhookOrchestrator,
    webhook_secret: str | None = None,
) -> APIRouter:
    """
    Creates a FastAPI router with the POST /telegram/webhook endpoint.

    Args:
        orchestrator: runs the relay pipeline for a decoded update
        webhook_secret: expected X-Telegram-Bot-Api-Secret-Token, None disables the check
    """
    router = APIRouter()

    @router.post(WEBHOOK_PATH)
    async def telegram_webhook(request: Request):
        # 1. Verify secret
        if webhook_secret and request.headers.get(SECRET_HEADER, "") != webhook_secret:
            logger.warning("telegram_webhook_bad_secret", client=request.client.host if request.client else None)
            return error_response(403, "Invalid webhook secret")

        # 2. Decode body
        raw = await request.body()
        if len(raw) > MAX_BODY_BYTES:
            return error_response(413, "Payload Too Large")
        try:
            payload = json.loads(raw)
        except (ValueError, RecursionError):
            # RecursionError: nesting deeper than the decoder can follow
            logger.warning("telegram_webhook_invalid_json", bytes=len(raw))
            return error_response(400, "Invalid JSON payload")

        # 3-4. Run pipeline, map outcome
        outcome = await orchestrator.handle(payload)
        return outcome_response(outcome)

    return router
