"""
Image relay — main application.

FastAPI service receiving Telegram channel webhooks and relaying photos to
the image host. Run with:

    uvicorn imgrelay.main:create_app --factory
"""
from contextlib import asynccontextmanager

import httpx
import sentry_sdk
import uvicorn
from fastapi import FastAPI, Request
from starlette.exceptions import HTTPException as StarletteHTTPException

from imgrelay import __version__
from imgrelay.config import Settings, get_settings
from imgrelay.imgbed.client import ImgBedClient
from imgrelay.logging_config import get_logger, setup_logging
from imgrelay.storage.dedup_store import DedupStore, create_dedup_store
from imgrelay.telegram.bot_api import TelegramBotApi
from imgrelay.utils.http import RetryPolicy
from imgrelay.webhooks.orchestrator import WebhookDependencies, WebhookOrchestrator
from imgrelay.webhooks.router_factory import create_webhook_router, error_response

logger = get_logger(__name__)


def build_dependencies(settings: Settings, http_client: httpx.AsyncClient) -> WebhookDependencies:
    """
    Wire the real Telegram and image-host clients around one shared retry policy.
    httpx timeouts apply per read/write; the policy timeout caps each whole call.
    """
    retry_policy = RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay,
        timeout=settings.request_timeout,
    )
    bot_api = TelegramBotApi(
        http_client,
        bot_token=settings.telegram_bot_token,
        retry_policy=retry_policy,
        max_download_bytes=settings.max_upload_bytes,
        api_base_url=settings.telegram_api_base_url,
    )
    imgbed = ImgBedClient(
        http_client,
        base_url=settings.imgbed_base_url,
        upload_url=settings.imgbed_upload_url,
        upload_token=settings.imgbed_upload_token,
        retry_policy=retry_policy,
    )
    return WebhookDependencies(
        download=bot_api.download_file,
        upload=imgbed.upload,
        reply=bot_api.send_message,
    )


def init_sentry(settings: Settings) -> None:
    if not settings.sentry_dsn:
        return
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        traces_sample_rate=0.1,
        environment="development" if settings.log_level == "debug" else "production",
    )
    logger.info("sentry_initialized")


def create_app(
    settings: Settings | None = None,
    *,
    dedup_store: DedupStore | None = None,
    dependencies: WebhookDependencies | None = None,
) -> FastAPI:
    settings = settings or get_settings()

    # --- Logging / Sentry ---
    setup_logging(settings.log_level, settings.log_format)
    init_sentry(settings)

    # --- Pipeline ---
    if dedup_store is None:
        dedup_store = create_dedup_store(
            settings.dedup_store_type, max_entries=settings.dedup_max_entries
        )

    http_client: httpx.AsyncClient | None = None
    if dependencies is None:
        http_client = httpx.AsyncClient(timeout=settings.request_timeout)
        dependencies = build_dependencies(settings, http_client)

    orchestrator = WebhookOrchestrator(
        dedup_store=dedup_store,
        dependencies=dependencies,
        allowed_chat_ids=settings.allowed_chat_ids,
        enable_reply=settings.enable_channel_reply,
        reply_template=settings.channel_reply_template,
    )

    # --- Lifespan: close the shared HTTP client on shutdown ---
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "server_started",
            port=settings.port,
            enable_channel_reply=settings.enable_channel_reply,
            dedup_store_type=settings.dedup_store_type,
        )
        yield
        if http_client is not None:
            await http_client.aclose()
        logger.info("server_stopped")

    # --- App ---
    app = FastAPI(
        title="Telegram image relay",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.dedup_store = dedup_store
    app.state.orchestrator = orchestrator

    # --- Health check ---
    @app.get("/healthz")
    async def healthz():
        return {"ok": True}

    # --- Webhook ---
    app.include_router(create_webhook_router(orchestrator, settings.telegram_webhook_secret))

    # --- Errors: keep the {ok, error} envelope for framework errors too ---
    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            message = f"Not Found: {request.url.path}"
        else:
            message = str(exc.detail)
        return error_response(exc.status_code, message)

    return app


def run() -> None:
    """Console entry point."""
    settings = get_settings()
    uvicorn.run(
        "imgrelay.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
