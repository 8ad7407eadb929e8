"""
Register (or inspect) the Telegram webhook for the relay bot.
Run once after deploying:

    python -m scripts.set_webhook set
    python -m scripts.set_webhook info
"""
import argparse
import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from telegram import Bot

from imgrelay.config import get_settings

ALLOWED_UPDATES = ["channel_post", "edited_channel_post"]


def _bot() -> Bot:
    settings = get_settings()
    return Bot(
        token=settings.telegram_bot_token,
        base_url=f"{settings.telegram_api_base_url}/bot",
    )


async def set_webhook() -> int:
    settings = get_settings()
    if not settings.telegram_webhook_url:
        print("ERROR: TELEGRAM_WEBHOOK_URL is not set")
        return 1

    async with _bot() as bot:
        result = await bot.set_webhook(
            url=settings.telegram_webhook_url,
            allowed_updates=ALLOWED_UPDATES,
            secret_token=settings.telegram_webhook_secret,
        )
        info = await bot.get_webhook_info()

    print(f"URL: {settings.telegram_webhook_url}")
    print(f"Result: {result}")
    print(f"Allowed updates: {info.allowed_updates}")
    print(f"Pending updates: {info.pending_update_count}")
    return 0


async def webhook_info() -> int:
    async with _bot() as bot:
        info = await bot.get_webhook_info()

    print(f"URL: {info.url or '-'}")
    print(f"Allowed updates: {info.allowed_updates}")
    print(f"Pending updates: {info.pending_update_count}")
    if info.last_error_message:
        print(f"Last error: {info.last_error_message} ({info.last_error_date})")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="set_webhook")
    parser.add_argument("command", choices=["set", "info"])
    args = parser.parse_args(argv)

    try:
        if args.command == "set":
            return asyncio.run(set_webhook())
        return asyncio.run(webhook_info())
    except Exception as e:
        print(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
