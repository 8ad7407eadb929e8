"""
Idempotency helpers for webhook processing.

Message key format: <chat_id>:<message_id>
One key per delivered channel post, however many times Telegram delivers it
(webhook retries, edits of the same message).
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


def make_message_key(chat_id: str, message_id: int) -> str:
    return f"{chat_id}:{message_id}"


class KeyedLock:
    """
    In-flight lock table: one asyncio.Lock per key that is currently held or
    awaited. Entries are dropped as soon as nobody uses them, so the table
    only grows with concurrency, not with traffic.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, key: str) -> bool:
        return key in self._locks
