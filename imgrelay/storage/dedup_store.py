"""
Dedup store — idempotency cache for the webhook pipeline.

Two independent mappings:
- message key (<chat_id>:<message_id>) → hosted URL: "was this post answered?"
- Telegram file_id → hosted URL: "was this file already uploaded?"

All operations are synchronous and must not fail under normal operation.
get_* returns None when the key is unknown; "" is a real stored value.
set_* overwrites unconditionally, callers make sure one logical event is
written once.
"""
from collections import OrderedDict
from typing import Protocol

from imgrelay.exceptions import DedupBackendNotImplementedError

DEDUP_BACKENDS = frozenset({"memory", "redis"})


class DedupStore(Protocol):
    def get_message_upload_url(self, message_key: str) -> str | None:
        ...

    def set_message_upload_url(self, message_key: str, uploaded_url: str) -> None:
        ...

    def get_file_upload_url(self, file_id: str) -> str | None:
        ...

    def set_file_upload_url(self, file_id: str, uploaded_url: str) -> None:
        ...


class _BoundedMap:
    """Insertion-ordered map; evicts the oldest entries beyond max_entries (0 = unbounded)."""

    def __init__(self, max_entries: int = 0) -> None:
        self._data: OrderedDict[str, str] = OrderedDict()
        self._max_entries = max_entries

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        if self._max_entries and len(self._data) > self._max_entries:
            self._data.popitem(last=False)

    def __len__(self) -> int:
        return len(self._data)


class MemoryDedupStore:
    """In-process store. Lives as long as the process; not shared between instances."""

    def __init__(self, max_entries: int = 0) -> None:
        self._message_to_url = _BoundedMap(max_entries)
        self._file_id_to_url = _BoundedMap(max_entries)

    def get_message_upload_url(self, message_key: str) -> str | None:
        return self._message_to_url.get(message_key)

    def set_message_upload_url(self, message_key: str, uploaded_url: str) -> None:
        self._message_to_url.set(message_key, uploaded_url)

    def get_file_upload_url(self, file_id: str) -> str | None:
        return self._file_id_to_url.get(file_id)

    def set_file_upload_url(self, file_id: str, uploaded_url: str) -> None:
        self._file_id_to_url.set(file_id, uploaded_url)

    @property
    def message_count(self) -> int:
        return len(self._message_to_url)

    @property
    def file_count(self) -> int:
        return len(self._file_id_to_url)


def create_dedup_store(store_type: str, *, max_entries: int = 0) -> DedupStore:
    """
    Build the configured backend. "redis" is a recognised but unimplemented
    backend: fail fast instead of silently falling back to memory.
    """
    if store_type == "memory":
        return MemoryDedupStore(max_entries=max_entries)
    if store_type in DEDUP_BACKENDS:
        raise DedupBackendNotImplementedError(store_type)
    raise ValueError(f"Invalid DEDUP_STORE_TYPE: {store_type}")
