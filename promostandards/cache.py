"""Response cache collaborator used by the service invoker."""

from __future__ import annotations

import time
from typing import Callable, Protocol

from ._logging import get_logger

LOGGER = get_logger("cache")


class ResponseCache(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class InMemoryResponseCache:
    """Dictionary backed cache. Expiry is decided by the caller, not here."""

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._entries.get(key)

    async def set(self, key: str, value: str) -> None:
        self._entries[key] = value

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        LOGGER.info("Clearing %s cached responses", len(self._entries))
        self._entries.clear()


def epoch_millis(clock: Callable[[], float] = time.time) -> int:
    return int(clock() * 1000)
