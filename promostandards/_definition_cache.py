"""Process-wide cache of parsed interface definitions, keyed by definition URL."""

from threading import Lock
from typing import Callable, TypeVar

from ._logging import get_logger

T = TypeVar("T")

_CACHE_LOCK = Lock()
_DEFINITION_CACHE: dict[str, object] = {}
LOGGER = get_logger("definition_cache")


def _cache_key(url: str) -> str:
    return url.strip()


def get_or_create_definition(url: str, factory: Callable[[], T], *, reuse: bool = True) -> T:
    """Return the cached definition for url or build and store a new one.

    The factory runs outside the lock so one slow download does not block
    lookups for other URLs. Two concurrent misses may both build; the first
    stored value wins.
    """
    if not reuse:
        LOGGER.info("Definition reuse disabled for %s, loading fresh copy", url)
        return factory()

    key = _cache_key(url)
    with _CACHE_LOCK:
        cached = _DEFINITION_CACHE.get(key)
    if cached is not None:
        LOGGER.debug("Definition cache hit for %s", key)
        return cached  # type: ignore[return-value]

    definition = factory()
    with _CACHE_LOCK:
        stored = _DEFINITION_CACHE.setdefault(key, definition)
    LOGGER.info("Definition cache miss for %s, definition loaded", key)
    return stored  # type: ignore[return-value]


def clear_definitions() -> None:
    with _CACHE_LOCK:
        count = len(_DEFINITION_CACHE)
        _DEFINITION_CACHE.clear()

    LOGGER.info("Cleared %s cached interface definitions", count)
