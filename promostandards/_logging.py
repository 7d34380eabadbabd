import logging
import os
from threading import Lock
from typing import Any

_SETUP_LOCK = Lock()
_SETUP_DONE = False
_ACCOUNT_KEYS = {"id", "username"}
ACCOUNT_VISIBLE_CHARS = 2
_SENSITIVE_KEYS = {
    "password",
    "secret",
    "token",
    "api_key",
    "apikey",
    "authorization",
}


def _resolve_log_level() -> int:
    level_name = os.getenv("PROMOSTANDARDS_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def _setup_default_logging() -> None:
    global _SETUP_DONE
    if _SETUP_DONE:
        return

    with _SETUP_LOCK:
        if _SETUP_DONE:
            return

        root_logger = logging.getLogger()
        if not root_logger.handlers:
            logging.basicConfig(
                level=_resolve_log_level(),
                format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            )

        _SETUP_DONE = True


def get_logger(name: str) -> logging.Logger:
    _setup_default_logging()
    return logging.getLogger(f"promostandards.{name}")


def _mask_account(value: Any) -> str:
    text = str(value)
    return f"{text[:ACCOUNT_VISIBLE_CHARS]}***" if len(text) > ACCOUNT_VISIBLE_CHARS else "***"


def _redact_value(value: Any) -> Any:
    if isinstance(value, dict):
        return redact_config(value)
    if isinstance(value, (list, tuple)):
        return [_redact_value(item) for item in value]
    return value


def redact_config(values: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``values`` safe for log lines.

    Secrets are replaced outright. Supplier account ids keep a short prefix
    so log lines from different accounts can still be told apart.
    """
    redacted: dict[str, Any] = {}
    for key, value in values.items():
        lowered = key.lower()
        if value is None:
            redacted[key] = None
        elif lowered in _SENSITIVE_KEYS:
            redacted[key] = "***"
        elif lowered in _ACCOUNT_KEYS and not isinstance(value, (dict, list, tuple)):
            redacted[key] = _mask_account(value)
        else:
            redacted[key] = _redact_value(value)
    return redacted
