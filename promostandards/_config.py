"""Configuration loader utilities shared by the client, discovery and CLI layers."""

import json
import os
from pathlib import Path
from typing import Any

from ._logging import get_logger, redact_config
from .errors import PromoStandardsError

LOGGER = get_logger("config")


def _read_prefixed_env(prefix: str) -> dict[str, Any]:
    """Read environment keys matching <PREFIX>_* and normalize key names."""
    prefix_token = f"{prefix.upper()}_"
    values: dict[str, Any] = {}

    for key, value in os.environ.items():
        if key.startswith(prefix_token):
            normalized_key = key.removeprefix(prefix_token).lower()
            values[normalized_key] = value

    LOGGER.info("Loaded %s config keys from environment prefix %s", len(values), prefix_token)
    return values


def _validate_mapping_root(data: Any, source: str) -> dict[str, Any]:
    """Ensure configuration files deserialize to a dictionary root."""
    if isinstance(data, dict):
        return data
    raise PromoStandardsError.configuration(
        "Config file must contain a key-value object at the root",
        {"file_path": source},
    )


def read_config_file(file_path: str | Path | None) -> dict[str, Any]:
    """Read a JSON or YAML config file when provided, otherwise return an empty mapping."""
    if not file_path:
        return {}

    path = Path(file_path)
    if not path.exists():
        LOGGER.error("Config file not found: %s", file_path)
        raise FileNotFoundError(f"Config file not found: {file_path}")

    suffix = path.suffix.lower()
    content = path.read_text(encoding="utf-8")

    if suffix == ".json":
        data = json.loads(content)
    elif suffix in {".yaml", ".yml"}:
        import yaml

        data = yaml.safe_load(content)
    else:
        raise PromoStandardsError.configuration(
            "Unsupported config format. Use JSON (.json) or YAML (.yaml/.yml).",
            {"file_path": str(path)},
        )

    LOGGER.info("Loaded config file %s", file_path)
    return _validate_mapping_root(data, str(path))


def _not_none_values(values: dict[str, Any] | None) -> dict[str, Any]:
    """Drop keys with None values to avoid overriding previous layers."""
    if not values:
        return {}
    return {key: value for key, value in values.items() if value is not None}


def _merge_config_layers(layers: list[dict[str, Any]]) -> dict[str, Any]:
    """Merge config dictionaries in order where last layer wins."""
    merged: dict[str, Any] = {}
    for layer in layers:
        merged.update(layer)
    return merged


def _ensure_required_keys(config: dict[str, Any], required: tuple[str, ...]) -> None:
    missing = [key for key in required if config.get(key) in (None, "")]
    if missing:
        joined = ", ".join(missing)
        LOGGER.error("Required config keys missing: %s", joined)
        raise PromoStandardsError.configuration(
            f"Missing required config keys: {joined}",
            {"missing": missing},
        )


def load_client_config(
    config: dict[str, Any] | None = None,
    *,
    file_path: str | Path | None = None,
    env_prefix: str | None = None,
    required: tuple[str, ...] = (),
    defaults: dict[str, Any] | None = None,
    overrides: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Resolve final config from defaults, file, env, config, and overrides.

    This is the only place that reads process state. The core components
    receive the plain mapping it returns and never look at the environment.
    """
    env_config = _read_prefixed_env(env_prefix) if env_prefix else {}
    merged = _merge_config_layers(
        [
            defaults or {},
            read_config_file(file_path),
            env_config,
            config or {},
            _not_none_values(overrides),
        ]
    )

    _ensure_required_keys(merged, required)
    LOGGER.info("Client config resolved: %s", redact_config(merged))
    return merged
