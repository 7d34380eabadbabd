from pathlib import Path
from typing import Any

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field

from .._config import load_client_config

DEFAULT_API_URL = "https://promostandards.org/WebServiceRepository/WebServiceRepository.svc/json"
DEFAULT_CACHE_TTL_SECONDS = 3600.0
DEFAULT_ENV_PREFIX = "ONESOURCE"


class DiscoveryConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    api_url: AnyHttpUrl = AnyHttpUrl(DEFAULT_API_URL)
    api_key: str | None = None
    timeout_seconds: float = Field(default=30.0, gt=0)
    cache_ttl_seconds: float = Field(default=DEFAULT_CACHE_TTL_SECONDS, ge=0)
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def base_url(self) -> str:
        return str(self.api_url).rstrip("/")


def resolve_discovery_config(
    config: dict[str, Any] | None = None,
    *,
    file_path: str | Path | None = None,
    env_prefix: str | None = DEFAULT_ENV_PREFIX,
    api_url: str | None = None,
    api_key: str | None = None,
    timeout_seconds: float | None = None,
    cache_ttl_seconds: float | None = None,
) -> DiscoveryConfig:
    merged_config = load_client_config(
        config,
        file_path=file_path,
        env_prefix=env_prefix,
        overrides={
            "api_url": api_url,
            "api_key": api_key,
            "timeout_seconds": timeout_seconds,
            "cache_ttl_seconds": cache_ttl_seconds,
        },
    )
    return DiscoveryConfig.model_validate(merged_config)
