"""Credentials and the standard PromoStandards auth header."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ._config import load_client_config
from ._logging import get_logger, redact_config
from .errors import PromoStandardsError

LOGGER = get_logger("auth")

MAX_CREDENTIAL_LENGTH = 64
KNOWN_WS_VERSIONS = ("1.0.0", "1.2.1", "2.0.0")
VERSION_KEYS = ("ws_version", "wsVersion", "version")


def _version_value(values: dict[str, Any]) -> Any:
    for key in VERSION_KEYS:
        if values.get(key) not in (None, ""):
            return values[key]
    return None


class Credentials(BaseModel):
    """Supplier account identifier, secret and protocol version tag.

    Validation runs eagerly on construction and raises an AUTH_ERROR
    PromoStandardsError, never a pydantic ValidationError. Instances are
    frozen so one value can be shared by every service using it.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    id: str
    password: str | None = None
    ws_version: str | None = Field(default=None, alias="wsVersion")
    include_password: bool = True

    @model_validator(mode="wrap")
    @classmethod
    def _as_auth_error(cls, data: Any, handler: Any) -> Any:
        try:
            return handler(data)
        except ValidationError as exc:
            raise PromoStandardsError.authentication(
                "Invalid credentials",
                {"errors": exc.errors(include_url=False, include_input=False)},
            ) from exc

    @model_validator(mode="before")
    @classmethod
    def _check_credentials(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise PromoStandardsError.authentication(
                "Credentials must be a key-value object",
                {"provided_type": type(data).__name__},
            )

        values = dict(data)
        identifier = values.get("id") or values.get("username")
        if not identifier:
            raise PromoStandardsError.authentication(
                "Missing required credential: id or username",
                {"provided": sorted(key for key, value in values.items() if value is not None)},
            )
        values["id"] = str(identifier)

        if len(values["id"]) > MAX_CREDENTIAL_LENGTH:
            raise PromoStandardsError.authentication(
                f"ID exceeds maximum length of {MAX_CREDENTIAL_LENGTH} characters",
                {"field": "id", "length": len(values["id"])},
            )

        # YAML and env loaders may hand over numbers for secrets and versions.
        password = values.get("password")
        if password is not None:
            values["password"] = str(password)
            if len(values["password"]) > MAX_CREDENTIAL_LENGTH:
                raise PromoStandardsError.authentication(
                    f"Password exceeds maximum length of {MAX_CREDENTIAL_LENGTH} characters",
                    {"field": "password", "length": len(values["password"])},
                )

        version = _version_value(values)
        values.pop("wsVersion", None)
        values.pop("version", None)
        values["ws_version"] = None if version is None else str(version)
        return values

    def build_auth_header(self, ws_version: str | None = None) -> dict[str, str]:
        version = ws_version or self.ws_version
        if not version:
            raise PromoStandardsError.authentication(
                "wsVersion is required for authentication",
                {"available_versions": list(KNOWN_WS_VERSIONS)},
            )

        header = {"wsVersion": version, "id": self.id}
        if self.include_password and self.password:
            header["password"] = self.password

        LOGGER.debug("Built auth header: %s", redact_config(header))
        return header

    def with_updates(self, **values: Any) -> Credentials:
        """Return a new validated instance with the given fields replaced."""
        merged = {
            "id": self.id,
            "password": self.password,
            "ws_version": self.ws_version,
            "include_password": self.include_password,
        }
        updates = {key: value for key, value in values.items() if value is not None}
        if "username" in updates:
            updates["id"] = updates.pop("username")

        # Any version spelling replaces the stored one.
        version = _version_value(updates)
        for key in VERSION_KEYS:
            updates.pop(key, None)
        if version is not None:
            updates["ws_version"] = version

        merged.update(updates)
        return Credentials.model_validate(merged)

    def redacted(self) -> dict[str, Any]:
        return redact_config(self.model_dump())

    @classmethod
    def from_env(cls, prefix: str = "PROMOSTANDARDS") -> Credentials | None:
        """Build credentials from <PREFIX>_ID/_USERNAME, _PASSWORD and _VERSION/_WS_VERSION."""
        values = load_client_config(env_prefix=prefix)
        credentials = {
            "id": values.get("id") or values.get("username"),
            "password": values.get("password"),
            "ws_version": values.get("version") or values.get("ws_version"),
        }

        if all(value is None for value in credentials.values()):
            LOGGER.info("No environment credentials found for prefix %s", prefix)
            return None

        return cls.model_validate(credentials)


def inject_auth(credentials: Credentials, payload: Any, ws_version: str | None = None) -> Any:
    """Merge the auth header into outgoing request data; auth fields win over payload fields."""
    header = credentials.build_auth_header(ws_version)

    if isinstance(payload, dict):
        # Auth keys lead the request element, as the PromoStandards schemas order them.
        return {**header, **{key: value for key, value in payload.items() if key not in header}}
    if isinstance(payload, list):
        return [header, *payload]
    return header
