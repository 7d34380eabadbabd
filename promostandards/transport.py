"""HTTP transport for SOAP requests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from ._logging import get_logger
from .errors import PromoStandardsError

LOGGER = get_logger("transport")

DEFAULT_TIMEOUT_SECONDS = 30.0
SOAP_CONTENT_TYPE = "text/xml; charset=utf-8"


@dataclass(frozen=True)
class TransportResponse:
    status: int
    data: str
    headers: dict[str, str] = field(default_factory=dict)


def build_soap_headers(operation: str, extra: dict[str, str] | None = None) -> dict[str, str]:
    headers = {"Content-Type": SOAP_CONTENT_TYPE, "SOAPAction": operation}
    if extra:
        headers.update(extra)
    return headers


class SoapTransport:
    """POST SOAP envelopes over httpx.

    Non-2xx responses raise a NETWORK_ERROR whose details keep the status and
    the raw response body, so SOAP faults sent with HTTP 500 stay readable.
    httpx timeouts raise TIMEOUT_ERROR.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.headers = dict(headers or {})
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds, headers=self.headers)
            LOGGER.info("SOAP transport client created timeout=%ss", self.timeout_seconds)
        return self._client

    async def post(self, url: str, body: str, headers: dict[str, str] | None = None) -> TransportResponse:
        request_headers = {**self.headers, **(headers or {})}
        LOGGER.debug("POST %s action=%s", url, request_headers.get("SOAPAction"))

        try:
            response = await self._get_client().post(
                url,
                content=body.encode("utf-8"),
                headers=request_headers,
                timeout=self.timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise PromoStandardsError.timeout(
                f"Request timed out after {self.timeout_seconds}s",
                self.timeout_seconds,
                {"url": url},
            ) from exc
        except httpx.HTTPError as exc:
            raise PromoStandardsError.network(
                f"Network error: {exc}",
                {"url": url, "original_error": str(exc)},
            ) from exc

        result = TransportResponse(
            status=response.status_code,
            data=response.text,
            headers=dict(response.headers),
        )

        if not response.is_success:
            LOGGER.warning("SOAP request to %s failed with HTTP %s", url, response.status_code)
            raise PromoStandardsError.network(
                f"HTTP {response.status_code}",
                {"url": url, "status": response.status_code, "response": result.data, "headers": result.headers},
            )

        return result

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            LOGGER.info("SOAP transport client closed")
        self._client = None


def response_body_from_error(error: PromoStandardsError) -> Any:
    """Return the raw HTTP body a transport failure carried, if any."""
    return error.details.get("response")
