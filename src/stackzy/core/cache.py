"""Remote result cache: previously computed reports keyed by fingerprint."""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from stackzy.exceptions import TransportError
from stackzy.models.report import CachedResult, PackageFingerprint

logger = logging.getLogger(__name__)

# Payload the results API sends back for an unknown fingerprint
NO_DATA_FOUND = "No data found"


def _error_message(resp: httpx.Response) -> str:
    """Pull a human-readable message out of an API error response."""
    try:
        payload = resp.json()
    except ValueError:
        payload = None

    if isinstance(payload, str) and payload:
        return payload
    if isinstance(payload, dict):
        for key in ("error", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value

    return resp.text.strip() or f"HTTP {resp.status_code}"


class ResultCache:
    """Client for the remote results table."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"x-api-key": self.api_key}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def lookup(self, fingerprint: PackageFingerprint) -> CachedResult | None:
        """Fetch a cached result.

        Returns:
            The cached result, or None when the API answers "No data found".

        Raises:
            TransportError: For every other failure, message verbatim.
        """
        params = {
            "package_name": fingerprint.package_name,
            "version_code": fingerprint.version_code,
            "stackzy_lib_version": fingerprint.analyzer_version,
        }
        try:
            async with self._client() as client:
                resp = await client.get("/results", params=params)
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc

        # The sentinel may arrive with any status, as JSON or as plain text
        message = _error_message(resp)
        if message == NO_DATA_FOUND:
            return None
        if resp.is_error:
            raise TransportError(message)

        try:
            payload: Any = resp.json()
        except ValueError as exc:
            raise TransportError(f"Malformed cache response: {exc}") from exc

        if isinstance(payload, dict) and "error" in payload:
            raise TransportError(str(payload["error"]))

        if isinstance(payload, dict) and "data" in payload:
            payload = payload["data"]
        if isinstance(payload, list):
            if not payload:
                return None
            payload = payload[0]

        try:
            result = CachedResult.model_validate(payload)
        except ValidationError as exc:
            raise TransportError(f"Malformed cache response: {exc}") from exc

        logger.info("Cache hit for %s (%s)", fingerprint.package_name, fingerprint.version_code)
        return result

    async def store(self, result: CachedResult) -> None:
        """Persist a result.

        Raises:
            TransportError: If the API rejects the write or is unreachable.
        """
        try:
            async with self._client() as client:
                resp = await client.post("/results", json=result.model_dump())
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc

        if resp.is_error:
            raise TransportError(_error_message(resp))

        logger.info("Stored result for %s", result.package_name)
