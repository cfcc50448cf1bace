"""Store download session over HTTP.

The delivery endpoint is expected to stream the APK for
``GET {store_url}/apps/{package}/download`` with a ``Content-Length``.
"""

import logging
from collections.abc import AsyncIterator
from pathlib import Path

import httpx

from stackzy.exceptions import SourceUnavailableError, TransportError
from stackzy.models.source import StoreAccount

logger = logging.getLogger(__name__)

DEFAULT_STORE_URL = "https://play-delivery.stackzy.dev/api/v1"
CHUNK_SIZE = 64 * 1024


class StoreClient:
    """Download APKs from the store with an account credential."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or DEFAULT_STORE_URL).rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _headers(self, account: StoreAccount) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {account.token}",
            "X-Account-Email": account.email,
            "Accept-Language": account.locale.replace("_", "-"),
        }
        if account.gsf_id:
            headers["X-GSF-ID"] = account.gsf_id
        return headers

    async def download(
        self,
        account: StoreAccount,
        package_name: str,
        destination: Path,
    ) -> AsyncIterator[int]:
        """Stream the APK into ``destination``, yielding percent complete.

        Raises:
            SourceUnavailableError: If the store does not offer the package.
            TransportError: On any other HTTP or network failure.
        """
        url = f"{self.base_url}/apps/{package_name}/download"
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            try:
                async with client.stream(
                    "GET", url, headers=self._headers(account)
                ) as resp:
                    if resp.status_code == 404:
                        raise SourceUnavailableError(
                            package_name, "not available in the store"
                        )
                    if resp.is_error:
                        body = (await resp.aread()).decode(errors="replace")
                        raise TransportError(
                            body.strip() or f"Store returned HTTP {resp.status_code}"
                        )

                    total = int(resp.headers.get("Content-Length") or 0)
                    received = 0
                    yield 0
                    with destination.open("wb") as out:
                        async for chunk in resp.aiter_bytes(CHUNK_SIZE):
                            out.write(chunk)
                            received += len(chunk)
                            if total:
                                yield min(received * 100 // total, 100)
                    logger.debug("Downloaded %d bytes for %s", received, package_name)
                    yield 100
            except httpx.HTTPError as exc:
                raise TransportError(str(exc) or exc.__class__.__name__) from exc
