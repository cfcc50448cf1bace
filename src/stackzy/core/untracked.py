"""Report namespaces missing from the catalog to the catalog maintainers."""

import logging
from collections.abc import Callable

import httpx

from stackzy.core.analyzer import is_sub_namespace
from stackzy.models.report import AnalysisReport

logger = logging.getLogger(__name__)


class UntrackedLibrarySyncer:
    """Submits unknown library namespaces, one request per namespace.

    Off unless ``enabled`` is set.
    """

    def __init__(
        self,
        base_url: str,
        *,
        enabled: bool = False,
        api_key: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.enabled = enabled
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"x-api-key": self.api_key} if self.api_key else {}
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    @staticmethod
    def pending(report: AnalysisReport, remote_known: set[str]) -> list[str]:
        """Untracked namespaces that are neither known remotely nor the app's own."""
        return sorted(
            lib
            for lib in report.untracked_libraries
            if lib not in remote_known and not is_sub_namespace(lib, report.package_name)
        )

    async def sync(
        self,
        report: AnalysisReport,
        on_progress: Callable[[str, float], None] | None = None,
    ) -> int:
        """Submit the report's untracked libraries.

        ``on_progress`` gets the namespace being submitted and the fraction
        synced so far. Failures are logged and skipped.

        Returns:
            Number of namespaces submitted successfully.
        """
        if not self.enabled or not report.untracked_libraries:
            return 0

        async with self._client() as client:
            try:
                resp = await client.get("/untracked-libs")
                resp.raise_for_status()
                remote_known = {
                    item["package_names"] for item in resp.json() if "package_names" in item
                }
            except (httpx.HTTPError, ValueError, TypeError) as exc:
                logger.warning("Could not load remote untracked libs: %s", exc)
                return 0

            new_libs = self.pending(report, remote_known)
            synced = 0
            for lib in new_libs:
                if on_progress is not None:
                    on_progress(lib, synced / len(new_libs))
                try:
                    resp = await client.post("/untracked-libs", json={"package_names": lib})
                    resp.raise_for_status()
                except httpx.HTTPError as exc:
                    logger.debug("Failed to sync %s: %s", lib, exc)
                    continue
                synced += 1
                logger.debug("Synced untracked lib %s", lib)

        return synced
