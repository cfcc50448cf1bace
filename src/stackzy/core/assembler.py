"""Report assembly: cache projection, APK relocation and write-back."""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError

from stackzy.core.cache import ResultCache
from stackzy.exceptions import CatalogUnavailableError, StackzyError, TransportError
from stackzy.models.library import LibraryCatalog
from stackzy.models.report import (
    AnalysisReport,
    CachedResult,
    GradleInfo,
    PackageFingerprint,
    Platform,
)

logger = logging.getLogger(__name__)


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class ReportAssembler:
    """Turns analyzer output or a cache hit into the final report."""

    def __init__(self, catalog: LibraryCatalog | None, cache: ResultCache | None = None):
        self.catalog = catalog
        self.cache = cache
        self._pending: set[asyncio.Task[None]] = set()

    def from_cached(self, result: CachedResult) -> AnalysisReport:
        """Rebuild a report from its cached projection.

        Untracked libraries are not cached, so they are always empty here.

        Raises:
            CatalogUnavailableError: If the catalog is missing or empty.
            StackzyError: If the cached gradle info is unreadable.
        """
        if not self.catalog:
            raise CatalogUnavailableError()

        try:
            gradle_info = GradleInfo.model_validate_json(result.gradle_info_json)
        except ValidationError as exc:
            raise StackzyError(f"Cached gradle info is unreadable: {exc}") from exc

        return AnalysisReport(
            app_name=result.app_name,
            package_name=result.package_name,
            platform=Platform.from_class_name(result.platform),
            libraries=self.catalog.filter_packages(_split_csv(result.lib_packages)),
            untracked_libraries=frozenset(),
            apk_size_in_mb=result.apk_size_in_mb,
            assets_dir=None,
            permissions=_split_csv(result.permissions),
            gradle_info=gradle_info,
        )

    @staticmethod
    def to_cached(report: AnalysisReport, fingerprint: PackageFingerprint) -> CachedResult:
        """Project a report into the flat form the results API stores."""
        return CachedResult(
            app_name=report.app_name,
            package_name=report.package_name,
            platform=report.platform.value,
            lib_packages=",".join(lib.package_name for lib in report.libraries),
            permissions=",".join(report.permissions),
            apk_size_in_mb=report.apk_size_in_mb,
            gradle_info_json=report.gradle_info.model_dump_json(),
            version_code=fingerprint.version_code,
            stackzy_lib_version=fingerprint.analyzer_version,
        )

    @staticmethod
    def relocate_apk(
        report: AnalysisReport, apk_file: Path, decompiled_dir: Path
    ) -> Path | None:
        """Move the APK next to its decompiled sources.

        Returns the new path, or None if the move failed (logged, not raised).
        """
        version_name = report.gradle_info.version_name or "unknown"
        destination = decompiled_dir / f"{report.package_name}_{version_name}.apk"
        try:
            return apk_file.replace(destination)
        except OSError as exc:
            logger.warning("Could not move %s to %s: %s", apk_file, destination, exc)
            return None

    def schedule_write_back(
        self,
        report: AnalysisReport,
        fingerprint: PackageFingerprint,
        on_failure: Callable[[str], None] | None = None,
    ) -> asyncio.Task[None] | None:
        """Store the report in the result cache without blocking delivery.

        Returns the background task, or None when there is no cache.
        """
        if self.cache is None:
            return None

        result = self.to_cached(report, fingerprint)
        cache = self.cache

        async def _write() -> None:
            try:
                await cache.store(result)
            except TransportError as exc:
                logger.warning("Saving result for %s failed: %s", report.package_name, exc)
                if on_failure is not None:
                    on_failure(str(exc))

        task = asyncio.get_running_loop().create_task(_write())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for outstanding cache writes."""
        if self._pending:
            await asyncio.gather(*self._pending)
