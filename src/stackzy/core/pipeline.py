"""Analysis pipeline: cache lookup, acquisition, decompile, analysis, write-back."""

import asyncio
import functools
import logging
import weakref
from collections.abc import Callable
from pathlib import Path
from typing import Any

from stackzy.core.adb import ADBWrapper
from stackzy.core.analyzer import LibraryAnalyzer
from stackzy.core.assembler import ReportAssembler
from stackzy.core.cache import ResultCache
from stackzy.core.decompiler import APKDecompiler, decompiled_dir_for
from stackzy.core.resolver import SourceResolver
from stackzy.core.store import StoreClient
from stackzy.core.untracked import UntrackedLibrarySyncer
from stackzy.exceptions import CatalogUnavailableError, PipelineBusyError, StackzyError
from stackzy.models.library import LibraryCatalog
from stackzy.models.report import AnalysisReport, PackageFingerprint
from stackzy.models.source import AcquisitionSource, AndroidApp, StoreSource
from stackzy.models.state import PipelineState
from stackzy.utils.cancel import CancelToken
from stackzy.utils.config import StackzyConfig

logger = logging.getLogger(__name__)

# One lock per package name: runs for the same package share a decompile dir
_package_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
    weakref.WeakValueDictionary()
)


def _package_lock(package_name: str) -> asyncio.Lock:
    lock = _package_locks.get(package_name)
    if lock is None:
        lock = asyncio.Lock()
        _package_locks[package_name] = lock
    return lock


class StateChannel:
    """Single-writer, multi-reader holder of the current PipelineState."""

    def __init__(self) -> None:
        self._state = PipelineState()
        self._subscribers: list[Callable[[PipelineState], None]] = []

    @property
    def value(self) -> PipelineState:
        return self._state

    def subscribe(self, callback: Callable[[PipelineState], None]) -> Callable[[], None]:
        """Register ``callback``; it is called with the current state right away.

        Returns a function that unsubscribes it.
        """
        self._subscribers.append(callback)
        callback(self._state)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, **changes: Any) -> None:
        self._state = self._state.model_copy(update=changes)
        for callback in list(self._subscribers):
            callback(self._state)


class AnalysisPipeline:
    """Analyzes one app from one acquisition source.

    The (app, source) pair is fixed for the pipeline's lifetime. Runs are
    sequential: starting one while another is in flight raises
    PipelineBusyError.
    """

    def __init__(
        self,
        app: AndroidApp,
        source: AcquisitionSource,
        *,
        config: StackzyConfig,
        catalog: LibraryCatalog | None,
        cache: ResultCache | None = None,
        resolver: SourceResolver | None = None,
        syncer: UntrackedLibrarySyncer | None = None,
        apktool: str = "apktool",
        work_root: Path | None = None,
    ):
        self.app = app
        self.source = source
        self.config = config
        self.catalog = catalog
        self.cache = cache
        self.resolver = resolver or SourceResolver(settle_delay=config.settle_delay)
        self.syncer = syncer
        self.apktool = apktool
        self.work_root = work_root
        self.assembler = ReportAssembler(catalog, cache)
        self.state = StateChannel()
        self._running = asyncio.Lock()
        self._cancel = CancelToken()

    @classmethod
    def from_config(
        cls,
        app: AndroidApp,
        source: AcquisitionSource,
        catalog: LibraryCatalog | None,
        config: StackzyConfig,
        *,
        adb: str = "adb",
        **kwargs: Any,
    ) -> "AnalysisPipeline":
        """Wire the HTTP and ADB collaborators from configuration.

        ``adb`` is the adb executable used for device pulls.
        """
        cache = ResultCache(
            config.results_url, api_key=config.api_key, timeout=config.request_timeout
        )
        resolver = SourceResolver(
            store=StoreClient(config.store_url, timeout=config.request_timeout),
            adb_factory=functools.partial(ADBWrapper, adb_path=adb),
            settle_delay=config.settle_delay,
        )
        syncer = UntrackedLibrarySyncer(
            config.results_url,
            enabled=config.untracked_sync_enabled,
            api_key=config.api_key,
            timeout=config.request_timeout,
        )
        return cls(
            app,
            source,
            config=config,
            catalog=catalog,
            cache=cache,
            resolver=resolver,
            syncer=syncer,
            **kwargs,
        )

    @property
    def decompiled_dir(self) -> Path:
        return decompiled_dir_for(self.app.package_name, self.work_root)

    @property
    def fingerprint(self) -> PackageFingerprint | None:
        if self.app.version_code is None:
            return None
        return PackageFingerprint(
            package_name=self.app.package_name,
            version_code=self.app.version_code,
            analyzer_version=self.config.analyzer_version,
        )

    def cancel(self) -> None:
        """Abort the in-flight download or decompile."""
        self._cancel.cancel()

    async def run(self) -> AnalysisReport:
        """Produce the report, from the cache when possible.

        Raises:
            StackzyError: Any fatal error; also published as ``fatal_error``.
            PipelineBusyError: If a run is already in progress.
        """
        if self._running.locked():
            raise PipelineBusyError(self.app.package_name)

        async with self._running, _package_lock(self.app.package_name):
            self._cancel = CancelToken()
            self.state.publish(fatal_error=None, report=None, warnings=())
            try:
                report = await self._run()
            except StackzyError as exc:
                logger.error("Analysis of %s failed: %s", self.app.package_name, exc)
                self.state.publish(fatal_error=str(exc), loading_message=None, report=None)
                raise

        self.state.publish(report=report, loading_message=None)
        return report

    async def open_source_code(self) -> Path:
        """Return the decompiled directory, decompiling again if it is gone.

        A repeat decompile is display-only: it never writes the cache.
        """
        target = self.decompiled_dir
        if target.is_dir() and any(target.iterdir()):
            return target

        if self._running.locked():
            raise PipelineBusyError(self.app.package_name)

        async with self._running, _package_lock(self.app.package_name):
            self._cancel = CancelToken()
            try:
                apk_file = await self._acquire()
                try:
                    await self._decompile(apk_file)
                finally:
                    apk_file.unlink(missing_ok=True)
            except StackzyError as exc:
                self.state.publish(fatal_error=str(exc), loading_message=None)
                raise
            self.state.publish(loading_message=None)
        return target

    async def wait_for_background(self) -> None:
        """Wait for cache writes started by earlier runs."""
        await self.assembler.drain()

    async def _run(self) -> AnalysisReport:
        fingerprint = self.fingerprint
        if (
            fingerprint is not None
            and self.config.caching_enabled
            and self.cache is not None
        ):
            self.state.publish(loading_message="Analysing previous results...")
            cached = await self.cache.lookup(fingerprint)
            if cached is not None:
                report = self.assembler.from_cached(cached)
                await self._on_report_ready(report)
                return report
            logger.info("No cached result for %s, decompiling from scratch", fingerprint)

        return await self._decompile_from_scratch()

    async def _decompile_from_scratch(self) -> AnalysisReport:
        if not self.catalog:
            raise CatalogUnavailableError()

        apk_file = await self._acquire()
        relocated = None
        try:
            decompiled_dir = await self._decompile(apk_file)

            self.state.publish(loading_message="Analysing...")
            report = LibraryAnalyzer(self.catalog).analyze(
                self.app.package_name, apk_file, decompiled_dir
            )

            self.state.publish(loading_message="Hold on please...")
            relocated = self.assembler.relocate_apk(report, apk_file, decompiled_dir)
        finally:
            if relocated is None:
                apk_file.unlink(missing_ok=True)

        fingerprint = self.fingerprint
        if (
            fingerprint is not None
            and self.config.caching_enabled
            and self.cache is not None
        ):
            self.state.publish(loading_message="Saving result...")
            self.assembler.schedule_write_back(report, fingerprint, self._add_warning)

        await self._on_report_ready(report)
        return report

    async def _acquire(self) -> Path:
        is_store = isinstance(self.source, StoreSource)
        if is_store:
            self.state.publish(loading_message="Initialising download...")
        else:
            self.state.publish(loading_message="Fetching APK...")

        def _on_progress(percentage: int) -> None:
            if percentage == 100:
                message = "Preparing APK for decompiling..."
            elif is_store:
                message = f"Downloading APK... {percentage}%"
            else:
                message = f"Pulling APK {percentage}% ..."
            self.state.publish(loading_message=message)

        return await self.resolver.acquire(self.app, self.source, _on_progress, self._cancel)

    async def _decompile(self, apk_file: Path) -> Path:
        self.state.publish(loading_message="Decompiling...")
        decompiler = APKDecompiler(apk_file, apktool=self.apktool)
        return await decompiler.decompile(
            self.decompiled_dir,
            lambda line: self.state.publish(loading_message=f"Decompiling... ({line})"),
            self._cancel,
        )

    async def _on_report_ready(self, report: AnalysisReport) -> None:
        if self.syncer is None or not self.syncer.enabled:
            return

        def _on_sync_progress(lib: str, fraction: float) -> None:
            self.state.publish(
                loading_message=f"Adding {lib} to untracked libs... {round(fraction * 100)}%"
            )

        await self.syncer.sync(report, _on_sync_progress)

    def _add_warning(self, message: str) -> None:
        self.state.publish(warnings=(*self.state.value.warnings, message))
