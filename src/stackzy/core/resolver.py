"""APK acquisition: pull from a device or download from the store."""

import asyncio
import contextlib
import logging
import os
import tempfile
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import assert_never

from stackzy.core.adb import ADBWrapper
from stackzy.core.store import StoreClient
from stackzy.exceptions import (
    ADBError,
    ProcessError,
    SourceUnavailableError,
    TransportError,
)
from stackzy.models.source import (
    AcquisitionSource,
    AndroidApp,
    DeviceSource,
    StoreAccount,
    StoreSource,
)
from stackzy.utils.cancel import CancelToken

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class ProgressTracker:
    """Forward download percentages, dropping repeats and regressions."""

    def __init__(self, on_progress: ProgressCallback):
        self._on_progress = on_progress
        self.last: int | None = None

    def update(self, percentage: int) -> None:
        percentage = max(0, min(100, percentage))
        if self.last is not None and percentage <= self.last:
            return
        self.last = percentage
        self._on_progress(percentage)

    @property
    def complete(self) -> bool:
        return self.last == 100


@contextlib.contextmanager
def _fresh_apk_file(prefix: str | None = None) -> Iterator[Path]:
    """Create an empty temp ``.apk`` file, deleted again if acquisition fails."""
    fd, name = tempfile.mkstemp(prefix=prefix, suffix=".apk")
    os.close(fd)
    path = Path(name)
    try:
        yield path
    except BaseException:
        path.unlink(missing_ok=True)
        raise


class SourceResolver:
    """Turns an AcquisitionSource into a local APK file."""

    def __init__(
        self,
        *,
        store: StoreClient | None = None,
        adb_factory: Callable[[str | None], ADBWrapper] = ADBWrapper,
        settle_delay: float = 2.0,
    ):
        """Initialize the resolver.

        Args:
            store: Store client used for StoreSource downloads.
            adb_factory: Builds an ADB wrapper for a device id.
            settle_delay: Seconds to wait after a store download hits 100%.
        """
        self.store = store or StoreClient()
        self.adb_factory = adb_factory
        self.settle_delay = settle_delay

    async def acquire(
        self,
        app: AndroidApp,
        source: AcquisitionSource,
        on_progress: ProgressCallback,
        cancel: CancelToken | None = None,
    ) -> Path:
        """Materialize the APK locally.

        ``on_progress`` receives strictly increasing percentages ending with
        100, which is always emitted before this returns.

        Raises:
            SourceUnavailableError: If the APK cannot be located.
            TransportError: If the transfer fails.
            AnalysisCancelledError: If ``cancel`` fires mid-transfer.
        """
        cancel = cancel or CancelToken()
        tracker = ProgressTracker(on_progress)

        match source:
            case DeviceSource(device_id=device_id):
                return await self._pull_from_device(app, device_id, tracker, cancel)
            case StoreSource(account=account):
                return await self._download_from_store(app, account, tracker, cancel)
            case _:
                assert_never(source)

    async def _pull_from_device(
        self,
        app: AndroidApp,
        device_id: str | None,
        tracker: ProgressTracker,
        cancel: CancelToken,
    ) -> Path:
        adb = self.adb_factory(device_id)
        try:
            await asyncio.to_thread(adb.ensure_device)
        except (ADBError, ProcessError) as exc:
            raise SourceUnavailableError(app.package_name, str(exc)) from exc

        remote_path = await asyncio.to_thread(adb.get_apk_path, app.package_name)
        if remote_path is None:
            raise SourceUnavailableError(app.package_name, "not installed on device")

        logger.info("Pulling %s from %s", remote_path, device_id or "device")
        with _fresh_apk_file() as apk_file:
            await adb.pull_file(remote_path, apk_file, tracker.update, cancel)
            tracker.update(100)
        return apk_file

    async def _download_from_store(
        self,
        app: AndroidApp,
        account: StoreAccount,
        tracker: ProgressTracker,
        cancel: CancelToken,
    ) -> Path:
        with _fresh_apk_file(prefix=app.package_name) as apk_file:
            downloads = self.store.download(account, app.package_name, apk_file)
            try:
                async for percentage in downloads:
                    cancel.raise_if_cancelled("APK download")
                    tracker.update(percentage)
            finally:
                await downloads.aclose()

            if not tracker.complete:
                raise TransportError(
                    f"Store download of {app.package_name} ended at {tracker.last or 0}%"
                )

            # Store reports completion before the file is flushed
            await asyncio.sleep(self.settle_delay)
            cancel.raise_if_cancelled("APK download")
        return apk_file
