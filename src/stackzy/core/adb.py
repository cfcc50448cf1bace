"""ADB wrapper for locating and pulling installed APKs."""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from pathlib import Path

from stackzy.exceptions import (
    ADBError,
    AnalysisCancelledError,
    DeviceNotFoundError,
    ProcessError,
    TransportError,
)
from stackzy.models.source import AndroidApp, Device, DeviceState
from stackzy.utils.cancel import CancelToken, wait_or_cancel
from stackzy.utils.process import run_tool

logger = logging.getLogger(__name__)

PULL_CHUNK_SIZE = 64 * 1024


class ADBWrapper:
    """Wrapper for ADB commands against one device."""

    def __init__(self, device_id: str | None = None, adb_path: str = "adb"):
        """Initialize ADB wrapper.

        Args:
            device_id: Optional device ID to target. If None, uses default device.
            adb_path: adb executable.
        """
        self.device_id = device_id
        self.adb_path = adb_path

    def _command(self, *args: str) -> list[str]:
        cmd = [self.adb_path]
        if self.device_id:
            cmd.extend(["-s", self.device_id])
        cmd.extend(args)
        return cmd

    def _adb(self, *args: str, check: bool = True) -> list[str]:
        """Run an ADB command and return output lines."""
        return run_tool(self._command(*args), check=check).lines

    def list_devices(self) -> list[Device]:
        """List all connected ADB devices."""
        result = run_tool([self.adb_path, "devices", "-l"])
        devices = []

        for line in result.lines[1:]:  # Skip header line
            parts = line.split()
            if len(parts) < 2:
                continue

            try:
                state = DeviceState(parts[1])
            except ValueError:
                state = DeviceState.UNKNOWN

            model = None
            for part in parts[2:]:
                if part.startswith("model:"):
                    model = part.split(":", 1)[1]

            devices.append(Device(id=parts[0], state=state, model=model))

        return devices

    def ensure_device(self) -> Device:
        """Ensure the target device is available and return it.

        Raises:
            DeviceNotFoundError: If no device is connected or device not found.
        """
        devices = self.list_devices()

        if self.device_id:
            for device in devices:
                if device.id == self.device_id:
                    if not device.is_available:
                        raise DeviceNotFoundError(
                            f"Device {self.device_id} is {device.state.value}"
                        )
                    return device
            raise DeviceNotFoundError(f"Device not found: {self.device_id}")

        available = [d for d in devices if d.is_available]
        if not available:
            raise DeviceNotFoundError("No devices connected")

        if len(available) > 1:
            ids = [d.id for d in available]
            raise DeviceNotFoundError(
                f"Multiple devices connected: {', '.join(ids)}. "
                "Use --device to specify which one."
            )

        return available[0]

    def get_apk_path(self, package_name: str) -> str | None:
        """Resolve the base APK path on the device, or None if not installed."""
        try:
            lines = self._adb("shell", "pm", "path", package_name)
        except ProcessError as exc:
            logger.debug("pm path failed for %s: %s", package_name, exc)
            return None

        paths = [
            line.split(":", 1)[1] for line in lines if line.startswith("package:")
        ]
        # Prefer base.apk over splits
        for path in paths:
            if "split_" not in Path(path).name:
                return path
        return paths[0] if paths else None

    def get_app(self, package_name: str) -> AndroidApp:
        """Describe an installed package, including its version code."""
        version_name = None
        version_code = None

        try:
            dumpsys = self._adb("shell", "dumpsys", "package", package_name)
        except ProcessError as exc:
            raise ADBError(f"Failed to inspect {package_name}: {exc}") from exc

        for line in dumpsys:
            line = line.strip()
            if line.startswith("versionName=") and version_name is None:
                version_name = line.split("=", 1)[1]
            elif line.startswith("versionCode=") and version_code is None:
                # Format: versionCode=123 minSdk=...
                version_str = line.split("=", 1)[1].split()[0]
                with contextlib.suppress(ValueError):
                    version_code = int(version_str)

        return AndroidApp(
            package_name=package_name,
            version_name=version_name,
            version_code=version_code,
        )

    def remote_file_size(self, remote_path: str) -> int:
        """Size in bytes of a file on the device."""
        try:
            output = self._adb("shell", "stat", "-c", "%s", remote_path)
            return int(output[0])
        except (ProcessError, IndexError, ValueError) as exc:
            raise TransportError(f"Unable to stat {remote_path}: {exc}") from exc

    async def pull_file(
        self,
        remote_path: str,
        destination: Path,
        on_progress: Callable[[int], None],
        cancel: CancelToken | None = None,
    ) -> None:
        """Copy a device file to ``destination``, reporting percent complete.

        Raises:
            TransportError: If the transfer fails or comes up short.
            AnalysisCancelledError: If cancelled mid-transfer.
        """
        total = await asyncio.to_thread(self.remote_file_size, remote_path)
        command = self._command("exec-out", "cat", remote_path)

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise TransportError(f"Command not found: {self.adb_path}") from exc

        async def _copy() -> int:
            assert proc.stdout is not None
            written = 0
            with destination.open("wb") as out:
                while chunk := await proc.stdout.read(PULL_CHUNK_SIZE):
                    out.write(chunk)
                    written += len(chunk)
                    if total:
                        on_progress(min(written * 100 // total, 100))
            return written

        copy = asyncio.ensure_future(_copy())
        if not await wait_or_cancel(copy, cancel):
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            copy.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await copy
            await proc.wait()
            raise AnalysisCancelledError("APK pull was cancelled")

        try:
            written = copy.result()
        except OSError as exc:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise TransportError(f"Failed to write {destination}: {exc}") from exc

        returncode = await proc.wait()
        if returncode != 0:
            stderr = b""
            if proc.stderr is not None:
                stderr = await proc.stderr.read()
            raise TransportError(
                f"adb pull of {remote_path} failed (exit {returncode}): "
                f"{stderr.decode(errors='replace').strip()}"
            )
        if written != total:
            raise TransportError(
                f"adb pull of {remote_path} stopped at {written}/{total} bytes"
            )

        on_progress(100)
