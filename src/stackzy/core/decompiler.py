"""APK decompilation with apktool."""

import logging
import re
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path

from stackzy.exceptions import DecompileError, ProcessError
from stackzy.utils.apk import validate_apk_path
from stackzy.utils.cancel import CancelToken
from stackzy.utils.process import stream_tool

logger = logging.getLogger(__name__)

# apktool prefixes every line with its log level ("I: Using Apktool ...")
LOG_LEVEL_PREFIX = re.compile(r"^[IWSEF]: ")


def decompiled_dir_for(package_name: str, root: Path | None = None) -> Path:
    """Well-known decompile target for a package: <tmp>/stackzy/<package>."""
    if root is None:
        root = Path(tempfile.gettempdir()) / "stackzy"
    return root / package_name


def strip_log_prefix(line: str) -> str:
    return LOG_LEVEL_PREFIX.sub("", line, count=1)


class APKDecompiler:
    """Handles APK decompilation using apktool."""

    def __init__(self, apk_path: Path, apktool: str = "apktool"):
        """Initialize APK decompiler.

        Args:
            apk_path: Path to the APK file.
            apktool: apktool executable.
        """
        self.apk_path = apk_path.resolve()
        self.apktool = apktool

    def validate(self) -> None:
        """Validate that the APK exists and is a ZIP archive.

        Raises:
            DecompileError: If APK is invalid.
        """
        validate_apk_path(self.apk_path, error_cls=DecompileError)

    async def decompile(
        self,
        target_dir: Path,
        on_progress_line: Callable[[str], None] | None = None,
        cancel: CancelToken | None = None,
    ) -> Path:
        """Decompile the APK to smali and resources.

        Args:
            target_dir: Output directory, overwritten if it exists.
            on_progress_line: Receives each apktool line, level prefix removed.
            cancel: Kills apktool when set.

        Returns:
            Path to the populated output directory.

        Raises:
            DecompileError: If apktool fails or leaves no output.
            AnalysisCancelledError: If cancelled.
        """
        self.validate()
        target_dir.parent.mkdir(parents=True, exist_ok=True)

        def _relay(line: str) -> None:
            message = strip_log_prefix(line)
            logger.debug("apktool: %s", message)
            if on_progress_line is not None:
                on_progress_line(message)

        # apktool d -o <output> <apk> -f
        # -f: force overwrite existing directory
        cmd = [self.apktool, "d", "-o", str(target_dir), str(self.apk_path), "-f"]

        try:
            returncode = await stream_tool(cmd, _relay, cancel=cancel)
        except ProcessError as e:
            self._discard(target_dir)
            raise DecompileError(f"apktool decompilation failed: {e}") from e
        except BaseException:
            self._discard(target_dir)
            raise

        if returncode != 0:
            self._discard(target_dir)
            raise DecompileError(f"apktool exited with status {returncode}")

        if not target_dir.is_dir() or not any(target_dir.iterdir()):
            self._discard(target_dir)
            raise DecompileError(
                f"apktool completed but output directory is empty: {target_dir}"
            )

        return target_dir

    @staticmethod
    def _discard(target_dir: Path) -> None:
        shutil.rmtree(target_dir, ignore_errors=True)
