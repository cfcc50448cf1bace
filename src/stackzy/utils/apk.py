"""APK file validation utilities."""

from pathlib import Path

from stackzy.exceptions import StackzyError

# ZIP file magic header (APKs are ZIP files)
ZIP_FILE_HEADER = b"PK\x03\x04"


def validate_apk_path(
    apk_path: Path,
    *,
    error_cls: type[StackzyError] = StackzyError,
) -> None:
    """Validate that an APK file path points at a readable ZIP archive.

    The extension is not checked: pulled and downloaded APKs live in temp
    files whose names the caller does not control.

    Args:
        apk_path: Path to the APK file to validate.
        error_cls: Exception class to raise on validation failure.

    Raises:
        StackzyError (or subclass): If validation fails.
    """
    if not apk_path.exists():
        raise error_cls(f"APK not found: {apk_path}")

    if not apk_path.is_file():
        raise error_cls(f"Not a file: {apk_path}")

    try:
        with apk_path.open("rb") as f:
            header = f.read(4)
    except OSError as e:
        raise error_cls(f"Failed to read APK header: {e}") from e

    if len(header) < len(ZIP_FILE_HEADER):
        raise error_cls("File is too small to be a valid APK")

    if header != ZIP_FILE_HEADER:
        raise error_cls(
            f"Header mismatch. Expected: {ZIP_FILE_HEADER!r}, got: {header!r}"
        )


def size_in_mb(apk_path: Path) -> float:
    """APK size in megabytes (decimal, no rounding)."""
    return apk_path.stat().st_size / 1_000_000
