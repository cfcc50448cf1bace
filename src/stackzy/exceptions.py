"""Typed exception hierarchy for stackzy."""


class StackzyError(Exception):
    """Base exception for all stackzy errors."""

    pass


class ToolNotFoundError(StackzyError):
    """Raised when a required external tool is not installed."""

    def __init__(self, tool: str, install_hint: str | None = None):
        self.tool = tool
        self.install_hint = install_hint
        message = f"Required tool not found: {tool}"
        if install_hint:
            message += f"\nInstall: {install_hint}"
        super().__init__(message)


class ProcessError(StackzyError):
    """Raised when a subprocess command fails."""

    def __init__(self, command: list[str], returncode: int, stderr: str):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        cmd_str = " ".join(command)
        super().__init__(f"Command failed (exit {returncode}): {cmd_str}\n{stderr}")


class ADBError(StackzyError):
    """Raised when an ADB command fails."""

    pass


class DeviceNotFoundError(ADBError):
    """Raised when no device is connected or specified device not found."""

    pass


class TransportError(StackzyError):
    """Raised when a network or device transfer fails.

    The message is the remote (or transfer) error, verbatim.
    """

    pass


class SourceUnavailableError(StackzyError):
    """Raised when the device or store cannot locate the APK."""

    def __init__(self, package_name: str, reason: str | None = None):
        self.package_name = package_name
        message = f"Unable to locate APK for {package_name}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class DecompileError(StackzyError):
    """Raised when apktool fails or produces no output."""

    pass


class CatalogUnavailableError(StackzyError):
    """Raised when the library catalog is missing or empty."""

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason
        message = (
            "Library catalog is not loaded. Refusing to analyze, every library "
            "would be reported as untracked."
        )
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class AnalysisCancelledError(StackzyError):
    """Raised when a run is aborted through its cancel token."""

    pass


class PipelineBusyError(StackzyError):
    """Raised when a pipeline is started while a previous run is in flight."""

    def __init__(self, package_name: str):
        self.package_name = package_name
        super().__init__(f"Analysis for {package_name} is already running")
