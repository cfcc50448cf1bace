"""Subprocess wrappers for all external tool invocations."""

import asyncio
import contextlib
import logging
import subprocess
from collections.abc import Callable
from dataclasses import dataclass

from stackzy.exceptions import AnalysisCancelledError, ProcessError
from stackzy.utils.cancel import CancelToken, wait_or_cancel

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """Result of a subprocess execution."""

    command: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        """Check if the command succeeded."""
        return self.returncode == 0

    @property
    def lines(self) -> list[str]:
        """Get stdout as a list of non-empty lines."""
        return [line for line in self.stdout.strip().split("\n") if line]


def run_tool(
    command: list[str],
    *,
    check: bool = True,
    capture_output: bool = True,
    timeout: float | None = None,
    cwd: str | None = None,
) -> ProcessResult:
    """Run an external tool command.

    Args:
        command: Command and arguments to run.
        check: If True, raise ProcessError on non-zero exit.
        capture_output: If True, capture stdout and stderr.
        timeout: Optional timeout in seconds.
        cwd: Working directory for the command.

    Returns:
        ProcessResult with command output.

    Raises:
        ProcessError: If check=True and command returns non-zero.
    """
    logger.debug("Running %s", " ".join(command))
    try:
        result = subprocess.run(
            command,
            capture_output=capture_output,
            text=True,
            timeout=timeout,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired as e:
        raise ProcessError(command, -1, f"Command timed out after {timeout}s") from e
    except FileNotFoundError as e:
        raise ProcessError(command, -1, f"Command not found: {command[0]}") from e

    proc_result = ProcessResult(
        command=command,
        returncode=result.returncode,
        stdout=result.stdout if capture_output else "",
        stderr=result.stderr if capture_output else "",
    )

    if check and not proc_result.success:
        raise ProcessError(command, result.returncode, result.stderr)

    return proc_result


async def stream_tool(
    command: list[str],
    on_line: Callable[[str], None],
    *,
    cancel: CancelToken | None = None,
) -> int:
    """Run a tool asynchronously, relaying each output line as it appears.

    stdout and stderr are merged. Blocks the calling task until the process
    exits.

    Args:
        command: Command and arguments to run.
        on_line: Called with every non-empty output line, newline stripped.
        cancel: Optional token; when set, the process is killed.

    Returns:
        The process exit code.

    Raises:
        ProcessError: If the executable cannot be started.
        AnalysisCancelledError: If the token fired before the process exited.
    """
    logger.debug("Streaming %s", " ".join(command))
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except FileNotFoundError as e:
        raise ProcessError(command, -1, f"Command not found: {command[0]}") from e

    async def _relay() -> int:
        assert proc.stdout is not None
        async for raw in proc.stdout:
            line = raw.decode(errors="replace").rstrip()
            if line:
                on_line(line)
        return await proc.wait()

    relay = asyncio.ensure_future(_relay())
    if await wait_or_cancel(relay, cancel):
        return relay.result()

    with contextlib.suppress(ProcessLookupError):
        proc.kill()
    relay.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await relay
    await proc.wait()
    raise AnalysisCancelledError(f"{command[0]} was cancelled")
