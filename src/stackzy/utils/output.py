"""Rich console helpers for terminal output."""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from rich.console import Console as RichConsole
from rich.logging import RichHandler

from stackzy.models.state import PipelineState


class Console:
    """Wrapper around rich.Console; diagnostics go to stderr."""

    def __init__(self) -> None:
        self._console = RichConsole()
        self._err_console = RichConsole(stderr=True)
        self._json_mode = False

    def set_json_mode(self, enabled: bool) -> None:
        """Enable or disable JSON mode (suppresses rich output)."""
        self._json_mode = enabled

    @property
    def stderr(self) -> RichConsole:
        return self._err_console

    def print(self, *args: Any, **kwargs: Any) -> None:
        """Print to console (suppressed in JSON mode)."""
        if not self._json_mode:
            self._console.print(*args, **kwargs)

    def print_json(self, payload: Any) -> None:
        """Write ``payload`` as plain JSON on stdout, without rich markup."""
        self._console.out(json.dumps(payload, indent=2), highlight=False)

    def print_error(self, message: str) -> None:
        self._err_console.print(f"[red]✗[/red] {message}")

    def print_warning(self, message: str) -> None:
        self._err_console.print(f"[yellow]⚠[/yellow] {message}")

    @contextmanager
    def follow(self, channel: Any) -> Iterator[None]:
        """Show the pipeline's loading message in a spinner while the block runs.

        ``channel`` is anything with ``subscribe(callback) -> unsubscribe``.
        """
        if self._json_mode:
            yield
            return

        with self._err_console.status("Starting...") as status:

            def _update(state: PipelineState) -> None:
                if state.loading_message:
                    status.update(state.loading_message)

            unsubscribe = channel.subscribe(_update)
            try:
                yield
            finally:
                unsubscribe()


def configure_logging(verbose: bool = False) -> None:
    """Route stackzy loggers through rich, on stderr."""
    handler = RichHandler(console=console.stderr, show_path=False, markup=False)
    root = logging.getLogger("stackzy")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


# Global console instance
console = Console()
