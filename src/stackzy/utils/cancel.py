"""Cooperative cancellation for long downloads and decompiles."""

import asyncio

from stackzy.exceptions import AnalysisCancelledError


class CancelToken:
    """One-shot abort signal shared between a pipeline and its workers."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self, what: str = "Analysis") -> None:
        if self._event.is_set():
            raise AnalysisCancelledError(f"{what} was cancelled")


async def wait_or_cancel(task: asyncio.Future, cancel: CancelToken | None) -> bool:
    """Wait until ``task`` finishes or ``cancel`` fires.

    Returns True if the task finished. The task is left running otherwise;
    stopping it is up to the caller.
    """
    if cancel is None:
        await asyncio.wait({task})
        return True

    cancelled = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, cancelled}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        cancelled.cancel()
    return task.done()
