"""Progress reporting for long-running operations."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from code_sandbox.observability import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Milestones of a pull/create/start/wait sequence
PULL = 10
CREATE = 25
START = 50
TICK_STEP = 5
TICK_CEILING = 95
COMPLETE = 100


@dataclass(frozen=True)
class ProgressEvent:
    """A progress update correlated with the request that asked for it."""

    token: str | int
    value: int
    total: int = COMPLETE


ProgressSender = Callable[[ProgressEvent], Awaitable[None]]


class ProgressReporter:
    """Sends non-decreasing progress values for one request.

    Reports are skipped when the request carried no progress token, and send
    failures are logged without interrupting the operation being reported.
    """

    def __init__(self, token: str | int | None = None, send: ProgressSender | None = None) -> None:
        """Initialize reporter.

        Args:
            token: Correlation token supplied by the caller
            send: Coroutine function delivering an event
        """
        self.token = token
        self._send = send
        self._last = 0

    @classmethod
    def disabled(cls) -> "ProgressReporter":
        """A reporter that never sends."""
        return cls()

    @property
    def enabled(self) -> bool:
        return self.token is not None and self._send is not None

    @property
    def last(self) -> int:
        """Highest value reported so far."""
        return self._last

    async def report(self, value: int) -> None:
        """Report progress; lower values than already reported are raised to it."""
        if not self.enabled:
            return
        value = min(max(int(value), self._last), COMPLETE)
        if value == self._last and value != 0:
            return
        self._last = value
        try:
            await self._send(ProgressEvent(token=self.token, value=value))  # type: ignore[misc]
        except Exception as e:
            logger.warning("Failed to send progress", context={"value": value}, error=e)


async def _tick(reporter: ProgressReporter, start: int, step: int, ceiling: int, interval: float) -> None:
    value = start
    while value < ceiling:
        await asyncio.sleep(interval)
        value = min(value + step, ceiling)
        await reporter.report(value)


async def tick_while(
    awaitable: Awaitable[T],
    reporter: ProgressReporter,
    *,
    start: int = START,
    step: int = TICK_STEP,
    ceiling: int = TICK_CEILING,
    interval: float = 1.0,
) -> T:
    """Await ``awaitable`` while reporting periodic progress ticks.

    The work and a ticker run as two tasks joined on first completion. The
    ticker is cancelled and awaited as soon as the work finishes, so no tick
    is sent after completion. Cancelling the caller cancels both tasks.

    Args:
        awaitable: The operation to wait for
        reporter: Destination of ticks
        start: Value the first tick counts up from
        step: Increment per tick
        ceiling: Highest value a tick may report
        interval: Seconds between ticks

    Returns:
        The operation's result
    """
    work = asyncio.ensure_future(awaitable)
    ticker = asyncio.create_task(_tick(reporter, start, step, ceiling, interval))
    try:
        await asyncio.wait({work, ticker}, return_when=asyncio.FIRST_COMPLETED)
        if not work.done():
            # Ticker reached its ceiling first
            await asyncio.wait({work})
    finally:
        ticker.cancel()
        if not work.done():
            work.cancel()
        await asyncio.gather(ticker, work, return_exceptions=True)
    return work.result()
