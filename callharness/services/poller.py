"""Bounded polling for UI state that converges asynchronously."""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from callharness.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
DEFAULT_INTERVALS = (1.0, 2.0, 3.0)

Predicate = Callable[[], Union[Any, Awaitable[Any]]]


class PollTimeoutError(AssertionError):
    """Raised when a polled condition does not hold before its deadline."""

    def __init__(
        self,
        timeout: float,
        attempts: int,
        last_error: Optional[BaseException] = None,
        last_value: Any = None,
    ):
        self.timeout = timeout
        self.attempts = attempts
        self.last_error = last_error
        self.last_value = last_value
        if last_error is not None:
            observed = str(last_error) or type(last_error).__name__
        else:
            observed = f"predicate returned {last_value!r}"
        super().__init__(
            f"Condition not met within {timeout:.1f}s after {attempts} attempts: {observed}"
        )


async def poll_until(
    predicate: Predicate,
    timeout: float = DEFAULT_TIMEOUT,
    intervals: Sequence[float] = DEFAULT_INTERVALS,
    description: Optional[str] = None,
) -> Any:
    """
    Retry a predicate until it holds or the timeout elapses.

    The predicate may be a plain or async callable. It holds when it returns
    None or a truthy value without raising. An AssertionError or a falsy
    return means "not yet"; any other exception propagates immediately.

    Args:
        predicate: Condition to evaluate
        timeout: Seconds before giving up
        intervals: Waits between attempts; the last one repeats
        description: Optional label for debug logging

    Returns:
        The predicate's result on the successful attempt

    Raises:
        PollTimeoutError: If the condition never held, carrying the last mismatch
    """
    if not intervals:
        raise ValueError("intervals must not be empty")

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    attempts = 0
    last_error: Optional[AssertionError] = None
    last_value: Any = None

    while True:
        attempts += 1
        try:
            result = predicate()
            if inspect.isawaitable(result):
                result = await result
        except AssertionError as e:
            last_error, last_value = e, None
        else:
            if result is None or result:
                if attempts > 1 and description:
                    logger.debug(f"{description} converged after {attempts} attempts")
                return result
            last_error, last_value = None, result

        remaining = deadline - loop.time()
        if remaining <= 0:
            break

        wait = intervals[min(attempts - 1, len(intervals) - 1)]
        if description:
            logger.debug(f"{description} not met (attempt {attempts}), retrying in {min(wait, remaining):.2f}s")
        await asyncio.sleep(min(wait, remaining))

    raise PollTimeoutError(timeout, attempts, last_error, last_value) from last_error


class Poller:
    """Poll helper bound to configured defaults."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, intervals: Sequence[float] = DEFAULT_INTERVALS):
        self.timeout = timeout
        self.intervals = tuple(intervals)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Poller":
        return cls(timeout=settings.video_timeout, intervals=settings.poll_intervals)

    async def until(
        self,
        predicate: Predicate,
        timeout: Optional[float] = None,
        intervals: Optional[Sequence[float]] = None,
        description: Optional[str] = None,
    ) -> Any:
        return await poll_until(
            predicate,
            timeout=self.timeout if timeout is None else timeout,
            intervals=self.intervals if intervals is None else intervals,
            description=description,
        )
