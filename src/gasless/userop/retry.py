"""Bounded polling with exponential backoff and an overall deadline."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Tuple, Type, TypeVar

from .errors import ConfirmationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 60
    initial_delay: float = 2.0
    backoff: float = 1.5
    max_delay: float = 15.0
    timeout: float = 180.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")

    def delays(self) -> Iterator[float]:
        delay = self.initial_delay
        for _ in range(self.max_attempts - 1):
            yield delay
            delay = min(delay * self.backoff, self.max_delay)


def poll(
    fetch: Callable[[], Optional[T]],
    policy: RetryPolicy,
    what: str,
    transient: Tuple[Type[BaseException], ...] = (),
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """
    Call ``fetch`` until it returns something other than None.

    Stops after ``policy.max_attempts`` calls or once ``policy.timeout``
    seconds have elapsed, whichever comes first. Exceptions listed in
    ``transient`` count as a miss; any other exception propagates at once.

    Raises:
        ConfirmationTimeoutError: If nothing was found in time
    """
    deadline = clock() + policy.timeout
    delays = policy.delays()
    attempt = 0
    last_error: Optional[BaseException] = None
    while True:
        attempt += 1
        try:
            result = fetch()
        except transient as exc:
            logger.warning("%s lookup failed (attempt %d): %s", what, attempt, exc)
            last_error = exc
            result = None
        if result is not None:
            return result

        delay = next(delays, None)
        remaining = deadline - clock()
        if delay is None or remaining <= 0:
            break
        logger.debug("%s not found (attempt %d), retrying in %.1fs", what, attempt, delay)
        sleep(min(delay, remaining))

    raise ConfirmationTimeoutError(
        f"{what} not found after {attempt} attempts / {policy.timeout:.0f}s"
    ) from last_error
