"""
Bounded polling for asynchronous provider jobs.

A poll is a fetch repeated at a fixed interval until the result is terminal
or the attempt budget runs out. Both numbers are explicit parameters, and
the sleep function is injectable so tests never wait.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from exceptions import PollingTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PollPolicy:
    """At most `max_attempts` fetches, `interval_seconds` apart."""
    max_attempts: int = 60
    interval_seconds: float = 3.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must not be negative")

    @property
    def ceiling_seconds(self) -> float:
        """Longest time a poll can wait in total; every non-terminal fetch is followed by a sleep."""
        return self.max_attempts * self.interval_seconds


def poll_until(
    fetch: Callable[[], T],
    is_done: Callable[[T], bool],
    policy: PollPolicy = PollPolicy(),
    provider: str = "provider",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call `fetch` until `is_done` accepts its result.

    `fetch` may raise to end the poll early (for example on a failed job);
    the exception propagates unchanged.

    Raises:
        PollingTimeoutError: max_attempts fetches without a terminal result
    """
    for attempt in range(1, policy.max_attempts + 1):
        result = fetch()
        if is_done(result):
            logger.debug(f"{provider} poll finished after {attempt} attempt(s)")
            return result
        sleep(policy.interval_seconds)

    logger.warning(f"{provider} poll timed out after {policy.max_attempts} attempts")
    raise PollingTimeoutError(provider, policy.max_attempts, policy.interval_seconds)
