"""
Blocking wait for a predicate to become true.

This is how lifecycle operations turn an asynchronous driver action
into a verified transition.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from common.exceptions import WaitCancelledError, WaitTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 60
DEFAULT_DELAY = 3.0


class CancelToken:
    """
    Cancellation and overall deadline for one or more waits.

    Example:
        token = CancelToken(timeout=120)
        host.start(cancel=token)   # bounded to 2 minutes in total
        # from another thread: token.cancel()
    """

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``, waking early on cancel or deadline."""
        if self._deadline is not None:
            seconds = min(seconds, max(0.0, self._deadline - time.monotonic()))
        if seconds > 0:
            self._event.wait(seconds)


def wait_for(
    predicate: Callable[[], bool],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    delay: float = DEFAULT_DELAY,
    cancel: Optional[CancelToken] = None,
) -> None:
    """
    Evaluate ``predicate`` until it returns True.

    The predicate is evaluated at most ``max_attempts`` times with
    ``delay`` seconds between evaluations.

    Raises:
        WaitTimeoutError: If the attempts are exhausted or the token's deadline passes
        WaitCancelledError: If the token is cancelled
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1 (got {max_attempts})")

    for attempt in range(1, max_attempts + 1):
        if cancel is not None:
            if cancel.cancelled:
                raise WaitCancelledError(attempt - 1)
            if cancel.expired:
                raise WaitTimeoutError(attempt - 1, "Deadline exceeded while waiting")

        if predicate():
            logger.debug(f"Condition met after {attempt} attempt(s)")
            return

        if attempt < max_attempts:
            if cancel is not None:
                cancel.sleep(delay)
            elif delay > 0:
                time.sleep(delay)

    raise WaitTimeoutError(max_attempts)
