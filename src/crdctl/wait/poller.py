"""Poll a condition until it holds, fails, times out or is cancelled.

The first check runs immediately, then once every ``interval``. A fetch error
ends the wait; callers that want to retry through transient errors wrap
their fetch function.
"""

import logging
import threading
import time
from enum import Enum

from crdctl.errors import WaitCancelledError, WaitFailedError, WaitTimeoutError

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"
DEADLINE_EXCEEDED = "deadline exceeded"


class MonotonicClock:
    """Wall-clock time source used outside of tests."""

    def now(self):
        return time.monotonic()

    def sleep(self, seconds, event):
        """Sleep up to ``seconds``; return early when ``event`` is set."""
        if seconds <= 0:
            return event.is_set()
        return event.wait(seconds)


class CancelContext:
    """Cancellation signal handed down from a caller to its waits.

    Args:
        timeout: Optional deadline in seconds, measured on ``clock``
        clock: Time source (defaults to MonotonicClock)
        parent: Context whose cancellation and deadline also apply here
    """

    def __init__(self, timeout=None, clock=None, parent=None):
        self.clock = clock or (parent.clock if parent else MonotonicClock())
        self.event = parent.event if parent else threading.Event()
        deadline = self.clock.now() + timeout if timeout is not None else None
        if parent is not None and parent.deadline is not None:
            deadline = (
                parent.deadline if deadline is None else min(deadline, parent.deadline)
            )
        self.deadline = deadline

    def cancel(self):
        self.event.set()

    @property
    def cancelled(self):
        return self.event.is_set()

    def remaining(self):
        if self.deadline is None:
            return None
        return self.deadline - self.clock.now()

    def reason(self):
        """Why this context is done, or None while it is still live."""
        if self.event.is_set():
            return CANCELLED
        if self.deadline is not None and self.clock.now() >= self.deadline:
            return DEADLINE_EXCEEDED
        return None


class PollState(str, Enum):
    POLLING = "polling"
    SATISFIED = "satisfied"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class ConditionPoller:
    """Explicit state machine behind ``poll_until``.

    Each call to ``step()`` performs one check and, when the condition does
    not hold yet, blocks until the next tick. ``run()`` steps until a
    terminal state and turns it into a return value or an exception.

    Args:
        fetch: Callable returning the current observed state
        predicate: Callable taking that state, True when done
        interval: Seconds between checks
        timeout: Seconds before giving up
        cancel: Optional CancelContext from the caller
        clock: Optional time source (tests inject a virtual clock)
        description: Human-readable name used in logs and errors
    """

    def __init__(
        self,
        fetch,
        predicate,
        interval,
        timeout,
        cancel=None,
        clock=None,
        description="condition",
        logger=logger,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        if timeout < 0:
            raise ValueError("timeout must not be negative")

        self.fetch = fetch
        self.predicate = predicate
        self.interval = interval
        self.timeout = timeout
        self.clock = clock or (cancel.clock if cancel else MonotonicClock())
        self.cancel = cancel or CancelContext(clock=self.clock)
        self.description = description
        self.logger = logger

        self.state = PollState.POLLING
        self.attempts = 0
        self.last_observed = None
        self.error = None
        self.cancel_reason = None
        self.started_at = self.clock.now()
        self.deadline = self.started_at + timeout

    @property
    def done(self):
        return self.state is not PollState.POLLING

    @property
    def elapsed(self):
        return self.clock.now() - self.started_at

    def _check_cancel(self):
        reason = self.cancel.reason()
        if reason is not None:
            self.cancel_reason = reason
            self.state = PollState.CANCELLED
            return True
        return False

    def step(self):
        """Run one check and, if still polling, wait for the next tick."""
        if self.done:
            return self.state
        if self._check_cancel():
            return self.state

        self.attempts += 1
        try:
            observed = self.fetch()
        except Exception as e:
            self.error = e
            self.state = PollState.FAILED
            return self.state

        self.last_observed = observed
        if self.predicate(observed):
            self.state = PollState.SATISFIED
            return self.state

        now = self.clock.now()
        if now >= self.deadline:
            self.state = PollState.TIMED_OUT
            return self.state

        pause = min(self.interval, self.deadline - now)
        cancel_remaining = self.cancel.remaining()
        if cancel_remaining is not None:
            pause = min(pause, max(cancel_remaining, 0))

        self.logger.debug(
            f"Waiting for {self.description}: attempt {self.attempts}, "
            f"next check in {pause:.2f}s"
        )
        self.clock.sleep(pause, self.cancel.event)

        if self._check_cancel():
            return self.state
        if self.clock.now() >= self.deadline:
            self.state = PollState.TIMED_OUT
        return self.state

    def run(self):
        """Step until terminal. Returns True or raises a WaitError."""
        while not self.done:
            self.step()

        if self.state is PollState.SATISFIED:
            self.logger.debug(
                f"{self.description} satisfied after {self.attempts} check(s) "
                f"({self.elapsed:.2f}s)"
            )
            return True
        if self.state is PollState.FAILED:
            raise WaitFailedError(
                f"error while waiting for {self.description}: {self.error}"
            ) from self.error
        if self.state is PollState.CANCELLED:
            raise WaitCancelledError(
                f"wait for {self.description} stopped after {self.elapsed:.2f}s",
                self.cancel_reason,
            )
        raise WaitTimeoutError(
            f"timed out after {self.timeout}s waiting for {self.description}"
        )


def poll_until(
    fetch,
    predicate,
    interval,
    timeout,
    cancel=None,
    clock=None,
    description="condition",
    logger=logger,
):
    """Block until ``predicate(fetch())`` is true.

    Returns:
        bool: True once the condition holds

    Raises:
        WaitFailedError: ``fetch`` raised
        WaitTimeoutError: ``timeout`` elapsed first
        WaitCancelledError: ``cancel`` was cancelled or its deadline passed
    """
    return ConditionPoller(
        fetch,
        predicate,
        interval,
        timeout,
        cancel=cancel,
        clock=clock,
        description=description,
        logger=logger,
    ).run()
