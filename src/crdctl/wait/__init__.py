"""Condition polling and typed custom-resource waits."""

from .adapters import NvidiaDriverClient, StatefulResourceClient, wait_for_state
from .poller import CancelContext, ConditionPoller, MonotonicClock, PollState, poll_until

__all__ = [
    "CancelContext",
    "ConditionPoller",
    "MonotonicClock",
    "NvidiaDriverClient",
    "PollState",
    "StatefulResourceClient",
    "poll_until",
    "wait_for_state",
]
