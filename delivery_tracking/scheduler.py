# delivery-tracking/delivery_tracking/scheduler.py
"""
Cooperative timers for tracking views.

There are no background threads. A host (the dashboard fragment, or the
CLI watch loop) wakes up periodically and calls ``run_due()``; every timer
whose deadline has passed runs once, on the caller's thread, in deadline
order. Intervals are rescheduled from the time they ran, so a host that
sleeps through several periods fires an interval once, not once per period.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class Timer:
    name: str
    callback: Callable[[], None]
    due_at: float
    interval: Optional[float] = None

    @property
    def repeating(self) -> bool:
        return self.interval is not None


class Timers:
    """
    Registry of named timeouts and intervals.

    Names are unique: scheduling a name that already exists replaces the
    previous timer. A callback may clear or reschedule timers, including
    itself, while it runs.
    """

    def __init__(self, clock: Clock = time.monotonic):
        self.clock = clock
        self._timers: Dict[str, Timer] = {}

    def set_timeout(self, name: str, seconds: float, callback: Callable[[], None]) -> None:
        self._timers[name] = Timer(name, callback, self.clock() + seconds)
        logger.debug(f"Timeout '{name}' set for {seconds:.0f}s")

    def set_interval(self, name: str, seconds: float, callback: Callable[[], None]) -> None:
        if seconds <= 0:
            raise ValueError(f"Interval must be positive, got {seconds}")
        self._timers[name] = Timer(name, callback, self.clock() + seconds, interval=seconds)
        logger.debug(f"Interval '{name}' set every {seconds:.0f}s")

    def clear(self, name: str) -> bool:
        """Cancel a timer. Returns False if it was not scheduled."""
        return self._timers.pop(name, None) is not None

    def clear_all(self) -> None:
        self._timers.clear()

    def is_active(self, name: str) -> bool:
        return name in self._timers

    def due_in(self, name: str) -> Optional[float]:
        """Seconds until ``name`` fires, or None if not scheduled."""
        timer = self._timers.get(name)
        if timer is None:
            return None
        return max(0.0, timer.due_at - self.clock())

    def run_due(self, now: Optional[float] = None) -> List[str]:
        """
        Run every timer that is due.

        Args:
            now: Current clock reading; defaults to ``self.clock()``

        Returns:
            Names of the timers that ran, in the order they ran
        """
        now = self.clock() if now is None else now
        due = sorted(
            (t for t in self._timers.values() if t.due_at <= now),
            key=lambda t: t.due_at,
        )
        fired = []
        for timer in due:
            # An earlier callback in this batch may have cleared or replaced it
            if self._timers.get(timer.name) is not timer:
                continue
            if timer.repeating:
                timer.due_at = now + timer.interval
            else:
                del self._timers[timer.name]
            fired.append(timer.name)
            timer.callback()
        return fired

    def __len__(self) -> int:
        return len(self._timers)

    def __repr__(self) -> str:
        return f"Timers({sorted(self._timers)})"


class Sequencer:
    """
    Monotonic request tickets.

    Every request takes a ticket before it is issued. Its response may be
    applied only if no newer ticket for the same resource has been applied
    already, so a slow response can never overwrite fresher state.
    """

    def __init__(self):
        self._issued = 0
        self._applied: Dict[str, int] = {}

    def issue(self) -> int:
        self._issued += 1
        return self._issued

    def accept(self, resource: str, ticket: int) -> bool:
        if ticket <= self._applied.get(resource, 0):
            return False
        self._applied[resource] = ticket
        return True

    def last_applied(self, resource: str) -> int:
        return self._applied.get(resource, 0)
