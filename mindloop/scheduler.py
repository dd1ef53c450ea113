"""
Cooperative single-threaded scheduler.

All timed behaviour of the agent (tick loop, decision loop, delayed reward
continuations, episode steps) runs as callbacks on one Scheduler. Each
callback runs to completion before the next starts, so learning state is
never touched concurrently.

Time comes from a clock object. ``MonotonicClock`` follows wall time;
``ManualClock`` only moves when told to, which makes decision-loop
scenarios reproducible in tests and offline simulations.
"""
from __future__ import annotations

import heapq
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class MonotonicClock:
    """Wall-clock time source."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class ManualClock:
    """Clock that only advances explicitly."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def set(self, value: float) -> None:
        if value < self._now:
            raise ValueError("ManualClock cannot move backwards")
        self._now = float(value)

    def sleep(self, seconds: float) -> None:
        self._now += max(0.0, seconds)


@dataclass
class Timer:
    """
    Handle for a scheduled callback.

    Attributes:
        name: Label used in logs
        due: Clock time at which the callback runs next
        interval: Repeat period in seconds, None for one-shot
        cancelled: Set by Scheduler.cancel; the callback will not run again
    """
    name: str
    due: float
    callback: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    interval: Optional[float] = None
    cancelled: bool = False
    runs: int = field(default=0, compare=False)

    @property
    def repeating(self) -> bool:
        return self.interval is not None


class GenerationCounter:
    """
    Invalidation tokens for in-flight continuations.

    A continuation captures ``token()`` when scheduled and checks
    ``is_current(token)`` when it fires. ``bump()`` (called on stop)
    makes every previously issued token stale.
    """

    def __init__(self):
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def token(self) -> int:
        return self._generation

    def bump(self) -> int:
        self._generation += 1
        return self._generation

    def is_current(self, token: int) -> bool:
        return token == self._generation


class Scheduler:
    """
    Time-ordered callback queue.

    Callbacks that are due at the same time run in the order they were
    scheduled. Exceptions raised by a callback are logged and swallowed
    so one faulty callback cannot stop the loop.

    Example:
        >>> clock = ManualClock()
        >>> scheduler = Scheduler(clock)
        >>> scheduler.call_every(1.0, lambda: print("tick"), name="tick")
        >>> scheduler.advance(3.0)   # prints "tick" three times
    """

    def __init__(self, clock=None):
        self.clock = clock or MonotonicClock()
        self._queue: List[Tuple[float, int, Timer]] = []
        self._seq = 0
        self._running = False
        self.errors = 0

    def now(self) -> float:
        return self.clock.now()

    def _push(self, timer: Timer) -> None:
        self._seq += 1
        heapq.heappush(self._queue, (timer.due, self._seq, timer))

    def call_later(
        self,
        delay: float,
        callback: Callable[..., Any],
        *args: Any,
        name: Optional[str] = None,
    ) -> Timer:
        """Run ``callback(*args)`` once after ``delay`` seconds."""
        timer = Timer(
            name=name or getattr(callback, "__name__", "callback"),
            due=self.now() + max(0.0, delay),
            callback=callback,
            args=args,
        )
        self._push(timer)
        return timer

    def call_every(
        self,
        interval: float,
        callback: Callable[..., Any],
        *args: Any,
        name: Optional[str] = None,
        first_delay: Optional[float] = None,
    ) -> Timer:
        """
        Run ``callback(*args)`` every ``interval`` seconds.

        Args:
            interval: Period in seconds (must be positive)
            first_delay: Delay before the first run (defaults to ``interval``)
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        timer = Timer(
            name=name or getattr(callback, "__name__", "callback"),
            due=self.now() + (interval if first_delay is None else max(0.0, first_delay)),
            callback=callback,
            args=args,
            interval=interval,
        )
        self._push(timer)
        return timer

    def cancel(self, timer: Optional[Timer]) -> None:
        if timer is not None:
            timer.cancelled = True

    def cancel_all(self) -> None:
        for _, _, timer in self._queue:
            timer.cancelled = True
        self._queue = []

    @property
    def pending(self) -> int:
        return sum(1 for _, _, t in self._queue if not t.cancelled)

    def next_due(self) -> Optional[float]:
        while self._queue and self._queue[0][2].cancelled:
            heapq.heappop(self._queue)
        return self._queue[0][0] if self._queue else None

    def _run_timer(self, timer: Timer) -> None:
        timer.runs += 1
        try:
            timer.callback(*timer.args)
        except Exception as e:
            self.errors += 1
            logger.error(f"Scheduled callback '{timer.name}' failed: {e}", exc_info=True)
        if timer.repeating and not timer.cancelled:
            timer.due += timer.interval
            self._push(timer)

    def run_pending(self) -> int:
        """
        Run every callback due at the current clock time.

        Returns:
            Number of callbacks run
        """
        now = self.now()
        count = 0
        while True:
            due = self.next_due()
            if due is None or due > now:
                break
            _, _, timer = heapq.heappop(self._queue)
            self._run_timer(timer)
            count += 1
        return count

    def advance(self, seconds: float) -> int:
        """
        Move a ManualClock forward, running callbacks at their due times.

        Returns:
            Number of callbacks run
        """
        if not isinstance(self.clock, ManualClock):
            raise TypeError("advance() requires a ManualClock")
        target = self.now() + max(0.0, seconds)
        count = 0
        while True:
            due = self.next_due()
            if due is None or due > target:
                break
            _, _, timer = heapq.heappop(self._queue)
            if due > self.clock.now():
                self.clock.set(due)
            self._run_timer(timer)
            count += 1
        self.clock.set(target)
        return count

    def run(self, duration: Optional[float] = None, idle_sleep: float = 0.05) -> None:
        """
        Run the loop until ``stop()`` is called or ``duration`` elapses.

        Sleeps until the next due callback, at most ``idle_sleep`` seconds
        at a time so ``stop()`` takes effect promptly.
        """
        self._running = True
        deadline = None if duration is None else self.now() + duration
        try:
            while self._running:
                self.run_pending()
                if not self._running:
                    break
                now = self.now()
                if deadline is not None and now >= deadline:
                    break
                due = self.next_due()
                wait = idle_sleep if due is None else min(idle_sleep, max(0.0, due - now))
                if deadline is not None:
                    wait = min(wait, max(0.0, deadline - now))
                self.clock.sleep(wait)
        finally:
            self._running = False

    def stop(self) -> None:
        self._running = False

    @property
    def running(self) -> bool:
        return self._running
