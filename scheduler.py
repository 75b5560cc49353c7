import heapq
import itertools
import time
from typing import Callable, List, Optional


class TimerHandle:
    """
    A scheduled callback owned by a Scheduler.
    Handles are one-shot unless created with an interval.
    """

    def __init__(self, scheduler, when: float, callback: Callable[[], None],
                 interval: Optional[float] = None):
        """
        Initialize a new handle.

        Args:
            scheduler: The Scheduler that will fire this handle
            when: Clock time at which the callback is due
            callback: Zero-argument callable to run
            interval: Repeat interval in seconds, or None for a one-shot timer
        """
        self.scheduler = scheduler
        self.when = when
        self.callback = callback
        self.interval = interval
        self.cancelled = False
        self.fired = False

    @property
    def active(self) -> bool:
        """True while the callback may still run."""
        if self.cancelled:
            return False
        return self.interval is not None or not self.fired

    def cancel(self) -> None:
        """Stop the handle. Calling this more than once is harmless."""
        self.cancelled = True

    def __repr__(self):
        """Return a detailed string representation of the handle."""
        return (f"TimerHandle(when={self.when}, interval={self.interval}, "
                f"cancelled={self.cancelled}, fired={self.fired})")


class Scheduler:
    """
    Cooperative timer queue.

    Nothing runs on its own: the host loop calls run_pending() (pygame once per
    frame, the Flask server before handling each request) and every due
    callback runs on the caller's thread, in due-time order.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Initialize the scheduler.

        Args:
            clock: Callable returning the current time in seconds
        """
        self.clock = clock
        self._queue = []
        self._counter = itertools.count()

    def now(self) -> float:
        """Return the current clock time."""
        return self.clock()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback once, delay seconds from now."""
        handle = TimerHandle(self, self.now() + delay, callback)
        self._push(handle)
        return handle

    def call_every(self, interval: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback every interval seconds, starting one interval from now."""
        if interval <= 0:
            raise ValueError("Interval must be positive")
        handle = TimerHandle(self, self.now() + interval, callback, interval)
        self._push(handle)
        return handle

    def _push(self, handle: TimerHandle) -> None:
        heapq.heappush(self._queue, (handle.when, next(self._counter), handle))

    def run_pending(self, now: Optional[float] = None) -> int:
        """
        Fire every callback due at or before now.

        A periodic handle that fell behind fires once and its next due time
        moves to the first interval boundary after now.

        Args:
            now: Clock time to run up to (defaults to the scheduler clock)

        Returns:
            Number of callbacks that ran
        """
        if now is None:
            now = self.now()

        ran = 0
        while self._queue and self._queue[0][0] <= now:
            _, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue

            if handle.interval is not None:
                handle.when += handle.interval
                if handle.when <= now:
                    # Fell behind: skip the missed intervals and fire once
                    missed = int((now - handle.when) // handle.interval) + 1
                    handle.when += missed * handle.interval
                self._push(handle)
            handle.fired = True

            handle.callback()
            ran += 1
        return ran

    def pending(self) -> List[TimerHandle]:
        """Return the handles that may still fire, earliest first."""
        return [entry[2] for entry in sorted(self._queue) if not entry[2].cancelled]

    def next_due(self) -> Optional[float]:
        """Return the due time of the next live handle, or None."""
        live = self.pending()
        return live[0].when if live else None

    def clear(self) -> None:
        """Cancel every queued handle."""
        for _, _, handle in self._queue:
            handle.cancel()
        self._queue = []
