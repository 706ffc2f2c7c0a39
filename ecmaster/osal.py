"""Time keeping, timers, sleeping and thread start-up for the master."""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass
from functools import total_ordering
from typing import Any, Callable

NSEC_PER_SEC = 1_000_000_000
USEC_PER_SEC = 1_000_000
NSEC_PER_USEC = 1_000

#: scheduling priority requested for real-time worker threads
RT_PRIORITY = 40


@total_ordering
@dataclass(frozen=True)
class Timespec:
    """A time value split into whole seconds and nanoseconds."""

    sec: int = 0
    nsec: int = 0

    @classmethod
    def from_usec(cls, usec: int) -> "Timespec":
        """Build a time value from a count of microseconds."""
        if usec < 0:
            raise ValueError("microseconds must not be negative")
        return cls(usec // USEC_PER_SEC, (usec % USEC_PER_SEC) * NSEC_PER_USEC)

    @classmethod
    def from_ns(cls, ns: int) -> "Timespec":
        """Build a time value from a count of nanoseconds."""
        sec, nsec = divmod(ns, NSEC_PER_SEC)
        return cls(sec, nsec)

    def to_ns(self) -> int:
        return self.sec * NSEC_PER_SEC + self.nsec

    def to_seconds(self) -> float:
        return self.sec + self.nsec / NSEC_PER_SEC

    def __add__(self, other: "Timespec") -> "Timespec":
        if not isinstance(other, Timespec):
            return NotImplemented
        sec = self.sec + other.sec
        nsec = self.nsec + other.nsec
        if nsec >= NSEC_PER_SEC:
            sec += 1
            nsec -= NSEC_PER_SEC
        return Timespec(sec, nsec)

    def __sub__(self, other: "Timespec") -> "Timespec":
        if not isinstance(other, Timespec):
            return NotImplemented
        sec = self.sec - other.sec
        nsec = self.nsec - other.nsec
        if nsec < 0:
            sec -= 1
            nsec += NSEC_PER_SEC
        return Timespec(sec, nsec)

    def __lt__(self, other: "Timespec") -> bool:
        if not isinstance(other, Timespec):
            return NotImplemented
        if self.sec == other.sec:
            return self.nsec < other.nsec
        return self.sec < other.sec


def monotonic_time() -> Timespec:
    """Return a strictly increasing time, for measuring intervals."""
    return Timespec.from_ns(time.monotonic_ns())


def current_time() -> Timespec:
    """Return the wall-clock time since the epoch."""
    return Timespec.from_ns(time.time_ns())


def time_diff(start: Timespec, end: Timespec) -> Timespec:
    """Return the interval from ``start`` to ``end``."""
    return end - start


class Timer:
    """A deadline on the monotonic clock; expired until started."""

    def __init__(self) -> None:
        self.stop_time = Timespec()

    def start(self, timeout_usec: int) -> None:
        """Arm the timer to expire ``timeout_usec`` microseconds from now."""
        self.stop_time = monotonic_time() + Timespec.from_usec(timeout_usec)

    def is_expired(self) -> bool:
        return not (monotonic_time() < self.stop_time)


def monotonic_sleep(deadline: Timespec) -> None:
    """Sleep until the monotonic clock reaches ``deadline``."""
    while True:
        now = monotonic_time()
        if not (now < deadline):
            return
        time.sleep((deadline - now).to_seconds())


def usleep(usec: int) -> None:
    """Sleep for at least ``usec`` microseconds."""
    monotonic_sleep(monotonic_time() + Timespec.from_usec(usec))


def thread_create(func: Callable[..., Any], *args: Any) -> threading.Thread:
    """Start ``func(*args)`` in a new daemon thread and return the thread."""
    thread = threading.Thread(target=func, args=args, daemon=True)
    thread.start()
    return thread


def thread_create_rt(func: Callable[..., Any], *args: Any) -> threading.Thread:
    """Start a worker thread and ask for FIFO real-time scheduling.

    The scheduling request is best effort: without the privilege for it the
    thread simply keeps the default policy.
    """
    thread = thread_create(func, *args)
    setscheduler = getattr(os, "sched_setscheduler", None)
    policy = getattr(os, "SCHED_FIFO", None)
    native_id = getattr(thread, "native_id", None)
    if setscheduler is not None and policy is not None and native_id is not None:
        try:
            setscheduler(native_id, policy, os.sched_param(RT_PRIORITY))
        except (OSError, ValueError):
            pass
    return thread