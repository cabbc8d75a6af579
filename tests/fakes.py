"""In-memory and psutil-backed process helpers shared by the tests."""

from __future__ import annotations

import threading
import time

import psutil

from solver_watchdog.errors import (
    ProcessGoneError,
    TerminationError,
    TreeEnumerationError,
)


class FakeChild:
    """A child handle whose exit is scripted.

    Args:
        pid: Process id reported to the supervisor
        exit_after: Seconds after creation at which poll() reports an exit
            (None = never exits on its own)
        returncode: Status reported once exited
    """

    def __init__(self, pid: int = 4242, exit_after: float | None = None, returncode: int = 0) -> None:
        self.pid = pid
        self.returncode: int | None = None
        self.poll_calls = 0
        self._exit_code = returncode
        self._exit_at = None if exit_after is None else time.monotonic() + exit_after
        self._lock = threading.Lock()

    def poll(self) -> int | None:
        with self._lock:
            self.poll_calls += 1
            if (
                self.returncode is None
                and self._exit_at is not None
                and time.monotonic() >= self._exit_at
            ):
                self.returncode = self._exit_code
            return self.returncode

    def exit(self, code: int = 0) -> None:
        with self._lock:
            self.returncode = code


class FakeProcessTree:
    """ProcessTree over a parent -> children mapping.

    Attributes:
        children: Direct children per pid
        exited: Pids that already exited (enumeration/termination raise
            ProcessGoneError for them)
        denied: Pids whose termination fails with TerminationError
        enumeration_fails: Make descendants() raise TreeEnumerationError
        signalled: Pids terminate() succeeded on, in call order
        attempted: Pids terminate() was called with, in call order
        enumerations: Number of descendants() calls
    """

    def __init__(self, children: dict[int, list[int]] | None = None) -> None:
        self.children = children or {}
        self.exited: set[int] = set()
        self.denied: set[int] = set()
        self.enumeration_fails = False
        self.signalled: list[int] = []
        self.attempted: list[int] = []
        self.enumerations = 0

    def descendants(self, pid: int) -> list[int]:
        self.enumerations += 1
        if pid in self.exited:
            raise ProcessGoneError(pid)
        if self.enumeration_fails:
            raise TreeEnumerationError(pid, "permission denied")
        found: list[int] = []
        stack = list(self.children.get(pid, []))
        while stack:
            current = stack.pop(0)
            found.append(current)
            stack.extend(self.children.get(current, []))
        return found

    def terminate(self, pid: int) -> None:
        self.attempted.append(pid)
        if pid in self.exited:
            raise ProcessGoneError(pid)
        if pid in self.denied:
            raise TerminationError(pid, f"operation not permitted: {pid}")
        self.signalled.append(pid)


def is_dead(pid: int) -> bool:
    """True once a real process has exited (zombies count as exited)."""
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


def wait_dead(pids: list[int], timeout: float = 5.0) -> list[int]:
    """Wait for real processes to exit; return the ones still running."""
    deadline = time.monotonic() + timeout
    alive = [pid for pid in pids if not is_dead(pid)]
    while alive and time.monotonic() < deadline:
        time.sleep(0.05)
        alive = [pid for pid in alive if not is_dead(pid)]
    return alive
