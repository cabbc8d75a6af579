"""Bounded-time supervision of a solver process.

The supervisor races natural completion of the child against a deadline:

- A watcher thread polls the child (non-blocking) every ``poll_interval``
  seconds and notifies a condition variable once it has exited
- The caller waits on that condition with the deadline as timeout
- On timeout the whole descendant tree of the child is signalled, because
  solvers fork workers that survive a kill of the parent alone

The kill is fire-and-forget: the supervisor does not wait for the signalled
processes to actually exit.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from ..errors import ProcessIOError, SynchronizationError
from .process_tree import ProcessTree, PsutilProcessTree, kill_tree

__all__ = [
    "ChildProcess",
    "Outcome",
    "ProcessSupervisor",
    "SupervisedProcess",
    "SupervisionResult",
    "supervise",
]

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.5  # seconds between watcher probes


class ChildProcess(Protocol):
    """The part of subprocess.Popen the supervisor relies on."""

    pid: int

    def poll(self) -> int | None: ...


class Outcome(str, Enum):
    """How supervision ended."""

    COMPLETED = "completed"     # exited on its own before the deadline check
    TERMINATED = "terminated"   # deadline fired, tree signalled


@dataclass
class SupervisionResult:
    """Result of a supervised run.

    Attributes:
        outcome: Natural completion or forced termination
        returncode: Exit status for completed runs, None when terminated
        killed_pids: Pids that were sent the termination signal
        elapsed: Seconds spent in supervise()
    """

    outcome: Outcome
    returncode: int | None = None
    killed_pids: list[int] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def timed_out(self) -> bool:
        return self.outcome is Outcome.TERMINATED


class SupervisedProcess:
    """Child handle and completion flag guarded by a single lock.

    Invariants:
    - ``finished`` and the handle are only touched while holding the lock
    - ``finished`` only moves from False to True; once set, the watcher
      never polls the handle again
    - ``failure`` records an exception that killed the watcher thread
    """

    def __init__(self, child: ChildProcess) -> None:
        self.child = child
        self.finished = False
        self.failure: BaseException | None = None
        self._lock = threading.Lock()
        self.condition = threading.Condition(self._lock)

    def is_settled(self) -> bool:
        return self.finished or self.failure is not None

    def wait_finished(self, timeout: float) -> bool:
        """Block until finished (or watcher failure) or the timeout elapses.

        The predicate is re-checked under the lock on every wake-up, so
        unrelated notifications never release the waiter early.

        Returns:
            True if the wait ended because the state settled
        """
        with self.condition:
            return self.condition.wait_for(self.is_settled, timeout=timeout)


class ProcessSupervisor:
    """Runs a child under a deadline and kills its tree when it expires.

    Example:
        supervisor = ProcessSupervisor(poll_interval=0.5)
        result = supervisor.supervise(child, timeout=60.0)
        if result.timed_out:
            print(f"killed {result.killed_pids}")

    Attributes:
        poll_interval: Seconds between watcher probes; bounds the latency of
            detecting natural completion
        tree: Enumeration/termination capability used on deadline expiry
    """

    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        tree: ProcessTree | None = None,
    ) -> None:
        self.poll_interval = poll_interval
        self.tree: ProcessTree = tree if tree is not None else PsutilProcessTree()

    def supervise(self, child: ChildProcess, timeout: float) -> SupervisionResult:
        """Block until the child exits or ``timeout`` seconds elapse.

        Args:
            child: A running process handle
            timeout: Maximum wall-clock duration in seconds

        Returns:
            SupervisionResult describing the outcome

        Raises:
            SynchronizationError: If the watcher thread crashed
            ProcessIOError: If the final exit probe fails
            TreeEnumerationError: If the descendants cannot be listed
            ProcessTreeKillError: If some process could not be signalled
        """
        start = time.monotonic()
        state = SupervisedProcess(child)

        watcher = threading.Thread(
            target=self._watch,
            args=(state,),
            name=f"solver-watcher-{child.pid}",
            daemon=True,
        )
        watcher.start()

        with state.condition:
            settled = state.condition.wait_for(state.is_settled, timeout=timeout)

            # From here on the watcher stops at its next lock acquisition.
            state.finished = True

            if state.failure is not None:
                raise SynchronizationError(
                    f"watcher for pid={child.pid} failed: {state.failure}"
                ) from state.failure

            try:
                returncode = child.poll()
            except OSError as e:
                raise ProcessIOError(f"cannot probe exit status of pid={child.pid}: {e}") from e

            if returncode is not None:
                elapsed = time.monotonic() - start
                logger.debug(
                    f"Process completed pid={child.pid} returncode={returncode} "
                    f"elapsed={elapsed:.2f}s (notified={settled})"
                )
                return SupervisionResult(
                    outcome=Outcome.COMPLETED,
                    returncode=returncode,
                    elapsed=elapsed,
                )

            logger.info(f"Deadline of {timeout}s reached, killing process tree pid={child.pid}")
            killed = kill_tree(self.tree, child.pid)

            if not killed:
                # The root exited between the final probe and enumeration
                try:
                    returncode = child.poll()
                except OSError as e:
                    raise ProcessIOError(f"cannot probe exit status of pid={child.pid}: {e}") from e
                if returncode is not None:
                    logger.debug(f"Process exited before the kill pid={child.pid} returncode={returncode}")
                    return SupervisionResult(
                        outcome=Outcome.COMPLETED,
                        returncode=returncode,
                        elapsed=time.monotonic() - start,
                    )

        return SupervisionResult(
            outcome=Outcome.TERMINATED,
            killed_pids=killed,
            elapsed=time.monotonic() - start,
        )

    def _watch(self, state: SupervisedProcess) -> None:
        """Poll the child until it exits or the supervisor gives up."""
        pid = state.child.pid
        try:
            while True:
                with state.condition:
                    if state.finished:
                        break
                    try:
                        exited = state.child.poll() is not None
                    except OSError as e:
                        logger.debug(f"Exit probe failed pid={pid}: {e}")
                        exited = False
                    if exited:
                        state.finished = True
                        state.condition.notify_all()
                        break
                time.sleep(self.poll_interval)
        except Exception as e:
            logger.exception(f"Watcher crashed pid={pid}")
            with state.condition:
                state.failure = e
                state.condition.notify_all()
            return

        logger.debug(f"Watcher stopped pid={pid}")


def supervise(
    child: ChildProcess,
    timeout: float,
    *,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    tree: ProcessTree | None = None,
) -> SupervisionResult:
    """Convenience wrapper around ProcessSupervisor.supervise().

    Args:
        child: A running process handle
        timeout: Maximum wall-clock duration in seconds
        poll_interval: Seconds between watcher probes
        tree: Enumeration/termination capability (psutil by default)

    Returns:
        SupervisionResult describing the outcome
    """
    return ProcessSupervisor(poll_interval=poll_interval, tree=tree).supervise(child, timeout)
