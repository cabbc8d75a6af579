"""Descendant process tree enumeration and termination.

Solvers commonly fork worker processes that outlive a kill of their parent,
so a deadline kill targets every process in the tree rooted at the child.

The OS-specific part sits behind the small ``ProcessTree`` capability so the
supervisor can be exercised against an in-memory tree in tests.

Error contract for ``ProcessTree`` implementations:
- ``ProcessGoneError``: the process already exited (never fatal)
- ``TreeEnumerationError``: descendants could not be listed
- ``TerminationError``: the signal could not be delivered
"""

from __future__ import annotations

import logging
from typing import Protocol

import psutil

from ..errors import (
    ProcessGoneError,
    ProcessTreeKillError,
    TerminationError,
    TreeEnumerationError,
)

__all__ = [
    "ProcessTree",
    "PsutilProcessTree",
    "kill_tree",
]

logger = logging.getLogger(__name__)


class ProcessTree(Protocol):
    """Capability to list and signal the processes under a root pid."""

    def descendants(self, pid: int) -> list[int]:
        """Return the transitive descendants of ``pid`` (root excluded)."""
        ...

    def terminate(self, pid: int) -> None:
        """Send the termination signal to a single process."""
        ...


class PsutilProcessTree:
    """ProcessTree backed by psutil.

    The handles found by the last descendants() call are kept and reused by
    terminate(). psutil checks a handle's creation time before signalling, so
    a pid recycled after enumeration is reported as gone instead of being
    signalled.

    Attributes:
        kill_signal: Signal number to send; None uses Process.kill()
            (SIGKILL on POSIX, TerminateProcess on Windows)
    """

    def __init__(self, kill_signal: int | None = None) -> None:
        self.kill_signal = kill_signal
        self._handles: dict[int, psutil.Process] = {}

    def descendants(self, pid: int) -> list[int]:
        self._handles = {}
        try:
            root = psutil.Process(pid)
            children = root.children(recursive=True)
        except psutil.NoSuchProcess as e:
            raise ProcessGoneError(pid) from e
        except (psutil.AccessDenied, OSError) as e:
            raise TreeEnumerationError(pid, f"cannot list descendants of {pid}: {e}") from e
        self._handles = {proc.pid: proc for proc in [root, *children]}
        return [child.pid for child in children]

    def terminate(self, pid: int) -> None:
        try:
            proc = self._handles.get(pid)
            if proc is None:
                proc = psutil.Process(pid)
            if self.kill_signal is None:
                proc.kill()
            else:
                proc.send_signal(self.kill_signal)
        except psutil.NoSuchProcess as e:
            raise ProcessGoneError(pid) from e
        except (psutil.AccessDenied, OSError) as e:
            raise TerminationError(pid, f"cannot signal process {pid}: {e}") from e


def kill_tree(tree: ProcessTree, root_pid: int) -> list[int]:
    """Signal the root and every descendant, one by one.

    The tree is enumerated once, before any signal is sent, so children
    re-parented by the root's death are still targeted. Processes that exit
    on their own in the meantime are skipped. A failure on one process does
    not stop attempts on the others.

    Args:
        tree: Enumeration/termination capability
        root_pid: Pid of the supervised child

    Returns:
        Pids that were signalled, root first

    Raises:
        TreeEnumerationError: If the descendants cannot be listed
        ProcessTreeKillError: If any signal could not be delivered
    """
    try:
        descendants = tree.descendants(root_pid)
    except ProcessGoneError:
        logger.debug(f"Root process exited before enumeration pid={root_pid}")
        return []

    targets = [root_pid] + [pid for pid in descendants if pid != root_pid]
    logger.debug(f"Killing process tree root={root_pid} targets={targets}")

    killed: list[int] = []
    failures: dict[int, TerminationError] = {}
    for pid in targets:
        try:
            tree.terminate(pid)
        except ProcessGoneError:
            logger.debug(f"Process already exited pid={pid}")
            continue
        except TerminationError as e:
            logger.warning(f"Failed to terminate pid={pid}: {e}")
            failures[pid] = e
            continue
        killed.append(pid)

    if failures:
        raise ProcessTreeKillError(root_pid, failures, killed)

    logger.info(f"Sent termination signal to {len(killed)} process(es) in tree of pid={root_pid}")
    return killed
