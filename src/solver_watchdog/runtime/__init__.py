"""Runtime module for solver subprocess management.

This module provides isolated process spawning, bounded-time supervision
and termination of the whole solver process tree.
"""

from __future__ import annotations

from .process_runner import ProcessRunner, ProcessSpec, StdinWriter
from .process_tree import ProcessTree, PsutilProcessTree, kill_tree
from .supervisor import (
    Outcome,
    ProcessSupervisor,
    SupervisedProcess,
    SupervisionResult,
    supervise,
)

__all__ = [
    "ProcessRunner",
    "ProcessSpec",
    "StdinWriter",
    "ProcessTree",
    "PsutilProcessTree",
    "kill_tree",
    "Outcome",
    "ProcessSupervisor",
    "SupervisedProcess",
    "SupervisionResult",
    "supervise",
]
