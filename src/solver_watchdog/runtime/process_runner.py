"""Process runner for solver subprocesses.

solver-watchdog runtime module v0.1.0

This module provides:
- Cross-platform subprocess isolation (new session/process group)
- Piped stdin/stdout for feeding the instance and reading anytime output
- A background stdin writer, so a solver that does not read its input (or
  fills its stdout while reading) can never block the caller

Key design points:
- POSIX: start_new_session=True so a terminal SIGINT does not reach the solver
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- Because of the isolation, the solver tree must be killed explicitly; see
  process_tree.kill_tree
- spawn() never writes to the pipe itself; the caller starts the stdout
  reader first and then feeds stdin with feed_stdin()
"""

from __future__ import annotations

import logging
import subprocess
import sys
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

from ..errors import ProcessIOError

__all__ = [
    "ProcessRunner",
    "ProcessSpec",
    "StdinWriter",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a solver subprocess.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process (None = inherit)
        env: Environment variables (None = inherit parent)
        stdin_bytes: Optional bytes for stdin (the encoded instance); when
            set, stdin is a pipe to be fed with ProcessRunner.feed_stdin()
    """

    argv: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    stdin_bytes: bytes | None = None


class StdinWriter:
    """Background thread writing the instance to the child's stdin.

    The pipe is closed once everything is written. A child that exits (or is
    killed) without reading its input breaks the pipe, which ends the writer
    quietly. Other write errors are logged and kept on ``error``.

    Example:
        writer = StdinWriter(process.stdin, data, pid=process.pid).start()
        ...
        writer.join(timeout=2.0)
    """

    def __init__(self, stream: IO[bytes], data: bytes, pid: int) -> None:
        self.pid = pid
        self.error: OSError | None = None
        self.written = False
        self._stream = stream
        self._data = data
        self._thread = threading.Thread(
            target=self._run,
            name=f"stdin-writer-{pid}",
            daemon=True,
        )

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> "StdinWriter":
        self._thread.start()
        return self

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the writer to finish.

        Returns:
            True if the writer has finished
        """
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self) -> None:
        try:
            self._stream.write(self._data)
            self.written = True
        except BrokenPipeError:
            logger.debug(f"Solver pid={self.pid} closed stdin before reading all input")
        except OSError as e:
            # Windows reports a closed reader as EINVAL
            self.error = e
            logger.warning(f"Writing stdin failed pid={self.pid}: {e}")
        finally:
            try:
                self._stream.close()
            except OSError as e:
                # Flushing buffered input into a broken pipe
                logger.debug(f"Closing stdin failed pid={self.pid}: {e}")
        logger.debug(f"Stdin writer done pid={self.pid} written={self.written}")


@dataclass
class ProcessRunner:
    """Spawns solver processes with isolation and piped output.

    Example:
        runner = ProcessRunner()
        spec = ProcessSpec(
            argv=["minizinc", "--intermediate", "model.mzn"],
            stdin_bytes=b"n = 3;",
        )
        child = runner.spawn(spec)
        job = spawn_output_logger(label, child.stdout)
        writer = runner.feed_stdin(child, spec.stdin_bytes)
    """

    def spawn(self, spec: ProcessSpec) -> subprocess.Popen[bytes]:
        """Start the subprocess.

        Stdin is a pipe when ``spec.stdin_bytes`` is set, else DEVNULL.
        Nothing is written here: start reading stdout first, then call
        feed_stdin(), or the two pipes can deadlock.

        Args:
            spec: Process specification

        Returns:
            The running process with ``stdout`` piped

        Raises:
            ProcessIOError: If the process cannot be started
        """
        kwargs = self._build_subprocess_kwargs(spec)

        try:
            # Use DEVNULL instead of None when there is no input, so the
            # solver never reads from our own stdin.
            process = subprocess.Popen(
                spec.argv,
                stdin=subprocess.PIPE if spec.stdin_bytes is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                cwd=spec.cwd,
                **kwargs,
            )
        except OSError as e:
            raise ProcessIOError(f"cannot start {spec.argv[0]!r}: {e}") from e

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={spec.argv[0]} cwd={spec.cwd}"
        )
        return process

    def feed_stdin(self, process: subprocess.Popen[bytes], data: bytes) -> StdinWriter:
        """Write ``data`` to the process's stdin from a background thread.

        Args:
            process: A process spawned with ``stdin_bytes`` set
            data: The bytes to write; stdin is closed afterwards

        Returns:
            The started writer

        Raises:
            ProcessIOError: If the process has no stdin pipe
        """
        if process.stdin is None:
            raise ProcessIOError(f"pid={process.pid} was started without a stdin pipe")
        return StdinWriter(process.stdin, data, pid=process.pid).start()

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs.

        Args:
            spec: Process specification

        Returns:
            Dict of kwargs for subprocess.Popen
        """
        kwargs: dict[str, Any] = {}

        # Environment
        if spec.env is not None:
            kwargs["env"] = dict(spec.env)

        # Platform-specific isolation
        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            # POSIX: start_new_session (equivalent to setsid)
            kwargs["start_new_session"] = True

        return kwargs
