"""Streaming parser for anytime solver output.

The parser consumes the solver's stdout line by line, keeps a ResultRecord
up to date and emits one formatted row each time the sentinel line shows up.

Key design points:
- The record is never reset: every row reflects the latest values reported
  since the stream started
- The background job owns the stdout pipe and shares nothing with the
  supervisor; its failures are logged and kept on the job, never raised
- After a parse failure the pipe is still drained to EOF so the solver is
  never blocked on a full pipe
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from typing import IO, Any

from ..errors import StreamParseError
from .base import ProblemKind
from .patterns import LinePattern, get_patterns
from .record import ResultRecord, format_row

__all__ = [
    "ResultStreamParser",
    "ResultStreamJob",
    "RowSink",
    "spawn_output_logger",
]

logger = logging.getLogger(__name__)

RowSink = Callable[[str], None]


def print_row(row: str) -> None:
    """Default sink: one row per line on stdout."""
    print(row, flush=True)


class ResultStreamParser:
    """Incremental best-value tracker for one solver run.

    Example:
        parser = ResultStreamParser("bench1/inst01", ProblemKind.PSP)
        for line in stdout:
            row = parser.feed(line)
            if row is not None:
                print(row)

    Attributes:
        label: Run label printed in the first column
        patterns: Field patterns and sentinel for the problem kind
        improving_only: Keep a snapshot's objective only if strictly smaller
        record: Current accumulated record
        line_no: Number of lines fed so far
        rows_emitted: Number of sentinel rows produced so far
    """

    def __init__(
        self,
        label: str,
        kind: ProblemKind | str = ProblemKind.PSP,
        *,
        improving_only: bool = False,
    ) -> None:
        self.label = label
        self.patterns: LinePattern = get_patterns(kind)
        self.improving_only = improving_only
        self.record = ResultRecord()
        self.line_no = 0
        self.rows_emitted = 0

        # Field updates of the current snapshot, committed on the sentinel
        # (improving_only mode only).
        self._pending: dict[str, Any] = {}

    def feed(self, line: str | bytes) -> str | None:
        """Apply one line of solver output.

        Args:
            line: A line with or without its trailing newline

        Returns:
            The formatted row if the line is the sentinel, else None

        Raises:
            StreamParseError: If the line cannot be decoded or a captured
                value cannot be converted
        """
        self.line_no += 1
        if isinstance(line, bytes):
            try:
                line = line.decode("utf-8")
            except UnicodeDecodeError as e:
                raise StreamParseError(self.line_no, repr(line), "undecodable line") from e
        line = line.rstrip("\r\n")

        for pattern in self.patterns.fields:
            raw = pattern.match(line)
            if raw is None:
                continue
            try:
                value = pattern.convert(raw)
            except ValueError as e:
                raise StreamParseError(
                    self.line_no, line, f"invalid {pattern.field} value {raw!r}"
                ) from e
            self._update(pattern.field, value)

        if self.patterns.is_sentinel(line):
            self._commit()
            self.rows_emitted += 1
            return format_row(self.label, self.record)
        return None

    def consume(self, lines: Iterable[str | bytes], sink: RowSink = print_row) -> int:
        """Feed every line, sending each row to the sink.

        Returns:
            Number of rows emitted in total
        """
        for line in lines:
            row = self.feed(line)
            if row is not None:
                sink(row)
        return self.rows_emitted

    def _update(self, field: str, value: Any) -> None:
        if self.improving_only:
            self._pending[field] = value
        else:
            setattr(self.record, field, value)

    def _commit(self) -> None:
        if not self._pending:
            return
        pending, self._pending = self._pending, {}

        objective = pending.get("objective")
        if objective is not None and objective >= self.record.objective:
            logger.debug(
                f"[{self.label}] rejected non-improving objective {objective} "
                f"(best {self.record.objective})"
            )
            pending.pop("objective")
            pending.pop("solution", None)

        for field, value in pending.items():
            setattr(self.record, field, value)


class ResultStreamJob:
    """Background thread running a ResultStreamParser over a pipe.

    The job never raises into its creator. Errors end the parsing, are logged
    at WARNING and kept on ``error``.

    Example:
        job = ResultStreamJob(parser, process.stdout).start()
        ...
        job.join(timeout=2.0)
        if job.error:
            print(f"output parsing stopped: {job.error}")
    """

    def __init__(
        self,
        parser: ResultStreamParser,
        stream: IO[bytes],
        sink: RowSink | None = None,
    ) -> None:
        self.parser = parser
        self.error: BaseException | None = None
        self._stream = stream
        self._sink = sink or print_row
        self._thread = threading.Thread(
            target=self._run,
            name=f"result-stream-{parser.label}",
            daemon=True,
        )

    @property
    def record(self) -> ResultRecord:
        return self.parser.record

    @property
    def rows_emitted(self) -> int:
        return self.parser.rows_emitted

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> "ResultStreamJob":
        self._thread.start()
        return self

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the job to reach end of stream.

        Returns:
            True if the job has finished
        """
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self) -> None:
        label = self.parser.label
        try:
            with self._stream:
                try:
                    self.parser.consume(self._stream, self._sink)
                except StreamParseError as e:
                    self._fail(e)
                    self._drain()
                    return
        except (OSError, ValueError) as e:
            # ValueError covers reads on a pipe closed underneath us
            self._fail(e)
            return

        logger.debug(
            f"[{label}] output stream ended after {self.parser.line_no} line(s), "
            f"{self.parser.rows_emitted} row(s)"
        )

    def _fail(self, error: BaseException) -> None:
        if self.error is None:
            self.error = error
        logger.warning(
            f"[{self.parser.label}] output parsing stopped: "
            f"{type(error).__name__}: {error}"
        )

    def _drain(self) -> None:
        """Discard the rest of the stream so the producer never blocks."""
        drained = 0
        for _ in self._stream:
            drained += 1
        logger.debug(f"[{self.parser.label}] drained {drained} unparsed line(s)")


def spawn_output_logger(
    label: str,
    stream: IO[bytes],
    kind: ProblemKind | str = ProblemKind.PSP,
    *,
    sink: RowSink | None = None,
    improving_only: bool = False,
) -> ResultStreamJob:
    """Start a background job that prints one row per solver snapshot.

    Args:
        label: Run label, e.g. ``bench1/inst01``
        stream: The child's stdout pipe (binary, line oriented)
        kind: Problem kind selecting the pattern set
        sink: Row consumer (defaults to printing on stdout)
        improving_only: Keep only strictly improving objectives

    Returns:
        The started job
    """
    parser = ResultStreamParser(label, kind, improving_only=improving_only)
    return ResultStreamJob(parser, stream, sink).start()
