"""Line patterns recognised in anytime solver output.

Each problem kind has one pattern per record field plus the shared sentinel.
Metric lines look like ``% <field>: <value>``; the sentinel is a line of
ten hyphens.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .base import SENTINEL, ProblemKind

__all__ = [
    "FieldPattern",
    "LinePattern",
    "PATTERNS",
    "get_patterns",
]

# A token that starts like a number; float() decides whether it really is one.
_NUMBER = r"([-+]?\d[\w.+-]*)"


def _strip_commas(value: str) -> str:
    return value.replace(",", "")


@dataclass(frozen=True)
class FieldPattern:
    """Pattern extracting one ResultRecord field from a line.

    Attributes:
        field: Name of the ResultRecord field to overwrite
        regex: Compiled pattern; group 1 captures the raw value
        convert: Converts the captured text to the field's type
    """

    field: str
    regex: re.Pattern[str]
    convert: Callable[[str], Any]

    def match(self, line: str) -> str | None:
        """Return the captured text if the line matches, else None."""
        m = self.regex.match(line)
        if m is None:
            return None
        return m.group(1)


@dataclass(frozen=True)
class LinePattern:
    """The field patterns and sentinel for one problem kind."""

    kind: ProblemKind
    fields: tuple[FieldPattern, ...]
    sentinel: str = SENTINEL

    def is_sentinel(self, line: str) -> bool:
        return line == self.sentinel


_ELAPSED = FieldPattern("elapsed", re.compile(rf"^% time elapsed: {_NUMBER} s"), float)

PATTERNS: dict[ProblemKind, LinePattern] = {
    ProblemKind.PSP: LinePattern(
        kind=ProblemKind.PSP,
        fields=(
            FieldPattern("objective", re.compile(rf"^% makespan: {_NUMBER}"), float),
            FieldPattern("solution", re.compile(r"^% permutation: \[(.*)\]"), _strip_commas),
            _ELAPSED,
        ),
    ),
    ProblemKind.TSPTW: LinePattern(
        kind=ProblemKind.TSPTW,
        fields=(
            FieldPattern("objective", re.compile(rf"^% objective: {_NUMBER}"), float),
            FieldPattern("solution", re.compile(r"^% tour: \[(.*)\]"), _strip_commas),
            _ELAPSED,
        ),
    ),
}


def get_patterns(kind: ProblemKind | str) -> LinePattern:
    """Look up the pattern set for a problem kind.

    Raises:
        ValueError: If the kind is unknown
    """
    return PATTERNS[ProblemKind(kind)]
