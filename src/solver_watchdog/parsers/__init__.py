"""Anytime solver output parsers.

将求解器的 anytime 输出流解析为最优结果记录，并在每个哨兵行输出一行结果。
"""

from __future__ import annotations

from .base import NO_SOLUTION, OBJECTIVE_UNSET, SENTINEL, ProblemKind
from .patterns import PATTERNS, FieldPattern, LinePattern, get_patterns
from .record import ResultRecord, format_row
from .stream import (
    ResultStreamJob,
    ResultStreamParser,
    RowSink,
    spawn_output_logger,
)

__all__ = [
    # 基础类型
    "ProblemKind",
    "SENTINEL",
    "OBJECTIVE_UNSET",
    "NO_SOLUTION",
    # 模式
    "FieldPattern",
    "LinePattern",
    "PATTERNS",
    "get_patterns",
    # 记录
    "ResultRecord",
    "format_row",
    # 流解析
    "ResultStreamParser",
    "ResultStreamJob",
    "RowSink",
    "spawn_output_logger",
]
