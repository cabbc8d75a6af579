"""基础类型和常量定义。

本模块定义了解析器共享的基础类型，包括：
- 问题类型标识（决定使用哪组输出模式）
- 哨兵行与初始占位值
"""

from __future__ import annotations

from enum import Enum
from typing import Final

__all__ = [
    "ProblemKind",
    "SENTINEL",
    "OBJECTIVE_UNSET",
    "NO_SOLUTION",
]

# 一个解快照结束的标记行（minizinc 的 "----------"）
SENTINEL: Final[str] = "-" * 10

# 尚未报告目标值时的占位（float32 最大值，比任何真实目标值都差）
OBJECTIVE_UNSET: Final[float] = 3.4028234663852886e38

# 尚未报告解时的占位文本
NO_SOLUTION: Final[str] = "-- no solution --"


class ProblemKind(str, Enum):
    """求解器输出对应的问题类型。

    - PSP: 排程类问题，报告 makespan 与 permutation
    - TSPTW: 路径类问题，报告 objective 与 tour
    """

    PSP = "psp"
    TSPTW = "tsptw"

    @classmethod
    def from_string(cls, value: str) -> "ProblemKind":
        """从字符串解析问题类型，无效值返回 PSP。"""
        value = value.lower().strip()
        for kind in cls:
            if kind.value == value:
                return kind
        return cls.PSP
