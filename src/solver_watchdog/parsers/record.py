"""最优结果记录与输出行格式。

ResultRecord 在整个输出流期间原地更新，从不回滚，也不在哨兵行后重置。
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from .base import NO_SOLUTION, OBJECTIVE_UNSET

__all__ = [
    "ResultRecord",
    "format_row",
]


class ResultRecord(BaseModel):
    """求解器迄今报告的最新结果。

    Attributes:
        objective: 目标值，初始为比任何真实值都差的占位
        solution: 解的文本表示（已去除逗号）
        elapsed: 求解器报告的已用时间（秒）
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=False,
        validate_assignment=True,
    )

    objective: float = OBJECTIVE_UNSET
    solution: str = NO_SOLUTION
    elapsed: float = 0.0


def format_row(label: str, record: ResultRecord) -> str:
    """格式化一行结果。

    格式: label | objective(4 位小数) | elapsed(2 位小数) | solution
    """
    return (
        f"{label:<10} | {record.objective:>10.4f} | "
        f"{record.elapsed:>10.2f} | {record.solution}"
    )
