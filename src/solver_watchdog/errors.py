"""solver-watchdog 异常类。

分类:
    - SynchronizationError: 监视线程异常退出，整个监督调用不可恢复
    - ProcessIOError: 启动、探测子进程退出状态等 OS 层错误
    - ProcessTreeError: 枚举或终止进程树失败
    - StreamParseError: 求解器输出行无法解析（仅终止解析线程）
"""

from __future__ import annotations

__all__ = [
    "WatchdogError",
    "SynchronizationError",
    "ProcessIOError",
    "ProcessTreeError",
    "ProcessGoneError",
    "TreeEnumerationError",
    "TerminationError",
    "ProcessTreeKillError",
    "StreamParseError",
]


class WatchdogError(Exception):
    """solver-watchdog 基础异常。"""
    pass


class SynchronizationError(WatchdogError):
    """监视线程在持有共享状态期间崩溃。"""
    pass


class ProcessIOError(WatchdogError):
    """子进程 I/O 错误（启动、写入 stdin、探测退出状态）。"""
    pass


class ProcessTreeError(WatchdogError):
    """进程树操作错误基类。

    Attributes:
        pid: 出错的进程 ID
    """

    def __init__(self, pid: int, message: str = "") -> None:
        self.pid = pid
        super().__init__(message or f"process tree operation failed for pid={pid}")


class ProcessGoneError(ProcessTreeError):
    """目标进程已退出（非致命）。"""

    def __init__(self, pid: int) -> None:
        super().__init__(pid, f"process {pid} no longer exists")


class TreeEnumerationError(ProcessTreeError):
    """无法枚举后代进程。"""
    pass


class TerminationError(ProcessTreeError):
    """无法向单个进程发送终止信号。"""
    pass


class ProcessTreeKillError(ProcessTreeError):
    """批量终止后仍有进程发送信号失败。

    Attributes:
        failures: pid -> 对应的 TerminationError
        killed: 成功发送信号的 pid 列表
    """

    def __init__(
        self,
        root_pid: int,
        failures: dict[int, TerminationError],
        killed: list[int],
    ) -> None:
        self.failures = failures
        self.killed = killed
        failed = ", ".join(str(pid) for pid in sorted(failures))
        super().__init__(
            root_pid,
            f"failed to terminate {len(failures)} process(es) in tree of {root_pid}: {failed}",
        )


class StreamParseError(WatchdogError):
    """求解器输出行解析失败。

    Attributes:
        line_no: 行号（从 1 开始）
        line: 原始行内容
    """

    def __init__(self, line_no: int, line: str, reason: str) -> None:
        self.line_no = line_no
        self.line = line
        super().__init__(f"line {line_no}: {reason}: {line!r}")
