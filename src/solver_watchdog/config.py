"""solver-watchdog 环境变量配置管理。

环境变量:
    SW_TIMEOUT: 求解器最长运行时间（秒）
        - 默认 60
        - 必须为正数，无效值回退到默认值

    SW_POLL_INTERVAL: 监视线程轮询子进程的间隔（秒）
        - 默认 0.5
        - 限制在 0.01-5 秒范围

    SW_PROBLEM: 求解器输出的问题类型（决定解析模式）
        - psp = 生产计划问题，makespan/permutation (默认)
        - tsptw = 带时间窗的 TSP，objective/tour

    SW_KILL_SIGNAL: 超时后发送给进程树的信号
        - kill = SIGKILL (默认)
        - term = SIGTERM

    SW_IMPROVING_ONLY: 目标值接受策略
        - true/1/yes = 只接受严格更优（更小）的目标值
        - false/0/no = 后写覆盖 (默认)

    SW_DRAIN_TIMEOUT: 监督结束后等待输出解析与子进程回收的时间（秒）
        - 默认 2.0

    SW_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import signal
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from .parsers.base import ProblemKind

__all__ = ["Config", "KillSignal", "load_config", "get_config", "reload_config"]

DEFAULT_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_DRAIN_TIMEOUT = 2.0


class KillSignal(Enum):
    """超时终止时使用的信号。

    - KILL: 强制终止（Windows 上为 TerminateProcess）
    - TERM: 请求终止，求解器可以自行清理
    """

    KILL = "kill"
    TERM = "term"

    @classmethod
    def from_string(cls, value: str) -> "KillSignal":
        """从字符串解析信号，无效值返回 KILL。"""
        value = value.lower().strip()
        for sig in cls:
            if sig.value == value:
                return sig
        return cls.KILL

    @property
    def signum(self) -> int | None:
        """对应的信号编号；None 表示使用 Process.kill()。"""
        if self is KillSignal.TERM:
            return signal.SIGTERM
        return None


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_positive_float(value: str | None, default: float) -> float:
    """解析正数环境变量，无效值返回默认值。"""
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_poll_interval(value: str | None) -> float:
    """解析轮询间隔环境变量。"""
    interval = _parse_positive_float(value, DEFAULT_POLL_INTERVAL)
    return max(0.01, min(interval, 5.0))  # 限制在 0.01-5 秒范围


def _parse_problem(value: str | None) -> ProblemKind:
    """解析问题类型环境变量。"""
    if not value:
        return ProblemKind.PSP
    return ProblemKind.from_string(value)


@dataclass
class Config:
    """solver-watchdog 配置。

    Attributes:
        timeout: 求解器最长运行时间（秒）
        poll_interval: 监视线程轮询间隔（秒）
        problem: 输出解析使用的问题类型
        kill_signal: 超时后发送给进程树的信号
        improving_only: 是否只接受更优的目标值
        drain_timeout: 监督结束后等待解析线程/回收子进程的时间（秒）
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    timeout: float = DEFAULT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    problem: ProblemKind = ProblemKind.PSP
    kill_signal: KillSignal = KillSignal.KILL
    improving_only: bool = False
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(timeout={self.timeout}, "
            f"poll_interval={self.poll_interval}, "
            f"problem={self.problem.value}, "
            f"kill_signal={self.kill_signal.value}, "
            f"improving_only={self.improving_only}, "
            f"drain_timeout={self.drain_timeout}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "solver-watchdog"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"sw_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("SW_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        timeout=_parse_positive_float(os.environ.get("SW_TIMEOUT"), DEFAULT_TIMEOUT),
        poll_interval=_parse_poll_interval(os.environ.get("SW_POLL_INTERVAL")),
        problem=_parse_problem(os.environ.get("SW_PROBLEM")),
        kill_signal=KillSignal.from_string(os.environ.get("SW_KILL_SIGNAL") or ""),
        improving_only=_parse_bool(os.environ.get("SW_IMPROVING_ONLY"), default=False),
        drain_timeout=_parse_positive_float(
            os.environ.get("SW_DRAIN_TIMEOUT"), DEFAULT_DRAIN_TIMEOUT
        ),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
