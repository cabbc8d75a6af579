"""solver-watchdog - anytime 求解器的限时运行与结果流解析。

环境变量:
    SW_TIMEOUT: 求解器最长运行时间（秒，默认 60）
    SW_POLL_INTERVAL: 子进程轮询间隔（秒，默认 0.5）
    SW_PROBLEM: 输出解析模式 psp/tsptw (默认 psp)
    SW_KILL_SIGNAL: 超时信号 kill/term (默认 kill)

用法:
    solver-watchdog bench1/inst01.dzn --timeout 60 --problem psp
"""

__version__ = "0.1.0"

from .app import main, run_solver

__all__ = ["__version__", "main", "run_solver"]
