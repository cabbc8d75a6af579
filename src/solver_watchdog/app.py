"""solver-watchdog 应用入口。

包含一次求解运行的编排、日志配置和命令行入口点。

一次运行由三个并发任务组成：
- 调用方：阻塞在监督器的条件变量上，直到进程结束或超时
- 监视线程：周期性探测子进程是否退出
- 解析线程：逐行读取求解器 stdout 并输出结果行
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from .config import Config, get_config
from .errors import WatchdogError
from .parsers import ProblemKind, ResultRecord, RowSink, spawn_output_logger
from .runtime import (
    ProcessRunner,
    ProcessSpec,
    ProcessSupervisor,
    ProcessTree,
    PsutilProcessTree,
    SupervisionResult,
    kill_tree,
)

__all__ = [
    "RunReport",
    "run_solver",
    "instance_label",
    "build_minizinc_command",
    "configure_logging",
    "main",
]

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """一次求解运行的汇总。

    Attributes:
        label: 运行标签（如 bench1/inst01）
        supervision: 监督结果（正常结束或被终止）
        record: 解析得到的最终结果记录
        rows_emitted: 输出的结果行数
        parser_error: 解析线程的错误（不影响监督结果）
        input_error: 写入 stdin 的错误（求解器提前关闭输入不算错误）
    """

    label: str
    supervision: SupervisionResult
    record: ResultRecord
    rows_emitted: int = 0
    parser_error: BaseException | None = None
    input_error: OSError | None = None


def instance_label(fname: str | Path) -> str:
    """由实例文件路径生成运行标签。

    格式: {所在目录名}/{文件名}，例如 ``benchmarks/bench1/inst01`` -> ``bench1/inst01``
    """
    path = Path(fname)
    return f"{path.parent.name}/{path.name}"


def build_minizinc_command(model: str | Path, parallel: int | None = None) -> list[str]:
    """构建以 anytime 模式运行 minizinc 的命令行。

    Args:
        model: 模型文件路径
        parallel: 并行线程数（默认使用全部 CPU）

    Returns:
        命令行参数列表，实例数据通过 stdin 传入
    """
    threads = parallel or os.cpu_count() or 1
    return [
        "minizinc",
        "--intermediate",
        "--output-time",
        "--parallel",
        str(threads),
        "--input-from-stdin",
        str(model),
    ]


def run_solver(
    spec: ProcessSpec,
    label: str,
    *,
    config: Config | None = None,
    sink: RowSink | None = None,
    tree: ProcessTree | None = None,
    runner: ProcessRunner | None = None,
) -> RunReport:
    """启动求解器，在截止时间内监督它，并解析其输出。

    先启动解析线程，再由后台线程写入 stdin，截止时间与写入同时开始，
    不读输入的求解器也无法阻塞调用方。监督结束后最多等待
    ``drain_timeout`` 秒让解析线程读完输出、写入线程退出，并回收子进程。

    Args:
        spec: 进程规格（命令行与编码后的实例数据）
        label: 运行标签，输出在结果行第一列
        config: 配置（默认读取环境变量）
        sink: 结果行输出函数（默认打印到 stdout）
        tree: 进程树能力（默认使用 psutil）
        runner: 进程启动器

    Returns:
        运行汇总

    Raises:
        WatchdogError: 启动、监督或终止进程树失败
    """
    config = config or get_config()
    tree = tree or PsutilProcessTree(config.kill_signal.signum)
    runner = runner or ProcessRunner()

    child = runner.spawn(spec)
    logger.info(f"[{label}] solver started pid={child.pid}, deadline={config.timeout}s")

    job = spawn_output_logger(
        label,
        child.stdout,
        config.problem,
        sink=sink,
        improving_only=config.improving_only,
    )
    writer = None
    if spec.stdin_bytes is not None:
        writer = runner.feed_stdin(child, spec.stdin_bytes)

    supervisor = ProcessSupervisor(poll_interval=config.poll_interval, tree=tree)
    try:
        result = supervisor.supervise(child, config.timeout)
    except KeyboardInterrupt:
        # 子进程在独立会话中，不会收到终端的 SIGINT
        logger.warning(f"[{label}] interrupted, killing solver tree pid={child.pid}")
        try:
            kill_tree(tree, child.pid)
        except WatchdogError as e:
            # 保留中断本身，终止失败只记录
            logger.error(f"[{label}] failed to kill solver tree: {type(e).__name__}: {e}")
        raise

    if not job.join(config.drain_timeout):
        logger.warning(
            f"[{label}] output stream still open after {config.drain_timeout}s"
        )
    if writer is not None and not writer.join(config.drain_timeout):
        logger.warning(f"[{label}] stdin writer still blocked after {config.drain_timeout}s")
    _reap(child, config.drain_timeout)

    if result.timed_out:
        logger.info(f"[{label}] terminated after {result.elapsed:.2f}s, killed {result.killed_pids}")
    else:
        logger.info(
            f"[{label}] completed after {result.elapsed:.2f}s, returncode={result.returncode}"
        )

    return RunReport(
        label=label,
        supervision=result,
        record=job.record,
        rows_emitted=job.rows_emitted,
        parser_error=job.error,
        input_error=writer.error if writer is not None else None,
    )


def _reap(child: subprocess.Popen[bytes], timeout: float) -> None:
    """回收子进程，避免僵尸进程。"""
    try:
        child.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.warning(f"Solver pid={child.pid} still running after {timeout}s")


class JsonSerializingFormatter(logging.Formatter):
    """尝试将日志参数中的对象 JSON 序列化的格式化器。"""

    def format(self, record: logging.LogRecord) -> str:
        if record.args:
            new_args = []
            for arg in record.args:
                try:
                    if hasattr(arg, "model_dump"):
                        # Pydantic 模型
                        new_args.append(json.dumps(arg.model_dump(), ensure_ascii=False))
                    elif isinstance(arg, dict):
                        new_args.append(json.dumps(arg, ensure_ascii=False, default=str))
                    else:
                        new_args.append(arg)
                except (TypeError, ValueError):
                    new_args.append(arg)
            record.args = tuple(new_args)
        return super().format(record)


def configure_logging(config: Config) -> None:
    """配置日志输出。

    - 默认：stderr，INFO 级别
    - SW_LOG_DEBUG：临时目录下的日志文件，DEBUG 级别
    """
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(JsonSerializingFormatter(
            "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"
        ))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
        force=True,
    )
    # 只对 solver_watchdog 命名空间启用详细日志
    logging.getLogger("solver_watchdog").setLevel(log_level)


def _positive_float(value: str) -> float:
    """argparse 类型：正数秒数。"""
    try:
        parsed = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}") from None
    if not 0 < parsed < float("inf"):
        raise argparse.ArgumentTypeError(f"must be a finite number greater than 0: {value!r}")
    return parsed


def _build_arg_parser(config: Config) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solver-watchdog",
        description=(
            "Run an anytime solver under a deadline, print one row per reported "
            "solution and kill the whole solver process tree on timeout. "
            "Arguments after '--' replace the default minizinc command."
        ),
    )
    parser.add_argument("input", type=Path, help="Encoded instance data, sent to the solver's stdin")
    parser.add_argument("--timeout", "-t", type=_positive_float, default=config.timeout, help="Deadline in seconds")
    parser.add_argument(
        "--problem",
        choices=[kind.value for kind in ProblemKind],
        default=config.problem.value,
        help="Output pattern set",
    )
    parser.add_argument("--model", type=str, default=None, help="MiniZinc model (default: <problem>.mzn)")
    parser.add_argument("--label", type=str, default=None, help="Row label (default: <dir>/<file> of input)")
    return parser


def main(argv: list[str] | None = None) -> int:
    """主入口点。"""
    argv = list(sys.argv[1:] if argv is None else argv)
    command: list[str] = []
    if "--" in argv:
        split = argv.index("--")
        argv, command = argv[:split], argv[split + 1:]

    config = get_config()
    args = _build_arg_parser(config).parse_args(argv)

    config = dataclasses.replace(
        config,
        timeout=args.timeout,
        problem=ProblemKind(args.problem),
    )
    configure_logging(config)
    logger.debug(f"Starting solver-watchdog: {config}")

    try:
        stdin_bytes = args.input.read_bytes()
    except OSError as e:
        logger.error(f"Cannot read input {args.input}: {e}")
        return 1

    if not command:
        command = build_minizinc_command(args.model or f"{config.problem.value}.mzn")
    label = args.label or instance_label(args.input)

    try:
        report = run_solver(
            ProcessSpec(argv=command, stdin_bytes=stdin_bytes),
            label,
            config=config,
        )
    except WatchdogError as e:
        logger.error(f"[{label}] {type(e).__name__}: {e}")
        return 1

    if report.parser_error is not None:
        logger.warning(f"[{label}] output was only partially reported: {report.parser_error}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
