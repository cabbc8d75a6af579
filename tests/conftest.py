"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 测试用求解器脚本
FAKE_SOLVER_PATH = PROJECT_ROOT / "tests" / "fixtures" / "fake_solver.py"


@pytest.fixture
def project_root() -> Path:
    """项目根目录。"""
    return PROJECT_ROOT


@pytest.fixture
def fake_solver_argv() -> list[str]:
    """运行测试用求解器的命令行前缀。"""
    return [sys.executable, str(FAKE_SOLVER_PATH)]


@pytest.fixture
def psp_stream() -> list[str]:
    """两个快照的 PSP 输出样本。"""
    return [
        "% makespan: 12.5000\n",
        "% permutation: [3, 1, 2]\n",
        "% time elapsed: 0.41 s\n",
        "----------\n",
        "% makespan: 9.2500\n",
        "% permutation: [1, 3, 2]\n",
        "% time elapsed: 1.07 s\n",
        "----------\n",
        "==========\n",
    ]
