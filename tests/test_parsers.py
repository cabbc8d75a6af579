"""解析器模块测试。

验证字段模式、结果记录的累积更新、哨兵行输出与后台解析任务的错误隔离。
"""

from __future__ import annotations

import io

import pytest

from solver_watchdog.errors import StreamParseError
from solver_watchdog.parsers import (
    NO_SOLUTION,
    OBJECTIVE_UNSET,
    SENTINEL,
    ProblemKind,
    ResultRecord,
    ResultStreamJob,
    ResultStreamParser,
    format_row,
    get_patterns,
    spawn_output_logger,
)


class TestProblemKind:
    """测试问题类型解析。"""

    def test_from_string_valid(self):
        assert ProblemKind.from_string("tsptw") == ProblemKind.TSPTW
        assert ProblemKind.from_string(" PSP ") == ProblemKind.PSP

    def test_from_string_invalid(self):
        """无效值回退到 PSP。"""
        assert ProblemKind.from_string("vrp") == ProblemKind.PSP


class TestPatterns:
    """测试字段模式。"""

    def test_psp_makespan(self):
        patterns = get_patterns(ProblemKind.PSP)
        objective = next(p for p in patterns.fields if p.field == "objective")
        assert objective.match("% makespan: 12.5000") == "12.5000"
        assert objective.match("makespan: 12.5000") is None

    def test_solution_strips_commas(self):
        patterns = get_patterns("psp")
        solution = next(p for p in patterns.fields if p.field == "solution")
        raw = solution.match("% permutation: [3, 1, 2]")
        assert raw == "3, 1, 2"
        assert solution.convert(raw) == "3 1 2"

    def test_elapsed(self):
        patterns = get_patterns(ProblemKind.TSPTW)
        elapsed = next(p for p in patterns.fields if p.field == "elapsed")
        assert elapsed.match("% time elapsed: 0.41 s") == "0.41"

    def test_tsptw_fields(self):
        patterns = get_patterns(ProblemKind.TSPTW)
        names = {p.field: p for p in patterns.fields}
        assert names["objective"].match("% objective: 812.25") == "812.25"
        assert names["solution"].match("% tour: [0, 4, 2, 0]") == "0, 4, 2, 0"
        assert names["objective"].match("% makespan: 1.0") is None

    def test_sentinel_exact(self):
        patterns = get_patterns(ProblemKind.PSP)
        assert patterns.is_sentinel(SENTINEL)
        assert patterns.is_sentinel("----------")
        assert not patterns.is_sentinel("-----------")
        assert not patterns.is_sentinel("==========")

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            get_patterns("vrp")


class TestResultRecord:
    """测试结果记录。"""

    def test_initial_placeholders(self):
        record = ResultRecord()
        assert record.objective == OBJECTIVE_UNSET
        assert record.solution == NO_SOLUTION
        assert record.elapsed == 0.0

    def test_format_row(self):
        record = ResultRecord(objective=9.25, solution="1 3 2", elapsed=1.066)
        assert format_row("bench1/inst01", record) == (
            "bench1/inst01 |     9.2500 |       1.07 | 1 3 2"
        )

    def test_format_row_pads_short_label(self):
        row = format_row("a/b", ResultRecord(objective=1.0, elapsed=2.0, solution="x"))
        assert row.startswith("a/b        | ")


class TestResultStreamParser:
    """测试流式解析器。"""

    def test_non_sentinel_lines_emit_nothing(self):
        parser = ResultStreamParser("bench1/inst01")
        assert parser.feed("% makespan: 12.5000\n") is None
        assert parser.feed("some solver chatter\n") is None
        assert parser.rows_emitted == 0

    def test_sentinel_emits_latest_values(self):
        """哨兵行输出最近一次解析到的值，而非初始值。"""
        parser = ResultStreamParser("bench1/inst01")
        parser.feed("% makespan: 12.5000\n")
        parser.feed("% makespan: 9.2500\n")
        row = parser.feed("----------\n")

        assert row is not None
        assert "9.2500" in row
        assert "12.5000" not in row

    def test_end_to_end_single_row(self):
        """完整快照产生恰好一行，各字段为哨兵前最后的值。"""
        rows: list[str] = []
        parser = ResultStreamParser("bench1/inst01", ProblemKind.PSP)
        parser.consume(
            [
                "% makespan: 12.5000\n",
                "% permutation: [3, 1, 2]\n",
                "% time elapsed: 0.41 s\n",
                "----------\n",
            ],
            rows.append,
        )

        assert len(rows) == 1
        label, objective, elapsed, solution = [col.strip() for col in rows[0].split("|")]
        assert label == "bench1/inst01"
        assert objective == "12.5000"
        assert elapsed == "0.41"
        assert solution == "3 1 2"

    def test_sentinel_without_metrics_emits_placeholders(self):
        """首个哨兵前没有任何指标行时输出占位值。"""
        rows: list[str] = []
        ResultStreamParser("bench1/inst01").consume(["----------\n"], rows.append)

        assert rows == [format_row("bench1/inst01", ResultRecord())]
        assert NO_SOLUTION in rows[0]
        assert "0.00" in rows[0]

    def test_record_not_reset_between_snapshots(self, psp_stream: list[str]):
        """记录累积，后续快照中未报告的字段保持原值。"""
        rows: list[str] = []
        parser = ResultStreamParser("bench1/inst01")
        parser.consume(psp_stream + ["% makespan: 7.0000\n", "----------\n"], rows.append)

        assert len(rows) == 3
        assert "7.0000" in rows[2]
        assert rows[2].endswith("1 3 2")
        assert "1.07" in rows[2]

    def test_repeated_line_is_idempotent(self):
        """重复相同的指标行不改变记录。"""
        parser = ResultStreamParser("x")
        parser.feed("% makespan: 12.5000")
        parser.feed("% permutation: [1, 2]")
        first = parser.record.model_copy()

        parser.feed("% makespan: 12.5000")
        parser.feed("% permutation: [1, 2]")

        assert parser.record == first

    def test_last_write_wins(self):
        """默认策略：后写覆盖，即使目标值变差。"""
        parser = ResultStreamParser("x")
        parser.feed("% makespan: 5.0")
        parser.feed("% makespan: 8.0")
        assert parser.record.objective == 8.0

    def test_bytes_and_crlf(self):
        parser = ResultStreamParser("x")
        parser.feed(b"% makespan: 3.5\r\n")
        row = parser.feed(b"----------\r\n")
        assert row is not None
        assert parser.record.objective == 3.5

    def test_tsptw_stream(self):
        rows: list[str] = []
        parser = ResultStreamParser("tsptw/n20w20.001", "tsptw")
        parser.consume(
            ["% objective: 378.0000", "% tour: [0, 3, 1, 2, 0]", "% time elapsed: 2.50 s", SENTINEL],
            rows.append,
        )
        assert rows == ["tsptw/n20w20.001 |   378.0000 |       2.50 | 0 3 1 2 0"]

    def test_invalid_number_raises(self):
        """看起来像数字但无法解析的值是该行的硬错误。"""
        parser = ResultStreamParser("x")
        parser.feed("% makespan: 1.0")
        with pytest.raises(StreamParseError) as exc_info:
            parser.feed("% makespan: 12.5.3")

        assert exc_info.value.line_no == 2
        assert parser.record.objective == 1.0

    def test_undecodable_line_raises(self):
        parser = ResultStreamParser("x")
        with pytest.raises(StreamParseError):
            parser.feed(b"% makespan: \xff\xfe\n")

    def test_non_numeric_text_is_ignored(self):
        """不以数字开头的值不匹配模式，不视为错误。"""
        parser = ResultStreamParser("x")
        assert parser.feed("% makespan: unknown") is None
        assert parser.record.objective == OBJECTIVE_UNSET


class TestImprovingOnly:
    """测试只接受更优目标值的策略。"""

    def test_rejects_worse_snapshot(self):
        rows: list[str] = []
        parser = ResultStreamParser("x", improving_only=True)
        parser.consume(
            [
                "% makespan: 10.0", "% permutation: [1, 2]", "% time elapsed: 1.00 s", SENTINEL,
                "% makespan: 12.0", "% permutation: [2, 1]", "% time elapsed: 2.00 s", SENTINEL,
            ],
            rows.append,
        )

        assert parser.record.objective == 10.0
        assert parser.record.solution == "1 2"
        # elapsed 始终前进
        assert parser.record.elapsed == 2.0
        assert "10.0000" in rows[1]

    def test_accepts_better_snapshot(self):
        parser = ResultStreamParser("x", improving_only=True)
        parser.consume(["% makespan: 10.0", SENTINEL, "% makespan: 4.0", "% permutation: [9]", SENTINEL], lambda _: None)

        assert parser.record.objective == 4.0
        assert parser.record.solution == "9"

    def test_pending_applied_only_on_sentinel(self):
        parser = ResultStreamParser("x", improving_only=True)
        parser.feed("% makespan: 10.0")
        assert parser.record.objective == OBJECTIVE_UNSET
        parser.feed(SENTINEL)
        assert parser.record.objective == 10.0


class TestResultStreamJob:
    """测试后台解析任务。"""

    def test_consumes_until_eof(self, psp_stream: list[str]):
        rows: list[str] = []
        stream = io.BytesIO("".join(psp_stream).encode())

        job = spawn_output_logger("bench1/inst01", stream, ProblemKind.PSP, sink=rows.append)

        assert job.join(timeout=5.0)
        assert job.error is None
        assert job.rows_emitted == 2
        assert len(rows) == 2
        assert job.record.objective == 9.25
        assert stream.closed

    def test_parse_error_is_kept_not_raised(self):
        """解析错误终止解析，但记录在任务上而不向上抛出。"""
        rows: list[str] = []
        stream = io.BytesIO(
            b"% makespan: 3.0\n----------\n% makespan: 1.2.3\n----------\n% makespan: 1.0\n----------\n"
        )
        parser = ResultStreamParser("x")

        job = ResultStreamJob(parser, stream, rows.append).start()

        assert job.join(timeout=5.0)
        assert isinstance(job.error, StreamParseError)
        assert len(rows) == 1
        assert job.record.objective == 3.0
        # 剩余输出被读空，生产者不会阻塞
        assert parser.line_no == 3
        assert stream.closed

    def test_io_error_is_kept_not_raised(self):
        class BrokenStream(io.BytesIO):
            def __iter__(self):
                raise OSError("pipe broken")

        job = spawn_output_logger("x", BrokenStream(b""), sink=lambda _: None)

        assert job.join(timeout=5.0)
        assert isinstance(job.error, OSError)
        assert not job.running

    def test_default_sink_prints(self, capsys):
        stream = io.BytesIO(b"% makespan: 2.0\n----------\n")

        job = spawn_output_logger("bench1/inst01", stream)
        job.join(timeout=5.0)

        out = capsys.readouterr().out
        assert out.startswith("bench1/inst01 |     2.0000 |")
