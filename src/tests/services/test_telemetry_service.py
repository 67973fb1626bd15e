"""Tests for the decision log."""

import pytest
from src.models.llm_models import TaskRequest, TaskType
from src.models.routing_models import DecisionRecord, RoutingDecision, ScoredCandidate
from src.services.telemetry_service import DecisionLog


def make_record(model_id: str = "gpt-4o-mini") -> DecisionRecord:
    decision = RoutingDecision(
        selected_model_id=model_id,
        reason="scored",
        candidates=[ScoredCandidate(model_id=model_id, final_score=0.8)],
    )
    return DecisionRecord.from_decision(TaskRequest(task_type=TaskType.DEBUGGING), decision)


class TestDecisionLog:
    """Test suite for DecisionLog."""

    def test_in_memory(self):
        """Test records are kept in completion order."""
        log = DecisionLog()
        first, second = make_record("a"), make_record("b")

        log.record(first)
        log.record(second)

        assert [r.selected_model_id for r in log.recent()] == ["a", "b"]
        assert log.total_records == 2
        assert log.find(second.decision_id) is second
        assert log.find("missing") is None

    def test_ring_buffer(self):
        """Test only the newest records stay in memory."""
        log = DecisionLog(max_records=3)

        for i in range(5):
            log.record(make_record(f"m{i}"))

        assert [r.selected_model_id for r in log.recent()] == ["m2", "m3", "m4"]
        assert log.total_records == 5
        assert len(log.recent(limit=2)) == 2

    def test_jsonl_roundtrip(self, tmp_path):
        """Test records are appended to disk and read back."""
        path = tmp_path / "telemetry" / "decisions.jsonl"
        log = DecisionLog(path=path)
        record = make_record()

        log.record(record)
        log.record(make_record("other"))

        lines = path.read_text().splitlines()
        assert len(lines) == 2

        loaded = DecisionLog(path=path).load()
        assert loaded[0].decision_id == record.decision_id
        assert loaded[0].request["task_type"] == "debugging"
        assert loaded[0].candidates[0].final_score == pytest.approx(0.8)

    def test_malformed_lines_skipped(self, tmp_path):
        """Test corrupt lines do not stop loading."""
        path = tmp_path / "decisions.jsonl"
        log = DecisionLog(path=path)
        log.record(make_record())
        with path.open("a") as f:
            f.write("{not json\n\n")
        log.record(make_record("after"))

        loaded = log.load()

        assert [r.selected_model_id for r in loaded] == ["gpt-4o-mini", "after"]

    def test_load_without_file(self):
        """Test loading from a memory-only log."""
        assert DecisionLog().load() == []

    def test_write_failure_is_logged(self, tmp_path, caplog):
        """Test unwritable paths never fail a decision."""
        path = tmp_path / "as_dir"
        log = DecisionLog(path=path)
        path.mkdir()

        log.record(make_record())

        assert log.total_records == 1
        assert "Failed to write decision log" in caplog.text
