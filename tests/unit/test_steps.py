"""Unit tests for step recording."""

import pytest

from sonar_migrate.pipeline.steps import (
    Skipped,
    StepLog,
    StepOutcome,
    StepStatus,
    run_fatal_step,
    run_step,
)


@pytest.mark.asyncio
class TestRunStep:
    """Test run_step outcome recording."""

    async def test_success_with_string_detail(self):
        log = StepLog()

        async def op():
            return "3 created"

        result = await run_step(log, "Create groups", op)

        assert result == "3 created"
        assert len(log) == 1
        outcome = log.steps[0]
        assert outcome.status is StepStatus.SUCCESS
        assert outcome.detail == "3 created"
        assert outcome.error is None

    async def test_describe_builds_detail(self):
        log = StepLog()

        async def op():
            return [1, 2]

        result = await run_step(log, "Extract things", op, describe=lambda r: f"{len(r)} found")

        assert result == [1, 2]
        assert log.steps[0].detail == "2 found"

    async def test_failure_recorded_and_default_returned(self):
        log = StepLog()

        async def op():
            raise RuntimeError("boom")

        result = await run_step(log, "Create quality gates", op, default={})

        assert result == {}
        outcome = log.steps[0]
        assert outcome.status is StepStatus.FAILED
        assert outcome.error == "boom"
        assert log.failed() == [outcome]

    async def test_skipped_result(self):
        log = StepLog()

        async def op():
            return Skipped("No tags")

        result = await run_step(log, "Project tags", op, default="fallback")

        assert result == "fallback"
        outcome = log.steps[0]
        assert outcome.status is StepStatus.SKIPPED
        assert outcome.detail == "No tags"
        assert log.failed() == []

    async def test_fatal_step_records_then_raises(self):
        log = StepLog()

        async def op():
            raise ConnectionError("unreachable")

        with pytest.raises(ConnectionError):
            await run_fatal_step(log, "Connect to SonarQube", op)

        assert log.steps[0].status is StepStatus.FAILED
        assert log.steps[0].error == "unreachable"

    async def test_steps_keep_order(self):
        log = StepLog()

        async def ok():
            return None

        for name in ("first", "second", "third"):
            await run_step(log, name, ok)

        assert [s.name for s in log] == ["first", "second", "third"]


class TestStepOutcome:
    """Test StepOutcome serialization."""

    def test_to_dict_omits_empty_fields(self):
        data = StepOutcome.succeeded("Project links").to_dict()

        assert data == {"step": "Project links", "status": "success", "duration_ms": 0}

    def test_to_dict_includes_error(self):
        data = StepOutcome.failed("DevOps binding", "bad alm", duration_ms=12).to_dict()

        assert data["status"] == "failed"
        assert data["error"] == "bad alm"
        assert data["duration_ms"] == 12
