from __future__ import annotations

import pydantic
import pytest

from step_orchestrator.orchestrator.execution import (
    Execution,
    ExecutionError,
    ExecutionStatus,
)


def test_new_execution_waits_at_step_zero() -> None:
    execution = Execution(execution_id="e1", definition_id="adder", data={})

    assert execution.status == ExecutionStatus.WAITING_FOR_RESPONSE
    assert execution.step_index == 0
    assert not execution.is_terminal
    assert execution.created_at.tzinfo is not None


def test_output_only_when_completed() -> None:
    with pytest.raises(pydantic.ValidationError):
        Execution(execution_id="e1", definition_id="adder", data={}, output={"total": 6})

    done = Execution(
        execution_id="e1",
        definition_id="adder",
        data={},
        step_index=2,
        status=ExecutionStatus.COMPLETED,
        output={"total": 6},
    )
    assert done.is_terminal


def test_failed_requires_an_error() -> None:
    with pytest.raises(pydantic.ValidationError):
        Execution(execution_id="e1", definition_id="adder", data={}, status=ExecutionStatus.FAILED)

    failed = Execution(
        execution_id="e1",
        definition_id="adder",
        data={},
        status=ExecutionStatus.FAILED,
        error=ExecutionError(message="boom", kind="handler", step_id="AddXY"),
    )
    assert failed.is_terminal


def test_negative_step_index_is_rejected() -> None:
    with pytest.raises(pydantic.ValidationError):
        Execution(execution_id="e1", definition_id="adder", data={}, step_index=-1)


def test_record_roundtrip_uses_camel_case() -> None:
    execution = Execution(execution_id="e1", definition_id="adder", data={"x": 1})

    record = execution.to_record()

    assert record["executionId"] == "e1"
    assert record["stepIndex"] == 0
    assert record["status"] == "waiting_for_response"
    assert Execution.from_record(record) == execution
