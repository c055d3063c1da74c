from __future__ import annotations

from typing import Any

from step_orchestrator.orchestrator.handlers import FunctionHandler, TaskWorker
from step_orchestrator.orchestrator.transport import InMemoryTransport


def _add(payload: dict[str, Any]) -> dict[str, Any]:
    return {"total": payload["value1"] + payload["value2"]}


def test_worker_publishes_the_handler_result() -> None:
    transport = InMemoryTransport()
    worker = TaskWorker(FunctionHandler(_add), transport, "replies")

    response = worker(
        {"executionId": "e1", "stepId": "AddXY", "payload": {"value1": 1, "value2": 2}}
    )

    assert response is not None
    assert response.payload == {"total": 3}
    assert [(e.address, e.message) for e in transport.published] == [
        ("replies", {"executionId": "e1", "stepId": "AddXY", "payload": {"total": 3}})
    ]


def test_worker_turns_handler_exceptions_into_error_responses() -> None:
    transport = InMemoryTransport()
    worker = TaskWorker(FunctionHandler(_add), transport, "replies")

    worker({"executionId": "e1", "stepId": "AddXY", "payload": {"value1": 1}})

    assert transport.published[0].message == {
        "executionId": "e1",
        "stepId": "AddXY",
        "error": {"message": "'value2'"},
    }


def test_worker_rejects_non_object_results() -> None:
    transport = InMemoryTransport()
    handler = FunctionHandler(lambda payload: [1, 2])  # type: ignore[arg-type,return-value]
    worker = TaskWorker(handler, transport, "replies")

    response = worker({"executionId": "e1", "stepId": "s", "payload": {}})

    assert response is not None
    assert response.error is not None
    assert response.payload is None


def test_worker_drops_malformed_requests() -> None:
    transport = InMemoryTransport()
    worker = TaskWorker(FunctionHandler(_add), transport, "replies")

    assert worker({"stepId": "AddXY", "payload": {}}) is None
    assert transport.published == []
