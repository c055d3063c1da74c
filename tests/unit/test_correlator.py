from __future__ import annotations

from unittest.mock import Mock

import pytest

from step_orchestrator.orchestrator.correlator import Correlator, parse_response
from step_orchestrator.orchestrator.engine import Engine
from step_orchestrator.orchestrator.errors import (
    NotFoundError,
    ProtocolError,
    StoreError,
    UnknownDefinitionError,
)
from step_orchestrator.orchestrator.execution import Execution, ExecutionStatus
from step_orchestrator.orchestrator.transport import InMemoryTransport


def test_payload_response_goes_to_resume() -> None:
    engine = Mock(spec=Engine)
    correlator = Correlator(engine)

    result = correlator.on_response(
        {"executionId": "e1", "stepId": "AddXY", "payload": {"total": 3}}
    )

    engine.resume.assert_called_once_with("e1", "AddXY", {"total": 3})
    engine.fail.assert_not_called()
    assert result is engine.resume.return_value


def test_error_response_goes_to_fail() -> None:
    engine = Mock(spec=Engine)
    correlator = Correlator(engine)

    correlator.on_response({"executionId": "e1", "stepId": "AddXY", "error": {"message": "boom"}})

    engine.fail.assert_called_once_with("e1", "AddXY", "boom")
    engine.resume.assert_not_called()


@pytest.mark.parametrize(
    "message",
    [
        {"stepId": "AddXY", "payload": {}},
        {"executionId": "e1", "payload": {}},
        {"executionId": "", "stepId": "AddXY", "payload": {}},
        {"executionId": "e1", "stepId": "AddXY"},
        {"executionId": "e1", "stepId": "AddXY", "payload": {}, "error": {"message": "x"}},
        {"executionId": "e1", "stepId": "AddXY", "payload": [1, 2]},
        ["not", "an", "object"],
        "text",
    ],
)
def test_malformed_responses_never_reach_the_engine(message: object) -> None:
    engine = Mock(spec=Engine)
    correlator = Correlator(engine)

    with pytest.raises(ProtocolError):
        correlator.on_response(message)

    engine.resume.assert_not_called()
    engine.fail.assert_not_called()


def test_parse_response_names_the_bad_fields() -> None:
    with pytest.raises(ProtocolError, match="executionId"):
        parse_response({"stepId": "AddXY", "payload": {}})


def test_parse_response_accepts_snake_case_names() -> None:
    response = parse_response({"execution_id": "e1", "step_id": "s", "payload": {}})
    assert response.correlation.execution_id == "e1"
    assert response.correlation.step_id == "s"


def test_deliver_drops_malformed_and_unknown() -> None:
    engine = Mock(spec=Engine)
    engine.resume.side_effect = NotFoundError("ghost")
    correlator = Correlator(engine)

    assert correlator.deliver({"stepId": "AddXY"}) is None
    assert correlator.deliver({"executionId": "ghost", "stepId": "s", "payload": {}}) is None


def test_deliver_propagates_store_failures() -> None:
    engine = Mock(spec=Engine)
    engine.resume.side_effect = StoreError("database is locked")
    correlator = Correlator(engine)

    with pytest.raises(StoreError):
        correlator.deliver({"executionId": "e1", "stepId": "s", "payload": {}})


def test_unknown_execution_creates_no_state(correlator: Correlator, store) -> None:
    with pytest.raises(NotFoundError):
        correlator.on_response({"executionId": "ghost", "stepId": "AddXY", "payload": {}})
    assert store.list() == []


def test_response_for_retired_definition_is_acknowledged(
    correlator: Correlator, store, transport: InMemoryTransport
) -> None:
    store.create(Execution(execution_id="old", definition_id="retired", data={}))
    transport.subscribe("replies", correlator.deliver)
    transport.publish("replies", {"executionId": "old", "stepId": "AddXY", "payload": {}})
    transport.publish(
        "replies", {"executionId": "old", "stepId": "AddXY", "error": {"message": "x"}}
    )

    assert transport.drain(max_deliveries=10) == 2
    assert transport.pending() == 0
    assert store.get("old").status == ExecutionStatus.WAITING_FOR_RESPONSE

    with pytest.raises(UnknownDefinitionError):
        correlator.on_response({"executionId": "old", "stepId": "AddXY", "payload": {}})
