"""Test configuration and fixtures."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import Any

import pytest

from step_orchestrator.orchestrator.correlator import Correlator
from step_orchestrator.orchestrator.definition import (
    DefinitionRegistry,
    OrchestrationDefinition,
    StepSpec,
    build,
)
from step_orchestrator.orchestrator.dispatcher import Dispatcher
from step_orchestrator.orchestrator.engine import Engine
from step_orchestrator.orchestrator.store import InMemoryExecutionStore
from step_orchestrator.orchestrator.transport import InMemoryTransport, RoutingTable

ADDER_ADDRESS = "tasks.adder"
RESPONSES_ADDRESS = "orchestrator.responses"


def _with_total(data: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    return {**data, "total": payload["total"]}


def make_adder_definition(definition_id: str = "adder") -> OrchestrationDefinition:
    """The two-step adder: AddXY then AddZTotal."""

    return build(
        definition_id,
        [
            StepSpec(
                step_id="AddXY",
                handler="adder",
                build_request=lambda data: {"value1": data["x"], "value2": data["y"]},
                apply_response=_with_total,
            ),
            StepSpec(
                step_id="AddZTotal",
                handler="adder",
                build_request=lambda data: {"value1": data["z"], "value2": data["total"]},
                apply_response=_with_total,
            ),
        ],
        initial_data=lambda input: {"x": input["x"], "y": input["y"], "z": input["z"]},
        project_output=lambda data: {"total": data["total"]},
    )


@pytest.fixture(autouse=True)
def restore_root_logging() -> Iterator[None]:
    """Undo `configure_logging` calls made by a test."""

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def adder_definition() -> OrchestrationDefinition:
    return make_adder_definition()


@pytest.fixture
def definition_factory() -> Callable[..., OrchestrationDefinition]:
    return make_adder_definition


@pytest.fixture
def registry(adder_definition: OrchestrationDefinition) -> DefinitionRegistry:
    return DefinitionRegistry([adder_definition])


@pytest.fixture
def store() -> InMemoryExecutionStore:
    return InMemoryExecutionStore()


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture
def routing() -> RoutingTable:
    return RoutingTable({"adder": ADDER_ADDRESS})


@pytest.fixture
def engine(
    store: InMemoryExecutionStore,
    transport: InMemoryTransport,
    routing: RoutingTable,
    registry: DefinitionRegistry,
) -> Engine:
    return Engine(store=store, dispatcher=Dispatcher(transport, routing), registry=registry)


@pytest.fixture
def correlator(engine: Engine) -> Correlator:
    return Correlator(engine)
