#!/usr/bin/env python3
"""Two-step adder, run end to end in one process.

Step `AddXY` adds x and y; step `AddZTotal` adds z to that total. Both steps are
served by the same `adder` task handler, reached through an in-memory
transport. `registry` can also be passed to the CLI:

    step-orchestrator serve --registry adder:registry   (with examples/ on PYTHONPATH)
"""

from __future__ import annotations

import argparse
import json
from typing import Any, Sequence

from step_orchestrator.orchestrator.correlator import Correlator
from step_orchestrator.orchestrator.definition import DefinitionRegistry, StepSpec, build
from step_orchestrator.orchestrator.dispatcher import Dispatcher
from step_orchestrator.orchestrator.engine import Engine
from step_orchestrator.orchestrator.handlers import FunctionHandler, TaskWorker
from step_orchestrator.orchestrator.logging import configure_logging
from step_orchestrator.orchestrator.store import InMemoryExecutionStore
from step_orchestrator.orchestrator.transport import InMemoryTransport, RoutingTable

RESPONSES = "orchestrator.responses"


def _with_total(data: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    return {**data, "total": payload["total"]}


adder_definition = build(
    "adder",
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

registry = DefinitionRegistry([adder_definition])


def add(payload: dict[str, Any]) -> dict[str, Any]:
    return {"total": payload["value1"] + payload["value2"]}


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the two-step adder in memory.")
    parser.add_argument("--x", type=int, default=1)
    parser.add_argument("--y", type=int, default=2)
    parser.add_argument("--z", type=int, default=3)
    parser.add_argument("--log-level", default="WARNING")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(args.log_level)

    transport = InMemoryTransport()
    engine = Engine(
        store=InMemoryExecutionStore(),
        dispatcher=Dispatcher(transport, RoutingTable({"adder": "tasks.adder"})),
        registry=registry,
    )
    transport.subscribe("tasks.adder", TaskWorker(FunctionHandler(add), transport, RESPONSES))
    transport.subscribe(RESPONSES, Correlator(engine).deliver)

    execution = engine.start(adder_definition, {"x": args.x, "y": args.y, "z": args.z})
    transport.drain()

    final = engine.get(execution.execution_id)
    print(json.dumps(final.to_record(), indent=2))
    return 0 if final.output is not None else 1


if __name__ == "__main__":
    raise SystemExit(main())
