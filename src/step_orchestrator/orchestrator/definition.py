"""Orchestration definitions: an immutable, ordered list of steps.

A definition is pure data plus pure functions. It performs no I/O and holds no
mutable state, so a single instance can be shared by any number of concurrent
executions.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from .errors import UnknownDefinitionError, ValidationError

BuildRequest = Callable[[Any], dict[str, Any]]
ApplyResponse = Callable[[Any, dict[str, Any]], Any]
InitialData = Callable[[dict[str, Any]], Any]
ProjectOutput = Callable[[Any], Any]


@dataclass(frozen=True, slots=True)
class StepSpec:
    """One step of a definition.

    `handler` names the task-handler capability; the routing table maps it to a
    transport address. It is never derived from a class or function name.
    """

    step_id: str
    handler: str
    build_request: BuildRequest
    apply_response: ApplyResponse


@dataclass(frozen=True, slots=True)
class OrchestrationDefinition:
    definition_id: str
    steps: tuple[StepSpec, ...]
    initial_data: InitialData
    project_output: ProjectOutput

    def __post_init__(self) -> None:
        if not self.definition_id.strip():
            raise ValidationError("definition_id is required")
        if not self.steps:
            raise ValidationError(f"Definition {self.definition_id!r} has no steps")

        seen: set[str] = set()
        for step in self.steps:
            if not step.step_id.strip():
                raise ValidationError(f"Definition {self.definition_id!r} has a blank step id")
            if not step.handler.strip():
                raise ValidationError(
                    f"Step {step.step_id!r} of {self.definition_id!r} has no handler"
                )
            if step.step_id in seen:
                raise ValidationError(
                    f"Duplicate step id {step.step_id!r} in definition {self.definition_id!r}"
                )
            seen.add(step.step_id)

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def step_ids(self) -> tuple[str, ...]:
        return tuple(step.step_id for step in self.steps)

    @property
    def handlers(self) -> frozenset[str]:
        return frozenset(step.handler for step in self.steps)

    def step_at(self, index: int) -> StepSpec | None:
        """Return the step at `index`, or None once the step list is exhausted."""

        if 0 <= index < len(self.steps):
            return self.steps[index]
        return None

    def index_of(self, step_id: str) -> int | None:
        for idx, step in enumerate(self.steps):
            if step.step_id == step_id:
                return idx
        return None


def build(
    definition_id: str,
    steps: Iterable[StepSpec],
    initial_data: InitialData,
    project_output: ProjectOutput,
) -> OrchestrationDefinition:
    """Build and validate an orchestration definition.

    Raises:
        ValidationError: the step list is empty or contains duplicate step ids.
    """

    return OrchestrationDefinition(
        definition_id=definition_id,
        steps=tuple(steps),
        initial_data=initial_data,
        project_output=project_output,
    )


class DefinitionRegistry:
    """Map definition ids to definitions.

    Loading definitions from deployed code is someone else's job; this is the
    lookup table the engine resolves `definition_id` against.
    """

    def __init__(self, definitions: Iterable[OrchestrationDefinition] = ()) -> None:
        self._definitions: dict[str, OrchestrationDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: OrchestrationDefinition) -> OrchestrationDefinition:
        if definition.definition_id in self._definitions:
            raise ValidationError(f"Definition already registered: {definition.definition_id}")
        self._definitions[definition.definition_id] = definition
        return definition

    def get(self, definition_id: str) -> OrchestrationDefinition:
        try:
            return self._definitions[definition_id]
        except KeyError:
            raise UnknownDefinitionError(definition_id) from None

    def __contains__(self, definition_id: object) -> bool:
        return definition_id in self._definitions

    def __iter__(self) -> Iterator[OrchestrationDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)
