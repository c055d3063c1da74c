"""Error taxonomy for the orchestration engine.

Errors fall into three groups:
- caller errors surfaced synchronously (ValidationError, NotFoundError, AlreadyExistsError)
- benign discards that are reported but never treated as failures
  (StaleResponseError, ConflictError)
- infrastructure failures that must fail loudly (StoreError, TransportError)

ProtocolError is raised at the transport boundary and never reaches the engine.
"""

from __future__ import annotations


class OrchestrationError(Exception):
    """Base class for every error raised by the engine and its collaborators."""


class ValidationError(OrchestrationError):
    """A definition (or start input) is unusable: duplicate step ids, empty step list, etc."""


class RoutingError(ValidationError):
    """A task-handler capability has no transport address in the routing table."""

    def __init__(self, handler: str) -> None:
        super().__init__(f"No route configured for handler {handler!r}")
        self.handler = handler


class ProtocolError(OrchestrationError):
    """An inbound message is malformed (missing correlation fields, bad shape)."""


class NotFoundError(OrchestrationError):
    """The referenced execution does not exist."""

    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Execution not found: {execution_id}")
        self.execution_id = execution_id


class UnknownDefinitionError(OrchestrationError):
    """The referenced orchestration definition is not registered."""

    def __init__(self, definition_id: str) -> None:
        super().__init__(f"Definition not found: {definition_id}")
        self.definition_id = definition_id


class AlreadyExistsError(OrchestrationError):
    """An execution with the same id has already been created."""

    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Execution already exists: {execution_id}")
        self.execution_id = execution_id


class StaleResponseError(OrchestrationError):
    """A response names a step that is not the one currently in flight."""

    def __init__(self, *, execution_id: str, step_id: str, expected_step_id: str | None) -> None:
        super().__init__(
            f"Stale response for execution {execution_id}: "
            f"got step {step_id!r}, expected {expected_step_id!r}"
        )
        self.execution_id = execution_id
        self.step_id = step_id
        self.expected_step_id = expected_step_id


class ConflictError(OrchestrationError):
    """A compare-and-advance lost the race against a concurrent writer."""

    def __init__(self, *, execution_id: str, expected_step_index: int) -> None:
        super().__init__(
            f"Execution {execution_id} is no longer at step index {expected_step_index}"
        )
        self.execution_id = execution_id
        self.expected_step_index = expected_step_index


class HandlerError(OrchestrationError):
    """A task handler reported an explicit, task-level error."""

    def __init__(self, *, step_id: str, message: str) -> None:
        super().__init__(f"Task for step {step_id!r} failed: {message}")
        self.step_id = step_id
        self.message = message


class StoreError(OrchestrationError):
    """The execution state store could not be read or written."""


class TransportError(OrchestrationError):
    """A message could not be published on the transport."""
