"""The orchestration engine: `start`, `resume`, `fail` and `reconcile`.

The engine holds no per-execution state in memory. An execution that waits for
a task response exists only as a persisted record (`waiting_for_response` plus
`step_index`), so any engine instance in any process can pick up the response.

Ordering rule: the request for step k+1 is published only after the store has
accepted the compare-and-advance to `step_index = k+1`. Together with the
`step_id` check on every response this keeps at most one request in flight per
execution, even when responses are duplicated or arrive out of order.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Literal

from pydantic import ValidationError as PydanticValidationError
from pydantic_core import to_jsonable_python

from .definition import DefinitionRegistry, OrchestrationDefinition, StepSpec
from .dispatcher import Dispatcher
from .errors import (
    ConflictError,
    HandlerError,
    ProtocolError,
    StaleResponseError,
    UnknownDefinitionError,
    ValidationError,
)
from .execution import (
    Correlation,
    Execution,
    ExecutionError,
    ExecutionStatus,
    FailureKind,
    utc_now,
)
from .messages import StartRequest
from .store import ExecutionStore

logger = logging.getLogger(__name__)

ResumeOutcome = Literal["advanced", "completed", "failed", "stale", "conflict", "terminal"]


@dataclass(frozen=True, slots=True)
class ResumeResult:
    """What a response did to its execution.

    `discard` is set for the three no-op outcomes (stale, conflict, terminal) and
    carries the reason. `execution` is the stored state after the call.
    """

    outcome: ResumeOutcome
    execution: Execution
    discard: StaleResponseError | ConflictError | None = None

    @property
    def discarded(self) -> bool:
        return self.discard is not None


def _build_payload(step: StepSpec, data: Any) -> dict[str, Any]:
    payload = step.build_request(data)
    if not isinstance(payload, dict):
        raise TypeError(
            f"build_request for step {step.step_id!r} returned {type(payload).__name__}, "
            "expected a dict"
        )
    return _persistable(payload)


def _persistable(value: Any) -> Any:
    """Normalise definition output to the JSON shape every store persists.

    Tuples and sets become lists. Anything that has no JSON form raises
    `PydanticSerializationError`.
    """

    return to_jsonable_python(value)


def _describe(error: Exception) -> str:
    return str(error) or type(error).__name__


class Engine:
    def __init__(
        self,
        *,
        store: ExecutionStore,
        dispatcher: Dispatcher,
        registry: DefinitionRegistry,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._registry = registry

    @property
    def store(self) -> ExecutionStore:
        return self._store

    @property
    def registry(self) -> DefinitionRegistry:
        return self._registry

    def get(self, execution_id: str) -> Execution:
        return self._store.get(execution_id)

    def start(
        self,
        definition: OrchestrationDefinition,
        input: Mapping[str, Any],
        *,
        execution_id: str | None = None,
    ) -> Execution:
        """Create an execution and dispatch its first step.

        Raises:
            UnknownDefinitionError: the definition is not registered with this engine.
            ValidationError: unrouted handlers, or the definition rejected `input`.
            AlreadyExistsError: `execution_id` is already taken.
            StoreError: the execution could not be persisted (nothing was created).
            TransportError: the execution was persisted but the first request was not
                published; `reconcile` will re-dispatch it.
        """

        if self._registry.get(definition.definition_id) is not definition:
            raise ValidationError(
                f"A different definition is registered as {definition.definition_id!r}"
            )
        self._dispatcher.check_routes(definition)

        execution_id = execution_id or uuid.uuid4().hex
        first = definition.steps[0]
        try:
            data = _persistable(definition.initial_data(dict(input)))
            payload = _build_payload(first, data)
        except Exception as e:
            raise ValidationError(
                f"Definition {definition.definition_id!r} rejected the start input: {e}"
            ) from e

        execution = self._store.create(
            Execution(
                execution_id=execution_id,
                definition_id=definition.definition_id,
                data=data,
                step_index=0,
                status=ExecutionStatus.WAITING_FOR_RESPONSE,
            )
        )
        logger.info(
            "Execution started",
            extra={"execution_id": execution_id, "definition_id": definition.definition_id},
        )

        self._dispatcher.publish(
            first, Correlation(execution_id=execution_id, step_id=first.step_id), payload
        )
        return execution

    def start_request(self, message: StartRequest | Mapping[str, Any]) -> Execution:
        """Start from the wire-level start request shape."""

        if not isinstance(message, StartRequest):
            try:
                message = StartRequest.model_validate(message)
            except PydanticValidationError as e:
                raise ProtocolError(f"Malformed start request: {e}") from e
        definition = self._registry.get(message.definition_id)
        return self.start(definition, message.input, execution_id=message.execution_id)

    def resume(self, execution_id: str, step_id: str, payload: dict[str, Any]) -> ResumeResult:
        """Apply a task response and move the execution forward.

        Raises:
            NotFoundError: no such execution; nothing is created.
            StoreError: the store failed.
            TransportError: the execution advanced but the next request was not
                published; `reconcile` will re-dispatch it.
        """

        execution = self._store.get(execution_id)
        definition = self._registry.get(execution.definition_id)
        discarded = self._check_current(execution, definition, step_id)
        if discarded is not None:
            return discarded

        step = definition.steps[execution.step_index]
        try:
            data = _persistable(step.apply_response(execution.data, payload))
        except Exception as e:
            return self._record_failure(
                execution, kind="apply_response", step_id=step.step_id, message=_describe(e)
            )

        next_index = execution.step_index + 1
        next_step = definition.step_at(next_index)

        if next_step is None:
            try:
                output = _persistable(definition.project_output(data))
            except Exception as e:
                return self._record_failure(
                    execution, kind="project_output", step_id=step.step_id, message=_describe(e)
                )
            new_state = execution.model_copy(
                update={
                    "data": data,
                    "step_index": next_index,
                    "status": ExecutionStatus.COMPLETED,
                    "output": output,
                }
            )
            try:
                completed = self._store.compare_and_advance(
                    execution_id, execution.step_index, new_state
                )
            except ConflictError as e:
                return self._discard("conflict", execution, step_id, e)
            logger.info(
                "Execution completed",
                extra={"execution_id": execution_id, "step_index": completed.step_index},
            )
            return ResumeResult(outcome="completed", execution=completed)

        try:
            next_payload = _build_payload(next_step, data)
        except Exception as e:
            return self._record_failure(
                execution, kind="build_request", step_id=next_step.step_id, message=_describe(e)
            )

        new_state = execution.model_copy(
            update={
                "data": data,
                "step_index": next_index,
                "status": ExecutionStatus.WAITING_FOR_RESPONSE,
            }
        )
        try:
            advanced = self._store.compare_and_advance(
                execution_id, execution.step_index, new_state
            )
        except ConflictError as e:
            return self._discard("conflict", execution, step_id, e)
        logger.info(
            "Step advanced",
            extra={
                "execution_id": execution_id,
                "step_id": step.step_id,
                "step_index": advanced.step_index,
            },
        )

        self._dispatcher.publish(
            next_step,
            Correlation(execution_id=execution_id, step_id=next_step.step_id),
            next_payload,
        )
        return ResumeResult(outcome="advanced", execution=advanced)

    def fail(self, execution_id: str, step_id: str, message: str) -> ResumeResult:
        """Record an explicit task-level error for the step in flight."""

        execution = self._store.get(execution_id)
        definition = self._registry.get(execution.definition_id)
        discarded = self._check_current(execution, definition, step_id)
        if discarded is not None:
            return discarded

        cause = HandlerError(step_id=step_id, message=message)
        return self._record_failure(
            execution, kind="handler", step_id=step_id, message=str(cause)
        )

    def reconcile(self, *, older_than: timedelta) -> list[str]:
        """Re-publish the in-flight request of executions that have waited too long.

        Only executions in `waiting_for_response` whose last update is older than
        `older_than` are considered. State is never changed; a duplicate request
        at worst yields a duplicate response, which `resume` discards.

        Returns the ids of the executions that were re-dispatched.
        """

        cutoff = utc_now() - older_than
        redispatched: list[str] = []
        for execution in self._store.list(ExecutionStatus.WAITING_FOR_RESPONSE):
            if execution.updated_at > cutoff:
                continue
            try:
                definition = self._registry.get(execution.definition_id)
            except UnknownDefinitionError:
                logger.warning(
                    "Skipping execution with unregistered definition",
                    extra={
                        "execution_id": execution.execution_id,
                        "definition_id": execution.definition_id,
                    },
                )
                continue
            step = definition.step_at(execution.step_index)
            if step is None:
                logger.warning(
                    "Skipping execution whose step index is past the last step",
                    extra={
                        "execution_id": execution.execution_id,
                        "step_index": execution.step_index,
                    },
                )
                continue
            try:
                payload = _build_payload(step, execution.data)
                self._dispatcher.publish(
                    step,
                    Correlation(execution_id=execution.execution_id, step_id=step.step_id),
                    payload,
                )
            except Exception:
                logger.exception(
                    "Re-dispatch failed",
                    extra={"execution_id": execution.execution_id, "step_id": step.step_id},
                )
                continue
            logger.info(
                "Execution re-dispatched",
                extra={"execution_id": execution.execution_id, "step_id": step.step_id},
            )
            redispatched.append(execution.execution_id)
        return redispatched

    def _check_current(
        self, execution: Execution, definition: OrchestrationDefinition, step_id: str
    ) -> ResumeResult | None:
        if execution.is_terminal:
            reason = StaleResponseError(
                execution_id=execution.execution_id, step_id=step_id, expected_step_id=None
            )
            return self._discard("terminal", execution, step_id, reason)

        current = definition.step_at(execution.step_index)
        if current is None or current.step_id != step_id:
            reason = StaleResponseError(
                execution_id=execution.execution_id,
                step_id=step_id,
                expected_step_id=current.step_id if current is not None else None,
            )
            return self._discard("stale", execution, step_id, reason)
        return None

    def _discard(
        self,
        outcome: Literal["stale", "conflict", "terminal"],
        execution: Execution,
        step_id: str,
        reason: StaleResponseError | ConflictError,
    ) -> ResumeResult:
        logger.info(
            "Response discarded",
            extra={
                "execution_id": execution.execution_id,
                "step_id": step_id,
                "reason": outcome,
                "detail": str(reason),
            },
        )
        return ResumeResult(outcome=outcome, execution=execution, discard=reason)

    def _record_failure(
        self, execution: Execution, *, kind: FailureKind, step_id: str, message: str
    ) -> ResumeResult:
        new_state = execution.model_copy(
            update={
                "status": ExecutionStatus.FAILED,
                "error": ExecutionError(message=message, kind=kind, step_id=step_id),
            }
        )
        try:
            failed = self._store.compare_and_advance(
                execution.execution_id, execution.step_index, new_state
            )
        except ConflictError as e:
            return self._discard("conflict", execution, step_id, e)
        logger.warning(
            "Execution failed",
            extra={
                "execution_id": execution.execution_id,
                "step_id": step_id,
                "kind": kind,
                "error": message,
            },
        )
        return ResumeResult(outcome="failed", execution=failed)


