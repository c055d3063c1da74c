"""Execution records and correlation identity."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    WAITING_FOR_RESPONSE = "waiting_for_response"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES: frozenset[ExecutionStatus] = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED}
)

FailureKind = Literal["handler", "apply_response", "build_request", "project_output"]


class ExecutionError(BaseModel):
    """Cause recorded on a failed execution."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str
    kind: FailureKind
    step_id: str | None = None


class Execution(BaseModel):
    """One running (or finished) instance of a definition.

    `step_index` points at the step whose response is awaited and doubles as
    the optimistic-concurrency version token for the store.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    execution_id: str
    definition_id: str
    data: Any = None
    step_index: int = Field(default=0, ge=0)
    status: ExecutionStatus = ExecutionStatus.WAITING_FOR_RESPONSE
    output: Any = None
    error: ExecutionError | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _outcome_matches_status(self) -> Execution:
        if self.output is not None and self.status != ExecutionStatus.COMPLETED:
            raise ValueError("output is only set on completed executions")
        if self.error is not None and self.status != ExecutionStatus.FAILED:
            raise ValueError("error is only set on failed executions")
        if self.status == ExecutionStatus.FAILED and self.error is None:
            raise ValueError("failed executions must record an error")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_record(self) -> dict[str, Any]:
        """Serialise to the persisted (camelCase, JSON-safe) record shape."""

        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> Execution:
        return cls.model_validate(raw)


@dataclass(frozen=True, slots=True)
class Correlation:
    """Identity of an outbound request: which execution, which step."""

    execution_id: str
    step_id: str
