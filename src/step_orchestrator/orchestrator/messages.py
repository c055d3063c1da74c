"""Transport-agnostic message shapes.

Field names are camelCase on the wire; Python code uses snake_case attributes.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .execution import Correlation


class _Message(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StartRequest(_Message):
    """Ask the engine to start a new execution of a registered definition."""

    execution_id: str | None = Field(default=None, min_length=1)
    definition_id: str = Field(min_length=1)
    input: dict[str, Any] = Field(default_factory=dict)


class StepRequest(_Message):
    """Engine -> task handler."""

    execution_id: str = Field(min_length=1)
    step_id: str = Field(min_length=1)
    payload: dict[str, Any]

    @property
    def correlation(self) -> Correlation:
        return Correlation(execution_id=self.execution_id, step_id=self.step_id)


class ResponseError(_Message):
    message: str


class StepResponse(_Message):
    """Task handler -> engine. Carries exactly one of `payload` or `error`."""

    execution_id: str = Field(min_length=1)
    step_id: str = Field(min_length=1)
    payload: dict[str, Any] | None = None
    error: ResponseError | None = None

    @model_validator(mode="after")
    def _payload_xor_error(self) -> StepResponse:
        if (self.payload is None) == (self.error is None):
            raise ValueError("a step response carries exactly one of 'payload' or 'error'")
        return self

    @property
    def correlation(self) -> Correlation:
        return Correlation(execution_id=self.execution_id, step_id=self.step_id)
