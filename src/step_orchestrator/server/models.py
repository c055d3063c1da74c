"""Pydantic models for the REST server."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from step_orchestrator.orchestrator.engine import ResumeOutcome
from step_orchestrator.orchestrator.execution import Execution


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Health(_ApiModel):
    status: str
    version: str
    definitions: list[str] = Field(default_factory=list)


class ResponseAck(_ApiModel):
    outcome: ResumeOutcome
    discarded: bool
    execution: Execution
    detail: str | None = None


class ReconcileRequest(_ApiModel):
    older_than_seconds: float | None = Field(default=None, ge=0)


class ReconcileResult(_ApiModel):
    redispatched: list[str] = Field(default_factory=list)
