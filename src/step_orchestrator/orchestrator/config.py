"""Configuration for the orchestration engine.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Routing is explicit: `ORCHESTRATOR_ROUTES` is a JSON object mapping each
task-handler capability to the transport address that reaches it, for example
`{"adder": "http://adder.internal/steps"}`. Nothing is inferred from names.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .store import (
    ExecutionStore,
    InMemoryExecutionStore,
    JsonExecutionStore,
    SqliteExecutionStore,
)
from .transport import RoutingTable

StoreBackend = Literal["json", "sqlite", "memory"]


class OrchestratorSettings(BaseSettings):
    """Settings for the orchestration engine.

    Environment variables:
    - LOG_LEVEL                            (optional)
    - ORCHESTRATOR_STORE_BACKEND           (optional, json | sqlite | memory)
    - ORCHESTRATOR_STATE_PATH              (optional)
    - ORCHESTRATOR_ROUTES                  (JSON object, handler -> address)
    - ORCHESTRATOR_HTTP_TIMEOUT_SECONDS    (optional)
    - ORCHESTRATOR_RECONCILE_AFTER_SECONDS (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `OrchestratorSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    store_backend: StoreBackend = Field(
        default="json",
        validation_alias="ORCHESTRATOR_STORE_BACKEND",
        description="Execution store implementation",
    )

    state_path: Path = Field(
        default=Path("orchestrator_state"),
        validation_alias="ORCHESTRATOR_STATE_PATH",
        description="Directory where execution state is persisted",
    )

    routes: dict[str, str] = Field(
        default_factory=dict,
        validation_alias="ORCHESTRATOR_ROUTES",
        description="Task-handler capability -> transport address",
    )

    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias="ORCHESTRATOR_HTTP_TIMEOUT_SECONDS",
        description="Timeout for each HTTP publish",
    )

    reconcile_after_seconds: float = Field(
        default=300.0,
        ge=0,
        validation_alias="ORCHESTRATOR_RECONCILE_AFTER_SECONDS",
        description=(
            "Minimum time an execution must have been waiting before the reconciliation "
            "sweep re-dispatches its in-flight request"
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _require_complete_routes(self) -> OrchestratorSettings:
        for handler, address in self.routes.items():
            if not handler.strip() or not address.strip():
                raise ValueError(f"ORCHESTRATOR_ROUTES has an empty entry: {handler!r}")
        return self

    @property
    def executions_state_file(self) -> Path:
        """Path of the JSON execution store."""

        return self.state_path / "executions.json"

    @property
    def executions_db_file(self) -> Path:
        """Path of the SQLite execution store."""

        return self.state_path / "executions.sqlite3"

    def routing_table(self) -> RoutingTable:
        return RoutingTable(self.routes)

    def create_store(self) -> ExecutionStore:
        if self.store_backend == "sqlite":
            return SqliteExecutionStore(self.executions_db_file)
        if self.store_backend == "memory":
            return InMemoryExecutionStore()
        return JsonExecutionStore(self.executions_state_file)
