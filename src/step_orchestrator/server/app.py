"""FastAPI app factory.

Endpoints are thin wrappers over the engine:
- start requests come in on `POST /api/v1/executions`
- task handlers post their step responses to `POST /api/v1/responses`

Outbound step requests go through the configured transport (HTTP by default).
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Any

from fastapi import Body, FastAPI, HTTPException

from step_orchestrator import __version__
from step_orchestrator.orchestrator.config import OrchestratorSettings
from step_orchestrator.orchestrator.correlator import Correlator
from step_orchestrator.orchestrator.definition import DefinitionRegistry
from step_orchestrator.orchestrator.dispatcher import Dispatcher
from step_orchestrator.orchestrator.engine import Engine
from step_orchestrator.orchestrator.errors import (
    AlreadyExistsError,
    NotFoundError,
    ProtocolError,
    StoreError,
    TransportError,
    UnknownDefinitionError,
    ValidationError,
)
from step_orchestrator.orchestrator.execution import Execution, ExecutionStatus
from step_orchestrator.orchestrator.messages import StartRequest
from step_orchestrator.orchestrator.store import ExecutionStore
from step_orchestrator.orchestrator.transport import HttpTransport, Transport
from step_orchestrator.server.models import Health, ReconcileRequest, ReconcileResult, ResponseAck

logger = logging.getLogger(__name__)


def create_app(
    registry: DefinitionRegistry,
    *,
    settings: OrchestratorSettings | None = None,
    store: ExecutionStore | None = None,
    transport: Transport | None = None,
) -> FastAPI:
    settings = settings or OrchestratorSettings()
    store = store or settings.create_store()
    transport = transport or HttpTransport(timeout_seconds=settings.http_timeout_seconds)

    engine = Engine(
        store=store,
        dispatcher=Dispatcher(transport, settings.routing_table()),
        registry=registry,
    )
    correlator = Correlator(engine)

    app = FastAPI(
        title="Step Orchestrator",
        version=__version__,
        description="REST intake for the step orchestration engine.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    # Expose for request handlers and tests.
    app.state.settings = settings
    app.state.engine = engine

    @app.get("/api/v1/health", response_model=Health)
    def health() -> Health:
        return Health(
            status="ok",
            version=__version__,
            definitions=sorted(d.definition_id for d in registry),
        )

    @app.post("/api/v1/executions", response_model=Execution, status_code=201)
    def start_execution(req: StartRequest) -> Execution:
        # Assign the id up front so a dispatch failure can still name the execution.
        execution_id = req.execution_id or uuid.uuid4().hex
        try:
            definition = registry.get(req.definition_id)
            return engine.start(definition, req.input, execution_id=execution_id)
        except UnknownDefinitionError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except AlreadyExistsError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        except TransportError as e:
            logger.error(
                "First step dispatch failed", extra={"execution_id": execution_id}
            )
            raise HTTPException(
                status_code=502,
                detail={"message": str(e), "executionId": execution_id},
            ) from e
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e

    @app.get("/api/v1/executions", response_model=list[Execution])
    def list_executions(status: ExecutionStatus | None = None) -> list[Execution]:
        try:
            return store.list(status)
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e

    @app.get("/api/v1/executions/{execution_id}", response_model=Execution)
    def get_execution(execution_id: str) -> Execution:
        try:
            return engine.get(execution_id)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e

    @app.post("/api/v1/responses", response_model=ResponseAck)
    def receive_response(message: Any = Body(...)) -> ResponseAck:
        try:
            result = correlator.on_response(message)
        except ProtocolError as e:
            logger.warning("Malformed response rejected", extra={"error": str(e)})
            raise HTTPException(status_code=400, detail=str(e)) from e
        except (NotFoundError, UnknownDefinitionError) as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except TransportError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e
        return ResponseAck(
            outcome=result.outcome,
            discarded=result.discarded,
            execution=result.execution,
            detail=str(result.discard) if result.discard is not None else None,
        )

    @app.post("/api/v1/reconcile", response_model=ReconcileResult)
    def reconcile(req: ReconcileRequest | None = None) -> ReconcileResult:
        seconds = settings.reconcile_after_seconds
        if req is not None and req.older_than_seconds is not None:
            seconds = req.older_than_seconds
        try:
            redispatched = engine.reconcile(older_than=timedelta(seconds=seconds))
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e
        return ReconcileResult(redispatched=redispatched)

    return app
