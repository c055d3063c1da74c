"""Linear step orchestration engine.

An orchestration definition is an ordered list of steps. Each step sends one
request to a remote task handler and folds the response back into the
execution's data. Between request and response an execution exists only as a
persisted record, so engines are stateless and can run in any number of
processes.
"""

from step_orchestrator.orchestrator.correlator import Correlator
from step_orchestrator.orchestrator.definition import (
    DefinitionRegistry,
    OrchestrationDefinition,
    StepSpec,
    build,
)
from step_orchestrator.orchestrator.dispatcher import Dispatcher
from step_orchestrator.orchestrator.engine import Engine, ResumeResult
from step_orchestrator.orchestrator.execution import (
    Correlation,
    Execution,
    ExecutionError,
    ExecutionStatus,
)
from step_orchestrator.orchestrator.store import (
    ExecutionStore,
    InMemoryExecutionStore,
    JsonExecutionStore,
    SqliteExecutionStore,
)
from step_orchestrator.orchestrator.transport import (
    HttpTransport,
    InMemoryTransport,
    RoutingTable,
    Transport,
)

__all__ = [
    "Correlation",
    "Correlator",
    "DefinitionRegistry",
    "Dispatcher",
    "Engine",
    "Execution",
    "ExecutionError",
    "ExecutionStatus",
    "ExecutionStore",
    "HttpTransport",
    "InMemoryExecutionStore",
    "InMemoryTransport",
    "JsonExecutionStore",
    "OrchestrationDefinition",
    "ResumeResult",
    "RoutingTable",
    "SqliteExecutionStore",
    "StepSpec",
    "Transport",
    "build",
]
