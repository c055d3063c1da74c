"""Step Orchestrator.

Runs fixed, ordered sequences of asynchronous remote task invocations:
- orchestration definitions built from explicit step specs
- a persisted execution state machine with optimistic, versioned updates
- request/response correlation over a pluggable transport
"""

__version__ = "0.1.0"

from step_orchestrator.orchestrator.config import OrchestratorSettings

__all__ = ["__version__", "OrchestratorSettings"]
