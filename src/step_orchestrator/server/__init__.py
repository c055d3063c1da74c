"""FastAPI server adapter for step-orchestrator.

This module exposes a REST API over the engine.

Design intent:
- Keep orchestration logic in `step_orchestrator.orchestrator.*`
- Keep server-specific concerns (routing, status codes) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from step_orchestrator.server.app import create_app
