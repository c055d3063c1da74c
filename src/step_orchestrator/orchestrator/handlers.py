"""Task-handler capability and a worker that serves it over a transport.

A task handler is just "payload in, payload out". Workers are what make a
handler reachable: they consume step requests from an address, run the handler
and publish the step response to the engine's reply address.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from .messages import ResponseError, StepRequest, StepResponse
from .transport import Transport

logger = logging.getLogger(__name__)


class TaskHandler(Protocol):
    def handle(self, payload: dict[str, Any]) -> dict[str, Any]: ...


@dataclass(frozen=True, slots=True)
class FunctionHandler:
    """Adapt a plain function to the TaskHandler capability."""

    fn: Callable[[dict[str, Any]], dict[str, Any]]

    def handle(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self.fn(payload)


@dataclass
class TaskWorker:
    handler: TaskHandler
    transport: Transport
    reply_to: str

    def __call__(self, message: dict[str, Any]) -> StepResponse | None:
        try:
            request = StepRequest.model_validate(message)
        except PydanticValidationError:
            logger.warning("Malformed step request dropped", extra={"reply_to": self.reply_to})
            return None

        try:
            response = StepResponse(
                execution_id=request.execution_id,
                step_id=request.step_id,
                payload=self.handler.handle(request.payload),
            )
        except Exception as e:
            logger.warning(
                "Task handler failed",
                exc_info=True,
                extra={"execution_id": request.execution_id, "step_id": request.step_id},
            )
            response = StepResponse(
                execution_id=request.execution_id,
                step_id=request.step_id,
                error=ResponseError(message=str(e) or type(e).__name__),
            )

        self.transport.publish(self.reply_to, response.to_message())
        return response
