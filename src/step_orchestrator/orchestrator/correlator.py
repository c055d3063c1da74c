"""Match inbound step responses to executions and drive the engine."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .engine import Engine, ResumeResult
from .errors import NotFoundError, ProtocolError, UnknownDefinitionError
from .messages import StepResponse

logger = logging.getLogger(__name__)


def parse_response(message: object) -> StepResponse:
    """Parse a raw step response, rejecting anything without a full correlation."""

    if isinstance(message, StepResponse):
        return message
    if not isinstance(message, Mapping):
        raise ProtocolError(f"Step response must be an object, got {type(message).__name__}")
    try:
        return StepResponse.model_validate(message)
    except PydanticValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) or "<root>" for err in e.errors()})
        raise ProtocolError(f"Malformed step response ({', '.join(fields)})") from e


class Correlator:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def on_response(self, message: object) -> ResumeResult:
        """Route one response to `resume` or, for task errors, to `fail`.

        Raises:
            ProtocolError: the message is malformed; the engine is not called.
            NotFoundError: the execution does not exist.
            UnknownDefinitionError: the execution's definition is no longer registered.
        """

        response = parse_response(message)
        if response.error is not None:
            return self._engine.fail(
                response.execution_id, response.step_id, response.error.message
            )
        assert response.payload is not None
        return self._engine.resume(response.execution_id, response.step_id, response.payload)

    def deliver(self, message: dict[str, Any]) -> ResumeResult | None:
        """Transport callback.

        Malformed messages, responses for unknown executions and responses for
        executions whose definition is no longer registered are logged and
        acknowledged. Store and transport failures propagate so the transport
        can redeliver.
        """

        try:
            return self.on_response(message)
        except ProtocolError as e:
            logger.warning("Malformed response dropped", extra={"error": str(e)})
            return None
        except NotFoundError as e:
            logger.warning(
                "Response for unknown execution dropped",
                extra={"execution_id": e.execution_id},
            )
            return None
        except UnknownDefinitionError as e:
            logger.warning(
                "Response for unregistered definition dropped",
                extra={"definition_id": e.definition_id},
            )
            return None
