"""Turn a step plus its request payload into a published step request."""

from __future__ import annotations

import logging
from typing import Any

from .definition import OrchestrationDefinition, StepSpec
from .errors import RoutingError
from .execution import Correlation
from .messages import StepRequest
from .transport import RoutingTable, Transport

logger = logging.getLogger(__name__)


class Dispatcher:
    """Publishes step requests. Failures go back to the caller; nothing is retried here."""

    def __init__(self, transport: Transport, routing: RoutingTable) -> None:
        self._transport = transport
        self._routing = routing

    def check_routes(self, definition: OrchestrationDefinition) -> None:
        missing = self._routing.missing(definition.handlers)
        if missing:
            raise RoutingError(missing[0])

    def publish(
        self, step: StepSpec, correlation: Correlation, payload: dict[str, Any]
    ) -> StepRequest:
        if correlation.step_id != step.step_id:
            raise ValueError(
                f"Correlation step {correlation.step_id!r} does not match step {step.step_id!r}"
            )
        address = self._routing.address_for(step.handler)
        request = StepRequest(
            execution_id=correlation.execution_id,
            step_id=step.step_id,
            payload=payload,
        )
        self._transport.publish(address, request.to_message())
        logger.info(
            "Step dispatched",
            extra={
                "execution_id": correlation.execution_id,
                "step_id": step.step_id,
                "handler": step.handler,
                "address": address,
            },
        )
        return request
