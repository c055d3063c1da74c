"""Transports and the static routing table.

A transport only has to publish a JSON-compatible message to an address. It is
assumed to deliver at least once and in no particular order.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections import deque
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import requests

from .errors import RoutingError, TransportError, ValidationError

logger = logging.getLogger(__name__)

MessageHandler = Callable[[dict[str, Any]], object]


class Transport(Protocol):
    def publish(self, address: str, message: dict[str, Any]) -> None: ...


class RoutingTable:
    """Explicit mapping of task-handler capability -> transport address."""

    def __init__(self, routes: Mapping[str, str]) -> None:
        cleaned: dict[str, str] = {}
        for handler, address in routes.items():
            if not handler.strip() or not address.strip():
                raise ValidationError(f"Invalid route {handler!r} -> {address!r}")
            cleaned[handler] = address.strip()
        self._routes = cleaned

    def address_for(self, handler: str) -> str:
        try:
            return self._routes[handler]
        except KeyError:
            raise RoutingError(handler) from None

    def missing(self, handlers: Iterable[str]) -> list[str]:
        return sorted(h for h in handlers if h not in self._routes)

    def __contains__(self, handler: object) -> bool:
        return handler in self._routes

    def as_dict(self) -> dict[str, str]:
        return dict(self._routes)


@dataclass(frozen=True, slots=True)
class Envelope:
    address: str
    message: dict[str, Any]


class InMemoryTransport:
    """Queued, in-process publish/subscribe.

    Nothing is delivered until `deliver_next()` or `drain()` is called, which
    lets callers interleave, reorder or duplicate deliveries. A subscriber that
    raises leaves the message unacknowledged and it is queued again.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[MessageHandler]] = {}
        self._queue: deque[Envelope] = deque()
        self._lock = threading.Lock()
        self.published: list[Envelope] = []

    def subscribe(self, address: str, handler: MessageHandler) -> None:
        with self._lock:
            self._subscribers.setdefault(address, []).append(handler)

    def publish(self, address: str, message: dict[str, Any]) -> None:
        envelope = Envelope(address=address, message=copy.deepcopy(message))
        with self._lock:
            self.published.append(envelope)
            self._queue.append(envelope)

    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    def deliver_next(self) -> Envelope | None:
        with self._lock:
            if not self._queue:
                return None
            envelope = self._queue.popleft()
            subscribers = list(self._subscribers.get(envelope.address, []))

        if not subscribers:
            logger.debug("No subscriber for address", extra={"address": envelope.address})
            return envelope

        for handler in subscribers:
            try:
                handler(copy.deepcopy(envelope.message))
            except Exception:
                logger.exception(
                    "Subscriber failed; message will be redelivered",
                    extra={"address": envelope.address},
                )
                with self._lock:
                    self._queue.append(envelope)
                break
        return envelope

    def drain(self, *, max_deliveries: int = 1000) -> int:
        """Deliver queued messages until the queue is empty. Returns the delivery count."""

        delivered = 0
        while delivered < max_deliveries and self.deliver_next() is not None:
            delivered += 1
        return delivered


class HttpTransport:
    """Publish messages by POSTing JSON to the address URL."""

    def __init__(
        self, *, timeout_seconds: float = 30.0, session: requests.Session | None = None
    ) -> None:
        self._timeout = timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Content-Type": "application/json",
                "User-Agent": "step-orchestrator",
            }
        )

    def publish(self, address: str, message: dict[str, Any]) -> None:
        try:
            resp = self._session.post(address, json=message, timeout=self._timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise TransportError(f"Publish to {address} failed: {e}") from e

    def close(self) -> None:
        self._session.close()
