"""Operator CLI for the step orchestrator.

Inspection commands (`list`, `show`) only need the execution store. Commands
that dispatch (`reconcile`, `serve`) also need the definitions, which are
loaded from an importable `module:attribute` reference to a DefinitionRegistry
(or a zero-argument callable returning one).
"""

from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys
from datetime import timedelta

from pydantic import ValidationError as SettingsValidationError

from step_orchestrator import __version__
from step_orchestrator.orchestrator.config import OrchestratorSettings
from step_orchestrator.orchestrator.definition import DefinitionRegistry
from step_orchestrator.orchestrator.dispatcher import Dispatcher
from step_orchestrator.orchestrator.engine import Engine
from step_orchestrator.orchestrator.errors import NotFoundError
from step_orchestrator.orchestrator.execution import ExecutionStatus
from step_orchestrator.orchestrator.logging import configure_logging
from step_orchestrator.orchestrator.transport import HttpTransport

logger = logging.getLogger(__name__)


def load_registry(reference: str) -> DefinitionRegistry:
    """Resolve `package.module:attribute` to a DefinitionRegistry."""

    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Registry reference must look like 'module:attribute', got {reference!r}")

    target = getattr(importlib.import_module(module_name), attr)
    if callable(target) and not isinstance(target, DefinitionRegistry):
        target = target()
    if not isinstance(target, DefinitionRegistry):
        raise ValueError(f"{reference} is not a DefinitionRegistry")
    return target


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="step-orchestrator",
        description="Inspect and operate step orchestration executions",
    )
    parser.add_argument("--version", action="version", version=f"step-orchestrator {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    list_cmd = subparsers.add_parser("list", help="List executions")
    list_cmd.add_argument(
        "--status",
        choices=[s.value for s in ExecutionStatus],
        default=None,
        help="Only list executions in this status",
    )

    show = subparsers.add_parser("show", help="Show one execution as JSON")
    show.add_argument("execution_id", help="Execution id")

    reconcile = subparsers.add_parser(
        "reconcile",
        help="Re-dispatch the in-flight request of executions that have waited too long",
    )
    reconcile.add_argument(
        "--registry",
        required=True,
        help="Definition registry reference, e.g. 'myapp.flows:registry'",
    )
    reconcile.add_argument(
        "--older-than-seconds",
        type=float,
        default=None,
        help="Override ORCHESTRATOR_RECONCILE_AFTER_SECONDS",
    )

    serve = subparsers.add_parser("serve", help="Run the REST server")
    serve.add_argument(
        "--registry",
        required=True,
        help="Definition registry reference, e.g. 'myapp.flows:registry'",
    )
    serve.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve.add_argument("--port", type=int, default=8000, help="Bind port")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = OrchestratorSettings()
    except SettingsValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        if args.command == "list":
            status = ExecutionStatus(args.status) if args.status else None
            for execution in settings.create_store().list(status):
                print(
                    f"{execution.execution_id}\t{execution.definition_id}\t"
                    f"{execution.status.value}\t{execution.step_index}"
                )
            return 0

        if args.command == "show":
            execution = settings.create_store().get(args.execution_id)
            print(json.dumps(execution.to_record(), indent=2, ensure_ascii=False))
            return 0

        if args.command == "reconcile":
            registry = load_registry(args.registry)
            transport = HttpTransport(timeout_seconds=settings.http_timeout_seconds)
            try:
                engine = Engine(
                    store=settings.create_store(),
                    dispatcher=Dispatcher(transport, settings.routing_table()),
                    registry=registry,
                )
                seconds = (
                    args.older_than_seconds
                    if args.older_than_seconds is not None
                    else settings.reconcile_after_seconds
                )
                redispatched = engine.reconcile(older_than=timedelta(seconds=seconds))
            finally:
                transport.close()
            for execution_id in redispatched:
                print(execution_id)
            logger.info("Reconciliation finished", extra={"redispatched": len(redispatched)})
            return 0

        if args.command == "serve":
            import uvicorn

            from step_orchestrator.server.app import create_app

            app = create_app(load_registry(args.registry), settings=settings)
            uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except NotFoundError as e:
        logger.warning(str(e), extra={"execution_id": e.execution_id})
        print(str(e), file=sys.stderr)
        return 3

    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
