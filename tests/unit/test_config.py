"""Unit tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pydantic
import pytest

from step_orchestrator.orchestrator.config import OrchestratorSettings
from step_orchestrator.orchestrator.store import (
    InMemoryExecutionStore,
    JsonExecutionStore,
    SqliteExecutionStore,
)

_ENV_VARS = (
    "LOG_LEVEL",
    "ORCHESTRATOR_STORE_BACKEND",
    "ORCHESTRATOR_STATE_PATH",
    "ORCHESTRATOR_ROUTES",
    "ORCHESTRATOR_HTTP_TIMEOUT_SECONDS",
    "ORCHESTRATOR_RECONCILE_AFTER_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_settings_defaults() -> None:
    settings = OrchestratorSettings()

    assert settings.log_level == "INFO"
    assert settings.store_backend == "json"
    assert settings.routes == {}
    assert settings.http_timeout_seconds == 30.0
    assert settings.reconcile_after_seconds == 300.0
    assert settings.executions_state_file == Path("orchestrator_state") / "executions.json"


def test_settings_loads_from_dotenv(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text(
        "\n".join(
            [
                "LOG_LEVEL=DEBUG",
                "ORCHESTRATOR_STORE_BACKEND=sqlite",
                'ORCHESTRATOR_ROUTES={"adder": "http://adder.internal/steps"}',
                "",
            ]
        ),
        encoding="utf-8",
    )

    settings = OrchestratorSettings()

    assert settings.log_level == "DEBUG"
    assert settings.store_backend == "sqlite"
    assert settings.routing_table().address_for("adder") == "http://adder.internal/steps"


def test_environment_routes_are_json(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORCHESTRATOR_ROUTES", '{"adder": "tasks.adder", "mailer": "tasks.mail"}')

    settings = OrchestratorSettings()

    assert settings.routes == {"adder": "tasks.adder", "mailer": "tasks.mail"}


def test_empty_route_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORCHESTRATOR_ROUTES", '{"adder": ""}')

    with pytest.raises(pydantic.ValidationError):
        OrchestratorSettings()


def test_unknown_backend_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORCHESTRATOR_STORE_BACKEND", "redis")

    with pytest.raises(pydantic.ValidationError):
        OrchestratorSettings()


@pytest.mark.parametrize(
    ("backend", "expected"),
    [
        ("json", JsonExecutionStore),
        ("sqlite", SqliteExecutionStore),
        ("memory", InMemoryExecutionStore),
    ],
)
def test_create_store_by_backend(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, backend: str, expected: type
) -> None:
    monkeypatch.setenv("ORCHESTRATOR_STORE_BACKEND", backend)
    monkeypatch.setenv("ORCHESTRATOR_STATE_PATH", str(tmp_path / "state"))

    store = OrchestratorSettings().create_store()

    assert isinstance(store, expected)


def test_settings_only_expose_consumed_options(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORCHESTRATOR_RESPONSE_ADDRESS", "orchestrator.responses")

    settings = OrchestratorSettings()

    assert set(OrchestratorSettings.model_fields) == {
        "log_level",
        "store_backend",
        "state_path",
        "routes",
        "http_timeout_seconds",
        "reconcile_after_seconds",
    }
    assert not hasattr(settings, "response_address")
