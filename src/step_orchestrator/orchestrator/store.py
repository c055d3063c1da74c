"""Execution state stores.

The store is the single source of truth for executions and the only shared
mutable resource. Writers never lock across calls: every state change goes
through `compare_and_advance`, which applies a new state only if the stored
`step_index` still matches what the writer read.
"""

from __future__ import annotations

import json
import os
import sqlite3
import threading
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from .errors import AlreadyExistsError, ConflictError, NotFoundError, StoreError
from .execution import Execution, ExecutionStatus, utc_now


class ExecutionStore(Protocol):
    def create(self, execution: Execution) -> Execution: ...

    def get(self, execution_id: str) -> Execution: ...

    def compare_and_advance(
        self, execution_id: str, expected_step_index: int, new_state: Execution
    ) -> Execution: ...

    def list(self, status: ExecutionStatus | None = None) -> list[Execution]: ...


def _check_advance(current: Execution, expected_step_index: int) -> None:
    if current.is_terminal or current.step_index != expected_step_index:
        raise ConflictError(
            execution_id=current.execution_id, expected_step_index=expected_step_index
        )


def _stamped(current: Execution, new_state: Execution) -> Execution:
    if new_state.execution_id != current.execution_id:
        raise ValueError(
            f"new state belongs to {new_state.execution_id}, not {current.execution_id}"
        )
    return new_state.model_copy(
        update={"created_at": current.created_at, "updated_at": utc_now()}, deep=True
    )


class InMemoryExecutionStore:
    """Process-local store. Useful for tests and single-process embedding."""

    def __init__(self) -> None:
        self._executions: dict[str, Execution] = {}
        self._lock = threading.Lock()

    def create(self, execution: Execution) -> Execution:
        with self._lock:
            if execution.execution_id in self._executions:
                raise AlreadyExistsError(execution.execution_id)
            self._executions[execution.execution_id] = execution.model_copy(deep=True)
            return execution.model_copy(deep=True)

    def get(self, execution_id: str) -> Execution:
        with self._lock:
            current = self._executions.get(execution_id)
            if current is None:
                raise NotFoundError(execution_id)
            return current.model_copy(deep=True)

    def compare_and_advance(
        self, execution_id: str, expected_step_index: int, new_state: Execution
    ) -> Execution:
        with self._lock:
            current = self._executions.get(execution_id)
            if current is None:
                raise NotFoundError(execution_id)
            _check_advance(current, expected_step_index)
            updated = _stamped(current, new_state)
            self._executions[execution_id] = updated
            return updated.model_copy(deep=True)

    def list(self, status: ExecutionStatus | None = None) -> list[Execution]:
        with self._lock:
            return [
                e.model_copy(deep=True)
                for e in self._executions.values()
                if status is None or e.status == status
            ]


@dataclass
class JsonExecutionStore:
    """JSON-file backed store.

    The lock serialises writers inside one process only. Run a single engine
    process against a JSON store, or use :class:`SqliteExecutionStore`.
    """

    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _load_unlocked(self) -> dict[str, Execution]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read execution state from {self.path}: {e}") from e
        if not isinstance(raw, list):
            raise StoreError(f"Execution state file is not a JSON list: {self.path}")
        try:
            executions = [Execution.from_record(item) for item in raw]
        except PydanticValidationError as e:
            raise StoreError(f"Execution state file is corrupt: {self.path}") from e
        return {e.execution_id: e for e in executions}

    def _save_unlocked(self, executions: dict[str, Execution]) -> None:
        payload = [e.to_record() for e in executions.values()]
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(
                json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
            )
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreError(f"Cannot write execution state to {self.path}: {e}") from e

    def create(self, execution: Execution) -> Execution:
        with self._lock:
            executions = self._load_unlocked()
            if execution.execution_id in executions:
                raise AlreadyExistsError(execution.execution_id)
            executions[execution.execution_id] = execution
            self._save_unlocked(executions)
            return execution

    def get(self, execution_id: str) -> Execution:
        with self._lock:
            current = self._load_unlocked().get(execution_id)
            if current is None:
                raise NotFoundError(execution_id)
            return current

    def compare_and_advance(
        self, execution_id: str, expected_step_index: int, new_state: Execution
    ) -> Execution:
        with self._lock:
            executions = self._load_unlocked()
            current = executions.get(execution_id)
            if current is None:
                raise NotFoundError(execution_id)
            _check_advance(current, expected_step_index)
            updated = _stamped(current, new_state)
            executions[execution_id] = updated
            self._save_unlocked(executions)
            return updated

    def list(self, status: ExecutionStatus | None = None) -> list[Execution]:
        with self._lock:
            return [
                e
                for e in self._load_unlocked().values()
                if status is None or e.status == status
            ]


_SCHEMA = """
create table if not exists executions (
    execution_id text primary key,
    definition_id text not null,
    step_index integer not null,
    status text not null,
    record text not null,
    created_at text not null,
    updated_at text not null
)
"""


class SqliteExecutionStore:
    """SQLite backed store, safe for several engine processes sharing one file.

    `compare_and_advance` runs inside a `BEGIN IMMEDIATE` transaction, so the
    read-check-write sequence holds the database write lock throughout.
    """

    def __init__(self, path: Path, *, timeout_seconds: float = 30.0) -> None:
        self.path = path
        self._timeout = timeout_seconds
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with closing(self._connect()) as conn:
                conn.execute(_SCHEMA)
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"Cannot initialise execution database {self.path}: {e}") from e

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly where needed.
        return sqlite3.connect(self.path, timeout=self._timeout, isolation_level=None)

    @staticmethod
    def _row_params(execution: Execution) -> dict[str, Any]:
        record = execution.to_record()
        return {
            "execution_id": execution.execution_id,
            "definition_id": execution.definition_id,
            "step_index": execution.step_index,
            "status": execution.status.value,
            "record": json.dumps(record, ensure_ascii=False),
            "created_at": record["createdAt"],
            "updated_at": record["updatedAt"],
        }

    @staticmethod
    def _decode(record: str) -> Execution:
        try:
            return Execution.from_record(json.loads(record))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            raise StoreError(f"Corrupt execution record: {e}") from e

    def create(self, execution: Execution) -> Execution:
        try:
            with closing(self._connect()) as conn:
                conn.execute(
                    """
                    insert into executions(
                        execution_id, definition_id, step_index, status, record,
                        created_at, updated_at
                    )
                    values (
                        :execution_id, :definition_id, :step_index, :status, :record,
                        :created_at, :updated_at
                    )
                    """,
                    self._row_params(execution),
                )
        except sqlite3.IntegrityError:
            raise AlreadyExistsError(execution.execution_id) from None
        except sqlite3.Error as e:
            raise StoreError(f"Cannot create execution {execution.execution_id}: {e}") from e
        return execution

    def get(self, execution_id: str) -> Execution:
        try:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    "select record from executions where execution_id = ?", (execution_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot load execution {execution_id}: {e}") from e
        if row is None:
            raise NotFoundError(execution_id)
        return self._decode(row[0])

    def compare_and_advance(
        self, execution_id: str, expected_step_index: int, new_state: Execution
    ) -> Execution:
        try:
            with closing(self._connect()) as conn:
                conn.execute("begin immediate")
                try:
                    row = conn.execute(
                        "select record from executions where execution_id = ?",
                        (execution_id,),
                    ).fetchone()
                    if row is None:
                        raise NotFoundError(execution_id)
                    current = self._decode(row[0])
                    _check_advance(current, expected_step_index)
                    updated = _stamped(current, new_state)
                    params = self._row_params(updated)
                    params["expected_step_index"] = expected_step_index
                    cursor = conn.execute(
                        """
                        update executions
                        set step_index = :step_index,
                            status = :status,
                            record = :record,
                            updated_at = :updated_at
                        where execution_id = :execution_id
                          and step_index = :expected_step_index
                        """,
                        params,
                    )
                    if cursor.rowcount != 1:
                        raise ConflictError(
                            execution_id=execution_id, expected_step_index=expected_step_index
                        )
                except BaseException:
                    conn.execute("rollback")
                    raise
                conn.execute("commit")
                return updated
        except sqlite3.Error as e:
            raise StoreError(f"Cannot advance execution {execution_id}: {e}") from e

    def list(self, status: ExecutionStatus | None = None) -> list[Execution]:
        query = "select record from executions"
        params: tuple[str, ...] = ()
        if status is not None:
            query += " where status = ?"
            params = (status.value,)
        query += " order by created_at, execution_id"
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot list executions: {e}") from e
        return [self._decode(row[0]) for row in rows]
