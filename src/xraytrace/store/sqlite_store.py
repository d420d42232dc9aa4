# src/xraytrace/store/sqlite_store.py — v1
"""SQLite-backed evidence store (STORE_BACKEND=sqlite).

Uses stdlib sqlite3. Four tables keyed by text ids; steps, candidates and
filters cascade-delete with their parent. JSON payloads are stored as TEXT.
Analytics queries touch the steps table only.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from xraytrace.analytics.queries import DEFAULT_ELIMINATION_THRESHOLD, ELIMINATION_STEP_TYPE
from xraytrace.core.models import (
    Candidate,
    CandidateCreate,
    CandidateStatus,
    Filter,
    FilterCreate,
    Run,
    RunCreate,
    RunDetail,
    RunStatus,
    RunUpdate,
    Step,
    StepCreate,
    StepDetail,
    StepUpdate,
)
from xraytrace.store import records
from xraytrace.store.base_store import BaseStore
from xraytrace.store.errors import DuplicateRecordError, RecordNotFoundError

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS runs (
    id TEXT PRIMARY KEY,
    pipeline_id TEXT NOT NULL,
    pipeline_version TEXT,
    status TEXT NOT NULL,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    input TEXT,
    output TEXT,
    error TEXT
);
CREATE TABLE IF NOT EXISTS steps (
    id TEXT PRIMARY KEY,
    run_id TEXT NOT NULL REFERENCES runs(id) ON DELETE CASCADE,
    step_type TEXT NOT NULL,
    step_index INTEGER NOT NULL,
    status TEXT NOT NULL,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    input TEXT,
    output TEXT,
    reasoning TEXT,
    config TEXT,
    input_count INTEGER,
    output_count INTEGER,
    duration_ms INTEGER,
    metadata TEXT NOT NULL DEFAULT '{}',
    error TEXT,
    capture_all_candidates INTEGER,
    UNIQUE (run_id, step_index)
);
CREATE TABLE IF NOT EXISTS candidates (
    id TEXT PRIMARY KEY,
    step_id TEXT NOT NULL REFERENCES steps(id) ON DELETE CASCADE,
    candidate_id TEXT NOT NULL,
    status TEXT NOT NULL,
    score REAL,
    reason TEXT,
    data TEXT NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{}'
);
CREATE TABLE IF NOT EXISTS filters (
    id TEXT PRIMARY KEY,
    step_id TEXT NOT NULL REFERENCES steps(id) ON DELETE CASCADE,
    filter_type TEXT NOT NULL,
    config TEXT,
    candidates_affected INTEGER NOT NULL,
    candidates_rejected INTEGER NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{}',
    CHECK (candidates_rejected <= candidates_affected)
);
CREATE INDEX IF NOT EXISTS idx_steps_run_id ON steps(run_id);
CREATE INDEX IF NOT EXISTS idx_steps_step_type ON steps(step_type);
CREATE INDEX IF NOT EXISTS idx_steps_run_type ON steps(run_id, step_type);
CREATE INDEX IF NOT EXISTS idx_candidates_step_id ON candidates(step_id);
CREATE INDEX IF NOT EXISTS idx_candidates_status ON candidates(step_id, status);
CREATE INDEX IF NOT EXISTS idx_filters_step_id ON filters(step_id);
CREATE INDEX IF NOT EXISTS idx_runs_pipeline_id ON runs(pipeline_id);
CREATE INDEX IF NOT EXISTS idx_runs_status ON runs(status);
CREATE INDEX IF NOT EXISTS idx_runs_started_at ON runs(started_at);
"""

_RUN_COLUMNS = (
    "id", "pipeline_id", "pipeline_version", "status", "started_at",
    "completed_at", "metadata", "input", "output", "error",
)
_STEP_COLUMNS = (
    "id", "run_id", "step_type", "step_index", "status", "started_at",
    "completed_at", "input", "output", "reasoning", "config", "input_count",
    "output_count", "duration_ms", "metadata", "error", "capture_all_candidates",
)
_CANDIDATE_COLUMNS = (
    "id", "step_id", "candidate_id", "status", "score", "reason", "data", "metadata",
)
_FILTER_COLUMNS = (
    "id", "step_id", "filter_type", "config", "candidates_affected",
    "candidates_rejected", "metadata",
)
_JSON_COLUMNS = {"metadata", "input", "output", "config", "data"}

# Unscored candidates sort after every scored one.
_CANDIDATE_ORDER = "ORDER BY score IS NULL, score DESC, rowid"


def _encode(record: dict[str, Any], columns: tuple[str, ...]) -> tuple[Any, ...]:
    values = []
    for col in columns:
        value = record.get(col)
        if col in _JSON_COLUMNS:
            value = json.dumps(value, default=str)
        elif hasattr(value, "isoformat"):
            value = value.isoformat()
        values.append(value)
    return tuple(values)


def _decode(row: sqlite3.Row) -> dict[str, Any]:
    data = dict(row)
    for col in data.keys() & _JSON_COLUMNS:
        if data[col] is not None:
            data[col] = json.loads(data[col])
    if data.get("capture_all_candidates") is not None:
        data["capture_all_candidates"] = bool(data["capture_all_candidates"])
    return data


def _insert_sql(table: str, columns: tuple[str, ...]) -> str:
    placeholders = ", ".join("?" for _ in columns)
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"


def _update_sql(table: str, columns: tuple[str, ...]) -> str:
    assignments = ", ".join(f"{col} = ?" for col in columns if col != "id")
    return f"UPDATE {table} SET {assignments} WHERE id = ?"


class SqliteStore(BaseStore):
    """SQLite-backed evidence store.

    Args:
        db_path: Database file, or ":memory:".
        run_detail_candidate_limit: Candidates nested per step by get_run().
    """

    def __init__(
        self, db_path: Path | str, run_detail_candidate_limit: int = 100
    ) -> None:
        if str(db_path) == ":memory:":
            target = ":memory:"
        else:
            path = Path(db_path).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            target = str(path)
        self._db_path = target
        self._run_detail_candidate_limit = run_detail_candidate_limit
        self._conn = sqlite3.connect(target)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        if target != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    # --- Runs ---

    async def create_run(self, data: RunCreate) -> Run:
        run = records.build_run(data)
        with self._conn:
            self._conn.execute(
                _insert_sql("runs", _RUN_COLUMNS), _encode(run.model_dump(), _RUN_COLUMNS)
            )
        return run

    async def update_run(self, run_id: str, update: RunUpdate) -> Run:
        run = self._fetch_run(run_id)
        if run is None:
            raise RecordNotFoundError("Run", run_id)
        updated = records.apply_run_update(run, update)
        values = _encode(updated.model_dump(), _RUN_COLUMNS)
        with self._conn:
            self._conn.execute(_update_sql("runs", _RUN_COLUMNS), values[1:] + (run_id,))
        return updated

    async def get_run(self, run_id: str) -> RunDetail | None:
        run = self._fetch_run(run_id)
        if run is None:
            return None
        rows = self._conn.execute(
            "SELECT * FROM steps WHERE run_id = ? ORDER BY step_index", (run_id,)
        ).fetchall()
        steps = [
            self._detail(Step(**_decode(row)), self._run_detail_candidate_limit)
            for row in rows
        ]
        return RunDetail(**run.model_dump(), steps=steps)

    async def list_runs(
        self,
        pipeline_id: str | None = None,
        status: RunStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Run]:
        clauses: list[str] = []
        params: list[Any] = []
        if pipeline_id is not None:
            clauses.append("pipeline_id = ?")
            params.append(pipeline_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"SELECT * FROM runs {where} ORDER BY started_at DESC, rowid DESC"
        sql, params = _with_page(sql, params, limit, offset)
        return [Run(**_decode(row)) for row in self._conn.execute(sql, params)]

    async def delete_run(self, run_id: str) -> None:
        """Delete a run; steps, candidates and filters go with it."""
        with self._conn:
            self._conn.execute("DELETE FROM runs WHERE id = ?", (run_id,))
        logger.info("Deleted run %s", run_id)

    # --- Steps ---

    async def create_step(self, data: StepCreate) -> Step:
        if self._fetch_run(data.run_id) is None:
            raise RecordNotFoundError("Run", data.run_id)
        step = records.build_step(data)
        try:
            with self._conn:
                self._conn.execute(
                    _insert_sql("steps", _STEP_COLUMNS), _encode(step.model_dump(), _STEP_COLUMNS)
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateRecordError("Step", f"{data.run_id}#{data.step_index}") from e
        return step

    async def update_step(self, step_id: str, update: StepUpdate) -> Step:
        step = self._fetch_step(step_id)
        if step is None:
            raise RecordNotFoundError("Step", step_id)
        updated = records.apply_step_update(step, update)
        values = _encode(updated.model_dump(), _STEP_COLUMNS)
        with self._conn:
            self._conn.execute(_update_sql("steps", _STEP_COLUMNS), values[1:] + (step_id,))
        return updated

    async def get_step(self, step_id: str) -> StepDetail | None:
        step = self._fetch_step(step_id)
        if step is None:
            return None
        return self._detail(step)

    # --- Evidence ---

    async def create_candidates_bulk(
        self, step_id: str, candidates: list[CandidateCreate]
    ) -> list[Candidate]:
        if self._fetch_step(step_id) is None:
            raise RecordNotFoundError("Step", step_id)
        created = [records.build_candidate(step_id, c) for c in candidates]
        try:
            with self._conn:
                self._conn.executemany(
                    _insert_sql("candidates", _CANDIDATE_COLUMNS),
                    [_encode(c.model_dump(), _CANDIDATE_COLUMNS) for c in created],
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateRecordError("Candidate batch for step", step_id) from e
        return created

    async def list_candidates(
        self,
        step_id: str,
        status: CandidateStatus | None = None,
        limit: int | None = None,
    ) -> list[Candidate]:
        sql = "SELECT * FROM candidates WHERE step_id = ?"
        params: list[Any] = [step_id]
        if status is not None:
            sql += " AND status = ?"
            params.append(status)
        sql, params = _with_page(f"{sql} {_CANDIDATE_ORDER}", params, limit, 0)
        return [Candidate(**_decode(row)) for row in self._conn.execute(sql, params)]

    async def create_filter(self, step_id: str, data: FilterCreate) -> Filter:
        if self._fetch_step(step_id) is None:
            raise RecordNotFoundError("Step", step_id)
        created = records.build_filter(step_id, data)
        with self._conn:
            self._conn.execute(
                _insert_sql("filters", _FILTER_COLUMNS),
                _encode(created.model_dump(), _FILTER_COLUMNS),
            )
        return created

    # --- Analytics ---

    async def query_high_elimination(
        self,
        threshold: float = DEFAULT_ELIMINATION_THRESHOLD,
        step_type: str = ELIMINATION_STEP_TYPE,
    ) -> list[Step]:
        cursor = self._conn.execute(
            """SELECT * FROM steps
               WHERE step_type = ?
                 AND input_count > 0
                 AND output_count IS NOT NULL
                 AND CAST(output_count AS REAL) / input_count < ?
               ORDER BY started_at DESC, rowid DESC""",
            (step_type, threshold),
        )
        return [Step(**_decode(row)) for row in cursor]

    async def query_by_type(
        self,
        step_type: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Step]:
        sql, params = _with_page(
            "SELECT * FROM steps WHERE step_type = ? ORDER BY started_at DESC, rowid DESC",
            [step_type],
            limit,
            offset,
        )
        return [Step(**_decode(row)) for row in self._conn.execute(sql, params)]

    async def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # --- Helpers ---

    def _fetch_run(self, run_id: str) -> Run | None:
        row = self._conn.execute("SELECT * FROM runs WHERE id = ?", (run_id,)).fetchone()
        return Run(**_decode(row)) if row is not None else None

    def _fetch_step(self, step_id: str) -> Step | None:
        row = self._conn.execute("SELECT * FROM steps WHERE id = ?", (step_id,)).fetchone()
        return Step(**_decode(row)) if row is not None else None

    def _detail(self, step: Step, candidate_limit: int | None = None) -> StepDetail:
        sql, params = _with_page(
            f"SELECT * FROM candidates WHERE step_id = ? {_CANDIDATE_ORDER}",
            [step.id],
            candidate_limit,
            0,
        )
        candidates = [Candidate(**_decode(row)) for row in self._conn.execute(sql, params)]
        filters = [
            Filter(**_decode(row))
            for row in self._conn.execute(
                "SELECT * FROM filters WHERE step_id = ? ORDER BY rowid", (step.id,)
            )
        ]
        return StepDetail(**step.model_dump(), candidates=candidates, filters=filters)


def _with_page(
    sql: str, params: list[Any], limit: int | None, offset: int
) -> tuple[str, list[Any]]:
    if limit is not None:
        sql += " LIMIT ? OFFSET ?"
        params = [*params, limit, offset]
    elif offset:
        sql += " LIMIT -1 OFFSET ?"
        params = [*params, offset]
    return sql, params
