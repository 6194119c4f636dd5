"""
SQLite persistence for workflow spans.

Rows are written once, when a span closes. Reads come back as plain dicts
with the JSON payload columns decoded:
- get_trace: one run with all of its steps
- get_recent_traces: one summary row per run
- get_workflow_runs: run spans of a single workflow
- get_spans_by_type / get_errors: flat span listings
"""
import os
import json
import sqlite3
import logging

from tracing.models import TraceSpan

logger = logging.getLogger(__name__)

TRACE_DB_PATH = os.environ.get("TRACE_DB_PATH", "./data/traces.db")

SCHEMA = """
    CREATE TABLE IF NOT EXISTS spans (
        id           TEXT PRIMARY KEY,
        trace_id     TEXT NOT NULL,
        parent_id    TEXT,
        span_type    TEXT NOT NULL,
        name         TEXT NOT NULL,
        workflow     TEXT,
        status       TEXT NOT NULL,
        started_at   TEXT NOT NULL,
        ended_at     TEXT,
        duration_ms  REAL DEFAULT 0,
        input_data   TEXT DEFAULT '{}',
        output_data  TEXT DEFAULT '{}',
        error        TEXT
    );
    CREATE INDEX IF NOT EXISTS idx_spans_trace    ON spans(trace_id);
    CREATE INDEX IF NOT EXISTS idx_spans_workflow ON spans(workflow, span_type);
    CREATE INDEX IF NOT EXISTS idx_spans_started  ON spans(started_at);
"""


class TraceStore:
    def __init__(self, db_path: str | None = None):
        self._db_path = db_path or os.environ.get("TRACE_DB_PATH", TRACE_DB_PATH)
        os.makedirs(os.path.dirname(self._db_path) or ".", exist_ok=True)
        conn = self._conn()
        try:
            conn.executescript(SCHEMA)
        finally:
            conn.close()
        logger.debug(f"Trace store ready at {self._db_path}")

    @property
    def db_path(self) -> str:
        return self._db_path

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _fetch(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        conn = self._conn()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    # ── write ──────────────────────────────────────────────────────
    def save(self, span: TraceSpan) -> None:
        conn = self._conn()
        try:
            with conn:
                conn.execute(
                    "INSERT OR REPLACE INTO spans VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)",
                    (
                        span.id, span.trace_id, span.parent_id,
                        span.span_type.value, span.name, span.workflow,
                        span.status.value, span.started_at, span.ended_at,
                        span.duration_ms,
                        json.dumps(span.input_data, default=str),
                        json.dumps(span.output_data, default=str),
                        span.error,
                    ),
                )
        finally:
            conn.close()

    # ── read ───────────────────────────────────────────────────────
    def get_trace(self, trace_id: str) -> list[dict]:
        """The run span first, then its steps in start order."""
        rows = self._fetch(
            "SELECT * FROM spans WHERE trace_id = ? "
            "ORDER BY parent_id IS NOT NULL, started_at",
            (trace_id,)
        )
        return [_decode(r) for r in rows]

    def get_recent_traces(self, limit: int = 10) -> list[dict]:
        """One row per trace, newest first, named after its root span."""
        rows = self._fetch("""
            SELECT
                trace_id,
                MAX(CASE WHEN parent_id IS NULL THEN name END)     AS root_name,
                MAX(workflow)                                      AS workflow,
                COUNT(*)                                           AS span_count,
                SUM(status = 'error')                              AS error_count,
                MIN(started_at)                                    AS started_at,
                MAX(ended_at)                                      AS ended_at
            FROM spans
            GROUP BY trace_id
            ORDER BY MIN(started_at) DESC
            LIMIT ?
        """, (limit,))
        return [dict(r) for r in rows]

    def get_workflow_runs(self, workflow: str, limit: int = 10) -> list[dict]:
        """Run spans of one workflow, newest first."""
        rows = self._fetch(
            "SELECT * FROM spans WHERE workflow = ? AND span_type = 'workflow_run' "
            "ORDER BY started_at DESC LIMIT ?",
            (workflow, limit)
        )
        return [_decode(r) for r in rows]

    def get_spans_by_type(self, span_type: str, limit: int = 20) -> list[dict]:
        rows = self._fetch(
            "SELECT * FROM spans WHERE span_type = ? ORDER BY started_at DESC LIMIT ?",
            (span_type, limit)
        )
        return [_decode(r) for r in rows]

    def get_errors(self, limit: int = 20) -> list[dict]:
        rows = self._fetch(
            "SELECT * FROM spans WHERE status = 'error' ORDER BY started_at DESC LIMIT ?",
            (limit,)
        )
        return [_decode(r) for r in rows]


def _decode(row: sqlite3.Row) -> dict:
    span = dict(row)
    for column in ("input_data", "output_data"):
        if span.get(column):
            span[column] = json.loads(span[column])
    return span
