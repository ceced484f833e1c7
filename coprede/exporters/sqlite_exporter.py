"""
coprede/exporters/sqlite_exporter.py
Persists parsed records to SQLite for the dashboard.

SCHEMA DESIGN NOTES:
- one table per record family; the full record is kept as JSON in `payload`,
  the columns next to it exist only for filtering and ordering
- message_id is UNIQUE per table: re-delivered messages are ignored
  (INSERT OR IGNORE), so export() is safe to call repeatedly
- retention keeps the newest N rows per table, by received_ms
- ingest_meta stores one row per export run
- instants are stored as INTEGER milliseconds (UTC epoch * 1000) for
  ordering and as ISO-8601 text inside the payload
"""

import dataclasses
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from coprede.models.record import (
    AlertRecord, IncidentSummaryRecord, ParsedRecord, ParseErrorRecord,
    ShiftAllocationRecord,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = '1.0'

TABLE_SUMMARIES   = 'incident_summaries'
TABLE_ALERTS      = 'alerts'
TABLE_ALLOCATIONS = 'shift_allocations'
TABLE_ERRORS      = 'parse_errors'

DATA_TABLES = (TABLE_SUMMARIES, TABLE_ALERTS, TABLE_ALLOCATIONS, TABLE_ERRORS)

DEFAULT_LIMITS = {
    TABLE_SUMMARIES:   1000,
    TABLE_ALERTS:      500,
    TABLE_ALLOCATIONS: 50,
    TABLE_ERRORS:      200,
}

_TABLE_FOR = {
    IncidentSummaryRecord: TABLE_SUMMARIES,
    AlertRecord:           TABLE_ALERTS,
    ShiftAllocationRecord: TABLE_ALLOCATIONS,
    ParseErrorRecord:      TABLE_ERRORS,
}


def table_for(record: ParsedRecord) -> str:
    try:
        return _TABLE_FOR[type(record)]
    except KeyError:
        raise TypeError(f"not a storable record: {type(record).__name__}") from None


def _to_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def record_to_dict(record: ParsedRecord) -> Dict[str, Any]:
    """JSON-ready dict of any record (datetimes → ISO-8601)."""
    return _jsonable(dataclasses.asdict(record))


def connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA journal_mode=WAL")   # Safe concurrent reads
    conn.row_factory = sqlite3.Row
    _create_schema(conn)
    return conn


def export(
    db_path:   Path,
    records:   Iterable[ParsedRecord],
    run_label: str                      = '',
    limits:    Optional[Dict[str, int]] = None,
) -> Dict[str, int]:
    """
    Write records to SQLite and apply retention.
    Returns the number of rows actually inserted per table
    (duplicates by message_id are not counted).
    """
    grouped: Dict[str, List[ParsedRecord]] = {t: [] for t in DATA_TABLES}
    for record in records:
        grouped[table_for(record)].append(record)

    limits   = {**DEFAULT_LIMITS, **(limits or {})}
    inserted = {t: 0 for t in DATA_TABLES}

    conn = connect(db_path)
    try:
        inserted[TABLE_SUMMARIES]   = _write(conn, _summary_rows(grouped[TABLE_SUMMARIES]), """
            INSERT OR IGNORE INTO incident_summaries
            (id, message_id, received_ms, source_format, total_events,
             affected_areas, payload)
            VALUES (?,?,?,?,?,?,?)
        """)
        inserted[TABLE_ALERTS]      = _write(conn, _alert_rows(grouped[TABLE_ALERTS]), """
            INSERT OR IGNORE INTO alerts
            (id, message_id, received_ms, area, region, status, payload)
            VALUES (?,?,?,?,?,?,?)
        """)
        inserted[TABLE_ALLOCATIONS] = _write(conn, _allocation_rows(grouped[TABLE_ALLOCATIONS]), """
            INSERT OR IGNORE INTO shift_allocations
            (id, message_id, received_ms, variant, target_date, payload)
            VALUES (?,?,?,?,?,?)
        """)
        inserted[TABLE_ERRORS]      = _write(conn, _error_rows(grouped[TABLE_ERRORS]), """
            INSERT OR IGNORE INTO parse_errors
            (id, message_id, received_ms, message_kind, error_message, payload)
            VALUES (?,?,?,?,?,?)
        """)
        pruned = _apply_retention(conn, limits)
        _write_meta(conn, inserted, run_label)
        conn.commit()
        logger.info(
            f"SQLite export complete → {db_path}\n"
            f"  Summaries: {inserted[TABLE_SUMMARIES]} | Alerts: {inserted[TABLE_ALERTS]} | "
            f"Allocations: {inserted[TABLE_ALLOCATIONS]} | Errors: {inserted[TABLE_ERRORS]} | "
            f"Pruned: {pruned}"
        )
    except Exception as e:
        conn.rollback()
        logger.error(f"SQLite export failed: {e}")
        raise
    finally:
        conn.close()

    return inserted


# ── SCHEMA ───────────────────────────────────────────────────

def _create_schema(conn: sqlite3.Connection) -> None:
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS ingest_meta (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            run_at           TEXT    NOT NULL,
            run_label        TEXT,
            schema_version   TEXT    NOT NULL,
            summary_count    INTEGER DEFAULT 0,
            alert_count      INTEGER DEFAULT 0,
            allocation_count INTEGER DEFAULT 0,
            error_count      INTEGER DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS incident_summaries (
            id              TEXT    PRIMARY KEY,
            message_id      TEXT    NOT NULL UNIQUE,
            received_ms     INTEGER NOT NULL,
            source_format   TEXT,
            total_events    INTEGER DEFAULT 0,
            affected_areas  TEXT,    -- JSON array
            payload         TEXT    NOT NULL
        );

        CREATE TABLE IF NOT EXISTS alerts (
            id              TEXT    PRIMARY KEY,
            message_id      TEXT    NOT NULL UNIQUE,
            received_ms     INTEGER NOT NULL,
            area            TEXT,
            region          TEXT,
            status          TEXT    NOT NULL,
            payload         TEXT    NOT NULL
        );

        CREATE TABLE IF NOT EXISTS shift_allocations (
            id              TEXT    PRIMARY KEY,
            message_id      TEXT    NOT NULL UNIQUE,
            received_ms     INTEGER NOT NULL,
            variant         TEXT    NOT NULL,
            target_date     TEXT,
            payload         TEXT    NOT NULL
        );

        CREATE TABLE IF NOT EXISTS parse_errors (
            id              TEXT    PRIMARY KEY,
            message_id      TEXT,
            received_ms     INTEGER NOT NULL,
            message_kind    TEXT,
            error_message   TEXT,
            payload         TEXT    NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_summary_ts    ON incident_summaries(received_ms);
        CREATE INDEX IF NOT EXISTS idx_alert_ts      ON alerts(received_ms);
        CREATE INDEX IF NOT EXISTS idx_alert_status  ON alerts(status);
        CREATE INDEX IF NOT EXISTS idx_alloc_ts      ON shift_allocations(received_ms);
        CREATE INDEX IF NOT EXISTS idx_alloc_variant ON shift_allocations(variant);
        CREATE INDEX IF NOT EXISTS idx_error_ts      ON parse_errors(received_ms);
    """)


# ── WRITERS ──────────────────────────────────────────────────

def _write(conn: sqlite3.Connection, rows: List[tuple], sql: str) -> int:
    if not rows:
        return 0
    before = conn.total_changes
    conn.executemany(sql, rows)
    written = conn.total_changes - before
    logger.debug(f"Wrote {written}/{len(rows)} rows")
    return written


def _payload(record: ParsedRecord) -> str:
    return json.dumps(record_to_dict(record), ensure_ascii=False)


def _summary_rows(records: List[IncidentSummaryRecord]) -> List[tuple]:
    return [
        (
            r.id, r.message_id, _to_ms(r.received_at), r.source_format,
            r.total_events, json.dumps(r.affected_areas), _payload(r),
        )
        for r in records
    ]


def _alert_rows(records: List[AlertRecord]) -> List[tuple]:
    return [
        (r.id, r.message_id, _to_ms(r.received_at), r.area, r.region, r.status, _payload(r))
        for r in records
    ]


def _allocation_rows(records: List[ShiftAllocationRecord]) -> List[tuple]:
    return [
        (r.id, r.message_id, _to_ms(r.received_at), r.variant, r.target_date, _payload(r))
        for r in records
    ]


def _error_rows(records: List[ParseErrorRecord]) -> List[tuple]:
    return [
        (r.id, r.message_id, _to_ms(r.processed_at), r.message_kind, r.error_message, _payload(r))
        for r in records
    ]


def _apply_retention(conn: sqlite3.Connection, limits: Dict[str, int]) -> int:
    """Keep the newest `limit` rows of each table. Returns rows deleted."""
    pruned = 0
    for table in DATA_TABLES:
        limit = limits.get(table)
        if limit is None or limit < 0:
            continue
        cur = conn.execute(f"""
            DELETE FROM {table} WHERE id NOT IN (
                SELECT id FROM {table} ORDER BY received_ms DESC, rowid DESC LIMIT ?
            )
        """, (limit,))
        if cur.rowcount > 0:
            logger.info(f"Retention: pruned {cur.rowcount} row(s) from {table}")
            pruned += cur.rowcount
    return pruned


def _write_meta(conn: sqlite3.Connection, inserted: Dict[str, int], run_label: str) -> None:
    conn.execute("""
        INSERT INTO ingest_meta
        (run_at, run_label, schema_version, summary_count, alert_count,
         allocation_count, error_count)
        VALUES (?,?,?,?,?,?,?)
    """, (
        datetime.now(timezone.utc).isoformat(),
        run_label or 'coprede-ingest',
        SCHEMA_VERSION,
        inserted[TABLE_SUMMARIES],
        inserted[TABLE_ALERTS],
        inserted[TABLE_ALLOCATIONS],
        inserted[TABLE_ERRORS],
    ))
