"""
coprede/api.py
─────────────────────────────────────────────────────────────────────────────
COP Rede panel - API layer

TWO USAGE MODES:
  1. Importable module:
         from coprede.api import CopRedeAPI
         api = CopRedeAPI(db_path=Path("coprede.db"))
         result = api.ingest([{"text": "...", "message_id": "42", "date": 1735000000}])
         areas  = api.get_area_summary()

  2. FastAPI HTTP server (dashboard fetch() / chat platform webhook):
         python -m coprede.api                    # default: port 8000
         python -m coprede.api --port 9000
         uvicorn coprede.api:app --port 8000

ENDPOINTS:
  POST   /webhook/message          - one message descriptor from the chat platform
  POST   /ingest                   - batch of descriptors, per-message outcome
  GET    /summaries                - incident summaries (filters: area, source_format)
  GET    /summaries/areas          - volume per panel area
  GET    /summaries/{id}           - single summary
  GET    /alerts                   - alerts (filters: status, area)
  GET    /alerts/status-summary    - alert counts per status
  GET    /alerts/{id}              - single alert
  PUT    /alerts/{id}/status       - move an alert to novo / em_analise / tratado
  DELETE /alerts/{id}              - delete one alert
  DELETE /alerts                   - delete every alert
  GET    /allocations              - shift allocations (filters: variant, target_date)
  GET    /allocations/current      - roster to display right now
  GET    /meta                     - last ingest run metadata
  GET    /health                   - liveness

SECURITY NOTES:
  - SQL queries use parameterized statements only
  - Batch ingestion never fails as a whole because of one bad message
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from coprede import __version__
from coprede.aggregation import select_current_allocation, summarize_alert_status, summarize_areas
from coprede.config import DEFAULT_CONFIG, build_parser_config, retention_limits
from coprede.dispatcher import MessageDispatcher
from coprede.exporters.sqlite_exporter import connect, export, table_for
from coprede.models.record import ALERT_STATUSES, ParseErrorRecord

logger = logging.getLogger(__name__)

OUTCOME_STORED    = "stored"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_IGNORED   = "ignored"
OUTCOME_ERROR     = "error"


# ═══════════════════════════════════════════════════════════════════════════
# IMPORTABLE CLASS
# ═══════════════════════════════════════════════════════════════════════════

class CopRedeAPI:
    """
    Pure-Python API around coprede.db. No HTTP layer required.

    Usage:
        api = CopRedeAPI(db_path=Path("coprede.db"))
        api.ingest(messages)
        alerts = api.get_alerts(status="novo")
        api.update_alert_status(alerts[0]["id"], "em_analise")
    """

    def __init__(self, db_path: Path = Path("coprede.db"), config: Optional[Dict[str, Any]] = None):
        self.db_path    = Path(db_path)
        self.config     = {**DEFAULT_CONFIG, **(config or {})}
        self.dispatcher = MessageDispatcher(build_parser_config(self.config))
        self.limits     = retention_limits(self.config)

    # ── INTERNAL ──────────────────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        return connect(self.db_path)

    def _db_exists(self) -> bool:
        return self.db_path.exists()

    @staticmethod
    def _payload(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
        return json.loads(row["payload"]) if row else None

    def _select(self, sql: str, params: Iterable = ()) -> List[Dict[str, Any]]:
        if not self._db_exists():
            return []
        conn = self._connect()
        try:
            rows = conn.execute(sql, list(params)).fetchall()
        finally:
            conn.close()
        return [self._payload(r) for r in rows]

    def _select_one(self, sql: str, params: Iterable = ()) -> Optional[Dict[str, Any]]:
        found = self._select(sql, params)
        return found[0] if found else None

    def _existing_message_ids(self, table: str, message_ids: List[str]) -> set:
        if not message_ids or not self._db_exists():
            return set()
        marks = ",".join("?" * len(message_ids))
        conn  = self._connect()
        try:
            rows = conn.execute(
                f"SELECT message_id FROM {table} WHERE message_id IN ({marks})", message_ids,
            ).fetchall()
        finally:
            conn.close()
        return {r["message_id"] for r in rows}

    # ── INGEST ────────────────────────────────────────────────────────────

    def ingest(self, messages: Iterable[Any], run_label: str = "") -> Dict[str, Any]:
        """
        Parse and store a batch of message descriptors.
        Returns counts plus one result per message:
        stored / duplicate / ignored / error.
        """
        results: List[Dict[str, Any]] = []
        pending: Dict[str, List[tuple]] = {}
        stored = []

        for message in messages:
            record = self.dispatcher.dispatch(message)
            if record is None:
                results.append({"outcome": OUTCOME_IGNORED, "kind": None, "record_id": None, "message_id": None})
                continue
            is_error = isinstance(record, ParseErrorRecord)
            results.append({
                "outcome":    OUTCOME_ERROR if is_error else OUTCOME_STORED,
                "kind":       table_for(record),
                "record_id":  record.id,
                "message_id": record.message_id,
            })
            if is_error:
                stored.append(record)
            else:
                pending.setdefault(table_for(record), []).append((len(results) - 1, record))

        # Duplicates by message id: already stored, or repeated inside the batch
        for table, candidates in pending.items():
            known = self._existing_message_ids(table, [r.message_id for _, r in candidates])
            for index, record in candidates:
                if record.message_id in known:
                    results[index]["outcome"] = OUTCOME_DUPLICATE
                    continue
                known.add(record.message_id)
                stored.append(record)

        if stored:
            export(self.db_path, stored, run_label=run_label or "api-ingest", limits=self.limits)

        counts = {o: 0 for o in (OUTCOME_STORED, OUTCOME_DUPLICATE, OUTCOME_IGNORED, OUTCOME_ERROR)}
        for result in results:
            counts[result["outcome"]] += 1

        summary = {"received": len(results), **counts, "results": results}
        logger.info(
            f"Ingest: {len(results)} message(s) | stored={counts[OUTCOME_STORED]} "
            f"duplicate={counts[OUTCOME_DUPLICATE]} ignored={counts[OUTCOME_IGNORED]} "
            f"error={counts[OUTCOME_ERROR]}"
        )
        return summary

    # ── QUERY: SUMMARIES ──────────────────────────────────────────────────

    def get_summaries(
        self,
        area:          Optional[str] = None,
        source_format: Optional[str] = None,
        limit:         int           = 100,
        offset:        int           = 0,
    ) -> List[Dict[str, Any]]:
        """Newest first. limit is capped at 1000."""
        limit  = min(int(limit), 1000)
        offset = max(int(offset), 0)

        sql = "SELECT payload FROM incident_summaries WHERE 1=1"
        params: list = []
        if area:
            sql += " AND affected_areas LIKE ?"
            params.append(f'%{json.dumps(area)}%')
        if source_format:
            sql += " AND source_format = ?"
            params.append(source_format)
        sql += " ORDER BY received_ms DESC, rowid DESC LIMIT ? OFFSET ?"
        params += [limit, offset]
        return self._select(sql, params)

    def get_summary(self, summary_id: str) -> Optional[Dict[str, Any]]:
        return self._select_one("SELECT payload FROM incident_summaries WHERE id = ?", (summary_id,))

    def get_area_summary(self) -> List[Dict[str, Any]]:
        """Volume per panel area over every retained summary."""
        summaries = self._select("SELECT payload FROM incident_summaries")
        return [asdict(a) for a in summarize_areas(summaries)]

    # ── QUERY / MUTATE: ALERTS ────────────────────────────────────────────

    def get_alerts(
        self,
        status: Optional[str] = None,
        area:   Optional[str] = None,
        limit:  int           = 100,
        offset: int           = 0,
    ) -> List[Dict[str, Any]]:
        """Newest first. limit is capped at 500."""
        if status and status not in ALERT_STATUSES:
            raise ValueError(f"Invalid alert status: {status!r} (expected one of {ALERT_STATUSES})")
        limit  = min(int(limit), 500)
        offset = max(int(offset), 0)

        sql = "SELECT payload FROM alerts WHERE 1=1"
        params: list = []
        if status:
            sql += " AND status = ?"
            params.append(status)
        if area:
            sql += " AND area = ?"
            params.append(area)
        sql += " ORDER BY received_ms DESC, rowid DESC LIMIT ? OFFSET ?"
        params += [limit, offset]
        return self._select(sql, params)

    def get_alert(self, alert_id: str) -> Optional[Dict[str, Any]]:
        return self._select_one("SELECT payload FROM alerts WHERE id = ?", (alert_id,))

    def update_alert_status(self, alert_id: str, status: str) -> bool:
        """
        Set an alert's status and append to its history.
        Raises ValueError for an unknown status; returns False if the alert is missing.
        """
        if status not in ALERT_STATUSES:
            raise ValueError(f"Invalid alert status: {status!r} (expected one of {ALERT_STATUSES})")
        if not self._db_exists():
            return False

        conn = self._connect()
        try:
            row = conn.execute("SELECT payload FROM alerts WHERE id = ?", (alert_id,)).fetchone()
            if row is None:
                return False
            alert = json.loads(row["payload"])
            alert["status"] = status
            alert.setdefault("status_history", []).append({
                "status": status,
                "at":     datetime.now(timezone.utc).isoformat(),
            })
            conn.execute(
                "UPDATE alerts SET status = ?, payload = ? WHERE id = ?",
                (status, json.dumps(alert, ensure_ascii=False), alert_id),
            )
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Alert status update failed ({alert_id}): {e}")
            raise
        finally:
            conn.close()

        logger.info(f"Alert {alert_id} → {status}")
        return True

    def delete_alert(self, alert_id: str) -> bool:
        return self._delete("DELETE FROM alerts WHERE id = ?", (alert_id,)) > 0

    def delete_all_alerts(self) -> int:
        deleted = self._delete("DELETE FROM alerts")
        logger.info(f"Deleted {deleted} alert(s)")
        return deleted

    def _delete(self, sql: str, params: Iterable = ()) -> int:
        if not self._db_exists():
            return 0
        conn = self._connect()
        try:
            cur = conn.execute(sql, list(params))
            conn.commit()
            return cur.rowcount
        finally:
            conn.close()

    def get_alert_status_summary(self) -> Dict[str, int]:
        return summarize_alert_status(self._select("SELECT payload FROM alerts"))

    # ── QUERY: ALLOCATIONS ────────────────────────────────────────────────

    def get_allocations(
        self,
        variant:     Optional[str] = None,
        target_date: Optional[str] = None,
        limit:       int           = 50,
    ) -> List[Dict[str, Any]]:
        sql = "SELECT payload FROM shift_allocations WHERE 1=1"
        params: list = []
        if variant:
            sql += " AND variant = ?"
            params.append(variant.upper())
        if target_date:
            sql += " AND target_date = ?"
            params.append(target_date)
        sql += " ORDER BY received_ms DESC, rowid DESC LIMIT ?"
        params.append(min(int(limit), 500))
        return self._select(sql, params)

    def get_current_allocation(self, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        return select_current_allocation(
            self._select("SELECT payload FROM shift_allocations"),
            now              = now,
            utc_offset_hours = int(self.config["utc_offset_hours"]),
            night_end_hour   = int(self.config["night_shift_end_hour"]),
        )

    # ── QUERY: META ───────────────────────────────────────────────────────

    def get_meta(self) -> Optional[Dict[str, Any]]:
        """Return the most recent ingest run metadata row."""
        if not self._db_exists():
            return None
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM ingest_meta ORDER BY id DESC LIMIT 1").fetchone()
        finally:
            conn.close()
        return dict(row) if row else None


# ═══════════════════════════════════════════════════════════════════════════
# FASTAPI HTTP APP
# ═══════════════════════════════════════════════════════════════════════════

class MessageIn(BaseModel):
    """Message descriptor as posted by the chat platform bridge."""
    text:       Optional[str]             = None
    message_id: Optional[Union[str, int]] = None
    date:       Optional[float]           = None
    sender:     str                       = ""


class IngestRequest(BaseModel):
    messages:  List[MessageIn]
    run_label: str = ""


class StatusUpdate(BaseModel):
    status: str


def _build_app(db_path: Path = Path("coprede.db"), config: Optional[Dict[str, Any]] = None) -> FastAPI:
    """Build the FastAPI application around one CopRedeAPI instance."""
    _api = CopRedeAPI(db_path=db_path, config=config)

    _app = FastAPI(
        title       = "COP Rede Panel API",
        description = "Network-incident message ingestion and dashboard queries",
        version     = __version__,
        docs_url    = "/docs",
        redoc_url   = None,
    )

    _app.add_middleware(
        CORSMiddleware,
        allow_origins     = ["http://localhost", "http://127.0.0.1", "null"],
        allow_methods     = ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers     = ["Content-Type"],
        allow_credentials = False,
    )

    # ── INGEST ──────────────────────────────────────────────────────────

    @_app.post("/webhook/message", summary="Ingest one message")
    def webhook_message(msg: MessageIn):
        """400 when the message is not one we parse; duplicates are reported, not rejected."""
        try:
            result = _api.ingest([msg.model_dump()], run_label="webhook")
        except Exception as exc:
            logger.error(f"Webhook error: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Ingest failed: {exc}")
        outcome = result["results"][0]
        if outcome["outcome"] == OUTCOME_IGNORED:
            raise HTTPException(status_code=400, detail="Message not recognized")
        return outcome

    @_app.post("/ingest", summary="Ingest a batch of messages")
    def ingest(req: IngestRequest):
        try:
            return _api.ingest([m.model_dump() for m in req.messages], run_label=req.run_label)
        except Exception as exc:
            logger.error(f"Ingest endpoint error: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Ingest failed: {exc}")

    # ── SUMMARIES ───────────────────────────────────────────────────────

    @_app.get("/summaries", summary="List incident summaries")
    def get_summaries(
        area:          Optional[str] = Query(None, description="Panel area, e.g. RIO"),
        source_format: Optional[str] = Query(None),
        limit:         int           = Query(100, ge=1, le=1000),
        offset:        int           = Query(0,   ge=0),
    ):
        try:
            data = _api.get_summaries(area=area, source_format=source_format, limit=limit, offset=offset)
            return {"count": len(data), "summaries": data}
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))

    @_app.get("/summaries/areas", summary="Volume per panel area")
    def get_area_summary():
        try:
            return {"areas": _api.get_area_summary()}
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))

    @_app.get("/summaries/{summary_id}", summary="Get one summary")
    def get_summary(summary_id: str):
        try:
            data = _api.get_summary(summary_id)
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))
        if data is None:
            raise HTTPException(status_code=404, detail=f"Summary not found: {summary_id}")
        return data

    # ── ALERTS ──────────────────────────────────────────────────────────

    @_app.get("/alerts", summary="List alerts")
    def get_alerts(
        status: Optional[str] = Query(None, description="novo, em_analise, tratado"),
        area:   Optional[str] = Query(None),
        limit:  int           = Query(100, ge=1, le=500),
        offset: int           = Query(0,   ge=0),
    ):
        try:
            data = _api.get_alerts(status=status, area=area, limit=limit, offset=offset)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))
        return {"count": len(data), "alerts": data}

    @_app.get("/alerts/status-summary", summary="Alert counts per status")
    def get_alert_status_summary():
        try:
            return _api.get_alert_status_summary()
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))

    @_app.get("/alerts/{alert_id}", summary="Get one alert")
    def get_alert(alert_id: str):
        try:
            data = _api.get_alert(alert_id)
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))
        if data is None:
            raise HTTPException(status_code=404, detail=f"Alert not found: {alert_id}")
        return data

    @_app.put("/alerts/{alert_id}/status", summary="Change alert status")
    def update_alert_status(alert_id: str, update: StatusUpdate):
        try:
            updated = _api.update_alert_status(alert_id, update.status)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))
        if not updated:
            raise HTTPException(status_code=404, detail=f"Alert not found: {alert_id}")
        return _api.get_alert(alert_id)

    @_app.delete("/alerts/{alert_id}", summary="Delete one alert")
    def delete_alert(alert_id: str):
        try:
            deleted = _api.delete_alert(alert_id)
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))
        if not deleted:
            raise HTTPException(status_code=404, detail=f"Alert not found: {alert_id}")
        return {"status": "ok", "deleted": alert_id}

    @_app.delete("/alerts", summary="Delete all alerts")
    def delete_all_alerts():
        try:
            return {"status": "ok", "deleted": _api.delete_all_alerts()}
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))

    # ── ALLOCATIONS ─────────────────────────────────────────────────────

    @_app.get("/allocations", summary="List shift allocations")
    def get_allocations(
        variant:     Optional[str] = Query(None, description="DAY or NIGHT"),
        target_date: Optional[str] = Query(None, description="dd/mm"),
        limit:       int           = Query(50, ge=1, le=500),
    ):
        try:
            data = _api.get_allocations(variant=variant, target_date=target_date, limit=limit)
            return {"count": len(data), "allocations": data}
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))

    @_app.get("/allocations/current", summary="Roster to display now")
    def get_current_allocation():
        try:
            data = _api.get_current_allocation()
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))
        if data is None:
            raise HTTPException(status_code=404, detail="No shift allocation stored yet.")
        return data

    # ── META ────────────────────────────────────────────────────────────

    @_app.get("/meta", summary="Last ingest run metadata")
    def get_meta():
        try:
            data = _api.get_meta()
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))
        if data is None:
            raise HTTPException(status_code=404, detail="No ingest metadata found - ingest messages first.")
        return data

    @_app.get("/health", summary="Health check")
    def health():
        return {
            "status":    "ok",
            "db_exists": _api.db_path.exists(),
            "db_path":   str(_api.db_path),
            "version":   __version__,
        }

    return _app


# Module-level app instance - used by uvicorn coprede.api:app
app = _build_app()


# ═══════════════════════════════════════════════════════════════════════════
# CLI ENTRYPOINT - python -m coprede.api
# ═══════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import argparse

    import uvicorn

    from coprede.config import load_config

    cfg = load_config()

    parser = argparse.ArgumentParser(
        prog        = "coprede.api",
        description = "COP Rede panel API server",
    )
    parser.add_argument("--port", type=int, default=cfg["port"],
                        help=f"Port to bind (default: {cfg['port']})")
    parser.add_argument("--db",   type=str, default=cfg["db_path"],
                        help=f"Path to the SQLite database (default: {cfg['db_path']})")
    parser.add_argument("--host", type=str, default=cfg["host"],
                        help="Host to bind")
    args = parser.parse_args()

    server_app = _build_app(db_path=Path(args.db), config=cfg)

    print(f"""
+--------------------------------------------------+
|   COP Rede Panel API v{__version__}
+--------------------------------------------------+
|  Local:    http://{args.host}:{args.port}
|  DB:       {args.db}
|  Docs:     http://{args.host}:{args.port}/docs
|  Health:   http://{args.host}:{args.port}/health
+--------------------------------------------------+
""")

    uvicorn.run(
        server_app,
        host      = args.host,
        port      = args.port,
        log_level = "info",
    )
