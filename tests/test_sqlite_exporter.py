"""
tests/test_sqlite_exporter.py
SQLite persistence: dedup by message id, retention, ingest metadata.
All tests write to a temporary database.
"""

import json
import sqlite3
from datetime import datetime, timezone

import pytest

from coprede.dispatcher import process_message
from coprede.exporters.sqlite_exporter import (
    TABLE_ALERTS, TABLE_ERRORS, TABLE_SUMMARIES, export, record_to_dict, table_for,
)

BASE = 1735000000


def _alert(message_id, offset=0):
    return process_message({
        'text':       '🚨 Novo Evento Detectado!\n📡 Cluster: Norte',
        'message_id': message_id,
        'date':       BASE + offset,
    })


def _summary(message_id):
    return process_message({
        'text':       '📢 COP REDE - INFORMA\n🏷️ TIPO: Teste\n🏢 Totais por Cluster:\n- Norte: 5',
        'message_id': message_id,
        'date':       BASE,
    })


def _rows(db, sql):
    conn = sqlite3.connect(str(db))
    try:
        return conn.execute(sql).fetchall()
    finally:
        conn.close()


class TestExport:

    def test_inserts_per_table(self, tmp_path):
        db = tmp_path / 'coprede.db'
        inserted = export(db, [_summary('s1'), _alert('a1'), process_message(42)])
        assert inserted[TABLE_SUMMARIES] == 1
        assert inserted[TABLE_ALERTS] == 1
        assert inserted[TABLE_ERRORS] == 1

    def test_duplicates_by_message_id_ignored(self, tmp_path):
        db = tmp_path / 'coprede.db'
        export(db, [_alert('a1')])
        again = export(db, [_alert('a1', offset=60)])
        assert again[TABLE_ALERTS] == 0
        assert _rows(db, 'SELECT COUNT(*) FROM alerts') == [(1,)]

    def test_payload_is_full_record(self, tmp_path):
        db = tmp_path / 'coprede.db'
        export(db, [_summary('s1')])
        (payload, areas), = _rows(db, 'SELECT payload, affected_areas FROM incident_summaries')
        data = json.loads(payload)
        assert data['regions'] == {'Norte': 5}
        assert data['total_events'] == 5
        assert json.loads(areas) == data['affected_areas']

    def test_retention_keeps_newest(self, tmp_path):
        db = tmp_path / 'coprede.db'
        export(db, [_alert(f'a{i}', offset=i * 60) for i in range(5)], limits={TABLE_ALERTS: 2})
        ids = [r[0] for r in _rows(db, 'SELECT message_id FROM alerts ORDER BY received_ms')]
        assert ids == ['a3', 'a4']

    def test_meta_row_per_run(self, tmp_path):
        db = tmp_path / 'coprede.db'
        export(db, [_alert('a1')], run_label='lote-1')
        export(db, [], run_label='lote-2')
        rows = _rows(db, 'SELECT run_label, alert_count FROM ingest_meta ORDER BY id')
        assert rows == [('lote-1', 1), ('lote-2', 0)]


class TestSerialization:

    def test_record_to_dict_uses_iso_datetimes(self):
        data = record_to_dict(_alert('a1'))
        assert data['received_at'] == datetime.fromtimestamp(BASE, tz=timezone.utc).isoformat()
        assert data['status_history'][0]['status'] == 'novo'
        assert isinstance(data['status_history'][0]['at'], str)
        json.dumps(data)

    def test_table_for_rejects_other_objects(self):
        assert table_for(_alert('a1')) == TABLE_ALERTS
        with pytest.raises(TypeError):
            table_for(object())
