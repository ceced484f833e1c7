"""
tests/test_cli.py
End-to-end CLI runs over small JSON / JSONL exports.
"""

import json
import sqlite3

import pytest

from coprede.cli import load_messages, main

MESSAGES = [
    {'text': '🚨 Novo Evento Detectado!\n📡 Cluster: Norte', 'message_id': 'a1', 'date': 1735000000},
    {'text': 'COP REDE INFORMA\nTIPO: Incidente\nGRUPO: Rio\nVOLUME: 2', 'message_id': 's1', 'date': 1735000060},
    {'text': 'bom dia', 'message_id': 'x1', 'date': 1735000120},
]


class TestLoadMessages:

    def test_json_list_and_envelope(self, tmp_path):
        plain = tmp_path / 'a.json'
        plain.write_text(json.dumps(MESSAGES), encoding='utf-8')
        wrapped = tmp_path / 'b.json'
        wrapped.write_text(json.dumps({'messages': MESSAGES}), encoding='utf-8')
        assert load_messages(plain) == load_messages(wrapped) == MESSAGES

    def test_jsonl(self, tmp_path):
        path = tmp_path / 'a.jsonl'
        path.write_text('\n'.join(json.dumps(m) for m in MESSAGES) + '\n\n', encoding='utf-8')
        assert load_messages(path) == MESSAGES

    def test_rejects_scalar(self, tmp_path):
        path = tmp_path / 'a.json'
        path.write_text('7', encoding='utf-8')
        with pytest.raises(ValueError):
            load_messages(path)


class TestMain:

    def test_ingests_into_database(self, tmp_path):
        src = tmp_path / 'msgs.json'
        src.write_text(json.dumps(MESSAGES), encoding='utf-8')
        db = tmp_path / 'out.db'

        main(['--input', str(src), '--output', str(db)])

        conn = sqlite3.connect(str(db))
        try:
            assert conn.execute('SELECT message_id FROM alerts').fetchall() == [('a1',)]
            assert conn.execute('SELECT message_id FROM incident_summaries').fetchall() == [('s1',)]
        finally:
            conn.close()

    def test_dry_run_writes_nothing(self, tmp_path, capsys):
        src = tmp_path / 'msgs.json'
        src.write_text(json.dumps(MESSAGES), encoding='utf-8')
        db = tmp_path / 'out.db'

        main(['--input', str(src), '--output', str(db), '--dry-run'])

        printed = json.loads(capsys.readouterr().out)
        assert [r['message_id'] for r in printed] == ['a1', 's1']
        assert not db.exists()

    def test_missing_input_exits(self, tmp_path):
        with pytest.raises(SystemExit):
            main(['--input', str(tmp_path / 'nope.json')])
