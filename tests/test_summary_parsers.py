"""
tests/test_summary_parsers.py
Format sniffing and the five "COP REDE INFORMA" summary layouts.
"""

import logging
from datetime import datetime, timezone

import pytest

from coprede.detectors.region_lexicon import AREA_CO_NO_NE, AREA_MG_ES_BA, AREA_RIO
from coprede.parsers.summary_parser import (
    FORMAT_EMOJI_INCIDENT, FORMAT_EMOJI_SUMMARY, FORMAT_LEGACY, FORMAT_SIR,
    FORMAT_STRUCTURED, detect_summary_format, parse_incident_summary,
)

RECEIVED = datetime(2025, 1, 26, 11, 0, tzinfo=timezone.utc)


# ── FIXTURES ─────────────────────────────────────────────────

LEGACY_INLINE = (
    'COP REDE INFORMA\n'
    'TIPO: Incidente\n'
    'GRUPO: Bahia / Sergipe\n'
    'DIA: 15/12/2024\n'
    'RESPONSAVEL: João Silva\n'
    'VOLUME: 5'
)

LEGACY_SECTIONS = (
    'COP REDE INFORMA\n'
    'TIPO:\n'
    '- Falha de energia: 4\n'
    'GRUPO:\n'
    '- Rio de Janeiro: 3\n'
    '- Norte: 1\n'
)

STRUCTURED = (
    '📢 COP REDE - INFORMA\n'
    '🏷️ TIPO: Teste\n'
    '🏢 Totais por Cluster:\n'
    '- Norte: 5'
)

STRUCTURED_FULL = (
    '📢 COP REDE - INFORMA\n'
    '🏷️ TIPO: Massiva\n'
    '🕒 Horário de envio: 26/01/2025 08:00\n'
    '📊 Volume Total: 20\n'
    '🏢 Totais por Cluster:\n'
    '- Rio de Janeiro: 6\n'
    '- Minas Gerais: 4\n'
    '📌 Totais por Status:\n'
    '- Aberto: 7\n'
    '- Fechado: 3\n'
)

STRUCTURED_NO_SECTION = (
    '📢 COP REDE - INFORMA\n'
    '🏷️ TIPO: Falha\n'
    'Minas Gerais: 12\n'
    'Rio de Janeiro: 3'
)

EMOJI_SUMMARY = (
    '📊 *COP REDE INFORMA* 📊\n'
    '🗓️ Gerado em: 26/01/2025 às 08:00\n'
    '🏢 MERCADO:\n'
    '- Varejo: 3\n'
    '📂 TIPO:\n'
    '- Falha de energia: 3\n'
    '📍 GRUPO:\n'
    '- Rio de Janeiro: 2\n'
    '- Bahia: 1\n'
)

EMOJI_INCIDENT = (
    'COP REDE INFORMA\n'
    '🔴 Rompimento de fibra\n'
    '📝 REC/RAL: 123456\n'
    '⚠ Grupo: Minas Gerais\n'
    '🌎 Cidade: Belo Horizonte\n'
    '💥 Impacto: REC 10 / RAL 5\n'
    '📜 Status: Em andamento'
)

SIR = (
    '*COP REDE INF:* MONITORAMENTO SIR\n'
    'ATUALIZADO: 26/01/2025 08:30\n'
    '🔴 RAL: 60\n'
    'POR CLUSTERS:\n'
    '* RIO DE JANEIRO: 40\n'
    '* MINAS GERAISTE: 20\n'
    '🟢 REC: 15\n'
    'POR CLUSTERS:\n'
    '* RIO DE JANEIRO: 10\n'
    '* UNKNOWN: 5\n'
    '🏁 fim do relatório\n'
    '* NORTE: 99'
)


def _parse(text, message_id='m1'):
    return parse_incident_summary(text, RECEIVED, message_id)


# ── FORMAT SNIFFING ──────────────────────────────────────────

class TestDetectFormat:

    @pytest.mark.parametrize('text, fmt', [
        (SIR,             FORMAT_SIR),
        (STRUCTURED,      FORMAT_STRUCTURED),
        (EMOJI_SUMMARY,   FORMAT_EMOJI_SUMMARY),
        (EMOJI_INCIDENT,  FORMAT_EMOJI_INCIDENT),
        (LEGACY_INLINE,   FORMAT_LEGACY),
        (LEGACY_SECTIONS, FORMAT_LEGACY),
    ])
    def test_detects(self, text, fmt):
        assert detect_summary_format(text) == fmt


# ── LEGACY ───────────────────────────────────────────────────

class TestLegacy:

    def test_inline_fields(self):
        record = _parse(LEGACY_INLINE)
        assert record.source_format == FORMAT_LEGACY
        assert record.incident_type == 'Incidente'
        assert record.regions == {'Bahia / Sergipe': 5}
        assert record.affected_areas == [AREA_MG_ES_BA]
        assert record.details.event_date == '15/12/2024'
        assert record.details.volume == 5
        assert record.details.responsible == 'João Silva'
        assert record.total_events == 5

    def test_sections(self):
        record = _parse(LEGACY_SECTIONS)
        assert record.regions == {'Rio de Janeiro': 3, 'Norte': 1}
        assert record.breakdowns['type'] == {'Falha de energia': 4}
        assert record.total_events == 4
        assert record.affected_areas == [AREA_RIO, AREA_CO_NO_NE]

    def test_nothing_extracted_returns_none(self, caplog):
        caplog.set_level(logging.INFO, logger='coprede.parsers.summary_parser')
        assert _parse('COP REDE INFORMA\nsem grupo') is None
        assert any(getattr(r, 'event', None) == 'nothing_extracted' for r in caplog.records)


# ── STRUCTURED ───────────────────────────────────────────────

class TestStructured:

    def test_minimal(self):
        record = _parse(STRUCTURED)
        assert record.source_format == FORMAT_STRUCTURED
        assert record.regions == {'Norte': 5}
        assert record.total_events == 5
        assert record.affected_areas
        assert record.incident_type == 'Teste'

    def test_explicit_total_and_status(self):
        record = _parse(STRUCTURED_FULL)
        assert record.total_events == 20
        assert record.regions == {'Rio de Janeiro': 6, 'Minas Gerais': 4}
        assert record.volume_by_area == {AREA_RIO: 6, AREA_MG_ES_BA: 4}
        assert record.breakdowns['status'] == {'Aberto': 7, 'Fechado': 3}
        assert record.generated_at == '26/01/2025 08:00'

    def test_known_region_fallback(self):
        record = _parse(STRUCTURED_NO_SECTION)
        assert record.regions == {'Minas Gerais': 12, 'Rio de Janeiro': 3}
        assert record.total_events == 15
        assert record.affected_areas == [AREA_MG_ES_BA, AREA_RIO]

    def test_unmapped_region_kept_but_not_aggregated(self):
        record = _parse('📢 COP REDE - INFORMA\n🏢 Totais por Cluster:\n- Xyz: 2\n- Norte: 1')
        assert record.regions == {'Xyz': 2, 'Norte': 1}
        assert record.unmapped_regions == ['Xyz']
        assert record.volume_by_area == {AREA_CO_NO_NE: 1}


# ── EMOJI LAYOUTS ────────────────────────────────────────────

class TestEmojiSummary:

    def test_sections(self):
        record = _parse(EMOJI_SUMMARY)
        assert record.source_format == FORMAT_EMOJI_SUMMARY
        assert record.generated_at == '26/01/2025 08:00'
        assert record.regions == {'Rio de Janeiro': 2, 'Bahia': 1}
        assert record.total_events == 3
        assert record.breakdowns['market'] == {'Varejo': 3}
        assert record.affected_areas == [AREA_RIO, AREA_MG_ES_BA]


class TestEmojiIncident:

    def test_incident_card(self):
        record = _parse(EMOJI_INCIDENT)
        assert record.source_format == FORMAT_EMOJI_INCIDENT
        assert record.regions == {'Minas Gerais': 1}
        assert record.details.title == 'Rompimento de fibra'
        assert record.details.reference == '123456'
        assert record.details.city == 'Belo Horizonte'
        assert (record.details.impact_rec, record.details.impact_ral) == (10, 5)
        assert record.total_events == 15
        assert record.details.status == 'Em andamento'


# ── SIR MONITORING ───────────────────────────────────────────

class TestSirMonitoring:

    def test_ral_plus_rec_per_cluster(self):
        record = _parse(SIR)
        assert record.source_format == FORMAT_SIR
        assert record.regions == {'RIO DE JANEIRO': 50, 'MINAS GERAIS': 20}
        assert record.total_events == 75
        assert record.generated_at == '26/01/2025 08:30:00'
        assert record.affected_areas == [AREA_RIO, AREA_MG_ES_BA]
        assert (record.details.impact_ral, record.details.impact_rec) == (60, 15)


# ── SHARED INVARIANTS ────────────────────────────────────────

class TestRecordInvariants:

    @pytest.mark.parametrize('text', [
        LEGACY_INLINE, LEGACY_SECTIONS, STRUCTURED, STRUCTURED_FULL,
        STRUCTURED_NO_SECTION, EMOJI_SUMMARY, EMOJI_INCIDENT, SIR,
    ])
    def test_positive_counts_and_identity(self, text):
        record = _parse(text, message_id='99')
        assert all(v > 0 for v in record.regions.values())
        assert record.id == 'cop_99_1737889200000'
        assert record.message_id == '99'
        assert record.received_at == RECEIVED
