"""
tests/test_fields.py
Unit tests for text normalization and the small field extractors.
"""

import logging
from datetime import datetime, timezone

import pytest

from coprede.parsers.fields import (
    extract_date, extract_details_from_text, extract_emoji_line, extract_field,
    extract_field_with_emoji, extract_multiline_field, extract_volume,
)
from coprede.parsers.text import first_line, normalize, record_id, strip_bold, strip_markup


# ── NORMALIZE ────────────────────────────────────────────────

class TestNormalize:

    def test_lowercases_and_strips_accents(self):
        assert normalize('  ALOCAÇÃO Técnica  ') == 'alocacao tecnica'

    def test_empty_and_none(self):
        assert normalize('') == ''
        assert normalize(None) == ''

    @pytest.mark.parametrize('text', [
        'Espírito Santo', '  MINAS GERAIS ', 'Ação', 'São João', '', 'ÑÜÖ', '📢 COP REDE',
    ])
    def test_idempotent(self, text):
        once = normalize(text)
        assert normalize(once) == once


class TestMarkup:

    def test_strip_markup_removes_emphasis(self):
        assert strip_markup('*NORTE*') == 'NORTE'
        assert strip_markup('_~Ana~_ ') == 'Ana'

    def test_strip_bold_keeps_bullets(self):
        assert strip_bold('*GRUPO:*\n* item') == 'GRUPO:\n* item'

    def test_first_line(self):
        assert first_line('  linha 1 \nlinha 2') == 'linha 1'
        assert first_line('') == ''

    def test_record_id(self):
        ts = datetime.fromtimestamp(1735000000, tz=timezone.utc)
        assert record_id('cop', '42', ts) == 'cop_42_1735000000000'


# ── PLAIN FIELDS ─────────────────────────────────────────────

class TestExtractField:

    def test_first_match_trimmed(self):
        text = 'COP REDE INFORMA\nTIPO:  Incidente \nGRUPO: Bahia'
        assert extract_field(text, 'TIPO') == 'Incidente'
        assert extract_field(text, 'grupo') == 'Bahia'

    def test_missing(self):
        assert extract_field('TIPO: x', 'VOLUME') is None
        assert extract_field('', 'TIPO') is None

    def test_multiline_until_next_label(self):
        text = 'DETALHES: queda de energia\nafetando dois nós\nVOLUME: 3'
        assert extract_multiline_field(text, 'DETALHES') == 'queda de energia\nafetando dois nós'

    def test_multiline_value_starts_on_next_line(self):
        text = 'DETALHES:\nlinha um\nlinha dois'
        assert extract_multiline_field(text, 'DETALHES') == 'linha um\nlinha dois'

    def test_multiline_missing(self):
        assert extract_multiline_field('TIPO: x', 'DETALHES') is None


# ── EMOJI FIELDS ─────────────────────────────────────────────

class TestExtractFieldWithEmoji:

    def test_emoji_bold(self):
        assert extract_field_with_emoji('📌 **Ticket:** 12345', '📌', 'Ticket') == '12345'

    def test_emoji_plain(self):
        assert extract_field_with_emoji('📡 Cluster: Norte', ('📍', '📡'), 'Cluster') == 'Norte'

    def test_variation_selector_optional(self):
        # text carries U+FE0F, candidate does not
        assert extract_field_with_emoji('⚠️ Sintoma: Sem sinal', '⚠', 'Sintoma') == 'Sem sinal'
        assert extract_field_with_emoji('⚠ Sintoma: Sem sinal', '⚠️', 'Sintoma') == 'Sem sinal'

    def test_bold_without_emoji(self):
        assert extract_field_with_emoji('**Mercado:** Varejo', '🌍', 'Mercado') == 'Varejo'

    def test_plain_line(self):
        assert extract_field_with_emoji('x\n  tipo: Falha', '🔍', 'Tipo') == 'Falha'

    def test_missing(self):
        assert extract_field_with_emoji('nada aqui', '🔍', 'Tipo') is None

    def test_strategy_is_traced(self, caplog):
        caplog.set_level(logging.DEBUG, logger='coprede.parsers.fields')
        extract_field_with_emoji('**Mercado:** Varejo', '🌍', 'Mercado')
        events = [r for r in caplog.records if getattr(r, 'event', None) == 'field_match']
        assert [r.strategy for r in events] == ['bold']


class TestExtractEmojiLine:

    def test_label_after_emoji(self):
        assert extract_emoji_line('⚠ Grupo: CLUSTER 12\nx', '⚠', ('Grupo',)) == 'CLUSTER 12'

    def test_falls_back_to_rest_of_line(self):
        assert extract_emoji_line('🔴 Rompimento de fibra\n📝 x', '🔴') == 'Rompimento de fibra'

    def test_missing(self):
        assert extract_emoji_line('sem emoji', '🔴') is None


# ── DATE / VOLUME ────────────────────────────────────────────

class TestExtractDate:

    def test_full_date(self):
        assert extract_date('DIA: 15/12/2024') == '15/12/2024'

    def test_pads_day_and_month(self):
        assert extract_date('5/3/2024') == '05/03/2024'

    def test_short_date_gets_current_year(self):
        assert extract_date('26/01', today=datetime(2025, 6, 1)) == '26/01/2025'

    def test_no_date(self):
        assert extract_date('sem data') is None
        assert extract_date('') is None


class TestExtractVolume:

    def test_integer_with_unit(self):
        assert extract_volume('25 unidades') == 25.0

    def test_decimal_comma(self):
        assert extract_volume('1,5') == 1.5

    def test_not_a_number(self):
        assert extract_volume('abc') is None
        assert extract_volume(None) is None


class TestDetailsFromText:

    def test_skips_known_fields(self):
        text = 'COP REDE INFORMA\nTIPO: x\nVOLUME: 2\nEquipe acionada'
        assert extract_details_from_text(text) == 'Equipe acionada'

    def test_default_when_empty(self):
        assert extract_details_from_text('COP REDE INFORMA\nTIPO: x') == 'Sem detalhes adicionais'
