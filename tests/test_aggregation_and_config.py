"""
tests/test_aggregation_and_config.py
Dashboard aggregations and the JSON config layer.
"""

import json
import logging
from datetime import datetime, timezone

from coprede.aggregation import (
    UNMAPPED_AREA, select_current_allocation, summarize_alert_status, summarize_areas,
)
from coprede.config import (
    DEFAULT_CONFIG, build_parser_config, load_config, retention_limits, save_config,
)
from coprede.detectors.region_lexicon import AREA_CO_NO_NE, AREA_MG_ES_BA, AREA_RIO


# ── AREA VOLUME ──────────────────────────────────────────────

class TestSummarizeAreas:

    def test_every_area_listed_with_unmapped(self):
        summaries = [
            {'volume_by_area': {AREA_RIO: 3}, 'regions': {'Rio': 3, 'Xyz': 2}, 'unmapped_regions': ['Xyz']},
            {'volume_by_area': {AREA_RIO: 1, AREA_CO_NO_NE: 4}, 'regions': {}, 'unmapped_regions': []},
        ]
        by_area = {a.area: a for a in summarize_areas(summaries)}

        assert (by_area[AREA_RIO].messages, by_area[AREA_RIO].volume) == (2, 4)
        assert (by_area[AREA_CO_NO_NE].messages, by_area[AREA_CO_NO_NE].volume) == (1, 4)
        assert (by_area[AREA_MG_ES_BA].messages, by_area[AREA_MG_ES_BA].volume) == (0, 0)
        assert (by_area[UNMAPPED_AREA].messages, by_area[UNMAPPED_AREA].volume) == (1, 2)

    def test_no_summaries(self):
        assert all(a.volume == 0 for a in summarize_areas([]))


class TestSummarizeAlertStatus:

    def test_counts(self):
        alerts = [{'status': 'novo'}, {'status': 'novo'}, {'status': 'tratado'}]
        assert summarize_alert_status(alerts) == {'novo': 2, 'em_analise': 0, 'tratado': 1, 'total': 3}


# ── CURRENT ALLOCATION ───────────────────────────────────────

DAY   = {'id': 'day',   'variant': 'DAY',   'received_at': '2025-01-27T10:00:00+00:00'}
NIGHT = {'id': 'night', 'variant': 'NIGHT', 'received_at': '2025-01-26T23:00:00+00:00'}


class TestSelectCurrentAllocation:

    def test_before_five_local_shows_night(self):
        # 06:00 UTC = 03:00 in Brasília
        now = datetime(2025, 1, 27, 6, 0, tzinfo=timezone.utc)
        assert select_current_allocation([DAY, NIGHT], now=now)['id'] == 'night'

    def test_daytime_shows_day(self):
        now = datetime(2025, 1, 27, 15, 0, tzinfo=timezone.utc)
        assert select_current_allocation([DAY, NIGHT], now=now)['id'] == 'day'

    def test_newer_night_wins_during_day(self):
        late_night = {'id': 'late', 'variant': 'NIGHT', 'received_at': '2025-01-27T20:00:00+00:00'}
        now = datetime(2025, 1, 27, 21, 0, tzinfo=timezone.utc)
        assert select_current_allocation([DAY, NIGHT, late_night], now=now)['id'] == 'late'

    def test_falls_back_to_other_variant(self):
        now = datetime(2025, 1, 27, 6, 0, tzinfo=timezone.utc)
        assert select_current_allocation([DAY], now=now)['id'] == 'day'

    def test_empty(self):
        assert select_current_allocation([]) is None


# ── CONFIG ───────────────────────────────────────────────────

class TestConfig:

    def test_defaults_when_missing(self, tmp_path):
        assert load_config(project_root=tmp_path) == DEFAULT_CONFIG

    def test_save_and_load_merge_over_defaults(self, tmp_path):
        save_config({'port': 9000}, project_root=tmp_path)
        config = load_config(project_root=tmp_path)
        assert config['port'] == 9000
        assert config['max_alerts'] == DEFAULT_CONFIG['max_alerts']

    def test_invalid_json_falls_back_with_warning(self, tmp_path, caplog):
        path = tmp_path / 'custom.json'
        path.write_text('{ not json', encoding='utf-8')
        with caplog.at_level(logging.WARNING, logger='coprede.config'):
            assert load_config(path=path) == DEFAULT_CONFIG
        assert 'Config load failed' in caplog.text

    def test_non_object_json_falls_back(self, tmp_path):
        path = tmp_path / 'custom.json'
        path.write_text(json.dumps([1, 2]), encoding='utf-8')
        assert load_config(path=path) == DEFAULT_CONFIG

    def test_build_parser_config(self):
        parser_config = build_parser_config({
            'area_lexicon':        {'Fortaleza': AREA_CO_NO_NE},
            'extra_known_regions': ['Serrana'],
            'shift_region_names':  ['serrana'],
            'max_text_length':     500,
            'word_boundary_fallback': True,
        })
        assert parser_config.lexicon.resolve('fortaleza') == AREA_CO_NO_NE
        assert parser_config.lexicon.word_boundary_fallback is True
        assert 'Serrana' in parser_config.known_regions
        assert 'SERRANA' in parser_config.shift_region_names
        assert parser_config.max_text_length == 500

    def test_retention_limits(self):
        limits = retention_limits({'max_alerts': 10})
        assert limits['alerts'] == 10
        assert limits['incident_summaries'] == DEFAULT_CONFIG['max_summaries']
