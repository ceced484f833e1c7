"""
tests/test_classifier.py
Message family classification.
"""

import pytest

from coprede.config import ParserConfig
from coprede.detectors.message_classifier import (
    INCIDENT_SUMMARY, MESSAGE_KINDS, SHIFT_DAY, SHIFT_NIGHT, SINGLE_ALERT, UNKNOWN,
    MessageClassifier, classify,
)


class TestClassify:

    @pytest.mark.parametrize('text', [
        'COP REDE INFORMA\nTIPO: Incidente',
        '📢 COP REDE - INFORMA\n🏷️ TIPO: Teste',
        '📊 *COP REDE INFORMA* 📊',
        '*COP REDE INF:* MONITORAMENTO SIR',
        'cop rede informa',
    ])
    def test_summary_banners(self, text):
        assert classify(text) == INCIDENT_SUMMARY

    @pytest.mark.parametrize('text', [
        'COP REDE INFRA - janela de manutenção',
        'cop rede infraestrutura',
    ])
    def test_banner_needs_whole_word(self, text):
        assert classify(text) == UNKNOWN

    @pytest.mark.parametrize('text', [
        '🚨 Novo Evento Detectado!\n📡 Cluster: Norte',
        '*Novo Evento Detectado*',
        '🚧 Manutenção emergencial\nCluster: Rio',
    ])
    def test_alerts(self, text):
        assert classify(text) == SINGLE_ALERT

    def test_alert_emoji_only_counts_on_first_line(self):
        assert classify('Bom dia\n🚨 atenção') == UNKNOWN

    @pytest.mark.parametrize('text', [
        '*ALOCAÇÃO HUB DIURNO 26/01*',
        'Alocacao técnica\nHUB - Diurno',
    ])
    def test_shift_day(self, text):
        assert classify(text) == SHIFT_DAY

    def test_shift_night(self):
        assert classify('*ALOCAÇÃO HUB*\n*MADRUGADA 27/01*') == SHIFT_NIGHT

    def test_shift_needs_every_keyword(self):
        assert classify('HUB diurno sem a palavra-chave') == UNKNOWN
        assert classify('Alocação HUB amanhã') == UNKNOWN

    @pytest.mark.parametrize('value', [
        '', '   ', 'Mensagem comum do grupo', None, 123, '\n\n', '🚀', '*' * 50,
    ])
    def test_total_over_any_input(self, value):
        assert classify(value) in MESSAGE_KINDS


class TestCustomVocabulary:

    def test_from_config(self):
        config = ParserConfig(summary_banners=('BOLETIM NOC',), alert_phrases=('ALARME',))
        classifier = MessageClassifier.from_config(config)
        assert classifier.classify('Boletim NOC\n...') == INCIDENT_SUMMARY
        assert classifier.classify('ALARME crítico') == SINGLE_ALERT
        assert classifier.classify('COP REDE INFORMA') == UNKNOWN
