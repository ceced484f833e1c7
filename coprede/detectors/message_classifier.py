"""
coprede/detectors/message_classifier.py
Decides which family a chat message belongs to. Keyword matching only,
accent- and case-insensitive (via normalize). Never raises.

Summary and alert rules look at the first line; shift rules look at
the whole text, since the roster title is often on the second line.
"""

import logging
import re
from typing import Iterable, Tuple

from coprede.parsers.text import first_line, normalize

logger = logging.getLogger(__name__)

INCIDENT_SUMMARY = 'INCIDENT_SUMMARY'
SINGLE_ALERT     = 'SINGLE_ALERT'
SHIFT_DAY        = 'SHIFT_DAY'
SHIFT_NIGHT      = 'SHIFT_NIGHT'
UNKNOWN          = 'UNKNOWN'

MESSAGE_KINDS = (INCIDENT_SUMMARY, SINGLE_ALERT, SHIFT_DAY, SHIFT_NIGHT, UNKNOWN)

# ── VOCABULARY ───────────────────────────────────────────────

SUMMARY_BANNERS: Tuple[str, ...] = (
    'COP REDE - INFORMA',
    'COP REDE INFORMA',
    'COP REDE INF',          # enterprise monitoring digest
)

ALERT_PHRASES: Tuple[str, ...] = (
    'Novo Evento Detectado',
)

ALERT_EMOJIS: Tuple[str, ...] = ('🚨', '🚧')

ALLOCATION_KEYWORD = 'alocação'
HUB_KEYWORD        = 'hub'
DAY_KEYWORD        = 'diurno'
NIGHT_KEYWORD      = 'madrugada'


class MessageClassifier:
    """
    Vocabulary is fixed at construction. Use from_config() to build one
    from an injected ParserConfig.
    """

    def __init__(
        self,
        summary_banners:    Iterable[str] = SUMMARY_BANNERS,
        alert_phrases:      Iterable[str] = ALERT_PHRASES,
        alert_emojis:       Iterable[str] = ALERT_EMOJIS,
        allocation_keyword: str           = ALLOCATION_KEYWORD,
        hub_keyword:        str           = HUB_KEYWORD,
        day_keyword:        str           = DAY_KEYWORD,
        night_keyword:      str           = NIGHT_KEYWORD,
    ):
        self.summary_banners = tuple(normalize(b) for b in summary_banners if normalize(b))
        self._banner_patterns = tuple(
            re.compile(rf'(?<!\w){re.escape(b)}(?!\w)') for b in self.summary_banners
        )
        self.alert_phrases   = tuple(normalize(p) for p in alert_phrases if normalize(p))
        self.alert_emojis    = tuple(alert_emojis)
        self.shift_common    = (normalize(allocation_keyword), normalize(hub_keyword))
        self.day_keyword     = normalize(day_keyword)
        self.night_keyword   = normalize(night_keyword)

    @classmethod
    def from_config(cls, config) -> 'MessageClassifier':
        return cls(
            summary_banners    = config.summary_banners,
            alert_phrases      = config.alert_phrases,
            alert_emojis       = config.alert_emojis,
            allocation_keyword = config.allocation_keyword,
            hub_keyword        = config.hub_keyword,
            day_keyword        = config.day_keyword,
            night_keyword      = config.night_keyword,
        )

    def classify(self, text) -> str:
        if not isinstance(text, str) or not text.strip():
            return UNKNOWN

        head_raw = first_line(text)
        head     = normalize(head_raw.replace('*', ''))

        if any(p.search(head) for p in self._banner_patterns):
            return INCIDENT_SUMMARY

        if any(phrase in head for phrase in self.alert_phrases):
            return SINGLE_ALERT
        if any(emoji in head_raw for emoji in self.alert_emojis):
            return SINGLE_ALERT

        body = normalize(text.replace('*', ''))
        if all(k in body for k in self.shift_common):
            if self.day_keyword in body:
                return SHIFT_DAY
            if self.night_keyword in body:
                return SHIFT_NIGHT

        return UNKNOWN


DEFAULT_CLASSIFIER = MessageClassifier()


def classify(text) -> str:
    """Classify with the default vocabulary."""
    kind = DEFAULT_CLASSIFIER.classify(text)
    logger.debug(f"Classified message as {kind}", extra={'event': 'classify', 'strategy': kind})
    return kind
