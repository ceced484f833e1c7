"""
coprede/parsers/alert_parser.py
Single incident alert ("🚨 Novo Evento Detectado!"). Each field may be
introduced by any of several emoji depending on the bot revision that
posted it, with or without markdown bold.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from coprede.config import DEFAULT_PARSER_CONFIG, ParserConfig
from coprede.models.record import ALERT_STATUS_NEW, AlertRecord, StatusChange
from coprede.parsers.fields import extract_field_with_emoji
from coprede.parsers.text import record_id

logger = logging.getLogger(__name__)

# field → (candidate emoji, label)
ALERT_FIELDS = {
    'ticket':     (('📌', '🎫'),                          'Ticket'),
    'event_date': (('📅', '🗓️', '📆'),                    'Data'),
    'alert_type': (('🔍', '🔎'),                          'Tipo'),
    'market':     (('🌍', '🟢', '🟡', '🔴', '⚪', '🏢'),  'Mercado'),
    'symptom':    (('⚠️', '⚡', '🔔'),                    'Sintoma'),
    'region':     (('📡', '📍', '🗺️', '📌'),              'Cluster'),
    'nature':     (('📑', '📄', '📋', '📝'),              'Natureza'),
}


def parse_alert(
    text:        str,
    received_at: datetime,
    message_id:  str,
    config:      ParserConfig = DEFAULT_PARSER_CONFIG,
) -> AlertRecord:
    """Always returns a record; missing fields stay None."""
    fields = {
        name: extract_field_with_emoji(text, emojis, label)
        for name, (emojis, label) in ALERT_FIELDS.items()
    }

    area = config.lexicon.resolve(fields['region']) if fields['region'] else None
    if fields['region'] and area is None:
        logger.info(f"Alert {message_id}: unmapped cluster {fields['region']!r}")

    description = ' | '.join(
        f"{label}: {fields[key]}"
        for key, label in (('alert_type', 'Tipo'), ('symptom', 'Sintoma'),
                           ('market', 'Mercado'), ('nature', 'Natureza'))
        if fields[key]
    ) or None

    now = datetime.now(timezone.utc)
    return AlertRecord(
        id             = record_id('alerta', message_id, received_at),
        message_id     = str(message_id),
        received_at    = received_at,
        original_text  = text,
        processed_at   = now,
        area           = area,
        description    = description,
        status         = ALERT_STATUS_NEW,
        status_history = [StatusChange(status=ALERT_STATUS_NEW, at=now)],
        **fields,
    )
