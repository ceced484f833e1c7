"""
coprede/dispatcher.py
Entry point for one inbound chat message: classify, route to the parser
for that family, return the record.

Returns None when the message is not for us or nothing could be
extracted, and a ParseErrorRecord when a parser raised. Never raises.
Duplicate suppression is the store's job, not ours.
"""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Union

from coprede.config import DEFAULT_PARSER_CONFIG, ParserConfig
from coprede.detectors.message_classifier import (
    INCIDENT_SUMMARY, SHIFT_DAY, SHIFT_NIGHT, SINGLE_ALERT, UNKNOWN,
    MessageClassifier,
)
from coprede.models.record import InboundMessage, ParsedRecord, ParseErrorRecord
from coprede.parsers.alert_parser import parse_alert
from coprede.parsers.shift_parser import parse_shift_day, parse_shift_night
from coprede.parsers.summary_parser import parse_incident_summary
from coprede.parsers.text import record_id

logger = logging.getLogger(__name__)

MessageLike = Union[InboundMessage, Mapping[str, Any]]

_TEXT_KEYS      = ('text', 'body')
_ID_KEYS        = ('message_id', 'messageId', 'id')
_TIMESTAMP_KEYS = ('date', 'timestamp_seconds', 'timestamp')


def _first(data: Mapping[str, Any], keys) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def content_message_id(text: str, timestamp_seconds: float) -> str:
    """Stable id for messages delivered without one: same text and time, same id."""
    digest = hashlib.sha1(f"{timestamp_seconds!r}\n{text}".encode('utf-8')).hexdigest()
    return f"auto_{digest[:16]}"


def coerce_message(message: Optional[MessageLike]) -> Optional[InboundMessage]:
    """
    Build an InboundMessage from the loose dicts chat platforms hand over.
    Returns None when there is no text at all.
    Raises TypeError / ValueError on malformed descriptors.
    """
    if message is None:
        return None
    if isinstance(message, InboundMessage):
        msg = message
    elif isinstance(message, Mapping):
        text = _first(message, _TEXT_KEYS)
        if text is None:
            return None
        timestamp = _first(message, _TIMESTAMP_KEYS)
        raw_id    = _first(message, _ID_KEYS)
        msg = InboundMessage(
            text              = text,
            message_id        = '' if raw_id is None else str(raw_id),
            timestamp_seconds = (
                float(timestamp) if timestamp is not None
                else datetime.now(timezone.utc).timestamp()
            ),
            sender            = str(message.get('sender') or message.get('from') or ''),
        )
    else:
        raise TypeError(f"unsupported message descriptor: {type(message).__name__}")

    if msg.text is None:
        return None
    if not isinstance(msg.text, str):
        raise TypeError(f"message text must be str, got {type(msg.text).__name__}")
    if not msg.message_id:
        msg.message_id = content_message_id(msg.text, msg.timestamp_seconds)
    return msg


class MessageDispatcher:
    """Routes messages with an injected ParserConfig. Safe to share."""

    def __init__(self, config: ParserConfig = DEFAULT_PARSER_CONFIG):
        self.config     = config
        self.classifier = MessageClassifier.from_config(config)
        self.parsers: Dict[str, Callable[..., Optional[ParsedRecord]]] = {
            INCIDENT_SUMMARY: parse_incident_summary,
            SINGLE_ALERT:     parse_alert,
            SHIFT_DAY:        parse_shift_day,
            SHIFT_NIGHT:      parse_shift_night,
        }

    def dispatch(self, message: Optional[MessageLike]) -> Optional[ParsedRecord]:
        kind       = UNKNOWN
        message_id = ''
        text       = ''

        try:
            msg = coerce_message(message)
            if msg is None or not msg.text.strip():
                logger.debug("Empty message ignored")
                return None

            message_id = msg.message_id
            text       = msg.text
            if len(text) > self.config.max_text_length:
                logger.warning(
                    f"Message {message_id}: text truncated from {len(text)} "
                    f"to {self.config.max_text_length} chars"
                )
                text = text[:self.config.max_text_length]

            kind = self.classifier.classify(text)
            logger.debug(
                f"Message {message_id} classified as {kind}",
                extra={'event': 'classify', 'strategy': kind},
            )
            if kind == UNKNOWN:
                return None

            received_at = datetime.fromtimestamp(msg.timestamp_seconds, tz=timezone.utc)
            record = self.parsers[kind](text, received_at, message_id, self.config)

        except Exception as e:
            logger.error(f"Message {message_id or '?'} ({kind}) failed to parse: {e}", exc_info=True)
            now = datetime.now(timezone.utc)
            return ParseErrorRecord(
                id            = record_id('erro', message_id or 'unknown', now),
                message_id    = str(message_id),
                message_kind  = kind,
                original_text = text if isinstance(text, str) else '',
                error_message = str(e) or type(e).__name__,
                processed_at  = now,
            )

        if record is None:
            logger.info(f"Message {message_id} ({kind}): nothing extracted")
        else:
            logger.info(f"Message {message_id} ({kind}) -> {record.id}")
        return record


DEFAULT_DISPATCHER = MessageDispatcher()


def process_message(
    message: Optional[MessageLike],
    config:  Optional[ParserConfig] = None,
) -> Optional[ParsedRecord]:
    """Dispatch one message with the default (or given) configuration."""
    dispatcher = DEFAULT_DISPATCHER if config is None else MessageDispatcher(config)
    return dispatcher.dispatch(message)
