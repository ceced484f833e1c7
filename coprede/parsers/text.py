"""
coprede/parsers/text.py
Comparison keys and markup cleanup shared by every parser.
"""

import re
import unicodedata
from datetime import datetime

_EMPHASIS_CHARS = re.compile(r'[*_~]')
_BOLD_PAIR      = re.compile(r'\*([^*]+)\*')
_ITALIC_PAIR    = re.compile(r'_([^_]+)_')


def normalize(text) -> str:
    """Lowercase, strip diacritics, trim. Returns '' for None/empty."""
    if not text:
        return ''
    decomposed = unicodedata.normalize('NFD', str(text).lower())
    return ''.join(c for c in decomposed if not unicodedata.combining(c)).strip()


def strip_markup(line: str) -> str:
    """Drop WhatsApp emphasis markers (*bold*, _italic_, ~strike~) from a line."""
    return _EMPHASIS_CHARS.sub('', line or '').strip()


def strip_bold(text: str) -> str:
    """Unwrap *bold* and _italic_ pairs, keeping single markers such as bullets."""
    return _ITALIC_PAIR.sub(r'\1', _BOLD_PAIR.sub(r'\1', text or ''))


def first_line(text: str) -> str:
    if not text:
        return ''
    return text.split('\n', 1)[0].strip()


def record_id(prefix: str, message_id, received_at: datetime) -> str:
    """Deterministic record id: <prefix>_<message id>_<receipt epoch ms>."""
    return f"{prefix}_{message_id}_{int(received_at.timestamp() * 1000)}"
