"""
coprede/parsers/fields.py
Small extraction primitives: "KEY: value" lines, multi-line fields,
emoji-prefixed fields (several glyphs per field, markdown-bold tolerant),
dates and volumes.

Every function returns None when nothing matches and never raises on
odd input.
"""

import logging
import re
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

VARIATION_SELECTOR = '\ufe0f'

_NEXT_FIELD  = re.compile(r'^[A-ZÁÉÍÓÚÂÊÎÔÛÃÕÇ]+\s*:', re.IGNORECASE)
_DATE_FULL   = re.compile(r'(\d{1,2})/(\d{1,2})/(\d{4})')
_DATE_SHORT  = re.compile(r'(\d{1,2})/(\d{1,2})')
_NOT_NUMERIC = re.compile(r'[^\d.,]')

# Lines skipped when building free-text details for legacy messages
KNOWN_FIELD_PREFIXES = (
    'TIPO:', 'GRUPO:', 'DIA:', 'DATA:', 'RESPONSAVEL:', 'RESPONSÁVEL:',
    'VOLUME:', 'DETALHES:', 'DESCRICAO:', 'DESCRIÇÃO:',
)


def emoji_pattern(emoji: str) -> str:
    """Regex for an emoji whose trailing variation selector is optional."""
    base = emoji.rstrip(VARIATION_SELECTOR)
    return re.escape(base) + VARIATION_SELECTOR + '?'


def extract_field(text: str, key: str) -> Optional[str]:
    """Value of the first "KEY: value" line (case-insensitive)."""
    if not text or not key:
        return None
    match = re.search(rf'^\s*{re.escape(key)}\s*:\s*(.+)$', text, re.IGNORECASE | re.MULTILINE)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None


def extract_multiline_field(text: str, key: str) -> Optional[str]:
    """
    Value of a field that may continue on following lines, e.g.

        DETALHES: queda de energia
        afetando dois nós
        VOLUME: 3

    Collection stops at the next "LABEL:" line.
    """
    if not text or not key:
        return None

    start = re.compile(rf'^\s*{re.escape(key)}\s*:', re.IGNORECASE)
    found = False
    value: List[str] = []

    for line in text.split('\n'):
        if not found:
            if start.match(line):
                found = True
                rest = start.sub('', line, count=1).strip()
                if rest:
                    value.append(rest)
            continue
        if _NEXT_FIELD.match(line.strip()):
            break
        value.append(line)

    joined = '\n'.join(value).strip()
    return joined or None


def extract_field_with_emoji(
    text:   str,
    emojis: Union[str, Sequence[str]],
    label:  str,
) -> Optional[str]:
    """
    Value of a field written as "📌 Label: value", "📌 **Label:** value",
    "**Label:** value" or a bare "Label: value" line, tried in that order.
    Several emoji may stand for the same field across format revisions.
    """
    if not text or not label:
        return None

    candidates = [emojis] if isinstance(emojis, str) else list(emojis)
    lbl = re.escape(label)

    for emoji in candidates:
        glyph = emoji_pattern(emoji)
        for strategy, pattern, flags in (
            ('emoji_bold',  rf'{glyph}\s*\*\*{lbl}:\*\*\s*(.+)', re.IGNORECASE),
            ('emoji_plain', rf'{glyph}\s*{lbl}:\s*(.+)',         re.IGNORECASE),
        ):
            match = re.search(pattern, text, flags)
            if match:
                return _traced(label, strategy, match.group(1))

    for strategy, pattern, flags in (
        ('bold',  rf'\*\*{lbl}:\*\*\s*(.+)', re.IGNORECASE | re.MULTILINE),
        ('plain', rf'^\s*{lbl}:\s*(.+)',     re.IGNORECASE | re.MULTILINE),
    ):
        match = re.search(pattern, text, flags)
        if match:
            return _traced(label, strategy, match.group(1))

    return None


def extract_emoji_line(text: str, emoji: str, labels: Iterable[str] = ('',)) -> Optional[str]:
    """
    Incident-card helper: "⚠Grupo: CLUSTER 12" → "CLUSTER 12".
    Tries each label after the emoji, then falls back to whatever
    follows the emoji on its line.
    """
    if not text:
        return None
    glyph = emoji_pattern(emoji)

    for label in labels:
        match = re.search(rf'{glyph}\s*{re.escape(label)}[:\s]+(.+?)(?:\n|$)', text, re.IGNORECASE)
        if match and match.group(1).strip():
            return match.group(1).strip()

    match = re.search(rf'{glyph}\s*(.+?)(?:\n|$)', text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None


def extract_date(text: str, today: Optional[datetime] = None) -> Optional[str]:
    """dd/mm/yyyy, or dd/mm completed with the current year. Zero-padded."""
    if not text:
        return None

    match = _DATE_FULL.search(text)
    if match:
        return f"{match.group(1).zfill(2)}/{match.group(2).zfill(2)}/{match.group(3)}"

    match = _DATE_SHORT.search(text)
    if match:
        year = (today or datetime.now()).year
        return f"{match.group(1).zfill(2)}/{match.group(2).zfill(2)}/{year}"

    return None


def extract_volume(text: str) -> Optional[float]:
    """Numeric value from free text ("Volume: 25 unidades" → 25.0)."""
    if not text:
        return None
    cleaned = _NOT_NUMERIC.sub('', str(text)).replace(',', '.', 1)
    try:
        return float(cleaned)
    except ValueError:
        return None


def extract_details_from_text(text: str) -> str:
    """Body lines after the banner that are not one of the known fields."""
    if not text:
        return ''
    lines = text.split('\n')[1:]
    kept  = [l for l in lines if not l.upper().strip().startswith(KNOWN_FIELD_PREFIXES)]
    return '\n'.join(kept).strip() or 'Sem detalhes adicionais'


def _traced(label: str, strategy: str, value: str) -> Optional[str]:
    value = value.strip()
    logger.debug(
        f"Field {label!r} matched via {strategy}",
        extra={'event': 'field_match', 'strategy': strategy},
    )
    return value or None
