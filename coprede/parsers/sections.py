"""
coprede/parsers/sections.py
Section-List Extractor: isolates a named block ("Totais por Cluster",
"GRUPO", ...) from a summary message and reads its "name: count" lines.

Header conventions drifted across message revisions, so the block is
located by an ordered cascade of strategies, and each candidate line by an
ordered cascade of item patterns. The first hit wins at both levels.
"""

import logging
import re
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from coprede.models.record import SectionList
from coprede.parsers.fields import emoji_pattern

logger = logging.getLogger(__name__)

# ── HEADER EMOJI ─────────────────────────────────────────────

# Emoji that may open a given section, keyed by lowercase section name
SECTION_EMOJIS: Dict[str, Tuple[str, ...]] = {
    'totais por cluster': ('🏢', '📍', '🗺️'),
    'cluster':            ('🏢', '📍', '🗺️'),
    'por cluster':        ('🏢', '📍', '🗺️'),
    'totais por status':  ('📌', '📊', '✅'),
    'status':             ('📌', '📊', '✅'),
    'totais por sintoma': ('🧪', '⚠️', '🔍'),
    'sintoma':            ('🧪', '⚠️', '🔍'),
}

# Any of these at the start of a line opens a new section
HEADER_EMOJIS: Tuple[str, ...] = (
    '📊', '🏢', '📂', '🍃', '🔍', '📍', '🗓️', '🚨', '📌', '🧪', '⚠️', '✅', '🗺️',
)

_ANY_HEADER_EMOJI = '(?:' + '|'.join(emoji_pattern(e) for e in HEADER_EMOJIS) + ')'

_NEXT_EMOJI_SECTION   = re.compile(rf'\n[ \t]*(?:{_ANY_HEADER_EMOJI}+[ \t]*[^\n:]+:|─{{2,}})')
_NEXT_BOLD_SECTION    = re.compile(r'\n\*\*[A-ZÁÉÍÓÚÂÊÎÔÛÃÕÇ][A-ZÁÉÍÓÚÂÊÎÔÛÃÕÇ\s/]*:\*\*', re.IGNORECASE)
_NEXT_HEADING_SECTION = re.compile(r'\n(?:#+\s*[A-ZÁÉÍÓÚ]|\*\*[A-ZÁÉÍÓÚ])', re.IGNORECASE)
_LINE_SECTION_END     = re.compile(r'^[A-ZÁÉÍÓÚÂÊÎÔÛÃÕÇ]+:?$')

_LEADING_EMOJI = re.compile(r'^[^\w\s]+\s*')

# ── ITEM PATTERNS ────────────────────────────────────────────
# (name, pattern, applied to the emoji-stripped line?)

ITEM_PATTERNS: Tuple[Tuple[str, re.Pattern, bool], ...] = (
    ('bullet_colon',   re.compile(r'^[-•]\s*(.+?):\s*(\d+)\s*$'),      False),
    ('numbered_colon', re.compile(r'^\d+\.\s*(.+?):\s*(\d+)\s*$'),     False),
    ('bullet_dash',    re.compile(r'^[-•]\s*(.+?)\s*-\s*(\d+)\s*$'),   False),
    ('bullet_paren',   re.compile(r'^[-•]\s*(.+?)\s*\((\d+)\)\s*$'),   False),
    ('bare_colon',     re.compile(r'^(.+?):\s*(\d+)\s*$'),             True),
    ('bare_dash',      re.compile(r'^(.+?)\s*-\s*(\d+)\s*$'),          True),
)

_CANDIDATE_PATTERNS = (
    re.compile(r'^\d+\.'),
    re.compile(r':\s*\d+\s*$'),
    re.compile(r'^[^\w\s]'),
    re.compile(r'-\s*\d+\s*$'),
)


# ── BLOCK STRATEGIES ─────────────────────────────────────────
# Each takes (text, section) and returns the raw block or None.

def _by_emoji_header(text: str, section: str) -> Optional[str]:
    glyphs = SECTION_EMOJIS.get(section.lower(), HEADER_EMOJIS)
    name   = re.escape(section)
    # header line: emoji first, label ends with the section name and a colon
    for emoji in glyphs:
        header = re.search(
            rf'^[ \t]*{emoji_pattern(emoji)}[ \t]*(?:[^\n:]*?[ \t])?{name}[ \t]*:[ \t]*\n',
            text, re.IGNORECASE | re.MULTILINE,
        )
        if header:
            return _until(text[header.end():], _NEXT_EMOJI_SECTION)
    return None


def _by_bold_header(text: str, section: str) -> Optional[str]:
    header = re.search(rf'\*\*{re.escape(section)}:\*\*', text, re.IGNORECASE)
    if header:
        return _until(text[header.end():], _NEXT_BOLD_SECTION)
    return None


def _by_heading(text: str, section: str) -> Optional[str]:
    header = re.search(rf'#+\s*{re.escape(section)}:?[ \t]*\n', text, re.IGNORECASE)
    if header:
        return _until(text[header.end():], _NEXT_HEADING_SECTION)
    return None


def _by_plain_header(text: str, section: str) -> Optional[str]:
    match = re.search(
        rf'^(?i:{re.escape(section)}):[ \t]*\n(.*?)(?=\n[A-ZÁÉÍÓÚ]+:|\Z)',
        text, re.MULTILINE | re.DOTALL,
    )
    return match.group(1) if match else None


def _by_line_equality(text: str, section: str) -> Optional[str]:
    lines  = text.split('\n')
    target = section.upper()
    start  = -1

    for i, line in enumerate(lines):
        clean = re.sub(r'[#*]', '', line).strip().upper()
        if clean in (target, target + ':'):
            start = i + 1
            break

    if start <= 0 or start >= len(lines):
        return None

    block: List[str] = []
    for line in lines[start:]:
        clean = re.sub(r'[#*]', '', line).strip().upper()
        if _LINE_SECTION_END.match(clean) and not line.strip().startswith('-'):
            break
        block.append(line)
    return '\n'.join(block) if block else None


BLOCK_STRATEGIES: Tuple[Tuple[str, Callable[[str, str], Optional[str]]], ...] = (
    ('emoji',   _by_emoji_header),
    ('bold',    _by_bold_header),
    ('heading', _by_heading),
    ('plain',   _by_plain_header),
    ('line',    _by_line_equality),
)


def _until(rest: str, boundary: re.Pattern) -> str:
    nxt = boundary.search(rest)
    return rest[:nxt.start()] if nxt else rest


# ── ITEMS ────────────────────────────────────────────────────

def _is_candidate(line: str) -> bool:
    if line.startswith(('-', '•')):
        return True
    return any(p.search(line) for p in _CANDIDATE_PATTERNS)


def parse_items(block: str, section: str = '') -> Dict[str, int]:
    """Read "name: count" style lines from an isolated block. Last write wins."""
    items: Dict[str, int] = {}

    for raw in block.split('\n'):
        line = raw.strip()
        if not line or not _is_candidate(line):
            continue

        bare = _LEADING_EMOJI.sub('', line).strip()
        for name, pattern, on_bare in ITEM_PATTERNS:
            match = pattern.match(bare if on_bare else line)
            if not match:
                continue
            label = _LEADING_EMOJI.sub('', match.group(1)).strip()
            if label.endswith(':'):
                # "Rio: -3" is a negative count, not "Rio:" with 3
                continue
            count = int(match.group(2))
            if label and count > 0:
                items[label] = count
                logger.debug(
                    f"Section {section!r}: {label} = {count}",
                    extra={'event': 'section_item', 'strategy': name, 'section': section},
                )
            break
        else:
            logger.debug(
                f"Section {section!r}: unparsed line {line!r}",
                extra={'event': 'section_item', 'strategy': 'none', 'section': section},
            )

    return items


# ── PUBLIC API ───────────────────────────────────────────────

def extract_section_list(text: str, section: str) -> Optional[SectionList]:
    """
    Locate `section` in `text` and parse its items.
    Returns None when no strategy isolates a non-empty block.
    """
    if not text or not section:
        return None

    for strategy, locate in BLOCK_STRATEGIES:
        block = locate(text, section)
        if not block or not block.strip():
            continue
        logger.debug(
            f"Section {section!r} located ({len(block)} chars)",
            extra={'event': 'section_located', 'strategy': strategy, 'section': section},
        )
        items = parse_items(block, section)
        return SectionList(items=items, total=sum(items.values()), strategy=strategy)

    logger.debug(
        f"Section {section!r} not found",
        extra={'event': 'section_missing', 'strategy': 'none', 'section': section},
    )
    return None


def extract_first_section(text: str, names: Iterable[str]) -> Optional[SectionList]:
    """Try section-name synonyms in order; first one with items wins."""
    for name in names:
        found = extract_section_list(text, name)
        if found and found.items:
            return found
    return None


def scan_known_regions(text: str, regions: Iterable[str]) -> Optional[SectionList]:
    """
    Last-resort cluster scan over the whole message: "Minas Gerais: 12",
    "☕ Rio de Janeiro - 8". Longer names are tried first and a span is
    counted once, so "Bahia / Sergipe: 4" never also counts as "Sergipe".
    """
    if not text:
        return None

    taken: List[Tuple[int, int]] = []
    hits:  List[Tuple[int, str, int]] = []

    for region in sorted(dict.fromkeys(regions), key=len, reverse=True):
        pattern = re.compile(rf'(?<!\w){re.escape(region)}\s*[:\-]\s*(\d+)', re.IGNORECASE)
        for match in pattern.finditer(text):
            start, end = match.span()
            if any(start < e and s < end for s, e in taken):
                continue
            count = int(match.group(1))
            if count <= 0:
                continue
            taken.append((start, end))
            hits.append((start, region.strip(), count))

    if not hits:
        return None

    items: Dict[str, int] = {}
    for _, region, count in sorted(hits):
        items[region] = items.get(region, 0) + count
        logger.debug(
            f"Known-region scan: {region} = {count}",
            extra={'event': 'section_item', 'strategy': 'regex', 'section': 'cluster'},
        )
    return SectionList(items=items, total=sum(items.values()), strategy='regex')
