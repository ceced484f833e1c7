"""
coprede/parsers/shift_parser.py
HUB technician allocation rosters, DAY ("DIURNO") and NIGHT ("MADRUGADA").

Both layouts are split into sections on runs of 3+ underscores and read
line by line after WhatsApp emphasis markers are stripped. The DAY roster
is grouped by zone; the NIGHT roster is a list of technicians, each
followed by optional activity / phone / note lines.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from coprede.config import DEFAULT_PARSER_CONFIG, ParserConfig
from coprede.models.record import (
    VARIANT_DAY, VARIANT_NIGHT, ResponsibleParty, ShiftAllocationRecord,
    ShiftEntry, TechnicianAssignment,
)
from coprede.parsers.text import first_line, normalize, record_id, strip_markup

logger = logging.getLogger(__name__)

SECTION_SPLIT = re.compile(r'_{3,}')

_LETTER = r'[^\W\d_]'
_NAME   = rf'({_LETTER}(?:{_LETTER}|\s)*?)'
_PHONE  = r'\(?([\d\-\s]+)\)?$'
_WINDOW = r'(\d{1,2}:\d{2}\s*(?:às|as|a|-)\s*\d{1,2}:\d{2})'

# DAY
TIMED_ENTRY      = re.compile(rf'{_WINDOW}\s*[-–]?\s*{_NAME}\s*{_PHONE}', re.IGNORECASE)
NAME_FIRST_ENTRY = re.compile(rf'{_NAME}\s*[-–]\s*{_WINDOW}\s*{_PHONE}', re.IGNORECASE)
ON_CALL_ENTRY    = re.compile(rf'[-–]?\s*sobreaviso\s*:?\s*{_NAME}\s*{_PHONE}', re.IGNORECASE)
DAY_OFF_LINE     = re.compile(r'^[-•]\s*(.+)$')
ON_CALL_LABEL    = 'Sobreaviso'

# NIGHT
RESPONSIBLE      = re.compile(r'Respons[aá]vel\s*:\s*(.+?)\.?\s*$', re.IGNORECASE)
RESPONSIBLE_TEL  = re.compile(r'Tel(?:/Whatsapp)?\s*:\s*([\d\-]+)', re.IGNORECASE)
TECH_LOCATION    = re.compile(
    rf'^[-*•]?\s*\*?({_LETTER}(?:{_LETTER}|\s)*?)\s*:\s*({_LETTER}(?:{_LETTER}|[\s/])+)$'
)
HEADEND          = re.compile(r'^\*?\s*\*?Headend\s*[-–]\s*((?:[^\W\d_]|\s)+)$', re.IGNORECASE)
ACTIVITY         = re.compile(r'^[°•]\s*(?:[^\W\d_]|\s)+\s*:\s*\((.+?)\)\.?\s*$')
TECH_TEL         = re.compile(r'^Tel\s*:\s*([\d\-]+)', re.IGNORECASE)
NOTE             = re.compile(r'^\[Obs\s*:\s*(.+?)\]\.?\s*$', re.IGNORECASE)
TECH_EXCLUDE     = ('tel', 'headend', 'responsavel')
HEADEND_NAME     = 'Headend'


def _is_day_off_marker(line: str) -> bool:
    lower = line.lower()
    return lower.startswith('folgas:') or lower == 'folgas'


def _zone_pattern(names) -> re.Pattern:
    alternatives = sorted(
        (re.escape(n).replace(r'\ ', r'\s*') for n in dict.fromkeys(names)),
        key=len, reverse=True,
    )
    return re.compile(rf'^({"|".join(alternatives)})\s*:?\s*$', re.IGNORECASE)


def _phone(raw: str) -> str:
    return re.sub(r'\s', '', raw).strip()


def extract_allocation_date(text: str, config: ParserConfig = DEFAULT_PARSER_CONFIG) -> Optional[str]:
    """"DIURNO 26/01:" → "26/01"; else a dd/mm on the first line; else any dd/mm/yy(yy)."""
    keywords = '|'.join(re.escape(k) for k in (config.day_keyword, config.night_keyword))
    match = re.search(rf'(?:{keywords})\s+(\d{{1,2}}/\d{{1,2}})', text, re.IGNORECASE)
    if match:
        return match.group(1)
    match = re.search(r'(\d{1,2}/\d{1,2})', first_line(text))
    if match:
        return match.group(1)
    match = re.search(r'(\d{1,2}/\d{1,2})/\d{2,4}', text)
    return match.group(1) if match else None


# ── DAY ──────────────────────────────────────────────────────

def parse_day_roster(
    text:   str,
    config: ParserConfig = DEFAULT_PARSER_CONFIG,
) -> Tuple[Dict[str, List[ShiftEntry]], List[str]]:
    """Returns (zone → entries, day-off names)."""
    zone_line = _zone_pattern(config.shift_region_names)
    header    = normalize(config.allocation_keyword)

    regions:  Dict[str, List[ShiftEntry]] = {}
    day_offs: List[str] = []
    current:  Optional[str] = None
    in_day_offs = False

    for section in SECTION_SPLIT.split(text):
        for raw in section.strip().split('\n'):
            line = strip_markup(raw)
            if not line or header in normalize(line):
                continue

            zone = zone_line.match(line)
            if zone:
                current = re.sub(r'\s+', ' ', zone.group(1).upper())
                regions.setdefault(current, [])
                in_day_offs = False
                continue

            if _is_day_off_marker(line):
                in_day_offs = True
                continue

            if in_day_offs:
                off = DAY_OFF_LINE.match(line)
                if off:
                    day_offs.append(off.group(1).strip())
                continue

            if current is None:
                continue

            entry = _day_entry(line)
            if entry:
                regions[current].append(entry)
            else:
                logger.debug(
                    f"Shift DAY: unparsed line {line!r}",
                    extra={'event': 'shift_line', 'strategy': 'none'},
                )

    return regions, day_offs


def _day_entry(line: str) -> Optional[ShiftEntry]:
    match = TIMED_ENTRY.search(line)
    if match:
        return _traced(ShiftEntry(match.group(1).strip(), match.group(2).strip(), _phone(match.group(3))), 'timed')

    match = NAME_FIRST_ENTRY.search(line)
    if match:
        return _traced(ShiftEntry(match.group(2).strip(), match.group(1).strip(), _phone(match.group(3))), 'name_first')

    match = ON_CALL_ENTRY.search(line)
    if match:
        return _traced(
            ShiftEntry(ON_CALL_LABEL, match.group(1).strip(), _phone(match.group(2)), on_call=True),
            'on_call',
        )
    return None


def _traced(entry: ShiftEntry, strategy: str) -> ShiftEntry:
    logger.debug(
        f"Shift DAY: {entry.technician} ({entry.time_window})",
        extra={'event': 'shift_line', 'strategy': strategy},
    )
    return entry


def parse_shift_day(
    text:        str,
    received_at: datetime,
    message_id:  str,
    config:      ParserConfig = DEFAULT_PARSER_CONFIG,
) -> Optional[ShiftAllocationRecord]:
    regions, day_offs = parse_day_roster(text, config)
    entries = sum(len(v) for v in regions.values())
    if not entries and not day_offs:
        logger.info(f"Shift DAY {message_id}: empty roster")
        return None

    logger.debug(f"Shift DAY {message_id}: {len(regions)} zones, {entries} entries, {len(day_offs)} day-offs")
    return ShiftAllocationRecord(
        id            = record_id('hub', message_id, received_at),
        message_id    = str(message_id),
        variant       = VARIANT_DAY,
        received_at   = received_at,
        original_text = text[:config.max_stored_text],
        processed_at  = datetime.now(timezone.utc),
        target_date   = extract_allocation_date(text, config),
        day_offs      = day_offs,
        regions       = regions,
    )


# ── NIGHT ────────────────────────────────────────────────────

def parse_night_roster(
    text:   str,
    config: ParserConfig = DEFAULT_PARSER_CONFIG,
) -> Tuple[List[TechnicianAssignment], List[str], Optional[ResponsibleParty]]:
    """Returns (technicians, day-off names, responsible party)."""
    header   = normalize(config.allocation_keyword)
    sections = SECTION_SPLIT.split(text)

    technicians: List[TechnicianAssignment] = []
    day_offs:    List[str] = []
    resp_name:   Optional[str] = None
    resp_phone:  Optional[str] = None
    in_day_offs = False

    for section in sections:
        lines = [l for l in section.strip().split('\n') if l.strip()]
        if len(sections) > 1 and any(header in normalize(l) for l in lines):
            continue

        cursor: Optional[dict] = None

        for raw in lines:
            line = strip_markup(raw)
            if not line or header in normalize(line):
                continue

            if _is_day_off_marker(line):
                in_day_offs = True
                continue

            if in_day_offs:
                off = DAY_OFF_LINE.match(line)
                if off:
                    day_offs.append(off.group(1).strip())
                continue

            match = RESPONSIBLE.search(line)
            if match:
                resp_name = match.group(1).strip()
                continue

            if resp_name and not resp_phone:
                match = RESPONSIBLE_TEL.search(line)
                if match:
                    resp_phone = match.group(1).strip()
                    continue

            match = TECH_LOCATION.match(line)
            key   = normalize(line)
            if match and not any(word in key for word in TECH_EXCLUDE):
                _flush(cursor, technicians)
                cursor = {'name': match.group(1).strip(), 'location': match.group(2).strip()}
                continue

            match = HEADEND.match(line)
            if match:
                _flush(cursor, technicians)
                cursor = {'name': HEADEND_NAME, 'location': match.group(1).strip()}
                continue

            if cursor is None:
                continue

            match = ACTIVITY.match(line)
            if match:
                cursor['activity'] = match.group(1).strip()
                continue

            match = TECH_TEL.match(line)
            if match:
                cursor['phone'] = match.group(1).strip()
                continue

            match = NOTE.match(line)
            if match:
                cursor['note'] = match.group(1).strip()

        _flush(cursor, technicians)

    responsible = ResponsibleParty(resp_name, resp_phone) if resp_name else None
    return technicians, day_offs, responsible


def _flush(cursor: Optional[dict], technicians: List[TechnicianAssignment]) -> None:
    if cursor:
        technicians.append(TechnicianAssignment(**cursor))


def parse_shift_night(
    text:        str,
    received_at: datetime,
    message_id:  str,
    config:      ParserConfig = DEFAULT_PARSER_CONFIG,
) -> Optional[ShiftAllocationRecord]:
    technicians, day_offs, responsible = parse_night_roster(text, config)
    if not technicians and not day_offs:
        logger.info(f"Shift NIGHT {message_id}: empty roster")
        return None

    logger.debug(f"Shift NIGHT {message_id}: {len(technicians)} technicians, {len(day_offs)} day-offs")
    return ShiftAllocationRecord(
        id            = record_id('hub', message_id, received_at),
        message_id    = str(message_id),
        variant       = VARIANT_NIGHT,
        received_at   = received_at,
        original_text = text[:config.max_stored_text],
        processed_at  = datetime.now(timezone.utc),
        target_date   = extract_allocation_date(text, config),
        day_offs      = day_offs,
        technicians   = technicians,
        responsible   = responsible,
    )
