"""
coprede/parsers/summary_parser.py
Parsers for "COP REDE INFORMA" network summaries.

The summary layout has been revised several times and old layouts are
still posted, so parse_incident_summary() sniffs the format first:

    SIR monitoring   "COP REDE INF:" digest with RAL / REC totals per cluster
    structured       "📢 COP REDE - INFORMA" with "Totais por ..." blocks
    emoji summary    📊 banner with 🏢 MERCADO / 📂 TIPO / 📍 GRUPO blocks
    emoji incident   single incident card (🔴 title, ⚠ Grupo, 💥 Impacto)
    legacy           plain "GRUPO:" blocks, or inline TIPO / GRUPO / VOLUME fields

Every parser returns None when no region breakdown could be extracted.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from coprede.config import DEFAULT_PARSER_CONFIG, ParserConfig
from coprede.detectors.region_lexicon import correct_cluster_name, rollup_areas
from coprede.models.record import IncidentDetails, IncidentSummaryRecord, SectionList
from coprede.parsers.fields import (
    extract_date, extract_details_from_text, extract_emoji_line, extract_field,
    extract_field_with_emoji, extract_multiline_field, extract_volume,
)
from coprede.parsers.sections import extract_first_section, extract_section_list, scan_known_regions
from coprede.parsers.text import first_line, normalize, record_id, strip_bold

logger = logging.getLogger(__name__)

FORMAT_STRUCTURED     = 'structured'
FORMAT_EMOJI_SUMMARY  = 'emoji_summary'
FORMAT_EMOJI_INCIDENT = 'emoji_incident'
FORMAT_LEGACY         = 'legacy'
FORMAT_SIR            = 'sir_monitoring'

CLUSTER_SECTIONS       = ('Totais por Cluster', 'Cluster', 'Por Cluster')
STATUS_SECTIONS        = ('Totais por Status', 'Status')
SYMPTOM_SECTIONS       = ('Totais por Sintoma', 'Sintoma')
INCIDENTS_24H_SECTIONS = ('Incidentes >24h por Cluster', 'Incidentes 24h')

SUMMARY_SECTION_EMOJIS = ('📊', '🏢', '📍', '📂', '🍃', '🔍')
TITLE_MARKERS          = re.compile(r'^[🔴🟠🟡🟢⚪\s*]+')
SIR_BANNER             = re.compile(r'(?<!\w)cop rede inf(?!\w)')
GENERATED_AT           = re.compile(
    r'🗓️?\s*Gerado em:\s*(\d{2}/\d{2}/\d{4})\s*às?\s*(\d{2}:\d{2})', re.IGNORECASE,
)
SIR_UPDATED_AT         = re.compile(r'ATUALIZADO:\s*(\d{2}/\d{2}/\d{4})\s+(\d{2}:\d{2})')
SIR_BULLETS            = (
    re.compile(r'^\*\s+(.+?):\s*(\d+)\s*$'),
    re.compile(r'^[•\-]\s+(.+?):\s*(\d+)\s*$'),
    re.compile(r'^\*(.+?):\s*(\d+)\s*$'),
)
SIR_STOP_MARKERS       = ('🏷', '🏁', '🔗')


# ── FORMAT SNIFFING ──────────────────────────────────────────

def detect_summary_format(text: str) -> str:
    """Pick the summary layout. Checked newest first."""
    head = normalize(first_line(text).replace('*', ''))
    if SIR_BANNER.search(head):
        return FORMAT_SIR
    if '📢 COP REDE - INFORMA' in text or 'Totais por Cluster' in text:
        return FORMAT_STRUCTURED
    if any(e in text for e in SUMMARY_SECTION_EMOJIS):
        return FORMAT_EMOJI_SUMMARY
    if '🔴' in text or '📝' in text or ('⚠' in text and 'Grupo:' in text):
        return FORMAT_EMOJI_INCIDENT
    return FORMAT_LEGACY


def parse_incident_summary(
    text:        str,
    received_at: datetime,
    message_id:  str,
    config:      ParserConfig = DEFAULT_PARSER_CONFIG,
) -> Optional[IncidentSummaryRecord]:
    fmt = detect_summary_format(text)
    logger.debug(
        f"Summary {message_id}: format {fmt}",
        extra={'event': 'summary_format', 'strategy': fmt},
    )
    return SUMMARY_PARSERS[fmt](text, received_at, message_id, config)


# ── STRUCTURED ("📢 COP REDE - INFORMA") ─────────────────────

def parse_structured(
    text:        str,
    received_at: datetime,
    message_id:  str,
    config:      ParserConfig = DEFAULT_PARSER_CONFIG,
) -> Optional[IncidentSummaryRecord]:
    tipo = extract_field_with_emoji(text, ('🏷️', '🏷'), 'TIPO')
    sent_at = (
        extract_field_with_emoji(text, ('🕒', '⏰', '🕐'), 'Horário de envio')
        or extract_field_with_emoji(text, ('🕒', '⏰', '🕐'), 'Horario de envio')
        or extract_field_with_emoji(text, ('🕒', '⏰', '🕐'), 'Data')
    )
    volume_total = (
        extract_field_with_emoji(text, ('📊', '📈'), 'Volume Total')
        or extract_field_with_emoji(text, ('📊', '📈'), 'Total')
    )

    cluster   = extract_first_section(text, CLUSTER_SECTIONS)
    status    = extract_first_section(text, STATUS_SECTIONS)
    symptom   = extract_first_section(text, SYMPTOM_SECTIONS)
    incidents = extract_first_section(text, INCIDENTS_24H_SECTIONS)

    if cluster is None:
        cluster = scan_known_regions(text, config.known_regions)
        if cluster:
            logger.info(f"Summary {message_id}: clusters recovered by known-region scan")

    explicit = extract_volume(volume_total) if volume_total else None
    total    = int(explicit) if explicit else _total(cluster)

    breakdowns = _breakdowns(
        type          = {tipo: total} if tipo and total > 0 else {},
        status        = _items(status),
        symptom       = _items(symptom),
        incidents_24h = _items(incidents),
    )

    description = _join('\n', [
        f"Tipo: {tipo}" if tipo else None,
        _describe('Sintomas', symptom),
        _describe('Status', status),
    ])

    return _build(
        text, received_at, message_id, config,
        source_format = FORMAT_STRUCTURED,
        regions       = _items(cluster),
        total         = total,
        generated_at  = sent_at,
        incident_type = tipo,
        breakdowns    = breakdowns,
        description   = description,
    )


# ── EMOJI SUMMARY (📊 COP REDE INFORMA 📊) ───────────────────

def parse_emoji_summary(
    text:        str,
    received_at: datetime,
    message_id:  str,
    config:      ParserConfig = DEFAULT_PARSER_CONFIG,
) -> Optional[IncidentSummaryRecord]:
    clean = strip_bold(text)

    match = GENERATED_AT.search(clean)
    generated_at = f"{match.group(1)} {match.group(2)}" if match else None

    market = extract_section_list(clean, 'MERCADO')
    tipo   = extract_section_list(clean, 'TIPO')
    nature = extract_section_list(clean, 'NATUREZA')
    sympt  = extract_section_list(clean, 'SINTOMA')
    group  = extract_section_list(clean, 'GRUPO')

    total = _total(group) or _total(market) or _total(tipo)

    description = _join('\n', [_describe('Tipos', tipo), _describe('Sintomas', sympt)])

    return _build(
        text, received_at, message_id, config,
        source_format = FORMAT_EMOJI_SUMMARY,
        regions       = _items(group),
        total         = total,
        generated_at  = generated_at,
        breakdowns    = _breakdowns(
            market  = _items(market),
            type    = _items(tipo),
            nature  = _items(nature),
            symptom = _items(sympt),
        ),
        description   = description,
    )


# ── EMOJI INCIDENT CARD ──────────────────────────────────────

def parse_emoji_incident(
    text:        str,
    received_at: datetime,
    message_id:  str,
    config:      ParserConfig = DEFAULT_PARSER_CONFIG,
) -> Optional[IncidentSummaryRecord]:
    title = extract_emoji_line(text, '🔴')
    if not title:
        lines = text.split('\n')
        for i, line in enumerate(lines[:-1]):
            if 'COP REDE INFORMA' in line.upper():
                title = TITLE_MARKERS.sub('', lines[i + 1]).strip() or None
                break

    reference = extract_emoji_line(text, '📝', ('REC/RAL', 'RAL', 'REC'))
    group     = extract_emoji_line(text, '⚠', ('Grupo', 'Cluster'))
    opened_at = extract_emoji_line(text, '🕒', ('Horário de Abertura', 'Horario de Abertura', 'Abertura'))
    city      = extract_emoji_line(text, '🌎', ('Cidade', 'Local'))
    received  = extract_emoji_line(text, '⏳', ('Horário de Recebimento', 'Recebimento'))
    designat  = extract_emoji_line(text, '✍', ('Designação', 'Designacao'))
    loss      = extract_emoji_line(text, '✍', ('Motivo do Prejuízo', 'Motivo', 'Prejuízo'))
    impact    = extract_emoji_line(text, '💥', ('Impacto',))
    status    = extract_emoji_line(text, '📜', ('Status',))

    impact_rec = impact_ral = 0
    if impact:
        rec = re.search(r'REC\s*(\d+)', impact, re.IGNORECASE)
        ral = re.search(r'RAL\s*(\d+)', impact, re.IGNORECASE)
        impact_rec = int(rec.group(1)) if rec else 0
        impact_ral = int(ral.group(1)) if ral else 0

    details = IncidentDetails(
        title          = title,
        reference      = reference,
        city           = city,
        opened_at      = opened_at,
        received_label = received,
        designation    = designat,
        loss_reason    = loss,
        impact         = impact,
        impact_rec     = impact_rec,
        impact_ral     = impact_ral,
        status         = status,
    )

    description = _join(' | ', [
        title,
        f"Status: {status}" if status else None,
        f"Impacto: {impact}" if impact else None,
    ])

    return _build(
        text, received_at, message_id, config,
        source_format = FORMAT_EMOJI_INCIDENT,
        regions       = {group: 1} if group else {},
        total         = impact_rec + impact_ral or 1,
        breakdowns    = _breakdowns(
            market = {city: 1} if city else {},
            type   = {title[:50]: 1} if title else {},
        ),
        details       = details,
        description   = description,
    )


# ── LEGACY ───────────────────────────────────────────────────

def parse_legacy(
    text:        str,
    received_at: datetime,
    message_id:  str,
    config:      ParserConfig = DEFAULT_PARSER_CONFIG,
) -> Optional[IncidentSummaryRecord]:
    market = extract_section_list(text, 'MERCADO')
    tipo   = extract_section_list(text, 'TIPO')
    nature = extract_section_list(text, 'NATUREZA')
    sympt  = extract_section_list(text, 'SINTOMA')
    group  = extract_section_list(text, 'GRUPO')

    if group and group.items:
        return _build(
            text, received_at, message_id, config,
            source_format = FORMAT_LEGACY,
            regions       = group.items,
            total         = _total(market) or _total(tipo) or group.total,
            breakdowns    = _breakdowns(
                market  = _items(market),
                type    = _items(tipo),
                nature  = _items(nature),
                symptom = _items(sympt),
            ),
            description   = _join('\n', [_describe('Tipos', tipo), _describe('Sintomas', sympt)]),
        )

    # Oldest layout: one incident per message, fields inline
    incident_type = extract_field(text, 'TIPO')
    grupo         = extract_field(text, 'GRUPO')
    day           = extract_field(text, 'DIA') or extract_field(text, 'DATA')
    responsible   = extract_field(text, 'RESPONSAVEL') or extract_field(text, 'RESPONSÁVEL')
    volume        = extract_volume(extract_field(text, 'VOLUME'))
    notes         = extract_multiline_field(text, 'DETALHES') or extract_details_from_text(text)

    count = int(volume) if volume and volume >= 1 else 1

    details = IncidentDetails(
        responsible = responsible,
        event_date  = extract_date(day) if day else None,
        volume      = volume,
        notes       = notes,
    )

    return _build(
        text, received_at, message_id, config,
        source_format = FORMAT_LEGACY,
        regions       = {grupo: count} if grupo else {},
        total         = count,
        incident_type = incident_type,
        breakdowns    = _breakdowns(type={incident_type: count} if incident_type else {}),
        details       = details,
        description   = notes,
    )


# ── SIR MONITORING ("COP REDE INF:") ─────────────────────────

def parse_sir_monitoring(
    text:        str,
    received_at: datetime,
    message_id:  str,
    config:      ParserConfig = DEFAULT_PARSER_CONFIG,
) -> Optional[IncidentSummaryRecord]:
    """
    Enterprise monitoring digest. Each cluster's volume is RAL + REC:

        🔴 RAL: 140
        POR CLUSTERS:
        * RIO DE JANEIRO: 49
        🟢 REC: 44
        POR CLUSTERS:
        * RIO DE JANEIRO: 16
    """
    typos = dict(config.cluster_typos)

    generated_at = None
    totals:   Dict[str, int]            = {'ral': 0, 'rec': 0}
    clusters: Dict[str, Dict[str, int]] = {'ral': {}, 'rec': {}}
    mode        = None
    in_clusters = False

    for raw in text.split('\n'):
        line = raw.strip().replace('**', '').strip()
        if not line:
            continue
        if any(m in line for m in SIR_STOP_MARKERS) or line.startswith('#'):
            break

        match = SIR_UPDATED_AT.search(line)
        if match:
            generated_at = f"{match.group(1)} {match.group(2)}:00"
            continue

        bare = line.replace('*', '').strip()
        switched = _sir_total(bare)
        if switched:
            mode, count = switched
            totals[mode] = count
            in_clusters = False
            continue

        if bare.upper().startswith('POR CLUSTERS'):
            in_clusters = True
            continue

        if in_clusters and mode:
            bullet = next((m for m in (p.match(line) for p in SIR_BULLETS) if m), None)
            if bullet:
                name  = correct_cluster_name(bullet.group(1).replace('*', ''), typos)
                count = int(bullet.group(2))
                if name and name.lower() != 'unknown' and count > 0:
                    bucket = clusters[mode]
                    bucket[name] = bucket.get(name, 0) + count
                continue
            in_clusters = False

    regions: Dict[str, int] = {}
    for bucket in (clusters['ral'], clusters['rec']):
        for name, count in bucket.items():
            regions[name] = regions.get(name, 0) + count

    logger.debug(
        f"SIR {message_id}: {len(regions)} clusters, RAL={totals['ral']} REC={totals['rec']}",
        extra={'event': 'summary_totals', 'strategy': FORMAT_SIR},
    )

    return _build(
        text, received_at, message_id, config,
        source_format = FORMAT_SIR,
        regions       = regions,
        total         = (totals['ral'] + totals['rec']) or sum(regions.values()),
        generated_at  = generated_at,
        details       = IncidentDetails(impact_ral=totals['ral'], impact_rec=totals['rec']),
    )


def _sir_total(line: str) -> Optional[Tuple[str, int]]:
    if '🔴' in line:
        match = re.search(r'RAL:\s*(\d+)', line)
        if match:
            return 'ral', int(match.group(1))
    if '🟢' in line:
        match = re.search(r'REC:\s*(\d+)', line)
        if match:
            return 'rec', int(match.group(1))
    return None


SUMMARY_PARSERS: Dict[str, Callable[..., Optional[IncidentSummaryRecord]]] = {
    FORMAT_SIR:            parse_sir_monitoring,
    FORMAT_STRUCTURED:     parse_structured,
    FORMAT_EMOJI_SUMMARY:  parse_emoji_summary,
    FORMAT_EMOJI_INCIDENT: parse_emoji_incident,
    FORMAT_LEGACY:         parse_legacy,
}


# ── HELPERS ──────────────────────────────────────────────────

def _build(
    text:          str,
    received_at:   datetime,
    message_id:    str,
    config:        ParserConfig,
    source_format: str,
    regions:       Dict[str, int],
    total:         int,
    generated_at:  Optional[str]             = None,
    incident_type: Optional[str]             = None,
    breakdowns:    Optional[Dict[str, Dict[str, int]]] = None,
    details:       Optional[IncidentDetails] = None,
    description:   Optional[str]             = None,
) -> Optional[IncidentSummaryRecord]:
    regions = {name: count for name, count in regions.items() if name and count > 0}
    if not regions:
        logger.info(
            f"Summary {message_id}: no region breakdown extracted ({source_format})",
            extra={'event': 'nothing_extracted', 'strategy': source_format},
        )
        return None

    areas, volume_by_area, unmapped = rollup_areas(regions, config.lexicon)
    if unmapped:
        logger.info(f"Summary {message_id}: unmapped region(s) {unmapped}")

    return IncidentSummaryRecord(
        id               = record_id('cop', message_id, received_at),
        message_id       = str(message_id),
        received_at      = received_at,
        source_format    = source_format,
        regions          = regions,
        total_events     = total,
        affected_areas   = areas,
        volume_by_area   = volume_by_area,
        original_text    = text,
        processed_at     = datetime.now(timezone.utc),
        generated_at     = generated_at,
        incident_type    = incident_type,
        breakdowns       = breakdowns or {},
        unmapped_regions = unmapped,
        details          = details or IncidentDetails(),
        description      = description,
    )


def _items(section: Optional[SectionList]) -> Dict[str, int]:
    return dict(section.items) if section else {}


def _total(section: Optional[SectionList]) -> int:
    return section.total if section else 0


def _breakdowns(**named: Dict[str, int]) -> Dict[str, Dict[str, int]]:
    return {key: items for key, items in named.items() if items}


def _describe(label: str, section: Optional[SectionList]) -> Optional[str]:
    if not section or not section.items:
        return None
    return f"{label}: " + ', '.join(f"{k} ({v})" for k, v in section.items.items())


def _join(sep: str, parts: List[Optional[str]]) -> Optional[str]:
    return sep.join(p for p in parts if p) or None
