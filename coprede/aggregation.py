"""
coprede/aggregation.py
Dashboard aggregations over stored records (JSON payload dicts as
returned by CopRedeAPI): volume per panel area, alert status counts,
and which shift allocation is current.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from coprede.detectors.region_lexicon import CANONICAL_AREAS
from coprede.models.record import ALERT_STATUSES, VARIANT_DAY, VARIANT_NIGHT

logger = logging.getLogger(__name__)

UNMAPPED_AREA = 'UNMAPPED'


@dataclass
class AreaVolume:
    """Messages and events attributed to one panel area."""
    area:     str
    messages: int = 0
    volume:   int = 0


def summarize_areas(summaries: Iterable[Dict[str, Any]]) -> List[AreaVolume]:
    """
    Per-area totals. Every canonical area is listed (zeros included);
    counts for unmapped region labels are reported under UNMAPPED.
    """
    totals: Dict[str, AreaVolume] = {a: AreaVolume(a) for a in CANONICAL_AREAS}

    for summary in summaries:
        for area, volume in (summary.get('volume_by_area') or {}).items():
            entry = totals.setdefault(area, AreaVolume(area))
            entry.messages += 1
            entry.volume   += int(volume)

        regions  = summary.get('regions') or {}
        unmapped = [r for r in summary.get('unmapped_regions') or [] if r in regions]
        if unmapped:
            entry = totals.setdefault(UNMAPPED_AREA, AreaVolume(UNMAPPED_AREA))
            entry.messages += 1
            entry.volume   += sum(int(regions[r]) for r in unmapped)

    return list(totals.values())


def summarize_alert_status(alerts: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """{'novo': n, 'em_analise': n, 'tratado': n, 'total': n}"""
    counts = {status: 0 for status in ALERT_STATUSES}
    total  = 0
    for alert in alerts:
        status = alert.get('status')
        if status in counts:
            counts[status] += 1
        total += 1
    counts['total'] = total
    return counts


def _received(item: Dict[str, Any]) -> datetime:
    value = item.get('received_at')
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def select_current_allocation(
    allocations:      Iterable[Dict[str, Any]],
    now:              Optional[datetime] = None,
    utc_offset_hours: int                = -3,
    night_end_hour:   int                = 5,
) -> Optional[Dict[str, Any]]:
    """
    Allocation to show right now, by local (default Brasília) time:
      before night_end_hour  → latest NIGHT roster (falls back to DAY)
      after                  → latest DAY roster, unless a NIGHT roster
                               arrived after it
    """
    ordered = sorted(allocations, key=_received, reverse=True)
    if not ordered:
        return None

    latest_night = next((a for a in ordered if a.get('variant') == VARIANT_NIGHT), None)
    latest_day   = next((a for a in ordered if a.get('variant') == VARIANT_DAY), None)

    now   = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(timezone.utc) + timedelta(hours=utc_offset_hours)

    if local.hour < night_end_hour:
        return latest_night or latest_day or ordered[0]

    if latest_night and latest_day and _received(latest_night) > _received(latest_day):
        logger.debug("Current allocation: NIGHT roster newer than latest DAY roster")
        return latest_night

    return latest_day or latest_night or ordered[0]
