"""
coprede/models/record.py
Shared dataclass schema. All parsers, the dispatcher and the exporter
use these types. Do not add logic here - data only.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Union


ALERT_STATUS_NEW       = 'novo'
ALERT_STATUS_IN_REVIEW = 'em_analise'
ALERT_STATUS_RESOLVED  = 'tratado'
ALERT_STATUSES         = (ALERT_STATUS_NEW, ALERT_STATUS_IN_REVIEW, ALERT_STATUS_RESOLVED)

VARIANT_DAY   = 'DAY'
VARIANT_NIGHT = 'NIGHT'

PARSE_ERROR = 'PARSE_ERROR'


@dataclass
class InboundMessage:
    """Message descriptor handed over by the messaging platform."""
    text:              str
    message_id:        str
    timestamp_seconds: float
    sender:            str = ''


@dataclass
class SectionList:
    """Bulleted "name: count" block isolated from a message body."""
    items:    Dict[str, int]
    total:    int
    strategy: str               # emoji / bold / heading / plain / line / regex


@dataclass(frozen=True)
class IncidentDetails:
    """Literal fields only some summary layouts carry."""
    title:          Optional[str] = None
    reference:      Optional[str] = None     # REC/RAL reference
    city:           Optional[str] = None
    opened_at:      Optional[str] = None
    received_label: Optional[str] = None
    designation:    Optional[str] = None
    loss_reason:    Optional[str] = None
    impact:         Optional[str] = None
    impact_rec:     int           = 0
    impact_ral:     int           = 0
    status:         Optional[str] = None
    responsible:    Optional[str] = None
    event_date:     Optional[str] = None
    volume:         Optional[float] = None
    notes:          Optional[str] = None


@dataclass(frozen=True)
class IncidentSummaryRecord:
    """One parsed network status summary ("COP REDE INFORMA")."""
    id:               str
    message_id:       str
    received_at:      datetime
    source_format:    str       # structured / emoji_summary / emoji_incident / legacy / sir_monitoring
    regions:          Dict[str, int]
    total_events:     int
    affected_areas:   List[str]
    volume_by_area:   Dict[str, int]
    original_text:    str
    processed_at:     datetime
    generated_at:     Optional[str]             = None
    incident_type:    Optional[str]             = None
    breakdowns:       Dict[str, Dict[str, int]] = field(default_factory=dict)
    unmapped_regions: List[str]                 = field(default_factory=list)
    details:          IncidentDetails           = field(default_factory=IncidentDetails)
    description:      Optional[str]             = None


@dataclass
class StatusChange:
    status: str
    at:     datetime


@dataclass
class AlertRecord:
    """One parsed "Novo Evento Detectado" alert. Only status fields ever change."""
    id:             str
    message_id:     str
    received_at:    datetime
    original_text:  str
    processed_at:   datetime
    ticket:         Optional[str] = None
    event_date:     Optional[str] = None
    alert_type:     Optional[str] = None
    market:         Optional[str] = None
    symptom:        Optional[str] = None
    nature:         Optional[str] = None
    region:         Optional[str] = None     # raw cluster label
    area:           Optional[str] = None     # canonical panel area
    description:    Optional[str] = None
    status:         str           = ALERT_STATUS_NEW
    status_history: List[StatusChange] = field(default_factory=list)


@dataclass(frozen=True)
class ShiftEntry:
    time_window: str
    technician:  str
    phone:       str
    on_call:     bool = False


@dataclass(frozen=True)
class TechnicianAssignment:
    name:     str
    location: Optional[str] = None
    activity: Optional[str] = None
    phone:    Optional[str] = None
    note:     Optional[str] = None


@dataclass(frozen=True)
class ResponsibleParty:
    name:  str
    phone: Optional[str] = None


@dataclass(frozen=True)
class ShiftAllocationRecord:
    """One parsed technician allocation (HUB day or night roster)."""
    id:            str
    message_id:    str
    variant:       str          # DAY / NIGHT
    received_at:   datetime
    original_text: str
    processed_at:  datetime
    target_date:   Optional[str]                 = None
    day_offs:      List[str]                     = field(default_factory=list)
    regions:       Dict[str, List[ShiftEntry]]   = field(default_factory=dict)
    technicians:   List[TechnicianAssignment]    = field(default_factory=list)
    responsible:   Optional[ResponsibleParty]    = None


@dataclass(frozen=True)
class ParseErrorRecord:
    """Emitted by the dispatcher when a parser raised."""
    id:            str
    message_id:    str
    message_kind:  str
    original_text: str
    error_message: str
    processed_at:  datetime
    error_kind:    str = PARSE_ERROR


# Anything the dispatcher may return
ParsedRecord = Union[IncidentSummaryRecord, AlertRecord, ShiftAllocationRecord, ParseErrorRecord]
