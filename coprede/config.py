"""
coprede/config.py
App config persisted to coprede_config.json, plus the immutable
ParserConfig injected into the classifier and parsers.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from coprede.detectors.message_classifier import (
    ALERT_EMOJIS, ALERT_PHRASES, ALLOCATION_KEYWORD, DAY_KEYWORD,
    HUB_KEYWORD, NIGHT_KEYWORD, SUMMARY_BANNERS,
)
from coprede.detectors.region_lexicon import (
    CLUSTER_TYPOS, DEFAULT_LEXICON, SHIFT_REGION_NAMES, RegionLexicon,
    known_region_names,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "db_path": "coprede.db",
    "host": "127.0.0.1",
    "port": 8000,
    "max_summaries": 1000,
    "max_alerts": 500,
    "max_allocations": 50,
    "max_errors": 200,
    "utc_offset_hours": -3,
    "night_shift_end_hour": 5,
    "max_text_length": 20000,
    "area_lexicon": {},
    "extra_known_regions": [],
    "shift_region_names": [],
    "word_boundary_fallback": False,
}


@dataclass(frozen=True)
class ParserConfig:
    """Vocabulary and limits shared by the classifier and every parser."""
    lexicon:            RegionLexicon   = DEFAULT_LEXICON
    summary_banners:    Tuple[str, ...] = SUMMARY_BANNERS
    alert_phrases:      Tuple[str, ...] = ALERT_PHRASES
    alert_emojis:       Tuple[str, ...] = ALERT_EMOJIS
    allocation_keyword: str             = ALLOCATION_KEYWORD
    hub_keyword:        str             = HUB_KEYWORD
    day_keyword:        str             = DAY_KEYWORD
    night_keyword:      str             = NIGHT_KEYWORD
    shift_region_names: Tuple[str, ...] = SHIFT_REGION_NAMES
    known_regions:      Tuple[str, ...] = field(default_factory=known_region_names)
    cluster_typos:      Tuple[Tuple[str, str], ...] = tuple(CLUSTER_TYPOS.items())
    max_text_length:    int             = 20000
    max_stored_text:    int             = 5000


DEFAULT_PARSER_CONFIG = ParserConfig()


def _config_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path.cwd()
    return root / "coprede_config.json"


def load_config(project_root: Optional[Path] = None, path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load config from coprede_config.json (or an explicit file).
    Returns defaults if missing or unreadable.
    """
    path = Path(path) if path else _config_path(project_root)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("top-level JSON value must be an object")
            return {**DEFAULT_CONFIG, **data}
        except (json.JSONDecodeError, OSError, ValueError) as e:
            logger.warning(f"Config load failed ({path}): {e}")
    return dict(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """Persist config to coprede_config.json."""
    path = _config_path(project_root)
    path.write_text(json.dumps(config, indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def build_parser_config(config: Optional[Dict[str, Any]] = None) -> ParserConfig:
    """
    Build the immutable ParserConfig from an app config dict.
    Lexicon overrides are appended after the built-in variants, so they
    never change an existing assignment.
    """
    config = {**DEFAULT_CONFIG, **(config or {})}

    lexicon = RegionLexicon(
        word_boundary_fallback=bool(config.get("word_boundary_fallback")),
    )
    overrides = config.get("area_lexicon") or {}
    if overrides:
        lexicon = lexicon.with_overrides(overrides)
        logger.info(f"Region lexicon: {len(overrides)} override(s) loaded")

    shift_names = tuple(dict.fromkeys([
        *SHIFT_REGION_NAMES,
        *(n.upper().strip() for n in config.get("shift_region_names") or []),
    ]))

    return ParserConfig(
        lexicon            = lexicon,
        shift_region_names = shift_names,
        known_regions      = known_region_names(config.get("extra_known_regions") or []),
        max_text_length    = int(config.get("max_text_length") or DEFAULT_CONFIG["max_text_length"]),
    )


def retention_limits(config: Optional[Dict[str, Any]] = None) -> Dict[str, int]:
    """Per-table row caps for the sqlite exporter."""
    config = {**DEFAULT_CONFIG, **(config or {})}
    return {
        "incident_summaries": int(config["max_summaries"]),
        "alerts":             int(config["max_alerts"]),
        "shift_allocations":  int(config["max_allocations"]),
        "parse_errors":       int(config["max_errors"]),
    }
