"""
coprede/detectors/region_lexicon.py
Maps free-text region labels ("Bahia / Sergipe", "MG", "Minas Geraiste")
onto the dashboard panel areas. Pure Python, read-only after construction.

The tables below are data. Extend them freely; keys are normalized
(lowercase, no accents) when a RegionLexicon is built, so accented and
unaccented spellings may both be listed.
"""

import logging
import re
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Tuple

from coprede.parsers.text import normalize

logger = logging.getLogger(__name__)

AREA_RIO      = 'RIO'
AREA_MG_ES_BA = 'MG/ES/BA'
AREA_CO_NO_NE = 'CO/NO/NE'

CANONICAL_AREAS: Tuple[str, ...] = (AREA_CO_NO_NE, AREA_MG_ES_BA, AREA_RIO)

# ── VARIANT → PANEL AREA ─────────────────────────────────────
# Insertion order matters: the substring fallback returns the first hit.

AREA_LEXICON: Dict[str, str] = {

    # RIO (includes the "Rio / Espírito Santo" cluster)
    'rio capital':                     AREA_RIO,
    'grande rio':                      AREA_RIO,
    'rio / espirito santo':            AREA_RIO,
    'rio/espirito santo':              AREA_RIO,
    'rio de janeiro / espirito santo': AREA_RIO,
    'rio de janeiro/espirito santo':   AREA_RIO,
    'rio de janeiro':                  AREA_RIO,
    'rio':                             AREA_RIO,
    'rj':                              AREA_RIO,

    # MG/ES/BA
    'vitoria':         AREA_MG_ES_BA,
    'minas gerais':    AREA_MG_ES_BA,
    'minas':           AREA_MG_ES_BA,
    'mg':              AREA_MG_ES_BA,
    'espirito santo':  AREA_MG_ES_BA,
    'es':              AREA_MG_ES_BA,
    'bahia / sergipe': AREA_MG_ES_BA,
    'bahia/sergipe':   AREA_MG_ES_BA,
    'bahia':           AREA_MG_ES_BA,
    'sergipe':         AREA_MG_ES_BA,
    'ba':              AREA_MG_ES_BA,
    'se':              AREA_MG_ES_BA,

    # CO/NO/NE
    'centro oeste':        AREA_CO_NO_NE,
    'centro-oeste':        AREA_CO_NO_NE,
    'centrooeste':         AREA_CO_NO_NE,
    'co':                  AREA_CO_NO_NE,
    'norte':               AREA_CO_NO_NE,
    'no':                  AREA_CO_NO_NE,
    'nordeste':            AREA_CO_NO_NE,
    'ne':                  AREA_CO_NO_NE,
    'goias':               AREA_CO_NO_NE,
    'go':                  AREA_CO_NO_NE,
    'mato grosso':         AREA_CO_NO_NE,
    'mt':                  AREA_CO_NO_NE,
    'mato grosso do sul':  AREA_CO_NO_NE,
    'ms':                  AREA_CO_NO_NE,
    'distrito federal':    AREA_CO_NO_NE,
    'df':                  AREA_CO_NO_NE,
    'tocantins':           AREA_CO_NO_NE,
    'to':                  AREA_CO_NO_NE,
    'amazonas':            AREA_CO_NO_NE,
    'am':                  AREA_CO_NO_NE,
    'para':                AREA_CO_NO_NE,
    'pa':                  AREA_CO_NO_NE,
    'acre':                AREA_CO_NO_NE,
    'ac':                  AREA_CO_NO_NE,
    'rondonia':            AREA_CO_NO_NE,
    'ro':                  AREA_CO_NO_NE,
    'roraima':             AREA_CO_NO_NE,
    'rr':                  AREA_CO_NO_NE,
    'amapa':               AREA_CO_NO_NE,
    'ap':                  AREA_CO_NO_NE,
    'pernambuco':          AREA_CO_NO_NE,
    'pe':                  AREA_CO_NO_NE,
    'alagoas':             AREA_CO_NO_NE,
    'al':                  AREA_CO_NO_NE,
    'paraiba':             AREA_CO_NO_NE,
    'pb':                  AREA_CO_NO_NE,
    'rio grande do norte': AREA_CO_NO_NE,
    'rn':                  AREA_CO_NO_NE,
    'ceara':               AREA_CO_NO_NE,
    'ce':                  AREA_CO_NO_NE,
    'piaui':               AREA_CO_NO_NE,
    'pi':                  AREA_CO_NO_NE,
    'maranhao':            AREA_CO_NO_NE,
    'ma':                  AREA_CO_NO_NE,
}

# Known typos in hand-typed cluster names, applied before lookup
CLUSTER_TYPOS: Dict[str, str] = {
    'MINAS GERAISTE':  'MINAS GERAIS',
    'MINAS GERASTE':   'MINAS GERAIS',
    'MINAS GERASI':    'MINAS GERAIS',
    'ESPÍRITO SANTO':  'ESPIRITO SANTO',
    'BAHIA / SERGIPE': 'BAHIA/SERGIPE',
    'BAHIA/ SERGIPE':  'BAHIA/SERGIPE',
    'BAHIA /SERGIPE':  'BAHIA/SERGIPE',
}

# Region names scanned for directly when a summary has no cluster section
KNOWN_REGIONS: Tuple[str, ...] = (
    'Minas Gerais', 'Rio de Janeiro', 'Rio', 'Bahia', 'Sergipe', 'Bahia / Sergipe',
    'Espirito Santo', 'Espírito Santo', 'Vitoria', 'Vitória', 'Centro Oeste',
    'Centro-Oeste', 'Norte', 'Nordeste', 'Goias', 'Goiás', 'Amazonas', 'Para', 'Pará',
    'Rio / Espirito Santo', 'Rio / Espírito Santo', 'Grande Rio', 'Rio Capital',
)

# Zone headers recognised inside a HUB day allocation
SHIFT_REGION_NAMES: Tuple[str, ...] = (
    'NORTE', 'SUL', 'METROPOLITANA', 'OESTE', 'BAIXADA', 'LESTE', 'CENTRO',
    'ZONA NORTE', 'ZONA SUL', 'ZONA OESTE', 'ZONA LESTE', 'GRANDE RIO',
    'NITERÓI', 'NITEROI',
)


def correct_cluster_name(name: str, typos: Mapping[str, str] = CLUSTER_TYPOS) -> str:
    """Uppercase a cluster label and apply the typo table."""
    upper = (name or '').upper().strip()
    return typos.get(upper, upper)


class RegionLexicon:
    """
    Immutable variant → panel-area table.

    word_boundary_fallback: when True, the partial-match fallback only
    accepts keys that appear as whole words. Off by default so existing
    dashboard assignments stay identical.
    """

    def __init__(
        self,
        table:                  Mapping[str, str]           = AREA_LEXICON,
        typos:                  Mapping[str, str]           = CLUSTER_TYPOS,
        word_boundary_fallback: bool                        = False,
    ):
        entries: Dict[str, str] = {}
        for variant, area in table.items():
            key = normalize(variant)
            if key and key not in entries:
                entries[key] = area
        self._table  = MappingProxyType(entries)
        self._typos  = MappingProxyType({
            normalize(wrong): normalize(right) for wrong, right in typos.items()
        })
        self.word_boundary_fallback = word_boundary_fallback

    @property
    def table(self) -> Mapping[str, str]:
        return self._table

    @property
    def areas(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(self._table.values()))

    def with_overrides(self, extra: Mapping[str, str]) -> 'RegionLexicon':
        """New lexicon with extra variants appended (existing keys win)."""
        merged = dict(self._table)
        for variant, area in extra.items():
            merged.setdefault(normalize(variant), area)
        return RegionLexicon(merged, dict(self._typos), self.word_boundary_fallback)

    def resolve(self, label: Optional[str]) -> Optional[str]:
        """Return the panel area for a raw region label, or None when unmapped."""
        key = normalize(label)
        if not key:
            return None
        key = self._typos.get(key, key)

        area = self._table.get(key)
        if area:
            self._trace(label, area, 'exact')
            return area

        for variant, candidate in self._table.items():
            if self._partial_match(key, variant):
                self._trace(label, candidate, 'substring')
                return candidate

        self._trace(label, None, 'unmapped')
        return None

    def _partial_match(self, key: str, variant: str) -> bool:
        if self.word_boundary_fallback:
            return bool(
                re.search(rf'(?<!\w){re.escape(variant)}(?!\w)', key)
                or re.search(rf'(?<!\w){re.escape(key)}(?!\w)', variant)
            )
        return variant in key or key in variant

    @staticmethod
    def _trace(label, area, strategy: str) -> None:
        logger.debug(
            f"Region {label!r} -> {area} ({strategy})",
            extra={'event': 'region_resolve', 'strategy': strategy},
        )


DEFAULT_LEXICON = RegionLexicon()


def resolve_area(label: Optional[str], lexicon: Optional[RegionLexicon] = None) -> Optional[str]:
    """Resolve a raw region label with the given (or default) lexicon."""
    return (lexicon or DEFAULT_LEXICON).resolve(label)


def rollup_areas(
    regions: Mapping[str, int],
    lexicon: Optional[RegionLexicon] = None,
) -> Tuple[list, Dict[str, int], list]:
    """
    Aggregate a raw region breakdown per panel area.
    Returns (affected_areas in first-appearance order, volume_by_area, unmapped labels).
    """
    lexicon  = lexicon or DEFAULT_LEXICON
    areas:    list           = []
    volume:   Dict[str, int] = {}
    unmapped: list           = []

    for label, count in regions.items():
        area = lexicon.resolve(label)
        if area is None:
            unmapped.append(label)
            continue
        if area not in areas:
            areas.append(area)
        volume[area] = volume.get(area, 0) + count

    return areas, volume, unmapped


def known_region_names(extra: Iterable[str] = ()) -> Tuple[str, ...]:
    return tuple(dict.fromkeys([*KNOWN_REGIONS, *extra]))
