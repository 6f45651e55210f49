"""
Match grouping: raw per-side match records -> one binary-choice unit per match.

The match-acquisition layer hands over one record per *selected side* of a
match, so a single ``match_id`` can appear once (only one side selected) or
twice (both sides captured).  This module:

    1. Drops live matches and records with no match id or participant name.
    2. Groups the remainder by ``match_id``.
    3. Synthesizes the missing side for single-sided matches by swapping the
       participant/opponent fields and inverting the favorite flag.
    4. Orders each unit as ``(favorite, underdog)`` with
       ``favorite.odds_decimal <= underdog.odds_decimal``.

Grouping never raises on bad records; they are skipped and counted.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

# Odds used when a side's price is missing or unparseable (even money).
DEFAULT_ODDS = 2.0

# Accepted spellings for each raw field.  The first key present wins.
_FIELD_ALIASES = {
    "match_id": ("match_id", "matchId"),
    "participant_name": ("participant_name", "participantName", "selectedTeam"),
    "opponent_name": ("opponent_name", "opponentName", "opponentTeam"),
    "odds_decimal": ("odds_decimal", "oddsDecimal", "odds"),
    "opponent_odds_decimal": ("opponent_odds_decimal", "opponentOddsDecimal", "otherTeamOdds"),
    "is_favorite": ("is_favorite", "isFavorite"),
    "is_live": ("is_live", "isLive"),
}


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Pick:
    """One selectable side of a match."""

    match_id: str
    participant_name: str
    odds_decimal: float
    is_favorite: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "match_id": self.match_id,
            "participant_name": self.participant_name,
            "odds_decimal": self.odds_decimal,
            "is_favorite": self.is_favorite,
        }


@dataclass(frozen=True)
class MatchUnit:
    """Both candidate picks for one match, favorite first."""

    match_id: str
    picks: Tuple[Pick, Pick]

    @property
    def favorite(self) -> Pick:
        return self.picks[0]

    @property
    def underdog(self) -> Pick:
        return self.picks[1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "match_id": self.match_id,
            "picks": [p.to_dict() for p in self.picks],
        }


@dataclass
class GroupingReport:
    """Counts of what the grouper kept, dropped and synthesized."""

    input_records: int = 0
    units: int = 0
    dropped_live: int = 0
    dropped_malformed: int = 0
    dropped_duplicates: int = 0
    synthesized_sides: int = 0
    duplicate_match_ids: List[str] = field(default_factory=list)

    @property
    def dropped_total(self) -> int:
        return self.dropped_live + self.dropped_malformed + self.dropped_duplicates


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _get(record: Mapping[str, Any], name: str) -> Any:
    for key in _FIELD_ALIASES[name]:
        if key in record and record[key] is not None:
            return record[key]
    return None


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_odds(value: Any) -> Optional[float]:
    """Parse a decimal odds value; ``None`` for missing, non-numeric or non-positive."""
    if value is None or isinstance(value, bool):
        return None
    try:
        odds = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(odds) or math.isinf(odds) or odds <= 0:
        return None
    return odds


def _as_mapping(record: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(record, Mapping):
        return record
    # pydantic models from the API layer
    if hasattr(record, "model_dump"):
        return record.model_dump()
    return None


# ---------------------------------------------------------------------------
# Unit construction
# ---------------------------------------------------------------------------

@dataclass
class _Side:
    name: str
    odds: Optional[float]
    is_favorite: bool
    opponent_name: Optional[str]
    opponent_odds: Optional[float]
    seen_order: int


def _order_unit(match_id: str, first: _Side, second: _Side) -> MatchUnit:
    """Build a unit with the favorite first.

    The supplied favorite flags are kept when they are complementary and agree
    with the odds.  Otherwise the lower-odds side becomes the favorite, with
    ties going to the side seen first.
    """
    odds_a = first.odds if first.odds is not None else DEFAULT_ODDS
    odds_b = second.odds if second.odds is not None else DEFAULT_ODDS

    flags_complementary = first.is_favorite != second.is_favorite
    if flags_complementary:
        fav, dog = (first, second) if first.is_favorite else (second, first)
        fav_odds, dog_odds = (odds_a, odds_b) if first.is_favorite else (odds_b, odds_a)
        if fav_odds > dog_odds:
            logger.debug(
                "Match %s: favorite flag disagrees with odds (%.2f > %.2f); ordering by odds",
                match_id, fav_odds, dog_odds,
            )
            flags_complementary = False

    if not flags_complementary:
        ranked = sorted(
            [(odds_a, first.seen_order, first), (odds_b, second.seen_order, second)],
            key=lambda item: (item[0], item[1]),
        )
        (fav_odds, _, fav), (dog_odds, _, dog) = ranked

    return MatchUnit(
        match_id=match_id,
        picks=(
            Pick(match_id, fav.name, fav_odds, True),
            Pick(match_id, dog.name, dog_odds, False),
        ),
    )


def _synthesize_opponent(side: _Side) -> _Side:
    return _Side(
        name=side.opponent_name or f"{side.name} opponent",
        odds=side.opponent_odds if side.opponent_odds is not None else DEFAULT_ODDS,
        is_favorite=not side.is_favorite,
        opponent_name=side.name,
        opponent_odds=side.odds,
        seen_order=side.seen_order + 1,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def group_matches_with_report(
    raw_matches: Iterable[Any],
) -> Tuple[Dict[str, MatchUnit], GroupingReport]:
    """Group raw records into match units and report what was dropped.

    Args:
        raw_matches: Iterable of mappings (or pydantic models) carrying
            ``match_id``, ``participant_name``, ``opponent_name``,
            ``odds_decimal``, ``opponent_odds_decimal``, ``is_favorite`` and
            ``is_live``.  camelCase spellings are accepted too.

    Returns:
        ``(units, report)`` where ``units`` maps ``match_id`` to
        :class:`MatchUnit` in first-seen order.
    """
    report = GroupingReport()
    sides_by_match: Dict[str, List[_Side]] = {}
    order = 0

    for raw in raw_matches:
        report.input_records += 1
        record = _as_mapping(raw)
        if record is None:
            report.dropped_malformed += 1
            logger.debug("Skipping non-mapping match record: %r", raw)
            continue

        if bool(_get(record, "is_live")):
            report.dropped_live += 1
            continue

        match_id = _clean_text(_get(record, "match_id"))
        name = _clean_text(_get(record, "participant_name"))
        if match_id is None or name is None:
            report.dropped_malformed += 1
            logger.debug(
                "Skipping malformed match record (match_id=%r, participant=%r)",
                match_id, name,
            )
            continue

        odds = parse_odds(_get(record, "odds_decimal"))
        if odds is None and _get(record, "odds_decimal") is not None:
            logger.warning(
                "Match %s: unusable odds %r for %s; defaulting to %.1f",
                match_id, _get(record, "odds_decimal"), name, DEFAULT_ODDS,
            )

        side = _Side(
            name=name,
            odds=odds,
            is_favorite=bool(_get(record, "is_favorite")),
            opponent_name=_clean_text(_get(record, "opponent_name")),
            opponent_odds=parse_odds(_get(record, "opponent_odds_decimal")),
            seen_order=order,
        )
        order += 2

        existing = sides_by_match.setdefault(match_id, [])
        if len(existing) >= 2 or any(s.name == name for s in existing):
            report.dropped_duplicates += 1
            report.duplicate_match_ids.append(match_id)
            continue
        existing.append(side)

    units: Dict[str, MatchUnit] = {}
    for match_id, sides in sides_by_match.items():
        if len(sides) == 1:
            sides.append(_synthesize_opponent(sides[0]))
            report.synthesized_sides += 1
        units[match_id] = _order_unit(match_id, sides[0], sides[1])

    report.units = len(units)

    if report.dropped_total:
        log = logger.warning if report.dropped_malformed else logger.info
        log(
            "Grouped %d records into %d matches; dropped %d (live=%d, malformed=%d, duplicate=%d)",
            report.input_records, report.units, report.dropped_total,
            report.dropped_live, report.dropped_malformed, report.dropped_duplicates,
        )
    else:
        logger.info("Grouped %d records into %d matches", report.input_records, report.units)

    return units, report


def group_matches(raw_matches: Iterable[Any]) -> Dict[str, MatchUnit]:
    """Group raw records into ``match_id -> MatchUnit``.

    Empty or entirely-live input yields ``{}``; callers treat zero units as
    "no combinations possible".
    """
    units, _ = group_matches_with_report(raw_matches)
    return units
