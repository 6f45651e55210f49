"""
Split-constrained combination engine.

Produces combinations that take exactly one pick from every match unit, with
an exact number of favorite picks, a summed potential return at or below the
payout cap, and a key that is new relative to the caller's history.

Two strategies share one filtering path:

    exhaustive  (n <= exhaustive_threshold)
        Walks bitmasks ``i`` in increasing order where bit ``j`` selects the
        underdog (1) or favorite (0) of unit ``j``.  Only masks with exactly
        ``n - k`` set bits can satisfy the split, so they are generated
        directly (Gosper's hack) instead of testing all ``2 ** n`` integers.
        The visiting order is identical to the full scan.

    randomized  (n > exhaustive_threshold)
        Up to ``min(max_random_attempts, C(n, k))`` uniform permutations of
        the unit indices; the first ``k`` contribute their favorite.  This is
        a sampling approximation: combinations can be drawn twice or missed.

Potential return uses the additive single-bets model::

    potential_return = sum(stake * pick.odds_decimal for pick in players)

Run tests with::

    pytest tests/test_combination_engine.py -v
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Collection, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

import numpy as np

from backend.core.combinatorics import (
    TargetSplit,
    binomial_coefficient,
    resolve_target_split,
    total_combinations,
)
from backend.core.errors import InvalidSelectionError
from backend.core.selector_config import SelectorConfig
from backend.services.match_grouper import MatchUnit, Pick, group_matches

logger = logging.getLogger(__name__)

# Separator between picks in a combination key ("m1:Alice|m2:Bob").
KEY_DELIMITER = "|"

STRATEGY_EXHAUSTIVE = "exhaustive"
STRATEGY_RANDOMIZED = "randomized"


class GenerationStatus(str, Enum):
    """Outcome of one engine call."""

    COMPLETE = "complete"    # requested count reached, or full space enumerated
    PARTIAL = "partial"      # some found, fewer than requested
    EXHAUSTED = "exhausted"  # none found
    EMPTY = "empty"          # no match units


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Combination:
    """One complete selection: exactly one pick per match unit."""

    players: tuple
    key: str
    favorite_count: int
    underdog_count: int
    potential_return: float

    @property
    def total_odds(self) -> float:
        """Accumulator-style product of odds (informational only)."""
        product = 1.0
        for pick in self.players:
            product *= pick.odds_decimal
        return product

    def to_dict(self) -> Dict[str, Any]:
        return {
            "players": [p.to_dict() for p in self.players],
            "key": self.key,
            "favorite_count": self.favorite_count,
            "underdog_count": self.underdog_count,
            "potential_return": round(self.potential_return, 6),
        }


@dataclass
class GenerationStats:
    """Informational counters.  Approximate for the randomized strategy."""

    total_matches: int = 0
    total_possible_combinations: int = 0
    valid_possible_combinations: int = 0
    combinations_generated: int = 0
    previously_used_combinations: int = 0
    remaining_combinations: int = 0
    rejected_over_cap: int = 0
    rejected_duplicates: int = 0
    candidates_examined: int = 0
    strategy: Optional[str] = None
    target_favorites: int = 0
    target_underdogs: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_matches": self.total_matches,
            "total_possible_combinations": self.total_possible_combinations,
            "valid_possible_combinations": self.valid_possible_combinations,
            "combinations_generated": self.combinations_generated,
            "previously_used_combinations": self.previously_used_combinations,
            "remaining_combinations": self.remaining_combinations,
            "rejected_over_cap": self.rejected_over_cap,
            "rejected_duplicates": self.rejected_duplicates,
            "candidates_examined": self.candidates_examined,
            "strategy": self.strategy,
            "target_favorites": self.target_favorites,
            "target_underdogs": self.target_underdogs,
        }


@dataclass
class GenerationResult:
    combinations: List[Combination]
    stats: GenerationStats
    status: GenerationStatus
    warnings: List[str] = field(default_factory=list)

    @property
    def found_none(self) -> bool:
        return not self.combinations


# ---------------------------------------------------------------------------
# Key, return and split helpers
# ---------------------------------------------------------------------------

def get_combination_key(players: Iterable[Pick]) -> str:
    """Canonical identity of a combination, independent of pick order.

    Picks are sorted by ``match_id`` and joined as ``match_id:participant``
    with ``|``.  Picks without a ``match_id`` are skipped with a warning.

    Raises:
        InvalidSelectionError: If no pick carries a ``match_id``.
    """
    players = list(players)
    valid = []
    for pick in players:
        if not getattr(pick, "match_id", None):
            logger.warning("Skipping pick without match_id in key generation: %r", pick)
            continue
        valid.append(pick)

    if not valid:
        raise InvalidSelectionError(
            "Cannot build a combination key: no pick has a match_id",
            pick_count=len(players),
        )

    valid.sort(key=lambda p: (p.match_id, p.participant_name))
    return KEY_DELIMITER.join(f"{p.match_id}:{p.participant_name}" for p in valid)


def calculate_potential_return(players: Iterable[Pick], stake: float) -> float:
    """Sum of ``stake * odds`` over picks (single bets, not an accumulator).

    Picks whose odds are not numeric contribute nothing.
    """
    total = 0.0
    for pick in players:
        try:
            odds = float(pick.odds_decimal)
        except (TypeError, ValueError):
            continue
        if odds != odds:  # NaN
            continue
        total += stake * odds
    return total


def is_valid_split(players: Sequence[Pick], target_favorites: int) -> bool:
    """True when exactly ``target_favorites`` of the picks are favorites."""
    if not players:
        return False
    favorites = sum(1 for p in players if p.is_favorite)
    return favorites == target_favorites


def _ordered_units(match_units: Union[Mapping[str, MatchUnit], Iterable[MatchUnit]]) -> List[MatchUnit]:
    units = list(match_units.values()) if isinstance(match_units, Mapping) else list(match_units)
    units.sort(key=lambda u: u.match_id)
    return units


def _pick_side(unit: MatchUnit, want_favorite: bool) -> Pick:
    """Return the unit's favorite or underdog, relabelling if that side is missing."""
    for pick in unit.picks:
        if pick.is_favorite == want_favorite:
            return pick
    logger.warning(
        "Match %s has no %s pick; using %s relabelled",
        unit.match_id,
        "favorite" if want_favorite else "underdog",
        unit.picks[0].participant_name,
    )
    return replace(unit.picks[0], is_favorite=want_favorite)


def _masks_with_bits(n: int, bits: int) -> Iterator[int]:
    """Yield every ``n``-bit mask with exactly ``bits`` set bits, ascending."""
    if bits < 0 or bits > n:
        return
    if bits == 0:
        yield 0
        return
    mask = (1 << bits) - 1
    limit = 1 << n
    while mask < limit:
        yield mask
        lowest = mask & -mask
        ripple = mask + lowest
        mask = (((ripple ^ mask) >> 2) // lowest) | ripple


# ---------------------------------------------------------------------------
# Candidate streams
# ---------------------------------------------------------------------------

def _exhaustive_candidates(units: Sequence[MatchUnit], split: TargetSplit) -> Iterator[List[Pick]]:
    n = len(units)
    for mask in _masks_with_bits(n, split.underdogs):
        yield [units[j].picks[(mask >> j) & 1] for j in range(n)]


def _randomized_candidates(
    units: Sequence[MatchUnit],
    split: TargetSplit,
    attempts: int,
    rng: np.random.Generator,
) -> Iterator[List[Pick]]:
    n = len(units)
    for _ in range(attempts):
        order = rng.permutation(n)
        favorite_slots = set(int(i) for i in order[: split.favorites])
        yield [_pick_side(units[j], j in favorite_slots) for j in range(n)]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

def generate(
    match_units: Union[Mapping[str, MatchUnit], Iterable[MatchUnit]],
    stake: float,
    previous_keys: Collection[str] = (),
    max_combinations: Optional[int] = None,
    target_favorites: Optional[int] = None,
    target_underdogs: Optional[int] = None,
    payout_cap: Optional[float] = None,
    config: Optional[SelectorConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> GenerationResult:
    """
    Produce new combinations satisfying the favorite/underdog split.

    Args:
        match_units: ``match_id -> MatchUnit`` mapping from the grouper (or
            any iterable of units).  Units are processed in ``match_id`` order.
        stake: Stake per pick used for ``potential_return``.
        previous_keys: Keys already used; never re-emitted.
        max_combinations: Stop after this many accepted combinations
            (``None`` = no limit).
        target_favorites: Requested favorite picks (see
            :func:`~backend.core.combinatorics.resolve_target_split`).
        target_underdogs: Requested underdog picks.
        payout_cap: Overrides ``config.payout_cap`` when given.
        config: Engine thresholds; defaults to :meth:`SelectorConfig.standard`.
        rng: numpy Generator for the randomized strategy (seed it for
            reproducible sampling).

    Returns:
        :class:`GenerationResult` with combinations, stats, a status and any
        split warnings.
    """
    cfg = config or SelectorConfig.standard()
    cap = cfg.payout_cap if payout_cap is None else payout_cap
    previous = previous_keys if isinstance(previous_keys, (set, frozenset)) else set(previous_keys)

    units = _ordered_units(match_units)
    n = len(units)

    if n == 0:
        logger.info("No match units supplied; nothing to generate")
        return GenerationResult(combinations=[], stats=GenerationStats(), status=GenerationStatus.EMPTY)

    split = resolve_target_split(
        n, target_favorites, target_underdogs, favorites_ratio=cfg.favorites_ratio
    )
    for warning in split.warnings:
        logger.warning("Split adjusted: %s", warning)

    valid_possible = binomial_coefficient(n, split.favorites)
    strategy = STRATEGY_EXHAUSTIVE if n <= cfg.exhaustive_threshold else STRATEGY_RANDOMIZED

    logger.info(
        "Generating combinations for %d matches (%s): 2^%d = %d total, "
        "C(%d,%d) = %d valid, %d previously used",
        n, strategy, n, total_combinations(n), n, split.favorites, valid_possible, len(previous),
    )

    stats = GenerationStats(
        total_matches=n,
        total_possible_combinations=total_combinations(n),
        valid_possible_combinations=valid_possible,
        previously_used_combinations=len(previous),
        strategy=strategy,
        target_favorites=split.favorites,
        target_underdogs=split.underdogs,
    )

    if strategy == STRATEGY_EXHAUSTIVE:
        candidates = _exhaustive_candidates(units, split)
    else:
        attempts = min(cfg.max_random_attempts, valid_possible)
        candidates = _randomized_candidates(units, split, attempts, rng or np.random.default_rng())

    combinations: List[Combination] = []
    seen_this_call = set()

    for players in candidates:
        stats.candidates_examined += 1

        favorite_count = sum(1 for p in players if p.is_favorite)
        if favorite_count != split.favorites:
            continue

        key = get_combination_key(players)
        if key in previous or key in seen_this_call:
            stats.rejected_duplicates += 1
            continue

        potential_return = calculate_potential_return(players, stake)
        if potential_return > cap:
            stats.rejected_over_cap += 1
            continue

        combinations.append(Combination(
            players=tuple(players),
            key=key,
            favorite_count=favorite_count,
            underdog_count=n - favorite_count,
            potential_return=potential_return,
        ))
        seen_this_call.add(key)

        if max_combinations is not None and len(combinations) >= max_combinations:
            break

    stats.combinations_generated = len(combinations)
    stats.remaining_combinations = max(0, valid_possible - len(previous | seen_this_call))

    if not combinations:
        status = GenerationStatus.EXHAUSTED
    elif max_combinations is not None:
        status = GenerationStatus.COMPLETE if len(combinations) >= max_combinations else GenerationStatus.PARTIAL
    else:
        status = GenerationStatus.COMPLETE if strategy == STRATEGY_EXHAUSTIVE else GenerationStatus.PARTIAL

    logger.info(
        "Generated %d combinations (status=%s, over_cap=%d, duplicates=%d, remaining~%d)",
        len(combinations), status.value, stats.rejected_over_cap,
        stats.rejected_duplicates, stats.remaining_combinations,
    )

    return GenerationResult(
        combinations=combinations,
        stats=stats,
        status=status,
        warnings=list(split.warnings),
    )


def generate_from_matches(
    raw_matches: Iterable[Any],
    stake: float,
    previous_keys: Collection[str] = (),
    max_combinations: Optional[int] = None,
    target_favorites: Optional[int] = None,
    target_underdogs: Optional[int] = None,
    payout_cap: Optional[float] = None,
    config: Optional[SelectorConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> GenerationResult:
    """Group raw match records and run :func:`generate` on the result."""
    return generate(
        group_matches(raw_matches),
        stake,
        previous_keys=previous_keys,
        max_combinations=max_combinations,
        target_favorites=target_favorites,
        target_underdogs=target_underdogs,
        payout_cap=payout_cap,
        config=config,
        rng=rng,
    )


def count_valid_combinations(
    raw_matches: Iterable[Any],
    target_favorites: Optional[int] = None,
    target_underdogs: Optional[int] = None,
    favorites_ratio: Optional[float] = None,
) -> int:
    """Number of split-satisfying combinations for the usable matches.

    Live and malformed records are ignored; each ``match_id`` counts once.
    """
    n = len(group_matches(raw_matches))
    if n == 0:
        return 0
    ratio = SelectorConfig.standard().favorites_ratio if favorites_ratio is None else favorites_ratio
    split = resolve_target_split(n, target_favorites, target_underdogs, favorites_ratio=ratio)
    return binomial_coefficient(n, split.favorites)
