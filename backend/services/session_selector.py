"""
Session-scoped selection of never-repeating combinations.

A betting session walks the combination space one pick at a time:

    idle  --start-->  active  --pick_next-->  active  (key registered)
                        |                       |
                        +-------exhausted-------+   (space used up or retries spent)
    active|exhausted  --stop/terminate-->  idle     (state discarded)

Design decisions
----------------
* :class:`SessionState` is an explicit value owned by the caller and passed
  into :func:`pick_next`; there is no module-level running state in the core.
* ``used_keys`` only ever grows while the session is live.  Registration of
  an accepted key happens under the session lock, before ``pick_next``
  returns, so two interleaved callers cannot both claim the same key.
* Exhaustion is a typed outcome (``PickResult.exhausted``), not an
  exception.  Only :meth:`SessionManager.require_next` raises
  :class:`~backend.core.errors.SessionExhaustedError` for callers that want
  one.
* Failed *submissions* reported through :func:`record_outcome` do not free
  the key; the core retries uniqueness collisions only.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

import numpy as np

from backend.core.combinatorics import binomial_coefficient, resolve_target_split
from backend.core.errors import (
    EmptyInputError,
    InvalidSplitError,
    SessionExhaustedError,
    SessionNotFoundError,
    SessionStateError,
)
from backend.core.selector_config import SelectorConfig
from backend.services.combination_engine import (
    STRATEGY_EXHAUSTIVE,
    Combination,
    generate,
)
from backend.services.match_grouper import MatchUnit, group_matches_with_report

logger = logging.getLogger(__name__)

SESSION_IDLE = "idle"
SESSION_ACTIVE = "active"
SESSION_EXHAUSTED = "exhausted"


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class BetRecord:
    """Caller-reported result of submitting one combination."""

    key: str
    success: bool
    timestamp: datetime
    potential_return: Optional[float] = None
    favorite_count: Optional[int] = None
    underdog_count: Optional[int] = None
    detail: Optional[str] = None


@dataclass
class SessionState:
    """All mutable state for one betting session."""

    session_id: str
    stake: float
    match_units: Dict[str, MatchUnit]
    target_favorites: int
    target_underdogs: int
    valid_possible_combinations: int
    original_matches: List[Any] = field(default_factory=list)
    used_keys: Set[str] = field(default_factory=set)
    issued: Dict[str, Combination] = field(default_factory=dict)
    status: str = SESSION_ACTIVE
    completed_bets: List[BetRecord] = field(default_factory=list)
    failed_bets: List[BetRecord] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    split_warnings: List[str] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def is_active(self) -> bool:
        return self.status == SESSION_ACTIVE

    @property
    def remaining_combinations(self) -> int:
        return max(0, self.valid_possible_combinations - len(self.used_keys))


@dataclass
class PickResult:
    """Either a fresh combination or an exhausted signal."""

    combination: Optional[Combination]
    attempts: int
    exhausted: bool = False
    reason: Optional[str] = None

    @property
    def key(self) -> Optional[str]:
        return self.combination.key if self.combination else None


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def start_session(
    matches: Union[Iterable[Any], Mapping[str, MatchUnit]],
    stake: float,
    target_favorites: Optional[int] = None,
    target_underdogs: Optional[int] = None,
    config: Optional[SelectorConfig] = None,
    session_id: Optional[str] = None,
    strict_split: bool = False,
) -> SessionState:
    """
    Start a session (idle -> active) with an empty ``used_keys`` set.

    Args:
        matches: Raw match records, or an already-grouped
            ``match_id -> MatchUnit`` mapping.
        stake: Stake per pick.
        target_favorites: Requested favorite picks per combination.
        target_underdogs: Requested underdog picks per combination.
        config: Engine configuration (favorites ratio for the default split).
        session_id: Explicit id; a random hex id is generated otherwise.
        strict_split: Raise instead of rescaling an irreconcilable split.

    Raises:
        EmptyInputError: No usable matches.
        InvalidSplitError: ``strict_split`` and the split had to be adjusted.
        ValueError: Non-positive stake.
    """
    if stake <= 0:
        raise ValueError(f"stake must be positive, got {stake!r}")
    cfg = config or SelectorConfig.standard()

    if isinstance(matches, Mapping):
        units = dict(matches)
        original: List[Any] = list(units.values())
        dropped = 0
    else:
        original = list(matches)
        units, report = group_matches_with_report(original)
        dropped = report.dropped_total

    if not units:
        raise EmptyInputError("No usable (non-live, well-formed) matches to start a session", dropped=dropped)

    n = len(units)
    split = resolve_target_split(n, target_favorites, target_underdogs, favorites_ratio=cfg.favorites_ratio)
    if split.warnings and strict_split:
        raise InvalidSplitError(
            "; ".join(split.warnings),
            requested={"favorites": target_favorites, "underdogs": target_underdogs, "matches": n},
            resolved={"favorites": split.favorites, "underdogs": split.underdogs},
        )

    session = SessionState(
        session_id=session_id or uuid.uuid4().hex,
        stake=stake,
        match_units=units,
        target_favorites=split.favorites,
        target_underdogs=split.underdogs,
        valid_possible_combinations=binomial_coefficient(n, split.favorites),
        original_matches=original,
        split_warnings=list(split.warnings),
    )

    logger.info(
        "Session %s started: %d matches, split %d/%d, %d valid combinations, stake %.2f",
        session.session_id, n, split.favorites, split.underdogs,
        session.valid_possible_combinations, stake,
    )
    return session


def stop_session(session: SessionState) -> Dict[str, Any]:
    """Stop a session (active|exhausted -> idle) and discard its state.

    Returns the final :func:`session_summary` taken before the discard.
    """
    with session.lock:
        if session.status == SESSION_IDLE:
            raise SessionStateError(f"Session {session.session_id} is not running", status=session.status)
        summary = session_summary(session)
        _discard(session)
    logger.info(
        "Session %s stopped after %d picks (%d completed, %d failed)",
        summary["session_id"], summary["used_combinations"],
        summary["completed_bets"], summary["failed_bets"],
    )
    return summary


def terminate_session(session: SessionState) -> Dict[str, Any]:
    """Force a session to idle regardless of its current state."""
    with session.lock:
        summary = session_summary(session)
        _discard(session)
    logger.warning("Session %s terminated by caller", summary["session_id"])
    return summary


def _discard(session: SessionState) -> None:
    session.status = SESSION_IDLE
    session.used_keys.clear()
    session.issued.clear()
    session.match_units = {}
    session.original_matches = []


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def pick_next(
    match_units: Optional[Mapping[str, MatchUnit]],
    stake: Optional[float],
    session: SessionState,
    target_favorites: Optional[int] = None,
    target_underdogs: Optional[int] = None,
    max_attempts: Optional[int] = None,
    payout_cap: Optional[float] = None,
    config: Optional[SelectorConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> PickResult:
    """
    Return one combination never used in this session, or an exhausted signal.

    ``match_units``, ``stake`` and the targets default to the values stored on
    the session when ``None``.  The engine is asked for exactly one
    combination excluding ``session.used_keys``.  A returned key that still
    collides with ``used_keys`` is retried with fresh sampling up to
    ``max_attempts`` times.  The deterministic exhaustive strategy is not
    retried: if it finds nothing, nothing is left.

    Raises:
        SessionStateError: The session is idle (stopped or never started).
    """
    cfg = config or SelectorConfig.standard()
    attempts_allowed = max_attempts if max_attempts is not None else cfg.max_attempts
    if attempts_allowed < 1:
        raise ValueError(f"max_attempts must be >= 1, got {attempts_allowed!r}")

    with session.lock:
        if session.status == SESSION_IDLE:
            raise SessionStateError(
                f"Session {session.session_id} is idle; start a new session first",
                status=session.status,
            )

        units = session.match_units if match_units is None else match_units
        stake = session.stake if stake is None else stake
        favorites = session.target_favorites if target_favorites is None and target_underdogs is None else target_favorites

        if session.status == SESSION_EXHAUSTED:
            return PickResult(None, attempts=0, exhausted=True, reason="session already exhausted")

        if not units:
            session.status = SESSION_EXHAUSTED
            return PickResult(None, attempts=0, exhausted=True, reason="no match units")

        if match_units is None and target_favorites is None and target_underdogs is None:
            if len(session.used_keys) >= session.valid_possible_combinations:
                session.status = SESSION_EXHAUSTED
                logger.info(
                    "Session %s exhausted: all %d valid combinations used",
                    session.session_id, session.valid_possible_combinations,
                )
                return PickResult(None, attempts=0, exhausted=True, reason="all valid combinations used")

        attempts = 0
        while attempts < attempts_allowed:
            attempts += 1
            result = generate(
                units,
                stake,
                previous_keys=session.used_keys,
                max_combinations=1,
                target_favorites=favorites,
                target_underdogs=target_underdogs,
                payout_cap=payout_cap,
                config=cfg,
                rng=rng,
            )

            if result.combinations:
                combination = result.combinations[0]
                if combination.key in session.used_keys:
                    logger.info(
                        "Session %s: key collision on attempt %d/%d, resampling",
                        session.session_id, attempts, attempts_allowed,
                    )
                    continue
                session.used_keys.add(combination.key)
                session.issued[combination.key] = combination
                session.status = SESSION_ACTIVE
                logger.info(
                    "Session %s pick %d: %d fav / %d dog, return %.2f",
                    session.session_id, len(session.used_keys),
                    combination.favorite_count, combination.underdog_count,
                    combination.potential_return,
                )
                return PickResult(combination, attempts=attempts)

            if result.stats.strategy == STRATEGY_EXHAUSTIVE:
                break

        session.status = SESSION_EXHAUSTED
        logger.info(
            "Session %s exhausted after %d attempts (%d keys used)",
            session.session_id, attempts, len(session.used_keys),
        )
        return PickResult(None, attempts=attempts, exhausted=True, reason="no unused combination found")


# ---------------------------------------------------------------------------
# Bookkeeping
# ---------------------------------------------------------------------------

def record_outcome(
    session: SessionState,
    combination: Union[Combination, str],
    success: bool,
    detail: Optional[str] = None,
) -> BetRecord:
    """Record the caller's submission result for a picked combination.

    ``combination`` may be the :class:`Combination` itself or its key; a key
    is resolved against the combinations this session has issued.
    """
    if isinstance(combination, str) and combination in session.issued:
        combination = session.issued[combination]

    if isinstance(combination, Combination):
        record = BetRecord(
            key=combination.key,
            success=success,
            timestamp=datetime.utcnow(),
            potential_return=combination.potential_return,
            favorite_count=combination.favorite_count,
            underdog_count=combination.underdog_count,
            detail=detail,
        )
    else:
        record = BetRecord(key=combination, success=success, timestamp=datetime.utcnow(), detail=detail)

    with session.lock:
        if session.status == SESSION_IDLE:
            raise SessionStateError(f"Session {session.session_id} is not running", status=session.status)
        if record.key not in session.used_keys:
            logger.warning("Session %s: outcome reported for unknown key %s", session.session_id, record.key)
        (session.completed_bets if success else session.failed_bets).append(record)

    return record


def session_summary(session: SessionState) -> Dict[str, Any]:
    """Snapshot of session progress for status displays and stop/terminate."""
    completed = session.completed_bets
    with_counts = [b for b in completed if b.favorite_count is not None and b.underdog_count is not None]
    favorite_pct = None
    if with_counts:
        favorite_pct = sum(
            b.favorite_count / (b.favorite_count + b.underdog_count) for b in with_counts
        ) / len(with_counts) * 100.0

    return {
        "session_id": session.session_id,
        "status": session.status,
        "matches": len(session.match_units),
        "stake": session.stake,
        "target_favorites": session.target_favorites,
        "target_underdogs": session.target_underdogs,
        "valid_combinations": session.valid_possible_combinations,
        "used_combinations": len(session.used_keys),
        "remaining_combinations": session.remaining_combinations,
        "completed_bets": len(completed),
        "failed_bets": len(session.failed_bets),
        "average_favorite_pct": round(favorite_pct, 2) if favorite_pct is not None else None,
        "started_at": session.started_at.isoformat(),
        "split_warnings": list(session.split_warnings),
    }


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class SessionManager:
    """
    Registry of sessions for hosts that address sessions by id (the HTTP API).

    Only one session may be active at a time; a stopped session is removed.
    """

    def __init__(self, config: Optional[SelectorConfig] = None):
        self.config = config or SelectorConfig.from_env()
        self._sessions: Dict[str, SessionState] = {}
        self._lock = threading.Lock()

    def start(
        self,
        matches: Iterable[Any],
        stake: Optional[float] = None,
        target_favorites: Optional[int] = None,
        target_underdogs: Optional[int] = None,
        strict_split: bool = False,
    ) -> SessionState:
        with self._lock:
            running = self._find_active()
            if running is not None:
                raise SessionStateError(
                    f"Session {running.session_id} is already running", status=running.status
                )
            session = start_session(
                matches,
                stake if stake is not None else self.config.stake_amount,
                target_favorites=target_favorites,
                target_underdogs=target_underdogs,
                config=self.config,
                strict_split=strict_split,
            )
            self._sessions[session.session_id] = session
            return session

    def get(self, session_id: str) -> SessionState:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def active_session(self) -> Optional[SessionState]:
        with self._lock:
            return self._find_active()

    def _find_active(self) -> Optional[SessionState]:
        # caller holds self._lock
        for session in self._sessions.values():
            if session.status != SESSION_IDLE:
                return session
        return None

    def next(self, session_id: str, max_attempts: Optional[int] = None) -> PickResult:
        return pick_next(None, None, self.get(session_id), max_attempts=max_attempts, config=self.config)

    def require_next(self, session_id: str, max_attempts: Optional[int] = None) -> Combination:
        """Like :meth:`next` but raises when the session is exhausted."""
        result = self.next(session_id, max_attempts=max_attempts)
        if result.exhausted:
            session = self.get(session_id)
            raise SessionExhaustedError(
                session_id, used=len(session.used_keys), valid=session.valid_possible_combinations
            )
        return result.combination

    def record(self, session_id: str, key: str, success: bool, detail: Optional[str] = None) -> BetRecord:
        return record_outcome(self.get(session_id), key, success, detail=detail)

    def stop(self, session_id: str) -> Dict[str, Any]:
        session = self.get(session_id)
        summary = stop_session(session)
        with self._lock:
            self._sessions.pop(session_id, None)
        return summary

    def terminate(self, session_id: str) -> Dict[str, Any]:
        session = self.get(session_id)
        summary = terminate_session(session)
        with self._lock:
            self._sessions.pop(session_id, None)
        return summary

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_session_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager
