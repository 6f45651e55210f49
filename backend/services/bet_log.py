"""
Bet log: persisted history of combinations handed to the wager-submission layer.

Rows are written when the caller reports a submission outcome for a session
pick.  The log is independent of session lifetime, so it survives stop and
terminate.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from backend.models import BetCombinationLog
from backend.services.combination_engine import Combination

logger = logging.getLogger(__name__)


def log_combination(
    db: Session,
    session_id: str,
    combination: Combination,
    stake: float,
    submitted: bool,
    notes: Optional[str] = None,
    variation_type: str = "auto",
) -> BetCombinationLog:
    """Persist one combination and its submission result."""
    entry = BetCombinationLog(
        session_id=session_id,
        combination_key=combination.key,
        variation_type=variation_type,
        stake=stake,
        potential_return=combination.potential_return,
        favorite_count=combination.favorite_count,
        underdog_count=combination.underdog_count,
        selections=[p.to_dict() for p in combination.players],
        submitted=submitted,
        notes=notes,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)

    logger.info(
        "Logged combination for session %s (submitted=%s, return %.2f)",
        session_id, submitted, combination.potential_return,
    )
    return entry


def list_logs(
    db: Session,
    session_id: Optional[str] = None,
    limit: int = 100,
) -> List[BetCombinationLog]:
    """Return log entries newest first, optionally for one session."""
    query = db.query(BetCombinationLog)
    if session_id:
        query = query.filter(BetCombinationLog.session_id == session_id)
    return (
        query.order_by(BetCombinationLog.timestamp.desc(), BetCombinationLog.id.desc())
        .limit(limit)
        .all()
    )


def set_result(db: Session, log_id: int, result: str) -> Optional[BetCombinationLog]:
    """Mark a logged combination as won or lost."""
    if result not in ("win", "loss"):
        raise ValueError(f"result must be 'win' or 'loss', got {result!r}")
    entry = db.query(BetCombinationLog).filter(BetCombinationLog.id == log_id).first()
    if entry is None:
        return None
    entry.result = result
    db.commit()
    db.refresh(entry)
    return entry


def clear_logs(db: Session) -> int:
    """Delete every log entry.  Returns the number removed."""
    removed = db.query(BetCombinationLog).delete()
    db.commit()
    logger.warning("Cleared %d bet log entries", removed)
    return removed
