"""
FastAPI application for the combination selector
Exposes grouping, combination generation, session control and the bet log
"""

from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional
import logging

import numpy as np

from backend.models import Base, engine, get_db
from backend.auth import verify_api_key, verify_admin_api_key
from backend.core.combinatorics import binomial_coefficient, resolve_target_split, total_combinations
from backend.core.errors import (
    EmptyInputError,
    InvalidSelectionError,
    InvalidSplitError,
    SelectorError,
    SessionExhaustedError,
    SessionNotFoundError,
    SessionStateError,
)
from backend.services.bet_log import clear_logs, list_logs, log_combination, set_result
from backend.services.combination_engine import generate
from backend.services.match_grouper import group_matches_with_report
from backend.services.session_selector import (
    SessionManager,
    get_session_manager,
    session_summary,
)
from backend.schemas import (
    BetLogEntryOut,
    BetResultUpdate,
    CountRequest,
    CountResponse,
    GenerateRequest,
    GenerateResponse,
    GroupRequest,
    GroupResponse,
    NextPickRequest,
    OutcomeReport,
    PickNextResponse,
    SessionStartRequest,
    SplitRequest,
)

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

APP_VERSION = "1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting combination selector")
    Base.metadata.create_all(bind=engine)

    yield

    manager = get_session_manager()
    running = manager.active_session()
    if running is not None:
        logger.warning("Shutting down with session %s still running; terminating", running.session_id)
        manager.terminate(running.session_id)
    logger.info("Shutting down combination selector")


app = FastAPI(
    title="Combination Selector",
    description="Split-constrained, never-repeating pick combinations",
    version=APP_VERSION,
    lifespan=lifespan,
)

# CORS (adjust origins for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _check_split(n: int, payload: SplitRequest, favorites_ratio: float):
    """Resolve the requested split, rejecting adjustments in strict mode."""
    split = resolve_target_split(
        n, payload.target_favorites, payload.target_underdogs, favorites_ratio=favorites_ratio
    )
    if payload.strict_split and split.warnings:
        raise InvalidSplitError(
            "; ".join(split.warnings),
            requested={
                "favorites": payload.target_favorites,
                "underdogs": payload.target_underdogs,
                "matches": n,
            },
            resolved={"favorites": split.favorites, "underdogs": split.underdogs},
        )
    return split


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {
        "app": "Combination Selector",
        "version": APP_VERSION,
        "status": "operational",
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.get("/health")
async def health_check(
    db: Session = Depends(get_db),
    manager: SessionManager = Depends(get_session_manager),
):
    """Health check endpoint"""
    health = {"status": "healthy", "database": "connected", "active_session": None}

    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check database error: %s", e)
        health["status"] = "degraded"
        health["database"] = f"error: {str(e)}"

    running = manager.active_session()
    if running is not None:
        health["active_session"] = running.session_id

    return health


# ============================================================================
# AUTHENTICATED ENDPOINTS - MATCHES & COMBINATIONS
# ============================================================================

@app.post("/api/matches/group", response_model=GroupResponse)
async def group_match_records(
    payload: GroupRequest,
    user: str = Depends(verify_api_key),
):
    """Group raw side records into favorite/underdog units."""
    units, report = group_matches_with_report(payload.matches)
    return {
        "units": [u.to_dict() for u in units.values()],
        "input_records": report.input_records,
        "dropped_live": report.dropped_live,
        "dropped_malformed": report.dropped_malformed,
        "dropped_duplicates": report.dropped_duplicates,
        "synthesized_sides": report.synthesized_sides,
    }


@app.post("/api/combinations/count", response_model=CountResponse)
async def count_combinations(
    payload: CountRequest,
    user: str = Depends(verify_api_key),
    manager: SessionManager = Depends(get_session_manager),
):
    """Number of split-satisfying combinations for the usable matches."""
    units, _ = group_matches_with_report(payload.matches)
    n = len(units)
    split = _check_split(n, payload, manager.config.favorites_ratio)
    return {
        "matches": n,
        "target_favorites": split.favorites,
        "target_underdogs": split.underdogs,
        "valid_combinations": binomial_coefficient(n, split.favorites) if n else 0,
        "total_combinations": total_combinations(n),
        "warnings": list(split.warnings),
    }


@app.post("/api/combinations/generate", response_model=GenerateResponse)
async def generate_combinations(
    payload: GenerateRequest,
    user: str = Depends(verify_api_key),
    manager: SessionManager = Depends(get_session_manager),
):
    """Generate combinations outside any session (stateless)."""
    cfg = manager.config
    units, _ = group_matches_with_report(payload.matches)
    if units:
        _check_split(len(units), payload, cfg.favorites_ratio)

    result = generate(
        units,
        payload.stake if payload.stake is not None else cfg.stake_amount,
        previous_keys=set(payload.previous_keys),
        max_combinations=payload.max_combinations,
        target_favorites=payload.target_favorites,
        target_underdogs=payload.target_underdogs,
        payout_cap=payload.payout_cap,
        config=cfg,
        rng=np.random.default_rng(payload.seed),
    )
    return {
        "status": result.status.value,
        "combinations": [c.to_dict() for c in result.combinations],
        "stats": result.stats.to_dict(),
        "warnings": result.warnings,
    }


# ============================================================================
# AUTHENTICATED ENDPOINTS - SESSIONS
# ============================================================================

@app.post("/api/sessions")
async def start_betting_session(
    payload: SessionStartRequest,
    user: str = Depends(verify_api_key),
    manager: SessionManager = Depends(get_session_manager),
):
    """Start a session; only one may run at a time."""
    session = manager.start(
        payload.matches,
        stake=payload.stake,
        target_favorites=payload.target_favorites,
        target_underdogs=payload.target_underdogs,
        strict_split=payload.strict_split,
    )
    logger.info("Session %s started by %s", session.session_id, user)
    return session_summary(session)


@app.get("/api/sessions/active")
async def get_active_session(
    user: str = Depends(verify_api_key),
    manager: SessionManager = Depends(get_session_manager),
):
    running = manager.active_session()
    if running is None:
        raise HTTPException(status_code=404, detail="No session running")
    return session_summary(running)


@app.get("/api/sessions/{session_id}")
async def get_session_status(
    session_id: str,
    user: str = Depends(verify_api_key),
    manager: SessionManager = Depends(get_session_manager),
):
    return session_summary(manager.get(session_id))


@app.post("/api/sessions/{session_id}/next", response_model=PickNextResponse)
async def pick_next_combination(
    session_id: str,
    payload: Optional[NextPickRequest] = None,
    user: str = Depends(verify_api_key),
    manager: SessionManager = Depends(get_session_manager),
):
    """Return the next unused combination, or exhausted=true when none is left."""
    max_attempts = payload.max_attempts if payload else None
    result = manager.next(session_id, max_attempts=max_attempts)
    session = manager.get(session_id)
    return {
        "session_id": session_id,
        "exhausted": result.exhausted,
        "attempts": result.attempts,
        "combination": result.combination.to_dict() if result.combination else None,
        "reason": result.reason,
        "remaining_combinations": session.remaining_combinations,
    }


@app.post("/api/sessions/{session_id}/outcome")
async def report_outcome(
    session_id: str,
    payload: OutcomeReport,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
    manager: SessionManager = Depends(get_session_manager),
):
    """Record the submission result for a picked combination."""
    session = manager.get(session_id)
    record = manager.record(session_id, payload.key, payload.success, detail=payload.detail)

    log_id = None
    combination = session.issued.get(payload.key)
    if combination is not None:
        entry = log_combination(
            db, session_id, combination, session.stake,
            submitted=payload.success, notes=payload.detail,
        )
        log_id = entry.id

    return {
        "session_id": session_id,
        "key": record.key,
        "success": record.success,
        "log_id": log_id,
        "completed_bets": len(session.completed_bets),
        "failed_bets": len(session.failed_bets),
    }


@app.post("/api/sessions/{session_id}/stop")
async def stop_betting_session(
    session_id: str,
    user: str = Depends(verify_api_key),
    manager: SessionManager = Depends(get_session_manager),
):
    return manager.stop(session_id)


@app.post("/api/sessions/{session_id}/terminate")
async def terminate_betting_session(
    session_id: str,
    user: str = Depends(verify_api_key),
    manager: SessionManager = Depends(get_session_manager),
):
    return manager.terminate(session_id)


# ============================================================================
# AUTHENTICATED ENDPOINTS - BET LOG
# ============================================================================

@app.get("/api/bets/log", response_model=List[BetLogEntryOut])
async def get_bet_log(
    session_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Logged combinations, newest first."""
    return list_logs(db, session_id=session_id, limit=limit)


@app.put("/api/bets/log/{log_id}/result", response_model=BetLogEntryOut)
async def update_bet_result(
    log_id: int,
    payload: BetResultUpdate,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    entry = set_result(db, log_id, payload.result)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Log entry {log_id} not found")
    return entry


@app.delete("/api/bets/log")
async def delete_bet_log(
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    removed = clear_logs(db)
    return {"message": "Bet log cleared", "removed": removed}


# ============================================================================
# ERROR HANDLERS
# ============================================================================

_ERROR_STATUS = {
    SessionNotFoundError: 404,
    SessionStateError: 409,
    SessionExhaustedError: 409,
    InvalidSplitError: 422,
    EmptyInputError: 422,
    InvalidSelectionError: 422,
}


@app.exception_handler(SelectorError)
async def selector_error_handler(request, exc: SelectorError):
    """Map domain errors to HTTP status codes"""
    status_code = next(
        (code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)), 400
    )
    logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
