"""
Pydantic request/response schemas for the combination selector API.

The input contract from the match-acquisition layer and the output contract
to the wager-submission layer are both defined here, so OpenAPI docs describe
exactly what crosses the boundary.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Input contract
# ---------------------------------------------------------------------------

class RawMatchIn(BaseModel):
    """
    One captured side of a match.

    ``match_id`` and ``participant_name`` are optional here on purpose:
    malformed records are dropped (and counted) by the grouper instead of
    failing the whole request.
    """

    model_config = ConfigDict(populate_by_name=True)

    match_id: Optional[str] = Field(None, alias="matchId")
    participant_name: Optional[str] = Field(None, alias="participantName")
    opponent_name: Optional[str] = Field(None, alias="opponentName")
    # Unparseable odds are passed through; the grouper defaults them to 2.0
    odds_decimal: Optional[Union[float, str]] = Field(None, alias="oddsDecimal")
    opponent_odds_decimal: Optional[Union[float, str]] = Field(None, alias="opponentOddsDecimal")
    is_favorite: bool = Field(False, alias="isFavorite")
    is_live: bool = Field(False, alias="isLive")

    @field_validator("match_id", "participant_name", "opponent_name", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Optional[str]:
        if isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            return str(v)
        return v if isinstance(v, str) else None

    @field_validator("odds_decimal", "opponent_odds_decimal", mode="before")
    @classmethod
    def keep_loose_odds(cls, v: Any) -> Any:
        if isinstance(v, bool) or not isinstance(v, (int, float, str)):
            return None
        return v


class SplitRequest(BaseModel):
    """Optional favorite/underdog counts shared by several requests."""

    target_favorites: Optional[int] = Field(None, ge=0)
    target_underdogs: Optional[int] = Field(None, ge=0)
    strict_split: bool = Field(
        False, description="Reject (422) instead of rescaling an irreconcilable split"
    )


class GroupRequest(BaseModel):
    matches: List[RawMatchIn]


class CountRequest(SplitRequest):
    matches: List[RawMatchIn]


class GenerateRequest(SplitRequest):
    """Payload for POST /api/combinations/generate."""

    matches: List[RawMatchIn]
    stake: Optional[float] = Field(None, gt=0, description="Stake per pick; config default if omitted")
    previous_keys: List[str] = Field(default_factory=list)
    max_combinations: int = Field(100, ge=1, le=10_000)
    payout_cap: Optional[float] = Field(None, gt=0)
    seed: Optional[int] = Field(None, description="Seed for the randomized strategy")

    model_config = {
        "json_schema_extra": {
            "example": {
                "matches": [
                    {"matchId": "m1", "participantName": "Alcaraz", "opponentName": "Sinner",
                     "oddsDecimal": 1.8, "opponentOddsDecimal": 2.1, "isFavorite": True},
                    {"matchId": "m2", "participantName": "Swiatek", "opponentName": "Gauff",
                     "oddsDecimal": 1.4, "opponentOddsDecimal": 3.0, "isFavorite": True},
                ],
                "stake": 0.10,
                "max_combinations": 10,
            }
        }
    }


class SessionStartRequest(SplitRequest):
    """Payload for POST /api/sessions."""

    matches: List[RawMatchIn]
    stake: Optional[float] = Field(None, gt=0)


class NextPickRequest(BaseModel):
    max_attempts: Optional[int] = Field(None, ge=1, le=1000)


class OutcomeReport(BaseModel):
    """Payload for POST /api/sessions/{session_id}/outcome."""

    key: str = Field(..., min_length=1)
    success: bool
    detail: Optional[str] = Field(None, max_length=1000)


class BetResultUpdate(BaseModel):
    result: Literal["win", "loss"]


# ---------------------------------------------------------------------------
# Output contract
# ---------------------------------------------------------------------------

class PickOut(BaseModel):
    match_id: str
    participant_name: str
    odds_decimal: float
    is_favorite: bool


class MatchUnitOut(BaseModel):
    match_id: str
    picks: List[PickOut]


class GroupResponse(BaseModel):
    units: List[MatchUnitOut]
    input_records: int
    dropped_live: int
    dropped_malformed: int
    dropped_duplicates: int
    synthesized_sides: int


class CombinationOut(BaseModel):
    players: List[PickOut]
    key: str
    favorite_count: int
    underdog_count: int
    potential_return: float


class GenerateResponse(BaseModel):
    status: str
    combinations: List[CombinationOut]
    stats: Dict[str, Any]
    warnings: List[str]


class CountResponse(BaseModel):
    matches: int
    target_favorites: int
    target_underdogs: int
    valid_combinations: int
    total_combinations: int
    warnings: List[str]


class PickNextResponse(BaseModel):
    session_id: str
    exhausted: bool
    attempts: int
    combination: Optional[CombinationOut] = None
    reason: Optional[str] = None
    remaining_combinations: int


class BetLogEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    session_id: str
    timestamp: Any
    combination_key: str
    variation_type: Optional[str] = None
    stake: float
    potential_return: Optional[float] = None
    favorite_count: Optional[int] = None
    underdog_count: Optional[int] = None
    selections: Optional[List[Dict[str, Any]]] = None
    submitted: bool
    result: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def serialise_timestamp(cls, v: Any) -> Any:
        return v.isoformat() if hasattr(v, "isoformat") else v
