"""
Tests for match_grouper.py

Run with: pytest tests/test_match_grouper.py -v
"""

import pytest

from backend.schemas import RawMatchIn
from backend.services.match_grouper import (
    DEFAULT_ODDS,
    MatchUnit,
    Pick,
    group_matches,
    group_matches_with_report,
    parse_odds,
)


def _side(match_id, name, odds, is_favorite, opponent=None, opponent_odds=None, is_live=False):
    return {
        "match_id": match_id,
        "participant_name": name,
        "opponent_name": opponent,
        "odds_decimal": odds,
        "opponent_odds_decimal": opponent_odds,
        "is_favorite": is_favorite,
        "is_live": is_live,
    }


class TestTwoSidedMatches:
    """Both sides captured for the same match_id."""

    def test_groups_both_sides(self):
        units = group_matches([
            _side("m1", "Alcaraz", 1.5, True),
            _side("m1", "Sinner", 2.5, False),
        ])

        assert list(units) == ["m1"]
        unit = units["m1"]
        assert unit.favorite == Pick("m1", "Alcaraz", 1.5, True)
        assert unit.underdog == Pick("m1", "Sinner", 2.5, False)

    def test_underdog_listed_first_is_reordered(self):
        units = group_matches([
            _side("m1", "Sinner", 2.5, False),
            _side("m1", "Alcaraz", 1.5, True),
        ])
        assert units["m1"].favorite.participant_name == "Alcaraz"
        assert units["m1"].underdog.participant_name == "Sinner"

    def test_flags_disagreeing_with_odds_follow_odds(self):
        units = group_matches([
            _side("m1", "A", 3.0, True),
            _side("m1", "B", 1.4, False),
        ])
        unit = units["m1"]
        assert unit.favorite.participant_name == "B"
        assert unit.favorite.is_favorite is True
        assert unit.underdog.participant_name == "A"
        assert unit.underdog.is_favorite is False

    def test_tied_odds_and_flags_go_to_first_seen(self):
        units = group_matches([
            _side("m1", "A", 1.9, True),
            _side("m1", "B", 1.9, True),
        ])
        assert units["m1"].favorite.participant_name == "A"

    def test_favorite_odds_never_exceed_underdog_odds(self):
        records = [
            _side("m1", "A", 1.2, False), _side("m1", "B", 4.0, True),
            _side("m2", "C", 2.0, True), _side("m2", "D", 2.0, False),
            _side("m3", "E", 1.8, True),
        ]
        for unit in group_matches(records).values():
            assert unit.favorite.odds_decimal <= unit.underdog.odds_decimal
            assert unit.favorite.is_favorite != unit.underdog.is_favorite


class TestSingleSidedMatches:
    """Opposite side synthesized from opponent fields."""

    def test_synthesizes_favorite_opponent(self):
        units, report = group_matches_with_report([
            _side("m1", "Gauff", 2.6, False, opponent="Swiatek", opponent_odds=1.5),
        ])

        unit = units["m1"]
        assert unit.favorite == Pick("m1", "Swiatek", 1.5, True)
        assert unit.underdog == Pick("m1", "Gauff", 2.6, False)
        assert report.synthesized_sides == 1

    def test_missing_opponent_odds_default_to_even(self):
        units = group_matches([_side("m1", "Rune", 1.7, True, opponent="Fritz")])
        unit = units["m1"]
        assert unit.favorite == Pick("m1", "Rune", 1.7, True)
        assert unit.underdog == Pick("m1", "Fritz", DEFAULT_ODDS, False)

    def test_missing_all_odds_keeps_flag(self):
        units = group_matches([_side("m1", "Rune", None, False, opponent="Fritz")])
        unit = units["m1"]
        assert unit.favorite.participant_name == "Fritz"
        assert unit.favorite.odds_decimal == 2.0
        assert unit.underdog.participant_name == "Rune"
        assert unit.underdog.odds_decimal == 2.0

    def test_missing_opponent_name_is_generated(self):
        units = group_matches([_side("m1", "Rune", 1.7, True)])
        assert units["m1"].underdog.participant_name == "Rune opponent"


class TestFiltering:
    """Live and malformed records are dropped without raising."""

    def test_live_matches_excluded(self):
        units, report = group_matches_with_report([
            _side("m1", "A", 1.5, True, opponent="B", opponent_odds=2.5),
            _side("m2", "C", 1.5, True, opponent="D", opponent_odds=2.5, is_live=True),
        ])
        assert list(units) == ["m1"]
        assert report.dropped_live == 1

    def test_all_live_yields_empty(self):
        assert group_matches([_side("m1", "A", 1.5, True, is_live=True)]) == {}

    def test_empty_input_yields_empty(self):
        units, report = group_matches_with_report([])
        assert units == {}
        assert report.input_records == 0

    def test_missing_match_id_is_dropped(self):
        units, report = group_matches_with_report([
            _side(None, "Ghost", 1.5, True),
            _side("", "Blank", 1.5, True),
            _side("m1", "A", 1.5, True, opponent="B"),
        ])
        assert list(units) == ["m1"]
        assert report.dropped_malformed == 2
        names = {p.participant_name for u in units.values() for p in u.picks}
        assert "Ghost" not in names and "Blank" not in names

    def test_missing_participant_is_dropped(self):
        units, report = group_matches_with_report([_side("m1", None, 1.5, True)])
        assert units == {}
        assert report.dropped_malformed == 1

    def test_non_mapping_record_is_dropped(self):
        units, report = group_matches_with_report(["garbage", None])
        assert units == {}
        assert report.dropped_malformed == 2

    def test_extra_and_repeated_sides_are_dropped(self):
        units, report = group_matches_with_report([
            _side("m1", "A", 1.5, True),
            _side("m1", "A", 1.6, True),
            _side("m1", "B", 2.5, False),
            _side("m1", "C", 3.0, False),
        ])
        unit = units["m1"]
        assert {p.participant_name for p in unit.picks} == {"A", "B"}
        assert unit.favorite.odds_decimal == 1.5
        assert report.dropped_duplicates == 2
        assert report.duplicate_match_ids == ["m1", "m1"]

    def test_unusable_odds_default(self):
        units = group_matches([_side("m1", "A", "n/a", True, opponent="B", opponent_odds=3.0)])
        assert units["m1"].favorite == Pick("m1", "A", DEFAULT_ODDS, True)


class TestInputShapes:
    """camelCase records and API schema objects."""

    def test_camel_case_keys(self):
        units = group_matches([{
            "matchId": "m9",
            "selectedTeam": "Zverev",
            "opponentTeam": "Medvedev",
            "odds": "1.65",
            "otherTeamOdds": "2.30",
            "isFavorite": True,
            "isLive": False,
        }])
        unit = units["m9"]
        assert unit.favorite == Pick("m9", "Zverev", 1.65, True)
        assert unit.underdog == Pick("m9", "Medvedev", 2.30, False)

    def test_pydantic_models(self):
        record = RawMatchIn(
            matchId="m2", participantName="Paul", opponentName="Shelton",
            oddsDecimal=2.2, opponentOddsDecimal=1.7, isFavorite=False,
        )
        units = group_matches([record])
        assert units["m2"].favorite.participant_name == "Shelton"

    def test_preserves_first_seen_order(self):
        units = group_matches([
            _side("m3", "E", 1.5, True),
            _side("m1", "A", 1.5, True),
            _side("m2", "C", 1.5, True),
        ])
        assert list(units) == ["m3", "m1", "m2"]
        assert all(isinstance(u, MatchUnit) for u in units.values())


@pytest.mark.parametrize("value, expected", [
    (1.8, 1.8), ("2.05", 2.05), (None, None), ("abc", None),
    (0, None), (-1.5, None), (float("nan"), None), (True, None),
])
def test_parse_odds(value, expected):
    assert parse_odds(value) == expected
