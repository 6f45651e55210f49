"""
Tests for backend/core/combinatorics.py

Run with: pytest tests/test_combinatorics.py -v
"""

import pytest

from backend.core.combinatorics import (
    DEFAULT_FAVORITES_RATIO,
    TargetSplit,
    binomial_coefficient,
    default_split,
    resolve_target_split,
    round_half_up,
    total_combinations,
)


class TestBinomialCoefficient:
    """C(n, k) boundaries, symmetry and known values."""

    @pytest.mark.parametrize("n", range(0, 26))
    def test_symmetry(self, n):
        for k in range(n + 1):
            assert binomial_coefficient(n, k) == binomial_coefficient(n, n - k)

    @pytest.mark.parametrize("n", [0, 1, 2, 7, 30, 64])
    def test_edges_are_one(self, n):
        assert binomial_coefficient(n, 0) == 1
        assert binomial_coefficient(n, n) == 1

    @pytest.mark.parametrize("n, k", [(0, 1), (3, 5), (10, 11)])
    def test_k_greater_than_n_is_zero(self, n, k):
        assert binomial_coefficient(n, k) == 0

    def test_negative_k_is_zero(self):
        assert binomial_coefficient(5, -1) == 0

    @pytest.mark.parametrize("n, k, expected", [
        (5, 3, 10),
        (6, 4, 15),
        (10, 5, 252),
        (52, 5, 2_598_960),
        (60, 30, 118_264_581_564_861_424),
    ])
    def test_known_values(self, n, k, expected):
        assert binomial_coefficient(n, k) == expected

    def test_pascal_rule(self):
        """C(n, k) = C(n-1, k-1) + C(n-1, k) holds exactly for large n."""
        for n in range(2, 70):
            for k in range(1, n):
                assert binomial_coefficient(n, k) == (
                    binomial_coefficient(n - 1, k - 1) + binomial_coefficient(n - 1, k)
                )

    def test_total_combinations(self):
        assert total_combinations(0) == 0
        assert total_combinations(5) == 32
        assert total_combinations(35) == 2 ** 35


class TestRoundHalfUp:

    @pytest.mark.parametrize("value, expected", [
        (2.5, 3), (3.5, 4), (2.4, 2), (0.6, 1), (0.5, 1), (0.0, 0),
    ])
    def test_rounding(self, value, expected):
        assert round_half_up(value) == expected


class TestDefaultSplit:
    """60/40 default with a minority-side floor."""

    @pytest.mark.parametrize("n, favorites, underdogs", [
        (0, 0, 0),
        (1, 1, 0),   # single match: no floor possible
        (2, 1, 1),
        (3, 2, 1),
        (4, 2, 2),
        (5, 3, 2),
        (10, 6, 4),
    ])
    def test_sixty_forty(self, n, favorites, underdogs):
        split = default_split(n)
        assert (split.favorites, split.underdogs) == (favorites, underdogs)

    def test_floor_moves_one_to_underdog(self):
        split = default_split(3, favorites_ratio=1.0)
        assert (split.favorites, split.underdogs) == (2, 1)

    def test_floor_moves_one_to_favorite(self):
        split = default_split(3, favorites_ratio=0.0)
        assert (split.favorites, split.underdogs) == (1, 2)

    def test_default_ratio_constant(self):
        assert DEFAULT_FAVORITES_RATIO == pytest.approx(0.6)


class TestResolveTargetSplit:
    """Reconciling requested counts with the match count."""

    def test_neither_given_uses_default(self):
        split = resolve_target_split(5)
        assert split == TargetSplit(3, 2)
        assert not split.was_adjusted

    def test_both_given_and_valid(self):
        split = resolve_target_split(5, 1, 4)
        assert (split.favorites, split.underdogs) == (1, 4)
        assert split.warnings == ()

    def test_only_favorites_given(self):
        split = resolve_target_split(6, target_favorites=2)
        assert (split.favorites, split.underdogs) == (2, 4)

    def test_only_underdogs_given(self):
        split = resolve_target_split(6, target_underdogs=5)
        assert (split.favorites, split.underdogs) == (1, 5)

    def test_only_favorites_exceeding_n_is_clamped(self):
        split = resolve_target_split(4, target_favorites=9)
        assert (split.favorites, split.underdogs) == (4, 0)
        assert split.was_adjusted

    def test_mismatched_sum_is_rescaled(self):
        """4/4 over 5 matches rescales to 2.5 -> 3 favorites."""
        split = resolve_target_split(5, 4, 4)
        assert (split.favorites, split.underdogs) == (3, 2)
        assert split.total == 5
        assert "rescaled" in split.warnings[0]

    def test_rescale_preserves_proportion(self):
        split = resolve_target_split(10, 1, 4)
        assert (split.favorites, split.underdogs) == (2, 8)

    def test_favorites_above_n_clamps(self):
        split = resolve_target_split(5, 7, 1)
        assert (split.favorites, split.underdogs) == (5, 0)
        assert "clamped" in split.warnings[0]

    def test_underdogs_above_n_clamps(self):
        split = resolve_target_split(5, 1, 9)
        assert (split.favorites, split.underdogs) == (0, 5)
        assert split.was_adjusted

    def test_zero_zero_falls_back_to_default(self):
        split = resolve_target_split(5, 0, 0)
        assert (split.favorites, split.underdogs) == (3, 2)
        assert split.was_adjusted

    def test_negative_counts_are_zeroed(self):
        split = resolve_target_split(4, -2, 4)
        assert (split.favorites, split.underdogs) == (0, 4)
        assert any("negative" in w for w in split.warnings)

    def test_zero_matches(self):
        assert resolve_target_split(0, 3, 2) == TargetSplit(0, 0)

    @pytest.mark.parametrize("n", range(1, 12))
    @pytest.mark.parametrize("fav, dog", [(None, None), (2, None), (None, 3), (3, 3), (20, 1), (0, 0)])
    def test_always_sums_to_n(self, n, fav, dog):
        split = resolve_target_split(n, fav, dog)
        assert split.favorites + split.underdogs == n
        assert 0 <= split.favorites <= n
