"""Combinatorial counting and favorite/underdog split resolution.

Every function here is **pure**: no I/O and no side effects.  Warnings about
irreconcilable split requests are *returned* on :class:`TargetSplit` rather
than logged, so the engine decides how loudly to report them.

Counting model
--------------
A combination takes exactly one side from each of ``n`` matches.  Once the
subset of matches contributing their favorite is fixed, the remaining matches
must contribute their underdog, so the number of combinations with exactly
``k`` favorites is the binomial coefficient ``C(n, k)``.  The unrestricted
space is ``2 ** n``.

Run tests with::

    pytest tests/test_combinatorics.py -v
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Final, Optional, Tuple

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Default share of matches that contribute their favorite pick (60/40 rule).
DEFAULT_FAVORITES_RATIO: Final[float] = 0.6


# ---------------------------------------------------------------------------
# Counting
# ---------------------------------------------------------------------------


def binomial_coefficient(n: int, k: int) -> int:
    """Return ``C(n, k)`` using the multiplicative method.

    The loop runs over the smaller of ``k`` and ``n - k``.  Each partial
    product ``C(n, i)`` is an integer, so integer division is exact at every
    step and there is no floating-point drift to round away.

    Examples::

        binomial_coefficient(5, 3)  → 10
        binomial_coefficient(5, 0)  → 1
        binomial_coefficient(3, 5)  → 0
    """
    if k < 0 or k > n:
        return 0
    if k == 0 or k == n:
        return 1

    k = min(k, n - k)
    result = 1
    for i in range(1, k + 1):
        result = result * (n - i + 1) // i
    return result


def total_combinations(n: int) -> int:
    """Size of the unrestricted one-side-per-match space (``2 ** n``)."""
    if n <= 0:
        return 0
    return 2 ** n


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up.

    Python's built-in :func:`round` uses banker's rounding (``round(2.5)``
    is ``2``); split targets always round halves up.
    """
    return int(math.floor(value + 0.5))


# ---------------------------------------------------------------------------
# Split resolution
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TargetSplit:
    """Resolved number of favorite and underdog picks for ``n`` matches.

    Attributes:
        favorites: Matches that contribute their favorite pick.
        underdogs: Matches that contribute their underdog pick.
        warnings: Human-readable notes describing any rescale or clamp that
            was applied to the requested counts.  Empty when the request was
            used as given (or when the default ratio was applied).
    """

    favorites: int
    underdogs: int
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def total(self) -> int:
        return self.favorites + self.underdogs

    @property
    def was_adjusted(self) -> bool:
        return bool(self.warnings)


def default_split(n: int, favorites_ratio: float = DEFAULT_FAVORITES_RATIO) -> TargetSplit:
    """Apply the ratio split with a minority-side floor.

    When rounding would put every match on one side (and there is more than
    one match), one match is moved to the other side so both favorites and
    underdogs are represented.
    """
    if n <= 0:
        return TargetSplit(0, 0)

    favorites = round_half_up(n * favorites_ratio)
    favorites = max(0, min(favorites, n))
    underdogs = n - favorites

    if favorites == n and n > 1:
        favorites, underdogs = n - 1, 1
    elif underdogs == n and n > 1:
        favorites, underdogs = 1, n - 1

    return TargetSplit(favorites, underdogs)


def resolve_target_split(
    n: int,
    target_favorites: Optional[int] = None,
    target_underdogs: Optional[int] = None,
    favorites_ratio: float = DEFAULT_FAVORITES_RATIO,
) -> TargetSplit:
    """Reconcile requested favorite/underdog counts with the match count.

    Resolution rules, in order:

    1. Neither count given → :func:`default_split`.
    2. One count given → the other is ``n`` minus it (requested value clamped
       into ``[0, n]`` first).
    3. Both given and summing to ``n`` → used unchanged.
    4. Either side alone exceeds ``n`` → that side is clamped to ``n`` and
       the other to ``0``.
    5. Otherwise → proportionally rescaled so the pair sums to ``n``.

    Never raises.  Any adjustment is described in ``TargetSplit.warnings``.
    """
    if n <= 0:
        return TargetSplit(0, 0)

    warnings = []

    if target_favorites is not None and target_favorites < 0:
        warnings.append(f"target_favorites={target_favorites} is negative; using 0")
        target_favorites = 0
    if target_underdogs is not None and target_underdogs < 0:
        warnings.append(f"target_underdogs={target_underdogs} is negative; using 0")
        target_underdogs = 0

    if target_favorites is None and target_underdogs is None:
        split = default_split(n, favorites_ratio)
        return TargetSplit(split.favorites, split.underdogs, tuple(warnings))

    if target_underdogs is None:
        favorites = target_favorites
        if favorites > n:
            warnings.append(f"target_favorites={favorites} exceeds {n} matches; clamped to {n}")
            favorites = n
        return TargetSplit(favorites, n - favorites, tuple(warnings))

    if target_favorites is None:
        underdogs = target_underdogs
        if underdogs > n:
            warnings.append(f"target_underdogs={underdogs} exceeds {n} matches; clamped to {n}")
            underdogs = n
        return TargetSplit(n - underdogs, underdogs, tuple(warnings))

    if target_favorites + target_underdogs == n:
        return TargetSplit(target_favorites, target_underdogs, tuple(warnings))

    if target_favorites > n:
        warnings.append(
            f"target_favorites={target_favorites} exceeds {n} matches; "
            f"clamped to {n} favorites / 0 underdogs"
        )
        return TargetSplit(n, 0, tuple(warnings))

    if target_underdogs > n:
        warnings.append(
            f"target_underdogs={target_underdogs} exceeds {n} matches; "
            f"clamped to 0 favorites / {n} underdogs"
        )
        return TargetSplit(0, n, tuple(warnings))

    requested = target_favorites + target_underdogs
    if requested == 0:
        split = default_split(n, favorites_ratio)
        warnings.append(
            f"requested split 0/0 cannot cover {n} matches; "
            f"using default {split.favorites}/{split.underdogs}"
        )
        return TargetSplit(split.favorites, split.underdogs, tuple(warnings))

    favorites = round_half_up(target_favorites * n / requested)
    favorites = max(0, min(favorites, n))
    underdogs = n - favorites
    warnings.append(
        f"requested split {target_favorites}/{target_underdogs} does not sum to "
        f"{n} matches; rescaled to {favorites}/{underdogs}"
    )
    return TargetSplit(favorites, underdogs, tuple(warnings))
