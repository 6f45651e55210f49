"""Selector configuration: every tunable constant in one place.

Nowhere else in the codebase should the payout cap, the exhaustive
enumeration threshold or the random-sampling budget be hard-coded.

Architecture
------------
:class:`SelectorConfig` is a frozen dataclass.  Named constructors return
the two deployment presets:

* :meth:`SelectorConfig.standard`: 650,000 payout cap.
* :meth:`SelectorConfig.conservative`: 250,000 payout cap.

:meth:`SelectorConfig.from_env` starts from ``standard()`` and overrides any
field whose environment variable is set (``.env`` files are honoured via
``python-dotenv``).

Typical usage::

    from backend.core.selector_config import SelectorConfig

    cfg = SelectorConfig.from_env()
    result = generate(units, stake=cfg.stake_amount, config=cfg)

    # Override a single constant for one run:
    from dataclasses import replace
    tight_cfg = replace(cfg, payout_cap=1_000.0)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final

from dotenv import load_dotenv

from backend.core.combinatorics import DEFAULT_FAVORITES_RATIO

#: Payout cap for the standard deployment.
STANDARD_PAYOUT_CAP: Final[float] = 650_000.0

#: Payout cap for the conservative deployment.
CONSERVATIVE_PAYOUT_CAP: Final[float] = 250_000.0

#: Default stake per pick, in account currency.
DEFAULT_STAKE_AMOUNT: Final[float] = 0.10

#: Largest match count enumerated exhaustively.  Above this the engine
#: samples random assignments instead.
DEFAULT_EXHAUSTIVE_THRESHOLD: Final[int] = 30

#: Upper bound on sampling attempts per engine call in the randomized strategy.
DEFAULT_MAX_RANDOM_ATTEMPTS: Final[int] = 10_000

#: Collision retries per ``pick_next`` call before reporting exhaustion.
DEFAULT_MAX_ATTEMPTS: Final[int] = 10


@dataclass(frozen=True)
class SelectorConfig:
    """Immutable configuration bundle for the combination engine.

    Attributes:
        payout_cap: Combinations whose summed potential return exceeds this
            are never emitted.
        stake_amount: Stake placed on each pick of a combination.
        favorites_ratio: Share of matches that contribute their favorite when
            the caller gives no explicit split.
        exhaustive_threshold: Match counts up to and including this value are
            enumerated exhaustively.
        max_random_attempts: Sampling budget per call in the randomized
            strategy (further bounded by ``C(n, k)``).
        max_attempts: Collision retries per ``pick_next`` call.
    """

    payout_cap: float = STANDARD_PAYOUT_CAP
    stake_amount: float = DEFAULT_STAKE_AMOUNT
    favorites_ratio: float = DEFAULT_FAVORITES_RATIO
    exhaustive_threshold: int = DEFAULT_EXHAUSTIVE_THRESHOLD
    max_random_attempts: int = DEFAULT_MAX_RANDOM_ATTEMPTS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self) -> None:
        if self.payout_cap <= 0:
            raise ValueError(f"payout_cap must be positive, got {self.payout_cap!r}")
        if self.stake_amount <= 0:
            raise ValueError(f"stake_amount must be positive, got {self.stake_amount!r}")
        if not 0.0 <= self.favorites_ratio <= 1.0:
            raise ValueError(
                f"favorites_ratio must be within [0, 1], got {self.favorites_ratio!r}"
            )
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts!r}")
        if self.max_random_attempts < 1:
            raise ValueError(
                f"max_random_attempts must be >= 1, got {self.max_random_attempts!r}"
            )

    # ------------------------------------------------------------------ #
    #  Named constructors                                                  #
    # ------------------------------------------------------------------ #

    @classmethod
    def standard(cls) -> SelectorConfig:
        """Return the standard deployment (650,000 payout cap)."""
        return cls(payout_cap=STANDARD_PAYOUT_CAP)

    @classmethod
    def conservative(cls) -> SelectorConfig:
        """Return the conservative deployment (250,000 payout cap)."""
        return cls(payout_cap=CONSERVATIVE_PAYOUT_CAP)

    @classmethod
    def from_env(cls) -> SelectorConfig:
        """Build a config from environment variables over the standard preset.

        Recognised variables: ``PAYOUT_CAP``, ``STAKE_AMOUNT``,
        ``FAVORITES_RATIO``, ``EXHAUSTIVE_THRESHOLD``, ``MAX_RANDOM_ATTEMPTS``,
        ``MAX_PICK_ATTEMPTS``.
        """
        load_dotenv()
        return cls(
            payout_cap=float(os.getenv("PAYOUT_CAP", str(STANDARD_PAYOUT_CAP))),
            stake_amount=float(os.getenv("STAKE_AMOUNT", str(DEFAULT_STAKE_AMOUNT))),
            favorites_ratio=float(os.getenv("FAVORITES_RATIO", str(DEFAULT_FAVORITES_RATIO))),
            exhaustive_threshold=int(
                os.getenv("EXHAUSTIVE_THRESHOLD", str(DEFAULT_EXHAUSTIVE_THRESHOLD))
            ),
            max_random_attempts=int(
                os.getenv("MAX_RANDOM_ATTEMPTS", str(DEFAULT_MAX_RANDOM_ATTEMPTS))
            ),
            max_attempts=int(os.getenv("MAX_PICK_ATTEMPTS", str(DEFAULT_MAX_ATTEMPTS))),
        )

    def __repr__(self) -> str:
        return (
            f"SelectorConfig(payout_cap={self.payout_cap}, "
            f"stake={self.stake_amount}, "
            f"ratio={self.favorites_ratio}, "
            f"exhaustive<={self.exhaustive_threshold})"
        )
