"""Core mathematics and configuration for the combination selector.

This package contains pure building blocks:

- ``combinatorics``   : binomial coefficients and favorite/underdog split resolution
- ``selector_config`` : payout cap, stake and enumeration thresholds
- ``errors``          : exception taxonomy shared by services and the API

Nothing in this package imports from ``backend.services`` or ``backend.models``.
All modules are side-effect-free and unit-testable in isolation.
"""
