"""Core mathematics and configuration for the wagering engine.

This package contains pure building blocks:

- ``engine_config``: tunable constants (K-factor, overround, price bounds)
- ``rating_math``  : Elo expected score and winner-vs-field rating deltas
- ``odds_math``    : win probabilities, price conversion, cashflow re-pricing
- ``odds_format``  : decimal / fractional display of scaled prices
- ``outcomes``     : result enums and the error taxonomy they map onto
- ``competitors``  : tagged pick / winner variants and winner matching

Nothing in this package imports from ``wagering.services`` or ``wagering.models``.
Apart from ``EngineConfig.from_env`` reading the environment, every module
is side-effect-free and unit-testable in isolation.
"""
