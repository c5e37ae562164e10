"""Exceptions raised by the round results engine.

Both error kinds abort a computation before any output exists, so callers
never see (or persist) partially scored standings.
"""

from __future__ import annotations


class EngineError(ValueError):
    """Base class for engine failures caused by bad input or configuration."""


class ConfigurationError(EngineError):
    """Points table, tiebreaker rule or bonus setting cannot be used."""


class DataIntegrityError(EngineError):
    """Race results reference races or drivers outside the round."""


__all__ = ["EngineError", "ConfigurationError", "DataIntegrityError"]
