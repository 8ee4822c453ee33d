"""Polars-backed ledger and frame I/O."""

from bayesoc.backends.polars.ledger import PolarsLedger

__all__ = ["PolarsLedger"]
