"""Yield-routing ledger: pooled deposits allocated to the highest-rate protocol."""

__version__ = "0.1.0"
