"""SevaSetu task lifecycle and payout ledger service."""

__version__ = "0.1.0"
