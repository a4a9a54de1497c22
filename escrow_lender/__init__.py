"""Escrow lender: deposits, withdrawals and the deal ledger kept in step."""

__version__ = "0.1.0"
