"""Boundary validation package."""

from finledger.validation.validator import LedgerValidator

__all__ = ["LedgerValidator"]
