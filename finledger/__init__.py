"""
FinLedger - Source Package

A personal finance ledger: accounts, investment platforms, investments,
assets and receivables, all tied together by one transaction ledger.

DESIGN PRINCIPLES:
1. Transactions are the source of truth; balances are a cached fold
2. Every lifecycle step posts (or removes) its own transactions
3. Refuse early: blocked operations change nothing
4. No silent corrections; inconsistencies are reported, not patched
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "FinLedger Team"
