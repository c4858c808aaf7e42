"""
Family Cash Ledger - Source Package

A shared cash box for a family: members submit deposits and expenses
with photo proof, an administrator approves or rejects them, and only
approved entries count toward the balance.

DESIGN PRINCIPLES:
1. Submit → Validate → Persist (never persist an invalid record)
2. Only the administrator decides; decisions are final
3. Balances are derived, never stored
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Family Cash Ledger Team"
