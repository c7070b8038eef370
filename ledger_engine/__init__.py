"""
Ledger Engine - Source Package

Balance replay and CSV import core for a personal accounts ledger
(checking, savings, credit cards, loans).

DESIGN PRINCIPLES:
1. Balances are derived, never stored
2. The ledger is append-only; replay never rewrites it
3. Reimporting the same statement is a no-op
4. Every import is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledger Engine Team"
