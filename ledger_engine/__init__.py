"""
Ledger Engine - Source Package

Reconciliation and reporting core for a community organization's finances:
bank accounts, member dues and payable bills.

DESIGN PRINCIPLES:
1. Derived state is recomputed on read, never trusted from storage
2. Multi-step links commit fully or not at all
3. Advisory problems are reported, not blocked
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledger Engine Team"
