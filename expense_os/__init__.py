"""
Expense OS - Ledger Engine Package

The analytics and reconciliation core of a personal expense ledger.
Everything around it (forms, charts, sync) is glue around a record store.

DESIGN PRINCIPLES:
1. The month bucket is the join key for everything
2. Side effects happen exactly once (carry-forward ledger)
3. Degrade to a neutral default instead of failing
4. Every write is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense OS Team"
