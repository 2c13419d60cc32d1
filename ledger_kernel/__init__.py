"""
Ledger Kernel

Double-entry bookkeeping core for a retail/trading business:
- Balanced journal entries in integer minor units
- Fiscal period close discipline (Open -> Closed -> Locked)
- Recompute-on-demand account balances and trial balance
- Bank statement reconciliation
"""

__version__ = "0.1.0"
