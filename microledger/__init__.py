"""
Microledger - Source Package

An offline-first ledger for a small lending operation: microloans
(principal, simple interest, installments) and savings accounts.

DESIGN PRINCIPLES:
1. Local state changes instantly, the remote store catches up
2. A pending mutation is never lost to a remote read
3. Payoff status is derived from the transaction log, never typed in
4. Every sync step is auditable
5. Remote and local storage are swappable
"""

__version__ = "1.0.0"
__author__ = "Microledger Team"
