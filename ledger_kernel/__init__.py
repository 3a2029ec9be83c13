"""
Ledger Kernel - multi-tenant double-entry bookkeeping

A per-organization general ledger with:
- Exact two-decimal money arithmetic
- Balanced journal entries (per currency)
- Immutable posted history (void, never edit)
- Tenant isolation on every read and write
- Balances derived from posted history on demand
"""

__version__ = "0.1.0"
