"""
Payout Kernel

Persistence and primitives for the seller payout checkpoint protocol:
- Append-only ledger of purchase and refund entries
- Per-seller checkpoint table with atomic, idempotent advance
- Append-only checkpoint history
- Injectable clock, typed exceptions, structured logging
"""

__version__ = "0.1.0"
