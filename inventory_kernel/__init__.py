"""
Inventory Kernel

Stock transfer engine for full/empty cylinder inventory with:
- Per-(location, product) balances that never go negative
- Reservation floors on full stock
- Append-only, paired movement ledger
- Atomic, lock-serialized transfers between warehouses and trucks
"""

__version__ = "0.1.0"
