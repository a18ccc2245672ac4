"""
Cylinder Kernel

Authoritative daily ledgers for a multi-tenant gas-cylinder distributor:
- Full cylinder stock per product
- Empty cylinder stock per cylinder size
- Cash and cylinder receivables per driver
- Idempotent, key-unique recomputation
"""

__version__ = "0.1.0"
