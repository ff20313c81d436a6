"""
Ledger Kernel - sharded personal-finance ledger core

A multi-tenant ledger where identity lives in one central directory store
and financial data lives in N horizontally-partitioned shard stores:
- Shard routing with a lazily-populated connection registry
- Tenant provisioning as a saga with a compensating delete
- Balance trees for accounts and categories, optionally as of a date
- Per-account running-balance replay
"""

__version__ = "0.1.0"
