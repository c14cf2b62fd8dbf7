"""txsync: Incremental Plaid transaction sync and reconciliation.

This package keeps a local DuckDB store in step with Plaid's transaction
change feed:
- Cursor-based pagination through /transactions/sync
- Pending to posted promotion and near-duplicate flagging
- Durable cursor advance only after the change-set has been applied
- Typer CLI for registering items and running sync cycles
"""

__version__ = "0.1.0"
