"""CLI command groups for txsync."""
