"""Connectors for the remote provider (Plaid).

The client wraps the Plaid SDK; the schemas validate its payloads at the
boundary before they reach the sync engine.
"""

from .plaid_client import ChangeFeedClient, PlaidClient

__all__ = ["ChangeFeedClient", "PlaidClient"]
