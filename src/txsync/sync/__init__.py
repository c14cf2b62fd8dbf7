"""Incremental sync and reconciliation engine."""

from .fetcher import ChangeSetFetcher
from .models import ChangeSet, ReconcileResult, RecordFailure, SyncReport, SyncResult
from .orchestrator import SyncOrchestrator, create_orchestrator
from .reconcile import ReconciliationPolicy, TransactionReconciler

__all__ = [
    "ChangeSet",
    "ChangeSetFetcher",
    "ReconcileResult",
    "ReconciliationPolicy",
    "RecordFailure",
    "SyncOrchestrator",
    "SyncReport",
    "SyncResult",
    "TransactionReconciler",
    "create_orchestrator",
]
