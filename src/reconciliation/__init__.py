"""Reconciliation package: turns extracted candidates into stored records."""

from src.reconciliation.context import EntityStats, ReconciliationContext, ReconciliationStats
from src.reconciliation.reconciler import (
    AgentReconciler,
    CommentReconciler,
    PostReconciler,
    Reconciler,
    SubmoltReconciler,
)

__all__ = [
    "EntityStats",
    "ReconciliationContext",
    "ReconciliationStats",
    "AgentReconciler",
    "CommentReconciler",
    "PostReconciler",
    "Reconciler",
    "SubmoltReconciler",
]
