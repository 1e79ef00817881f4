"""CRD manifest loading and reconciliation."""

from .base import CRDObject, Operation
from .loader import load_crds
from .reconciler import (
    CRDReconciler,
    ErrorPolicy,
    Outcome,
    ReconcileResult,
    process_crds,
)

__all__ = [
    "CRDObject",
    "CRDReconciler",
    "ErrorPolicy",
    "Operation",
    "Outcome",
    "ReconcileResult",
    "load_crds",
    "process_crds",
]
