"""Online order synchronization: admission, normalization and import."""

from __future__ import annotations

from pdvsync.sync.admission import (
    AdmissionDecision,
    AdmissionPolicy,
    AdmissionResult,
    ProcessedSet,
)
from pdvsync.sync.customers import CustomerUpsertResolver
from pdvsync.sync.importer import OrderImporter
from pdvsync.sync.normalizer import (
    NormalizedOrder,
    SchemaNormalizer,
    normalize_payload,
)
from pdvsync.sync.payloads import SchemaVariant
from pdvsync.sync.pipeline import (
    IngestionPipeline,
    PipelineState,
    PipelineStateError,
)
from pdvsync.sync.reconciler import BulkReconciler, ReconcileResult, ReconcileStatus
from pdvsync.sync.status import (
    InvalidStatusTransitionError,
    OrderNotFoundError,
    OrderStatusService,
)

__all__ = [
    "AdmissionDecision",
    "AdmissionPolicy",
    "AdmissionResult",
    "BulkReconciler",
    "CustomerUpsertResolver",
    "IngestionPipeline",
    "InvalidStatusTransitionError",
    "NormalizedOrder",
    "OrderImporter",
    "OrderNotFoundError",
    "OrderStatusService",
    "PipelineState",
    "PipelineStateError",
    "ProcessedSet",
    "ReconcileResult",
    "ReconcileStatus",
    "SchemaNormalizer",
    "SchemaVariant",
    "normalize_payload",
]
