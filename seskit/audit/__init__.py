"""Hash-chained audit trails with sealing."""

from seskit.audit.ledger import (
    AuditTrailLedger,
    SealedTrailError,
    TrailNotFoundError,
    verify_trail,
)
from seskit.audit.records import (
    AuditActor,
    AuditEvidence,
    AuditMetadata,
    AuditRecord,
    AuditResource,
    AuditTrail,
    IntegrityReport,
    TrailExport,
    TrailVerification,
)
from seskit.audit.store import InMemoryTrailStore, JsonlTrailStore, TrailStorePort

__all__ = [
    "AuditActor",
    "AuditEvidence",
    "AuditMetadata",
    "AuditRecord",
    "AuditResource",
    "AuditTrail",
    "AuditTrailLedger",
    "InMemoryTrailStore",
    "IntegrityReport",
    "JsonlTrailStore",
    "SealedTrailError",
    "TrailExport",
    "TrailNotFoundError",
    "TrailStorePort",
    "TrailVerification",
    "verify_trail",
]
