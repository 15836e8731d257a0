"""Ledger port interface for audit trail operations."""

from __future__ import annotations

from typing import Any, Protocol

from seskit.audit.records import (
    AuditActor,
    AuditEvidence,
    AuditMetadata,
    AuditRecord,
    AuditResource,
    AuditTrail,
    IntegrityReport,
    TrailExport,
)
from seskit.models import SignatureEvidence


class LedgerPort(Protocol):
    """Port interface for hash-chained audit trails.

    Adapters implementing this port must provide:
    - Append-only records per resource id
    - Hash chain and root hash verification
    - Permanent sealing

    Side effects: Writes to the trail store (offline).
    """

    def create_trail(self, resource_id: str, resource_name: str | None = None) -> AuditTrail:
        """Create (or return the existing) trail for ``resource_id``."""
        ...

    def add_record(
        self,
        resource_id: str,
        action: str,
        actor: AuditActor,
        resource: AuditResource,
        details: dict[str, Any] | None = None,
        metadata: AuditMetadata | None = None,
        evidence: AuditEvidence | None = None,
    ) -> AuditRecord:
        """Append a record; raises SealedTrailError on a sealed trail."""
        ...

    def seal_trail(self, resource_id: str) -> AuditTrail:
        """Seal the trail permanently."""
        ...

    def verify_integrity(self, resource_id: str) -> IntegrityReport:
        """Recompute the chain and report every discrepancy."""
        ...

    def export_trail(self, resource_id: str) -> TrailExport | None:
        """Export a snapshot with fresh verification, or None when unknown."""
        ...

    def get_trail(self, resource_id: str) -> AuditTrail | None:
        """Return a snapshot of the trail."""
        ...

    def resource_ids(self) -> list[str]:
        """Return all known resource ids."""
        ...

    def add_signature_audit_trail(
        self,
        contract_id: str,
        evidence: SignatureEvidence,
        *,
        signer_id: str | None = None,
        device_fingerprint: str | None = None,
        include_device_metadata: bool = False,
    ) -> list[AuditRecord]:
        """Append the signing lifecycle records of ``evidence``."""
        ...
