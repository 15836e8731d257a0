"""Audit trail orchestration services."""

from __future__ import annotations

from dataclasses import dataclass

from seskit.app.ports import LedgerPort
from seskit.audit.ledger import TrailNotFoundError
from seskit.audit.records import AuditRecord, AuditTrail, IntegrityReport, TrailExport


@dataclass(slots=True)
class AuditService:
    """Expose read/verify/seal/export operations over the audit trail ledger."""

    ledger: LedgerPort

    def list_trails(self) -> list[AuditTrail]:
        """Return a snapshot of every known trail, ordered by resource id."""

        trails = (self.ledger.get_trail(rid) for rid in sorted(self.ledger.resource_ids()))
        return [trail for trail in trails if trail is not None]

    def get_trail(self, resource_id: str) -> AuditTrail:
        trail = self.ledger.get_trail(resource_id)
        if trail is None:
            raise TrailNotFoundError(resource_id)
        return trail

    def get_records(self, resource_id: str, tail: int | None = None) -> list[AuditRecord]:
        """Return records of ``resource_id``, optionally only the last ``tail``."""

        records = list(self.get_trail(resource_id).records)
        if tail:
            records = records[-tail:]
        return records

    def verify(self, resource_id: str) -> IntegrityReport:
        return self.ledger.verify_integrity(resource_id)

    def verify_all(self) -> dict[str, IntegrityReport]:
        """Verify every known trail."""

        return {rid: self.ledger.verify_integrity(rid) for rid in sorted(self.ledger.resource_ids())}

    def seal(self, resource_id: str) -> AuditTrail:
        return self.ledger.seal_trail(resource_id)

    def export(self, resource_id: str) -> TrailExport:
        exported = self.ledger.export_trail(resource_id)
        if exported is None:
            raise TrailNotFoundError(resource_id)
        return exported
