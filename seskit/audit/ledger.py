"""Append-only, hash-chained audit trails keyed by resource id.

Every record's ``hash`` covers all of its other fields, including
``previous_hash``, so records form a chain. A trail is sealed exactly once; the
sealing record is chained in before the trail is flagged as sealed and no
further appends are accepted afterwards.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from seskit.audit.records import (
    ACTION_TRAIL_CREATED,
    ACTION_TRAIL_SEALED,
    GENESIS_PREVIOUS_HASH,
    SYSTEM_ACTOR,
    SYSTEM_METADATA,
    AuditActor,
    AuditEvidence,
    AuditMetadata,
    AuditRecord,
    AuditResource,
    AuditTrail,
    IntegrityReport,
    TrailExport,
)
from seskit.audit.store import InMemoryTrailStore, TrailStorePort
from seskit.models import SignatureEvidence
from seskit.utils.hashing import fold_hashes

logger = logging.getLogger(__name__)


class SealedTrailError(RuntimeError):
    """Raised when a record is appended to a sealed trail."""


class TrailNotFoundError(KeyError):
    """Raised when an operation requires a trail that does not exist."""


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AuditTrailLedger:
    """Owns audit trails and serializes every write per resource id.

    Trails are persisted through a :class:`~seskit.audit.store.TrailStorePort`;
    writes to one resource id run under that store's per-key lock while
    different resource ids proceed independently.
    """

    def __init__(
        self,
        store: TrailStorePort | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the ledger.

        Args:
            store: Trail persistence backend (defaults to in-memory)
            clock: Source of UTC instants, injectable for tests
        """
        self.store: TrailStorePort = store if store is not None else InMemoryTrailStore()
        self._clock = clock or _utc_now

    # ---------------------------------------------------------------------#
    # Internal helpers
    # ---------------------------------------------------------------------#

    def _now(self, not_before: datetime | None = None) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        if not_before is not None and now < not_before:
            # Keep timestamps non-decreasing along the chain if the clock steps back.
            return not_before
        return now

    def _create_locked(self, resource_id: str, resource_name: str | None) -> AuditTrail:
        now = self._now()
        self.store.create(
            AuditTrail(
                resource_id=resource_id,
                resource_name=resource_name,
                created_at=now,
                last_modified=now,
            )
        )
        self._append_locked(
            resource_id,
            action=ACTION_TRAIL_CREATED,
            actor=SYSTEM_ACTOR,
            resource=AuditResource(type="contract", id=resource_id, name=resource_name),
            details={"reason": "Initial audit trail creation for compliance tracking"},
            metadata=SYSTEM_METADATA,
            evidence=None,
        )
        logger.info("Audit trail created for resource %s", resource_id)
        trail = self.store.get(resource_id)
        assert trail is not None
        return trail

    def _append_locked(
        self,
        resource_id: str,
        *,
        action: str,
        actor: AuditActor,
        resource: AuditResource,
        details: dict[str, Any],
        metadata: AuditMetadata,
        evidence: AuditEvidence | None,
    ) -> AuditRecord:
        trail = self.store.get(resource_id)
        if trail is None:
            trail = self._create_locked(resource_id, None)

        if trail.is_sealed:
            raise SealedTrailError(
                f"Cannot add records to sealed audit trail '{resource_id}'"
            )

        last = trail.records[-1] if trail.records else None
        unsigned = AuditRecord(
            id=str(uuid.uuid4()),
            timestamp=self._now(last.timestamp if last else None),
            action=action,
            actor=actor,
            resource=resource,
            details=details,
            metadata=metadata,
            previous_hash=last.hash if last else GENESIS_PREVIOUS_HASH,
            sequence=(last.sequence + 1) if last else 1,
            evidence=evidence,
        )
        record = unsigned.model_copy(update={"hash": unsigned.compute_hash()})

        root_hash = fold_hashes([r.hash for r in trail.records] + [record.hash])
        self.store.append(
            resource_id,
            record,
            root_hash=root_hash,
            last_modified=record.timestamp,
        )
        logger.debug(
            "Appended %s as record %d to trail %s", action, record.sequence, resource_id
        )
        return record

    # ---------------------------------------------------------------------#
    # Public API
    # ---------------------------------------------------------------------#

    def create_trail(self, resource_id: str, resource_name: str | None = None) -> AuditTrail:
        """Create the trail for ``resource_id`` or return the existing one.

        A new trail immediately receives an ``audit_trail_created`` record as
        record #1.
        """
        with self.store.lock(resource_id):
            existing = self.store.get(resource_id)
            if existing is not None:
                return existing
            return self._create_locked(resource_id, resource_name)

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
        """Append a hash-chained record to the trail of ``resource_id``.

        The trail is created on first use.

        Raises:
            SealedTrailError: If the trail is sealed; the trail is left unchanged
        """
        with self.store.lock(resource_id):
            return self._append_locked(
                resource_id,
                action=action,
                actor=actor,
                resource=resource,
                details=dict(details or {}),
                metadata=metadata or AuditMetadata(),
                evidence=evidence,
            )

    def seal_trail(self, resource_id: str) -> AuditTrail:
        """Permanently close the trail of ``resource_id``.

        Appends an ``audit_trail_sealed`` record stating the record count and
        root hash at sealing time, then flags the trail as sealed. Sealing an
        already sealed trail returns it unchanged.

        Raises:
            TrailNotFoundError: If no trail exists for ``resource_id``
        """
        with self.store.lock(resource_id):
            trail = self.store.get(resource_id)
            if trail is None:
                raise TrailNotFoundError(resource_id)
            if trail.is_sealed:
                return trail

            record = self._append_locked(
                resource_id,
                action=ACTION_TRAIL_SEALED,
                actor=SYSTEM_ACTOR,
                resource=AuditResource(type="contract", id=resource_id),
                details={
                    "reason": "Signature completed - trail sealed for integrity",
                    "records_count": len(trail.records),
                    "root_hash": trail.root_hash,
                },
                metadata=SYSTEM_METADATA,
                evidence=None,
            )
            self.store.seal(resource_id, sealed_at=self._now(record.timestamp))
            logger.info(
                "Audit trail %s sealed after %d records", resource_id, record.sequence
            )
            sealed = self.store.get(resource_id)
            assert sealed is not None
            return sealed

    def verify_integrity(self, resource_id: str) -> IntegrityReport:
        """Recompute hashes, chain links and root hash for a trail.

        Every discrepancy is collected; the check never stops at the first one.
        """
        trail = self.store.get(resource_id)
        if trail is None:
            return IntegrityReport(is_valid=False, issues=["Audit trail not found"])

        issues = verify_trail(trail)
        if issues:
            logger.warning(
                "Audit trail %s failed integrity verification with %d issue(s)",
                resource_id,
                len(issues),
            )
        return IntegrityReport(is_valid=not issues, issues=issues, trail=trail)

    def export_trail(self, resource_id: str) -> TrailExport | None:
        """Export a snapshot of the trail with a freshly computed verification."""
        report = self.verify_integrity(resource_id)
        if report.trail is None:
            return None

        return TrailExport(
            trail=report.trail,
            verification=report.summary(),
            exported_at=self._now(),
        )

    def get_trail(self, resource_id: str) -> AuditTrail | None:
        """Return a snapshot of the trail, or None when unknown."""
        return self.store.get(resource_id)

    def resource_ids(self) -> list[str]:
        """Return the ids of all known trails."""
        return self.store.resource_ids()

    def add_signature_audit_trail(
        self,
        contract_id: str,
        evidence: SignatureEvidence,
        *,
        signer_id: str | None = None,
        device_fingerprint: str | None = None,
        include_device_metadata: bool = False,
    ) -> list[AuditRecord]:
        """Append the signing lifecycle of ``evidence`` to a contract trail.

        Records, in order: ``document_accessed``, ``signer_identified``,
        ``consent_verified``, ``signature_created`` and
        ``document_integrity_verified``. Device data enters as a fingerprint
        unless ``include_device_metadata`` is set.
        """
        signer = evidence.signer
        document = evidence.document
        device = evidence.device_metadata
        actor_id = signer_id or signer.identifier
        actor = AuditActor(id=actor_id, type="user", identifier=signer.email or actor_id)
        metadata = AuditMetadata(
            ip_address=device.ip_address or signer.ip_address or "unknown",
            user_agent=device.user_agent or signer.user_agent or "unknown",
            device_metadata=device if include_device_metadata else None,
            location=signer.location,
            session=evidence.id,
        )

        with self.store.lock(contract_id):
            records = [
                self._append_locked(
                    contract_id,
                    action="document_accessed",
                    actor=actor,
                    resource=AuditResource(
                        type="document", id=contract_id, name=document.original_name
                    ),
                    details={
                        "document_hash": document.hash,
                        "document_size": document.size,
                        "access_method": "web_interface",
                        "device_fingerprint": device_fingerprint,
                    },
                    metadata=metadata,
                    evidence=None,
                ),
                self._append_locked(
                    contract_id,
                    action="signer_identified",
                    actor=actor,
                    resource=AuditResource(type="contract", id=contract_id),
                    details={
                        "signer_name": signer.name,
                        "signer_tax_id": signer.tax_id,
                        "signer_email": signer.email,
                        "signer_phone": signer.phone,
                        "identification_method": signer.method,
                    },
                    metadata=metadata,
                    evidence=None,
                ),
                self._append_locked(
                    contract_id,
                    action="consent_verified",
                    actor=actor,
                    resource=AuditResource(type="contract", id=contract_id),
                    details={
                        "consent_given": evidence.evidence.consent_given,
                        "intent_to_bind": evidence.evidence.intent_to_bind,
                        "agreement": evidence.evidence.signature_agreement,
                    },
                    metadata=metadata.model_copy(update={"device_metadata": None}),
                    evidence=AuditEvidence(
                        consent=evidence.evidence.consent_given,
                        intent=evidence.evidence.intent_to_bind,
                        agreement="Electronic Signature Consent",
                    ),
                ),
                self._append_locked(
                    contract_id,
                    action="signature_created",
                    actor=actor,
                    resource=AuditResource(type="signature", id=evidence.id),
                    details={
                        "signature_method": evidence.signature.method,
                        "signature_duration": evidence.signature.duration,
                        "signature_points": evidence.signature.points,
                        "document_view_duration": evidence.evidence.document_view_duration,
                        "interaction_events_count": len(evidence.evidence.interaction_events),
                        "device_fingerprint": device_fingerprint,
                    },
                    metadata=metadata,
                    evidence=None,
                ),
                self._append_locked(
                    contract_id,
                    action="document_integrity_verified",
                    actor=SYSTEM_ACTOR,
                    resource=AuditResource(
                        type="document", id=contract_id, name=document.original_name
                    ),
                    details={
                        "document_hash": document.hash,
                        "algorithm": document.algorithm,
                        "verified": True,
                        "verification_method": "cryptographic_hash",
                    },
                    metadata=SYSTEM_METADATA,
                    evidence=None,
                ),
            ]
        return records


def verify_trail(trail: AuditTrail) -> list[str]:
    """Return every integrity discrepancy found in ``trail``."""
    issues: list[str] = []
    records = trail.records

    for index, record in enumerate(records):
        if record.compute_hash() != record.hash:
            issues.append(f"Record {record.sequence} hash mismatch")

        if record.sequence != index + 1:
            issues.append(
                f"Record {record.sequence} out of sequence (expected {index + 1})"
            )

        if index == 0:
            if record.previous_hash != GENESIS_PREVIOUS_HASH:
                issues.append(
                    f"Record {record.sequence} is first but previous hash is not "
                    f"'{GENESIS_PREVIOUS_HASH}'"
                )
            continue

        previous = records[index - 1]
        if record.previous_hash != previous.hash:
            issues.append(
                f"Hash chain broken at record {record.sequence} "
                f"(does not link to record {previous.sequence})"
            )

    if fold_hashes([r.hash for r in records]) != trail.root_hash:
        last_sequence = records[-1].sequence if records else 0
        issues.append(f"Root hash mismatch (trail ends at record {last_sequence})")

    if trail.is_sealed:
        issues.extend(_verify_seal(trail))

    return issues


def _verify_seal(trail: AuditTrail) -> list[str]:
    issues: list[str] = []
    records = trail.records

    if trail.sealed_at is None:
        issues.append("Trail is flagged as sealed but has no sealing time")
    else:
        for record in records:
            if record.timestamp > trail.sealed_at:
                issues.append(
                    f"Record {record.sequence} was added after the trail was sealed"
                )

    if not records or records[-1].action != ACTION_TRAIL_SEALED:
        issues.append("Sealed trail does not end with a sealing record")
        return issues

    seal_record = records[-1]
    sealed_over = records[:-1]
    stated_root = seal_record.details.get("root_hash")
    stated_count = seal_record.details.get("records_count")
    if stated_root != fold_hashes([r.hash for r in sealed_over]):
        issues.append(
            f"Seal record {seal_record.sequence} does not match the root hash of "
            f"records 1..{len(sealed_over)}"
        )
    if stated_count != len(sealed_over):
        issues.append(
            f"Seal record {seal_record.sequence} states {stated_count} records, "
            f"found {len(sealed_over)}"
        )
    return issues
