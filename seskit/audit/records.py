"""Pydantic models of audit trails, their records and integrity reports."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from seskit.models import DeviceMetadata
from seskit.utils.hashing import EMPTY_SHA256, compute_canonical_hash

GENESIS_PREVIOUS_HASH = "0"
EXPORT_FORMAT = "eIDAS-Audit-Trail-v1.0"

ACTION_TRAIL_CREATED = "audit_trail_created"
ACTION_TRAIL_SEALED = "audit_trail_sealed"

SYSTEM_IP = "system"
SYSTEM_USER_AGENT = "audit-service"


class AuditActor(BaseModel):
    """Who performed the audited action."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: Literal["user", "system", "admin"]
    identifier: str


SYSTEM_ACTOR = AuditActor(id="system", type="system", identifier=SYSTEM_USER_AGENT)


class AuditResource(BaseModel):
    """What the audited action was performed on."""

    model_config = ConfigDict(frozen=True)

    type: Literal["contract", "signature", "document"]
    id: str
    name: str | None = None


class AuditMetadata(BaseModel):
    """Request context attached to an audit record."""

    model_config = ConfigDict(frozen=True)

    ip_address: str = "unknown"
    user_agent: str = "unknown"
    device_metadata: DeviceMetadata | None = None
    location: str | None = None
    session: str | None = None


SYSTEM_METADATA = AuditMetadata(ip_address=SYSTEM_IP, user_agent=SYSTEM_USER_AGENT)


class AuditEvidence(BaseModel):
    """Legal evidence flags carried by consent-related records."""

    model_config = ConfigDict(frozen=True)

    consent: bool | None = None
    intent: bool | None = None
    agreement: str | None = None


class AuditRecord(BaseModel):
    """Single audit trail record.

    Records are immutable; ``hash`` is SHA-256 over the canonical JSON of every
    other field, which links the record to its predecessor via
    ``previous_hash``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique record identifier")
    timestamp: datetime = Field(..., description="UTC instant the record was appended")
    action: str = Field(..., description="Action name (e.g. signature_created)")
    actor: AuditActor
    resource: AuditResource
    details: dict[str, Any] = Field(default_factory=dict)
    metadata: AuditMetadata = Field(default_factory=AuditMetadata)
    hash: str = Field(default="", description="SHA-256 over all other fields")
    previous_hash: str = Field(
        default=GENESIS_PREVIOUS_HASH,
        description="Hash of the previous record; '0' for the first record",
    )
    sequence: int = Field(..., ge=1, description="Per-resource counter starting at 1")
    evidence: AuditEvidence | None = None

    def compute_hash(self) -> str:
        """Compute the deterministic hash of this record.

        Returns:
            SHA-256 hex digest over all fields except ``hash``
        """
        data = self.model_dump(mode="json", exclude={"hash"})
        return compute_canonical_hash(data)


class AuditTrail(BaseModel):
    """Ordered records of one resource plus their running root hash."""

    resource_id: str
    resource_name: str | None = None
    records: list[AuditRecord] = Field(default_factory=list)
    root_hash: str = EMPTY_SHA256
    created_at: datetime
    last_modified: datetime
    is_sealed: bool = False
    sealed_at: datetime | None = None


class TrailVerification(BaseModel):
    """Outcome of an integrity check."""

    is_valid: bool
    issues: list[str] = Field(default_factory=list)


class IntegrityReport(TrailVerification):
    """Integrity check outcome together with the trail snapshot it covers."""

    trail: AuditTrail | None = None

    def summary(self) -> TrailVerification:
        return TrailVerification(is_valid=self.is_valid, issues=list(self.issues))


class TrailExport(BaseModel):
    """Exported trail snapshot with verification computed at export time."""

    trail: AuditTrail
    verification: TrailVerification
    export_format: Literal["eIDAS-Audit-Trail-v1.0"] = EXPORT_FORMAT
    exported_at: datetime

