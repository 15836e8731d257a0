"""Verification and compliance reporting for SES evidence."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Literal

from pydantic import BaseModel, Field

from seskit.app.ports.ledger import LedgerPort
from seskit.app.timestamp_service import TimestampSource
from seskit.audit.records import TrailVerification
from seskit.models import SignatureEvidence
from seskit.utils.hashing import compute_sha256_text

logger = logging.getLogger(__name__)

WARNING_CONTENT_NOT_RETAINED = (
    "Document content was not retained - integrity cannot be verified"
)
WARNING_INTEGRITY_FAILED = "Document integrity check failed - content may have been modified"
WARNING_TIMESTAMP_UNVERIFIED = "Timestamp could not be verified with qualified TSA"
WARNING_SIGNATURE_MISSING = "Signature value is missing or empty"
WARNING_AUDIT_INCOMPLETE = "Audit trail is incomplete"
WARNING_NO_CONSENT = "Signer consent was not recorded"
WARNING_NO_INTENT = "Signer intent to be bound was not recorded"


class VerificationChecks(BaseModel):
    """Per-check outcome.

    ``document_integrity`` is None when the document content was not retained
    and the check could not run.
    """

    document_integrity: bool | None = None
    timestamp_valid: bool = False
    signature_present: bool = False
    audit_trail_complete: bool = False

    def all_passed(self) -> bool:
        return (
            self.document_integrity is True
            and self.timestamp_valid
            and self.signature_present
            and self.audit_trail_complete
        )


class VerificationResult(BaseModel):
    valid: bool
    checks: VerificationChecks
    warnings: list[str] = Field(default_factory=list)
    audit_trail: TrailVerification | None = None


class ComplianceResult(BaseModel):
    valid: bool
    compliance_level: Literal["SES", "non-compliant"]
    checks: VerificationChecks
    warnings: list[str] = Field(default_factory=list)
    recommended_actions: list[str] = Field(default_factory=list)


class ComplianceIssues(BaseModel):
    missing_timestamps: int = 0
    failed_integrity: int = 0
    missing_audit_trail: int = 0


class ComplianceReport(BaseModel):
    total_signatures: int
    compliant_signatures: int
    compliance_rate: int = Field(..., description="Rounded percentage 0-100")
    issues: ComplianceIssues
    recommendations: list[str] = Field(default_factory=list)


class SignatureVerifier:
    """Re-check a :class:`SignatureEvidence` without contacting any authority.

    A result is ``valid`` only when every check passed and no warning was
    raised; partial evidence is reported as not fully valid.
    """

    def __init__(
        self,
        timestamp_source: TimestampSource | None = None,
        ledger: LedgerPort | None = None,
    ) -> None:
        self.timestamp_source = timestamp_source or TimestampSource(online=False)
        self.ledger = ledger

    def verify(
        self,
        evidence: SignatureEvidence,
        *,
        trail_id: str | None = None,
    ) -> VerificationResult:
        """Verify ``evidence``; optionally also the ledger trail ``trail_id``."""
        checks = VerificationChecks()
        warnings: list[str] = []

        content = evidence.document.content
        if content is None:
            warnings.append(WARNING_CONTENT_NOT_RETAINED)
        else:
            checks.document_integrity = compute_sha256_text(content) == evidence.document.hash
            if not checks.document_integrity:
                warnings.append(WARNING_INTEGRITY_FAILED)

        checks.timestamp_valid = evidence.timestamp.verified
        if not checks.timestamp_valid:
            warnings.append(WARNING_TIMESTAMP_UNVERIFIED)

        if evidence.timestamp.token:
            token_check = self.timestamp_source.verify_timestamp(
                evidence.timestamp.token, evidence.document.hash
            )
            if not token_check.valid:
                warnings.append(f"Timestamp token does not bind the document: {token_check.error}")

        checks.signature_present = bool(evidence.signature.value)
        if not checks.signature_present:
            warnings.append(WARNING_SIGNATURE_MISSING)

        checks.audit_trail_complete = len(evidence.evidence.audit_trail) > 0
        if not checks.audit_trail_complete:
            warnings.append(WARNING_AUDIT_INCOMPLETE)

        if not evidence.evidence.consent_given:
            warnings.append(WARNING_NO_CONSENT)
        if not evidence.evidence.intent_to_bind:
            warnings.append(WARNING_NO_INTENT)

        audit_trail: TrailVerification | None = None
        if trail_id is not None and self.ledger is not None:
            audit_trail = self.ledger.verify_integrity(trail_id).summary()
            warnings.extend(f"Audit trail: {issue}" for issue in audit_trail.issues)

        valid = checks.all_passed() and not warnings
        logger.debug(
            "Verified signature %s: valid=%s, %d warning(s)", evidence.id, valid, len(warnings)
        )
        return VerificationResult(
            valid=valid, checks=checks, warnings=warnings, audit_trail=audit_trail
        )

    def verify_compliance(
        self,
        evidence: SignatureEvidence,
        *,
        trail_id: str | None = None,
    ) -> ComplianceResult:
        """Verify ``evidence`` and suggest actions towards full SES compliance."""
        result = self.verify(evidence, trail_id=trail_id)

        actions: list[str] = []
        if not result.checks.timestamp_valid:
            actions.append("Implement qualified timestamp authority integration")
        if not result.checks.document_integrity:
            actions.append("Ensure document content is stored and hash verified")
        if result.warnings:
            actions.append("Address verification warnings for full compliance")

        return ComplianceResult(
            valid=result.valid,
            compliance_level="SES" if result.valid else "non-compliant",
            checks=result.checks,
            warnings=result.warnings,
            recommended_actions=actions,
        )


def generate_compliance_report(evidences: Iterable[SignatureEvidence]) -> ComplianceReport:
    """Aggregate compliance counters over a batch of evidence objects."""
    items = list(evidences)
    issues = ComplianceIssues()
    compliant = 0

    for evidence in items:
        is_compliant = True
        if not evidence.timestamp.verified:
            issues.missing_timestamps += 1
            is_compliant = False
        if not evidence.document.hash or evidence.document.content is None:
            issues.failed_integrity += 1
            is_compliant = False
        if not evidence.evidence.audit_trail:
            issues.missing_audit_trail += 1
            is_compliant = False
        if is_compliant:
            compliant += 1

    rate = (compliant / len(items)) * 100 if items else 0.0

    recommendations: list[str] = []
    if issues.missing_timestamps:
        recommendations.append("Implement qualified timestamp authority for future signatures")
    if issues.failed_integrity:
        recommendations.append(
            "Ensure document content and hashing is implemented for all signatures"
        )
    if issues.missing_audit_trail:
        recommendations.append("Implement comprehensive audit trail logging")
    if rate < 80:
        recommendations.append("Consider upgrading existing signatures to SES evidence")

    return ComplianceReport(
        total_signatures=len(items),
        compliant_signatures=compliant,
        compliance_rate=int(rate + 0.5),
        issues=issues,
        recommendations=recommendations,
    )
