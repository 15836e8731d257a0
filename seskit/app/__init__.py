"""Application layer for seskit.

This layer orchestrates evidence building, verification and export without
direct filesystem or network I/O. Side effects are delegated to adapters via
port interfaces.
"""

__all__ = [
    "AuditService",
    "EvidenceExporter",
    "SESSignatureBuilder",
    "SignatureVerifier",
    "SigningService",
    "TimestampSource",
]

from seskit.app.audit_service import AuditService
from seskit.app.export_service import EvidenceExporter
from seskit.app.signature_service import SESSignatureBuilder
from seskit.app.signing_service import SigningService
from seskit.app.timestamp_service import TimestampSource
from seskit.app.verification_service import SignatureVerifier
