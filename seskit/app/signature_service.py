"""Assemble immutable SES evidence objects from a signing event."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, get_args

from seskit.app.device import DeviceFingerprinter, parse_user_agent
from seskit.app.timestamp_service import TimestampSource
from seskit.models import (
    AuditEvent,
    ClientSignals,
    DeviceMetadata,
    DocumentHash,
    DocumentInfo,
    EvidenceBlock,
    InteractionEvent,
    PenDeviceType,
    SignatureData,
    SignatureEvidence,
    SignatureMethod,
    SignerInfo,
    SignerMethod,
    utc_now,
)
from seskit.utils.hashing import compute_sha256_text

logger = logging.getLogger(__name__)

DEFAULT_AGREEMENT = "User explicitly agreed to electronically sign this document"
UPGRADE_AGREEMENT = "Retroactive eIDAS compliance upgrade"
UPGRADE_VERSION = "1.0"

REQUIRED_FIELDS = (
    "signer_method",
    "signer_identifier",
    "document_content",
    "document_name",
    "signature_value",
    "signature_method",
    "ip_address",
    "user_agent",
)

_SIGNER_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("clientName", "client_name", "name", "fullName", "nombre"),
    "tax_id": ("clientTaxId", "client_tax_id", "taxId", "tax_id", "nif", "dni", "cif"),
    "email": ("clientEmail", "client_email", "email", "correo"),
    "phone": ("clientPhone", "client_phone", "phone", "telefono", "mobile"),
}


class ValidationError(ValueError):
    """Raised when required signature input is missing or malformed.

    Attributes:
        missing: Names of required fields that were absent or blank
        invalid: Names of fields whose values are not allowed
    """

    def __init__(self, missing: Sequence[str] = (), invalid: Sequence[str] = ()) -> None:
        self.missing = list(missing)
        self.invalid = list(invalid)
        parts = []
        if self.missing:
            parts.append(f"missing required fields: {', '.join(self.missing)}")
        if self.invalid:
            parts.append(f"invalid fields: {', '.join(self.invalid)}")
        super().__init__("Invalid signature request: " + "; ".join(parts))


@dataclass(frozen=True, slots=True)
class SignerFields:
    """Signer attributes extracted from free-form form values."""

    name: str | None = None
    tax_id: str | None = None
    email: str | None = None
    phone: str | None = None
    additional_fields: dict[str, str] = field(default_factory=dict)


def _stringify(value: str | bool) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def split_dynamic_fields(values: Mapping[str, str | bool] | None) -> SignerFields:
    """Map form field values onto the closed signer schema.

    Well-known keys (``clientName``, ``clientTaxId``, ``clientEmail``,
    ``clientPhone`` and common aliases) become named attributes; every other
    key lands in ``additional_fields`` with booleans rendered as
    ``"true"``/``"false"``.
    """
    if not values:
        return SignerFields()

    known: dict[str, str] = {}
    consumed: set[str] = set()
    for attribute, aliases in _SIGNER_FIELD_ALIASES.items():
        for alias in aliases:
            value = values.get(alias)
            if value is None or value == "" or isinstance(value, bool):
                continue
            known[attribute] = str(value).strip()
            consumed.add(alias)
            break

    additional = {
        key: _stringify(value) for key, value in values.items() if key not in consumed
    }
    return SignerFields(additional_fields=additional, **known)


class DocumentHasher:
    """SHA-256 over the UTF-8 bytes of a document."""

    def hash(self, content: str | bytes, filename: str) -> DocumentHash:
        digest = compute_sha256_text(content)
        logger.debug("Hashed document %s", filename)
        return DocumentHash(hash=digest, original_name=filename)


@dataclass(slots=True)
class SignatureRequest:
    """Inputs for :meth:`SESSignatureBuilder.create_signature`.

    ``document_content`` may be text or raw bytes. Bytes are hashed as given;
    the content is kept in the evidence only when it decodes as UTF-8.
    """

    signer_method: SignerMethod | None
    signer_identifier: str | None
    document_content: str | bytes | None
    document_name: str | None
    signature_value: str | None
    signature_method: SignatureMethod | None
    ip_address: str | None
    user_agent: str | None
    location: str | None = None

    signer_name: str | None = None
    signer_tax_id: str | None = None
    signer_email: str | None = None
    signer_phone: str | None = None
    dynamic_fields: Mapping[str, str | bool] | None = None

    device_metadata: DeviceMetadata | None = None
    client_signals: ClientSignals | None = None
    session_start_time: datetime | None = None
    page_access_time: datetime | None = None
    document_view_duration: float | None = None
    interaction_events: Sequence[InteractionEvent] = ()

    signature_duration: float | None = None
    signature_points: int | None = None
    signature_device_type: str | None = None

    consent_given: bool = True
    intent_to_bind: bool = True
    signature_agreement: str = DEFAULT_AGREEMENT

    def validate(self) -> None:
        """Check required fields.

        Raises:
            ValidationError: If anything is missing or not allowed
        """
        missing: list[str] = []
        for name in REQUIRED_FIELDS:
            value = getattr(self, name)
            if value is None:
                missing.append(name)
            elif name != "document_content" and isinstance(value, str) and not value.strip():
                missing.append(name)

        invalid: list[str] = []
        if self.signer_method is not None and self.signer_method not in get_args(SignerMethod):
            invalid.append("signer_method")
        if self.signature_method is not None and self.signature_method not in get_args(
            SignatureMethod
        ):
            invalid.append("signature_method")
        if self.signature_device_type is not None and self.signature_device_type not in get_args(
            PenDeviceType
        ):
            invalid.append("signature_device_type")

        if missing or invalid:
            raise ValidationError(missing=missing, invalid=invalid)

    def document_bytes(self) -> bytes:
        content = self.document_content or b""
        return content.encode("utf-8") if isinstance(content, str) else content

    def document_text(self) -> str | None:
        """Return the content as text, or None for bytes that are not UTF-8."""
        content = self.document_content
        if isinstance(content, bytes):
            try:
                return content.decode("utf-8")
            except UnicodeDecodeError:
                return None
        return content


@dataclass(frozen=True, slots=True)
class LegacySignature:
    """Signature captured before SES evidence existed."""

    id: str
    contract_id: str
    signature: str
    created_at: datetime
    user_agent: str
    ip_address: str
    metadata: Mapping[str, Any] | None = None


class SESSignatureBuilder:
    """Compose signer, document, timestamp and device facts into evidence.

    Each call keeps its own evidence-local audit list (``document_hashed``,
    ``timestamp_obtained``, ``signature_created``) embedded in the result.
    Device data enters that list only as a fingerprint. Writing to a shared
    audit trail is left to the caller (see
    :class:`seskit.app.signing_service.SigningService`).
    """

    def __init__(
        self,
        timestamp_source: TimestampSource,
        fingerprinter: DeviceFingerprinter | None = None,
        *,
        hasher: DocumentHasher | None = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self.timestamp_source = timestamp_source
        self.fingerprinter = fingerprinter or DeviceFingerprinter()
        self.hasher = hasher or DocumentHasher()
        self._clock = clock
        self._id_factory = id_factory

    def _event(
        self, action: str, details: dict[str, Any], ip_address: str, user_agent: str
    ) -> AuditEvent:
        return AuditEvent(
            timestamp=self._clock(),
            action=action,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    def create_signature(self, request: SignatureRequest) -> SignatureEvidence:
        """Build a complete :class:`SignatureEvidence` for one signing event.

        The document hash is always recomputed from ``document_content``.

        Raises:
            ValidationError: Before any hashing or timestamping if required
                input is missing
        """
        request.validate()
        content = request.document_bytes()
        text = request.document_text()
        # validate() guarantees these are present
        ip_address = str(request.ip_address)
        user_agent = str(request.user_agent)
        document_name = str(request.document_name)

        signature_id = self._id_factory()
        events: list[AuditEvent] = []

        document_hash = self.hasher.hash(content, document_name)
        events.append(
            self._event(
                "document_hashed",
                {"filename": document_name, "hash": document_hash.hash},
                ip_address,
                user_agent,
            )
        )

        timestamp = self.timestamp_source.get_timestamp(document_hash.hash)
        events.append(
            self._event(
                "timestamp_obtained",
                {
                    "source": timestamp.source,
                    "verified": timestamp.verified,
                    "hash": document_hash.hash,
                },
                ip_address,
                user_agent,
            )
        )

        device_metadata = request.device_metadata or self.fingerprinter.capture(
            request.client_signals,
            headers={"user-agent": user_agent},
            ip_address=ip_address,
        )
        fingerprint = self.fingerprinter.fingerprint(device_metadata)

        fields = split_dynamic_fields(request.dynamic_fields)
        now = self._clock()

        events.append(
            self._event(
                "signature_created",
                {
                    "signature_id": signature_id,
                    "signer_method": request.signer_method,
                    "device_fingerprint": fingerprint,
                },
                ip_address,
                user_agent,
            )
        )

        evidence = SignatureEvidence(
            id=signature_id,
            signer=SignerInfo(
                method=request.signer_method,  # type: ignore[arg-type]
                identifier=str(request.signer_identifier).strip(),
                name=request.signer_name or fields.name,
                tax_id=request.signer_tax_id or fields.tax_id,
                email=request.signer_email or fields.email,
                phone=request.signer_phone or fields.phone,
                additional_fields=fields.additional_fields,
                authenticated_at=now,
                ip_address=ip_address,
                user_agent=user_agent,
                location=request.location,
            ),
            document=DocumentInfo(
                hash=document_hash.hash,
                original_name=document_name,
                content=text,
                size=len(content),
            ),
            signature=SignatureData(
                value=str(request.signature_value),
                method=request.signature_method,  # type: ignore[arg-type]
                signed_at=now,
                duration=request.signature_duration,
                points=request.signature_points,
                device_type=request.signature_device_type,  # type: ignore[arg-type]
            ),
            timestamp=timestamp,
            device_metadata=device_metadata,
            evidence=EvidenceBlock(
                consent_given=request.consent_given,
                intent_to_bind=request.intent_to_bind,
                signature_agreement=request.signature_agreement,
                audit_trail=tuple(events),
                session_start_time=request.session_start_time or now,
                page_access_time=request.page_access_time or now,
                document_view_duration=request.document_view_duration or 0.0,
                interaction_events=tuple(request.interaction_events),
            ),
        )

        logger.info(
            "SES signature %s created (signer method %s, device fingerprint %s)",
            signature_id,
            request.signer_method,
            fingerprint,
        )
        return evidence

    def upgrade_existing_signature(
        self,
        existing: LegacySignature,
        contract_content: str,
        contract_name: str,
        *,
        signer_method: SignerMethod,
        signer_identifier: str,
    ) -> SignatureEvidence:
        """Produce SES evidence for a signature captured before SES existed.

        ``existing`` is left untouched; the result keeps its id and times and
        carries a two-event audit list recording the original creation and
        the upgrade itself.
        """
        document_hash = self.hasher.hash(contract_content, contract_name)
        timestamp = self.timestamp_source.get_timestamp(document_hash.hash)
        parsed = parse_user_agent(existing.user_agent)

        events = (
            AuditEvent(
                timestamp=existing.created_at,
                action="signature_created",
                details=dict(existing.metadata or {}),
                ip_address=existing.ip_address,
                user_agent=existing.user_agent,
            ),
            AuditEvent(
                timestamp=self._clock(),
                action="eidas_compliance_upgrade",
                details={"upgrade_version": UPGRADE_VERSION},
                ip_address="system",
                user_agent="eidas-upgrade-tool",
            ),
        )

        logger.info("Upgraded legacy signature %s to SES evidence", existing.id)
        return SignatureEvidence(
            id=existing.id,
            signer=SignerInfo(
                method=signer_method,
                identifier=signer_identifier,
                authenticated_at=existing.created_at,
                ip_address=existing.ip_address,
                user_agent=existing.user_agent,
            ),
            document=DocumentInfo(
                hash=document_hash.hash,
                original_name=contract_name,
                content=contract_content,
                size=len(contract_content.encode("utf-8")),
            ),
            signature=SignatureData(
                value=existing.signature,
                method="sms_code" if signer_method == "SMS" else "handwritten",
                signed_at=existing.created_at,
            ),
            timestamp=timestamp,
            device_metadata=DeviceMetadata(
                ip_address=existing.ip_address,
                user_agent=existing.user_agent,
                timestamp=existing.created_at,
                **parsed,
            ),
            evidence=EvidenceBlock(
                consent_given=True,
                intent_to_bind=True,
                signature_agreement=UPGRADE_AGREEMENT,
                audit_trail=events,
                session_start_time=existing.created_at,
                page_access_time=existing.created_at,
            ),
        )
