"""Evidence packages and human-readable signed-contract artifacts."""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Literal

import qrcode
from pydantic import BaseModel, Field

from seskit.app.ports.ledger import LedgerPort
from seskit.app.ports.render import EvidenceRendererPort, RenderRequest
from seskit.audit.records import IntegrityReport
from seskit.models import SignatureEvidence, utc_now
from seskit.utils.crypto import generate_secure_password
from seskit.utils.html_text import html_to_text

logger = logging.getLogger(__name__)

PACKAGE_FORMAT = "SES-Evidence-Package"
PACKAGE_VERSION = "1.0"
PACKAGE_STANDARD = "eIDAS-compliant"

CSV_HEADER = ("Campo", "Valor", "Verificable")
NOT_AVAILABLE = "No disponible"
YES = "Sí"
NO = "No"


class PackageMetadata(BaseModel):
    format: Literal["SES-Evidence-Package"] = PACKAGE_FORMAT
    version: str = PACKAGE_VERSION
    standard: str = PACKAGE_STANDARD
    created_at: datetime
    signature_id: str


class EvidencePackage(BaseModel):
    """Evidence object bundled with package metadata and a legal notice."""

    metadata: PackageMetadata
    signature: SignatureEvidence
    legal_notice: str


class SignedContractArtifact(BaseModel):
    """Rendered PDF plus the verification data embedded in it."""

    pdf_bytes: bytes
    csv_verification_data: str
    verification_url: str
    qr_code_png: bytes
    owner_password: str | None = Field(default=None, repr=False)
    password_protected: bool = False


def iso_utc(value: datetime | None) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    if value is None:
        return NOT_AVAILABLE
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_package_legal_notice(evidence: SignatureEvidence) -> str:
    """Templated statement naming signer method and timestamp source."""
    return (
        "This electronic signature was created in compliance with eIDAS Regulation "
        "(EU) No 910/2014.\n"
        "This is a Simple Electronic Signature (SES) with the following characteristics:\n"
        f"- Signer identification via {evidence.signer.method}\n"
        "- Document integrity protection via SHA-256 hashing\n"
        f"- Timestamp from {evidence.timestamp.source}"
        f"{'' if evidence.timestamp.verified else ' (not verified by a timestamp authority)'}\n"
        "- Complete audit trail maintained\n"
        "\n"
        "This signature has legal validity equivalent to handwritten signature under "
        "eIDAS Article 25."
    )


def make_qr_png(data: str) -> bytes:
    """Encode ``data`` as a PNG QR code."""
    qr = qrcode.QRCode(border=2)
    qr.add_data(data)
    qr.make(fit=True)
    buffer = io.BytesIO()
    qr.make_image().save(buffer)
    return buffer.getvalue()


def _value(value: object) -> str:
    if value is None or value == "":
        return NOT_AVAILABLE
    return str(value)


def build_verification_csv(
    evidence: SignatureEvidence,
    audit_report: IntegrityReport | None = None,
    *,
    password_protected: bool = True,
) -> str:
    """Render the ``Campo,Valor,Verificable`` verification CSV.

    Row names and order are an interoperability contract. A value that cannot
    be rendered is written as ``No disponible``; rows are never dropped.
    """
    signer = evidence.signer
    document = evidence.document
    signature = evidence.signature
    timestamp = evidence.timestamp
    block = evidence.evidence

    rows: list[tuple[str, str]] = [
        ("ID_Firma", _value(evidence.id)),
        ("Tipo_Firma", _value(evidence.type)),
        ("Método_Firmante", _value(signer.method)),
        ("Identificador_Firmante", _value(signer.identifier)),
        ("Fecha_Autenticación", iso_utc(signer.authenticated_at)),
        ("IP_Firmante", _value(signer.ip_address)),
        ("User_Agent", _value(signer.user_agent)),
        ("Hash_Documento", _value(document.hash)),
        ("Algoritmo_Hash", _value(document.algorithm)),
        ("Nombre_Documento", _value(document.original_name)),
        ("Método_Firma", _value(signature.method)),
        ("Fecha_Firma", iso_utc(signature.signed_at)),
        ("Timestamp_Valor", iso_utc(timestamp.value)),
        ("Timestamp_Fuente", _value(timestamp.source)),
        ("Timestamp_Verificado", YES if timestamp.verified else NO),
        ("Timestamp_Serial", timestamp.serial_number or "N/A"),
        ("Timestamp_Token", "Presente" if timestamp.token else NOT_AVAILABLE),
        (
            "PDF_Protegido",
            "Sí - Contraseña de propietario" if password_protected else NO,
        ),
        (
            "PDF_Permisos",
            "Solo lectura y impresión baja resolución" if password_protected else "Sin restricciones",
        ),
        ("Consentimiento_Dado", YES if block.consent_given else NO),
        ("Intención_Vincular", YES if block.intent_to_bind else NO),
        ("Eventos_Auditoría", str(len(block.audit_trail))),
        ("Estándar_eIDAS", "SES - Simple Electronic Signature"),
        ("Cumplimiento_Legal", "eIDAS Article 25 - Valid in EU"),
    ]

    if audit_report is not None:
        trail = audit_report.trail
        rows.extend(
            [
                ("Integridad_Auditoría", "VÁLIDA" if audit_report.is_valid else "INVÁLIDA"),
                ("Registros_Auditoría", str(len(trail.records)) if trail else "0"),
                ("Auditoría_Sellada", "SÍ" if trail and trail.is_sealed else "NO"),
                (
                    "Fecha_Sellado",
                    iso_utc(trail.sealed_at) if trail and trail.sealed_at else "NO SELLADO",
                ),
                ("Hash_Raiz_Auditoría", trail.root_hash if trail else "NO DISPONIBLE"),
            ]
        )
        if audit_report.issues:
            rows.append(("Problemas_Integridad", "; ".join(audit_report.issues)))

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for name, value in rows:
        writer.writerow((name, value, YES))
    return buffer.getvalue().rstrip("\n")


class EvidenceExporter:
    """Package evidence and render signed-contract PDFs."""

    def __init__(
        self,
        renderer: EvidenceRendererPort | None = None,
        ledger: LedgerPort | None = None,
        *,
        base_url: str = "https://tu-dominio.com",
        company_name: str = "oSign.EU",
        protect: bool = True,
        password_length: int = 20,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.renderer = renderer
        self.ledger = ledger
        self.base_url = base_url.rstrip("/")
        self.company_name = company_name
        self.protect = protect
        self.password_length = password_length
        self._clock = clock

    def export_evidence_package(self, evidence: SignatureEvidence) -> EvidencePackage:
        """Bundle ``evidence`` with package metadata and the legal notice."""
        return EvidencePackage(
            metadata=PackageMetadata(created_at=self._clock(), signature_id=evidence.id),
            signature=evidence,
            legal_notice=build_package_legal_notice(evidence),
        )

    def verification_url(self, evidence: SignatureEvidence) -> str:
        return f"{self.base_url}/verify/{evidence.id}"

    def audit_report(self, trail_id: str | None) -> IntegrityReport | None:
        if trail_id is None or self.ledger is None:
            return None
        return self.ledger.verify_integrity(trail_id)

    def build_verification_csv(
        self,
        evidence: SignatureEvidence,
        *,
        trail_id: str | None = None,
    ) -> str:
        return build_verification_csv(
            evidence, self.audit_report(trail_id), password_protected=self.protect
        )

    def render_pdf(
        self,
        evidence: SignatureEvidence,
        contract_content: str | None = None,
        *,
        contract_title: str | None = None,
        trail_id: str | None = None,
    ) -> SignedContractArtifact:
        """Render the signed contract with its verification pages.

        ``contract_content`` defaults to the content retained in the evidence.
        """
        if self.renderer is None:
            raise RuntimeError("No evidence renderer configured")

        report = self.audit_report(trail_id)
        csv_data = build_verification_csv(evidence, report, password_protected=self.protect)
        url = self.verification_url(evidence)
        qr_png = make_qr_png(url)
        owner_password = (
            generate_secure_password(self.password_length) if self.protect else None
        )

        content = contract_content if contract_content is not None else evidence.document.content
        trail = report.trail if report is not None else None
        request = RenderRequest(
            evidence=evidence,
            contract_title=contract_title or evidence.document.original_name,
            contract_text=html_to_text(content or ""),
            verification_url=url,
            qr_code_png=qr_png,
            csv_text=csv_data,
            audit_verification=report.summary() if report is not None else None,
            audit_records_count=len(trail.records) if trail else None,
            audit_root_hash=trail.root_hash if trail else None,
            audit_is_sealed=bool(trail and trail.is_sealed),
            audit_sealed_at=trail.sealed_at if trail else None,
            company_name=self.company_name,
            owner_password=owner_password,
        )
        pdf_bytes = self.renderer.render(request)
        logger.info("Rendered signed contract PDF for signature %s", evidence.id)

        return SignedContractArtifact(
            pdf_bytes=pdf_bytes,
            csv_verification_data=csv_data,
            verification_url=url,
            qr_code_png=qr_png,
            owner_password=owner_password,
            password_protected=owner_password is not None,
        )
