"""Tests for evidence packages, verification CSV and PDF rendering."""

import csv
import io
from datetime import UTC, datetime

import fitz
import pytest

from seskit.app.adapters import PDFEvidenceRenderer
from seskit.app.export_service import (
    NOT_AVAILABLE,
    EvidenceExporter,
    build_verification_csv,
    iso_utc,
    make_qr_png,
)
from seskit.audit import AuditTrailLedger

CSV_FIELDS = [
    "ID_Firma",
    "Tipo_Firma",
    "Método_Firmante",
    "Identificador_Firmante",
    "Fecha_Autenticación",
    "IP_Firmante",
    "User_Agent",
    "Hash_Documento",
    "Algoritmo_Hash",
    "Nombre_Documento",
    "Método_Firma",
    "Fecha_Firma",
    "Timestamp_Valor",
    "Timestamp_Fuente",
    "Timestamp_Verificado",
    "Timestamp_Serial",
    "Timestamp_Token",
    "PDF_Protegido",
    "PDF_Permisos",
    "Consentimiento_Dado",
    "Intención_Vincular",
    "Eventos_Auditoría",
    "Estándar_eIDAS",
    "Cumplimiento_Legal",
]
AUDIT_FIELDS = [
    "Integridad_Auditoría",
    "Registros_Auditoría",
    "Auditoría_Sellada",
    "Fecha_Sellado",
    "Hash_Raiz_Auditoría",
]


def _rows(text: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(text)))


def test_iso_utc_formatting():
    assert iso_utc(datetime(2026, 1, 12, 10, 30, 5, 123456, tzinfo=UTC)) == "2026-01-12T10:30:05.123Z"
    assert iso_utc(None) == NOT_AVAILABLE


def test_verification_csv_rows_in_order(evidence):
    rows = _rows(build_verification_csv(evidence))

    assert rows[0] == ["Campo", "Valor", "Verificable"]
    assert [row[0] for row in rows[1:]] == CSV_FIELDS
    assert all(row[2] == "Sí" for row in rows[1:])

    values = {row[0]: row[1] for row in rows[1:]}
    assert values["ID_Firma"] == evidence.id
    assert values["Hash_Documento"] == evidence.document.hash
    assert values["User_Agent"] == evidence.signer.user_agent
    assert values["Timestamp_Fuente"] == "local_fallback"
    assert values["Timestamp_Verificado"] == "No"
    assert values["Timestamp_Serial"] == "N/A"
    assert values["Timestamp_Token"] == NOT_AVAILABLE
    assert values["Eventos_Auditoría"] == "3"
    assert values["PDF_Protegido"] == "Sí - Contraseña de propietario"


def test_verification_csv_unprotected(evidence):
    values = {row[0]: row[1] for row in _rows(build_verification_csv(evidence, password_protected=False))}

    assert values["PDF_Protegido"] == "No"
    assert values["PDF_Permisos"] == "Sin restricciones"


def test_verification_csv_with_audit_rows(evidence):
    ledger = AuditTrailLedger()
    ledger.add_signature_audit_trail("contract-1", evidence)
    ledger.seal_trail("contract-1")
    exporter = EvidenceExporter(ledger=ledger)

    rows = _rows(exporter.build_verification_csv(evidence, trail_id="contract-1"))
    names = [row[0] for row in rows[1:]]

    assert names == CSV_FIELDS + AUDIT_FIELDS
    values = {row[0]: row[1] for row in rows[1:]}
    assert values["Integridad_Auditoría"] == "VÁLIDA"
    assert values["Registros_Auditoría"] == "7"
    assert values["Auditoría_Sellada"] == "SÍ"
    assert values["Hash_Raiz_Auditoría"] == ledger.get_trail("contract-1").root_hash


def test_verification_csv_reports_missing_trail(evidence):
    exporter = EvidenceExporter(ledger=AuditTrailLedger())
    values = {
        row[0]: row[1]
        for row in _rows(exporter.build_verification_csv(evidence, trail_id="missing"))[1:]
    }

    assert values["Integridad_Auditoría"] == "INVÁLIDA"
    assert values["Registros_Auditoría"] == "0"
    assert values["Fecha_Sellado"] == "NO SELLADO"
    assert values["Problemas_Integridad"] == "Audit trail not found"


def test_export_evidence_package(evidence):
    created = datetime(2026, 2, 1, tzinfo=UTC)
    package = EvidenceExporter(clock=lambda: created).export_evidence_package(evidence)

    assert package.metadata.format == "SES-Evidence-Package"
    assert package.metadata.version == "1.0"
    assert package.metadata.standard == "eIDAS-compliant"
    assert package.metadata.created_at == created
    assert package.metadata.signature_id == evidence.id
    assert package.signature == evidence
    assert "Signer identification via SMS" in package.legal_notice
    assert "local_fallback (not verified by a timestamp authority)" in package.legal_notice


def test_verification_url_and_qr(evidence):
    exporter = EvidenceExporter(base_url="https://firma.example.com/")

    assert exporter.verification_url(evidence) == f"https://firma.example.com/verify/{evidence.id}"
    assert make_qr_png("https://firma.example.com").startswith(b"\x89PNG")


def test_render_pdf_unprotected(evidence):
    exporter = EvidenceExporter(PDFEvidenceRenderer(), protect=False)

    artifact = exporter.render_pdf(evidence, contract_title="Contrato de Servicios")

    assert artifact.pdf_bytes.startswith(b"%PDF")
    assert artifact.password_protected is False
    assert artifact.owner_password is None
    with fitz.open(stream=artifact.pdf_bytes, filetype="pdf") as doc:
        assert doc.page_count >= 5
        assert evidence.id in doc[0].get_text()
        assert doc.metadata["author"] == "oSign.EU"


def test_render_pdf_protected_with_audit_page(evidence):
    ledger = AuditTrailLedger()
    ledger.add_signature_audit_trail("contract-1", evidence)
    exporter = EvidenceExporter(PDFEvidenceRenderer(), ledger, password_length=24)

    artifact = exporter.render_pdf(evidence, trail_id="contract-1")

    assert artifact.pdf_bytes.startswith(b"%PDF")
    assert artifact.password_protected is True
    assert artifact.owner_password is not None and len(artifact.owner_password) == 24
    assert "Integridad_Auditoría,VÁLIDA,Sí" in artifact.csv_verification_data
    with fitz.open(stream=artifact.pdf_bytes, filetype="pdf") as doc:
        assert not doc.needs_pass
        assert doc.page_count >= 6


def test_render_pdf_requires_renderer(evidence):
    with pytest.raises(RuntimeError, match="No evidence renderer"):
        EvidenceExporter().render_pdf(evidence)
