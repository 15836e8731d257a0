"""Signed-contract PDF rendering adapter using PyMuPDF."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import fitz  # type: ignore[import]

from seskit.app.ports.render import RenderRequest

Color = tuple[float, float, float]


def _hex(value: str) -> Color:
    value = value.lstrip("#")
    return tuple(int(value[i : i + 2], 16) / 255 for i in (0, 2, 4))  # type: ignore[return-value]


DARK = _hex("#2c3e50")
SLATE = _hex("#34495e")
ACCENT = _hex("#e74c3c")
MUTED = _hex("#7f8c8d")
GOOD = _hex("#27ae60")
BAD = _hex("#c0392b")
RULE = _hex("#bdc3c7")
PANEL = _hex("#ecf0f1")

FONT = "helv"
FONT_BOLD = "hebo"


def format_es(value: datetime | None) -> str:
    """Format an instant the way es-ES locales print date and time (UTC)."""
    if value is None:
        return "No disponible"
    return value.astimezone(UTC).strftime("%d/%m/%Y, %H:%M:%S UTC")


def build_legal_notice(signer_method: str, generated_at: datetime) -> str:
    """Fixed eIDAS declaration printed on the last page."""
    return f"""DECLARACIÓN DE CONFORMIDAD eIDAS

Este documento contiene una Firma Electrónica Simple (SES) creada en conformidad con el Reglamento eIDAS (UE) Nº 910/2014 del Parlamento Europeo y del Consejo.

ARTÍCULO 25 - EFECTOS JURÍDICOS DE LAS FIRMAS ELECTRÓNICAS

1. No se negarán efectos jurídicos ni admisibilidad como prueba judicial a una firma electrónica por el mero hecho de estar en forma electrónica.

2. Una firma electrónica simple tendrá los efectos jurídicos y será admisible como prueba en procedimientos judiciales equivalentes a los de una firma manuscrita.

CARACTERÍSTICAS DE ESTA FIRMA

- Tipo: Firma Electrónica Simple (SES)
- Identificación: {signer_method.upper()}
- Timestamp: según RFC 3161 cuando la autoridad está disponible
- Integridad: Protegida mediante hash SHA-256
- Trazabilidad: Audit trail completo
- Validez territorial: Unión Europea

VERIFICACIÓN

Este documento puede verificarse en cualquier momento accediendo a la URL de verificación proporcionada o escaneando el código QR incluido en el documento.

CONSERVACIÓN

Se recomienda conservar este documento junto con los datos de verificación CSV para futuras validaciones. La integridad del documento puede verificarse comparando el hash SHA-256 actual con el registrado.

RESPONSABILIDAD

La validez legal de esta firma está respaldada por el cumplimiento de los requisitos técnicos y procedimentales establecidos en eIDAS para firmas electrónicas simples.

Generado el {format_es(generated_at)}"""


class _PageWriter:
    """Flowing text cursor over an A4 document; adds pages as text overflows."""

    def __init__(self, doc: fitz.Document, margin: float = 50.0) -> None:
        self.doc = doc
        self.margin = margin
        self.width, self.height = fitz.paper_size("a4")
        self.page: fitz.Page | None = None
        self.y = margin

    @property
    def text_width(self) -> float:
        return self.width - 2 * self.margin

    def new_page(self) -> fitz.Page:
        self.page = self.doc.new_page(width=self.width, height=self.height)
        self.y = self.margin
        return self.page

    def _ensure_room(self, needed: float) -> fitz.Page:
        if self.page is None or self.y + needed > self.height - self.margin:
            return self.new_page()
        return self.page

    def wrap(self, text: str, fontsize: float, width: float, fontname: str = FONT) -> list[str]:
        lines: list[str] = []
        for raw_line in text.split("\n"):
            current = ""
            for word in raw_line.split(" "):
                candidate = f"{current} {word}" if current else word
                if fitz.get_text_length(candidate, fontname=fontname, fontsize=fontsize) <= width:
                    current = candidate
                    continue
                if current:
                    lines.append(current)
                current = word
                # Hard-break tokens wider than the column (hashes, user agents).
                while fitz.get_text_length(current, fontname=fontname, fontsize=fontsize) > width:
                    cut = len(current) - 1
                    while cut > 1 and fitz.get_text_length(
                        current[:cut], fontname=fontname, fontsize=fontsize
                    ) > width:
                        cut -= 1
                    lines.append(current[:cut])
                    current = current[cut:]
            lines.append(current)
        return lines

    def text(
        self,
        text: str,
        *,
        fontsize: float = 11,
        color: Color = DARK,
        fontname: str = FONT,
        x: float | None = None,
        width: float | None = None,
        line_gap: float = 3,
    ) -> None:
        left = self.margin if x is None else x
        column = self.text_width if width is None else width
        line_height = fontsize + line_gap
        for line in self.wrap(text, fontsize, column, fontname):
            page = self._ensure_room(line_height)
            if not line:
                self.y += line_height
                continue
            page.insert_text(
                fitz.Point(left, self.y + fontsize),
                line,
                fontsize=fontsize,
                fontname=fontname,
                color=color,
            )
            self.y += line_height

    def title(self, text: str) -> None:
        self.text(text, fontsize=18, fontname=FONT_BOLD)
        assert self.page is not None
        self.y += 4
        self.page.draw_line(
            fitz.Point(self.margin, self.y),
            fitz.Point(self.width - self.margin, self.y),
            color=RULE,
        )
        self.y += 16

    def gap(self, amount: float) -> None:
        self.y += amount


class PDFEvidenceRenderer:
    """Render signed contracts with verification pages backed by PyMuPDF.

    Page order: header, contract text, signature details with QR code, audit
    integrity (when a trail verification is supplied), CSV verification data,
    legal notice. With an owner password the PDF opens without a password but
    only allows low-resolution printing and accessibility extraction.
    """

    _LOG = logging.getLogger(__name__)

    def render(self, request: RenderRequest) -> bytes:
        doc = fitz.open()
        try:
            writer = _PageWriter(doc)
            self._add_header_page(writer, request)
            self._add_contract_content(writer, request)
            self._add_signature_details_page(writer, request)
            if request.audit_verification is not None:
                self._add_audit_trail_page(writer, request)
            self._add_csv_page(writer, request)
            self._add_legal_notice_page(writer, request)

            evidence = request.evidence
            doc.set_metadata(
                {
                    "title": f"Contrato Firmado - {evidence.document.original_name}",
                    "author": request.company_name,
                    "subject": "Contrato con Firma Electrónica Simple (SES) - eIDAS Compliant",
                    "keywords": "eIDAS, SES, Firma Electrónica, Contrato",
                    "creator": f"{request.company_name} eIDAS System",
                    "producer": f"{request.company_name} PDF Generator",
                }
            )

            if request.owner_password:
                data = doc.tobytes(
                    garbage=3,
                    deflate=True,
                    encryption=fitz.PDF_ENCRYPT_AES_256,
                    owner_pw=request.owner_password,
                    user_pw="",
                    permissions=fitz.PDF_PERM_PRINT | fitz.PDF_PERM_ACCESSIBILITY,
                )
            else:
                data = doc.tobytes(garbage=3, deflate=True)

            self._LOG.debug(
                "Rendered evidence PDF for signature %s (%d pages)",
                evidence.id,
                doc.page_count,
            )
            return data
        finally:
            doc.close()

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def _add_header_page(self, writer: _PageWriter, request: RenderRequest) -> None:
        evidence = request.evidence
        page = writer.new_page()
        writer.text(request.company_name, fontsize=20, fontname=FONT_BOLD)
        writer.gap(100)
        writer.text("CONTRATO FIRMADO ELECTRÓNICAMENTE", fontsize=22, color=ACCENT, fontname=FONT_BOLD)
        writer.gap(6)
        writer.text("Firma Electrónica Simple (SES) - Conforme a eIDAS", fontsize=14, color=SLATE)
        writer.gap(16)

        box_top = writer.y
        box = fitz.Rect(writer.margin, box_top, writer.width - writer.margin, box_top + 120)
        page.draw_rect(box, color=RULE, fill=PANEL)
        writer.gap(12)
        inner_x = writer.margin + 10
        inner_width = writer.text_width - 20
        writer.text("Información del Documento:", fontsize=12, fontname=FONT_BOLD, x=inner_x, width=inner_width)
        for line in (
            f"Título: {request.contract_title}",
            f"Nombre: {evidence.document.original_name}",
            f"ID de Firma: {evidence.id}",
            f"Fecha de Firma: {format_es(evidence.signature.signed_at)}",
            f"Firmante: {evidence.signer.identifier}",
            f"Método: {evidence.signer.method.upper()}",
        ):
            writer.text(line, fontsize=10, x=inner_x, width=inner_width)

    def _add_contract_content(self, writer: _PageWriter, request: RenderRequest) -> None:
        writer.new_page()
        writer.title("CONTENIDO DEL CONTRATO")
        writer.text(request.contract_text, fontsize=11)

    def _add_signature_details_page(self, writer: _PageWriter, request: RenderRequest) -> None:
        evidence = request.evidence
        signer = evidence.signer
        timestamp = evidence.timestamp
        page = writer.new_page()
        writer.title("DETALLES DE LA FIRMA ELECTRÓNICA")

        qr_rect = fitz.Rect(400, writer.y, 520, writer.y + 120)
        page.insert_image(qr_rect, stream=request.qr_code_png)
        caption_top = writer.y + 125

        sections: list[tuple[str, list[tuple[str, str]]]] = [
            (
                "INFORMACIÓN DEL FIRMANTE",
                [
                    ("Método de identificación:", signer.method.upper()),
                    ("Identificador:", signer.identifier),
                    ("Nombre:", signer.name or "No disponible"),
                    ("Fecha de autenticación:", format_es(signer.authenticated_at)),
                    ("Dirección IP:", signer.ip_address),
                    ("Navegador/Dispositivo:", signer.user_agent),
                ],
            ),
            (
                "INTEGRIDAD DEL DOCUMENTO",
                [
                    ("Hash SHA-256:", evidence.document.hash),
                    ("Algoritmo:", evidence.document.algorithm),
                    ("Nombre original:", evidence.document.original_name),
                ],
            ),
            (
                "TIMESTAMP",
                [
                    ("Fecha/Hora:", format_es(timestamp.value)),
                    ("Servidor TSA:", timestamp.source),
                    ("Verificado:", "SÍ" if timestamp.verified else "NO"),
                    ("Número de serie:", timestamp.serial_number or "N/A"),
                    ("Token:", "Presente" if timestamp.token else "No disponible"),
                ],
            ),
            (
                "VALIDEZ LEGAL",
                [
                    ("Estándar:", "SES (Simple Electronic Signature)"),
                    ("Normativa:", "eIDAS Regulation (EU) No 910/2014"),
                    ("Artículo aplicable:", "Article 25 - Legal effects"),
                ],
            ),
        ]

        column = 330.0
        for title, rows in sections:
            writer.text(title, fontsize=13, color=ACCENT, fontname=FONT_BOLD, width=column)
            writer.gap(4)
            for label, value in rows:
                writer.text(f"{label} {value}", fontsize=10, x=writer.margin + 10, width=column)
            writer.gap(10)

        end_y = writer.y
        writer.y = caption_top
        writer.text("Escanee para verificar", fontsize=9, color=MUTED, x=400, width=120)
        writer.text(request.verification_url, fontsize=7, color=MUTED, x=400, width=120)
        writer.y = max(end_y, writer.y)

    def _add_audit_trail_page(self, writer: _PageWriter, request: RenderRequest) -> None:
        verification = request.audit_verification
        assert verification is not None
        writer.new_page()
        writer.title("VERIFICACIÓN DE INTEGRIDAD DE AUDITORÍA")
        writer.text(
            "Registro criptográfico de todos los eventos de firma para garantizar no repudio",
            fontsize=11,
            color=MUTED,
        )
        writer.gap(10)
        writer.text(
            f"ESTADO DE INTEGRIDAD: {'VÁLIDO' if verification.is_valid else 'INVÁLIDO'}",
            fontsize=14,
            color=GOOD if verification.is_valid else ACCENT,
            fontname=FONT_BOLD,
        )
        writer.gap(10)
        for label, value in (
            ("Total de Registros:", str(request.audit_records_count or 0)),
            ("Auditoría Sellada:", "SÍ" if request.audit_is_sealed else "NO"),
            (
                "Fecha de Sellado:",
                format_es(request.audit_sealed_at) if request.audit_sealed_at else "NO SELLADO",
            ),
            ("Hash Raíz:", request.audit_root_hash or "NO DISPONIBLE"),
        ):
            writer.text(f"{label} {value}", fontsize=11, x=writer.margin + 10)
        writer.gap(10)

        if verification.issues:
            writer.text("PROBLEMAS DETECTADOS:", fontsize=13, color=ACCENT, fontname=FONT_BOLD)
            for index, issue in enumerate(verification.issues, 1):
                writer.text(f"{index}. {issue}", fontsize=10, color=BAD, x=writer.margin + 10)
        else:
            writer.text("No se detectaron problemas de integridad", fontsize=11, color=GOOD)
        writer.gap(20)
        writer.text(
            "Esta auditoría utiliza cadenas de hash criptográficas para garantizar que cada "
            "evento registrado no ha sido modificado desde su creación.",
            fontsize=10,
            color=MUTED,
        )

    def _add_csv_page(self, writer: _PageWriter, request: RenderRequest) -> None:
        writer.new_page()
        writer.title("DATOS DE VERIFICACIÓN (CSV)")
        writer.text(
            "Los siguientes datos pueden ser utilizados para verificar la autenticidad de esta firma:",
            fontsize=11,
            color=MUTED,
        )
        writer.gap(8)
        writer.text(request.csv_text, fontsize=8, line_gap=2)

    def _add_legal_notice_page(self, writer: _PageWriter, request: RenderRequest) -> None:
        writer.new_page()
        writer.title("AVISO LEGAL Y DECLARACIÓN eIDAS")
        notice = build_legal_notice(request.evidence.signer.method, datetime.now(UTC))
        writer.text(notice, fontsize=10)
        writer.text(f"Sistema: {request.company_name} eIDAS Compliant", fontsize=10)
