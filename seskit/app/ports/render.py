"""Evidence renderer port interface."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from pydantic import BaseModel, Field

from seskit.audit.records import TrailVerification
from seskit.models import SignatureEvidence


class RenderRequest(BaseModel):
    """Everything needed to render a signed-contract PDF."""

    evidence: SignatureEvidence
    contract_title: str
    contract_text: str = Field(..., description="Contract body as plain text")
    verification_url: str
    qr_code_png: bytes
    csv_text: str = Field(default="", description="CSV verification data")
    audit_verification: TrailVerification | None = None
    audit_records_count: int | None = None
    audit_root_hash: str | None = None
    audit_is_sealed: bool = False
    audit_sealed_at: datetime | None = None
    company_name: str = "oSign.EU"
    owner_password: str | None = None


class EvidenceRendererPort(Protocol):
    """Port interface for human-readable evidence artifacts.

    Side effects: None (returns bytes).
    """

    def render(self, request: RenderRequest) -> bytes:
        """Render ``request`` to PDF bytes."""
        ...
