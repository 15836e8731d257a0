"""Concrete adapters wiring application ports to built-in implementations."""

from __future__ import annotations

from .contracts import FileSystemContractStore
from .pdf_renderer import PDFEvidenceRenderer
from .tsa import HttpDateTimestampAuthority, TimestampAuthorityError

__all__ = [
    "FileSystemContractStore",
    "HttpDateTimestampAuthority",
    "PDFEvidenceRenderer",
    "TimestampAuthorityError",
]
