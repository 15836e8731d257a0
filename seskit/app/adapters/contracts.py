"""Filesystem-backed contract store port implementation."""

from __future__ import annotations

import json
from pathlib import Path

from seskit.app.ports.contract import ContractDocument

CONTRACT_SUFFIXES = (".html", ".htm", ".txt", ".md")


class FileSystemContractStore:
    """Read-only contract store over a directory of files.

    ``<root>/<contract_id>.<html|htm|txt|md>`` holds the body. An optional
    ``<root>/<contract_id>.json`` sidecar may provide ``{"name": ...}``;
    otherwise the body's file name is used as the document name.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _body_path(self, contract_id: str) -> Path | None:
        if not contract_id or Path(contract_id).name != contract_id:
            raise KeyError(f"Invalid contract id: {contract_id!r}")

        for suffix in CONTRACT_SUFFIXES:
            candidate = self.root / f"{contract_id}{suffix}"
            if candidate.is_file():
                return candidate
        return None

    def get_contract(self, contract_id: str) -> ContractDocument:
        body_path = self._body_path(contract_id)
        if body_path is None:
            raise KeyError(f"Contract not found: {contract_id}")

        name = body_path.name
        sidecar = self.root / f"{contract_id}.json"
        if sidecar.is_file():
            meta = json.loads(sidecar.read_text(encoding="utf-8"))
            name = str(meta.get("name") or name)

        return ContractDocument(
            contract_id=contract_id,
            name=name,
            content=body_path.read_text(encoding="utf-8"),
        )

    def list_contracts(self) -> list[str]:
        if not self.root.exists():
            return []
        return sorted(
            {path.stem for path in self.root.iterdir() if path.suffix in CONTRACT_SUFFIXES}
        )
