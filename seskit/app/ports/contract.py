"""Contract store port interface."""

from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel, Field


class ContractDocument(BaseModel):
    """Contract content as supplied by the contract store."""

    contract_id: str
    name: str = Field(..., description="Display name used as the document name")
    content: str = Field(..., description="Contract body (HTML or plain text)")


class ContractStorePort(Protocol):
    """Read-only access to contract content.

    The signing core never writes back to the contract store.
    """

    def get_contract(self, contract_id: str) -> ContractDocument:
        """Return the contract; raises KeyError when unknown."""
        ...

    def list_contracts(self) -> list[str]:
        """Return all available contract ids."""
        ...
