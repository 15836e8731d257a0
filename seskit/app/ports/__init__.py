"""Port interfaces for the seskit application layer.

These protocol interfaces define contracts for adapters.
Application services depend on these ports, never on concrete implementations.
"""

__all__ = [
    "ContractDocument",
    "ContractStorePort",
    "EvidenceRendererPort",
    "LedgerPort",
    "RenderRequest",
    "TimestampAuthorityPort",
    "TrailStorePort",
]

from seskit.app.ports.contract import ContractDocument, ContractStorePort
from seskit.app.ports.ledger import LedgerPort
from seskit.app.ports.render import EvidenceRendererPort, RenderRequest
from seskit.app.ports.timestamp import TimestampAuthorityPort
from seskit.audit.store import TrailStorePort
