"""Immutable evidence models for Simple Electronic Signatures (SES)."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer

SignerMethod = Literal["SMS", "handwritten", "email", "electronic"]
SignatureMethod = Literal["handwritten", "sms_code", "email_click", "electronic"]
PenDeviceType = Literal["stylus", "finger", "mouse"]
InteractionType = Literal[
    "page_view",
    "scroll",
    "click",
    "field_input",
    "signature_start",
    "signature_complete",
]

HASH_ALGORITHM = "SHA-256"
LOCAL_FALLBACK_SOURCE = "local_fallback"


def utc_now() -> datetime:
    """Return the current instant as an aware UTC datetime."""
    return datetime.now(UTC)


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


# Read-only mappings, nested containers included; serialized back to plain dicts.
FrozenDict = Annotated[Mapping[str, Any], AfterValidator(_freeze), PlainSerializer(_thaw)]
FrozenStrDict = Annotated[Mapping[str, str], AfterValidator(_freeze), PlainSerializer(_thaw)]


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class DocumentHash(_FrozenModel):
    """SHA-256 digest of a document as it was signed."""

    hash: str = Field(..., description="Lowercase hex SHA-256 digest")
    algorithm: Literal["SHA-256"] = HASH_ALGORITHM
    original_name: str = Field(..., description="Document name supplied by the caller")


class TimestampRecord(_FrozenModel):
    """Trusted (or explicitly untrusted) time bound to a document hash.

    ``verified=False`` with ``source="local_fallback"`` is a legitimate state
    meaning no timestamp authority could be reached.
    """

    value: datetime
    source: str = Field(..., description="Authority URL or 'local_fallback'")
    token: str | None = Field(default=None, description="Base64 timestamp token")
    verified: bool = False
    serial_number: str | None = None

    @property
    def is_local_fallback(self) -> bool:
        return self.source == LOCAL_FALLBACK_SOURCE


class Geolocation(_FrozenModel):
    latitude: float
    longitude: float
    accuracy: float | None = None


class ClientSignals(_FrozenModel):
    """Environment signals reported by the signing client.

    Browsers report what they can; every field is optional.
    """

    user_agent: str | None = None
    language: str | None = None
    languages: tuple[str, ...] = ()
    cookies_enabled: bool | None = None
    do_not_track: bool | None = None
    screen_width: int | None = Field(default=None, gt=0)
    screen_height: int | None = Field(default=None, gt=0)
    color_depth: int | None = None
    pixel_density: float | None = None
    timezone: str | None = None
    connection_type: str | None = None
    geolocation: Geolocation | None = None


class DeviceMetadata(_FrozenModel):
    """Client environment facts captured at signing time.

    Every field except ``timestamp`` is best-effort; a missing signal is simply
    left as ``None``.
    """

    ip_address: str | None = None
    user_agent: str | None = None
    browser_name: str | None = None
    browser_version: str | None = None
    browser_engine: str | None = None
    operating_system: str | None = None
    os_version: str | None = None
    device_type: str | None = Field(default=None, description="Desktop, Mobile or Tablet")
    screen_resolution: str | None = None
    color_depth: int | None = None
    pixel_density: float | None = None
    timezone: str | None = None
    language: str | None = None
    languages: tuple[str, ...] = ()
    cookies_enabled: bool | None = None
    do_not_track: bool | None = None
    connection_type: str | None = None
    geolocation: Geolocation | None = None
    timestamp: datetime = Field(default_factory=utc_now)


class SignerInfo(_FrozenModel):
    """Identity facts of the person signing."""

    method: SignerMethod
    identifier: str = Field(..., description="Phone number or email used to authenticate")
    name: str | None = None
    tax_id: str | None = None
    email: str | None = None
    phone: str | None = None
    additional_fields: FrozenStrDict = Field(default_factory=lambda: MappingProxyType({}))
    authenticated_at: datetime
    ip_address: str
    user_agent: str
    location: str | None = None


class DocumentInfo(_FrozenModel):
    """Hash of the signed document, optionally with the content itself.

    Retaining ``content`` is what makes later integrity re-verification
    possible.
    """

    hash: str
    algorithm: Literal["SHA-256"] = HASH_ALGORITHM
    original_name: str
    content: str | None = None
    size: int | None = Field(default=None, ge=0, description="Content size in bytes")

    @property
    def document_hash(self) -> DocumentHash:
        return DocumentHash(
            hash=self.hash, algorithm=self.algorithm, original_name=self.original_name
        )


class SignatureData(_FrozenModel):
    """The signature payload itself (image data URL or one-time code)."""

    value: str
    method: SignatureMethod
    signed_at: datetime
    duration: float | None = Field(default=None, ge=0, description="Drawing time in ms")
    points: int | None = Field(default=None, ge=0)
    device_type: PenDeviceType | None = None


class Coordinates(_FrozenModel):
    x: float
    y: float


class InteractionEvent(_FrozenModel):
    timestamp: datetime
    type: InteractionType
    details: FrozenDict | None = None
    coordinates: Coordinates | None = None


class AuditEvent(_FrozenModel):
    """Evidence-local audit entry embedded in a signature."""

    timestamp: datetime
    action: str
    details: FrozenDict = Field(default_factory=lambda: MappingProxyType({}))
    ip_address: str = "unknown"
    user_agent: str = "unknown"


class EvidenceBlock(_FrozenModel):
    """Consent flags, session metrics and the ordered evidence-local audit list."""

    consent_given: bool
    intent_to_bind: bool
    signature_agreement: str
    audit_trail: tuple[AuditEvent, ...] = ()
    session_start_time: datetime
    page_access_time: datetime
    document_view_duration: float = Field(default=0.0, ge=0, description="Milliseconds")
    interaction_events: tuple[InteractionEvent, ...] = ()


class SignatureEvidence(_FrozenModel):
    """Complete, immutable evidence of one SES signing event."""

    id: str
    type: Literal["SES"] = "SES"
    signer: SignerInfo
    document: DocumentInfo
    signature: SignatureData
    timestamp: TimestampRecord
    device_metadata: DeviceMetadata
    evidence: EvidenceBlock
