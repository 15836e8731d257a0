"""Tests for SES evidence assembly."""

from datetime import UTC, datetime

import pytest

from seskit.app.signature_service import (
    LegacySignature,
    SESSignatureBuilder,
    ValidationError,
    split_dynamic_fields,
)
from seskit.app.timestamp_service import TimestampSource
from seskit.models import LOCAL_FALLBACK_SOURCE, ClientSignals, SignatureEvidence
from seskit.utils.hashing import compute_sha256, compute_sha256_text

from conftest import CHROME_WINDOWS_UA, CONTRACT_HTML, StepClock


def test_create_signature_builds_complete_evidence(evidence):
    assert evidence.id == "sig-0001"
    assert evidence.type == "SES"

    assert evidence.document.hash == compute_sha256_text(CONTRACT_HTML)
    assert evidence.document.content == CONTRACT_HTML
    assert evidence.document.size == len(CONTRACT_HTML.encode("utf-8"))
    assert evidence.document.algorithm == "SHA-256"

    assert evidence.signer.method == "SMS"
    assert evidence.signer.name == "Ana García"
    assert evidence.signer.tax_id == "12345678Z"
    assert evidence.signer.email == "ana@example.com"
    assert evidence.signer.additional_fields == {"acceptMarketing": "false"}

    assert evidence.signature.points == 214
    assert evidence.signature.device_type == "mouse"

    assert evidence.timestamp.source == LOCAL_FALLBACK_SOURCE
    assert evidence.timestamp.verified is False

    assert evidence.device_metadata.browser_name == "Chrome"
    assert evidence.device_metadata.ip_address == "203.0.113.7"

    assert evidence.evidence.consent_given is True
    assert evidence.evidence.intent_to_bind is True


def test_evidence_local_audit_list(evidence, builder):
    actions = [event.action for event in evidence.evidence.audit_trail]
    assert actions == ["document_hashed", "timestamp_obtained", "signature_created"]

    timestamps = [event.timestamp for event in evidence.evidence.audit_trail]
    assert timestamps == sorted(timestamps)

    created = evidence.evidence.audit_trail[-1]
    fingerprint = builder.fingerprinter.fingerprint(evidence.device_metadata)
    assert created.details["device_fingerprint"] == fingerprint
    assert created.details["signature_id"] == evidence.id
    assert "browser_name" not in created.details


def test_builder_is_deterministic_with_fixed_collaborators(make_request):
    def build():
        clock = StepClock()
        return SESSignatureBuilder(
            TimestampSource(online=False, clock=clock),
            clock=clock,
            id_factory=lambda: "fixed-id",
        ).create_signature(
            make_request(client_signals=ClientSignals(user_agent=CHROME_WINDOWS_UA))
        )

    first, second = build(), build()
    assert first.model_dump(exclude={"device_metadata": {"timestamp"}}) == second.model_dump(
        exclude={"device_metadata": {"timestamp"}}
    )


def test_document_hash_is_recomputed_for_identical_content(builder, make_request):
    a = builder.create_signature(make_request())
    b = builder.create_signature(make_request(document_name="copia.html"))

    assert a.id != b.id
    assert a.document.hash == b.document.hash


def test_bytes_content_is_decoded_as_utf8(builder, make_request):
    evidence = builder.create_signature(make_request(document_content=CONTRACT_HTML.encode("utf-8")))
    assert evidence.document.content == CONTRACT_HTML


def test_empty_content_is_allowed(builder, make_request):
    evidence = builder.create_signature(make_request(document_content=""))
    assert evidence.document.hash == compute_sha256_text("")
    assert evidence.document.size == 0


def test_missing_fields_raise_before_timestamping(make_request):
    class ExplodingSource(TimestampSource):
        def get_timestamp(self, document_hash):  # pragma: no cover - must not be reached
            raise AssertionError("timestamp requested for invalid input")

    builder = SESSignatureBuilder(ExplodingSource(online=False))

    with pytest.raises(ValidationError) as excinfo:
        builder.create_signature(
            make_request(signer_identifier="  ", signature_value=None, document_content=None)
        )

    assert set(excinfo.value.missing) == {"signer_identifier", "signature_value", "document_content"}
    assert "missing required fields" in str(excinfo.value)


def test_invalid_enumerations_are_rejected(builder, make_request):
    with pytest.raises(ValidationError) as excinfo:
        builder.create_signature(
            make_request(signer_method="fax", signature_method="stamp", signature_device_type="pen")
        )

    assert excinfo.value.invalid == ["signer_method", "signature_method", "signature_device_type"]


def test_binary_content_is_hashed_but_not_retained(builder, make_request):
    payload = b"%PDF-1.7\n\xff\xfe\xfa"
    evidence = builder.create_signature(make_request(document_content=payload))

    assert evidence.document.hash == compute_sha256(payload)
    assert evidence.document.size == len(payload)
    assert evidence.document.content is None


def test_evidence_nested_fields_are_read_only(evidence):
    with pytest.raises(TypeError):
        evidence.evidence.audit_trail[0].details["hash"] = "forged"
    with pytest.raises(TypeError):
        evidence.signer.additional_fields["acceptMarketing"] = "true"

    dumped = evidence.model_dump(mode="json")
    assert dumped["evidence"]["audit_trail"][0]["details"]["hash"] == evidence.document.hash
    assert dumped["signer"]["additional_fields"] == {"acceptMarketing": "false"}
    restored = SignatureEvidence.model_validate_json(evidence.model_dump_json())
    assert restored.model_dump() == evidence.model_dump()


def test_split_dynamic_fields():
    fields = split_dynamic_fields(
        {
            "clientName": " Ana García ",
            "nif": "12345678Z",
            "clientPhone": "+34600111222",
            "plan": "premium",
            "newsletter": True,
            "terms": False,
        }
    )

    assert fields.name == "Ana García"
    assert fields.tax_id == "12345678Z"
    assert fields.phone == "+34600111222"
    assert fields.email is None
    assert fields.additional_fields == {"plan": "premium", "newsletter": "true", "terms": "false"}
    assert split_dynamic_fields(None).additional_fields == {}


def test_upgrade_existing_signature(builder):
    created = datetime(2024, 5, 2, 8, 0, tzinfo=UTC)
    legacy = LegacySignature(
        id="legacy-7",
        contract_id="contract-1",
        signature="data:image/png;base64,AAAA",
        created_at=created,
        user_agent=CHROME_WINDOWS_UA,
        ip_address="198.51.100.4",
        metadata={"channel": "web"},
    )

    upgraded = builder.upgrade_existing_signature(
        legacy,
        CONTRACT_HTML,
        "contrato.html",
        signer_method="SMS",
        signer_identifier="+34600111222",
    )

    assert upgraded.id == "legacy-7"
    assert upgraded.signature.method == "sms_code"
    assert upgraded.signature.signed_at == created
    assert upgraded.signer.authenticated_at == created
    assert upgraded.document.hash == compute_sha256_text(CONTRACT_HTML)
    assert upgraded.device_metadata.browser_name == "Chrome"
    assert upgraded.evidence.signature_agreement == "Retroactive eIDAS compliance upgrade"
    assert [e.action for e in upgraded.evidence.audit_trail] == [
        "signature_created",
        "eidas_compliance_upgrade",
    ]
    assert upgraded.evidence.audit_trail[0].details == {"channel": "web"}
