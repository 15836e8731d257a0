"""Tests for contract store, HTML conversion, circuit breaker and audit service."""

from pathlib import Path

import pytest

from seskit.app.adapters import FileSystemContractStore
from seskit.app.audit_service import AuditService
from seskit.audit import AuditTrailLedger, TrailNotFoundError
from seskit.utils.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from seskit.utils.html_text import EMPTY_CONTRACT_TEXT, html_to_text

from conftest import CONTRACT_HTML


def test_html_to_text():
    text = html_to_text(CONTRACT_HTML)

    assert text.startswith("Contrato de Servicios")
    assert "El cliente acepta las *condiciones* del servicio." in text
    assert "- Duración: 12 meses" in text
    assert "30 EUR" in text
    assert "<" not in text
    assert "\n\n\n" not in text


def test_html_to_text_empty():
    assert html_to_text("") == EMPTY_CONTRACT_TEXT
    assert html_to_text("<p>  </p>") == EMPTY_CONTRACT_TEXT


def test_html_to_text_drops_scripts_and_styles():
    html = (
        "<style>p{color:red}</style>"
        "<script>var a = 1 > 0;</script>"
        '<p title="a>b">Hola</p>'
    )
    assert html_to_text(html) == "Hola"
    assert html_to_text("<script>alert(1)</script>") == EMPTY_CONTRACT_TEXT


def test_html_to_text_nested_markup():
    html = "<p>Línea uno<br>Línea <b>dos <i>importante</i></b></p><ol><li>A</li><li>B</li></ol>"
    assert html_to_text(html) == "Línea uno\nLínea *dos _importante_*\n\n- A\n- B"


def test_contract_store(temp_dir: Path):
    (temp_dir / "c-1.html").write_text(CONTRACT_HTML, encoding="utf-8")
    (temp_dir / "c-2.txt").write_text("plain", encoding="utf-8")
    (temp_dir / "c-2.json").write_text('{"name": "Anexo"}', encoding="utf-8")
    store = FileSystemContractStore(temp_dir)

    assert store.list_contracts() == ["c-1", "c-2"]
    first = store.get_contract("c-1")
    assert first.name == "c-1.html"
    assert first.content == CONTRACT_HTML
    assert store.get_contract("c-2").name == "Anexo"

    with pytest.raises(KeyError):
        store.get_contract("missing")
    with pytest.raises(KeyError):
        store.get_contract("../c-1")


def test_contract_store_missing_root(temp_dir: Path):
    assert FileSystemContractStore(temp_dir / "nope").list_contracts() == []


def test_circuit_breaker_opens_and_recovers():
    breaker = CircuitBreaker(failure_threshold=2, timeout_seconds=0.0)

    def fail():
        raise ConnectionError("down")

    for _ in range(2):
        with pytest.raises(ConnectionError):
            breaker.call(fail)
    assert breaker.state == "OPEN"

    assert breaker.call(lambda: "ok") == "ok"
    assert breaker.state == "CLOSED"


def test_circuit_breaker_rejects_while_open():
    breaker = CircuitBreaker(failure_threshold=1, timeout_seconds=3600)
    with pytest.raises(ConnectionError):
        breaker.call(lambda: (_ for _ in ()).throw(ConnectionError("down")))

    with pytest.raises(CircuitBreakerOpen):
        breaker.call(lambda: "never")


def test_audit_service(evidence):
    ledger = AuditTrailLedger()
    ledger.add_signature_audit_trail("b", evidence)
    ledger.create_trail("a")
    service = AuditService(ledger=ledger)

    assert [t.resource_id for t in service.list_trails()] == ["a", "b"]
    assert [r.sequence for r in service.get_records("b", tail=2)] == [5, 6]
    assert all(report.is_valid for report in service.verify_all().values())

    sealed = service.seal("a")
    assert sealed.is_sealed
    assert service.export("a").verification.is_valid

    with pytest.raises(TrailNotFoundError):
        service.get_trail("missing")
    with pytest.raises(TrailNotFoundError):
        service.export("missing")
