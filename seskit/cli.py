"""seskit CLI application with Typer."""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from pydantic import ValidationError as ModelValidationError

from seskit import __version__
from seskit.app.signature_service import ValidationError
from seskit.app.signing_service import SigningRequest
from seskit.app.verification_service import generate_compliance_report
from seskit.audit.ledger import TrailNotFoundError
from seskit.bootstrap import bootstrap_application
from seskit.config import get_settings, set_settings
from seskit.models import SignatureEvidence
from seskit.utils.cli_output import json_response
from seskit.utils.offline import OfflineModeGate

if TYPE_CHECKING:
    from seskit.audit.records import IntegrityReport

app = typer.Typer(
    name="seskit",
    help="Evidentiary core for Simple Electronic Signatures (eIDAS SES)",
    add_completion=True,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"seskit version {__version__}")
        raise typer.Exit()


def require_online(gate: OfflineModeGate, feature_name: str) -> None:
    """Enforce that ``feature_name`` may only run in online mode."""

    try:
        gate.require(feature_name)
    except RuntimeError as exc:
        typer.secho(f"\n{exc}\nAborting.", fg=typer.colors.YELLOW)
        raise typer.Exit(code=2) from exc


def _fail(message: str) -> typer.Exit:
    typer.secho(message, fg=typer.colors.RED, err=True)
    return typer.Exit(code=1)


def _load_evidence(path: Path) -> SignatureEvidence:
    try:
        return SignatureEvidence.model_validate_json(path.expanduser().read_text(encoding="utf-8"))
    except OSError as exc:
        raise _fail(f"Cannot read evidence file {path}: {exc}") from exc
    except ModelValidationError as exc:
        raise _fail(f"Invalid evidence file {path}: {exc.error_count()} error(s)") from exc


def _parse_fields(raw: list[str] | None) -> dict[str, str]:
    fields: dict[str, str] = {}
    for item in raw or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected KEY=VALUE, got {item!r}", param_hint="--field")
        fields[key.strip()] = value.strip()
    return fields


def _write_or_echo(text: str, output: Path | None, *, quiet: bool = False) -> None:
    if output is None:
        typer.echo(text)
        return
    output = output.expanduser()
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    if not quiet:
        typer.secho(f"✅ Wrote {output}", fg=typer.colors.GREEN)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-V", callback=version_callback, is_eager=True),
    ] = None,
    online: Annotated[
        bool,
        typer.Option("--online", help="Enable online features (timestamp authorities)"),
    ] = False,
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", help="Override data directory"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show diagnostic logging"),
    ] = False,
) -> None:
    """seskit - tamper-evident evidence for Simple Electronic Signatures."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    settings = get_settings()
    if online:
        settings.online = True
    if data_dir:
        settings.data_dir = data_dir
    set_settings(settings)


# Signing
@app.command("sign")
def sign(
    contract_id: Annotated[str, typer.Option("--contract-id", "-c", help="Contract identifier")],
    signer_identifier: Annotated[
        str, typer.Option("--signer", help="Signer phone number, email or other identifier")
    ],
    signature: Annotated[
        str, typer.Option("--signature", help="Signature image data URL or one-time code")
    ],
    signer_method: Annotated[
        str, typer.Option("--signer-method", help="SMS, handwritten, email or electronic")
    ] = "handwritten",
    signature_method: Annotated[
        str,
        typer.Option("--signature-method", help="handwritten, sms_code, email_click or electronic"),
    ] = "handwritten",
    document: Annotated[
        Path | None,
        typer.Option("--document", "-d", help="Contract file (defaults to the contract store)"),
    ] = None,
    document_name: Annotated[
        str | None, typer.Option("--document-name", help="Document name recorded in evidence")
    ] = None,
    ip_address: Annotated[str, typer.Option("--ip", help="Signer IP address")] = "unknown",
    user_agent: Annotated[
        str, typer.Option("--user-agent", help="Signer user agent")
    ] = f"seskit-cli/{__version__}",
    location: Annotated[str | None, typer.Option("--location", help="Signer location")] = None,
    field: Annotated[
        list[str] | None,
        typer.Option("--field", "-f", help="Dynamic form field as KEY=VALUE (repeatable)"),
    ] = None,
    no_consent: Annotated[
        bool, typer.Option("--no-consent", help="Record that consent was not given")
    ] = False,
    no_seal: Annotated[
        bool, typer.Option("--no-seal", help="Leave the contract audit trail open")
    ] = False,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write evidence JSON to this file")
    ] = None,
    package: Annotated[
        Path | None, typer.Option("--package", help="Write the evidence package JSON here")
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Create SES evidence for a signing event and record its audit trail."""
    container = bootstrap_application()

    content: str | None = None
    if document is not None:
        try:
            content = document.expanduser().read_text(encoding="utf-8")
        except OSError as exc:
            raise _fail(f"Cannot read document {document}: {exc}") from exc
        document_name = document_name or document.name

    try:
        request = SigningRequest(
            contract_id=contract_id,
            signature=signature,
            signer_method=signer_method,  # type: ignore[arg-type]
            signer_identifier=signer_identifier,
            signature_method=signature_method,  # type: ignore[arg-type]
            ip_address=ip_address,
            user_agent=user_agent,
            location=location,
            consent_given=not no_consent,
            document_content=content,
            document_name=document_name,
            dynamic_fields=_parse_fields(field),
            seal=not no_seal,
        )
    except ModelValidationError as exc:
        raise _fail(f"Invalid signing input: {exc.error_count()} error(s)") from exc

    try:
        response = container.signing_service.sign(request)
    except ValidationError as exc:
        raise _fail(str(exc)) from exc

    if response.status != "completed" or response.evidence is None:
        raise _fail(f"Signing failed: {response.error}")

    if output is not None:
        _write_or_echo(response.evidence.model_dump_json(indent=2), output, quiet=json_output)
    if package is not None and response.evidence_package is not None:
        _write_or_echo(
            response.evidence_package.model_dump_json(indent=2), package, quiet=json_output
        )

    if json_output:
        typer.echo(json_response("signing_result", 1, **response.model_dump(mode="json")))
        return

    timestamp = response.evidence.timestamp
    typer.secho(f"✅ Signature {response.id} created", fg=typer.colors.GREEN)
    typer.echo(f"   Document hash: {response.evidence.document.hash}")
    typer.echo(f"   Timestamp:     {timestamp.value.isoformat()} ({timestamp.source})")
    if not timestamp.verified:
        typer.secho("   Timestamp not verified by an authority", fg=typer.colors.YELLOW)
    typer.echo(f"   Audit trail:   {response.trail_id}")


@app.command("verify")
def verify(
    evidence_path: Annotated[Path, typer.Argument(help="Evidence JSON file")],
    trail_id: Annotated[
        str | None, typer.Option("--trail-id", help="Also verify this ledger audit trail")
    ] = None,
    strict: Annotated[
        bool, typer.Option("--strict", help="Exit non-zero unless fully valid")
    ] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Verify a signature evidence file."""
    container = bootstrap_application()
    evidence = _load_evidence(evidence_path)
    result = container.verifier.verify_compliance(evidence, trail_id=trail_id)

    if json_output:
        typer.echo(
            json_response(
                "verification_result",
                1,
                signature_id=evidence.id,
                **result.model_dump(mode="json"),
            )
        )
    else:
        color = typer.colors.GREEN if result.valid else typer.colors.YELLOW
        typer.secho(
            f"Signature {evidence.id}: {'valid' if result.valid else 'not fully valid'} "
            f"({result.compliance_level})",
            fg=color,
        )
        for name, passed in result.checks.model_dump().items():
            mark = "✓" if passed else ("?" if passed is None else "✗")
            typer.echo(f"  {mark} {name}")
        for warning in result.warnings:
            typer.secho(f"  ! {warning}", fg=typer.colors.YELLOW)
        for action in result.recommended_actions:
            typer.echo(f"  → {action}")

    if strict and not result.valid:
        raise typer.Exit(code=1)


@app.command("compliance")
def compliance(
    evidence_paths: Annotated[list[Path], typer.Argument(help="Evidence JSON files")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Aggregate compliance statistics over evidence files."""
    report = generate_compliance_report(_load_evidence(path) for path in evidence_paths)

    if json_output:
        typer.echo(json_response("compliance_report", 1, **report.model_dump(mode="json")))
        return

    typer.echo(
        f"{report.compliant_signatures}/{report.total_signatures} compliant "
        f"({report.compliance_rate}%)"
    )
    for name, count in report.issues.model_dump().items():
        if count:
            typer.echo(f"  {name}: {count}")
    for recommendation in report.recommendations:
        typer.echo(f"  → {recommendation}")


# Audit subcommand
audit_app = typer.Typer(help="Hash-chained audit trail management")
app.add_typer(audit_app, name="audit")


def _echo_report(resource_id: str, report: "IntegrityReport") -> None:
    if report.is_valid:
        typer.secho(f"{resource_id}: audit trail is valid", fg=typer.colors.GREEN)
        return
    typer.secho(f"{resource_id}: audit trail integrity check failed", fg=typer.colors.RED, err=True)
    for issue in report.issues:
        typer.secho(f"  - {issue}", fg=typer.colors.RED, err=True)


@audit_app.command("list")
def audit_list(
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """List known audit trails."""
    container = bootstrap_application()
    trails = container.audit_service.list_trails()

    if json_output:
        typer.echo(
            json_response(
                "audit_trails",
                1,
                total_trails=len(trails),
                trails=[
                    {
                        "resource_id": trail.resource_id,
                        "records": len(trail.records),
                        "is_sealed": trail.is_sealed,
                        "root_hash": trail.root_hash,
                    }
                    for trail in trails
                ],
            )
        )
        return

    if not trails:
        typer.secho("No audit trails found", fg=typer.colors.YELLOW)
        return
    for trail in trails:
        state = "sealed" if trail.is_sealed else "open"
        typer.echo(f"{trail.resource_id} | {len(trail.records)} records | {state}")


@audit_app.command("show")
def audit_show(
    resource_id: Annotated[str, typer.Argument(help="Resource (contract) id")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    tail: Annotated[
        int | None,
        typer.Option("--tail", "-n", help="Show last N records"),
    ] = None,
) -> None:
    """Show audit trail records."""
    container = bootstrap_application()
    try:
        records = container.audit_service.get_records(resource_id, tail)
    except TrailNotFoundError as exc:
        raise _fail(f"Audit trail not found: {resource_id}") from exc

    if json_output:
        typer.echo(
            json_response(
                "audit_log",
                1,
                resource_id=resource_id,
                total_records=len(records),
                records=[record.model_dump(mode="json") for record in records],
            )
        )
        return

    for record in records:
        typer.echo(
            f"{record.sequence:>4} | {record.timestamp.isoformat()} | {record.action} | {record.actor.id}"
        )


@audit_app.command("verify")
def audit_verify(
    resource_id: Annotated[
        str | None, typer.Argument(help="Resource id (all trails when omitted)")
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Verify audit trail integrity."""
    container = bootstrap_application()
    if resource_id is None:
        reports = container.audit_service.verify_all()
    else:
        reports = {resource_id: container.audit_service.verify(resource_id)}

    if json_output:
        typer.echo(
            json_response(
                "audit_verification",
                1,
                results={rid: report.summary().model_dump() for rid, report in reports.items()},
            )
        )
    elif not reports:
        typer.secho("No audit trails found", fg=typer.colors.YELLOW)
    else:
        for rid, report in reports.items():
            _echo_report(rid, report)

    if not all(report.is_valid for report in reports.values()):
        raise typer.Exit(code=1)


@audit_app.command("seal")
def audit_seal(
    resource_id: Annotated[str, typer.Argument(help="Resource (contract) id")],
) -> None:
    """Seal an audit trail so no further records can be appended."""
    container = bootstrap_application()
    try:
        trail = container.audit_service.seal(resource_id)
    except TrailNotFoundError as exc:
        raise _fail(f"Audit trail not found: {resource_id}") from exc

    typer.secho(f"🔒 Sealed {resource_id} ({len(trail.records)} records)", fg=typer.colors.GREEN)
    typer.echo(f"   Root hash: {trail.root_hash}")


@audit_app.command("export")
def audit_export(
    resource_id: Annotated[str, typer.Argument(help="Resource (contract) id")],
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write export JSON to this file")
    ] = None,
) -> None:
    """Export an audit trail with a fresh integrity verification."""
    container = bootstrap_application()
    try:
        exported = container.audit_service.export(resource_id)
    except TrailNotFoundError as exc:
        raise _fail(f"Audit trail not found: {resource_id}") from exc
    _write_or_echo(exported.model_dump_json(indent=2), output)


# Export subcommand
export_app = typer.Typer(help="Evidence packages, CSV verification data and PDFs")
app.add_typer(export_app, name="export")


@export_app.command("package")
def export_package(
    evidence_path: Annotated[Path, typer.Argument(help="Evidence JSON file")],
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write package JSON to this file")
    ] = None,
) -> None:
    """Bundle evidence into an SES evidence package."""
    container = bootstrap_application()
    package = container.exporter.export_evidence_package(_load_evidence(evidence_path))
    _write_or_echo(package.model_dump_json(indent=2), output)


@export_app.command("csv")
def export_csv(
    evidence_path: Annotated[Path, typer.Argument(help="Evidence JSON file")],
    trail_id: Annotated[
        str | None, typer.Option("--trail-id", help="Append integrity rows for this audit trail")
    ] = None,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write CSV to this file")
    ] = None,
) -> None:
    """Render the verification CSV for an evidence file."""
    container = bootstrap_application()
    evidence = _load_evidence(evidence_path)
    _write_or_echo(container.exporter.build_verification_csv(evidence, trail_id=trail_id), output)


@export_app.command("pdf")
def export_pdf(
    evidence_path: Annotated[Path, typer.Argument(help="Evidence JSON file")],
    output: Annotated[Path, typer.Option("--output", "-o", help="Destination PDF path")],
    contract: Annotated[
        Path | None,
        typer.Option("--contract", help="Contract file (defaults to content kept in evidence)"),
    ] = None,
    title: Annotated[str | None, typer.Option("--title", help="Contract title")] = None,
    trail_id: Annotated[
        str | None, typer.Option("--trail-id", help="Include this audit trail's integrity page")
    ] = None,
    protect: Annotated[
        bool,
        typer.Option("--protect/--no-protect", help="Restrict the PDF with an owner password"),
    ] = True,
    show_password: Annotated[
        bool, typer.Option("--show-password", help="Print the generated owner password")
    ] = False,
) -> None:
    """Render a signed-contract PDF with verification pages."""
    container = bootstrap_application()
    evidence = _load_evidence(evidence_path)

    content: str | None = None
    if contract is not None:
        try:
            content = contract.expanduser().read_text(encoding="utf-8")
        except OSError as exc:
            raise _fail(f"Cannot read contract {contract}: {exc}") from exc

    exporter = container.exporter
    exporter.protect = exporter.protect and protect
    artifact = exporter.render_pdf(evidence, content, contract_title=title, trail_id=trail_id)

    output = output.expanduser()
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(artifact.pdf_bytes)
    typer.secho(f"✅ Wrote {output}", fg=typer.colors.GREEN)
    typer.echo(f"   Verification URL: {artifact.verification_url}")
    if artifact.password_protected:
        typer.echo("   Protected with owner password")
        if show_password:
            typer.echo(f"   Owner password: {artifact.owner_password}")


# Timestamp subcommand
timestamp_app = typer.Typer(help="Trusted timestamp utilities")
app.add_typer(timestamp_app, name="timestamp")


@timestamp_app.command("get")
def timestamp_get(
    document_hash: Annotated[str, typer.Argument(help="SHA-256 hex digest to timestamp")],
    redundant: Annotated[
        bool, typer.Option("--redundant", help="Query every authority concurrently")
    ] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Obtain a timestamp bound to a document hash from the configured authorities."""
    container = bootstrap_application()
    require_online(container.offline_gate, "Timestamp authority requests")

    source = container.timestamp_source
    payload: dict[str, Any]
    if redundant:
        result = source.get_redundant_timestamps(document_hash)
        record = result.primary
        payload = result.model_dump(mode="json")
    else:
        record = source.get_timestamp(document_hash)
        payload = record.model_dump(mode="json")

    if json_output:
        typer.echo(json_response("timestamp", 1, document_hash=document_hash, **payload))
        return

    color = typer.colors.GREEN if record.verified else typer.colors.YELLOW
    typer.secho(f"{record.value.isoformat()} from {record.source}", fg=color)
    if record.token:
        typer.echo(f"Token: {record.token}")


@timestamp_app.command("verify")
def timestamp_verify(
    token: Annotated[str, typer.Argument(help="Base64 timestamp token")],
    document_hash: Annotated[str, typer.Argument(help="Expected SHA-256 hex digest")],
) -> None:
    """Check that a timestamp token binds a document hash."""
    container = bootstrap_application()
    result = container.timestamp_source.verify_timestamp(token, document_hash)
    if not result.valid:
        raise _fail(f"Timestamp token invalid: {result.error}")
    typer.secho(f"Timestamp token valid ({result.timestamp})", fg=typer.colors.GREEN)


if __name__ == "__main__":
    app()
