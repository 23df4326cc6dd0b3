"""PeachHaus back-office CLI.

Usage:
    peachhaus serve --port 5055
    peachhaus extract lease.pdf
    peachhaus fill lease.pdf values.json --out signed.pdf
    peachhaus export-audit <reconciliation_id>
    peachhaus cleanup
    peachhaus gmail-health
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from peachhaus.config import get_settings

app = typer.Typer(name="peachhaus", help="PeachHaus property-management back office")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


# ---------------------------------------------------------------------------
# peachhaus serve
# ---------------------------------------------------------------------------

@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(5055, help="Port"),
    debug: bool = typer.Option(False, help="Flask debug mode"),
):
    """Run the edge-function HTTP server."""
    from peachhaus.handlers.app import app as flask_app
    from peachhaus.handlers.registry import HANDLERS

    settings = get_settings()
    console.print(f"Serving {len(HANDLERS)} functions on [bold]http://{host}:{port}/functions[/bold]")
    console.print(f"  Database: {settings.db_file}")
    console.print(f"  Sandbox: email={settings.email_sandbox} sms={settings.sms_sandbox}")
    flask_app.run(host=host, port=port, debug=debug)


# ---------------------------------------------------------------------------
# peachhaus extract
# ---------------------------------------------------------------------------

@app.command()
def extract(pdf: Path = typer.Argument(..., exists=True, dir_okay=False, help="Path to PDF")):
    """Detect fillable fields in a PDF."""
    from peachhaus.fields.extractor import extract_fields

    result = extract_fields(pdf)
    console.print(f"\n[bold]{pdf.name}[/bold]: {result.total_pages} page(s), "
                  f"type {result.document_type.value}, acroform={'yes' if result.has_acroform else 'no'}")

    table = Table(title=f"Fields ({len(result.fields)})")
    table.add_column("API ID", style="dim")
    table.add_column("Label")
    table.add_column("Type")
    table.add_column("Page", justify="right")
    table.add_column("Filled by")
    table.add_column("Req")
    table.add_column("Group")
    for f in result.fields:
        table.add_row(f.api_id, f.label, f.type.value, str(f.page), f.filled_by.value,
                      "*" if f.required else "", f.group_name or "")
    console.print(table)

    for warning in result.warnings:
        console.print(f"  [yellow]WARN[/yellow] {warning}")


# ---------------------------------------------------------------------------
# peachhaus fill
# ---------------------------------------------------------------------------

@app.command()
def fill(
    pdf: Path = typer.Argument(..., exists=True, dir_okay=False, help="Template PDF"),
    values: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON object of api_id -> value"),
    out: Path = typer.Option(None, "--out", "-o", help="Output PDF (default: <pdf>_filled.pdf)"),
):
    """Fill a PDF from a JSON value map and flatten it.

    Each value is written with the role that owns its field, so admin
    pre-fill and guest entries can live in the same file.
    """
    from peachhaus.errors import PeachHausError
    from peachhaus.fields.extractor import extract_fields
    from peachhaus.fields.flatten import flatten
    from peachhaus.fields.session import FillSession

    data = json.loads(values.read_text())
    if not isinstance(data, dict):
        console.print("[red]Values file must contain a JSON object.[/red]")
        raise typer.Exit(1)

    result = extract_fields(pdf)
    session = FillSession(result.fields, document_id=pdf.stem)
    try:
        for api_id, value in data.items():
            session.set_value(api_id, value, session.field(api_id).filled_by)
        finalized = session.finalize()
    except PeachHausError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    target = flatten(pdf, finalized, out or pdf.with_name(f"{pdf.stem}_filled.pdf"))
    console.print(f"[green]Wrote {len(finalized.values)} values to {target}[/green]")


# ---------------------------------------------------------------------------
# peachhaus export-audit
# ---------------------------------------------------------------------------

@app.command("export-audit")
def export_audit(
    reconciliation_id: str = typer.Argument(..., help="Monthly reconciliation ID"),
    out: Path = typer.Option(None, "--out", "-o", help="Output directory"),
):
    """Write the GREC audit workbook for one reconciliation."""
    from peachhaus import db
    from peachhaus.errors import PeachHausError
    from peachhaus.reports.audit_export import export_audit_report

    try:
        with db.conn() as c:
            filename, data = export_audit_report(c, reconciliation_id)
    except PeachHausError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    target = (out or Path.cwd()) / filename
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    console.print(f"[green]Saved {target}[/green]")


# ---------------------------------------------------------------------------
# peachhaus cleanup
# ---------------------------------------------------------------------------

@app.command()
def cleanup():
    """Delete contaminated expenses and recalculate affected reconciliations."""
    from peachhaus import db
    from peachhaus.reports.cleanup import cleanup_contaminated_expenses

    with db.conn() as c:
        result = cleanup_contaminated_expenses(c)

    console.print(f"  Expenses deleted: {result.deleted_expenses}")
    console.print(f"  Line items deleted: {result.deleted_line_items}")
    for rec_id in result.affected_reconciliations:
        console.print(f"  [dim]recalculated {rec_id}[/dim]")
    console.print(f"\n[green]{result.message}[/green]")


# ---------------------------------------------------------------------------
# peachhaus gmail-health
# ---------------------------------------------------------------------------

@app.command("gmail-health")
def gmail_health():
    """Check the Gmail token and alert admins when it has expired."""
    from peachhaus import db
    from peachhaus.watchdog import check_gmail_health

    with db.conn() as c:
        result = check_gmail_health(c)

    color = {"healthy": "green", "expired": "red"}.get(result["status"], "yellow")
    console.print(f"Gmail: [{color}]{result['status']}[/{color}]")
    if result.get("email"):
        console.print(f"  Mailbox: {result['email']}")
    if result.get("error"):
        console.print(f"  Last error: {result['error']}")
        console.print(f"  Alerts sent: {result.get('alerts_sent', 0)}")
    if result["status"] == "expired":
        raise typer.Exit(1)


@app.command()
def outbox(
    channel: str = typer.Option(None, help="email, sms or mms"),
    limit: int = typer.Option(20, help="Most recent rows to show"),
):
    """Show queued and sandboxed outgoing messages."""
    from peachhaus import db
    from peachhaus.integrations.outbox import list_messages

    with db.conn() as c:
        messages = list_messages(c, channel=channel)[-limit:]

    table = Table(title="Outbox")
    table.add_column("ID", style="dim")
    table.add_column("Channel")
    table.add_column("To")
    table.add_column("Subject / body")
    table.add_column("Status")
    for m in messages:
        table.add_row(str(m["id"]), m["channel"], m["to_addr"] or "",
                      (m["subject"] or m["body"] or "")[:60], m["status"])
    console.print(table)


if __name__ == "__main__":
    app()
