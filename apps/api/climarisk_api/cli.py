"""CLI commands for ClimaRisk API."""

import json
import sys

import click

from climarisk_api.db.session import SessionLocal
from climarisk_api.ledger.service import LedgerService
from climarisk_api.ledger.verifier import AuditVerifier
from climarisk_api.projections.engine import ProjectionEngine


@click.group()
def cli():
    """ClimaRisk API CLI."""
    pass


@cli.command("init-ledger")
def init_ledger():
    """Create the genesis event if the ledger is empty."""
    db = SessionLocal()
    try:
        genesis = LedgerService(db).ensure_genesis()
        if genesis is None:
            click.echo("Ledger already initialized.")
        else:
            click.echo(f"✓ Genesis created: {genesis.event_hash}")
    finally:
        db.close()


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the full report as JSON.")
def verify(as_json: bool):
    """Verify the full hash chain. Exits 1 when the chain is broken."""
    db = SessionLocal()
    try:
        report = AuditVerifier(db).verify()
    finally:
        db.close()

    if as_json:
        click.echo(json.dumps(report, indent=2))
    elif report["ok"]:
        click.echo(f"✓ Ledger intact ({report['count']} events).")
    else:
        click.echo(f"✗ Ledger broken: {len(report['errors'])} issue(s) in {report['count']} events", err=True)
        for error in report["errors"]:
            click.echo(f"  event {error['id']}: {error['error']}", err=True)
    if not report["ok"]:
        sys.exit(1)


@cli.command("rebuild-projections")
def rebuild_projections():
    """Drop and replay both projections from the ledger."""
    db = SessionLocal()
    try:
        applied = ProjectionEngine(db).rebuild()
        click.echo(f"✓ Replayed {applied} decision events.")
    except Exception as e:
        click.echo(f"✗ Error rebuilding projections: {e}", err=True)
        db.rollback()
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    cli()
