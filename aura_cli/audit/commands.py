from typing import Optional
import typer

from aura_cli.core.api import ApiError, api_get_audit_logs, api_verify_audit_chain


app = typer.Typer(help="Audit trail commands (list, verify)")

ACTIONS = ("CREATE", "READ", "UPDATE", "DELETE", "LOGIN", "LOGOUT")


@app.command("list")
def list_logs(
    actor_id: Optional[int] = typer.Option(None, "--actor", help="Filter by actor user id"),
    action: Optional[str] = typer.Option(None, "--action", help=f"One of: {', '.join(ACTIONS)}"),
    resource: Optional[str] = typer.Option(None, "--resource", help="Filter by resource (e.g. users, auth)"),
    date_from: Optional[str] = typer.Option(None, "--from", help="ISO date/time lower bound"),
    date_to: Optional[str] = typer.Option(None, "--to", help="ISO date/time upper bound"),
    limit: int = typer.Option(100, "--limit", "-n", min=1, max=1000),
):
    """
    Show audit events, newest first (Secretary or Coordinator).
    """
    if action is not None:
        action = action.upper()
        if action not in ACTIONS:
            typer.echo(f"Invalid action. Choose one of: {', '.join(ACTIONS)}.")
            raise typer.Exit(code=1)

    filters = {
        "actor_id": actor_id,
        "action": action,
        "resource": resource,
        "date_from": date_from,
        "date_to": date_to,
        "limit": limit,
    }
    try:
        entries = api_get_audit_logs(filters)
    except ApiError as exc:
        typer.echo(f"Error: {exc.detail}")
        raise typer.Exit(code=1)

    if not entries:
        typer.echo("No audit events found.")
        return

    for entry in entries:
        actor = entry.get("actor_id") if entry.get("actor_id") is not None else "-"
        target = entry["resource"] + (f"/{entry['resource_id']}" if entry.get("resource_id") is not None else "")
        typer.echo(f"[{entry['timestamp']}] #{entry['id']} {entry['action']:<7} actor={actor} {target} {entry.get('details') or ''}")


@app.command("verify")
def verify():
    """
    Check the integrity of the audit hash chain.
    """
    try:
        status = api_verify_audit_chain()
    except ApiError as exc:
        typer.echo(f"Error: {exc.detail}")
        raise typer.Exit(code=1)

    if status["valid"]:
        typer.echo(f"Audit chain intact ({status['entries']} entries).")
    else:
        typer.echo(f"Audit chain BROKEN at entry #{status['first_broken_id']}.")
        raise typer.Exit(code=2)
