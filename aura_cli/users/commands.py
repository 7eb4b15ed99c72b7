import getpass
import typer

from aura_cli.core.api import ApiError, api_create_user, api_deactivate_user, api_get_all_users
from aura_cli.core.utils import normalize_cpf, validate_password


app = typer.Typer(help="User management commands (create, list, deactivate)")

ROLES = ("secretary", "server", "coordinator", "beneficiary")


@app.command("create")
def create_user(
    role: str = typer.Option("server", "--role", "-r", help=f"One of: {', '.join(ROLES)}"),
):
    """
    Creates a new user (Secretary only).
    Prompts for: name, CPF, password.
    """
    if role not in ROLES:
        typer.echo(f"Invalid role. Choose one of: {', '.join(ROLES)}.")
        raise typer.Exit(code=1)

    name = typer.prompt("Full Name")
    if not name.strip():
        typer.echo("Name cannot be empty.")
        raise typer.Exit(code=1)

    cpf = normalize_cpf(typer.prompt("CPF"))
    if cpf is None:
        typer.echo("Invalid CPF.")
        raise typer.Exit(code=1)

    password = getpass.getpass("Password: ")
    password_confirm = getpass.getpass("Confirm password: ")
    if password != password_confirm:
        typer.echo("Passwords do not match.")
        raise typer.Exit(code=1)
    if not validate_password(password):
        raise typer.Exit(code=1)

    try:
        user = api_create_user({"name": name, "cpf": cpf, "password": password, "role": role})
    except ApiError as exc:
        typer.echo(f"Failed to create user: {exc.detail}")
        raise typer.Exit(code=1)

    typer.echo(f"User '{user['name']}' created with id {user['id']}.")


@app.command("list")
def list_users():
    """
    Lists all users (Secretary or Coordinator).
    """
    try:
        users = api_get_all_users()
    except ApiError as exc:
        typer.echo(f"Error: {exc.detail}")
        raise typer.Exit(code=1)

    if not users:
        typer.echo("No users found.")
        return

    typer.echo(f"{'ID':<5} {'CPF':<12} {'ROLE':<12} {'ACTIVE':<7} NAME")
    for user in users:
        active = "yes" if user.get("is_active") else "no"
        typer.echo(f"{user['id']:<5} {user['cpf']:<12} {user['role']:<12} {active:<7} {user['name']}")


@app.command("deactivate")
def deactivate_user(
    user_id: int = typer.Argument(..., help="ID of the user to deactivate"),
    force: bool = typer.Option(False, "--force", "-f", help="Deactivate without confirmation"),
):
    """
    Deactivates a user and ends all of their sessions (Secretary only).
    """
    if not force and not typer.confirm(f"Deactivate user {user_id}?"):
        typer.echo("Cancelled.")
        raise typer.Exit(code=0)

    try:
        user = api_deactivate_user(user_id)
    except ApiError as exc:
        typer.echo(f"Failed to deactivate user: {exc.detail}")
        raise typer.Exit(code=1)

    typer.echo(f"User '{user['name']}' deactivated.")
