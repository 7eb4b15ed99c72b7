import getpass
import typer

from aura_cli.core.api import ApiError, api_login, api_logout, api_profile, api_refresh
from aura_cli.core.session import clear_session, is_logged_in, load_refresh_token, load_token, save_session
from aura_cli.core.utils import normalize_cpf


app = typer.Typer(help="Authentication commands (login, logout, refresh, whoami)")


@app.command("login")
def login(
    cpf: str = typer.Option(None, "--cpf", "-c", help="CPF (digits or 000.000.000-00)"),
):
    """
    Login to the API. Only allowed if no session is active.
    """
    if is_logged_in():
        typer.echo("Session already active. Logout first to remove current session token.")
        raise typer.Exit(code=1)

    if cpf is None:
        cpf = typer.prompt("CPF")

    digits = normalize_cpf(cpf)
    if digits is None:
        typer.echo("Invalid CPF. Use 11 digits, optionally formatted as 000.000.000-00.")
        raise typer.Exit(code=1)

    password = getpass.getpass("Password: ")
    if not password:
        typer.echo("Password cannot be empty.")
        raise typer.Exit(code=1)

    try:
        data = api_login(digits, password)
    except ApiError as exc:
        typer.echo(f"Login failed: {exc.detail}")
        raise typer.Exit(code=1)

    save_session(data["access_token"], data["refresh_token"])
    user = data.get("user") or {}
    typer.echo(f"Login successful as '{user.get('name', digits)}' ({user.get('role', 'unknown')}).")


@app.command("logout")
def logout(
    everywhere: bool = typer.Option(False, "--all", help="Revoke every session of this account"),
):
    """
    End session and delete local tokens.
    """
    token = load_token()
    refresh_token = load_refresh_token()
    if token or refresh_token:
        try:
            if everywhere:
                api_logout(token=token)
            else:
                api_logout(refresh_token=refresh_token, token=token)
            typer.echo("Logged out from the API.")
        except ApiError as exc:
            typer.echo(f"Warning: failed to logout from the API ({exc.detail}).")

    clear_session()
    typer.echo("Session ended.")


@app.command("refresh")
def refresh():
    """
    Exchange the stored refresh token for a new token pair.
    """
    refresh_token = load_refresh_token()
    if not refresh_token:
        typer.echo("No active session. Please login first.")
        raise typer.Exit(code=1)

    try:
        data = api_refresh(refresh_token)
    except ApiError as exc:
        typer.echo(f"Refresh failed: {exc.detail}. Please login again.")
        clear_session()
        raise typer.Exit(code=1)

    save_session(data["access_token"], data["refresh_token"])
    typer.echo(f"Session refreshed (access token valid for {data.get('expires_in', '?')}s).")


@app.command("whoami")
def whoami():
    """
    Show the authenticated user.
    """
    try:
        profile = api_profile()
    except ApiError as exc:
        typer.echo(f"Error: {exc.detail}")
        raise typer.Exit(code=1)

    user = profile["user"]
    principal = profile["principal"]
    typer.echo(f"ID:      {user['id']}")
    typer.echo(f"Name:    {user['name']}")
    typer.echo(f"CPF:     {user['cpf']}")
    typer.echo(f"Role:    {principal['role']}")
    typer.echo(f"Expires: {principal['expires_at']}")
