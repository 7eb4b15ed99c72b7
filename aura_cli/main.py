# aura_cli/main.py


import typer
from aura_cli.auth.commands import app as auth_app
from aura_cli.users.commands import app as users_app
from aura_cli.audit.commands import app as audit_app

app = typer.Typer(help="Command-line client for the Aura API")
app.add_typer(auth_app, name="auth")
app.add_typer(users_app, name="users")
app.add_typer(audit_app, name="audit")

if __name__ == "__main__":
    app()
