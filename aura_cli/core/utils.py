import re
from typing import Optional
import typer

CPF_REGEX = re.compile(r"^\d{3}\.?\d{3}\.?\d{3}-?\d{2}$")


def normalize_cpf(cpf: str) -> Optional[str]:
    """
    Strip the usual CPF punctuation; None when the input is not CPF-shaped.
    The checksum itself is verified by the API.
    """
    cpf = cpf.strip()
    if not CPF_REGEX.match(cpf):
        return None
    return re.sub(r"\D", "", cpf)


def validate_password(password: str) -> bool:
    """
    Validates password strength:
    - At least 8 characters
    - At least one lowercase letter
    - At least one uppercase letter
    - At least one number
    """
    if len(password) < 8:
        typer.echo("Password must be at least 8 characters long.")
        return False

    if not re.search(r"[a-z]", password):
        typer.echo("Password must contain at least one lowercase letter.")
        return False

    if not re.search(r"[A-Z]", password):
        typer.echo("Password must contain at least one uppercase letter.")
        return False

    if not re.search(r"\d", password):
        typer.echo("Password must contain at least one number.")
        return False

    return True
