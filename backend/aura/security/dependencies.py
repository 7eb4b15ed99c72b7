from fastapi import Request

from ..core.cpf import is_valid_cpf
from ..core.errors import AuthError, AuthErrorKind
from ..core.sanitizer import sanitize

async def sanitize_path_params(request: Request) -> None:
    # Runs before FastAPI reads path parameters for the endpoint
    if request.path_params:
        request.scope["path_params"] = sanitize(dict(request.path_params))

async def validate_cpf(request: Request) -> None:
    """
    Reject the request when a `cpf` field in the path, query or JSON body is
    present but fails checksum validation.
    """
    candidates = [request.path_params.get("cpf"), request.query_params.get("cpf")]

    if request.headers.get("content-type", "").split(";")[0].strip().endswith("json"):
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            candidates.append(body.get("cpf"))

    for cpf in candidates:
        if cpf and not is_valid_cpf(cpf):
            raise AuthError(AuthErrorKind.VALIDATION_ERROR, "Invalid CPF")
