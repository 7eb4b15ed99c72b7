import requests
from typing import Optional, List

from .config import BASE_URL, REQUEST_TIMEOUT
from .session import load_refresh_token, load_token, save_session


class ApiError(Exception):
    """
    Request failed; `code` is the API error code when the server sent one.
    """

    def __init__(self, detail: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
        self.code = code


def _error_from_response(resp: requests.Response) -> ApiError:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    detail = body.get("detail") or resp.reason or f"HTTP {resp.status_code}"
    if not isinstance(detail, str):
        # FastAPI validation errors come back as a list
        detail = "Invalid request data"
    return ApiError(detail, resp.status_code, body.get("code"))


def _send(method: str, path: str, token: Optional[str] = None, **kwargs) -> requests.Response:
    headers = kwargs.pop("headers", {})
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        return requests.request(method, f"{BASE_URL}{path}", headers=headers, timeout=REQUEST_TIMEOUT, **kwargs)
    except requests.RequestException as exc:
        raise ApiError(f"Could not reach the API at {BASE_URL}: {exc}") from exc


def _refresh_session() -> bool:
    refresh_token = load_refresh_token()
    if not refresh_token:
        return False
    try:
        data = api_refresh(refresh_token)
    except ApiError:
        return False
    save_session(data["access_token"], data["refresh_token"])
    return True


def _authorized(method: str, path: str, **kwargs) -> requests.Response:
    """
    Call an endpoint with the stored access token. When the server reports
    TOKEN_EXPIRED the session is refreshed once and the call repeated.
    """
    token = load_token()
    if not token:
        raise ApiError("No active session. Please run `aura auth login` first.")

    resp = _send(method, path, token, **kwargs)
    if resp.status_code == 401 and _error_from_response(resp).code == "TOKEN_EXPIRED":
        if _refresh_session():
            resp = _send(method, path, load_token(), **kwargs)
    if not resp.ok:
        raise _error_from_response(resp)
    return resp


def api_login(cpf: str, password: str) -> dict:
    """
    Login with CPF and password; returns the token pair and the user record.
    """
    resp = _send("POST", "/api/auth/login", json={"cpf": cpf, "password": password})
    if resp.status_code != 200:
        raise _error_from_response(resp)
    return resp.json()


def api_refresh(refresh_token: str) -> dict:
    resp = _send("POST", "/api/auth/refresh", json={"refresh_token": refresh_token})
    if resp.status_code != 200:
        raise _error_from_response(resp)
    return resp.json()


def api_logout(refresh_token: Optional[str] = None, token: Optional[str] = None) -> None:
    """
    Revoke the given refresh token, or every token of the bearer when none is given.
    """
    payload = {"refresh_token": refresh_token} if refresh_token else None
    resp = _send("POST", "/api/auth/logout", token if payload is None else None, json=payload)
    if resp.status_code != 204:
        raise _error_from_response(resp)


def api_profile() -> dict:
    return _authorized("GET", "/api/auth/profile").json()


def api_create_user(user_data: dict) -> dict:
    return _authorized("POST", "/api/users", json=user_data).json()


def api_get_all_users() -> List[dict]:
    return _authorized("GET", "/api/users").json()


def api_deactivate_user(user_id: int) -> dict:
    return _authorized("POST", f"/api/users/{user_id}/deactivate").json()


def api_get_audit_logs(filters: Optional[dict] = None) -> List[dict]:
    params = {key: value for key, value in (filters or {}).items() if value is not None}
    return _authorized("GET", "/api/audit-logs", params=params).json()


def api_verify_audit_chain() -> dict:
    return _authorized("GET", "/api/audit-logs/verify").json()
