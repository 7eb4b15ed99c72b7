from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import hashlib
import logging
import secrets

from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import update
from sqlmodel import Session, select

from ..core.clock import as_aware_utc, utcnow
from ..core.errors import AuthError, AuthErrorKind
from ..core.settings import Settings
from ..models.RefreshToken import RefreshToken
from ..models.Role import Role
from ..models.Token import Principal
from ..models.User import User

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 32
REFRESH_TOKEN_BYTES = 64


def resolve_jwt_secret(settings: Settings) -> str:
    """
    Return the signing secret, refusing to start a production deployment
    without a strong one. Development falls back to a random per-process
    secret (tokens do not survive a restart).
    """
    secret = settings.JWT_SECRET
    if not secret:
        if settings.is_production:
            raise RuntimeError("JWT_SECRET is not configured; refusing to start in production")
        logger.critical(
            "JWT_SECRET is not configured. Using a random secret for this process; "
            "issued tokens will be invalid after restart. Generate one with `openssl rand -base64 32`."
        )
        return secrets.token_urlsafe(48)

    if len(secret) < MIN_SECRET_LENGTH:
        if settings.is_production:
            raise RuntimeError(f"JWT_SECRET must have at least {MIN_SECRET_LENGTH} characters")
        logger.warning("JWT_SECRET is shorter than %d characters", MIN_SECRET_LENGTH)
    return secret


def hash_refresh_token(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    principal: Principal


class TokenService:
    """
    Issues and verifies access tokens (stateless JWT) and manages the
    lifecycle of persisted, single-use refresh tokens.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        access_token_ttl: timedelta = timedelta(minutes=15),
        refresh_token_ttl: timedelta = timedelta(days=7),
    ):
        if not secret:
            raise ValueError("A signing secret is required")
        self.secret = secret
        self.algorithm = algorithm
        self.access_token_ttl = access_token_ttl
        self.refresh_token_ttl = refresh_token_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            secret=resolve_jwt_secret(settings),
            algorithm=settings.JWT_ALGORITHM,
            access_token_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_token_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        )

    @property
    def access_token_expires_in(self) -> int:
        return int(self.access_token_ttl.total_seconds())

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------

    def issue_access_token(self, subject_id: int, role: Role, expires_delta: timedelta | None = None, **extra_claims) -> str:
        issued_at = datetime.now(timezone.utc).replace(microsecond=0)
        expire = issued_at + (expires_delta if expires_delta is not None else self.access_token_ttl)

        to_encode = dict(extra_claims)
        to_encode.update({
            "sub": str(subject_id),
            "role": Role(role).value,
            "iat": int(issued_at.timestamp()),
            "exp": int(expire.timestamp()),
        })
        return jwt.encode(to_encode, self.secret, algorithm=self.algorithm)

    def verify_access_token(self, token) -> Principal:
        """
        Decode a bearer token into a Principal.

        Raises AuthError(TOKEN_EXPIRED) past `exp` and AuthError(TOKEN_INVALID)
        for everything else that is wrong with it. No other exception leaves
        this method.
        """
        if not isinstance(token, str) or not token:
            raise AuthError(AuthErrorKind.TOKEN_INVALID)

        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise AuthError(AuthErrorKind.TOKEN_EXPIRED)
        except (JWTError, ValueError, TypeError, AttributeError):
            raise AuthError(AuthErrorKind.TOKEN_INVALID)

        sub, iat, exp = payload.get("sub"), payload.get("iat"), payload.get("exp")
        role = Role.parse(payload.get("role"))
        if role is None or not isinstance(sub, str) or not sub.isdigit():
            raise AuthError(AuthErrorKind.TOKEN_INVALID)
        if not isinstance(iat, (int, float)) or not isinstance(exp, (int, float)):
            raise AuthError(AuthErrorKind.TOKEN_INVALID)

        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
        if datetime.now(timezone.utc) > expires_at:
            raise AuthError(AuthErrorKind.TOKEN_EXPIRED)

        return Principal(
            subject_id=int(sub),
            role=role,
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
            expires_at=expires_at,
        )

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def _new_refresh_token(self, owner_id: int, ip_address: str | None, user_agent: str | None) -> tuple[str, RefreshToken]:
        value = secrets.token_hex(REFRESH_TOKEN_BYTES)
        row = RefreshToken(
            token_hash=hash_refresh_token(value),
            owner_id=owner_id,
            expires_at=utcnow() + self.refresh_token_ttl,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return value, row

    def issue_refresh_token(self, session: Session, owner_id: int, ip_address: str | None = None, user_agent: str | None = None) -> str:
        value, row = self._new_refresh_token(owner_id, ip_address, user_agent)
        session.add(row)
        session.commit()
        return value

    def _lookup(self, session: Session, value: str) -> RefreshToken | None:
        statement = select(RefreshToken).where(RefreshToken.token_hash == hash_refresh_token(value))
        return session.exec(statement).first()

    def rotate_refresh_token(self, session: Session, old_value: str, ip_address: str | None = None, user_agent: str | None = None) -> TokenPair:
        """
        Exchange a live refresh token for a new access/refresh pair.

        The old token is flipped with a conditional UPDATE that only matches
        while `revoked` is still false; if another rotation got there first
        no row changes and this one fails with TOKEN_REVOKED.
        """
        if not isinstance(old_value, str) or not old_value:
            raise AuthError(AuthErrorKind.TOKEN_NOT_FOUND)

        stored = self._lookup(session, old_value)
        if stored is None:
            raise AuthError(AuthErrorKind.TOKEN_NOT_FOUND)
        if stored.revoked:
            raise AuthError(AuthErrorKind.TOKEN_REVOKED)
        if utcnow() > as_aware_utc(stored.expires_at):
            raise AuthError(AuthErrorKind.TOKEN_EXPIRED)

        owner = session.get(User, stored.owner_id)
        if owner is None or not owner.is_active:
            raise AuthError(AuthErrorKind.TOKEN_NOT_FOUND)

        statement = (
            update(RefreshToken)
            .where(RefreshToken.id == stored.id, RefreshToken.revoked == False)  # noqa: E712
            .values(revoked=True, revoked_at=utcnow())
        )
        result = session.exec(statement)
        if result.rowcount != 1:
            session.rollback()
            raise AuthError(AuthErrorKind.TOKEN_REVOKED)

        new_value, new_row = self._new_refresh_token(owner.id, ip_address, user_agent)
        session.add(new_row)
        session.commit()

        access_token = self.issue_access_token(owner.id, owner.role, name=owner.name)
        return TokenPair(
            access_token=access_token,
            refresh_token=new_value,
            principal=self.verify_access_token(access_token),
        )

    def revoke_refresh_token(self, session: Session, value: str) -> int | None:
        """
        Mark a refresh token revoked. Revoking an unknown or already revoked
        token is not an error.

        Returns the owner id when this call revoked a live token, else None.
        """
        if not isinstance(value, str) or not value:
            return None
        stored = self._lookup(session, value)
        if stored is None or stored.revoked:
            return None
        statement = (
            update(RefreshToken)
            .where(RefreshToken.id == stored.id, RefreshToken.revoked == False)  # noqa: E712
            .values(revoked=True, revoked_at=utcnow())
        )
        result = session.exec(statement)
        session.commit()
        return stored.owner_id if result.rowcount > 0 else None

    def revoke_all_for_owner(self, session: Session, owner_id: int) -> int:
        statement = (
            update(RefreshToken)
            .where(RefreshToken.owner_id == owner_id, RefreshToken.revoked == False)  # noqa: E712
            .values(revoked=True, revoked_at=utcnow())
        )
        result = session.exec(statement)
        session.commit()
        return result.rowcount
