from dataclasses import dataclass, field
from typing import Callable

from ..core.settings import Settings
from .store import CounterStore

HEALTH_PATHS = frozenset({"/health", "/api/health"})


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    window_ms: int
    limit: int
    message: str
    skip_successful_requests: bool = False
    standard_headers: bool = True
    skip_paths: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    key: str
    count: int
    limit: int
    reset_at: float

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)


def general_policy(settings: Settings) -> RateLimitPolicy:
    return RateLimitPolicy(
        name="general",
        window_ms=settings.RATE_LIMIT_WINDOW_MS,
        limit=settings.RATE_LIMIT_MAX_REQUESTS,
        message="Too many requests, please try again later.",
        skip_paths=HEALTH_PATHS,
    )


def auth_policy(settings: Settings) -> RateLimitPolicy:
    return RateLimitPolicy(
        name="auth",
        window_ms=settings.AUTH_RATE_LIMIT_WINDOW_MS,
        limit=settings.AUTH_RATE_LIMIT_MAX,
        message="Too many login attempts. Please wait 15 minutes.",
        skip_successful_requests=True,
        standard_headers=False,
    )


def strict_policy(settings: Settings) -> RateLimitPolicy:
    return RateLimitPolicy(
        name="strict",
        window_ms=settings.STRICT_RATE_LIMIT_WINDOW_MS,
        limit=settings.STRICT_RATE_LIMIT_MAX,
        message="Request limit exceeded for this operation.",
    )


class RateLimiter:
    """
    Applies one policy on top of a counter store.
    """

    def __init__(self, policy: RateLimitPolicy, store: CounterStore):
        self.policy = policy
        self.store = store

    def key_for(self, identity: str) -> str:
        return f"{self.policy.name}:{identity}"

    def hit(self, identity: str) -> RateLimitDecision:
        key = self.key_for(identity)
        count, reset_at = self.store.increment(key, self.policy.window_ms)
        return RateLimitDecision(
            allowed=count <= self.policy.limit,
            key=key,
            count=count,
            limit=self.policy.limit,
            reset_at=reset_at,
        )

    def record_outcome(self, decision: RateLimitDecision, status_code: int) -> None:
        # Successful requests are given back when the policy skips them
        if self.policy.skip_successful_requests and status_code < 400:
            self.store.decrement(decision.key, decision.reset_at)


PathMatcher = Callable[[str, str], bool]


def match_paths(*paths: str, methods: tuple[str, ...] | None = None) -> PathMatcher:
    """
    Matcher for the given path prefixes, optionally restricted to methods.
    """
    wanted = tuple(p.rstrip("/") for p in paths)
    allowed_methods = tuple(m.upper() for m in methods) if methods else None

    def matches(method: str, path: str) -> bool:
        if allowed_methods is not None and method.upper() not in allowed_methods:
            return False
        path = path.rstrip("/")
        return any(path == p or path.startswith(p + "/") for p in wanted)

    return matches
