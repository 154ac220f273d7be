"""
apiforge — Authentication & Authorization
==========================================

What:  Pluggable authentication strategies plus role gating.
How:   AuthService holds exactly one AuthStrategy chosen from settings (or
       injected). The "auth" pipeline stage authenticates, then checks the
       identity's role against the endpoint's allow-list.
Who:   Built by the container; its stage is added to every endpoint that
       requires authentication.

Strategies:
    token    JWT from the request. Decode-only by default; in hardened or
             production mode the signature and expiry are verified with
             python-jose.
    api_key  X-API-Key header compared (constant time) against the
             configured key store.
    custom   Delegates to an injected callable (sync or async) that returns
             an AuthIdentity or None.
    none     Pass-through; no identity is attached.

Token extraction precedence:
    Authorization: Bearer <token>  →  `token` cookie  →  `token` query param

Failures:
    missing / invalid credential   → AuthError (401)
    role outside the allow-list    → PermissionDeniedError (403)
"""

import hashlib
import hmac
import inspect
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional, Sequence, Union

from jose import ExpiredSignatureError, JWTError, jwt

from apiforge.config import Settings
from apiforge.exceptions import ApiError, AuthError, ConfigurationError, PermissionDeniedError
from apiforge.pipeline.context import AuthIdentity, RequestContext, frozen_map
from apiforge.pipeline.outcome import Continue, ShortCircuit, Stage, StageOutcome

logger = logging.getLogger(__name__)

CustomAuthenticator = Callable[
    [RequestContext],
    Union[Optional[AuthIdentity], Awaitable[Optional[AuthIdentity]]],
]


def extract_token(ctx: RequestContext) -> Optional[str]:
    auth_header = ctx.header("authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):].strip() or None
    if ctx.cookies.get("token"):
        return ctx.cookies["token"]
    if ctx.query.get("token"):
        return ctx.query["token"]
    return None


class AuthStrategy(ABC):
    name = "none"

    @abstractmethod
    async def authenticate(self, ctx: RequestContext) -> Optional[AuthIdentity]:
        """Return the caller's identity, None (no auth), or raise AuthError."""


class TokenStrategy(AuthStrategy):
    """
    JWT bearer tokens.

    Claims:
        sub (or id)  → subject_id; a token without one is invalid
        role         → role, defaulting to `default_role`
    """

    name = "token"

    def __init__(self, secret: str, algorithm: str = "HS256", verify: bool = False, default_role: str = "PLAYER"):
        self.secret = secret
        self.algorithm = algorithm
        self.verify = verify
        self.default_role = default_role

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            if self.verify:
                return jwt.decode(token, self.secret, algorithms=[self.algorithm])
            return jwt.get_unverified_claims(token)
        except ExpiredSignatureError:
            raise AuthError("Token expired")
        except JWTError:
            raise AuthError("Invalid token")

    async def authenticate(self, ctx: RequestContext) -> Optional[AuthIdentity]:
        token = extract_token(ctx)
        if not token:
            raise AuthError("No token provided")
        claims = self.decode(token)
        subject = claims.get("sub") or claims.get("id")
        if not subject:
            raise AuthError("Invalid token")
        return AuthIdentity(
            subject_id=str(subject),
            role=str(claims.get("role") or self.default_role),
            claims=frozen_map(claims),
        )


class ApiKeyStrategy(AuthStrategy):
    name = "api_key"

    def __init__(self, keys: Iterable[str], header: str = "X-API-Key", role: str = "SERVICE"):
        self._keys = tuple(k.encode() for k in keys)
        self.header = header
        self.role = role

    def _known(self, candidate: str) -> bool:
        supplied = candidate.encode()
        # Compare against every key so timing does not reveal which one matched
        matched = False
        for key in self._keys:
            matched = hmac.compare_digest(supplied, key) or matched
        return matched

    async def authenticate(self, ctx: RequestContext) -> Optional[AuthIdentity]:
        api_key = ctx.header(self.header)
        if not api_key:
            raise AuthError("API key required")
        if not self._known(api_key):
            raise AuthError("Invalid API key")
        fingerprint = hashlib.sha256(api_key.encode()).hexdigest()[:12]
        return AuthIdentity(subject_id=f"api-key:{fingerprint}", role=self.role)


class CustomStrategy(AuthStrategy):
    name = "custom"

    def __init__(self, authenticator: CustomAuthenticator):
        self._authenticator = authenticator

    async def authenticate(self, ctx: RequestContext) -> Optional[AuthIdentity]:
        result = self._authenticator(ctx)
        if inspect.isawaitable(result):
            result = await result
        if result is None:
            raise AuthError("Authentication failed")
        return result


class NoAuthStrategy(AuthStrategy):
    name = "none"

    async def authenticate(self, ctx: RequestContext) -> Optional[AuthIdentity]:
        return None


class AuthService:
    """
    Args:
        strategy:       Active AuthStrategy
        secret / algorithm / token_ttl:  Used by issue_token()
    """

    def __init__(
        self,
        strategy: AuthStrategy,
        secret: str = "change-me-in-production",
        algorithm: str = "HS256",
        token_ttl: timedelta = timedelta(hours=24),
    ):
        self.strategy = strategy
        self.secret = secret
        self.algorithm = algorithm
        self.token_ttl = token_ttl

    @classmethod
    def from_settings(cls, settings: Settings, custom: Optional[CustomAuthenticator] = None) -> "AuthService":
        provider = settings.auth_provider
        if provider == "token":
            strategy: AuthStrategy = TokenStrategy(
                settings.jwt_secret,
                settings.jwt_algorithm,
                verify=settings.verify_tokens,
                default_role=settings.default_role,
            )
        elif provider == "api_key":
            strategy = ApiKeyStrategy(settings.api_keys_list, header=settings.api_key_header)
        elif provider == "custom":
            if custom is None:
                raise ConfigurationError("AUTH_PROVIDER=custom needs a custom authenticator")
            strategy = CustomStrategy(custom)
        else:
            strategy = NoAuthStrategy()
        logger.info("Authentication configured with provider: %s", strategy.name)
        return cls(strategy, secret=settings.jwt_secret, algorithm=settings.jwt_algorithm)

    @property
    def is_configured(self) -> bool:
        return not isinstance(self.strategy, NoAuthStrategy)

    async def authenticate(self, ctx: RequestContext) -> Optional[AuthIdentity]:
        return await self.strategy.authenticate(ctx)

    @staticmethod
    def authorize(identity: Optional[AuthIdentity], allowed_roles: Sequence[str]) -> None:
        if not allowed_roles:
            return
        if identity is None:
            raise AuthError("Authentication required")
        if identity.role not in allowed_roles:
            raise PermissionDeniedError(
                context={"role": identity.role, "allowed_roles": list(allowed_roles)}
            )

    def issue_token(
        self,
        claims: Mapping[str, Any],
        expires_in: Optional[timedelta] = None,
    ) -> str:
        """Sign a JWT with the configured secret (tests, CLI, dev logins)."""
        payload = dict(claims)
        payload.setdefault("exp", datetime.now(timezone.utc) + (expires_in or self.token_ttl))
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    # ── Pipeline stage ────────────────────────────────────────────────────

    def stage(self, allowed_roles: Sequence[str] = ()) -> Stage:
        roles = tuple(allowed_roles)

        async def run(ctx: RequestContext) -> StageOutcome:
            try:
                identity = await self.authenticate(ctx)
                self.authorize(identity, roles)
            except ApiError as e:
                logger.info("[%s] Auth rejected %s %s: %s", ctx.request_id, ctx.method, ctx.path, e.message)
                return ShortCircuit(ctx, e)
            return Continue(ctx.evolve(identity=identity))

        return Stage(name="auth", run=run, options={"provider": self.strategy.name, "roles": roles})
