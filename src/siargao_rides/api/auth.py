"""End-user authentication: OIDC JWTs (Clerk) verified against a cached JWKS.

- verify_token(): signature + claims check, returns the `sub` claim
- get_current_user(): dependency for owner/renter routes
- get_optional_user(): same, but None for guests (booking is open to guests)
"""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass
from typing import Any

import jwt
import requests
from fastapi import HTTPException, Request

from siargao_rides.domain.ownership import Actor

JWKS_TTL_SECONDS = 600
JWKS_FETCH_TIMEOUT = 10


@dataclass
class CurrentUser:
    """Authenticated user context."""

    id: str
    external_subject: str
    email: str | None
    name: str | None
    role: str = "user"

    def as_actor(self) -> Actor:
        return Actor(user_id=self.id, role=self.role)


@dataclass(frozen=True)
class OidcConfig:
    issuer: str | None
    audience: str | None
    jwks_url: str | None
    authorized_parties: tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> "OidcConfig":
        raw_parties = os.environ.get("OIDC_AUTHORIZED_PARTIES", "")
        return cls(
            issuer=os.environ.get("OIDC_ISSUER") or None,
            audience=os.environ.get("OIDC_AUDIENCE") or None,
            jwks_url=os.environ.get("OIDC_JWKS_URL") or None,
            authorized_parties=tuple(p.strip() for p in raw_parties.split(",") if p.strip()),
        )

    @property
    def is_complete(self) -> bool:
        return bool(self.issuer and self.audience and self.jwks_url)


def _fetch_jwks(jwks_url: str) -> dict[str, Any]:
    resp = requests.get(jwks_url, timeout=JWKS_FETCH_TIMEOUT)
    resp.raise_for_status()
    return resp.json()


class JwksCache:
    """Process-wide JWKS cache with a TTL and forced refresh on key rotation."""

    def __init__(self, ttl_seconds: int = JWKS_TTL_SECONDS) -> None:
        self._ttl = ttl_seconds
        self._lock = threading.Lock()
        self._keys: dict[str, Any] | None = None
        self._fetched_at = 0.0

    def clear(self) -> None:
        with self._lock:
            self._keys = None
            self._fetched_at = 0.0

    def get(self, jwks_url: str, *, force_refresh: bool = False) -> dict[str, Any]:
        """Cached JWKS; 503 when the identity provider cannot be reached."""
        with self._lock:
            now = time.time()
            fresh = self._keys is not None and (now - self._fetched_at) < self._ttl
            if fresh and not force_refresh:
                return self._keys
            try:
                self._keys = _fetch_jwks(jwks_url)
            except requests.RequestException:
                raise HTTPException(status_code=503, detail="Auth temporarily unavailable")
            self._fetched_at = now
            return self._keys

    def find_key(self, jwks_url: str, kid: str, *, force_refresh: bool = False) -> dict[str, Any] | None:
        jwks = self.get(jwks_url, force_refresh=force_refresh)
        return next((k for k in jwks.get("keys", []) if k.get("kid") == kid), None)


_jwks = JwksCache()


def _invalid() -> HTTPException:
    return HTTPException(status_code=401, detail="Invalid token")


def _decode(token: str, key_data: dict[str, Any], config: OidcConfig) -> dict[str, Any]:
    try:
        public_key = jwt.algorithms.RSAAlgorithm.from_jwk(key_data)
    except (ValueError, TypeError, jwt.InvalidKeyError):
        raise _invalid()

    return jwt.decode(
        token,
        public_key,
        algorithms=["RS256"],
        issuer=config.issuer,
        audience=config.audience,
        options={"require": ["exp", "iss", "aud", "sub"]},
    )


def verify_token(token: str) -> str:
    """Verify a JWT and return its subject.

    Unknown kid or a bad signature triggers one JWKS refresh (key rotation)
    before the token is rejected.

    Raises:
        HTTPException: 401 invalid/expired/unconfigured, 503 JWKS unreachable.
    """
    config = OidcConfig.from_env()
    if not config.is_complete:
        raise HTTPException(status_code=401, detail="OIDC not configured")

    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except jwt.exceptions.DecodeError:
        raise _invalid()
    if not kid:
        raise _invalid()

    key_data = _jwks.find_key(config.jwks_url, kid) or _jwks.find_key(
        config.jwks_url, kid, force_refresh=True
    )
    if key_data is None:
        raise _invalid()

    try:
        try:
            claims = _decode(token, key_data, config)
        except jwt.InvalidSignatureError:
            key_data = _jwks.find_key(config.jwks_url, kid, force_refresh=True)
            if key_data is None:
                raise _invalid()
            claims = _decode(token, key_data, config)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise _invalid()

    if config.authorized_parties and "azp" in claims:
        if claims["azp"] not in config.authorized_parties:
            raise _invalid()

    sub = claims.get("sub")
    if not sub:
        raise _invalid()
    return sub


def _extract_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token or " " in token:
        raise HTTPException(status_code=401, detail="Invalid authorization header")
    return token


def _get_user_from_db(external_subject: str) -> CurrentUser | None:
    """Look up the user (and platform role) behind a token subject."""
    from siargao_rides.infra.db import txn
    from siargao_rides.infra.repositories.shops_repository import get_user_by_subject

    with txn() as cur:
        row = get_user_by_subject(cur, external_subject)
    if row is None:
        return None
    return CurrentUser(
        id=row["id"],
        external_subject=row["external_subject"],
        email=row["email"],
        name=row["name"],
        role=row["role"] or "user",
    )


def get_current_user(request: Request) -> CurrentUser:
    """FastAPI dependency: 401 without a valid token, 403 for unknown users."""
    sub = verify_token(_extract_bearer_token(request))
    user = _get_user_from_db(sub)
    if user is None:
        raise HTTPException(status_code=403, detail="User not found")
    return user


def get_optional_user(request: Request) -> CurrentUser | None:
    """FastAPI dependency for routes open to guests.

    No Authorization header means an anonymous caller; a header that is
    present but invalid is still rejected.
    """
    if not request.headers.get("Authorization"):
        return None
    return get_current_user(request)
