"""Identity handling for tokens minted by the external identity provider.

The portal never issues credentials itself. Each request carries a bearer JWT
from the IdP; we only verify its signature and read three facts out of it:
who is calling, which role they hold, and (for client users) which tenant
they belong to.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from .config import settings
from .errors import Forbidden, Unauthorized
from .statuses import ROLE_ADMIN, ROLE_CHOICES, ROLE_CLIENT


@dataclass(frozen=True)
class Principal:
    """The authenticated caller as seen by the lifecycle operations."""

    user_id: str
    role: str
    client_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_client(self) -> bool:
        return self.role == ROLE_CLIENT

    def can_access_client(self, client_id: int | None) -> bool:
        if self.is_admin:
            return True
        return client_id is not None and self.client_id == client_id


def _coerce_client_id(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise Unauthorized("Invalid client claim") from exc


def decode_identity_token(token: str) -> Principal:
    options = {
        "verify_aud": settings.IDP_AUDIENCE is not None,
        "verify_iss": settings.IDP_ISSUER is not None,
    }
    try:
        claims = jwt.decode(
            token,
            settings.IDP_JWT_SECRET,
            algorithms=[settings.IDP_JWT_ALGORITHM],
            audience=settings.IDP_AUDIENCE,
            issuer=settings.IDP_ISSUER,
            options=options,
        )
    except ExpiredSignatureError as exc:
        raise Unauthorized("Token expired") from exc
    except JWTError as exc:
        raise Unauthorized("Invalid token") from exc

    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        raise Unauthorized("Invalid token payload")

    role = claims.get(settings.ROLE_CLAIM)
    # Clerk-style tokens nest custom claims under public metadata.
    metadata = claims.get("metadata") or claims.get("public_metadata") or {}
    if role is None and isinstance(metadata, dict):
        role = metadata.get("role")
    role = str(role or ROLE_CLIENT).strip().lower()
    if role not in ROLE_CHOICES:
        raise Forbidden(f"Unsupported role '{role}'")

    raw_client = claims.get(settings.CLIENT_CLAIM)
    if raw_client is None and isinstance(metadata, dict):
        raw_client = metadata.get("clientId")
    client_id = _coerce_client_id(raw_client)
    if role == ROLE_CLIENT and client_id is None:
        raise Forbidden("Client users must belong to a client")
    return Principal(user_id=subject.strip(), role=role, client_id=client_id)


def encode_identity_token(subject: str, *, role: str, client_id: int | None = None, **extra: Any) -> str:
    """Mint a token the way the IdP would. Used by local tooling and tests."""

    claims: dict[str, Any] = {"sub": subject, settings.ROLE_CLAIM: role}
    if client_id is not None:
        claims[settings.CLIENT_CLAIM] = client_id
    if settings.IDP_AUDIENCE:
        claims["aud"] = settings.IDP_AUDIENCE
    if settings.IDP_ISSUER:
        claims["iss"] = settings.IDP_ISSUER
    claims.update(extra)
    return jwt.encode(claims, settings.IDP_JWT_SECRET, algorithm=settings.IDP_JWT_ALGORITHM)
