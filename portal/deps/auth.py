from __future__ import annotations

from fastapi import Depends, Header, Request
from fastapi.security.utils import get_authorization_scheme_param

from ..core.errors import Forbidden, Unauthorized
from ..core.security import Principal, decode_identity_token
from ..middlewares import principal_ctx_var


def _set_principal(request: Request, principal: Principal) -> None:
    label = f"{principal.role}:{principal.user_id}"
    principal_ctx_var.set(label)
    request.state.principal = label


async def get_principal(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    if not authorization:
        raise Unauthorized("Authorization required")
    scheme, credentials = get_authorization_scheme_param(authorization)
    if scheme.lower() != "bearer" or not credentials:
        raise Unauthorized("Bearer token required")
    principal = decode_identity_token(credentials)
    _set_principal(request, principal)
    return principal


async def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_admin:
        raise Forbidden("Admin access required")
    return principal
