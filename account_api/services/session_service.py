"""Session helpers: resolve the bearer token of a request into profile claims."""
from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from account_api.core.tokens import TokenError, TokenService

_bearer = HTTPBearer(auto_error=False)


def get_token_service(request: Request) -> TokenService:
    svc = getattr(getattr(request.app, "state", None), "account_service", None)
    if not svc:
        raise RuntimeError("AccountService not configured")
    return svc.tokens


def current_profile(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> dict:
    """Return the profile claims of the authenticated caller or fail with 401."""
    if credentials is None or (credentials.scheme or "").lower() != "bearer":
        raise HTTPException(401, "Authorization header missing", headers={"WWW-Authenticate": "Bearer"})
    try:
        return get_token_service(request).verify_token(credentials.credentials)
    except TokenError as exc:
        raise HTTPException(401, str(exc), headers={"WWW-Authenticate": "Bearer"}) from exc
