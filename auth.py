"""Identity from the external auth provider.

Sessions are issued and managed by the hosted auth service; this module only
turns an ``Authorization: Bearer <jwt>`` header into an opaque user id:

1. Downloads / caches the provider's JSON Web Key Set (JWKS).
2. Verifies signature, expiration, audience and issuer.
3. Returns the ``sub`` claim.

A request without a token is anonymous (``None``): it can browse listings but
save-related mutations are refused. With ``auth_enabled`` off (local dev) every
request runs as ``Settings.local_user_id``.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Optional

import httpx
import structlog
from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError
from starlette.concurrency import run_in_threadpool

from settings import Settings, get_settings

logger = structlog.get_logger(__name__)


class TokenPayload(BaseModel):
    sub: str
    email: Optional[str] = None
    exp: int


@lru_cache
def _get_jwks(jwks_url: str) -> dict:
    logger.info("Fetching JWKS", jwks_url=jwks_url)
    resp = httpx.get(jwks_url, timeout=10)
    resp.raise_for_status()
    return resp.json()


def verify_token(token: str, settings: Optional[Settings] = None) -> TokenPayload:
    """Verify a provider JWT and return its payload.

    Raises HTTPException(401) on failure, 500 when auth is enabled but not configured.
    """
    settings = settings or get_settings()
    if not settings.auth_jwks_url:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Auth provider JWKS URL is not configured",
        )

    try:
        payload = jwt.decode(
            token,
            _get_jwks(settings.auth_jwks_url),
            algorithms=["RS256", "ES256"],
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
            options={"verify_aud": settings.auth_audience is not None, "verify_at_hash": False},
        )
        return TokenPayload.model_validate(payload)
    except (JWTError, ValidationError) as exc:
        logger.warning("JWT verification failed", exc=str(exc))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    except httpx.HTTPError as exc:
        logger.warning("JWKS fetch failed", jwks_url=settings.auth_jwks_url, exc=str(exc))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


# Helper to extract Authorization header (works with FastAPI DI)
def _get_authorization_header(request: Request) -> Optional[str]:
    return request.headers.get("Authorization")


# --- FastAPI dependencies ---
async def get_current_user_id(
    authorization: Annotated[Optional[str], Depends(_get_authorization_header)],
    settings: Settings = Depends(get_settings),
) -> Optional[str]:
    if not settings.auth_enabled:
        return settings.local_user_id

    if not authorization or not authorization.lower().startswith("bearer "):
        return None

    token = authorization.split(" ", 1)[1].strip()
    # Blocking: JWKS download and signature check
    payload = await run_in_threadpool(verify_token, token, settings)
    return payload.sub


async def require_user_id(
    user_id: Annotated[Optional[str], Depends(get_current_user_id)],
) -> str:
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign in to save jobs.")
    return user_id
