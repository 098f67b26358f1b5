from datetime import datetime, timedelta, timezone
from dataclasses import dataclass
from typing import Optional
from fastapi import Request
import jwt
from storefront.core_settings import Settings
from storefront.application.errors import Unauthorized
from shared.core import set_request_context

BEARER_PREFIX = "Bearer "

@dataclass(frozen=True)
class AdminActor:
    id: str

def create_access_token(subject: str, settings: Settings, expires_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    ttl = expires_minutes if expires_minutes is not None else settings.ADMIN_TOKEN_TTL_MINUTES
    payload = {"sub": subject, "iat": now, "exp": now + timedelta(minutes=ttl)}
    return jwt.encode(payload, settings.ADMIN_JWT_SECRET, algorithm=settings.JWT_ALG)

def decode_access_token(token: str, settings: Settings) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.ADMIN_JWT_SECRET, algorithms=[settings.JWT_ALG])
    except jwt.PyJWTError:
        return None

def require_admin(request: Request) -> AdminActor:
    """Authenticated actor for admin routes, taken from a bearer token."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith(BEARER_PREFIX):
        raise Unauthorized("Missing token.")
    token_data = decode_access_token(auth_header[len(BEARER_PREFIX):], request.app.state.settings)
    if not token_data or not token_data.get("sub"):
        raise Unauthorized("Invalid token.")
    set_request_context(admin_id=token_data["sub"])
    return AdminActor(id=token_data["sub"])
