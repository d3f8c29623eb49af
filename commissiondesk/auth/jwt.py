"""
JWT token verification.

Tokens are issued by the identity service and carry the caller's actor id
(sub), tenant and role. They are read from the Authorization header or the
access_token cookie.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from commissiondesk.config import settings

TOKEN_TYPE = "access"
ROLES = ("admin", "manager", "employee")


def create_access_token(
    actor_id: str,
    tenant_id: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Used by tooling and tests; production tokens come from the identity service
    signed with the same shared secret.

    Args:
        actor_id: Opaque user id from the org directory
        tenant_id: Dealer the user belongs to
        role: admin, manager or employee
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(hours=settings.jwt_expire_hours)

    payload = {
        "sub": actor_id,
        "tenant_id": tenant_id,
        "role": role,
        "exp": expire,
        "type": TOKEN_TYPE,
        "iat": datetime.now(timezone.utc),
    }

    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> Optional[dict]:
    """
    Verify and decode a JWT token.

    Returns:
        Dict with 'actor_id', 'tenant_id' and 'role',
        or None if the token is invalid, expired or incomplete
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    if payload.get("type") != TOKEN_TYPE:
        return None

    actor_id = payload.get("sub")
    tenant_id = payload.get("tenant_id")
    role = payload.get("role")

    if not actor_id or not tenant_id or role not in ROLES:
        return None

    return {
        "actor_id": str(actor_id),
        "tenant_id": str(tenant_id),
        "role": role,
    }


def get_token_from_request(request) -> Optional[str]:
    """
    Extract the JWT from a Bearer Authorization header, falling back
    to the access_token cookie.
    """
    authorization = request.headers.get("Authorization")
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()

    return request.cookies.get("access_token")
