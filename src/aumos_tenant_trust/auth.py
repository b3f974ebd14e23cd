"""Bearer token verification for aumos-tenant-trust.

The service trusts an upstream identity provider that issues HS256 (or
configured algorithm) JWTs. Claims read:

- sub / user_id: the calling user
- tenant_id / tenantId: the user's home tenant
- roles: list of role names (optional)
- permissions: list of permission strings (optional)

Verification is stateless; no database lookup is performed.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from aumos_tenant_trust.core.entities import AuthenticatedPrincipal
from aumos_tenant_trust.errors import AuthenticationRequired


def create_access_token(
    user_id: str,
    tenant_id: str,
    secret: str,
    algorithm: str = "HS256",
    roles: list[str] | None = None,
    permissions: list[str] | None = None,
    expires_in: timedelta = timedelta(minutes=60),
) -> str:
    """Issue a signed access token (development tooling and tests).

    Args:
        user_id: Subject of the token.
        tenant_id: The user's home tenant.
        secret: Signing secret.
        algorithm: JWT signing algorithm.
        roles: Role names.
        permissions: Permission strings.
        expires_in: Token lifetime.

    Returns:
        Encoded JWT.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "tenant_id": tenant_id,
        "roles": roles or [],
        "permissions": permissions or [],
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(token: str, secret: str, algorithm: str = "HS256") -> dict[str, Any]:
    """Verify a token's signature and expiry and return its claims.

    Raises:
        AuthenticationRequired: If the token is expired, malformed or forged.
    """
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationRequired("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationRequired("Invalid token", [str(exc)]) from exc


def principal_from_claims(claims: dict[str, Any]) -> AuthenticatedPrincipal:
    """Build the authenticated principal from verified claims.

    Raises:
        AuthenticationRequired: If the user or tenant claim is missing.
    """
    user_id = claims.get("sub") or claims.get("user_id")
    tenant_id = claims.get("tenant_id") or claims.get("tenantId")
    if not user_id or not tenant_id:
        raise AuthenticationRequired("Token lacks user or tenant claims")
    return AuthenticatedPrincipal(
        tenant_id=str(tenant_id),
        user_id=str(user_id),
        roles=tuple(claims.get("roles") or ()),
        permissions=tuple(claims.get("permissions") or ()),
    )
