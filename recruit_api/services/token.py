"""HS256 session tokens.

Tokens are minted by the identity provider bridge after OIDC login and
carry the access claims the API trusts: dbUserId, isAdmin, hasAccess.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt, JWTError

from recruit_api.config.settings import settings


def create_token(claims: dict[str, Any], expires_delta: timedelta = None) -> str:
    """Sign a session token carrying ``claims`` plus iat/exp."""
    issued = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    payload = {**claims, "iat": issued, "exp": issued + lifetime}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict[str, Any]:
    """
    Verify a session token and return its claims.

    Raises:
        JWTError: with a short reason when the token is expired, carries
            bad claims or fails signature checks
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise JWTError("Token has expired")
    except jwt.JWTClaimsError as e:
        raise JWTError(f"Invalid token claims: {e}")
    except JWTError as e:
        raise JWTError(f"Invalid token: {e}")
