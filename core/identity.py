"""
Rater identity.

Tokens are issued by the external identity provider. This module only verifies
them and extracts the rater id from the ``sub`` claim.
"""

from typing import Optional

import jwt

from core.config import settings


class AuthenticationError(Exception):
    """Base authentication error."""
    pass

class TokenExpiredError(AuthenticationError):
    """Token has expired."""
    pass

class TokenInvalidError(AuthenticationError):
    """Token is malformed, badly signed or lacks a subject."""
    pass

def verify_rater_token(
    token: str,
    secret: Optional[str] = None,
    algorithm: Optional[str] = None,
    audience: Optional[str] = None,
) -> str:
    """
    Verify a bearer token and return the rater id it carries.

    Args:
        token: Encoded JWT
        secret: Signing secret (defaults to ``JWT_SECRET_KEY``)
        algorithm: Signing algorithm (defaults to ``JWT_ALGORITHM``)
        audience: Expected ``aud`` claim (defaults to ``JWT_AUDIENCE``); when
            empty the audience is not checked

    Returns:
        The ``sub`` claim

    Raises:
        TokenExpiredError: Token is past its ``exp``
        TokenInvalidError: Any other verification failure
    """
    secret = secret or settings.jwt_secret_key
    algorithm = algorithm or settings.jwt_algorithm
    audience = settings.jwt_audience if audience is None else audience

    options = {"require": ["sub"]}
    if not audience:
        options["verify_aud"] = False

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            audience=audience or None,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenInvalidError(f"Invalid token: {str(e)}")

    rater_id = payload.get("sub")
    if not isinstance(rater_id, str) or not rater_id.strip():
        raise TokenInvalidError("Token subject is empty")
    return rater_id
