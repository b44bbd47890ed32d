"""
Bearer credential verification.

Tokens are issued elsewhere; this service only checks them. A token is
an HS256 (or HS384/HS512) JWT carrying ``sub`` and, optionally,
``username`` and ``role``.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from errors.exceptions import unauthorized

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"

_bearer = HTTPBearer(auto_error=False)


class InvalidCredential(Exception):
    """Raised when a token is missing, malformed, expired or badly signed."""


@dataclass(frozen=True)
class VerifiedIdentity:
    user_id: str
    username: Optional[str] = None
    role: Optional[str] = None


def extract_bearer_token(raw: Optional[str]) -> Optional[str]:
    """Strip an optional ``Bearer `` prefix; return None for blank input."""
    if raw is None:
        return None
    parts = raw.split(None, 1)
    if not parts:
        return None
    if parts[0].lower() == BEARER_SCHEME:
        return parts[1].strip() if len(parts) > 1 else None
    return raw.strip()


class CredentialVerifier:
    def __init__(self, secret: str, algorithm: str = "HS256"):
        if not secret:
            raise ValueError("secret is required")
        self._secret = secret
        self.algorithm = algorithm

    def verify(self, token: Optional[str]) -> VerifiedIdentity:
        """
        Decode and check ``token``.

        Raises:
            InvalidCredential: If the token is absent, expired, badly
                signed or has no subject.
        """
        token = extract_bearer_token(token)
        if not token:
            raise InvalidCredential("No token provided")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise InvalidCredential("Token expired") from e
        except jwt.InvalidTokenError as e:
            raise InvalidCredential(f"Invalid token: {e}") from e

        return VerifiedIdentity(
            user_id=str(payload["sub"]),
            username=payload.get("username"),
            role=payload.get("role"),
        )


async def require_identity(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> VerifiedIdentity:
    """FastAPI dependency: the caller must present a valid bearer token."""
    verifier: CredentialVerifier = request.app.state.verifier
    if creds is None:
        raise unauthorized("Not authenticated")
    try:
        return verifier.verify(creds.credentials)
    except InvalidCredential as e:
        logger.info(
            f"Rejected request credential: {e}",
            extra={"extra_data": {"path": request.url.path}}
        )
        raise unauthorized(str(e)) from e
