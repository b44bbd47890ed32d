from auth.credentials import (
    CredentialVerifier,
    InvalidCredential,
    VerifiedIdentity,
    extract_bearer_token,
    require_identity,
)

__all__ = [
    "CredentialVerifier",
    "InvalidCredential",
    "VerifiedIdentity",
    "extract_bearer_token",
    "require_identity",
]
