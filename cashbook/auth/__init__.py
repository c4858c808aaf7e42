"""Authentication package."""

from cashbook.auth.credentials import (
    AuthenticationError,
    Capability,
    CredentialVerifier,
    LocalPolicyVerifier,
    PermissionDeniedError,
    Role,
    Session,
    hash_password,
    verify_password,
)
from cashbook.auth.service import AuthService

__all__ = [
    "AuthService",
    "AuthenticationError",
    "Capability",
    "CredentialVerifier",
    "LocalPolicyVerifier",
    "PermissionDeniedError",
    "Role",
    "Session",
    "hash_password",
    "verify_password",
]
