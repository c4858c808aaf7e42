"""
Authentication and Capabilities

DESIGN DECISION: The role a person plays is a set of capabilities granted
AFTER their credentials are checked, not a branch in the UI.

- Family members get a session without credentials (they can submit and
  look at reports, nothing else).
- The administrator must pass a CredentialVerifier. The local policy
  verifier compares against a PBKDF2-SHA256 hash from settings; a real
  identity provider can replace it behind the same interface.

Every component that changes shared state asks the session for the
capability it needs (`session.require(...)`).
"""

import base64
import hashlib
import hmac
import os
import sys
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from cashbook.config import AdminSettings, get_settings


PBKDF2_ITERATIONS = 260_000


class AuthenticationError(Exception):
    """Credentials were wrong or no admin credential is configured."""
    pass


class PermissionDeniedError(Exception):
    """The session lacks the capability for an operation."""
    pass


class Role(str, Enum):
    FAMILY = "family"
    ADMIN = "admin"


class Capability(str, Enum):
    SUBMIT = "submit"
    VIEW_REPORTS = "view_reports"
    APPROVE = "approve"
    MANAGE_CONFIG = "manage_config"


ROLE_CAPABILITIES = {
    Role.FAMILY: frozenset({Capability.SUBMIT, Capability.VIEW_REPORTS}),
    Role.ADMIN: frozenset(Capability),
}


class Session(BaseModel):
    """Who is using the app and what they may do."""
    model_config = ConfigDict(frozen=True)

    role: Role
    capabilities: frozenset[Capability]
    username: Optional[str] = None

    @classmethod
    def for_role(cls, role: Role, username: Optional[str] = None) -> "Session":
        return cls(role=role, capabilities=ROLE_CAPABILITIES[role], username=username)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def actor(self) -> str:
        return self.username or self.role.value

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, capability: Capability) -> None:
        if not self.can(capability):
            raise PermissionDeniedError(
                f"The {self.role.value} role may not {capability.value.replace('_', ' ')}"
            )


def hash_password(password: str, salt: Optional[bytes] = None,
                  iterations: int = PBKDF2_ITERATIONS) -> str:
    """
    Hash a password for ADMIN_PASSWORD_HASH.

    Format: pbkdf2_sha256$<iterations>$<salt b64>$<digest b64>
    """
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return "$".join([
        "pbkdf2_sha256",
        str(iterations),
        base64.b64encode(salt).decode("ascii"),
        base64.b64encode(digest).decode("ascii"),
    ])


def verify_password(password: str, encoded: str) -> bool:
    """Constant-time check of a password against a hash_password() string."""
    try:
        algorithm, iterations, salt_b64, digest_b64 = encoded.split("$")
        if algorithm != "pbkdf2_sha256":
            return False
        salt = base64.b64decode(salt_b64)
        expected = base64.b64decode(digest_b64)
        digest = hashlib.pbkdf2_hmac(
            "sha256", password.encode("utf-8"), salt, int(iterations)
        )
    except (ValueError, TypeError):
        return False
    return hmac.compare_digest(digest, expected)


class CredentialVerifier(ABC):
    """Checks administrator credentials."""

    @abstractmethod
    def verify(self, username: str, password: str) -> bool:
        pass


class LocalPolicyVerifier(CredentialVerifier):
    """Single administrator account from settings."""

    def __init__(self, settings: Optional[AdminSettings] = None):
        self._settings = settings or get_settings().admin

    def verify(self, username: str, password: str) -> bool:
        if not self._settings.password_hash:
            raise AuthenticationError(
                "No administrator password is configured (set ADMIN_PASSWORD_HASH)"
            )
        username_ok = hmac.compare_digest(
            username.encode("utf-8"), self._settings.username.encode("utf-8")
        )
        password_ok = verify_password(password, self._settings.password_hash)
        return username_ok and password_ok


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: python -m cashbook.auth.credentials <password>")
        sys.exit(2)
    print(hash_password(sys.argv[1]))
