"""Session creation for family members and the administrator."""

from typing import Optional

from cashbook.audit import AuditLogger
from cashbook.auth.credentials import (
    AuthenticationError,
    CredentialVerifier,
    LocalPolicyVerifier,
    Role,
    Session,
)


class AuthService:
    """Hands out sessions; the only place a Role turns into capabilities."""

    def __init__(
        self,
        verifier: Optional[CredentialVerifier] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._verifier = verifier or LocalPolicyVerifier()
        self._audit_logger = audit_logger

    def family_session(self) -> Session:
        return Session.for_role(Role.FAMILY)

    async def login_admin(self, username: str, password: str) -> Session:
        """
        Verify administrator credentials.

        Raises:
            AuthenticationError: Wrong credentials or none configured
        """
        username = (username or "").strip()
        try:
            ok = self._verifier.verify(username, password or "")
        except AuthenticationError:
            if self._audit_logger:
                await self._audit_logger.log_admin_login(username, succeeded=False)
            raise

        if self._audit_logger:
            await self._audit_logger.log_admin_login(username, succeeded=ok)
        if not ok:
            raise AuthenticationError("Wrong username or password")
        return Session.for_role(Role.ADMIN, username=username)
