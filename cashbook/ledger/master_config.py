"""
Master Configuration Manager

Administrator operations on the shared configuration document:
- add_to_set / remove_from_set for `categories` and `members`
- set_scalar for `min_transfer`
- bootstrap() to create the document with defaults on first run

Each call is one independent store update; subscribers see the new
document right after it lands. There is no batching across fields.

A changed minimum only affects future submissions. Records already
stored are never re-validated.
"""

from decimal import Decimal, InvalidOperation
from typing import Optional

import structlog

from cashbook.audit import AuditLogger
from cashbook.auth import Capability, Session
from cashbook.config import AppSettings, MasterDefaultsSettings, get_settings
from cashbook.models.master import MasterConfig, MasterScalarField, MasterSetField
from cashbook.services.storage import (
    ConfigBootstrapRace,
    DocumentStoreInterface,
    NotFoundError,
    with_timeout,
)


logger = structlog.get_logger(__name__)


class MasterConfigError(Exception):
    """An administrator change that would break the configuration."""
    pass


class MasterConfigManager:
    """Validated, audited changes to the master configuration."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        defaults: Optional[MasterDefaultsSettings] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._defaults = defaults or get_settings().master_defaults
        self._timeout = (settings or get_settings().app).request_timeout_seconds

    async def bootstrap(self) -> MasterConfig:
        """
        Make sure the configuration document exists.

        A concurrent bootstrap by another client is harmless: both wrote the
        same defaults, so the race is logged and ignored.
        """
        defaults = MasterConfig.defaults(self._defaults)
        try:
            created = await with_timeout(
                self._store.create_if_absent(defaults), self._timeout, "Creating configuration"
            )
            if created and self._audit_logger:
                await self._audit_logger.log_config_bootstrapped(defaults.to_document())
        except ConfigBootstrapRace as e:
            logger.warning("config_bootstrap_race", error=str(e))

        return await self.current()

    async def current(self) -> MasterConfig:
        config = await with_timeout(
            self._store.get_master_config(), self._timeout, "Loading configuration"
        )
        if config is None:
            raise NotFoundError("Master configuration has not been created")
        return config

    async def add_to_set(
        self,
        session: Session,
        field: MasterSetField,
        value: str,
    ) -> MasterConfig:
        """
        Add a category or member. Adding an existing value changes nothing.

        Raises:
            PermissionDeniedError: Session may not manage configuration
            MasterConfigError: Unknown field or blank value
        """
        session.require(Capability.MANAGE_CONFIG)
        field = self._set_field(field)
        value = self._clean(value)

        config = await self.current()
        if config.contains(field, value):
            return config

        updated = await with_timeout(
            self._store.add_to_config_set(field, value), self._timeout, "Updating configuration"
        )
        await self._audit(field.value, "add", value, session)
        return updated

    async def remove_from_set(
        self,
        session: Session,
        field: MasterSetField,
        value: str,
    ) -> MasterConfig:
        """
        Remove a category or member. Removing an absent value changes nothing.

        Raises:
            PermissionDeniedError: Session may not manage configuration
            MasterConfigError: Unknown field, blank value, or the last entry
        """
        session.require(Capability.MANAGE_CONFIG)
        field = self._set_field(field)
        value = self._clean(value)

        config = await self.current()
        if not config.contains(field, value):
            return config
        if len(config.values(field)) == 1:
            raise MasterConfigError(
                f"Cannot remove the last entry of {field.value}; add another one first"
            )

        updated = await with_timeout(
            self._store.remove_from_config_set(field, value), self._timeout, "Updating configuration"
        )
        await self._audit(field.value, "remove", value, session)
        return updated

    async def set_scalar(
        self,
        session: Session,
        field: MasterScalarField,
        value,
    ) -> MasterConfig:
        """
        Overwrite `min_transfer`.

        Raises:
            PermissionDeniedError: Session may not manage configuration
            MasterConfigError: Unknown field, non-numeric or negative value
        """
        session.require(Capability.MANAGE_CONFIG)
        try:
            field = MasterScalarField(field)
        except ValueError:
            raise MasterConfigError(f"{field!r} is not a scalar setting")

        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise MasterConfigError(f"{value!r} is not a number")
        if not amount.is_finite() or amount < 0:
            raise MasterConfigError("Minimum deposit must be zero or more")

        updated = await with_timeout(
            self._store.update_config_scalar(field, amount), self._timeout, "Updating configuration"
        )
        await self._audit(field.value, "set", str(amount), session)
        return updated

    @staticmethod
    def _set_field(field) -> MasterSetField:
        try:
            return MasterSetField(field)
        except ValueError:
            raise MasterConfigError(f"{field!r} is not a list setting")

    @staticmethod
    def _clean(value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise MasterConfigError("Value cannot be empty")
        return value

    async def _audit(self, field: str, action: str, value: str, session: Session) -> None:
        if self._audit_logger:
            await self._audit_logger.log_config_updated(
                field=field,
                action=action,
                value=value,
                admin=session.actor,
            )
