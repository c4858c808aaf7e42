"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Traceability of submissions and decisions
2. Debugging capability
3. A history the administrator can read
4. Accountability inside the family

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from cashbook.models.audit import AuditEvent, AuditEventBuilder
from cashbook.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit store (for persistence and admin visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("cashbook.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_proof_image(
        self,
        filename: str,
        accepted: bool,
        size_bytes: int = 0,
        reason: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a proof image being attached or refused."""
        if accepted:
            event = AuditEventBuilder.proof_image_accepted(
                filename=filename,
                size_bytes=size_bytes,
                correlation_id=correlation_id,
            )
        else:
            event = AuditEventBuilder.proof_image_rejected(
                filename=filename,
                reason=reason or "unknown",
                correlation_id=correlation_id,
            )
        await self.log(event)

    async def log_submission_received(
        self,
        member: str,
        transaction_type: str,
        amount: Optional[Decimal],
        correlation_id: UUID,
    ) -> None:
        """Log a submission arriving, before validation."""
        event = AuditEventBuilder.submission_received(
            member=member,
            transaction_type=transaction_type,
            amount=str(amount) if amount is not None else "",
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_submission_rejected(
        self,
        field: str,
        issue_type: str,
        message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a submission refused by validation."""
        event = AuditEventBuilder.submission_rejected(
            field=field,
            issue_type=issue_type,
            message=message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_saved(
        self,
        transaction_id: str,
        member: str,
        transaction_type: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transaction_saved(
            transaction_id=transaction_id,
            member=member,
            transaction_type=transaction_type,
            amount=f"{amount:,}",
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_save_failed(
        self,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(error_message, correlation_id))

    async def log_decision(
        self,
        transaction_id: str,
        decision: str,
        admin: str,
        correlation_id: UUID,
    ) -> None:
        """Log an approval or rejection."""
        event = AuditEventBuilder.transaction_decided(
            transaction_id=transaction_id,
            decision=decision,
            admin=admin,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transition_refused(
        self,
        transaction_id: str,
        current: str,
        requested: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transition_refused(
            transaction_id=transaction_id,
            current=current,
            requested=requested,
            reason=reason,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_rejected_purged(self, count: int, retention_days: int) -> None:
        await self.log(AuditEventBuilder.rejected_purged(count, retention_days))

    async def log_config_bootstrapped(self, defaults: dict) -> None:
        await self.log(AuditEventBuilder.master_config_bootstrapped(defaults))

    async def log_config_updated(
        self,
        field: str,
        action: str,
        value: str,
        admin: str,
    ) -> None:
        """Log a master configuration change."""
        event = AuditEventBuilder.master_config_updated(
            field=field,
            action=action,
            value=value,
            admin=admin,
        )
        await self.log(event)

    async def log_admin_login(self, username: str, succeeded: bool) -> None:
        await self.log(AuditEventBuilder.admin_login(username, succeeded))

    async def log_report(
        self,
        action: str,
        filter_description: str,
        row_count: int,
        balance: Decimal,
    ) -> None:
        """Log a report export or share."""
        event = AuditEventBuilder.report_event(
            action=action,
            filter_description=filter_description,
            row_count=row_count,
            balance=str(balance),
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a submission).
    Pass it through all subsequent operations.
    """
    return uuid4()
