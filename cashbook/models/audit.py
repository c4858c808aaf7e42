"""
Audit Models for Family Cash Ledger

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of who submitted and who decided
2. Debugging information when things go wrong
3. A record of configuration changes
4. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of submission, approval and configuration has its own type.
    """
    # Proof image
    PROOF_IMAGE_ACCEPTED = "proof_image_accepted"
    PROOF_IMAGE_REJECTED = "proof_image_rejected"

    # Submission
    SUBMISSION_RECEIVED = "submission_received"
    SUBMISSION_REJECTED = "submission_rejected"
    TRANSACTION_SAVED = "transaction_saved"
    SAVE_FAILED = "save_failed"

    # Approval
    TRANSACTION_APPROVED = "transaction_approved"
    TRANSACTION_REJECTED = "transaction_rejected"
    TRANSITION_REFUSED = "transition_refused"
    REJECTED_PURGED = "rejected_purged"

    # Master configuration
    MASTER_CONFIG_BOOTSTRAPPED = "master_config_bootstrapped"
    MASTER_CONFIG_UPDATED = "master_config_updated"

    # Authentication
    ADMIN_LOGIN_SUCCEEDED = "admin_login_succeeded"
    ADMIN_LOGIN_FAILED = "admin_login_failed"

    # Reports
    REPORT_EXPORTED = "report_exported"
    REPORT_SHARED = "report_shared"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'master_config', 'report')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one submission)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    # Who did it
    actor: Optional[str] = Field(
        default=None,
        description="Member name or admin username behind the action"
    )
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "actor": self.actor,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, actor,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            self.actor or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.submission_received(member, amount, correlation_id)
        event = AuditEventBuilder.transaction_decided(tx_id, "approved", admin, correlation_id)
    """

    @staticmethod
    def proof_image_accepted(
        filename: str,
        size_bytes: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROOF_IMAGE_ACCEPTED,
            entity_type="proof_image",
            correlation_id=correlation_id,
            description=f"Proof image attached: {filename}",
            details={
                "filename": filename,
                "size_bytes": size_bytes,
            },
            is_user_action=True,
        )

    @staticmethod
    def proof_image_rejected(
        filename: str,
        reason: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROOF_IMAGE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="proof_image",
            correlation_id=correlation_id,
            description=f"Proof image refused: {filename}",
            details={
                "filename": filename,
                "reason": reason,
            },
            is_user_action=True,
        )

    @staticmethod
    def submission_received(
        member: str,
        transaction_type: str,
        amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBMISSION_RECEIVED,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Submission received from {member or 'unknown member'}",
            details={
                "type": transaction_type,
                "amount": amount,
            },
            actor=member or None,
            is_user_action=True,
        )

    @staticmethod
    def submission_rejected(
        field: str,
        issue_type: str,
        message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBMISSION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Submission rejected on field '{field}'",
            details={
                "field": field,
                "issue_type": issue_type,
                "message": message,
            },
        )

    @staticmethod
    def transaction_saved(
        transaction_id: str,
        member: str,
        transaction_type: str,
        amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Pending {transaction_type} saved: {member} - Rp {amount}",
            details={
                "member": member,
                "type": transaction_type,
                "amount": amount,
            },
            actor=member,
        )

    @staticmethod
    def save_failed(
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="transaction",
            correlation_id=correlation_id,
            description="Failed to persist submission",
            error_message=error_message,
        )

    @staticmethod
    def transaction_decided(
        transaction_id: str,
        decision: str,
        admin: str,
        correlation_id: UUID
    ) -> AuditEvent:
        event_type = (
            AuditEventType.TRANSACTION_APPROVED
            if decision == "approved"
            else AuditEventType.TRANSACTION_REJECTED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction {decision} by {admin}",
            details={
                "decision": decision,
            },
            actor=admin,
            is_user_action=True,
        )

    @staticmethod
    def transition_refused(
        transaction_id: str,
        current: str,
        requested: str,
        reason: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSITION_REFUSED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Refused transition {current} -> {requested}",
            details={
                "current": current,
                "requested": requested,
                "reason": reason,
            },
        )

    @staticmethod
    def rejected_purged(
        count: int,
        retention_days: int
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REJECTED_PURGED,
            entity_type="transaction",
            description=f"Purged {count} rejected records older than {retention_days} days",
            details={
                "count": count,
                "retention_days": retention_days,
            },
        )

    @staticmethod
    def master_config_bootstrapped(
        defaults: dict
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MASTER_CONFIG_BOOTSTRAPPED,
            entity_type="master_config",
            entity_id="master",
            description="Master configuration created with defaults",
            details=defaults,
        )

    @staticmethod
    def master_config_updated(
        field: str,
        action: str,
        value: str,
        admin: str
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MASTER_CONFIG_UPDATED,
            entity_type="master_config",
            entity_id="master",
            description=f"Master configuration {field}: {action} {value}",
            details={
                "field": field,
                "action": action,
                "value": value,
            },
            actor=admin,
            is_user_action=True,
        )

    @staticmethod
    def admin_login(
        username: str,
        succeeded: bool
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.ADMIN_LOGIN_SUCCEEDED
                if succeeded
                else AuditEventType.ADMIN_LOGIN_FAILED
            ),
            severity=AuditSeverity.INFO if succeeded else AuditSeverity.WARNING,
            entity_type="session",
            description=f"Admin login {'succeeded' if succeeded else 'failed'} for '{username}'",
            actor=username,
            is_user_action=True,
        )

    @staticmethod
    def report_event(
        action: str,
        filter_description: str,
        row_count: int,
        balance: str
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.REPORT_SHARED
                if action == "shared"
                else AuditEventType.REPORT_EXPORTED
            ),
            entity_type="report",
            description=f"Report {action}: {filter_description}",
            details={
                "row_count": row_count,
                "balance": balance,
            },
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
