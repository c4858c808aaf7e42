"""
Approval State Machine

    pending ──► approved   (terminal)
        └─────► rejected   (terminal)

DESIGN DECISION: Decisions are final.
- Only the administrator (APPROVE capability) may decide.
- Repeating the decision a record already carries is a no-op.
- Any other move out of a terminal state is refused with
  InvalidTransitionError; a record can never flip between approved and
  rejected, and nothing ever goes back to pending.
- The write touches ONLY the status field. Amount, description and proof
  stay exactly as submitted.

CONCURRENCY: two administrators may decide the same record at once. With
the default `check_status` policy the status write is a compare-and-set on
`pending`; the second writer gets a ConflictError instead of silently
overwriting. `last_write_wins` skips the check.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
from uuid import UUID

from cashbook.audit import AuditLogger, create_correlation_id
from cashbook.auth import Capability, Session
from cashbook.config import AppSettings, get_settings
from cashbook.models.transaction import Transaction, TransactionStatus
from cashbook.services.storage import (
    DocumentStoreInterface,
    NotFoundError,
    with_timeout,
)


class InvalidTransitionError(Exception):
    """A status change the state machine doesn't allow."""

    def __init__(self, current: TransactionStatus, requested: TransactionStatus):
        super().__init__(
            f"Cannot change a {current.value} transaction to {requested.value}"
        )
        self.current = current
        self.requested = requested


class TransitionOutcome(str, Enum):
    CHANGED = "changed"
    UNCHANGED = "unchanged"  # Same decision repeated


ALLOWED_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset({
        TransactionStatus.APPROVED,
        TransactionStatus.REJECTED,
    }),
    TransactionStatus.APPROVED: frozenset(),
    TransactionStatus.REJECTED: frozenset(),
}

TERMINAL_STATES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


class ApprovalStateMachine:
    """Pure transition rules; no I/O."""

    @staticmethod
    def can_transition(current: TransactionStatus, target: TransactionStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[current]

    @staticmethod
    def is_terminal(status: TransactionStatus) -> bool:
        return status in TERMINAL_STATES

    def transition(
        self,
        current: TransactionStatus,
        target: TransactionStatus,
    ) -> TransitionOutcome:
        """
        Decide whether `current -> target` happens.

        Returns:
            CHANGED if the status must be written, UNCHANGED for a repeated
            terminal decision

        Raises:
            InvalidTransitionError: For every other move
        """
        current = TransactionStatus(current)
        target = TransactionStatus(target)
        if self.can_transition(current, target):
            return TransitionOutcome.CHANGED
        if self.is_terminal(current) and current == target:
            return TransitionOutcome.UNCHANGED
        raise InvalidTransitionError(current, target)

    def apply(self, transaction: Transaction, target: TransactionStatus) -> Transaction:
        """The record after the decision (the same object if nothing changes)."""
        if self.transition(transaction.status, target) == TransitionOutcome.UNCHANGED:
            return transaction
        return transaction.with_status(target)


class ApprovalService:
    """Applies administrator decisions to stored records."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        state_machine: Optional[ApprovalStateMachine] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().app
        self._machine = state_machine or ApprovalStateMachine()

    async def decide(
        self,
        session: Session,
        transaction_id: str,
        decision: TransactionStatus,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Approve or reject one record.

        Raises:
            PermissionDeniedError: Session may not approve
            NotFoundError: No such record
            InvalidTransitionError: Record already carries the other decision
            ConflictError: Another administrator decided first
            PersistenceError: The write failed or timed out
        """
        session.require(Capability.APPROVE)
        correlation_id = correlation_id or create_correlation_id()
        decision = TransactionStatus(decision)
        timeout = self._settings.request_timeout_seconds

        current = await with_timeout(
            self._store.get_transaction(transaction_id), timeout, "Loading transaction"
        )
        if current is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        try:
            outcome = self._machine.transition(current.status, decision)
        except InvalidTransitionError as e:
            if self._audit_logger:
                await self._audit_logger.log_transition_refused(
                    transaction_id=transaction_id,
                    current=current.status.value,
                    requested=decision.value,
                    reason=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if outcome == TransitionOutcome.UNCHANGED:
            return current

        expected = (
            current.status
            if self._settings.approval_conflict_policy == "check_status"
            else None
        )
        updated = await with_timeout(
            self._store.update_transaction_status(
                transaction_id, decision, expected_status=expected
            ),
            timeout,
            "Saving decision",
        )

        if self._audit_logger:
            await self._audit_logger.log_decision(
                transaction_id=transaction_id,
                decision=decision.value,
                admin=session.actor,
                correlation_id=correlation_id,
            )
        return updated

    async def approve(self, session: Session, transaction_id: str) -> Transaction:
        return await self.decide(session, transaction_id, TransactionStatus.APPROVED)

    async def reject(self, session: Session, transaction_id: str) -> Transaction:
        return await self.decide(session, transaction_id, TransactionStatus.REJECTED)

    async def purge_expired_rejections(self, now: Optional[datetime] = None) -> int:
        """
        Apply the rejected-record retention policy.

        With `rejected_retention_days` unset, rejected records are kept
        forever and this does nothing.
        """
        days = self._settings.rejected_retention_days
        if days is None:
            return 0
        now = now or datetime.now(timezone.utc)
        purged = await with_timeout(
            self._store.purge_rejected(now - timedelta(days=days)),
            self._settings.request_timeout_seconds,
            "Purging rejected transactions",
        )
        if purged and self._audit_logger:
            await self._audit_logger.log_rejected_purged(purged, days)
        return purged
