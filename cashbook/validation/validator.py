"""
Submission Validation

DESIGN DECISION: Validation is a strict, ordered gate in front of the store.

CHECK ORDER (first failure wins):
1. Member is one of the configured family members
2. Amount is present and greater than zero
3. Category is one of the configured categories
4. Description is long enough
5. A proof image is attached
6. Deposits reach the configured minimum

WHY SHORT-CIRCUIT:
The form shows one banner at a time. Reporting the first problem in a
fixed order gives the family member one clear thing to fix, and the same
draft always produces the same message.

IMPORTANT: Validation NEVER silently fixes issues, and NEVER touches the
store. The caller only contacts the store after a draft is accepted.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from cashbook.config import AppSettings, get_settings
from cashbook.models.master import MasterConfig
from cashbook.models.transaction import (
    Transaction,
    TransactionDraft,
    TransactionStatus,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)


class SubmissionValidationError(Exception):
    """A draft was refused. User-correctable; nothing was persisted."""

    def __init__(self, issue: ValidationIssue):
        super().__init__(issue.message)
        self.issue = issue


def format_rupiah(amount: Decimal) -> str:
    """Rp 50,000 style formatting."""
    amount = Decimal(amount)
    if amount == amount.to_integral_value():
        return f"Rp {amount:,.0f}"
    return f"Rp {amount:,.2f}"


def trim_amount(amount: Decimal) -> Decimal:
    """Drop trailing zeros: `50000.000` becomes `50000`, `12.50` becomes `12.5`."""
    normalized = amount.normalize()
    if normalized == normalized.to_integral_value():
        return normalized.quantize(Decimal(1))
    return normalized


class SubmissionValidator:
    """
    Validates a submission draft against the current master configuration.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _first_issue(
        self,
        draft: TransactionDraft,
        master: MasterConfig,
    ) -> Optional[ValidationIssue]:
        """Run the checks in order and return the first problem found."""
        if not draft.member or draft.member not in master.members:
            return ValidationIssue(
                field="member",
                issue_type="missing" if not draft.member else "not_allowed",
                message="Please choose a family member",
                suggested_fix="Pick your name from the member list",
            )

        if draft.amount is None or draft.amount <= 0:
            return ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
            )
        if trim_amount(draft.amount).as_tuple().exponent < -2:
            return ValidationIssue(
                field="amount",
                issue_type="invalid_format",
                message="Amount can have at most two decimal places",
            )

        if not draft.category or draft.category not in master.categories:
            return ValidationIssue(
                field="category",
                issue_type="missing" if not draft.category else "not_allowed",
                message="Please choose a category",
                suggested_fix="Pick a category from the list",
            )

        min_length = self._settings.min_description_length
        if len(draft.description) < min_length:
            return ValidationIssue(
                field="description",
                issue_type="too_short",
                message=f"Description is too short (min. {min_length} characters)",
            )
        if len(draft.description) > 500:
            return ValidationIssue(
                field="description",
                issue_type="too_long",
                message="Description is too long (max. 500 characters)",
            )

        if not draft.proof_image:
            return ValidationIssue(
                field="proof_image",
                issue_type="missing",
                message="A proof photo or screenshot is required",
                suggested_fix="Attach a photo of the receipt or transfer",
            )

        if draft.type == TransactionType.DEPOSIT and draft.amount < master.min_transfer:
            return ValidationIssue(
                field="amount",
                issue_type="below_minimum",
                message=f"The minimum deposit is {format_rupiah(master.min_transfer)}",
                suggested_fix="Combine smaller deposits into one transfer",
            )

        return None

    def validate(
        self,
        draft: TransactionDraft,
        master: MasterConfig,
    ) -> ValidationResult:
        """
        Validate a draft.

        Args:
            draft: What the family member submitted
            master: The master configuration at submission time

        Returns:
            ValidationResult carrying either a pending Transaction ready to
            be stored, or the single issue that stopped it
        """
        issue = self._first_issue(draft, master)
        if issue is not None:
            return ValidationResult(accepted=False, issue=issue)

        transaction = Transaction(
            type=draft.type,
            amount=trim_amount(draft.amount),
            description=draft.description,
            category=draft.category,
            member=draft.member,
            submitted_by=draft.member,
            date=draft.date,
            created_at=datetime.now(timezone.utc),
            proof_image=draft.proof_image,
            status=TransactionStatus.PENDING,
        )
        return ValidationResult(accepted=True, transaction=transaction)

    def validate_or_raise(
        self,
        draft: TransactionDraft,
        master: MasterConfig,
    ) -> Transaction:
        """Like validate(), but raise SubmissionValidationError on rejection."""
        result = self.validate(draft, master)
        if not result.accepted:
            raise SubmissionValidationError(result.issue)
        return result.transaction

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        The banner text for a validation result.
        """
        if result.accepted:
            return "✅ Submission sent! It will count once the admin approves it."

        lines = [f"❌ {result.issue.message}"]
        if result.issue.suggested_fix:
            lines.append(f"💡 {result.issue.suggested_fix}")
        return "\n".join(lines)
