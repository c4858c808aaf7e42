"""
Core Data Models for Family Cash Ledger

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Keep money exact (Decimal, never float)
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: A submission (TransactionDraft) and a stored record
(Transaction) are different models. The draft is deliberately loose so that
the SubmissionValidator, not the model constructor, decides what is
acceptable and in which order problems are reported. The stored record is
strict and frozen: after submission only its status may change, and that
happens through `with_status`, which copies.
"""

import datetime as dt
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money relative to the family cash box."""
    DEPOSIT = "deposit"
    EXPENSE = "expense"


class TransactionStatus(str, Enum):
    """
    Approval status of a record.

    CRITICAL: Only APPROVED records count toward any balance or report.
    APPROVED and REJECTED are terminal.
    """
    PENDING = "pending"    # Submitted, awaiting the administrator
    APPROVED = "approved"  # Counted in balances
    REJECTED = "rejected"  # Kept for history, never counted


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


# =============================================================================
# SUBMISSION
# =============================================================================

class TransactionDraft(BaseModel):
    """
    What a family member fills in on the submission form.

    Every field may be missing or wrong here; nothing is trusted until it
    passes the SubmissionValidator.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    type: TransactionType = TransactionType.DEPOSIT
    amount: Optional[Decimal] = None
    description: str = ""
    category: str = ""
    member: str = ""
    date: dt.date = Field(default_factory=dt.date.today)
    proof_image: Optional[str] = Field(
        default=None,
        description="Encoded proof image (data URI) or a URL reference"
    )

    @field_validator('amount', mode='before')
    @classmethod
    def blank_amount_is_missing(cls, v: Any) -> Any:
        """
        Form inputs send '' or garbage for an empty amount; treat as missing.
        So are NaN and Infinity, which parse as Decimals but are not amounts.
        """
        if v is None or isinstance(v, int):
            return v
        if isinstance(v, (float, Decimal)):
            text = str(v)
        else:
            text = str(v).strip().replace(",", "")
        if not text:
            return None
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return None
        return amount if amount.is_finite() else None


# =============================================================================
# CORE TRANSACTION MODEL
# =============================================================================

class Transaction(BaseModel):
    """
    A submitted deposit or expense.

    CRITICAL: amount, description and proof are immutable after
    submission. The only field that ever changes is `status`.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    # Identity (assigned by the store on creation)
    id: Optional[str] = Field(
        default=None,
        description="Opaque identifier assigned by the store"
    )

    type: TransactionType
    amount: Annotated[
        Decimal,
        Field(gt=0, decimal_places=2, description="Amount in rupiah")
    ]
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
    )
    category: str = Field(..., min_length=1, max_length=100)
    member: str = Field(..., min_length=1, max_length=100)
    submitted_by: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Member who submitted the record (same as member)"
    )
    date: dt.date = Field(
        ...,
        description="Date chosen by the submitter"
    )
    created_at: dt.datetime = Field(
        default_factory=_utcnow,
        description="When the record was submitted (UTC)"
    )
    proof_image: str = Field(
        ...,
        min_length=1,
        description="Proof image as data URI or URL"
    )
    status: TransactionStatus = Field(
        default=TransactionStatus.PENDING,
    )

    @property
    def is_counted(self) -> bool:
        """Does this record participate in balances?"""
        return self.status == TransactionStatus.APPROVED

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.type == TransactionType.DEPOSIT else -self.amount

    def with_status(self, status: TransactionStatus) -> "Transaction":
        """Copy of this record with only the status changed."""
        return self.model_copy(update={"status": status})

    def with_id(self, transaction_id: str) -> "Transaction":
        return self.model_copy(update={"id": transaction_id})


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class LedgerStats(BaseModel):
    """
    Totals over a set of approved records.

    Never persisted; recomputed from the current snapshot.
    """
    model_config = ConfigDict(frozen=True)

    deposits: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")

    @computed_field
    @property
    def balance(self) -> Decimal:
        return self.deposits - self.expenses


class ReportFilter(BaseModel):
    """Report criteria. Unset parts match everything."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    member: Optional[str] = None
    type: Optional[TransactionType] = None

    @field_validator('start_date', 'end_date', 'member', 'type', mode='before')
    @classmethod
    def blank_is_unset(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def is_empty(self) -> bool:
        return (
            self.start_date is None
            and self.end_date is None
            and self.member is None
            and self.type is None
        )


# =============================================================================
# PROOF IMAGE
# =============================================================================

class ProofImage(BaseModel):
    """An accepted proof image, encoded for inline attachment."""

    filename: str
    mime_type: str
    size_bytes: int = Field(ge=0)
    data_uri: str = Field(
        ...,
        description="data:<mime>;base64,<payload>"
    )
    encoded_at: dt.datetime = Field(default_factory=_utcnow)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """The single problem that stopped a submission."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'not_allowed', 'below_minimum')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Outcome of validating one draft.

    Exactly one of `transaction` (accepted) or `issue` (rejected) is set.
    """

    accepted: bool
    transaction: Optional[Transaction] = None
    issue: Optional[ValidationIssue] = None
    validated_at: dt.datetime = Field(default_factory=_utcnow)


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class Notice(BaseModel):
    """A dismissible banner shown to the user for a fixed duration."""

    message: str
    level: NoticeLevel = NoticeLevel.ERROR
    duration_seconds: float = Field(default=4.0, gt=0)
