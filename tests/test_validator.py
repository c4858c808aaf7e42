"""
Tests for submission validation.

The validator reports the FIRST problem in a fixed order and never
touches the store.
"""

import pytest
from decimal import Decimal

from cashbook.config import AppSettings
from cashbook.models import TransactionDraft, TransactionStatus, TransactionType
from cashbook.validation import (
    SubmissionValidationError,
    SubmissionValidator,
    format_rupiah,
)

PROOF = "data:image/png;base64,iVBORw0KGgo="


@pytest.fixture
def validator(app_settings) -> SubmissionValidator:
    return SubmissionValidator(app_settings)


def draft(**overrides) -> TransactionDraft:
    values = {
        "type": TransactionType.DEPOSIT,
        "amount": "50000",
        "description": "Iuran bulanan",
        "category": "Umum",
        "member": "Ayah",
        "proof_image": PROOF,
    }
    values.update(overrides)
    return TransactionDraft(**values)


class TestCheckOrder:
    """Each rule, and which one wins when several fail."""

    def test_missing_member(self, validator, master):
        result = validator.validate(draft(member=""), master)
        assert not result.accepted
        assert result.issue.field == "member"
        assert result.issue.issue_type == "missing"

    def test_unknown_member(self, validator, master):
        result = validator.validate(draft(member="Kakek"), master)
        assert result.issue.field == "member"
        assert result.issue.issue_type == "not_allowed"

    def test_member_is_checked_before_amount(self, validator, master):
        result = validator.validate(draft(member="", amount=""), master)
        assert result.issue.field == "member"

    @pytest.mark.parametrize("amount", ["", "0", "-5000", "abc", "NaN", "Infinity"])
    def test_amount_must_be_positive(self, validator, master, amount):
        result = validator.validate(draft(amount=amount), master)
        assert result.issue.field == "amount"
        assert result.issue.issue_type == "invalid_value"

    def test_amount_with_three_decimals(self, validator, master):
        result = validator.validate(draft(amount="50000.005"), master)
        assert result.issue.field == "amount"
        assert result.issue.issue_type == "invalid_format"

    def test_unknown_category(self, validator, master):
        result = validator.validate(draft(category="Hiburan"), master)
        assert result.issue.field == "category"
        assert result.issue.issue_type == "not_allowed"

    def test_amount_is_checked_before_category(self, validator, master):
        result = validator.validate(draft(amount="0", category=""), master)
        assert result.issue.field == "amount"

    def test_short_description_after_trimming(self, validator, master):
        """Whitespace doesn't count toward the minimum length."""
        result = validator.validate(draft(description="   abc    "), master)
        assert result.issue.field == "description"
        assert result.issue.issue_type == "too_short"

    def test_description_at_minimum_length(self, validator, master):
        assert validator.validate(draft(description="Buku!"), master).accepted

    def test_missing_proof(self, validator, master):
        result = validator.validate(draft(proof_image=None), master)
        assert result.issue.field == "proof_image"
        assert result.issue.issue_type == "missing"

    def test_deposit_below_minimum(self, validator, master):
        result = validator.validate(draft(amount="49999"), master)
        assert result.issue.field == "amount"
        assert result.issue.issue_type == "below_minimum"
        assert "Rp 50,000" in result.issue.message

    def test_proof_is_checked_before_minimum(self, validator, master):
        result = validator.validate(draft(amount="1000", proof_image=""), master)
        assert result.issue.field == "proof_image"

    def test_expense_has_no_minimum(self, validator, master):
        result = validator.validate(
            draft(type=TransactionType.EXPENSE, amount="1000"), master
        )
        assert result.accepted


class TestAcceptedSubmission:
    """What the validator builds for an accepted draft."""

    def test_deposit_at_exact_minimum(self, validator, master):
        assert validator.validate(draft(amount="50000"), master).accepted

    @pytest.mark.parametrize("amount, stored", [
        ("50000.000", "50000"),
        ("60000.500", "60000.5"),
    ])
    def test_trailing_zeros_are_not_extra_decimals(self, validator, master, amount, stored):
        result = validator.validate(draft(amount=amount), master)
        assert result.accepted
        assert str(result.transaction.amount) == stored

    def test_accepted_record_is_pending_without_id(self, validator, master):
        result = validator.validate(draft(), master)
        tx = result.transaction

        assert result.issue is None
        assert tx.id is None
        assert tx.status == TransactionStatus.PENDING
        assert tx.submitted_by == tx.member == "Ayah"
        assert tx.amount == Decimal("50000")
        assert tx.created_at.tzinfo is not None

    def test_new_minimum_applies_to_next_submission(self, validator, master):
        raised = master.with_min_transfer(Decimal("75000"))
        assert validator.validate(draft(amount="60000"), master).accepted
        assert not validator.validate(draft(amount="60000"), raised).accepted

    def test_minimum_length_comes_from_settings(self, master):
        strict = SubmissionValidator(AppSettings(min_description_length=10))
        result = strict.validate(draft(description="Iuran"), master)
        assert result.issue.field == "description"


class TestErrorsAndMessages:

    def test_validate_or_raise_carries_the_issue(self, validator, master):
        with pytest.raises(SubmissionValidationError) as exc_info:
            validator.validate_or_raise(draft(member=""), master)
        assert exc_info.value.issue.field == "member"

    def test_user_friendly_summary(self, validator, master):
        rejected = validator.validate(draft(proof_image=None), master)
        summary = validator.get_user_friendly_summary(rejected)
        assert summary.startswith("❌ A proof photo")
        assert "💡" in summary

        accepted = validator.validate(draft(), master)
        assert validator.get_user_friendly_summary(accepted).startswith("✅")

    @pytest.mark.parametrize("amount, expected", [
        (Decimal("50000"), "Rp 50,000"),
        (Decimal("1234.5"), "Rp 1,234.50"),
        (Decimal("0"), "Rp 0"),
    ])
    def test_format_rupiah(self, amount, expected):
        assert format_rupiah(amount) == expected
