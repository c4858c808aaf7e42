"""
Transaction Aggregation

Pure functions that turn the raw record snapshot into balances, report
subsets and display lists. They are re-run in full on every snapshot;
at family scale there is nothing worth caching.

GUARANTEES:
- Only APPROVED records ever contribute to a total
- balance == deposits - expenses, always
- Nothing here raises: a malformed amount counts as zero and a malformed
  date never matches a bounded date filter (validation upstream is the
  real gate, this is the last line)
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Sequence

from cashbook.models.transaction import (
    LedgerStats,
    ReportFilter,
    Transaction,
    TransactionStatus,
    TransactionType,
)


def safe_amount(record: Transaction) -> Decimal:
    """The record's amount, or zero if it is missing or not a finite number."""
    try:
        amount = Decimal(str(getattr(record, "amount", 0)))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")
    return amount if amount.is_finite() else Decimal("0")


def record_date(record: Transaction) -> Optional[date]:
    """The record's calendar date, parsing ISO strings; None if unusable."""
    value = getattr(record, "date", None)
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            return None
    return None


def _is_approved(record: Transaction) -> bool:
    return getattr(record, "status", None) == TransactionStatus.APPROVED


def _totals(records: Iterable[Transaction]) -> LedgerStats:
    deposits = Decimal("0")
    expenses = Decimal("0")
    for record in records:
        kind = getattr(record, "type", None)
        if kind == TransactionType.DEPOSIT:
            deposits += safe_amount(record)
        elif kind == TransactionType.EXPENSE:
            expenses += safe_amount(record)
    return LedgerStats(deposits=deposits, expenses=expenses)


def global_stats(records: Iterable[Transaction]) -> LedgerStats:
    """Totals over every approved record."""
    return _totals(r for r in records if _is_approved(r))


def matches(record: Transaction, report_filter: ReportFilter) -> bool:
    """Report predicate: approved and inside every set filter bound."""
    if not _is_approved(record):
        return False

    if report_filter.start_date or report_filter.end_date:
        d = record_date(record)
        if d is None:
            return False
        if report_filter.start_date and d < report_filter.start_date:
            return False
        if report_filter.end_date and d > report_filter.end_date:
            return False

    if report_filter.member and getattr(record, "member", None) != report_filter.member:
        return False
    if report_filter.type and getattr(record, "type", None) != report_filter.type:
        return False
    return True


def _date_key(record: Transaction) -> tuple[bool, date]:
    # Unparseable dates sort after every real date when descending
    d = record_date(record)
    return (d is not None, d or date.min)


def sort_for_history(records: Iterable[Transaction]) -> list[Transaction]:
    """Newest date first; records on the same date keep insertion order."""
    return sorted(records, key=_date_key, reverse=True)


def filtered_transactions(
    records: Iterable[Transaction],
    report_filter: Optional[ReportFilter] = None,
) -> list[Transaction]:
    """Approved records matching the filter, newest date first."""
    report_filter = report_filter or ReportFilter()
    return sort_for_history(r for r in records if matches(r, report_filter))


def filtered_stats(filtered: Sequence[Transaction]) -> LedgerStats:
    """
    Totals over an already-filtered set.

    The report footer shows `balance`, the difference for the filter.
    """
    return _totals(filtered)


def review_queue(records: Iterable[Transaction]) -> list[Transaction]:
    """Pending records awaiting an administrator decision, newest first."""
    return sort_for_history(
        r for r in records
        if getattr(r, "status", None) == TransactionStatus.PENDING
    )
