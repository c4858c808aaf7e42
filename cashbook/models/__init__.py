"""
Data Models Package

This package contains all Pydantic models used in the Family Cash Ledger.
All data flowing through the system must conform to these schemas.
"""

from cashbook.models.transaction import (
    LedgerStats,
    Notice,
    NoticeLevel,
    ProofImage,
    ReportFilter,
    Transaction,
    TransactionDraft,
    TransactionStatus,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
from cashbook.models.master import (
    MasterConfig,
    MasterScalarField,
    MasterSetField,
)
from cashbook.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "LedgerStats",
    "Notice",
    "NoticeLevel",
    "ProofImage",
    "ReportFilter",
    "Transaction",
    "TransactionDraft",
    "TransactionStatus",
    "TransactionType",
    "ValidationIssue",
    "ValidationResult",
    # Master configuration
    "MasterConfig",
    "MasterScalarField",
    "MasterSetField",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
