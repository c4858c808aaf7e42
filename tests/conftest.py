"""
Shared fixtures for the ledger tests.

No test talks to Google Sheets; the in-memory store and fake worksheets
stand in for it.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from cashbook.audit import AuditLogger
from cashbook.auth import Role, Session
from cashbook.config import AppSettings
from cashbook.models import (
    MasterConfig,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from cashbook.services.storage import InMemoryAuditStorage, InMemoryDocumentStore


PROOF = "data:image/png;base64,iVBORw0KGgo="


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(request_timeout_seconds=1.0, notification_duration_seconds=4.0)


@pytest.fixture
def master() -> MasterConfig:
    return MasterConfig(
        categories=["Umum", "Pendidikan", "Kesehatan", "Rumah Tangga"],
        members=["Ayah", "Ibu"],
        min_transfer=Decimal("50000"),
    )


@pytest.fixture
def family_session() -> Session:
    return Session.for_role(Role.FAMILY)


@pytest.fixture
def admin_session() -> Session:
    return Session.for_role(Role.ADMIN, username="admin")


@pytest.fixture
def store(master) -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    asyncio.run(store.create_if_absent(master))
    return store


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def make_transaction():
    """Factory for valid records; override any field by keyword."""
    def factory(**overrides) -> Transaction:
        values = {
            "type": TransactionType.DEPOSIT,
            "amount": Decimal("50000"),
            "description": "Iuran bulanan",
            "category": "Umum",
            "member": "Ayah",
            "date": date(2024, 1, 15),
            "proof_image": PROOF,
            "status": TransactionStatus.APPROVED,
        }
        values.update(overrides)
        values.setdefault("submitted_by", values["member"])
        return Transaction(**values)

    return factory
