"""
Main Orchestrator for the Family Cash Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Submission (draft → validate → save as pending)
2. Approval (admin decision → status write)
3. Reports (filter → table / PDF / share link)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is stored unless it passed validation
- Nothing counts toward a balance until the administrator approves it
- Every step is audited

All components are built once by `create_app_context()` and passed around
explicitly; there are no module-level clients.
"""

from typing import Optional
from uuid import UUID

import structlog

from cashbook.audit import AuditLogger, create_correlation_id
from cashbook.auth import (
    AuthenticationError,
    AuthService,
    Capability,
    LocalPolicyVerifier,
    PermissionDeniedError,
    Session,
)
from cashbook.config import AppSettings, Settings, get_settings
from cashbook.ledger import (
    ApprovalService,
    InvalidTransitionError,
    LedgerState,
    MasterConfigError,
    MasterConfigManager,
)
from cashbook.models.transaction import (
    Notice,
    NoticeLevel,
    ReportFilter,
    Transaction,
    TransactionDraft,
)
from cashbook.reports import (
    LedgerReport,
    build_report,
    build_share_message,
    describe_filter,
    render_report_pdf,
    whatsapp_share_url,
)
from cashbook.services.image import ProofImageError, ProofImageService
from cashbook.services.storage import (
    ConflictError,
    DocumentStoreInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryAuditStorage,
    InMemoryDocumentStore,
    NotFoundError,
    PersistenceError,
    with_timeout,
)
from cashbook.validation import SubmissionValidationError, SubmissionValidator


logger = structlog.get_logger(__name__)

# Errors the user can act on from the notice alone
USER_ERRORS = (
    SubmissionValidationError,
    PermissionDeniedError,
    AuthenticationError,
    InvalidTransitionError,
    MasterConfigError,
    ProofImageError,
    ConflictError,
    NotFoundError,
)


class SubmissionFlow:
    """
    Orchestrates a family member's submission.

    Flow:
    1. Read the current master configuration
    2. Validate → the first problem stops everything, nothing is stored
    3. Save → one whole-record write, status pending

    A save that fails or times out is reported, never retried here.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        validator: Optional[SubmissionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().app
        self._validator = validator or SubmissionValidator(self._settings)
        self._audit_logger = audit_logger

    async def submit(
        self,
        session: Session,
        draft: TransactionDraft,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Validate and store a submission.

        Returns:
            The stored record with its id, status pending

        Raises:
            PermissionDeniedError: Session may not submit
            SubmissionValidationError: The draft was refused
            PersistenceError: The save failed or timed out
        """
        session.require(Capability.SUBMIT)
        correlation_id = correlation_id or create_correlation_id()
        timeout = self._settings.request_timeout_seconds

        if self._audit_logger:
            await self._audit_logger.log_submission_received(
                member=draft.member,
                transaction_type=draft.type.value,
                amount=draft.amount,
                correlation_id=correlation_id,
            )

        master = await with_timeout(
            self._store.get_master_config(), timeout, "Loading configuration"
        )
        if master is None:
            raise NotFoundError("Master configuration has not been created")

        result = self._validator.validate(draft, master)
        if not result.accepted:
            if self._audit_logger:
                await self._audit_logger.log_submission_rejected(
                    field=result.issue.field,
                    issue_type=result.issue.issue_type,
                    message=result.issue.message,
                    correlation_id=correlation_id,
                )
            raise SubmissionValidationError(result.issue)

        try:
            saved = await with_timeout(
                self._store.create_transaction(result.transaction),
                timeout,
                "Saving transaction",
            )
        except PersistenceError as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed(str(e), correlation_id)
            raise

        if self._audit_logger:
            await self._audit_logger.log_transaction_saved(
                transaction_id=saved.id,
                member=saved.member,
                transaction_type=saved.type.value,
                amount=saved.amount,
                correlation_id=correlation_id,
            )
        return saved


class ReportFlow:
    """Builds reports from the live ledger and audits exports and shares."""

    def __init__(
        self,
        ledger: LedgerState,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._ledger = ledger
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().app

    def build(
        self,
        session: Session,
        report_filter: Optional[ReportFilter] = None,
    ) -> LedgerReport:
        session.require(Capability.VIEW_REPORTS)
        return build_report(self._ledger.snapshot(), report_filter)

    async def export_pdf(self, session: Session, report: LedgerReport) -> bytes:
        session.require(Capability.VIEW_REPORTS)
        pdf_bytes = render_report_pdf(report, title=self._settings.app_title)
        await self._audit("exported", report)
        return pdf_bytes

    async def share_url(self, session: Session, report: LedgerReport) -> str:
        session.require(Capability.VIEW_REPORTS)
        url = whatsapp_share_url(build_share_message(report))
        await self._audit("shared", report)
        return url

    async def _audit(self, action: str, report: LedgerReport) -> None:
        if self._audit_logger:
            await self._audit_logger.log_report(
                action=action,
                filter_description=describe_filter(report.report_filter),
                row_count=report.row_count,
                balance=report.stats.balance,
            )


class AppContext:
    """Everything the UI needs, built once per process."""

    def __init__(
        self,
        settings: Settings,
        store: DocumentStoreInterface,
        audit_logger: AuditLogger,
        validator: SubmissionValidator,
        image_service: ProofImageService,
        auth: AuthService,
        ledger: LedgerState,
        submissions: SubmissionFlow,
        approvals: ApprovalService,
        master_config: MasterConfigManager,
        reports: ReportFlow,
        sheets_client: Optional[GoogleSheetsClient] = None,
        storage_error: Optional[str] = None,
    ):
        self.settings = settings
        self.store = store
        self.audit_logger = audit_logger
        self.validator = validator
        self.image_service = image_service
        self.auth = auth
        self.ledger = ledger
        self.submissions = submissions
        self.approvals = approvals
        self.master_config = master_config
        self.reports = reports
        self.sheets_client = sheets_client
        # Why the shared backend could not be used, if it was requested
        self.storage_error = storage_error

    @property
    def is_shared(self) -> bool:
        """True when backed by the shared spreadsheet, not local memory."""
        return self.sheets_client is not None

    async def start(self) -> None:
        """Create the configuration if needed and start listening."""
        if self.storage_error:
            await self.audit_logger.log_external_service_error(
                "google_sheets", self.storage_error
            )
        await self.master_config.bootstrap()
        await self.ledger.start()
        await self.approvals.purge_expired_rejections()

    async def handle_error(self, error: BaseException) -> Notice:
        """
        Record failures the user cannot fix, then build the notice.

        Errors in USER_ERRORS are the user's to correct and are already
        audited where they happen. Store failures are logged against the
        backend; anything else is a system error.
        """
        if isinstance(error, PersistenceError) and not isinstance(error, USER_ERRORS):
            service = "google_sheets" if self.is_shared else "local_store"
            await self.audit_logger.log_external_service_error(service, str(error))
        elif not isinstance(error, (PersistenceError, *USER_ERRORS)):
            await self.audit_logger.log_error(type(error).__name__, str(error))
        return to_notice(error, self.settings.app)


def create_app_context(
    use_storage: bool = True,
    settings: Optional[Settings] = None,
) -> AppContext:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use the shared Google Sheets backend.
                     Set to False (or leave Sheets unconfigured) to run on
                     the in-memory store.

    Returns:
        An AppContext; call `await context.start()` before use
    """
    settings = settings or get_settings()
    app_settings = settings.app

    sheets_client = None
    storage_error = None
    store: Optional[DocumentStoreInterface] = None
    audit_storage = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient(
                settings.google_sheets,
                timeout_seconds=app_settings.request_timeout_seconds,
            )
            sheets_client.get_spreadsheet()
            store = GoogleSheetsDocumentStore(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in local mode
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            storage_error = str(e)

    if store is None:
        store = InMemoryDocumentStore()
        audit_storage = InMemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage)
    validator = SubmissionValidator(app_settings)
    ledger = LedgerState(store)

    return AppContext(
        settings=settings,
        store=store,
        audit_logger=audit_logger,
        validator=validator,
        image_service=ProofImageService(app_settings),
        auth=AuthService(LocalPolicyVerifier(settings.admin), audit_logger),
        ledger=ledger,
        submissions=SubmissionFlow(store, validator, audit_logger, app_settings),
        approvals=ApprovalService(store, audit_logger, app_settings),
        master_config=MasterConfigManager(
            store, audit_logger, settings.master_defaults, app_settings
        ),
        reports=ReportFlow(ledger, audit_logger, app_settings),
        sheets_client=sheets_client,
        storage_error=storage_error,
    )


def to_notice(error: BaseException, settings: Optional[AppSettings] = None) -> Notice:
    """
    Turn any error into the banner shown to the user.

    Validation and configuration problems show their own message; storage
    failures show a generic retry notice so backend details never reach
    the screen.
    """
    settings = settings or get_settings().app
    duration = settings.notification_duration_seconds

    if isinstance(error, SubmissionValidationError):
        message = error.issue.message
    elif isinstance(error, PermissionDeniedError):
        message = "You do not have access to this action."
    elif isinstance(error, AuthenticationError):
        message = str(error)
    elif isinstance(error, InvalidTransitionError):
        message = str(error)
    elif isinstance(error, ConflictError):
        message = "Someone else already decided this transaction. The list has been refreshed."
    elif isinstance(error, NotFoundError):
        message = "That record no longer exists."
    elif isinstance(error, PersistenceError):
        message = "Could not reach the shared ledger. Please try again."
    elif isinstance(error, (MasterConfigError, ProofImageError)):
        message = str(error)
    else:
        logger.error("unexpected_error", error_type=type(error).__name__, error=str(error))
        message = "Something went wrong. Please try again."

    return Notice(message=message, level=NoticeLevel.ERROR, duration_seconds=duration)
