"""
Streamlit Frontend for the Family Cash Ledger

The screen the whole family shares: members submit deposits and expenses
with a proof photo, everyone sees the approved balance and reports, and
the administrator reviews pending submissions and edits the master data.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Nothing counts until the administrator approves it
3. Clear error messages in simple language
4. Every notification disappears after the same fixed time
5. No hidden actions
"""

import asyncio
import time
from datetime import date
from typing import Optional

import streamlit as st

from cashbook.audit import create_correlation_id
from cashbook.auth import AuthenticationError, Session
from cashbook.config import validate_all_settings
from cashbook.models import (
    MasterScalarField,
    MasterSetField,
    Notice,
    NoticeLevel,
    ReportFilter,
    Transaction,
    TransactionDraft,
    TransactionStatus,
    TransactionType,
)
from cashbook.orchestrator import AppContext, create_app_context
from cashbook.reports import report_csv, report_dataframe
from cashbook.services.image import ProofImageError, decode_data_uri
from cashbook.validation import format_rupiah


# Page configuration
st.set_page_config(
    page_title="E-Manekat",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .balance-box {
        padding: 20px;
        background-color: #d4edda;
        border-radius: 10px;
        border-left: 5px solid #28a745;
        margin: 10px 0;
    }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)

REFRESH_INTERVAL_SECONDS = 30

STATUS_BADGES = {
    TransactionStatus.PENDING: "⏳ Pending",
    TransactionStatus.APPROVED: "✅ Sah",
    TransactionStatus.REJECTED: "❌ Batal",
}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_context() -> AppContext:
    """Get or create the application context (cached)."""
    try:
        context = create_app_context(use_storage=True)
        run_async(context.start())
    except Exception as e:
        st.error(f"Failed to connect to the shared ledger, running locally: {e}")
        context = create_app_context(use_storage=False)
        run_async(context.start())
    return context


# =============================================================================
# NOTIFICATIONS
# =============================================================================

def notify(notice: Notice) -> None:
    st.session_state.notice = notice
    st.session_state.notice_expires = time.time() + notice.duration_seconds


def notify_success(context: AppContext, message: str) -> None:
    notify(Notice(
        message=message,
        level=NoticeLevel.SUCCESS,
        duration_seconds=context.settings.app.notification_duration_seconds,
    ))


def render_notice() -> None:
    notice: Optional[Notice] = st.session_state.get("notice")
    if notice is None:
        return
    if time.time() > st.session_state.get("notice_expires", 0):
        st.session_state.notice = None
        return
    if notice.level == NoticeLevel.SUCCESS:
        st.success(notice.message)
    elif notice.level == NoticeLevel.INFO:
        st.info(notice.message)
    else:
        st.error(notice.message)


# =============================================================================
# SESSION
# =============================================================================

def current_session(context: AppContext) -> Session:
    if "session" not in st.session_state:
        st.session_state.session = context.auth.family_session()
    return st.session_state.session


def render_login(context: AppContext) -> None:
    session = current_session(context)

    if session.is_admin:
        st.sidebar.success(f"👤 Admin: {session.username}")
        if st.sidebar.button("Log out"):
            st.session_state.session = context.auth.family_session()
            st.rerun()
        return

    with st.sidebar.expander("🔐 Admin login"):
        username = st.text_input("Username", key="login_username")
        password = st.text_input("Password", type="password", key="login_password")
        if st.button("Log in"):
            try:
                st.session_state.session = run_async(
                    context.auth.login_admin(username, password)
                )
                notify_success(context, "Welcome back!")
                st.rerun()
            except AuthenticationError as e:
                notify(run_async(context.handle_error(e)))
                st.rerun()


def refresh_if_stale(context: AppContext) -> None:
    """Pick up changes made on other devices."""
    if not context.is_shared:
        return
    last = st.session_state.get("last_refresh", 0)
    if time.time() - last > REFRESH_INTERVAL_SECONDS:
        try:
            run_async(context.store.refresh())
        except Exception as e:
            notify(run_async(context.handle_error(e)))
        st.session_state.last_refresh = time.time()


# =============================================================================
# MAIN
# =============================================================================

def main():
    """Main application entry point."""
    context = get_context()
    refresh_if_stale(context)

    title = context.settings.app.app_title
    st.sidebar.title(f"💰 {title}")
    if not context.is_shared:
        st.sidebar.warning("Local mode: data is not shared")
    st.sidebar.markdown("---")

    render_login(context)
    session = current_session(context)

    pages = ["🏠 Dashboard", "📤 Submit", "📊 Reports", "📖 Guide"]
    if session.is_admin:
        pages += ["✅ Review", "🗂️ Master Data", "⚙️ Settings"]

    page = st.sidebar.radio("Navigate to:", pages, index=0)

    if st.sidebar.button("🔄 Refresh"):
        st.session_state.last_refresh = 0
        st.rerun()

    render_notice()

    # Route to appropriate page
    if page == "🏠 Dashboard":
        render_dashboard(context)
    elif page == "📤 Submit":
        render_submit_page(context, session)
    elif page == "📊 Reports":
        render_reports_page(context, session)
    elif page == "✅ Review":
        render_review_page(context, session)
    elif page == "🗂️ Master Data":
        render_master_page(context, session)
    elif page == "📖 Guide":
        render_guide_page()
    elif page == "⚙️ Settings":
        render_settings_page()


def render_dashboard(context: AppContext):
    """Approved balance and the full history."""
    st.title("🏠 Family Cash")
    stats = context.ledger.stats

    st.markdown(f"""
    <div class="balance-box">
        <p>Balance</p>
        <p class="big-number">{format_rupiah(stats.balance)}</p>
    </div>
    """, unsafe_allow_html=True)

    col1, col2 = st.columns(2)
    col1.metric("Total deposits", format_rupiah(stats.deposits))
    col2.metric("Total expenses", format_rupiah(stats.expenses))

    st.markdown("---")
    st.subheader("History")
    history = context.ledger.history()
    if not history:
        st.info("No transactions yet. Use the 'Submit' page to add the first one.")
        return
    for record in history:
        render_record_line(record)


def render_record_line(record: Transaction) -> None:
    sign = "+" if record.type == TransactionType.DEPOSIT else "-"
    st.markdown(
        f"**{record.date.strftime('%d %b %Y')}** · {record.member} · {record.category} · "
        f"{record.description} · **{sign}{format_rupiah(record.amount)}** · "
        f"{STATUS_BADGES[record.status]}"
    )


def render_submit_page(context: AppContext, session: Session):
    """Deposit / expense submission form."""
    st.title("📤 Submit a Transaction")
    master = context.ledger.master
    if master is None:
        st.warning("The master data is still loading. Please refresh.")
        return

    st.markdown(
        f"Deposits must be at least **{format_rupiah(master.min_transfer)}**. "
        "Your submission counts once the admin approves it."
    )

    with st.form("submission", clear_on_submit=True):
        kind = st.radio(
            "Type",
            options=list(TransactionType),
            format_func=lambda t: "Deposit" if t == TransactionType.DEPOSIT else "Expense",
            horizontal=True,
        )
        col1, col2 = st.columns(2)
        with col1:
            member = st.selectbox("Member *", options=[""] + list(master.members))
            category = st.selectbox("Category *", options=[""] + list(master.categories))
            amount = st.text_input("Amount (Rp) *", placeholder="50000")
        with col2:
            tx_date = st.date_input("Date *", value=date.today())
            description = st.text_area("Description *", placeholder="What is it for?")

        proof = st.file_uploader(
            "Proof photo *",
            type=context.settings.app.supported_formats_list,
            help="Photo of the transfer receipt or the purchase",
        )
        submitted = st.form_submit_button("📨 Send", type="primary")

    if not submitted:
        return

    correlation_id = create_correlation_id()
    proof_uri = None
    if proof is not None:
        image_bytes = proof.getvalue()
        try:
            encoded = context.image_service.encode(image_bytes, proof.name, proof.type)
            proof_uri = encoded.data_uri
            run_async(context.audit_logger.log_proof_image(
                proof.name, accepted=True, size_bytes=encoded.size_bytes,
                correlation_id=correlation_id,
            ))
        except ProofImageError as e:
            run_async(context.audit_logger.log_proof_image(
                proof.name, accepted=False, reason=str(e), correlation_id=correlation_id,
            ))
            notify(run_async(context.handle_error(e)))
            st.rerun()

    with st.spinner("Sending..."):
        try:
            draft = TransactionDraft(
                type=kind,
                amount=amount,
                description=description,
                category=category,
                member=member,
                date=tx_date,
                proof_image=proof_uri,
            )
            run_async(context.submissions.submit(session, draft, correlation_id))
            notify_success(context, "✅ Submission sent! It will count once the admin approves it.")
        except Exception as e:
            notify(run_async(context.handle_error(e)))
    st.rerun()


def render_reports_page(context: AppContext, session: Session):
    """Filtered report with PDF export and share link."""
    st.title("📊 Reports")
    master = context.ledger.master

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        start = st.date_input("From", value=None)
    with col2:
        end = st.date_input("To", value=None)
    with col3:
        member = st.selectbox(
            "Member",
            options=[None] + (list(master.members) if master else []),
            format_func=lambda m: "All members" if m is None else m,
        )
    with col4:
        kind = st.selectbox(
            "Type",
            options=[None] + list(TransactionType),
            format_func=lambda t: "All types" if t is None else t.value.title(),
        )

    report = context.reports.build(
        session,
        ReportFilter(start_date=start, end_date=end, member=member, type=kind),
    )

    col1, col2, col3 = st.columns(3)
    col1.metric("Deposits", format_rupiah(report.stats.deposits))
    col2.metric("Expenses", format_rupiah(report.stats.expenses))
    col3.metric("Balance", format_rupiah(report.stats.balance))

    if report.rows:
        st.dataframe(report_dataframe(report), use_container_width=True, hide_index=True)
    else:
        st.info("No approved transactions match this filter.")

    st.markdown("---")
    col1, col2, col3 = st.columns(3)
    with col1:
        if st.button("🖨️ Prepare PDF"):
            st.session_state.report_pdf = run_async(
                context.reports.export_pdf(session, report)
            )
        if st.session_state.get("report_pdf"):
            st.download_button(
                "⬇️ Download PDF",
                data=st.session_state.report_pdf,
                file_name="laporan-kas.pdf",
                mime="application/pdf",
            )
    with col2:
        st.download_button(
            "⬇️ Download CSV",
            data=report_csv(report),
            file_name="laporan-kas.csv",
            mime="text/csv",
        )
    with col3:
        if st.button("📲 Share via WhatsApp"):
            st.session_state.share_url = run_async(
                context.reports.share_url(session, report)
            )
        if st.session_state.get("share_url"):
            st.link_button("Open WhatsApp", st.session_state.share_url)


def render_proof(record: Transaction) -> None:
    if record.proof_image.startswith("data:"):
        try:
            st.image(decode_data_uri(record.proof_image), width=400)
        except ProofImageError as e:
            st.warning(str(e))
    else:
        st.image(record.proof_image, width=400)


def render_review_page(context: AppContext, session: Session):
    """Administrator queue of pending submissions."""
    st.title("✅ Review Submissions")
    pending = context.ledger.pending()
    if not pending:
        st.info("Nothing waiting for review.")
        return

    for record in pending:
        with st.container(border=True):
            render_record_line(record)
            with st.expander("📷 View proof"):
                render_proof(record)

            col1, col2 = st.columns(2)
            with col1:
                if st.button("✅ Approve", key=f"approve-{record.id}", type="primary"):
                    decide(context, session, record, TransactionStatus.APPROVED)
            with col2:
                if st.button("❌ Reject", key=f"reject-{record.id}"):
                    decide(context, session, record, TransactionStatus.REJECTED)


def decide(
    context: AppContext,
    session: Session,
    record: Transaction,
    decision: TransactionStatus,
) -> None:
    try:
        run_async(context.approvals.decide(session, record.id, decision))
        verb = "approved" if decision == TransactionStatus.APPROVED else "rejected"
        notify_success(context, f"Transaction {verb}.")
    except Exception as e:
        notify(run_async(context.handle_error(e)))
        st.session_state.last_refresh = 0
    st.rerun()


def render_master_page(context: AppContext, session: Session):
    """Categories, members and the minimum deposit."""
    st.title("🗂️ Master Data")
    master = context.ledger.master
    if master is None:
        st.warning("The master data is still loading. Please refresh.")
        return

    col1, col2 = st.columns(2)
    for column, field, label, singular in (
        (col1, MasterSetField.CATEGORIES, "Categories", "category"),
        (col2, MasterSetField.MEMBERS, "Members", "member"),
    ):
        with column:
            st.subheader(label)
            for value in master.values(field):
                left, right = st.columns([4, 1])
                left.markdown(value)
                if right.button("🗑️", key=f"remove-{field.value}-{value}"):
                    run_master_change(
                        context,
                        context.master_config.remove_from_set(session, field, value),
                        f"Removed {value}",
                    )
            new_value = st.text_input(f"New {singular}", key=f"new-{field.value}")
            if st.button("➕ Add", key=f"add-{field.value}"):
                run_master_change(
                    context,
                    context.master_config.add_to_set(session, field, new_value),
                    f"Added {new_value.strip()}",
                )

    st.markdown("---")
    st.subheader("Minimum deposit")
    new_min = st.text_input("Amount (Rp)", value=str(master.min_transfer))
    if st.button("💾 Save minimum"):
        run_master_change(
            context,
            context.master_config.set_scalar(session, MasterScalarField.MIN_TRANSFER, new_min),
            "Minimum deposit updated",
        )


def run_master_change(context: AppContext, coro, message: str) -> None:
    try:
        run_async(coro)
        notify_success(context, message)
    except Exception as e:
        notify(run_async(context.handle_error(e)))
    st.rerun()


GUIDE_SECTIONS = [
    ("🛡️ 1. First setup (administrator)", [
        "Log in as administrator from the sidebar with the admin username and password.",
        "Add every family member who will make deposits under Master Data.",
        "Set the minimum deposit, the lowest amount a single deposit may have.",
        "Add the expense categories the family uses (for example Sembako).",
    ]),
    ("👤 2. Submitting a transaction (family member)", [
        "Choose the type: Deposit to put money in, Expense to take money out.",
        "Enter the amount, pick your name and a category, and describe it.",
        "Attach a photo of the receipt or a screenshot of the transfer. It is required.",
        "Send it. It stays Pending until the administrator checks it.",
    ]),
    ("✅ 3. Review and approval (administrator)", [
        "Open Review to see every pending submission.",
        "Check that the proof photo matches the amount entered.",
        "Approve to add it to the family balance, or reject to mark it Batal.",
    ]),
    ("📊 4. Reports and safety", [
        "Filter the report by date, member or type.",
        "Download it as PDF or CSV, or share the balance to the family WhatsApp group.",
        "Log out when you use a shared device.",
    ]),
]


def render_guide_page():
    """How the family uses the ledger, step by step."""
    st.title("📖 User Guide")
    for title, steps in GUIDE_SECTIONS:
        st.subheader(title)
        st.markdown("\n".join(f"- {step}" for step in steps))


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    sections = [
        ("Google Sheets (Shared storage)", "google_sheets"),
        ("Administrator account", "admin"),
        ("Master data defaults", "master_defaults"),
        ("Application", "app"),
    ]

    for name, key in sections:
        if status.get(key, False):
            st.success(f"✅ {name} - OK")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your settings. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
