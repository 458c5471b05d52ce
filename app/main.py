"""
Streamlit Frontend for Family Ledger

This is the user interface family members use every day to record
spending and income and look at the month.

DESIGN PRINCIPLES:
1. Sign in with nothing but a family code and a name
2. Recording an entry takes one form and one button
3. Clear error messages in simple language
4. Visual feedback for all operations
5. Recurring entries post themselves; the user sees what was posted

Recurring rules are materialized once per session, right after sign-in.
The materializer is idempotent, so several family members signing in on
the same day never double-post.
"""

import asyncio
from datetime import date

import pandas as pd
import streamlit as st
from pydantic import ValidationError

from family_ledger.config import validate_all_settings
from family_ledger.models import (
    PaymentMethod,
    RecurringRuleCreate,
    TransactionCreate,
    TransactionKind,
    categories_for,
)
from family_ledger.orchestrator import (
    AppComponents,
    EntryNotFoundError,
    FamilyFullError,
    create_app_components,
)
from family_ledger.recurring import RecurringProcessingError
from family_ledger.services.storage import StorageError
from family_ledger.validation import EntryValidationError


# Page configuration
st.set_page_config(
    page_title="Family Ledger",
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
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)


KIND_LABELS = {
    TransactionKind.SPENDING: "지출",
    TransactionKind.INCOME: "수입",
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
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    return create_app_components()


def won(amount: int) -> str:
    return f"₩{amount:,}"


def show_error(e: Exception) -> None:
    """Turn flow exceptions into a message the family can act on."""
    if isinstance(e, EntryValidationError):
        st.error("입력을 확인해 주세요.")
        for issue in e.result.errors:
            st.markdown(f"- {issue.message}")
    elif isinstance(e, ValidationError):
        st.error("입력을 확인해 주세요.")
        for err in e.errors():
            st.markdown(f"- {'.'.join(str(p) for p in err['loc'])}: {err['msg']}")
    elif isinstance(e, FamilyFullError):
        st.error(f"이 가족은 이미 {e.capacity}명이 등록되어 있습니다.")
    elif isinstance(e, EntryNotFoundError):
        st.warning("이미 삭제된 항목입니다.")
    elif isinstance(e, StorageError):
        st.error(f"저장소 오류가 발생했습니다: {e}")
    else:
        st.error(f"Error: {e}")


def main():
    """Main application entry point."""
    components = get_components()

    if "user" not in st.session_state:
        render_login_page(components)
        return

    user = st.session_state["user"]

    # Sidebar navigation
    st.sidebar.title("💰 Family Ledger")
    st.sidebar.markdown(f"**{user['name']}** · 가족코드 `{user['family_code']}`")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["💸 지출 기록", "💵 수입 기록", "🔁 정기 거래", "📊 대시보드", "📜 내역", "⚙️ 설정"],
        index=0,
    )

    st.sidebar.markdown("---")
    if st.sidebar.button("로그아웃"):
        st.session_state.clear()
        st.rerun()

    if page == "💸 지출 기록":
        render_entry_page(components, TransactionKind.SPENDING)
    elif page == "💵 수입 기록":
        render_entry_page(components, TransactionKind.INCOME)
    elif page == "🔁 정기 거래":
        render_recurring_page(components)
    elif page == "📊 대시보드":
        render_dashboard_page(components)
    elif page == "📜 내역":
        render_history_page(components)
    elif page == "⚙️ 설정":
        render_settings_page(components)


def render_login_page(components: AppComponents):
    """Sign in with a family code and a display name."""
    st.title("💰 Family Ledger")
    st.markdown("가족코드와 이름을 입력하세요. 처음 쓰는 코드면 새 가족이 만들어집니다.")

    with st.form("login"):
        family_code = st.text_input("가족코드", max_chars=20, help="영문/숫자 3-20자")
        user_name = st.text_input("이름", max_chars=20)
        submitted = st.form_submit_button("시작하기")

    if not submitted:
        return

    try:
        family = run_async(components.family_flow.join(family_code, user_name))
    except Exception as e:
        show_error(e)
        return

    st.session_state["user"] = {
        "name": user_name.strip(),
        "family_code": family.code,
        "members": family.users,
    }
    run_recurring_once(components)
    st.rerun()


def run_recurring_once(components: AppComponents):
    """Materialize due recurring rules once per session."""
    if st.session_state.get("recurring_checked"):
        return
    st.session_state["recurring_checked"] = True

    try:
        result = run_async(components.recurring_flow.process())
    except RecurringProcessingError as e:
        st.session_state["recurring_notice"] = ("error", f"정기 거래 처리 실패: {e}")
        return

    if result.processed:
        st.session_state["recurring_notice"] = (
            "success",
            f"🔁 정기 거래 {result.processed}건이 오늘 기록되었습니다.",
        )
    if result.failed:
        st.session_state["recurring_notice"] = (
            "warning",
            f"정기 거래 {result.failed}건을 기록하지 못했습니다. 다음 접속 때 다시 시도합니다.",
        )


def render_recurring_notice():
    notice = st.session_state.pop("recurring_notice", None)
    if notice:
        level, message = notice
        getattr(st, level)(message)


def render_entry_page(components: AppComponents, kind: TransactionKind):
    """Record one spending or income entry."""
    user = st.session_state["user"]
    label = KIND_LABELS[kind]

    st.title(f"{'💸' if kind == TransactionKind.SPENDING else '💵'} {label} 기록")
    render_recurring_notice()

    with st.form(f"entry-{kind.value}", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            amount = st.number_input("금액 (원)", min_value=0, step=1000, value=0)
            category = st.selectbox(
                "카테고리",
                options=[c.value for c in categories_for(kind)],
            )
        with col2:
            entry_date = st.date_input("날짜", value=components.today(), max_value=components.today())
            payment_method = None
            if kind == TransactionKind.SPENDING:
                payment_method = st.selectbox(
                    "결제수단",
                    options=list(PaymentMethod),
                    format_func=lambda m: m.label,
                )
        memo = st.text_input("메모", max_chars=components.settings.max_memo_length)
        submitted = st.form_submit_button("저장")

    if not submitted:
        render_today_list(components, kind)
        return

    try:
        payload = TransactionCreate(
            amount=int(amount),
            category=category,
            memo=memo,
            user_name=user["name"],
            family_code=user["family_code"],
            entry_date=entry_date,
            payment_method=payment_method,
        )
        transaction = run_async(components.ledger_flow.record(kind, payload))
    except Exception as e:
        show_error(e)
        return

    st.success(f"✅ {transaction.category} {won(transaction.amount)} 저장되었습니다.")
    render_today_list(components, kind)


def render_today_list(components: AppComponents, kind: TransactionKind):
    user = st.session_state["user"]
    today = components.today()
    try:
        rows = run_async(components.ledger_flow.list_entries(
            kind, [user["family_code"]], date_from=today, date_to=today
        ))
    except StorageError as e:
        show_error(e)
        return

    st.markdown("---")
    st.markdown(f"### 오늘의 {KIND_LABELS[kind]}")
    if not rows:
        st.info("아직 기록이 없습니다.")
        return
    st.markdown(f"합계 **{won(sum(t.amount for t in rows))}**")
    for t in rows:
        recurring = " 🔁" if t.is_recurring else ""
        st.markdown(f"- {t.category} · {won(t.amount)} · {t.user_name}{recurring} {t.memo or ''}")


def render_recurring_page(components: AppComponents):
    """Create, list and stop recurring rules."""
    user = st.session_state["user"]
    st.title("🔁 정기 거래")
    render_recurring_notice()

    kind = st.radio(
        "종류",
        options=list(TransactionKind),
        format_func=lambda k: KIND_LABELS[k],
        horizontal=True,
    )

    with st.form("recurring", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            amount = st.number_input("금액 (원)", min_value=0, step=1000, value=0)
            category = st.selectbox("카테고리", options=[c.value for c in categories_for(kind)])
        with col2:
            day_of_month = st.number_input("매월 며칠", min_value=1, max_value=31, value=1)
            payment_method = None
            if kind == TransactionKind.SPENDING:
                payment_method = st.selectbox(
                    "결제수단",
                    options=list(PaymentMethod),
                    format_func=lambda m: m.label,
                )
        memo = st.text_input("메모", max_chars=components.settings.max_memo_length)
        submitted = st.form_submit_button("정기 거래 추가")

    if submitted:
        try:
            payload = RecurringRuleCreate(
                kind=kind,
                amount=int(amount),
                category=category,
                memo=memo,
                user_name=user["name"],
                family_code=user["family_code"],
                day_of_month=int(day_of_month),
                payment_method=payment_method,
            )
            rule = run_async(components.recurring_flow.create_rule(payload))
            st.success(f"✅ 매월 {rule.day_of_month}일 {rule.category} {won(rule.amount)} 추가되었습니다.")
        except Exception as e:
            show_error(e)

    st.markdown("---")
    st.markdown("### 등록된 정기 거래")

    try:
        rules = run_async(components.recurring_flow.list_rules(user["family_code"]))
    except StorageError as e:
        show_error(e)
        return

    if not rules:
        st.info("등록된 정기 거래가 없습니다.")
        return

    for rule in rules:
        col1, col2 = st.columns([4, 1])
        with col1:
            next_due = rule.next_due_date.isoformat() if rule.next_due_date else "-"
            st.markdown(
                f"**{KIND_LABELS[rule.kind]}** · 매월 {rule.day_of_month}일 · "
                f"{rule.category} · {won(rule.amount)} · {rule.user_name} "
                f"(다음: {next_due}) {rule.memo or ''}"
            )
        with col2:
            if st.button("중지", key=f"stop-{rule.id}"):
                try:
                    run_async(components.recurring_flow.deactivate(rule.id))
                    st.rerun()
                except Exception as e:
                    show_error(e)


def render_dashboard_page(components: AppComponents):
    """Monthly totals and breakdowns."""
    user = st.session_state["user"]
    st.title("📊 대시보드")
    render_recurring_notice()

    today = components.today()
    selected = st.date_input("월 선택", value=today.replace(day=1), help="선택한 날짜가 속한 달을 봅니다")
    if isinstance(selected, date):
        year, month = selected.year, selected.month
    else:
        year, month = today.year, today.month

    try:
        summary = run_async(components.query_flow.monthly_summary(
            [user["family_code"]], year, month
        ))
    except Exception as e:
        show_error(e)
        return

    st.markdown(f"## {summary.year}년 {summary.month}월")
    col1, col2, col3 = st.columns(3)
    col1.metric("수입", won(summary.total_income), f"{summary.income_count}건")
    col2.metric("지출", won(summary.total_spending), f"{summary.spending_count}건")
    col3.metric("잔액", won(summary.balance))

    if summary.recurring_spending:
        st.caption(f"지출 중 정기 거래: {won(summary.recurring_spending)}")

    if not summary.spending_count and not summary.income_count:
        st.info("이 달에는 기록이 없습니다.")
        return

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("### 지출 (분류별)")
        if summary.spending_by_group:
            st.bar_chart(pd.Series(summary.spending_by_group, name="지출"))
        st.markdown("### 구성원별")
        for name, amount in summary.spending_by_user.items():
            st.markdown(f"- {name}: {won(amount)}")
    with col2:
        st.markdown("### 수입 (분류별)")
        for group, amount in summary.income_by_group.items():
            st.markdown(f"- {group}: {won(amount)}")
        st.markdown("### 결제수단별")
        for method, amount in summary.spending_by_payment_method.items():
            label = PaymentMethod(method).label if method in PaymentMethod._value2member_map_ else method
            st.markdown(f"- {label}: {won(amount)}")

    if summary.daily_spending:
        st.markdown("### 일별 지출")
        st.line_chart(pd.Series(summary.daily_spending, name="지출"))


def render_history_page(components: AppComponents):
    """All entries of a date range, with delete."""
    user = st.session_state["user"]
    st.title("📜 내역")

    col1, col2 = st.columns(2)
    with col1:
        kind = st.selectbox(
            "종류",
            options=list(TransactionKind),
            format_func=lambda k: KIND_LABELS[k],
        )
    with col2:
        today = components.today()
        date_range = st.date_input(
            "기간",
            value=[today.replace(day=1), today],
            help="Select date range",
        )

    date_from = date_to = None
    if isinstance(date_range, (list, tuple)) and len(date_range) == 2:
        date_from, date_to = date_range

    try:
        rows = run_async(components.ledger_flow.list_entries(
            kind, [user["family_code"]], date_from=date_from, date_to=date_to
        ))
    except StorageError as e:
        show_error(e)
        return

    st.markdown("---")
    if not rows:
        st.info("기록이 없습니다.")
        return

    st.markdown(f"{len(rows)}건 · 합계 **{won(sum(t.amount for t in rows))}**")
    for t in rows:
        col1, col2 = st.columns([5, 1])
        with col1:
            recurring = " 🔁" if t.is_recurring else ""
            st.markdown(
                f"{t.entry_date.isoformat()} · {t.category} · **{won(t.amount)}** · "
                f"{t.user_name}{recurring} {t.memo or ''}"
            )
        with col2:
            if st.button("삭제", key=f"delete-{t.id}"):
                try:
                    run_async(components.ledger_flow.delete(kind, t.id))
                    st.rerun()
                except Exception as e:
                    show_error(e)


def render_settings_page(components: AppComponents):
    """Render the settings page."""
    st.title("⚙️ 설정")

    st.markdown("### Connection Status")
    status = validate_all_settings()

    services = [
        ("Application settings", "app"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("SQL database (Storage)", "database"),
    ]
    for name, key in services:
        if key not in status:
            continue
        if status[key]:
            st.success(f"✅ {name} - OK")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    settings = components.settings
    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        f"- Environment: `{settings.environment}`\n"
        f"- Storage backend: `{settings.storage_backend}`\n"
        f"- Timezone: `{settings.timezone}`\n"
        f"- Family capacity: {settings.family_capacity}\n"
        f"- Short-month policy: `{settings.short_month_policy}`"
    )
    st.markdown(
        "To configure the application, create a `.env` file "
        "(`APP_`, `GOOGLE_SHEETS_` and `DATABASE_` variables)."
    )


if __name__ == "__main__":
    main()
