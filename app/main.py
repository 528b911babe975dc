"""
Streamlit Frontend for AI Budget Planner

Pages:
1. Landing (signed out): what the app does and a log-in button
2. Dashboard: saved plans, display name, plans shared with you
3. Planner: income, expenses, notes, dictation, generate, listen, save
4. Settings: provider connection status

DESIGN PRINCIPLES:
1. Simple, clear interface
2. One error message at a time, in plain language
3. Nothing is saved without an explicit "Save" action
4. Generated text is shown as plain text, never as HTML
"""

import asyncio

import streamlit as st

from budget_planner.config import validate_all_settings
from budget_planner.models.identity import UserIdentity
from budget_planner.models.plan import (
    ExpenseTarget,
    IncomeTarget,
    NotesTarget,
    PlanForm,
)
from budget_planner.orchestrator import (
    AppComponents,
    DashboardFlow,
    PlannerFlow,
    create_app_components,
)
from budget_planner.services.storage import CollaborationDisabledError, StorageError


# Page configuration
st.set_page_config(
    page_title="AI Budget Planner",
    page_icon="💰",
    layout="centered",
    initial_sidebar_state="expanded",
)


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
    components = create_app_components()
    run_async(components.report_startup_issues())
    return components


def current_identity() -> UserIdentity:
    return UserIdentity.from_claims(dict(st.user))


# =============================================================================
# SESSION STATE
# =============================================================================

def get_planner_flow(components: AppComponents) -> PlannerFlow:
    if "planner_flow" not in st.session_state:
        st.session_state.planner_flow = components.new_planner_flow()
    return st.session_state.planner_flow


def get_form() -> PlanForm:
    if "form" not in st.session_state:
        open_form(PlanForm())
    return st.session_state.form


def open_form(form: PlanForm, editing=None) -> None:
    """Make `form` the planner's form and reset its widgets."""
    st.session_state.form = form
    st.session_state.editing_plan = editing
    st.session_state.saved_message = None
    push_form_to_widgets(form)


def push_form_to_widgets(form: PlanForm) -> None:
    """Copy form values into widget state. Only call from callbacks."""
    st.session_state["income"] = form.income
    st.session_state["user_notes"] = form.user_notes
    st.session_state["plan_name"] = form.plan_name
    for expense in form.expenses:
        st.session_state[f"expense-{expense.id}-category"] = expense.category
        st.session_state[f"expense-{expense.id}-amount"] = expense.amount


def collect_form(form: PlanForm) -> None:
    """Copy widget values back into the form."""
    form.income = st.session_state.get("income", form.income)
    form.user_notes = st.session_state.get("user_notes", form.user_notes)
    form.plan_name = st.session_state.get("plan_name", form.plan_name)
    for expense in form.expenses:
        for field in ("category", "amount"):
            key = f"expense-{expense.id}-{field}"
            if key in st.session_state:
                form.update_expense(expense.id, field, st.session_state[key])


# =============================================================================
# MAIN
# =============================================================================

def main():
    """Main application entry point."""
    identity = current_identity()
    if not identity.is_authenticated:
        render_landing_page()
        return

    components = get_components()

    st.sidebar.title("💰 AI Budget Planner")
    st.sidebar.caption(identity.email or identity.name or "")
    st.sidebar.markdown("---")

    pages = ["📋 Dashboard", "📝 Planner", "⚙️ Settings"]
    if "page" not in st.session_state:
        st.session_state.page = pages[0]
    page = st.sidebar.radio("Navigate to:", pages, key="page")

    st.sidebar.markdown("---")
    st.sidebar.button("Log out", on_click=st.logout)

    if page == "📋 Dashboard":
        render_dashboard_page(components.dashboard, identity)
    elif page == "📝 Planner":
        render_planner_page(get_planner_flow(components), components, identity)
    elif page == "⚙️ Settings":
        render_settings_page(components)


def render_landing_page():
    """Render the signed-out landing page."""
    st.title("💰 AI Budget Planner")
    st.markdown(
        """
        Tell us your monthly income and expenses, by typing or by voice,
        and get a short personalised budget plan you can read or listen to.

        - **Plan**: a concise summary, recommendations and a saving tip
        - **Listen**: have the plan read aloud in the voice you choose
        - **Keep**: save plans and come back to edit them
        """
    )
    if st.button("Log in", type="primary"):
        try:
            st.login()
        except Exception as e:
            st.error(f"Log-in is not configured: {e}")


# =============================================================================
# DASHBOARD
# =============================================================================

def start_new_plan():
    open_form(PlanForm())
    st.session_state.page = "📝 Planner"


def edit_plan(dashboard: DashboardFlow, identity: UserIdentity, plan_id: str):
    plan = run_async(dashboard.get_plan(identity, plan_id))
    if plan is None:
        st.session_state.dashboard_error = "That plan no longer exists."
        return
    open_form(PlanForm.from_plan(plan), editing=plan)
    st.session_state.page = "📝 Planner"


def delete_plan(dashboard: DashboardFlow, identity: UserIdentity, plan_id: str):
    try:
        run_async(dashboard.delete_plan(identity, plan_id))
    except StorageError as e:
        st.session_state.dashboard_error = f"Failed to delete plan: {e}"


def invite(dashboard: DashboardFlow, identity: UserIdentity, plan_id: str):
    email = st.session_state.get(f"invite-{plan_id}", "").strip()
    if not email:
        return
    try:
        run_async(dashboard.invite_collaborator(identity, plan_id, email))
        st.session_state[f"invite-{plan_id}"] = ""
    except (StorageError, CollaborationDisabledError) as e:
        st.session_state.dashboard_error = f"Failed to share plan: {e}"


def uninvite(dashboard: DashboardFlow, identity: UserIdentity, plan_id: str, email: str):
    try:
        run_async(dashboard.remove_collaborator(identity, plan_id, email))
    except StorageError as e:
        st.session_state.dashboard_error = f"Failed to update collaborators: {e}"


def render_dashboard_page(dashboard: DashboardFlow, identity: UserIdentity):
    """Render the dashboard page."""
    error = st.session_state.pop("dashboard_error", None)
    if error:
        st.error(error)

    try:
        username = run_async(dashboard.get_username(identity))
        plans = run_async(dashboard.list_plans(identity))
        shared_with_me = run_async(dashboard.list_shared_with_me(identity))
    except StorageError as e:
        st.error(f"Could not load your plans: {e}")
        return

    if not username:
        st.title("👋 Welcome!")
        with st.form("username_form"):
            name = st.text_input("What should we call you?")
            if st.form_submit_button("Save", type="primary"):
                try:
                    if run_async(dashboard.save_username(identity, name)):
                        st.rerun()
                    st.warning("Please enter a name.")
                except StorageError as e:
                    st.error(f"Failed to save your name: {e}")
        return

    st.title(f"👋 Welcome, {username}")
    st.button("➕ Create New Plan", type="primary", on_click=start_new_plan)

    st.markdown("---")
    st.subheader("Your Plans")
    if not plans:
        st.info("You have no saved plans yet. Create one to get started.")

    for plan in plans:
        with st.container(border=True):
            st.markdown(f"**{plan.name}**")
            st.caption(f"Created on {plan.created_at.strftime('%d %B %Y')}")
            if plan.income:
                st.text(f"Monthly income: ${plan.income}")

            col1, col2 = st.columns(2)
            with col1:
                st.button(
                    "✏️ Edit",
                    key=f"edit-{plan.id}",
                    on_click=edit_plan,
                    args=(dashboard, identity, plan.id),
                )
            with col2:
                st.button(
                    "🗑️ Delete",
                    key=f"delete-{plan.id}",
                    on_click=delete_plan,
                    args=(dashboard, identity, plan.id),
                )

            if dashboard.collaboration_enabled:
                with st.expander("Share"):
                    for email in plan.collaborators:
                        c1, c2 = st.columns([4, 1])
                        c1.text(email)
                        c2.button(
                            "Remove",
                            key=f"remove-{plan.id}-{email}",
                            on_click=uninvite,
                            args=(dashboard, identity, plan.id, email),
                        )
                    st.text_input("Collaborator e-mail", key=f"invite-{plan.id}")
                    st.button(
                        "Invite",
                        key=f"invite-button-{plan.id}",
                        on_click=invite,
                        args=(dashboard, identity, plan.id),
                    )

    if dashboard.collaboration_enabled:
        st.markdown("---")
        st.subheader("Shared With You")
        if not shared_with_me:
            st.info("No one has shared a plan with you yet.")
        for plan in shared_with_me:
            with st.container(border=True):
                st.markdown(f"**{plan.name}**")
                if plan.plan_text:
                    st.text(plan.plan_text)


# =============================================================================
# PLANNER
# =============================================================================

def add_expense():
    form = get_form()
    collect_form(form)
    form.add_expense()
    push_form_to_widgets(form)


def remove_expense(expense_id: str):
    form = get_form()
    collect_form(form)
    form.remove_expense(expense_id)


def generate(flow: PlannerFlow):
    form = get_form()
    collect_form(form)
    st.session_state.saved_message = None
    run_async(flow.generate_plan(form))
    push_form_to_widgets(form)


def dictate(flow: PlannerFlow):
    form = get_form()
    collect_form(form)

    recording = st.session_state.get(f"dictation-{st.session_state.dictation_round}")
    choice = st.session_state.get("dictation_target")
    if recording is None or choice is None:
        return

    target = dictation_targets(form).get(choice)
    if target is None:
        return

    run_async(flow.listen(form, target, recording.getvalue(), recording.type or "audio/wav"))
    push_form_to_widgets(form)
    st.session_state.dictation_round += 1


def play(flow: PlannerFlow, voice_id: str):
    form = get_form()
    run_async(flow.speak(form.plan_text, voice_id))


def stop(flow: PlannerFlow):
    run_async(flow.stop_playback())
    flow.last_clip = None


def save(flow: PlannerFlow, identity: UserIdentity):
    form = get_form()
    collect_form(form)
    editing = st.session_state.get("editing_plan")
    saved = run_async(flow.save_plan(identity, form, initial_plan=editing))
    if saved is not None:
        st.session_state.editing_plan = saved
        st.session_state.saved_message = (
            f"Plan '{saved.name}' {'updated' if editing else 'saved'}."
        )


def dictation_targets(form: PlanForm) -> dict:
    """Labels for every field that accepts dictation."""
    targets = {"Monthly income": IncomeTarget()}
    for idx, expense in enumerate(form.expenses, start=1):
        label = expense.category or f"Expense {idx}"
        targets[f"{label}: category"] = ExpenseTarget(id=expense.id, field="category")
        targets[f"{label}: amount"] = ExpenseTarget(id=expense.id, field="amount")
    targets["Notes"] = NotesTarget()
    return targets


def render_planner_page(
    flow: PlannerFlow,
    components: AppComponents,
    identity: UserIdentity,
):
    """Render the planner page."""
    form = get_form()
    editing = st.session_state.get("editing_plan")
    if "dictation_round" not in st.session_state:
        st.session_state.dictation_round = 0

    st.title("📝 Edit Plan" if editing else "📝 New Budget Plan")

    if flow.status.error:
        st.error(flow.status.error)

    # Income and expenses
    st.text_input("Monthly Income ($)", key="income", placeholder="5000")

    st.markdown("**Monthly Expenses**")
    for expense in form.expenses:
        col1, col2, col3 = st.columns([3, 2, 1])
        col1.text_input(
            "Category",
            key=f"expense-{expense.id}-category",
            label_visibility="collapsed",
            placeholder="Category",
        )
        col2.text_input(
            "Amount",
            key=f"expense-{expense.id}-amount",
            label_visibility="collapsed",
            placeholder="Amount",
        )
        col3.button(
            "✖",
            key=f"remove-expense-{expense.id}",
            on_click=remove_expense,
            args=(expense.id,),
        )
    st.button("➕ Add Expense", on_click=add_expense)

    st.text_area(
        "Notes (optional)",
        key="user_notes",
        placeholder="e.g. saving for a holiday, paying off a card",
    )

    # Dictation
    with st.expander("🎤 Dictate a field"):
        st.selectbox(
            "Field",
            options=list(dictation_targets(form).keys()),
            key="dictation_target",
        )
        st.audio_input(
            "Record",
            key=f"dictation-{st.session_state.dictation_round}",
        )
        st.button("Use recording", on_click=dictate, args=(flow,))

    st.button(
        "✨ Generate Plan",
        type="primary",
        on_click=generate,
        args=(flow,),
        disabled=flow.status.is_loading,
    )

    if not form.plan_text:
        return

    # Generated plan, rendered as plain text
    st.markdown("---")
    st.subheader("Your Budget Plan")
    st.text(form.plan_text)

    voices = components.synthesizer.voices
    voice_name = st.selectbox("Voice", options=list(voices.keys()), key="voice")
    col1, col2 = st.columns(2)
    with col1:
        st.button(
            "🔊 Read Aloud",
            on_click=play,
            args=(flow, voices.get(voice_name)),
        )
    with col2:
        st.button(
            "⏹ Stop",
            on_click=stop,
            args=(flow,),
            disabled=flow.last_clip is None,
        )
    if flow.last_clip is not None:
        st.audio(flow.last_clip.data, format=flow.last_clip.mime_type, autoplay=True)

    st.markdown("---")
    st.text_input("Plan name", key="plan_name")
    st.button(
        "💾 Update Plan" if editing else "💾 Save Plan",
        type="primary",
        on_click=save,
        args=(flow, identity),
    )
    if st.session_state.get("saved_message"):
        st.success(st.session_state.saved_message)


# =============================================================================
# SETTINGS
# =============================================================================

def render_settings_page(components: AppComponents):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Gemini (plans and dictation)", "gemini"),
        ("ElevenLabs (read aloud)", "elevenlabs"),
    ]
    if components.settings.app.storage_backend == "sheets":
        services.append(("Google Sheets (storage)", "google_sheets"))

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Connected")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    app_settings = components.settings.app
    st.markdown("### Storage")
    st.text(f"Backend: {app_settings.storage_backend}")
    st.text(f"Sharing: {'on' if components.collaboration.enabled else 'off'}")
    st.text(f"Playback: {app_settings.playback_mode}")

    for service, error in components.startup_issues:
        if service == "google_sheets":
            st.warning(f"Google Sheets unavailable, using local files instead: {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
