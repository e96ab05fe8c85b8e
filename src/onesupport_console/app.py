"""
OneSupport Console - Streamlit Frontend

An operator console for the OneSupport API: cases, products, the
documentation assistant and source documents.

Usage:
    streamlit run src/onesupport_console/app.py
"""

import base64
import os
import time

import streamlit as st

from onesupport_console.cache import CachedProductService, ResponseCache
from onesupport_console.client import ApiResult, SupportApiClient

# Page configuration
st.set_page_config(
    page_title="OneSupport Console",
    page_icon="🎧",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Load settings from Streamlit secrets (for Streamlit Cloud)
if hasattr(st, "secrets"):
    for key in ["API_BASE_URL", "CACHE_FILE"]:
        if key in st.secrets:
            os.environ[key] = st.secrets[key]

# Environment configuration
API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:3000/api")
CACHE_FILE = os.environ.get("CACHE_FILE", os.path.expanduser("~/.onesupport_cache.json"))

PAGES = ["Cases", "Alerts", "New Case", "Products", "Assistant", "Documents"]
STATUSES = ["pending", "alert", "closed"]
PRIORITIES = ["", "low", "medium", "high", "urgent"]
SEARCH_TYPES = ["all", "windows", "doors"]


def init_session_state():
    """Initialize Streamlit session state."""
    if "client" not in st.session_state:
        st.session_state.client = SupportApiClient(API_BASE_URL)
    if "products" not in st.session_state:
        st.session_state.products = CachedProductService(
            st.session_state.client, ResponseCache(CACHE_FILE)
        )
    if "user" not in st.session_state:
        st.session_state.user = None
    if "conversation_id" not in st.session_state:
        st.session_state.conversation_id = None
    if "messages" not in st.session_state:
        st.session_state.messages = []
    if "session_id" not in st.session_state:
        st.session_state.session_id = f"session-{int(time.time())}"


def handle_result(result: ApiResult) -> bool:
    """Show an error for a failed call; expired sessions go back to login."""
    if result.success:
        return True
    if result.token_expired:
        refreshed = st.session_state.client.refresh()
        if not refreshed.success:
            st.session_state.user = None
            st.warning("Your session has expired. Please log in again.")
            st.rerun()
        st.info("Session refreshed, please retry.")
        return False
    st.error(result.error or "Request failed")
    return False


def is_manager() -> bool:
    user = st.session_state.user or {}
    return bool(user.get("isManager"))


def render_login():
    st.title("🎧 OneSupport Console")
    with st.form("login"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        if st.form_submit_button("Log in", use_container_width=True):
            result = st.session_state.client.login(email, password)
            if result.success:
                st.session_state.user = result.data["user"]
                st.rerun()
            else:
                st.error(result.error or "Login failed")


def render_sidebar() -> str:
    """Render the sidebar and return the selected page."""
    with st.sidebar:
        user = st.session_state.user
        st.title("🎧 OneSupport")
        st.text(user.get("userName", ""))
        st.caption(user.get("userPosition", ""))
        st.markdown("---")

        page = st.radio("Page", PAGES, label_visibility="collapsed")

        st.markdown("---")
        with st.expander("Cache"):
            st.json(st.session_state.products.cache_info())
            if st.button("Clear cache", use_container_width=True):
                st.session_state.products.clear_all()
                st.rerun()

        if st.button("Log out", use_container_width=True):
            st.session_state.client.logout()
            st.session_state.user = None
            st.session_state.messages = []
            st.session_state.conversation_id = None
            st.rerun()
    return page


def render_case(case: dict):
    with st.expander(f"{case.get('caseId')} · {case.get('name', '')} · {case.get('status')}"):
        st.markdown(f"**Product:** {case.get('product', '-')}")
        st.markdown(f"**Contact:** {case.get('contactCode', '')}{case.get('contactNumber', '')}")
        st.markdown(f"**Summary:** {case.get('summary', '-')}")
        st.markdown(f"**Actions:** {case.get('actions', '-')}")
        st.markdown(f"**To do:** {case.get('todo', '-')}")

        with st.form(f"update-{case['caseId']}"):
            current = case.get("status", "pending")
            status = st.selectbox(
                "Status", STATUSES, index=STATUSES.index(current) if current in STATUSES else 0
            )
            hours = st.number_input("Hours worked", min_value=0.0, step=0.25)
            if st.form_submit_button("Save"):
                updates = {"status": status, "oldStatus": current}
                if hours:
                    updates["editHistory"] = [{"workingTimeHours": hours}]
                result = st.session_state.client.update_case(case["caseId"], updates)
                if handle_result(result):
                    st.success("Case updated")


def render_cases():
    st.title("📋 Cases")
    client = st.session_state.client

    col1, col2 = st.columns([1, 2])
    with col1:
        status = st.selectbox("Status", STATUSES)
    with col2:
        query = st.text_input("Search cases")

    if query:
        result = client.search_cases(query)
    else:
        result = client.cases_by_status(status, limit=20)
    if handle_result(result):
        items = result.data.get("items", [])
        if not items:
            st.info("No cases found")
        for case in items:
            render_case(case)

    with st.expander("Dashboard"):
        result = client.case_dashboard(user_id=(st.session_state.user or {}).get("id"))
        if handle_result(result):
            daily = result.data.get("daily", [])
            if daily:
                st.bar_chart({d["date"]: d["all"] for d in daily})
            for entry in result.data.get("activeWorkTimes", []):
                if entry["date"] == "ALL":
                    st.metric("Hours worked", entry["value"])


def render_alerts():
    st.title("🚨 Alert Cases")
    result = st.session_state.client.alert_cases(limit=20)
    if handle_result(result):
        items = result.data.get("items", [])
        if not items:
            st.success("No cases need attention")
        for case in items:
            render_case(case)


def render_new_case():
    st.title("🆕 New Case")
    client = st.session_state.client

    with st.expander("Draft from call transcript"):
        contact_id = st.text_input("Contact ID")
        contact_number = st.text_input("Caller number")
        if st.button("Generate") and contact_id:
            with st.spinner("Reading transcript..."):
                result = client.generate_case(contact_id, contact_number)
            if handle_result(result):
                st.session_state.case_draft = result.data["caseData"]

    draft = st.session_state.get("case_draft", {})
    with st.form("new_case"):
        name = st.text_input("Customer name", draft.get("name", ""))
        email = st.text_input("Email", draft.get("email", ""))
        number = st.text_input("Phone", draft.get("contactNumber", ""))
        product = st.text_input("Product", draft.get("product", ""))
        priority = st.selectbox(
            "Priority",
            PRIORITIES,
            index=PRIORITIES.index(draft.get("priority", "")) if draft.get("priority", "") in PRIORITIES else 0,
        )
        summary = st.text_area("Summary", draft.get("summary", ""))
        actions = st.text_area("Actions", draft.get("actions", ""))
        todo = st.text_area("To do", draft.get("todo", ""))

        if st.form_submit_button("Create case", use_container_width=True):
            if not name:
                st.warning("Customer name is required")
                return
            case = {
                "name": name,
                "email": email,
                "contactCode": draft.get("contactCode", "+64"),
                "contactNumber": number,
                "product": product,
                "priority": priority,
                "summary": summary,
                "actions": actions,
                "todo": todo,
                "contactId": draft.get("contactId"),
            }
            result = client.create_case(case)
            if handle_result(result):
                st.success(f"Created: {result.data.get('caseId')}")
                st.session_state.case_draft = {}


def render_products():
    st.title("🚪 Products")
    service = st.session_state.products

    result = service.door_counts()
    if handle_result(result):
        counts = result.data
        col1, col2, col3, col4 = st.columns(4)
        col1.metric("Exterior", counts.get("exteriorDoors", 0))
        col2.metric("Interior", counts.get("interiorDoors", 0))
        col3.metric("Patio", counts.get("patioDoors", 0))
        col4.metric("Total doors", counts.get("total", 0))

    col1, col2 = st.columns([3, 1])
    with col1:
        query = st.text_input("Search products")
    with col2:
        search_type = st.selectbox("Category", SEARCH_TYPES)

    if query:
        result = service.search(query, search_type)
        products = result.data.get("products", []) if handle_result(result) else []
    else:
        result = service.suggested_products()
        products = result.data.get("products", []) if handle_result(result) else []

    for product in products:
        with st.expander(product.get("productName", product.get("id"))):
            if product.get("imageUrl"):
                st.image(product["imageUrl"], width=240)
            st.caption(product.get("productType", ""))
            if "score" in product:
                st.caption(f"Match: {product['score']:.2f}")
            st.write(product.get("specifications", ""))


def render_assistant():
    st.title("💬 Assistant")
    client = st.session_state.client

    with st.sidebar:
        st.markdown("---")
        st.subheader("Conversations")
        if st.button("➕ New conversation", use_container_width=True):
            st.session_state.conversation_id = None
            st.session_state.messages = []
            st.rerun()
        result = client.list_conversations(limit=10)
        if result.success:
            for conv in result.data.get("conversations", []):
                if st.button(conv["title"] or "Untitled", key=conv["conversation_id"], use_container_width=True):
                    history = client.conversation_history(conv["conversation_id"])
                    if handle_result(history):
                        st.session_state.conversation_id = conv["conversation_id"]
                        st.session_state.messages = history.data.get("messages", [])
                        st.rerun()

    for message in st.session_state.messages:
        with st.chat_message(message["role"]):
            st.markdown(message["content"])
            for source in message.get("sources") or []:
                st.caption(f"📄 {source.get('title')} p.{source.get('page')}")

    if prompt := st.chat_input("Ask about a product or procedure"):
        st.session_state.messages.append({"role": "user", "content": prompt})
        with st.chat_message("user"):
            st.markdown(prompt)

        with st.chat_message("assistant"):
            with st.spinner("Thinking..."):
                result = client.ask(
                    prompt,
                    conversation_id=st.session_state.conversation_id,
                    session_id=st.session_state.session_id,
                )
            if handle_result(result):
                st.markdown(result.data["answer"])
                st.session_state.conversation_id = result.data["conversation_id"]
                st.session_state.messages.append(
                    {"role": "assistant", "content": result.data["answer"], "sources": result.data.get("sources")}
                )


def render_documents():
    st.title("📄 Documents")
    client = st.session_state.client

    uploaded = st.file_uploader("Upload PDF", type=["pdf"])
    if uploaded is not None and st.button("Upload"):
        encoded = base64.b64encode(uploaded.getvalue()).decode("ascii")
        if handle_result(client.upload_document(uploaded.name, encoded)):
            st.success(f"Uploaded {uploaded.name}")

    if is_manager() and st.button("🔄 Sync knowledge base"):
        with st.spinner("Syncing..."):
            result = client.sync_knowledge_base()
        if handle_result(result):
            st.success(f"Sync {result.data.get('status')} (job {result.data.get('jobId')})")

    result = client.list_documents()
    if handle_result(result):
        for doc in result.data:
            col1, col2, col3 = st.columns([4, 1, 1])
            col1.markdown(f"**{doc['name']}** · {doc['Size'] // 1024} KB")
            link = client.document_url(doc["name"])
            if link.success:
                col2.link_button("Open", link.data["url"])
            if col3.button("Delete", key=f"del-{doc['Key']}"):
                if handle_result(client.delete_document(doc["name"])):
                    st.rerun()


def main():
    """Main application entry point."""
    init_session_state()
    if not st.session_state.user:
        render_login()
        return

    page = render_sidebar()
    {
        "Cases": render_cases,
        "Alerts": render_alerts,
        "New Case": render_new_case,
        "Products": render_products,
        "Assistant": render_assistant,
        "Documents": render_documents,
    }[page]()


if __name__ == "__main__":
    main()
