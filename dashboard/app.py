import sys
from pathlib import Path

import streamlit as st

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dbtester.connector import DEFAULT_CONFIG_PATH
from dbtester.form import CommandKind, FormController, PERSIST_CHOICES
from dbtester.registry import CONNECTORS, VENDOR_LABELS


st.set_page_config(page_title="DB Connector Tester", layout="centered", initial_sidebar_state="expanded")
st.sidebar.title("DB Connector Tester")
st.sidebar.markdown(
    """
    Manually test connectivity to SQL Server or Oracle, then run a single
    statement or query and see what comes back.
    """
)
st.sidebar.markdown("<hr>", unsafe_allow_html=True)

# Initialize session state
if "form" not in st.session_state:
    st.session_state["form"] = FormController(config_path=DEFAULT_CONFIG_PATH)
form: FormController = st.session_state["form"]

for key, value in {
    "server": form.server,
    "database": form.database,
    "username": form.username,
    "password": form.password,
    "persist": form.persist if form.persist in PERSIST_CHOICES else "false",
    "integrated": form.integrated_security,
    "query": form.query,
}.items():
    if key not in st.session_state:
        st.session_state[key] = value


def on_integrated_changed():
    form.set_integrated_security(st.session_state["integrated"])
    if form.integrated_security:
        st.session_state["username"] = ""
        st.session_state["password"] = ""


def sync_form():
    """Copy widget values into the controller before an action runs."""
    form.server = st.session_state["server"]
    form.database = st.session_state["database"]
    form.username = st.session_state["username"]
    form.password = st.session_state["password"]
    form.persist = st.session_state["persist"]
    form.query = st.session_state["query"]


# ==================== SIDEBAR ====================
st.sidebar.header("⚙️ Configuration")
vendors = sorted(CONNECTORS)
form.vendor = st.sidebar.selectbox(
    "Database vendor",
    vendors,
    index=vendors.index(form.vendor) if form.vendor in vendors else 0,
    format_func=lambda v: VENDOR_LABELS.get(v, v),
)
kind = st.sidebar.radio(
    "Command kind",
    [k.value for k in CommandKind],
    format_func=str.capitalize,
    help="Auto runs the text as a statement and falls back to a query when no rows were affected.",
)

# ==================== MAIN AREA ====================
st.header("🗄️ DB Connector Tester")

st.text_input("Server:", key="server", help="Server or instance name (SQL Server), DSN or TNS alias (Oracle)")
st.text_input("Database name:", key="database")
st.text_input("Username:", key="username", disabled=not form.username_enabled)
st.text_input("Password:", key="password", type="password", disabled=not form.password_enabled)
st.selectbox("Persist security info.:", PERSIST_CHOICES, key="persist")
st.checkbox("Integrated security", key="integrated", on_change=on_integrated_changed)
st.text_area("Query", key="query", height=150)

col_connect, col_execute = st.columns(2)
run_connect = col_connect.button("🔌 Connect")
run_execute = col_execute.button("▶️ Execute query")

if run_connect:
    sync_form()
    with st.spinner("Connecting..."):
        form.connect()

if run_execute:
    sync_form()
    with st.spinner("Executing..."):
        form.execute(CommandKind(kind))

st.markdown("---")

if form.status:
    if form.status.startswith("Connection successful"):
        st.success(form.status)
    else:
        st.text(form.status)

if form.last_table is not None and not form.last_table.empty:
    with st.expander("📋 View Result (First 100 rows)", expanded=True):
        st.dataframe(form.last_table.head(100), width=None)
