"""
UI layer
Purpose: Streamlit-only glue. Renders the sidebar (session history) and the
chat transcript, collects user input, and delegates all work to the controller.
Keeps UI concerns separate from business logic so logic can be unit tested
without Streamlit.
"""

import asyncio
import logging

import streamlit as st

from dominus.config import AppConfig, build_backend, configure_logging
from dominus.controller import ChatController
from dominus.errors import BusyError, InvalidMessageError
from dominus.models import ChatSession, Role
from dominus.persistence.session_store import SessionStore
from dominus.prompts import NEW_SESSION_TITLE
from dominus.services.llm_openai import OpenAIGateway
from dominus.utils.images import display_source, encode_upload

LOGGER = logging.getLogger(__name__)

# ---------------------------
# Page config
# ---------------------------
st.set_page_config(
    page_title="DominusAI",
    page_icon="🤖",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ---------------------------
# Session state init
# ---------------------------
st_session = st.session_state
st_session.setdefault("config", None)
st_session.setdefault("controller", None)
st_session.setdefault("api_key_set", False)
st_session.setdefault("upload_key", 0)

if st_session.config is None:
    try:
        st_session.config = AppConfig.from_env()
    except ValueError as e:
        st.error(f"Invalid configuration: {e}")
        st.stop()
    configure_logging(st_session.config.log_level)

config: AppConfig = st_session.config


# ---------------------------
# Helpers
# ---------------------------
def get_controller():
    """Return the controller object."""
    return st_session.get("controller")


def session_label(session: ChatSession) -> str:
    """Sidebar label: the derived title, or the generic one."""
    return session.title or NEW_SESSION_TITLE


def warn_persistence(error) -> None:
    """Tell the user the chat could not be saved; the transcript stays."""
    if error is not None:
        st.toast(f"History not saved: {error}", icon="⚠️")


def render_message(msg) -> None:
    """One chat bubble, with its image if it has one."""
    with st.chat_message("user" if msg.role == Role.USER else "assistant"):
        if msg.text:
            st.markdown(msg.text)
        src = display_source(msg.image)
        if src is not None:
            st.image(src, width=480)
        elif msg.image:
            st.caption("Image could not be displayed.")


def on_new_chat():
    controller = get_controller()
    try:
        controller.new_session()
    except BusyError as e:
        st.toast(str(e))


def on_load(session: ChatSession):
    controller = get_controller()
    try:
        controller.load_session(session)
    except BusyError as e:
        st.toast(str(e))


def on_clear():
    controller = get_controller()
    try:
        warn_persistence(controller.clear_history())
    except BusyError as e:
        st.toast(str(e))


# ---------------------------
# SIDEBAR: key, history
# ---------------------------
with st.sidebar:
    st.markdown("# DOMINUS")
    st.caption("ARTIFICIAL INTELLIGENCE")

    user_api_key = st.text_input(
        "OpenAI API key",
        type="password",
        value=config.api_key or "",
        help="We do not store your key. It stays in your session only.",
    )
    if not user_api_key:
        st.warning("Please enter your API key in the sidebar to continue.")
        st.stop()

    if not st_session.api_key_set:
        try:
            gateway = OpenAIGateway.from_api_key(
                user_api_key, config.llm_settings(), image_model=config.image_model
            )
            store = SessionStore(build_backend(config))
            st_session.controller = ChatController(store, gateway)
            st_session.api_key_set = True
        except RuntimeError as e:
            st_session.controller = None
            st.error(f"OpenAI client init failed: {e}")
            st.stop()
        warn_persistence(st_session.controller.last_persist_error)

    controller = get_controller()

    st.button(
        "➕ New Protocol",
        use_container_width=True,
        on_click=on_new_chat,
        disabled=controller.is_busy,
    )

    st.markdown("### Memory Logs")
    if not controller.sessions:
        st.caption("No saved sessions yet.")
    for s in controller.sessions:
        st.button(
            session_label(s),
            key=f"session_{s.id}",
            use_container_width=True,
            type="primary" if s.id == controller.session.id else "secondary",
            on_click=on_load,
            args=(s,),
        )

    st.divider()
    st.button("🗑️ Clear Memory Core", on_click=on_clear)
    st.caption(f"Model: {config.model} · Storage: {config.store_backend}")


# ---------------------------
# Main: transcript + input
# ---------------------------
controller = get_controller()

transcript = st.container()
with transcript:
    for msg in controller.session.messages:
        render_message(msg)

uploaded = st.file_uploader(
    "Attach the site screenshot (optional)",
    type=["png", "jpg", "jpeg", "webp"],
    key=f"upload_{st_session.upload_key}",
)
prompt = st.chat_input("Describe the bot you want…", disabled=controller.is_busy)

if prompt is not None:
    image = None
    if uploaded is not None:
        try:
            image = encode_upload(uploaded.getvalue(), uploaded.type)
        except ValueError as e:
            st.error(str(e))
            st.stop()

    try:
        with st.spinner("PROCESSING_REQUEST..."):
            outcome = asyncio.run(controller.send_message(prompt, image))
    except (BusyError, InvalidMessageError) as e:
        st.toast(str(e))
    else:
        warn_persistence(outcome.persist_error)
        st_session.upload_key += 1
        st.rerun()
