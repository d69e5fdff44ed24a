"""
Purpose: The single orchestration point for the chat. Owns the active session
and the send state machine (IDLE -> SENDING -> IDLE).
Prevents the UI from knowing how the gateway or the store work.

Key responsibilities:
- Start a session with the fixed greeting; load or discard sessions.
- send_message: append the user turn right away, call the AI gateway, append
  either its reply or the fixed error notice, go back to IDLE, then commit the
  session to the store and refresh the sidebar listing.
- Reject a second send while one is in flight (BusyError, nothing mutated).
- Never let a gateway or store failure escape a send: gateway failures become
  a chat turn, store failures are logged and reported on the outcome.

Testing: Pure unit tests with a fake gateway, deterministic ids and clock and an
in-memory backend. Verify message order, state reset and error handling.
"""

from __future__ import annotations
import logging
from typing import Callable, Optional

from .errors import BusyError, PersistenceError
from .interfaces import AIGateway, Clock, IdFactory, SecurityGuard
from .models import (
    ChatSession,
    ChatState,
    GatewayFailure,
    GatewayReply,
    ImageInput,
    Message,
    Role,
    SendOutcome,
)
from .persistence.session_store import SessionStore, new_id, now_ms
from .prompts import ERROR_NOTICE, GREETING, NEW_SESSION_TITLE, TITLE_CHARS
from .services.security import DefaultSecurity
from .utils.images import data_url

LOGGER = logging.getLogger(__name__)

Listener = Callable[["ChatController"], None]


def derive_title(text: str) -> str:
    """Sidebar label from the first user message."""
    t = (text or "").strip()
    if len(t) <= TITLE_CHARS:
        return t
    return t[:TITLE_CHARS] + "..."


class ChatController:
    def __init__(
        self,
        store: SessionStore,
        gateway: AIGateway,
        *,
        id_factory: Optional[IdFactory] = None,
        clock: Optional[Clock] = None,
        security: Optional[SecurityGuard] = None,
    ):
        self.store = store
        self.gateway: AIGateway = gateway
        self.id_factory: IdFactory = id_factory or new_id
        self.clock: Clock = clock or now_ms
        self.security: SecurityGuard = security or DefaultSecurity()

        self.state: ChatState = ChatState.IDLE
        self.sessions: list[ChatSession] = []
        self.last_persist_error: Optional[PersistenceError] = None
        self._listeners: list[Listener] = []

        self.session: ChatSession = self._fresh_session()
        self.refresh_sessions()

    @property
    def is_busy(self) -> bool:
        return self.state is ChatState.SENDING

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener(controller)` on every state or session change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                LOGGER.exception("Chat listener %r failed", listener)

    def _set_state(self, state: ChatState) -> None:
        self.state = state
        self._notify()

    def _ensure_idle(self, action: str) -> None:
        if self.is_busy:
            LOGGER.warning("Rejected %s: a reply is still in flight", action)
            raise BusyError(f"Cannot {action} while a reply is being generated.")

    def _make_message(
        self,
        session: ChatSession,
        role: Role,
        text: str,
        image: Optional[str] = None,
    ) -> Message:
        ts = self.clock()
        if session.messages:
            ts = max(ts, session.messages[-1].timestamp)
        return Message(
            id=self.id_factory(), role=role, text=text, timestamp=ts, image=image
        )

    def _fresh_session(self) -> ChatSession:
        session = self.store.create_session()
        session.messages.append(self._make_message(session, Role.MODEL, GREETING))
        return session

    def refresh_sessions(self) -> list[ChatSession]:
        """Reload the listing from the store. On failure the old list stays."""
        try:
            self.sessions = self.store.list_sessions()
        except PersistenceError as e:
            LOGGER.error("Could not list stored sessions: %s", e)
            self.last_persist_error = e
        return self.sessions

    def _commit(self, session: ChatSession) -> Optional[PersistenceError]:
        try:
            self.store.save_session(session)
        except PersistenceError as e:
            LOGGER.error("Could not persist session %s: %s", session.id, e)
            self.last_persist_error = e
            return e
        self.last_persist_error = None
        self.refresh_sessions()
        return None

    async def send_message(
        self, text: str, image: Optional[ImageInput] = None
    ) -> SendOutcome:
        """
        One user turn + one assistant turn, always exactly two new messages.
        Raises BusyError (while SENDING) or InvalidMessageError before touching
        anything; every other failure ends up in the returned SendOutcome.
        """
        self._ensure_idle("send a message")
        text = text or ""
        self.security.validate_user_input(text, has_image=image is not None)

        session = self.session
        stored_image = data_url(image.data, image.mime_type) if image else None
        user_msg = self._make_message(session, Role.USER, text, stored_image)
        session.messages.append(user_msg)
        if session.title == NEW_SESSION_TITLE and text.strip():
            session.title = derive_title(text)

        self._set_state(ChatState.SENDING)
        failure: Optional[GatewayFailure] = None
        try:
            try:
                result = await self.gateway.generate(
                    text, list(session.messages), image
                )
            except Exception as e:
                LOGGER.exception("AI gateway raised while answering")
                result = GatewayFailure(reason=str(e) or type(e).__name__, error=e)

            if isinstance(result, GatewayReply) and (result.text or result.image):
                reply = self._make_message(
                    session, Role.MODEL, result.text, result.image
                )
            else:
                if not isinstance(result, GatewayFailure):
                    result = GatewayFailure(
                        reason=f"Malformed gateway response: {result!r:.200}"
                    )
                failure = result
                LOGGER.error("AI gateway failed: %s", failure.reason)
                reply = self._make_message(session, Role.MODEL, ERROR_NOTICE)
            session.messages.append(reply)
        finally:
            self._set_state(ChatState.IDLE)

        persist_error = self._commit(session)
        return SendOutcome(
            state=self.state,
            session=session,
            reply_ok=failure is None,
            failure=failure,
            persist_error=persist_error,
        )

    def new_session(self) -> ChatSession:
        """Drop the active session (unsaved) and start a greeted one."""
        self._ensure_idle("start a new session")
        self.session = self._fresh_session()
        self._notify()
        return self.session

    def load_session(self, session: ChatSession) -> None:
        """Make a stored session the active one, as is."""
        self._ensure_idle("switch sessions")
        self.session = session
        self._notify()

    def clear_history(self) -> Optional[PersistenceError]:
        """Wipe every stored session and start over with a greeted session."""
        self._ensure_idle("clear history")
        error: Optional[PersistenceError] = None
        try:
            self.store.clear_all()
        except PersistenceError as e:
            LOGGER.error("Could not clear stored sessions: %s", e)
            self.last_persist_error = error = e
        else:
            self.last_persist_error = None
            self.sessions = []
        self.new_session()
        return error
