import asyncio

import pytest

from dominus.errors import BusyError, InvalidMessageError, PersistenceError
from dominus.models import (
    ChatState,
    GatewayFailure,
    GatewayReply,
    ImageInput,
    Role,
)
from dominus.persistence.session_store import SessionStore
from dominus.prompts import ERROR_NOTICE, GREETING, NEW_SESSION_TITLE


def test_fresh_controller_has_greeted_unsaved_session(controller, store):
    msgs = controller.session.messages
    assert len(msgs) == 1
    assert msgs[0].role == Role.MODEL
    assert msgs[0].text == GREETING
    assert controller.state is ChatState.IDLE
    assert store.list_sessions() == []
    assert controller.sessions == []


def test_send_appends_user_then_model(controller, gateway, run):
    outcome = run(controller.send_message("hello"))

    msgs = controller.session.messages
    assert len(msgs) == 3
    assert (msgs[1].role, msgs[1].text) == (Role.USER, "hello")
    assert (msgs[2].role, msgs[2].text) == (Role.MODEL, "ok")
    assert outcome.reply_ok is True
    assert outcome.state is ChatState.IDLE
    assert outcome.session is controller.session
    assert outcome.persist_error is None


def test_gateway_sees_history_including_new_user_turn(controller, gateway, run):
    image = ImageInput(data="aGVsbG8=", mime_type="image/jpeg")
    run(controller.send_message("look at this", image))

    [call] = gateway.calls
    assert call["text"] == "look at this"
    assert call["image"] == image
    assert [m.role for m in call["history"]] == [Role.MODEL, Role.USER]
    assert call["history"][-1].image == "data:image/jpeg;base64,aGVsbG8="


def test_bot_request_scenario_is_committed(
    make_controller, store, fake_gateway_cls, run
):
    gateway = fake_gateway_cls(
        result=GatewayReply(text="Here is your bot", image="<payload>")
    )
    controller = make_controller(store, gateway)

    outcome = run(controller.send_message("make me a bot"))

    msgs = outcome.session.messages
    assert [m.role for m in msgs] == [Role.MODEL, Role.USER, Role.MODEL]
    assert msgs[0].text == GREETING
    assert msgs[1].text == "make me a bot"
    assert msgs[1].image is None
    assert msgs[2].text == "Here is your bot"
    assert msgs[2].image == "<payload>"

    stored = {s.id: s for s in store.list_sessions()}
    assert controller.session.id in stored
    assert stored[controller.session.id].messages == msgs
    assert [s.id for s in controller.sessions] == [controller.session.id]


def test_transport_fault_becomes_fallback_turn(
    make_controller, store, fake_gateway_cls, run
):
    gateway = fake_gateway_cls(error=ConnectionError("network down"))
    controller = make_controller(store, gateway)

    outcome = run(controller.send_message("make me a bot"))

    msgs = controller.session.messages
    assert len(msgs) == 3
    assert msgs[1].text == "make me a bot"
    assert msgs[2].role == Role.MODEL
    assert msgs[2].text == ERROR_NOTICE
    assert msgs[2].image is None
    assert controller.state is ChatState.IDLE
    assert outcome.reply_ok is False
    assert isinstance(outcome.failure.error, ConnectionError)
    assert store.get_session(controller.session.id).messages == msgs


def test_failure_result_takes_fallback_branch(
    make_controller, store, fake_gateway_cls, run
):
    gateway = fake_gateway_cls(result=GatewayFailure(reason="quota exceeded"))
    controller = make_controller(store, gateway)

    outcome = run(controller.send_message("hi"))

    assert controller.session.messages[-1].text == ERROR_NOTICE
    assert outcome.failure.reason == "quota exceeded"
    assert controller.state is ChatState.IDLE


def test_synchronous_raise_still_returns_to_idle(
    make_controller, store, sync_raising_gateway, run
):
    controller = make_controller(store, sync_raising_gateway)

    outcome = run(controller.send_message("hi"))

    assert sync_raising_gateway.calls == 1
    assert len(controller.session.messages) == 3
    assert controller.session.messages[-1].text == ERROR_NOTICE
    assert outcome.state is ChatState.IDLE


def test_malformed_gateway_response_is_a_failure(
    make_controller, store, fake_gateway_cls, run
):
    gateway = fake_gateway_cls(result={"text": "not a reply object"})
    controller = make_controller(store, gateway)

    outcome = run(controller.send_message("hi"))

    assert outcome.reply_ok is False
    assert "Malformed" in outcome.failure.reason
    assert controller.session.messages[-1].text == ERROR_NOTICE


def test_second_send_while_sending_is_rejected(controller, gateway):
    async def scenario():
        gateway.release = asyncio.Event()
        first = asyncio.create_task(controller.send_message("first"))
        while not gateway.calls:
            await asyncio.sleep(0)

        assert controller.state is ChatState.SENDING
        assert len(controller.session.messages) == 2
        with pytest.raises(BusyError):
            await controller.send_message("second")
        with pytest.raises(BusyError):
            controller.new_session()
        assert len(controller.session.messages) == 2
        assert len(gateway.calls) == 1

        gateway.release.set()
        return await first

    outcome = asyncio.run(scenario())
    assert outcome.state is ChatState.IDLE
    assert [m.text for m in outcome.session.messages[1:]] == ["first", "ok"]


def test_listeners_observe_sending_then_idle(controller, run):
    seen = []
    unsubscribe = controller.subscribe(lambda c: seen.append(c.state))

    run(controller.send_message("hi"))
    assert seen == [ChatState.SENDING, ChatState.IDLE]

    unsubscribe()
    run(controller.send_message("again"))
    assert len(seen) == 2


def test_timestamps_never_go_backwards(store, gateway, id_factory):
    from dominus.controller import ChatController

    ticks = iter([500, 400, 300, 900])
    controller = ChatController(
        store, gateway, id_factory=id_factory, clock=lambda: next(ticks)
    )

    asyncio.run(controller.send_message("hi"))

    stamps = [m.timestamp for m in controller.session.messages]
    assert stamps == sorted(stamps)


def test_first_user_message_names_the_session(controller, run):
    assert controller.session.title == NEW_SESSION_TITLE

    run(controller.send_message("Build a support bot for my bakery website please"))
    assert controller.session.title == "Build a support bot for my bak..."

    run(controller.send_message("and make it friendly"))
    assert controller.session.title == "Build a support bot for my bak..."


def test_persistence_failure_is_reported_not_raised(
    make_controller, id_factory, clock, gateway, broken_backend_cls, run
):
    backend = broken_backend_cls(fail_set=True)
    store = SessionStore(backend, id_factory=id_factory, clock=clock)
    controller = make_controller(store, gateway)

    outcome = run(controller.send_message("hi"))

    assert isinstance(outcome.persist_error, PersistenceError)
    assert controller.last_persist_error is outcome.persist_error
    assert len(controller.session.messages) == 3
    assert controller.state is ChatState.IDLE

    backend.fail_set = False
    outcome = run(controller.send_message("retry"))
    assert outcome.persist_error is None
    assert controller.last_persist_error is None
    assert len(store.get_session(controller.session.id).messages) == 5


def test_unreadable_store_still_gives_usable_controller(
    make_controller, id_factory, clock, gateway, broken_backend_cls
):
    store = SessionStore(
        broken_backend_cls(fail_get=True), id_factory=id_factory, clock=clock
    )
    controller = make_controller(store, gateway)

    assert isinstance(controller.last_persist_error, PersistenceError)
    assert controller.sessions == []
    assert controller.session.messages[0].text == GREETING


def test_new_session_leaves_saved_sessions_alone(controller, store, run):
    run(controller.send_message("hi"))
    first_id = controller.session.id

    fresh = controller.new_session()

    assert fresh is controller.session
    assert fresh.id != first_id
    assert [m.text for m in fresh.messages] == [GREETING]
    assert [s.id for s in store.list_sessions()] == [first_id]


def test_load_session_resumes_and_overwrites_in_place(controller, store, run):
    run(controller.send_message("hi"))
    saved_id = controller.session.id
    controller.new_session()

    [saved] = store.list_sessions()
    controller.load_session(saved)
    assert controller.session.id == saved_id
    assert len(controller.session.messages) == 3

    run(controller.send_message("more"))

    [stored] = store.list_sessions()
    assert stored.id == saved_id
    assert [m.text for m in stored.messages] == [GREETING, "hi", "ok", "more", "ok"]


def test_clear_history_wipes_store_and_regreets(controller, store, run):
    run(controller.send_message("one"))
    controller.new_session()
    run(controller.send_message("two"))
    assert len(store.list_sessions()) == 2

    assert controller.clear_history() is None

    assert store.list_sessions() == []
    assert controller.sessions == []
    assert [m.text for m in controller.session.messages] == [GREETING]


def test_clear_history_failure_is_returned(
    make_controller, id_factory, clock, gateway, broken_backend_cls
):
    store = SessionStore(
        broken_backend_cls(fail_delete=True), id_factory=id_factory, clock=clock
    )
    controller = make_controller(store, gateway)

    error = controller.clear_history()

    assert isinstance(error, PersistenceError)
    assert controller.last_persist_error is error
    assert len(controller.session.messages) == 1


def test_invalid_input_is_rejected_without_mutation(controller, gateway, run):
    with pytest.raises(InvalidMessageError):
        run(controller.send_message("   "))

    assert len(controller.session.messages) == 1
    assert gateway.calls == []
    assert controller.state is ChatState.IDLE


def test_image_only_turn_is_allowed(controller, run):
    run(controller.send_message("", ImageInput(data="aGk=")))

    user = controller.session.messages[1]
    assert user.text == ""
    assert user.image == "data:image/png;base64,aGk="
    assert controller.session.title == NEW_SESSION_TITLE


def test_empty_reply_counts_as_failure(make_controller, store, fake_gateway_cls, run):
    controller = make_controller(store, fake_gateway_cls(result=GatewayReply(text="")))

    outcome = run(controller.send_message("hi"))

    assert outcome.reply_ok is False
    assert controller.session.messages[-1].text == ERROR_NOTICE


def test_listing_failure_after_save_is_not_a_save_error(
    make_controller, id_factory, clock, gateway, broken_backend_cls, run
):
    class UnreadableAfterWrite(broken_backend_cls):
        def set(self, key, value):
            super().set(key, value)
            self.fail_get = True

    backend = UnreadableAfterWrite()
    store = SessionStore(backend, id_factory=id_factory, clock=clock)
    controller = make_controller(store, gateway)

    outcome = run(controller.send_message("hi"))

    assert outcome.persist_error is None
    assert isinstance(controller.last_persist_error, PersistenceError)
    backend.fail_get = False
    stored = store.get_session(controller.session.id)
    assert stored.messages == outcome.session.messages
