import asyncio
import itertools

import pytest

from dominus.controller import ChatController
from dominus.models import GatewayReply
from dominus.persistence.backends import InMemoryBackend
from dominus.persistence.session_store import SessionStore


class FakeGateway:
    """Records every call; answers with `result`, or raises `error`."""

    def __init__(self, result=None, error=None):
        self.result = result or GatewayReply(text="ok")
        self.error = error
        self.calls = []
        self.release = None

    async def generate(self, text, history, image=None):
        self.calls.append({"text": text, "history": list(history), "image": image})
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.result


class SyncRaisingGateway:
    """Blows up before a coroutine even exists."""

    def __init__(self):
        self.calls = 0

    def generate(self, text, history, image=None):
        self.calls += 1
        raise RuntimeError("boom")


class BrokenBackend(InMemoryBackend):
    def __init__(self, *, fail_get=False, fail_set=False, fail_delete=False):
        super().__init__()
        self.fail_get = fail_get
        self.fail_set = fail_set
        self.fail_delete = fail_delete

    def get(self, key):
        if self.fail_get:
            raise OSError("disk unreadable")
        return super().get(key)

    def set(self, key, value):
        if self.fail_set:
            raise OSError("disk full")
        super().set(key, value)

    def delete(self, key):
        if self.fail_delete:
            raise OSError("read-only medium")
        super().delete(key)


@pytest.fixture
def id_factory():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def clock():
    ticks = itertools.count(1_700_000_000_000, 10)
    return lambda: next(ticks)


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def store(backend, id_factory, clock):
    return SessionStore(backend, id_factory=id_factory, clock=clock)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def make_controller(id_factory, clock):
    def _make(store, gateway):
        return ChatController(store, gateway, id_factory=id_factory, clock=clock)

    return _make


@pytest.fixture
def controller(make_controller, store, gateway):
    return make_controller(store, gateway)


@pytest.fixture
def run():
    return asyncio.run


@pytest.fixture
def fake_gateway_cls():
    return FakeGateway


@pytest.fixture
def sync_raising_gateway():
    return SyncRaisingGateway()


@pytest.fixture
def broken_backend_cls():
    return BrokenBackend
