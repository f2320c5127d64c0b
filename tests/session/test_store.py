import asyncio

import pytest

from clawproxy.models import KeyMode, Message
from clawproxy.session import SessionStore


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _store(**kwargs) -> SessionStore:
    kwargs.setdefault("idle_timeout", 1800)
    kwargs.setdefault("sweep_interval", 300)
    kwargs.setdefault("max_messages", 100)
    return SessionStore(**kwargs)


def test_create_get_update_and_delete():
    store = _store()
    created = store.create("s1", model="gpt-4o", provider="openai", api_key="sk-x")
    assert "s1" in store
    assert len(store) == 1
    assert store.get("s1") is created
    assert created.key_mode == KeyMode.BYOK
    assert created.api_key.get_secret_value() == "sk-x"
    assert "sk-x" not in repr(created)

    store.add_message("s1", Message(role="user", content="hello"))
    updated = store.update_config(
        "s1",
        model="claude-opus-4-20250514",
        provider="anthropic",
        api_key="sk-ant",
        key_mode=KeyMode.MANAGED,
        fid=42,
        plan="pro",
        model_role="primary",
    )
    assert updated is created
    assert updated.is_managed
    assert updated.fid == 42
    # Re-configuration keeps the conversation.
    assert [m.content for m in updated.messages] == ["hello"]

    assert store.delete("s1") is True
    assert store.delete("s1") is False
    assert store.get("s1") is None


def test_update_config_creates_missing_session():
    store = _store()
    session = store.update_config("s2", model="m", provider="kimi", api_key="k")
    assert store.get("s2") is session


def test_history_is_a_copy_and_empty_when_absent():
    store = _store()
    assert store.history("missing") == []

    store.create("s1", model="m", provider="openai", api_key="k")
    store.add_message("s1", Message(role="user", content="a"))
    history = store.history("s1")
    history.append(Message(role="assistant", content="b"))
    assert len(store.history("s1")) == 1


def test_add_message_to_deleted_session_is_noop():
    store = _store()
    assert store.add_message("gone", Message(role="user", content="x")) is False
    assert "gone" not in store


def test_message_cap_keeps_most_recent_in_order():
    store = _store(max_messages=3)
    store.create("s1", model="m", provider="openai", api_key="k")
    for i in range(5):
        store.add_message("s1", Message(role="user", content=f"m{i}"))
    assert [m.content for m in store.history("s1")] == ["m2", "m3", "m4"]


def test_sweep_removes_only_idle_sessions():
    clock = FakeClock()
    store = _store(idle_timeout=60, clock=clock)
    store.create("old", model="m", provider="openai", api_key="k")
    clock.now += 30
    store.create("fresh", model="m", provider="openai", api_key="k")

    clock.now += 45  # old idle 75s, fresh idle 45s
    assert store.sweep_expired() == ["old"]
    assert "old" not in store
    assert "fresh" in store

    store.touch("fresh")
    clock.now += 59
    assert store.sweep_expired() == []


@pytest.mark.asyncio
async def test_background_sweep_and_shutdown():
    clock = FakeClock()
    store = _store(idle_timeout=10, sweep_interval=0.01, clock=clock)
    await store.init()
    try:
        store.create("s1", model="m", provider="openai", api_key="k")
        clock.now += 11
        for _ in range(50):
            if "s1" not in store:
                break
            await asyncio.sleep(0.01)
        assert "s1" not in store
    finally:
        store.create("s2", model="m", provider="openai", api_key="k")
        await store.shutdown()
    assert len(store) == 0
