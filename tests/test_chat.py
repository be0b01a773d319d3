import asyncio

import pytest

from pedagochat.models.domain import ChatMessage, MessageSender, UrlContextMetadataItem
from pedagochat.services.api_client import PersistenceState, SessionApiClient
from pedagochat.services.chat import ChatEngine, PLACEHOLDER_TEXT, visible_messages
from pedagochat.services.providers import AIResponse, AIServiceError, ErrorKind
from pedagochat.services.sessions import SessionStore


@pytest.fixture
def store(client):
    store = SessionStore(client)
    store.load()
    return store


@pytest.fixture
def session(store):
    return store.create_session("Maths")


def _engine(store, settings, generate):
    return ChatEngine(store, settings, generate=generate)


def test_successful_answer_replaces_placeholder(store, session, settings, repo):
    async def generate(question, sess, cfg):
        return AIResponse(text="42", sources=[UrlContextMetadataItem(uri="https://example.org")])

    engine = _engine(store, settings, generate)
    final = asyncio.run(engine.send_message("Meaning of life?"))

    log = store.get(session.id).chatMessages
    assert [m.sender for m in log] == [MessageSender.SYSTEM, MessageSender.USER, MessageSender.MODEL]
    assert log[-1].id == final.id
    assert log[-1].text == "42"
    assert log[-1].isLoading is False
    assert log[-1].urlContext[0].uri == "https://example.org"
    assert store.get(session.id).loading_count() == 0
    # persisted to the server
    stored = repo.list_sessions()[0]["chatMessages"]
    assert [m["text"] for m in stored[1:]] == ["Meaning of life?", "42"]


def test_failure_becomes_system_message(store, session, settings):
    async def generate(question, sess, cfg):
        raise AIServiceError(ErrorKind.QUOTA, "QUOTA_EXCEEDED: Too many requests.")

    final = asyncio.run(_engine(store, settings, generate).send_message("Hello"))

    log = store.get(session.id).chatMessages
    assert final.sender == MessageSender.SYSTEM
    assert log[-1].text == "QUOTA_EXCEEDED: Too many requests."
    assert log[-1].isLoading is False
    assert log[-2].sender == MessageSender.USER


def test_unexpected_exception_still_resolves_placeholder(store, session, settings):
    async def generate(question, sess, cfg):
        raise RuntimeError("boom")

    final = asyncio.run(_engine(store, settings, generate).send_message("Hello"))

    assert final.sender == MessageSender.SYSTEM
    assert store.get(session.id).loading_count() == 0


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_blank_message_rejected(store, session, settings, text):
    async def generate(question, sess, cfg):
        raise AssertionError("must not be called")

    assert asyncio.run(_engine(store, settings, generate).send_message(text)) is None
    assert len(store.get(session.id).chatMessages) == 1


def test_no_active_session_rejected(client, settings):
    store = SessionStore(client)
    store.load()

    async def generate(question, sess, cfg):
        raise AssertionError("must not be called")

    assert asyncio.run(_engine(store, settings, generate).send_message("Hi")) is None


def test_second_send_while_pending_is_ignored(store, session, settings):
    release = None

    async def generate(question, sess, cfg):
        await release.wait()
        return AIResponse(text="done")

    engine = _engine(store, settings, generate)

    async def scenario():
        nonlocal release
        release = asyncio.Event()
        first = asyncio.create_task(engine.send_message("first"))
        await asyncio.sleep(0)
        assert engine.is_pending(session.id)

        second = await engine.send_message("second")
        assert second is None
        log = store.get(session.id).chatMessages
        assert [m.text for m in log[1:]] == ["first", PLACEHOLDER_TEXT]
        assert store.get(session.id).loading_count() == 1

        release.set()
        return await first

    final = asyncio.run(scenario())
    assert final.text == "done"
    assert not engine.is_pending(session.id)
    assert store.get(session.id).loading_count() == 0


def test_answer_lands_after_session_switch(store, session, settings):
    other = store.create_session("Other")
    store.select_session(session.id)

    async def generate(question, sess, cfg):
        store.select_session(other.id)
        return AIResponse(text="late answer")

    asyncio.run(_engine(store, settings, generate).send_message("Q"))

    assert store.get(session.id).chatMessages[-1].text == "late answer"
    assert len(store.get(other.id).chatMessages) == 1


def test_persistence_outage_keeps_in_memory_answer(store, session, settings, http):
    async def generate(question, sess, cfg):
        http.down = True
        return AIResponse(text="kept")

    final = asyncio.run(_engine(store, settings, generate).send_message("Q"))

    assert final.text == "kept"
    assert store.get(session.id).chatMessages[-1].text == "kept"
    assert store.is_local_mode


def test_answer_during_outage_lands_in_local_storage(store, session, settings, http, storage):
    async def generate(question, sess, cfg):
        http.down = True
        return AIResponse(text="saved offline")

    asyncio.run(_engine(store, settings, generate).send_message("Q"))

    offline = SessionApiClient("http://testserver/api", storage, state=PersistenceState(), http=http)
    saved = offline.fetch_sessions()
    assert [s.id for s in saved] == [session.id]
    assert [m.text for m in saved[0].chatMessages[1:]] == ["Q", "saved offline"]
    assert saved[0].loading_count() == 0


def test_visitor_scoping(store, session, settings):
    async def generate(question, sess, cfg):
        return AIResponse(text=f"re: {question}")

    engine = _engine(store, settings, generate)
    asyncio.run(engine.send_message("from alice", visitor_id="alice"))
    asyncio.run(engine.send_message("from bob", visitor_id="bob"))

    log = store.get(session.id).chatMessages
    alice_view = [m.text for m in visible_messages(log, "alice")]
    assert alice_view == [log[0].text, "from alice", "re: from alice"]
    assert len(visible_messages(log, None)) == 5


def test_visible_messages_keeps_system_messages():
    messages = [
        ChatMessage(id="1", text="welcome", sender=MessageSender.SYSTEM),
        ChatMessage(id="2", text="hi", sender=MessageSender.USER, visitorId="x"),
        ChatMessage(id="3", text="error", sender=MessageSender.SYSTEM, visitorId="y"),
    ]
    assert [m.id for m in visible_messages(messages, "z")] == ["1", "3"]
