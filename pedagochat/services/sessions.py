"""Client-side session state: ordered sessions, active selection, admin actions."""

from __future__ import annotations

import asyncio
import base64
import logging
import uuid
from typing import Any, Dict, List, Optional

import anyio

from ..models.domain import (
    AIProvider,
    ChatMessage,
    ChatSession,
    KnowledgeBase,
    KnowledgeFile,
    KnowledgeText,
    MessageSender,
    UrlItem,
)
from .api_client import SessionApiClient, SessionNotFound, build_client

logger = logging.getLogger(__name__)

_SETTINGS_FIELDS = ("name", "assistantName", "aiProvider", "modelName", "sessionApiKey")


class KnowledgeBaseError(ValueError):
    pass


class DuplicateUrlError(KnowledgeBaseError):
    pass


class SessionStore:
    """Holds every chat session and the active selection.

    Mutations apply in memory first and are then handed to the
    persistence client; a persistence failure is logged and never rolls
    back the in-memory state.
    """

    def __init__(self, client: SessionApiClient, poll_interval: float = 10.0) -> None:
        self.client = client
        self.poll_interval = poll_interval
        self.sessions: List[ChatSession] = []
        self.active_session_id: Optional[str] = None

    # ─────────────────────────── lookup / selection ───────────────────────────
    @property
    def is_local_mode(self) -> bool:
        return self.client.is_local_mode()

    @property
    def active_session(self) -> Optional[ChatSession]:
        return self.get(self.active_session_id) if self.active_session_id else None

    def get(self, session_id: str) -> Optional[ChatSession]:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def _require(self, session_id: str) -> ChatSession:
        session = self.get(session_id)
        if session is None:
            raise KeyError(f"Unknown session {session_id}")
        return session

    def _put(self, updated: ChatSession) -> ChatSession:
        self.sessions = [updated if s.id == updated.id else s for s in self.sessions]
        return updated

    def select_session(self, session_id: str) -> ChatSession:
        session = self._require(session_id)
        self.active_session_id = session_id
        return session

    # ─────────────────────────── loading / refresh ───────────────────────────
    def load(self) -> List[ChatSession]:
        self.sessions = self.client.fetch_sessions()
        if self.active_session_id is None or self.get(self.active_session_id) is None:
            self.active_session_id = self.sessions[0].id if self.sessions else None
        return self.sessions

    def refresh(self) -> List[ChatSession]:
        # Last writer wins: a poll may overwrite an edit that has not
        # reached the server yet.
        return self.load()

    async def poll(self, stop_event: asyncio.Event, interval: Optional[float] = None) -> None:
        """Re-fetches the session list every *interval* seconds until stopped."""
        if interval is None:
            interval = self.poll_interval
        while not stop_event.is_set():
            await anyio.to_thread.run_sync(self.refresh)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    # ─────────────────────────── persistence ───────────────────────────
    def persist(self, session_id: str, fields: Optional[List[str]] = None) -> None:
        session = self.get(session_id)
        if session is None:
            logger.info("Session %s vanished before it could be saved", session_id)
            return
        fields = fields or ["knowledgeBase", "chatMessages"]
        updates: Dict[str, Any] = {f: getattr(session, f) for f in fields}
        try:
            self.client.update_session(session_id, updates)
        except SessionNotFound:
            logger.warning("Session %s missing from local storage, saving it whole", session_id)
            self.client.create_session(session)

    # ─────────────────────────── session lifecycle ───────────────────────────
    def create_session(self, name: str) -> ChatSession:
        name = name.strip()
        if not name:
            raise ValueError("Session name must not be empty")
        session = ChatSession(
            id=f"chat-{uuid.uuid4().hex}",
            name=name,
            knowledgeBase=KnowledgeBase(),
            chatMessages=[
                ChatMessage(
                    id=f"welcome-{uuid.uuid4().hex}",
                    text=f"Welcome to the **{name}** session! Use the knowledge base tab to configure its sources.",
                    sender=MessageSender.SYSTEM,
                )
            ],
        )
        self.sessions.append(session)
        self.active_session_id = session.id
        self.client.create_session(session)
        logger.info("Created session %s (%s)", session.id, name)
        return session

    def delete_session(self, session_id: str) -> None:
        self.sessions = [s for s in self.sessions if s.id != session_id]
        if self.active_session_id == session_id:
            self.active_session_id = self.sessions[0].id if self.sessions else None
        self.client.delete_session(session_id)

    def update_settings(self, session_id: str, **fields: Any) -> ChatSession:
        """Updates assistant name, provider, model or API key; used by the next message."""
        unknown = set(fields) - set(_SETTINGS_FIELDS)
        if unknown:
            raise ValueError(f"Not a session setting: {', '.join(sorted(unknown))}")
        if "aiProvider" in fields:
            fields["aiProvider"] = AIProvider(fields["aiProvider"])
        session = self._put(self._require(session_id).model_copy(update=fields))
        self.persist(session_id, list(fields))
        return session

    # ─────────────────────────── message log ───────────────────────────
    def append_messages(self, session_id: str, messages: List[ChatMessage]) -> ChatSession:
        session = self._require(session_id)
        return self._put(session.model_copy(update={"chatMessages": [*session.chatMessages, *messages]}))

    def replace_message(self, session_id: str, message_id: str, message: ChatMessage) -> bool:
        """Swaps the message with *message_id* in place; False if it is gone."""
        session = self.get(session_id)
        if session is None:
            return False
        replaced = False
        log = []
        for m in session.chatMessages:
            if not replaced and m.id == message_id:
                log.append(message)
                replaced = True
            else:
                log.append(m)
        if replaced:
            self._put(session.model_copy(update={"chatMessages": log}))
        return replaced

    # ─────────────────────────── knowledge base ───────────────────────────
    def _update_kb(self, session_id: str, **kb_fields: Any) -> KnowledgeBase:
        session = self._require(session_id)
        kb = session.knowledgeBase.model_copy(update=kb_fields)
        self._put(session.model_copy(update={"knowledgeBase": kb}))
        self.persist(session_id, ["knowledgeBase"])
        return kb

    def add_url(self, session_id: str, url: str, crawl_whole_site: bool = False) -> UrlItem:
        url = url.strip()
        if not url:
            raise KnowledgeBaseError("URL must not be empty")
        kb = self._require(session_id).knowledgeBase
        if kb.has_url(url):
            raise DuplicateUrlError(f"{url} is already in the knowledge base")
        item = UrlItem(url=url, crawlWholeSite=crawl_whole_site)
        self._update_kb(session_id, urls=[*kb.urls, item])
        return item

    def remove_url(self, session_id: str, url: str) -> None:
        kb = self._require(session_id).knowledgeBase
        self._update_kb(session_id, urls=[u for u in kb.urls if u.url != url])

    def add_file(self, session_id: str, name: str, mime_type: str, data: bytes) -> KnowledgeFile:
        kb = self._require(session_id).knowledgeBase
        item = KnowledgeFile(
            id=uuid.uuid4().hex,
            name=name,
            type=mime_type or "application/octet-stream",
            size=len(data),
            base64Data=base64.b64encode(data).decode("ascii"),
        )
        self._update_kb(session_id, files=[*kb.files, item])
        return item

    def remove_file(self, session_id: str, file_id: str) -> None:
        kb = self._require(session_id).knowledgeBase
        self._update_kb(session_id, files=[f for f in kb.files if f.id != file_id])

    def add_text(self, session_id: str, title: str, content: str) -> KnowledgeText:
        if not title.strip() or not content.strip():
            raise KnowledgeBaseError("A note needs a title and a body")
        kb = self._require(session_id).knowledgeBase
        item = KnowledgeText(id=uuid.uuid4().hex, title=title.strip(), content=content)
        self._update_kb(session_id, rawTexts=[*kb.rawTexts, item])
        return item

    def remove_text(self, session_id: str, text_id: str) -> None:
        kb = self._require(session_id).knowledgeBase
        self._update_kb(session_id, rawTexts=[t for t in kb.rawTexts if t.id != text_id])


def build_session_store(settings) -> SessionStore:
    return SessionStore(build_client(settings), poll_interval=settings.poll_interval_seconds)
