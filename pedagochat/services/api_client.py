"""Session persistence client with automatic, sticky local-storage fallback.

The client talks to the REST session store while it is reachable. Any
failure flips it into *local mode*, where sessions are read from and
written to a :class:`LocalStorage` key instead. Local mode is only left
again by a successful :meth:`SessionApiClient.fetch_sessions`.

Every successful server call is mirrored into the local copy, so local
mode starts from the last known server state.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import requests
from pydantic_core import to_jsonable_python

from ..models.domain import ChatSession, parse_sessions, serialize_sessions
from .local_storage import LocalStorage

logger = logging.getLogger(__name__)

LOCAL_STORAGE_KEY = "pedagochat_sessions_local"


class SessionNotFound(Exception):
    """Raised when a local-mode update targets a session absent locally."""


class PersistenceState:
    """Holds the sticky local-mode flag shared by one client."""

    def __init__(self, local_mode: bool = False) -> None:
        self.local_mode = local_mode

    def enter_local_mode(self, reason: str) -> None:
        if not self.local_mode:
            logger.warning("Server unreachable (%s), switching to local storage mode", reason)
        self.local_mode = True

    def leave_local_mode(self) -> None:
        if self.local_mode:
            logger.info("Server reachable again, leaving local storage mode")
        self.local_mode = False

    def reset(self) -> None:
        self.local_mode = False


class SessionApiClient:
    """Single read/write interface over sessions, remote or local."""

    def __init__(
        self,
        base_url: str,
        storage: LocalStorage,
        state: Optional[PersistenceState] = None,
        http: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.storage = storage
        self.state = state or PersistenceState()
        self.http = http or requests.Session()
        self.timeout = timeout

    def is_local_mode(self) -> bool:
        return self.state.local_mode

    # ─────────────────────────── local copy helpers ───────────────────────────
    def _get_local_sessions(self) -> List[ChatSession]:
        raw = self.storage.get_item(LOCAL_STORAGE_KEY)
        if not raw:
            return []
        try:
            return parse_sessions(json.loads(raw))
        except ValueError as exc:
            logger.error("Discarding unreadable local sessions: %s", exc)
            return []

    def _save_local_sessions(self, sessions: List[ChatSession]) -> None:
        self.storage.set_item(LOCAL_STORAGE_KEY, json.dumps(serialize_sessions(sessions)))

    def _local_create(self, session: ChatSession) -> ChatSession:
        self._mirror_one(session)
        return session

    def _mirror_one(self, session: ChatSession) -> None:
        sessions = self._get_local_sessions()
        for index, existing in enumerate(sessions):
            if existing.id == session.id:
                sessions[index] = session
                break
        else:
            sessions.append(session)
        self._save_local_sessions(sessions)

    def _local_update(self, session_id: str, updates: Dict[str, Any]) -> ChatSession:
        sessions = self._get_local_sessions()
        for index, existing in enumerate(sessions):
            if existing.id == session_id:
                merged = {**existing.model_dump(mode="json", exclude_none=True), **updates, "id": session_id}
                sessions[index] = ChatSession.model_validate(merged)
                self._save_local_sessions(sessions)
                return sessions[index]
        raise SessionNotFound(f"Session {session_id} not found in local storage")

    def _local_delete(self, session_id: str) -> None:
        sessions = [s for s in self._get_local_sessions() if s.id != session_id]
        self._save_local_sessions(sessions)

    def _url(self, *parts: str) -> str:
        return "/".join([self.base_url, "sessions", *parts])

    # ───────────────────────────── public surface ─────────────────────────────
    def fetch_sessions(self) -> List[ChatSession]:
        try:
            resp = self.http.get(self._url(), timeout=self.timeout)
            resp.raise_for_status()
            sessions = parse_sessions(resp.json())
        except (requests.RequestException, ValueError) as exc:
            self.state.enter_local_mode(str(exc))
            return self._get_local_sessions()
        self.state.leave_local_mode()
        self._save_local_sessions(sessions)
        return sessions

    def create_session(self, session: ChatSession) -> ChatSession:
        if self.state.local_mode:
            return self._local_create(session)

        try:
            resp = self.http.post(
                self._url(),
                json=session.model_dump(mode="json", exclude_none=True),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            created = ChatSession.model_validate(resp.json())
        except (requests.RequestException, ValueError) as exc:
            self.state.enter_local_mode(str(exc))
            return self._local_create(session)
        self._mirror_one(created)
        return created

    def update_session(self, session_id: str, updates: Dict[str, Any]) -> ChatSession:
        payload = to_jsonable_python(updates)
        if self.state.local_mode:
            return self._local_update(session_id, payload)

        try:
            resp = self.http.put(self._url(session_id), json=payload, timeout=self.timeout)
            resp.raise_for_status()
            updated = ChatSession.model_validate(resp.json())
        except (requests.RequestException, ValueError) as exc:
            self.state.enter_local_mode(str(exc))
            return self._local_update(session_id, payload)
        self._mirror_one(updated)
        return updated

    def delete_session(self, session_id: str) -> None:
        if self.state.local_mode:
            self._local_delete(session_id)
            return

        try:
            resp = self.http.delete(self._url(session_id), timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            self.state.enter_local_mode(str(exc))
        self._local_delete(session_id)


def build_client(settings) -> SessionApiClient:
    """Client wired from application settings, with its own fresh state."""
    return SessionApiClient(
        base_url=settings.api_base_url,
        storage=LocalStorage(settings.local_storage_path),
        state=PersistenceState(),
        timeout=settings.http_timeout_seconds,
    )
