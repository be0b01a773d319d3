"""Chat engine: placeholder insertion, provider call and reconciliation."""

from __future__ import annotations

import logging
import uuid
from typing import Awaitable, Callable, Iterable, List, Optional, Set

import anyio

from ..config import Settings
from ..models.domain import ChatMessage, ChatSession, MessageSender
from .providers import AIResponse, AIServiceError, format_ai_error, generate_ai_content
from .sessions import SessionStore

logger = logging.getLogger(__name__)

PLACEHOLDER_TEXT = "Thinking..."
EMPTY_ANSWER_TEXT = "Sorry, I could not generate an answer."

Generate = Callable[[str, ChatSession, Settings], Awaitable[AIResponse]]


def visible_messages(messages: Iterable[ChatMessage], visitor_id: Optional[str]) -> List[ChatMessage]:
    """Messages a viewer may see: system ones plus their own conversation.

    ``visitor_id=None`` is the admin view and sees the whole log.
    """
    if visitor_id is None:
        return list(messages)
    return [m for m in messages if m.sender == MessageSender.SYSTEM or m.visitorId == visitor_id]


class ChatEngine:
    """Sends questions for a session, one outstanding request per session."""

    def __init__(self, store: SessionStore, settings: Settings,
                 generate: Generate = generate_ai_content) -> None:
        self.store = store
        self.settings = settings
        self.generate = generate
        self._pending: Set[str] = set()

    def is_pending(self, session_id: str) -> bool:
        return session_id in self._pending

    async def send_message(self, text: str, session_id: Optional[str] = None,
                           visitor_id: Optional[str] = None) -> Optional[ChatMessage]:
        """Returns the resolved answer (or system error) message, None if rejected."""
        session_id = session_id or self.store.active_session_id
        session = self.store.get(session_id) if session_id else None
        if not text or not text.strip():
            return None
        if session is None:
            logger.info("Ignoring message: no active session")
            return None
        if self.is_pending(session.id):
            logger.info("Ignoring message for session %s: a request is already pending", session.id)
            return None

        user_msg = ChatMessage(
            id=f"u-{uuid.uuid4().hex}",
            text=text,
            sender=MessageSender.USER,
            visitorId=visitor_id,
        )
        placeholder = ChatMessage(
            id=f"m-{uuid.uuid4().hex}",
            text=PLACEHOLDER_TEXT,
            sender=MessageSender.MODEL,
            isLoading=True,
            visitorId=visitor_id,
        )
        self._pending.add(session.id)
        self.store.append_messages(session.id, [user_msg, placeholder])

        try:
            response = await self.generate(text, session, self.settings)
            final = placeholder.model_copy(update={
                "text": response.text or EMPTY_ANSWER_TEXT,
                "isLoading": False,
                "urlContext": response.sources,
            })
        except AIServiceError as e:
            logger.warning("AI request for session %s failed (%s): %s", session.id, e.kind.value, e.message)
            final = placeholder.model_copy(update={
                "text": e.message,
                "sender": MessageSender.SYSTEM,
                "isLoading": False,
            })
        except Exception as e:
            logger.error("Unexpected failure answering in session %s: %s", session.id, e, exc_info=True)
            error = format_ai_error(e)
            final = placeholder.model_copy(update={
                "text": error.message,
                "sender": MessageSender.SYSTEM,
                "isLoading": False,
            })
        finally:
            self._pending.discard(session.id)

        # No request fencing: the answer lands even if the user switched sessions.
        if not self.store.replace_message(session.id, placeholder.id, final):
            logger.info("Session %s was removed before its answer arrived", session.id)
            return final

        await anyio.to_thread.run_sync(self.store.persist, session.id)
        return final
