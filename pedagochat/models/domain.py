import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, TypeAdapter, field_validator


class MessageSender(str, Enum):
    USER = "user"
    MODEL = "model"
    SYSTEM = "system"


class AIProvider(str, Enum):
    GEMINI = "gemini"
    OPENROUTER = "openrouter"


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _ensure_aware(v: datetime.datetime) -> datetime.datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=datetime.timezone.utc)
    return v


class UrlItem(BaseModel):
    url: str
    crawlWholeSite: bool = False


class UrlContextMetadataItem(BaseModel):
    uri: str
    title: Optional[str] = None


class KnowledgeFile(BaseModel):
    id: str
    name: str
    type: str           # MIME type
    size: int = 0
    base64Data: str


class KnowledgeText(BaseModel):
    id: str
    title: str
    content: str
    createdAt: datetime.datetime = Field(default_factory=utcnow)

    @field_validator("createdAt")
    @classmethod
    def _created_at_utc(cls, v):
        return _ensure_aware(v)


class KnowledgeBase(BaseModel):
    urls: List[UrlItem] = []
    files: List[KnowledgeFile] = []
    rawTexts: List[KnowledgeText] = []

    def item_count(self) -> int:
        return len(self.urls) + len(self.files) + len(self.rawTexts)

    def is_empty(self) -> bool:
        return self.item_count() == 0

    def has_url(self, url: str) -> bool:
        return any(u.url == url for u in self.urls)


class ChatMessage(BaseModel):
    id: str
    text: str
    sender: MessageSender
    timestamp: datetime.datetime = Field(default_factory=utcnow)
    isLoading: Optional[bool] = None
    urlContext: Optional[List[UrlContextMetadataItem]] = None
    visitorId: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, v):
        return _ensure_aware(v)


class ChatSession(BaseModel):
    id: str
    name: str
    knowledgeBase: KnowledgeBase = Field(default_factory=KnowledgeBase)
    chatMessages: List[ChatMessage] = []
    assistantName: str = "PedagoChat"
    aiProvider: AIProvider = AIProvider.GEMINI
    modelName: Optional[str] = None
    sessionApiKey: Optional[str] = None

    def loading_count(self) -> int:
        return sum(1 for m in self.chatMessages if m.isLoading)


_session_list = TypeAdapter(List[ChatSession])


def serialize_sessions(sessions: List[ChatSession]) -> List[Dict[str, Any]]:
    """JSON-compatible form of a session list; datetimes become ISO strings."""
    return [s.model_dump(mode="json", exclude_none=True) for s in sessions]


def parse_sessions(data: Any) -> List[ChatSession]:
    """Re-hydrate sessions (and their datetimes) from decoded JSON."""
    return _session_list.validate_python(data or [])
