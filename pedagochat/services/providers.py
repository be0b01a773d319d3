"""LLM provider strategies and the routing entry point used by the chat engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol

import anyio
import requests
from google import genai
from google.genai import types as gt

from ..config import Settings
from ..models.domain import AIProvider, ChatSession, UrlContextMetadataItem
from .prompt import PromptContext, build_prompt_context

logger = logging.getLogger(__name__)


@dataclass
class AIResponse:
    text: str
    sources: Optional[List[UrlContextMetadataItem]] = None


class ErrorKind(str, Enum):
    AUTH = "auth"
    QUOTA = "quota"
    GENERIC = "generic"


class AIServiceError(Exception):
    """Provider failure reduced to a kind and a message fit for the chat log."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class ProviderHTTPError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class Provider(Protocol):
    async def answer(self, context: PromptContext) -> AIResponse:
        ...


# ─────────────────────────────── error mapping ───────────────────────────────
_AUTH_MARKERS = ("401", "403", "API_KEY_INVALID", "invalid_api_key", "PERMISSION_DENIED")
_QUOTA_MARKERS = ("429", "RESOURCE_EXHAUSTED")


def classify_ai_error(exc: BaseException) -> ErrorKind:
    code = getattr(exc, "code", None) or getattr(exc, "status_code", None)
    if code in (401, 403):
        return ErrorKind.AUTH
    if code == 429:
        return ErrorKind.QUOTA

    msg = str(exc)
    if any(marker in msg for marker in _AUTH_MARKERS):
        return ErrorKind.AUTH
    if any(marker in msg for marker in _QUOTA_MARKERS):
        return ErrorKind.QUOTA
    return ErrorKind.GENERIC


def format_ai_error(exc: BaseException) -> AIServiceError:
    kind = classify_ai_error(exc)
    if kind is ErrorKind.AUTH:
        message = "INVALID_KEY: The API key provided is invalid or expired."
    elif kind is ErrorKind.QUOTA:
        message = "QUOTA_EXCEEDED: Too many requests. Please wait or check your credits."
    else:
        message = str(exc) or "Unknown error while contacting the AI."
    return AIServiceError(kind, message)


# ─────────────────────────────── Provider A ───────────────────────────────
class GeminiProvider:
    """Native multimodal calls through google-genai, with web grounding."""

    def __init__(self, api_key: str, model_name: str, client: Optional[genai.Client] = None,
                 web_search: bool = True, temperature: float = 0.1,
                 pro_thinking_budget: int = 32768) -> None:
        self.model_name = model_name
        self.client = client or genai.Client(api_key=api_key)
        self.web_search = web_search
        self.temperature = temperature
        self.pro_thinking_budget = pro_thinking_budget

    def _build_parts(self, context: PromptContext) -> List[gt.Part]:
        parts = [gt.Part.from_text(text=context.question)]
        for text in context.text_context:
            parts.append(gt.Part.from_text(text=text))
        for attachment in context.attachments:
            parts.append(gt.Part.from_bytes(data=attachment.data, mime_type=attachment.mime_type))
        return parts

    def _build_config(self, context: PromptContext) -> gt.GenerateContentConfig:
        # The search tool cannot be scoped to the listed URLs; the
        # system instruction is the only restriction.
        tools = [gt.Tool(google_search=gt.GoogleSearch())] if self.web_search else None
        thinking = None
        if "pro" in self.model_name:
            thinking = gt.ThinkingConfig(thinking_budget=self.pro_thinking_budget)
        return gt.GenerateContentConfig(
            system_instruction=context.system_instruction,
            tools=tools,
            temperature=self.temperature,
            thinking_config=thinking,
        )

    @staticmethod
    def extract_sources(resp) -> Optional[List[UrlContextMetadataItem]]:
        """Web citations from the first candidate's grounding metadata, if any."""
        candidates = getattr(resp, "candidates", None)
        if not candidates:
            return None
        metadata = getattr(candidates[0], "grounding_metadata", None)
        chunks = getattr(metadata, "grounding_chunks", None) if metadata else None
        if not chunks:
            return None
        return [
            UrlContextMetadataItem(uri=chunk.web.uri, title=chunk.web.title)
            for chunk in chunks
            if getattr(chunk, "web", None) and chunk.web.uri
        ]

    async def answer(self, context: PromptContext) -> AIResponse:
        resp = await self.client.aio.models.generate_content(
            model=self.model_name,
            contents=[gt.Content(role="user", parts=self._build_parts(context))],
            config=self._build_config(context),
        )
        return AIResponse(text=resp.text or "", sources=self.extract_sources(resp))


# ─────────────────────────────── Provider B ───────────────────────────────
class OpenRouterProvider:
    """Plain chat completion through the OpenRouter API (no attachments)."""

    def __init__(self, api_key: str, model_name: str, http: Optional[requests.Session] = None,
                 base_url: str = "https://openrouter.ai/api/v1", app_title: str = "PedagoChat",
                 referer: str = "http://localhost:3000", timeout: Optional[float] = None) -> None:
        self.api_key = api_key
        self.model_name = model_name
        self.http = http or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.app_title = app_title
        self.referer = referer
        self.timeout = timeout

    def build_payload(self, context: PromptContext) -> dict:
        system = context.system_instruction
        if context.text_context:
            system = system + "\n\n" + "\n\n".join(context.text_context)
        return {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": context.question},
            ],
        }

    def _post(self, payload: dict) -> AIResponse:
        resp = self.http.post(
            f"{self.base_url}/chat/completions",
            json=payload,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "HTTP-Referer": self.referer,
                "X-Title": self.app_title,
            },
            timeout=self.timeout,
        )
        if not resp.ok:
            try:
                body = resp.json()
            except ValueError:
                body = None
            error = body.get("error") if isinstance(body, dict) else None
            if isinstance(error, dict):
                message = error.get("message")
            elif isinstance(error, str):
                message = error
            else:
                message = None
            raise ProviderHTTPError(resp.status_code, message or f"OpenRouter error ({resp.status_code})")

        data = resp.json()
        text = data["choices"][0]["message"].get("content")
        return AIResponse(text=text or "No answer received.")

    async def answer(self, context: PromptContext) -> AIResponse:
        return await anyio.to_thread.run_sync(self._post, self.build_payload(context))


# ─────────────────────────────── routing ───────────────────────────────
def get_provider(session: ChatSession, settings: Settings) -> Provider:
    if session.aiProvider == AIProvider.OPENROUTER:
        api_key = session.sessionApiKey or settings.openrouter_api_key or settings.api_key
        if not api_key:
            raise AIServiceError(ErrorKind.AUTH, "INVALID_KEY: No API key is configured for this session.")
        return OpenRouterProvider(
            api_key=api_key,
            model_name=session.modelName or settings.default_openrouter_model,
            base_url=settings.openrouter_base_url,
            app_title=settings.app_title,
            referer=settings.app_referer,
            timeout=settings.http_timeout_seconds,
        )

    api_key = session.sessionApiKey or settings.api_key
    if not api_key:
        raise AIServiceError(ErrorKind.AUTH, "INVALID_KEY: No API key is configured for this session.")
    return GeminiProvider(
        api_key=api_key,
        model_name=session.modelName or settings.default_gemini_model,
        temperature=settings.temperature,
        pro_thinking_budget=settings.pro_thinking_budget,
    )


async def generate_ai_content(question: str, session: ChatSession, settings: Settings,
                              provider: Optional[Provider] = None) -> AIResponse:
    """Answers *question* from the session's knowledge base.

    Every failure surfaces as :class:`AIServiceError`.
    """
    context = build_prompt_context(question, session, settings.answer_language)
    try:
        provider = provider or get_provider(session, settings)
        return await provider.answer(context)
    except AIServiceError:
        raise
    except Exception as exc:
        logger.error("AI provider call failed for session %s: %s", session.id, exc, exc_info=True)
        raise format_ai_error(exc) from exc
