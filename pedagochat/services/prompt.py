"""System-instruction and context assembly from a session's knowledge base."""

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import List

from ..models.domain import ChatSession, KnowledgeBase, KnowledgeFile

logger = logging.getLogger(__name__)

INLINE_MIME_PREFIXES = ("image/", "video/")
INLINE_MIME_TYPES = ("application/pdf",)


@dataclass
class InlineAttachment:
    name: str
    mime_type: str
    data: bytes


@dataclass
class PromptContext:
    question: str
    system_instruction: str
    attachments: List[InlineAttachment] = field(default_factory=list)
    text_context: List[str] = field(default_factory=list)


def is_inline_file(file: KnowledgeFile) -> bool:
    """True for files the multimodal provider receives as binary parts."""
    return file.type.startswith(INLINE_MIME_PREFIXES) or file.type in INLINE_MIME_TYPES


def _format_files(kb: KnowledgeBase) -> str:
    if not kb.files:
        return "- No attached document available."
    return "\n".join(f"- {f.name}" for f in kb.files)


def _format_notes(kb: KnowledgeBase) -> str:
    if not kb.rawTexts:
        return "- No teacher note available."
    return "\n\n".join(f"NOTE [{t.title}]: {t.content}" for t in kb.rawTexts)


def _format_urls(kb: KnowledgeBase) -> str:
    if not kb.urls:
        return "- No web source available."
    lines = []
    for u in kb.urls:
        scope = "whole site" if u.crawlWholeSite else "this page only"
        lines.append(f"- SOURCE: {u.url} ({scope})")
    return "\n".join(lines)


def build_system_instruction(kb: KnowledgeBase, assistant_name: str = "PedagoChat",
                             language: str = "French") -> str:
    return f"""You are {assistant_name}, a teaching assistant operating as a CLOSED SYSTEM.
You must answer using exclusively the knowledge provided by the teacher below.

ATTACHED DOCUMENTS:
{_format_files(kb)}

TEACHER NOTES:
{_format_notes(kb)}

WEB SOURCES (you may only consult the exact pages listed here, or their site when marked "whole site"; do not run general searches):
{_format_urls(kb)}

ANSWER RULES:
- Always answer in {language}.
- Answer only from the sources above. If the information is not in them, say explicitly that it is not in your knowledge base. Never answer from general or external knowledge.
- Mention the source you rely on (document, note or web page).
- Keep answers concise, clear and suited to vocational-school students.
- Use Markdown to structure your answers."""


def _decode_text_file(file: KnowledgeFile) -> str:
    raw = base64.b64decode(file.base64Data, validate=True)
    return raw.decode("utf-8")


def build_prompt_context(question: str, session: ChatSession, language: str = "French") -> PromptContext:
    kb = session.knowledgeBase
    context = PromptContext(
        question=question,
        system_instruction=build_system_instruction(kb, session.assistantName, language),
    )

    for file in kb.files:
        try:
            if is_inline_file(file):
                context.attachments.append(
                    InlineAttachment(file.name, file.type, base64.b64decode(file.base64Data, validate=True))
                )
            else:
                context.text_context.append(f"CONTENT OF FILE {file.name}:\n{_decode_text_file(file)}")
        except (binascii.Error, UnicodeDecodeError) as exc:
            logger.warning("Skipping file %s, could not decode its content: %s", file.name, exc)

    return context
