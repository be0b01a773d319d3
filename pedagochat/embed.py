"""URL-fragment helpers for the isolated single-session embed view."""

import html
import re
from typing import Optional
from urllib.parse import quote, unquote

_EMBED_ROUTE = re.compile(r"^#/embed/(.+)$")


def parse_embed_route(fragment: str) -> Optional[str]:
    """Session id addressed by ``#/embed/<sessionId>``, or None for any other fragment."""
    match = _EMBED_ROUTE.match(fragment or "")
    return unquote(match.group(1)) if match else None


def embed_url(page_url: str, session_id: str) -> str:
    base = page_url.split("#", 1)[0]
    return f"{base}#/embed/{quote(session_id, safe='')}"


def iframe_snippet(page_url: str, session_id: str, width: int = 600, height: int = 400) -> str:
    src = html.escape(embed_url(page_url, session_id), quote=True)
    return (
        f'<iframe src="{src}" width="{width}" height="{height}" '
        f'frameborder="0" allowfullscreen></iframe>'
    )
