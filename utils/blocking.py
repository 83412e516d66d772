from __future__ import annotations

from typing import Optional

from utils.http import FetchedPage

BLOCKING_INDICATORS = (
    "access denied",
    "captcha",
    "cloudflare",
    "security check",
    "blocked",
    "robot",
)

# How much of the visible body text is inspected.
BODY_PREFIX_CHARS = 400

_INVISIBLE_TAGS = {"script", "style", "noscript", "template"}


def visible_body_prefix(page: FetchedPage, limit: int = BODY_PREFIX_CHARS) -> str:
    """
    Return the first `limit` characters of the page's visible body text.

    Script/style content is skipped so embedded payloads (which may mention a
    "Robotics Engineer") do not count as anti-bot markers.
    """
    body = page.soup.body or page.soup
    parts = []
    size = 0
    for s in body.find_all(string=True):
        if s.parent is not None and s.parent.name in _INVISIBLE_TAGS:
            continue
        chunk = " ".join(s.split())
        if not chunk:
            continue
        parts.append(chunk)
        size += len(chunk) + 1
        if size >= limit:
            break
    return " ".join(parts)[:limit]


def detect_blocking(page: FetchedPage) -> Optional[str]:
    """
    Return the first blocking indicator found in the page, or None.

    Only markup is inspected: the title text and the body prefix, compared
    case-insensitively. JSON payloads are never treated as blocked.
    """
    if page.is_json:
        return None
    title_tag = page.soup.title
    title = title_tag.get_text(" ", strip=True).lower() if title_tag else ""
    body = visible_body_prefix(page).lower()
    for indicator in BLOCKING_INDICATORS:
        if indicator in title or indicator in body:
            return indicator
    return None


def is_blocked(page: FetchedPage) -> bool:
    return detect_blocking(page) is not None
