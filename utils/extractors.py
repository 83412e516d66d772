from __future__ import annotations

import json
import re

from bs4 import BeautifulSoup as BS
from typing import Any, Dict, Optional

_IDENT_START = re.compile(r"[A-Za-z_$]")
_IDENT = re.compile(r"[A-Za-z_$][\w$]*")
_LITERALS = {"true": "true", "false": "false", "null": "null", "undefined": "null"}


def text(node: Any) -> str:
    """
    Extract plain text from HTML, collapsing whitespace.

    Args:
        node: HTML node or markup snippet.

    Returns:
        Plain text content with spaces normalized.
    """
    if node is None:
        return ""
    if hasattr(node, "get_text"):
        return " ".join(node.get_text(" ", strip=True).split())
    return " ".join(BS(str(node), "html.parser").get_text(" ", strip=True).split())


def dig(d: Any, *path: str) -> Optional[Any]:
    """
    Safe nested dict access: dig(d, "a", "b") -> d["a"]["b"] or None.
    """
    cur: Any = d
    for key in path:
        if not isinstance(cur, dict) or key not in cur:
            return None
        cur = cur[key]
    return cur


def balance_object(source: str, start: int) -> str:
    """
    Return the object literal starting at `source[start]` (which must be "{").

    Braces and brackets are balanced while skipping over single- and
    double-quoted strings (with backslash escapes), so braces inside string
    values do not end the match early.

    Raises:
        ValueError: If `start` is not an opening brace or the literal never closes.
    """
    if start >= len(source) or source[start] != "{":
        raise ValueError("object literal must start with '{'")
    depth = 0
    quote: Optional[str] = None
    i = start
    while i < len(source):
        ch = source[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return source[start : i + 1]
        i += 1
    raise ValueError("unbalanced object literal")


def _read_quoted(source: str, i: int) -> tuple[str, int]:
    """Decode a single- or double-quoted JS string at `source[i]`; return (value, end)."""
    quote = source[i]
    out = []
    i += 1
    while i < len(source):
        ch = source[i]
        if ch == "\\" and i + 1 < len(source):
            nxt = source[i + 1]
            if nxt in ("'", '"', "\\", "/"):
                out.append(nxt)
                i += 2
                continue
            if nxt == "u" and i + 5 < len(source):
                try:
                    out.append(chr(int(source[i + 2 : i + 6], 16)))
                    i += 6
                    continue
                except ValueError:
                    pass
            out.append({"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f"}.get(nxt, nxt))
            i += 2
            continue
        if ch == quote:
            return "".join(out), i + 1
        out.append(ch)
        i += 1
    raise ValueError("unterminated string literal")


def _to_strict_json(source: str) -> str:
    """
    Rewrite a JS object literal into strict JSON.

    Handles unquoted identifier keys, single-quoted strings, trailing commas
    and `undefined`. Numbers and punctuation pass through untouched.
    """
    out = []
    i = 0
    n = len(source)
    while i < n:
        ch = source[i]
        if ch in ("'", '"'):
            value, i = _read_quoted(source, i)
            out.append(json.dumps(value))
            continue
        if ch == ",":
            j = i + 1
            while j < n and source[j].isspace():
                j += 1
            if j < n and source[j] in "}]":
                i += 1
                continue
            out.append(ch)
            i += 1
            continue
        if _IDENT_START.match(ch):
            m = _IDENT.match(source, i)
            word = m.group(0)
            j = m.end()
            while j < n and source[j].isspace():
                j += 1
            if j < n and source[j] == ":":
                out.append(json.dumps(word))
            else:
                out.append(_LITERALS.get(word, word))
            i = m.end()
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def relaxed_json_loads(source: str) -> Any:
    """
    Parse JSON, tolerating the JavaScript object-literal dialect.

    Strict JSON is tried first; on failure the source is normalized with
    `_to_strict_json` and parsed again.

    Raises:
        json.JSONDecodeError: If the normalized text is still not valid JSON.
        ValueError: On unterminated string literals.
    """
    try:
        return json.loads(source, strict=False)
    except json.JSONDecodeError:
        return json.loads(_to_strict_json(source), strict=False)


def extract_marker_object(source: str, marker: str) -> Dict[str, Any]:
    """
    Locate `marker` in `source` and parse the object literal that follows it.

    Typical input is an inline script such as
    ``setValue('facetedSearchResultsValue', {results: {...}})``.

    Raises:
        ValueError: If the marker or a following object literal is missing,
            or the literal is not an object.
        json.JSONDecodeError: If the literal cannot be parsed.
    """
    pos = source.find(marker)
    if pos < 0:
        raise ValueError(f"marker {marker!r} not found")
    start = source.find("{", pos + len(marker))
    if start < 0:
        raise ValueError(f"no object literal after marker {marker!r}")
    data = relaxed_json_loads(balance_object(source, start))
    if not isinstance(data, dict):
        raise ValueError("embedded payload is not an object")
    return data
