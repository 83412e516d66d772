from __future__ import annotations

import re

from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urljoin, urlparse

PLACEHOLDERS = {"not specified", ""}

_JOB_ID_RE = re.compile(r"/jobs/(?:[^/?#]*-)?(\d+)(?:/|\?|#|$)")


def absolute_url(href: Optional[str], base_url: str) -> Optional[str]:
    if not href:
        return None
    href = href.strip()
    if href.startswith(("http://", "https://")):
        return href
    return urljoin(base_url, href)


def job_id_from_url(url: Optional[str]) -> Optional[str]:
    """
    Return the numeric job id at the end of a `/jobs/<slug>-<digits>` path.

    Listing payload links and detail-page URLs both go through here, so the
    same job reached either way gets the same id, e.g.
    ``/uae/jobs/senior-accountant-412345`` -> ``"412345"``.
    """
    if not url:
        return None
    path = urlparse(url).path if "://" in url else url.split("?", 1)[0]
    m = _JOB_ID_RE.search(path)
    return m.group(1) if m else None


def normalize_timestamp(ts: Any) -> Optional[str]:
    """
    Convert a unix timestamp (seconds or milliseconds) to ISO-8601 UTC.

    Returns None for missing, non-numeric or non-positive values.
    """
    try:
        value = int(float(ts))
    except (TypeError, ValueError):
        return None
    if value > 10**12:
        value //= 1000
    if value <= 0:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def clean_text(raw: Optional[str]) -> Optional[str]:
    """
    Normalize whitespace in extracted text.

    Runs of spaces/tabs collapse to one space, each line is stripped, and
    any run of blank lines collapses to exactly one. Empty results become None.
    """
    if raw is None:
        return None
    s = raw.replace("\r\n", "\n").replace("\r", "\n").replace("\xa0", " ")
    s = re.sub(r"[ \t\f\v]+", " ", s)
    s = "\n".join(line.strip() for line in s.split("\n"))
    s = re.sub(r"\n{3,}", "\n\n", s).strip()
    return s or None


def compact_html(raw: Optional[str]) -> Optional[str]:
    """Remove whitespace between adjacent tags; empty markup becomes None."""
    if raw is None:
        return None
    s = re.sub(r">\s+<", "><", raw.strip())
    return s or None


def none_if_placeholder(value: Optional[str]) -> Optional[str]:
    """Map the site's "Not Specified" style placeholders to None."""
    if value is None:
        return None
    v = " ".join(str(value).split())
    if v.lower() in PLACEHOLDERS:
        return None
    return v
