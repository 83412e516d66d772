from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from jsonschema import Draft202012Validator

from utils.errors import ConfigError

POSTED_DATE_CHOICES = ("24h", "7d", "30d", "anytime")
EMPTY_FIRST_PAGE_POLICIES = ("warn", "error")

INPUT_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "startUrl": {"type": ["string", "null"], "pattern": "^https?://"},
        "keyword": {"type": ["string", "null"]},
        "location": {"type": ["string", "null"]},
        "postedDate": {"enum": [*POSTED_DATE_CHOICES, None]},
        "collectDetails": {"type": "boolean"},
        "maxJobs": {"type": ["integer", "null"], "minimum": 1},
        "maxPages": {"type": ["integer", "null"], "minimum": 1},
        "cookies": {"type": ["string", "null"]},
        "proxyConfiguration": {
            "type": ["object", "null"],
            "properties": {
                "proxyUrls": {
                    "type": "array",
                    "items": {"type": "string", "pattern": "^(https?|socks5h?)://"},
                },
            },
        },
        "maxConcurrency": {"type": "integer", "minimum": 1, "maximum": 20},
        "maxRequestRetries": {"type": "integer", "minimum": 0, "maximum": 10},
        "requestTimeoutSecs": {"type": "number", "exclusiveMinimum": 0},
        "emptyFirstPage": {"enum": list(EMPTY_FIRST_PAGE_POLICIES)},
    },
}


@dataclass
class RunConfig:
    """
    Validated run input.

    Either `start_url` or `keyword` must be present; limits are >= 1 when set.
    """

    start_url: Optional[str] = None
    keyword: Optional[str] = None
    location: Optional[str] = None
    posted_date: Optional[str] = None
    collect_details: bool = True
    max_jobs: Optional[int] = None
    max_pages: Optional[int] = None
    cookies: Optional[str] = None
    proxy_urls: List[str] = field(default_factory=list)

    max_concurrency: int = 5
    max_request_retries: int = 3
    request_timeout: float = 30.0
    empty_first_page: str = "warn"

    def __post_init__(self) -> None:
        for name in ("max_jobs", "max_pages"):
            value = getattr(self, name)
            if value is not None and (isinstance(value, bool) or int(value) < 1):
                raise ConfigError(f"{name} must be >= 1 (got {value!r})")
        if not (self.start_url or self.keyword):
            raise ConfigError("Either 'startUrl' or 'keyword' must be provided as input.")
        if self.posted_date is not None and self.posted_date not in POSTED_DATE_CHOICES:
            raise ConfigError(f"postedDate must be one of {POSTED_DATE_CHOICES}")
        if self.empty_first_page not in EMPTY_FIRST_PAGE_POLICIES:
            raise ConfigError(
                f"emptyFirstPage must be one of {EMPTY_FIRST_PAGE_POLICIES}"
            )


def validate_input(doc: Mapping[str, Any]) -> None:
    """
    Validate raw input against `INPUT_SCHEMA`.

    Raises:
        ConfigError: Listing every schema violation.
    """
    validator = Draft202012Validator(INPUT_SCHEMA)
    errors = sorted(validator.iter_errors(dict(doc)), key=lambda e: list(e.path))
    if errors:
        msg = ["Input validation failed:"]
        for e in errors[:50]:
            loc = ".".join(str(p) for p in e.path) or "<root>"
            msg.append(f" - {loc}: {e.message}")
        raise ConfigError("\n".join(msg))


def config_from_input(doc: Optional[Mapping[str, Any]]) -> RunConfig:
    """
    Build a RunConfig from actor-style input (camelCase keys).

    ``posted_date`` is accepted as an alias of ``postedDate``; keys with a
    None value are treated as absent.
    """
    raw = {k: v for k, v in dict(doc or {}).items() if v is not None}
    if "posted_date" in raw and "postedDate" not in raw:
        raw["postedDate"] = raw.pop("posted_date")
    validate_input(raw)

    proxy = raw.get("proxyConfiguration") or {}
    return RunConfig(
        start_url=raw.get("startUrl"),
        keyword=raw.get("keyword"),
        location=raw.get("location"),
        posted_date=raw.get("postedDate"),
        collect_details=bool(raw.get("collectDetails", True)),
        max_jobs=raw.get("maxJobs"),
        max_pages=raw.get("maxPages"),
        cookies=raw.get("cookies"),
        proxy_urls=list(proxy.get("proxyUrls") or []),
        max_concurrency=int(raw.get("maxConcurrency", 5)),
        max_request_retries=int(raw.get("maxRequestRetries", 3)),
        request_timeout=float(raw.get("requestTimeoutSecs", 30.0)),
        empty_first_page=raw.get("emptyFirstPage", "warn"),
    )


def load_input(path: str | Path) -> Dict[str, Any]:
    """Read a JSON input file; unreadable or non-object input is a ConfigError."""
    try:
        doc = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read input file {path}: {e}") from e
    if not isinstance(doc, dict):
        raise ConfigError(f"Input file {path} must contain a JSON object")
    return doc
