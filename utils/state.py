"""
Persisted crawl progress and deduplication.

`CrawlState` is the single owner of the run counters and the seen-id set.
Every read-modify-write goes through its lock, so concurrent LIST/DETAIL
workers can race to accept the same job id and exactly one of them wins.
`StateStore` is a small JSON key-value store that survives restarts.
"""

from __future__ import annotations

import json
import logging
import os
import threading

from pathlib import Path
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

STATE_KEY = "CRAWLER_STATE"


class CrawlState:
    """
    Run counters plus the set of accepted job ids.

    Invariants: `seen_job_ids` only grows and `jobs_scraped` moves with it,
    one increment per newly accepted id.
    """

    def __init__(
        self,
        pages_scraped: int = 0,
        jobs_scraped: int = 0,
        seen_job_ids: Optional[Iterable[str]] = None,
    ) -> None:
        self._lock = threading.Lock()
        self.pages_scraped = int(pages_scraped)
        self.jobs_scraped = int(jobs_scraped)
        self.seen_job_ids: set[str] = {str(x) for x in (seen_job_ids or [])}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CrawlState":
        data = data or {}
        return cls(
            pages_scraped=data.get("pagesScraped", 0),
            jobs_scraped=data.get("jobsScraped", 0),
            seen_job_ids=data.get("seenJobIds") or [],
        )

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "pagesScraped": self.pages_scraped,
                "jobsScraped": self.jobs_scraped,
                "seenJobIds": sorted(self.seen_job_ids),
            }

    def seen(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self.seen_job_ids

    def mark_seen(self, job_id: str) -> bool:
        """
        Record `job_id` as accepted. Idempotent.

        Returns:
            True if the id was new (and `jobs_scraped` was incremented).
        """
        with self._lock:
            return self._mark_locked(job_id)

    def _mark_locked(self, job_id: str) -> bool:
        if job_id in self.seen_job_ids:
            return False
        self.seen_job_ids.add(job_id)
        self.jobs_scraped += 1
        return True

    def try_accept(self, job_id: str, max_jobs: Optional[int] = None) -> bool:
        """
        Atomically accept a job unless it is a duplicate or the cap is reached.

        Returns:
            True when the caller now owns this job (emit it / fetch its detail).
        """
        with self._lock:
            if max_jobs is not None and self.jobs_scraped >= max_jobs:
                return False
            return self._mark_locked(job_id)

    def page_done(self) -> int:
        """Count one processed LIST request; returns the new total."""
        with self._lock:
            self.pages_scraped += 1
            return self.pages_scraped

    def limits_reached(
        self, max_jobs: Optional[int] = None, max_pages: Optional[int] = None
    ) -> bool:
        with self._lock:
            return bool(
                (max_jobs is not None and self.jobs_scraped >= max_jobs)
                or (max_pages is not None and self.pages_scraped >= max_pages)
            )

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return {
                "pagesScraped": self.pages_scraped,
                "jobsScraped": self.jobs_scraped,
            }


class Deduplicator:
    """Narrow view of `CrawlState` for callers that only check/mark ids."""

    def __init__(self, state: CrawlState) -> None:
        self._state = state

    def seen(self, job_id: str) -> bool:
        return self._state.seen(job_id)

    def mark_seen(self, job_id: str) -> bool:
        return self._state.mark_seen(job_id)


class StateStore:
    """
    JSON-file key-value store: ``<root>/key_value_stores/default/<KEY>.json``.

    Writes go to a temp file first and are renamed into place so a crash
    mid-write never leaves a truncated state file behind.
    """

    def __init__(self, root: str | Path = "storage", store: str = "default") -> None:
        self.dir = Path(root) / "key_value_stores" / store
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        return self.dir / f"{key}.json"

    def load(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.exception(f"store:load:error key={key} path={path}")
            return default

    def save(self, key: str, value: Any) -> None:
        path = self._path(key)
        with self._lock:
            self.dir.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(json.dumps(value, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, path)

    def load_state(self) -> CrawlState:
        return CrawlState.from_dict(self.load(STATE_KEY, None))

    def save_state(self, state: CrawlState) -> None:
        self.save(STATE_KEY, state.to_dict())
