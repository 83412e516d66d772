from __future__ import annotations

import json
import threading
import time

from collections import Counter
from contextlib import contextmanager
from typing import Any, Dict, Iterator


class Metrics:
    """
    In-process crawl metrics: counters, gauges and cumulative timers.

    Thread-safe; `to_json` renders the snapshot logged at the end of a run.
    """

    def __init__(self, namespace: str = "") -> None:
        self.ns = f"{namespace}." if namespace else ""
        self._lock = threading.Lock()
        self._counters: Counter[str] = Counter()
        self._gauges: Dict[str, float] = {}
        self._timers: Dict[str, Dict[str, float]] = {}

    def inc(self, name: str, value: float = 1) -> None:
        with self._lock:
            self._counters[self.ns + name] += value

    def set_gauge(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[self.ns + name] = float(value)

    def count(self, name: str) -> float:
        with self._lock:
            return self._counters.get(self.ns + name, 0)

    @contextmanager
    def time(self, name: str) -> Iterator[None]:
        start = time.monotonic()
        try:
            yield
        finally:
            elapsed = time.monotonic() - start
            with self._lock:
                t = self._timers.setdefault(self.ns + name, {"count": 0, "seconds": 0.0})
                t["count"] += 1
                t["seconds"] += elapsed

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "timers": {
                    k: {**v, "seconds": round(v["seconds"], 3)}
                    for k, v in self._timers.items()
                },
            }

    def to_json(self) -> str:
        return json.dumps(self.snapshot(), separators=(",", ":"), ensure_ascii=False)
