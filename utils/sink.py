from __future__ import annotations

import json
import logging
import threading

import pandas as pd

from pathlib import Path
from typing import Any, Dict, List, Mapping

from utils.schema import OUTPUT_COLUMNS, validate_record

logger = logging.getLogger(__name__)


class Dataset:
    """
    Append-only record sink backed by a JSON Lines file.

    ``push`` is safe to call from worker threads. Records are also kept in
    memory so the run can be exported to CSV at the end.

    Attributes:
        path: JSON Lines file receiving one line per pushed record.
        items: Records pushed during this process's lifetime.
    """

    def __init__(self, root: str | Path = "storage", name: str = "default") -> None:
        self.path = Path(root) / "datasets" / name / "items.jsonl"
        self.items: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def push(self, record: Mapping[str, Any]) -> None:
        row = dict(record)
        problems = validate_record(row)
        if problems:
            logger.warning(f"sink:record:invalid url={row.get('url')} problems={problems}")
        line = json.dumps(row, ensure_ascii=False)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
            self.items.append(row)

    def __len__(self) -> int:
        return len(self.items)

    def export_csv(self, filename: str | Path) -> int:
        """
        Write the records pushed in this run to CSV, in output column order.

        Returns:
            Number of rows written.
        """
        with self._lock:
            rows = list(self.items)
        columns = list(OUTPUT_COLUMNS)
        if any("error" in r for r in rows):
            columns.append("error")
        df = pd.DataFrame(rows, columns=columns)
        out = Path(filename)
        out.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(out, index=False)
        return len(df)
