"""Route generation snapshots written beneath the data root."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import settings

SUMMARY_FILE = "summary.json"
STOPS_FILE = "stops.csv"


class FileStorage:
    """Writes one timestamped directory per generation run under ``<root>/outputs``."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = (root or settings.data_root).resolve()
        self.output_root = self.root / "outputs"

    def make_run_directory(self, prefix: str = "routes") -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        run_dir = self.output_root / f"{prefix}_{stamp}"
        run_dir.mkdir(parents=True, exist_ok=False)
        return run_dir

    def write_json(self, path: Path, data: Any, *, indent: int = 2) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # datetimes in the payload are written as their str() form
        path.write_text(json.dumps(data, ensure_ascii=False, indent=indent, default=str), encoding="utf-8")

    def write_csv(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(content)

    def write_snapshot(self, batch_id: str, summary: dict, stops_csv: str) -> Path:
        """Store the generation summary and the stop table for ``batch_id``; returns the run directory."""
        run_dir = self.make_run_directory(prefix=f"routes_{batch_id}")
        self.write_json(run_dir / SUMMARY_FILE, summary)
        self.write_csv(run_dir / STOPS_FILE, stops_csv)
        return run_dir
