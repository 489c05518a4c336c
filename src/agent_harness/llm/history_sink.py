"""Append-only JSONL persistence for tier transitions.

The thinking-depth manager keeps history in memory only. Hosts that want
a cross-run audit trail pass a JsonlHistorySink as the manager's
history_sink; one line is written per accepted tier change.
"""

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

from .thinking_depth_manager import TierChange

logger = logging.getLogger(__name__)


class JsonlHistorySink:
    """Callable sink writing TierChange records to a JSONL file.

    Lines are flushed immediately so the log survives crashes. Write
    failures are logged and never interrupt the run.
    """

    def __init__(self, path: Path, run_id: Optional[str] = None):
        self._path = Path(path)
        self._run_id = run_id
        self._file = None

    @property
    def path(self) -> Path:
        return self._path

    def __call__(self, change: TierChange) -> None:
        entry = asdict(change)
        if self._run_id:
            entry["run_id"] = self._run_id
        try:
            self._ensure_open()
            self._file.write(json.dumps(entry, default=str) + "\n")
            self._file.flush()
        except OSError as e:
            logger.warning(f"Tier history write failed (non-fatal): {e}")

    def close(self) -> None:
        if self._file:
            self._file.close()
            self._file = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _ensure_open(self) -> None:
        if self._file is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self._path, "a")


def load_history(path: Path) -> List[TierChange]:
    """Read TierChange records back; corrupt lines are skipped."""
    path = Path(path)
    if not path.exists():
        return []

    known_fields = set(TierChange.__dataclass_fields__)
    changes: List[TierChange] = []
    with open(path) as f:
        for line_number, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
                if not isinstance(data, dict):
                    logger.debug(f"Skipping non-record tier history line {line_number} in {path}")
                    continue
                changes.append(TierChange(**{k: v for k, v in data.items() if k in known_fields}))
            except (json.JSONDecodeError, TypeError) as e:
                logger.debug(f"Skipping corrupt tier history line {line_number} in {path}: {e}")
    return changes
