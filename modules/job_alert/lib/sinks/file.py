from __future__ import annotations

import json
import os
from collections.abc import Sequence

from ..config import DEFAULT_FILE_LOG_PATH
from ..models import Delivered, JobRecord, NotifyContext, SinkResult
from .base import BaseSink, SinkError
from .registry import register


@register
class FileSink(BaseSink):
    """
    Append one JSON line per alert:
      {"timestamp": ..., "count": n, "keywords": [...], "jobs": [...]}

    params:
      path: str (default ./job-alerts.log)
    """

    kind = "file"

    @property
    def path(self) -> str:
        return str(self.params.get("path") or DEFAULT_FILE_LOG_PATH)

    def send(self, records: Sequence[JobRecord], context: NotifyContext) -> SinkResult:
        entry = {
            "timestamp": context.timestamp,
            "count": len(records),
            "keywords": list(context.keywords),
            "jobs": [r.to_dict() for r in records],
        }
        line = json.dumps(entry, ensure_ascii=False) + "\n"
        try:
            d = os.path.dirname(os.path.abspath(self.path))
            os.makedirs(d, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            raise SinkError(f"append to {self.path} failed: {e}") from e
        return Delivered(sink=self.name, details={"path": self.path, "count": len(records)})
