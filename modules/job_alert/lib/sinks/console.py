from __future__ import annotations

import sys
from collections.abc import Sequence

from .. import render
from ..models import Delivered, JobRecord, NotifyContext, SinkResult
from .base import BaseSink
from .registry import register


@register
class ConsoleSink(BaseSink):
    """Print a numbered list of records to stdout."""

    kind = "console"

    def send(self, records: Sequence[JobRecord], context: NotifyContext) -> SinkResult:
        print(render.console_text(records), file=sys.stdout, flush=True)
        return Delivered(sink=self.name, details={"printed": len(records)})
