"""
job_alert -> service JSONL logs.

Records carry a "component" (e.g. "job_alert.engine") and an "op". Writing a
log line must never break a cycle: if the JSONL writer fails, the record goes
to the stdlib logger instead.
"""

from __future__ import annotations

import logging
from typing import Any

from service import logging_utils

_ACTIVITY_LOG = logging.getLogger("job_alert.activity")
_ERROR_LOG = logging.getLogger("job_alert.error")


def activity(record: dict[str, Any]) -> None:
    try:
        logging_utils.write_activity_log(record)
    except (OSError, TypeError, ValueError) as e:
        _ACTIVITY_LOG.info("%s (jsonl unavailable: %s)", logging_utils.scrub(record), e)


def error(record: dict[str, Any]) -> None:
    try:
        logging_utils.write_error_log(record)
    except (OSError, TypeError, ValueError) as e:
        _ERROR_LOG.error("%s (jsonl unavailable: %s)", logging_utils.scrub(record), e)
