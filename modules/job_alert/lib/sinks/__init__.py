# job_alert/sinks/__init__.py
from __future__ import annotations

import logging

from .. import logging_bridge
from ..config import ConfigError, Settings
from . import console, file, mail, webhooks  # noqa: F401  (register built-in sinks)
from .base import BaseSink, SinkError
from .registry import get

LOG = logging.getLogger(__name__)


def build_sinks(settings: Settings) -> list[BaseSink]:
    """
    Instantiate one sink per configured kind and validate the enabled ones.

    A sink whose validation fails is kept but disabled (with a warning), so a
    missing credential is reported once at startup instead of every cycle.
    """
    sinks: list[BaseSink] = []
    for sc in settings.sinks:
        cls = get(sc.kind)
        sink = cls.from_config(sc, timeout_sec=settings.sink_timeout_sec)
        if sink.enabled:
            try:
                sink.validate()
            except ConfigError as e:
                sink.disable(str(e))
                LOG.warning("Sink %s disabled: %s", sc.kind, e)
                logging_bridge.activity({
                    "component": "job_alert.sinks",
                    "op": "sink_disabled",
                    "kind": sc.kind,
                    "reason": str(e),
                })
        sinks.append(sink)
    return sinks


__all__ = ["BaseSink", "SinkError", "build_sinks"]
