from __future__ import annotations

from ..registry import Registry
from .base import BaseSink

SINKS: Registry[type[BaseSink]] = Registry("sink")

register = SINKS.register
get = SINKS.get
