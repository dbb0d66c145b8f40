from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from ..config import SinkConfig
from ..models import JobRecord, NotifyContext, SinkResult


class SinkError(Exception):
    """A single sink could not deliver; captured by the fanout as a Failed result."""


class BaseSink(ABC):
    """
    Abstract notification channel.

    Contract:
      - validate() raises ConfigError for missing credentials/targets; called
        once at build time, never per send.
      - send(records, context) returns a SinkResult, or raises SinkError
        (any exception is turned into Failed by the fanout).
      - records is a read-only tuple shared with every other sink: do NOT
        mutate it, and do not touch shared state.
    """

    # Concrete subclasses MUST set this to a stable string, e.g. "console", "email"
    kind: str = ""

    def __init__(self, params: dict[str, Any] | None = None, *, enabled: bool = True, timeout_sec: float = 20.0):
        self.params: dict[str, Any] = dict(params or {})
        self.enabled = enabled
        self.timeout_sec = float(timeout_sec)
        self.disabled_reason: str | None = None

    @classmethod
    def from_config(cls, config: SinkConfig, *, timeout_sec: float) -> BaseSink:
        return cls(config.params, enabled=config.enabled, timeout_sec=timeout_sec)

    @property
    def name(self) -> str:
        return self.kind

    def validate(self) -> None:
        """Default: nothing required."""

    def disable(self, reason: str) -> None:
        self.enabled = False
        self.disabled_reason = reason

    @abstractmethod
    def send(self, records: Sequence[JobRecord], context: NotifyContext) -> SinkResult:
        raise NotImplementedError

    def __repr__(self) -> str:
        state = "enabled" if self.enabled else f"disabled({self.disabled_reason or 'config'})"
        return f"<{type(self).__name__} {self.kind} {state}>"
