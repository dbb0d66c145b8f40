from __future__ import annotations

from typing import Generic, TypeVar

T = TypeVar("T", bound=type)


class Registry(Generic[T]):
    """
    kind -> class lookup filled by a class decorator.

    Used for both scrapers and sinks:

        SCRAPERS = Registry("scraper")

        @SCRAPERS.register
        class StubScraper(BaseScraper):
            kind = "stub"
    """

    def __init__(self, label: str) -> None:
        self.label = label
        self._classes: dict[str, T] = {}

    def register(self, cls: T) -> T:
        key = str(getattr(cls, "kind", "") or "").strip().lower()
        if not key:
            raise ValueError(f"Cannot register {self.label} {cls!r}: missing/empty 'kind'.")
        existing = self._classes.get(key)
        if existing is not None and existing is not cls:
            raise ValueError(f"{self.label.capitalize()} kind {key!r} already registered to {existing!r}.")
        self._classes[key] = cls
        return cls

    def get(self, kind: str) -> T:
        """Case-insensitive lookup; KeyError if unknown."""
        key = (kind or "").strip().lower()
        try:
            return self._classes[key]
        except KeyError:
            raise KeyError(f"No {self.label} registered for kind {kind!r}.") from None

    def kinds(self) -> list[str]:
        return sorted(self._classes)
