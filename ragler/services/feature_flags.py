"""Runtime feature switches derived from settings."""

from __future__ import annotations

from collections.abc import Iterable

from ragler.config.settings import Settings
from ragler.utils.errors import ForbiddenError

ALL_FEATURES: tuple[str, ...] = ("web_ingest", "file_ingest", "agent", "semantic_chunking")


class FeatureFlags:
    """Read-only set of enabled features.

    With no argument every known feature is on, which is what tests and
    embedded use want.
    """

    def __init__(self, enabled: Iterable[str] | None = None) -> None:
        self._enabled = frozenset(ALL_FEATURES if enabled is None else enabled)

    @classmethod
    def from_settings(cls, settings: Settings) -> "FeatureFlags":
        return cls(settings.get_enabled_features())

    def is_enabled(self, name: str) -> bool:
        return name in self._enabled

    def require(self, name: str) -> None:
        """Raise :class:`ForbiddenError` unless *name* is enabled."""
        if name not in self._enabled:
            raise ForbiddenError(message=f"Feature '{name}' is disabled")

    def as_dict(self) -> dict[str, bool]:
        return {name: name in self._enabled for name in ALL_FEATURES}
