"""Plugin interfaces and the registry of available plugins."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any


class Accumulator(ABC):
    """Receives the measurements a plugin gathers."""

    @abstractmethod
    def add(self, measurement: str, value: Any, tags: Mapping[str, str] | None) -> None:
        """Record a point with a single value, decorated with tags.

        The tags mapping is owned by the caller and must not be changed
        after it has been passed in.
        """

    @abstractmethod
    def add_values_with_time(
        self,
        measurement: str,
        values: Mapping[str, Any],
        tags: Mapping[str, str] | None,
        timestamp: datetime,
    ) -> None:
        """Record a point with several values at a given time.

        The values and tags mappings are owned by the caller and must not
        be changed after they have been passed in.
        """


class Plugin(ABC):
    """A source of measurements."""

    @abstractmethod
    def sample_config(self) -> str:
        """Return an example configuration for the plugin."""

    @abstractmethod
    def description(self) -> str:
        """Return a one-line description of the plugin."""

    @abstractmethod
    def gather(self, acc: Accumulator) -> None:
        """Collect measurements into the accumulator."""


Creator = Callable[[], Plugin]

PLUGINS: dict[str, Creator] = {}


def add(name: str, creator: Creator) -> None:
    """Register a plugin factory under the given name."""
    PLUGINS[name] = creator