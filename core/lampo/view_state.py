"""
View Loading State

Per-view loading lifecycle with a generation guard:

    NotLoaded -> Loading(g) -> Loaded(g, data) | Failed(g, reason)

Every load cycle gets a new generation. Results from an older generation
(a superseded refresh, or a view that was torn down) are discarded.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class NotLoaded:
    pass


@dataclass(frozen=True)
class Loading:
    generation: int


@dataclass(frozen=True)
class Loaded(Generic[T]):
    generation: int
    data: T


@dataclass(frozen=True)
class Failed:
    generation: int
    reason: str


ViewState = Union[NotLoaded, Loading, Loaded, Failed]


class ViewLoader(Generic[T]):
    """Tracks the loading state of one view."""

    def __init__(self, name: str = "view"):
        self.name = name
        self.generation = 0
        self.state: ViewState = NotLoaded()
        self._settled: ViewState = NotLoaded()
        self._torn_down = False

    @property
    def data(self) -> Optional[T]:
        return self.state.data if isinstance(self.state, Loaded) else None

    def begin(self) -> int:
        """Start a load cycle and return its generation."""
        self.generation += 1
        self._torn_down = False
        self.state = Loading(self.generation)
        return self.generation

    def is_current(self, generation: int) -> bool:
        return not self._torn_down and generation == self.generation

    def resolve(self, generation: int, data: T) -> bool:
        """Apply a result; returns False if it was stale and discarded."""
        if not self.is_current(generation):
            logger.debug(f"{self.name}: discarding stale result (gen {generation}, current {self.generation})")
            return False
        self.state = self._settled = Loaded(generation, data)
        return True

    def fail(self, generation: int, reason: str) -> bool:
        """Record a failure; returns False if it was stale and discarded."""
        if not self.is_current(generation):
            logger.debug(f"{self.name}: discarding stale failure (gen {generation})")
            return False
        self.state = self._settled = Failed(generation, reason)
        return True

    def teardown(self) -> None:
        """Invalidate in-flight loads and return to the last settled state."""
        self.generation += 1
        self._torn_down = True
        self.state = self._settled

    async def load(self, fetch: Callable[[], Awaitable[T]]) -> ViewState:
        """Run one load cycle.

        Exceptions from `fetch` become Failed; cancellation propagates.
        """
        generation = self.begin()
        try:
            data = await fetch()
        except Exception as e:
            logger.warning(f"{self.name}: load failed: {e}")
            self.fail(generation, str(e) or type(e).__name__)
            return self.state
        self.resolve(generation, data)
        return self.state


def state_to_dict(state: ViewState) -> dict[str, Any]:
    """Serializable summary of a state (without the data payload)."""
    summary: dict[str, Any] = {"state": type(state).__name__}
    if hasattr(state, "generation"):
        summary["generation"] = state.generation
    if isinstance(state, Failed):
        summary["reason"] = state.reason
    return summary
