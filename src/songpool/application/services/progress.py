"""Progress reporting for library aggregation.

Hey future me - the aggregator reports progress in three phases, each owning a slice
of the 0-100 bar (configured in AggregationSettings):

    liked songs   10 → 30
    playlists     30 → 60
    albums        60 → 95
    done                100

Phases are laid out in the order they RUN, so the bar only ever moves forward.
Inside a phase the position is (items processed % window) / window - a library with
40k tracks would otherwise sit at "almost done" forever. The modulo makes the bar
wrap inside the slice, and the tracker below never reports a value lower than one it
already sent, so a wrap simply holds the bar still until the next phase starts.
"""

import logging
from enum import Enum

from songpool.config import AggregationSettings
from songpool.domain.ports import ProgressCallback

logger = logging.getLogger(__name__)


class AggregationPhase(str, Enum):
    """Aggregation phases, in processing order."""

    LIKED = "liked"
    PLAYLISTS = "playlists"
    ALBUMS = "albums"


def clamp_percent(value: float) -> int:
    """Round to a whole percentage within [0, 100]."""
    return max(0, min(100, round(value)))


class AggregationProgress:
    """Maps phase progress onto the 0-100 bar and forwards it to a callback."""

    def __init__(
        self,
        settings: AggregationSettings | None = None,
        callback: ProgressCallback | None = None,
    ) -> None:
        self.settings = settings or AggregationSettings()
        self._callback = callback
        self._last: int | None = None

    @property
    def last_reported(self) -> int | None:
        return self._last

    def phase_range(self, phase: AggregationPhase) -> tuple[int, int]:
        if phase is AggregationPhase.LIKED:
            return self.settings.liked_progress
        if phase is AggregationPhase.PLAYLISTS:
            return self.settings.playlists_progress
        return self.settings.albums_progress

    def percent_for(self, phase: AggregationPhase, items_processed: int) -> int:
        """Bar position for `items_processed` items into `phase`."""
        start, end = self.phase_range(phase)
        window = self.settings.progress_window
        fraction = (items_processed % window) / window
        return clamp_percent(start + (end - start) * fraction)

    async def start_phase(self, phase: AggregationPhase, message: str) -> None:
        await self.emit(self.phase_range(phase)[0], message)

    async def report(self, phase: AggregationPhase, items_processed: int, message: str) -> None:
        await self.emit(self.percent_for(phase, items_processed), message)

    async def complete(self, message: str) -> None:
        await self.emit(100, message)

    async def emit(self, value: float, message: str) -> None:
        """Send a value to the callback unless it would move the bar backwards.

        Repeats of the last value are dropped too. Callback errors are logged and
        swallowed - progress is cosmetic and must never abort an aggregation.
        """
        percent = clamp_percent(value)
        if self._last is not None and percent <= self._last:
            return
        self._last = percent

        if self._callback is None:
            return
        try:
            await self._callback(percent, message)
        except Exception as e:
            logger.warning("Progress callback failed at %d%%: %s", percent, e)
