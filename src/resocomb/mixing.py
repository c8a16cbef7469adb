"""Event mixing for combinatorial-background estimation.

Events are grouped by (vertex-z bin, multiplicity bin). Each incoming event is
paired with the most recent `n_mix` earlier events of the same bin, oldest
first, so every unordered event pair is produced at most once and each event
has at most `n_mix` partners on either side. The per-bin pools are bounded
deques, so memory does not grow with the length of the run.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Iterable, Iterator

from .cuts import BIN_NOT_FOUND, find_bin, validate_edges
from .exceptions import ConfigurationError
from .models import Event

logger = logging.getLogger(__name__)

DEFAULT_VERTEX_Z_EDGES: tuple[float, ...] = (
    -10.0, -8.0, -6.0, -4.0, -2.0, 0.0, 2.0, 4.0, 6.0, 8.0, 10.0,
)
DEFAULT_MULTIPLICITY_EDGES: tuple[float, ...] = (
    0.0, 20.0, 40.0, 60.0, 80.0, 100.0, 200.0, 99999.0,
)

MixingBin = tuple[int, int]


@dataclass(frozen=True)
class MixingBinning:
    """Half-open vertex-z and multiplicity bin edges."""

    vertex_z_edges: tuple[float, ...] = DEFAULT_VERTEX_Z_EDGES
    multiplicity_edges: tuple[float, ...] = DEFAULT_MULTIPLICITY_EDGES

    def __post_init__(self) -> None:
        validate_edges(self.vertex_z_edges, "Vertex-z mixing")
        validate_edges(self.multiplicity_edges, "Multiplicity mixing")

    def vertex_z_bin(self, pos_z: float) -> int:
        """Vertex-z bin index or `BIN_NOT_FOUND`."""
        return find_bin(self.vertex_z_edges, pos_z)

    def multiplicity_bin(self, multiplicity: float) -> int:
        """Multiplicity bin index or `BIN_NOT_FOUND`."""
        return find_bin(self.multiplicity_edges, multiplicity)

    def bin_of(self, event: Event) -> MixingBin | None:
        """Mixing bin of `event`, or None when it falls outside the binning."""
        z_bin = self.vertex_z_bin(event.pos_z)
        m_bin = self.multiplicity_bin(event.multiplicity)
        if z_bin == BIN_NOT_FOUND or m_bin == BIN_NOT_FOUND:
            return None
        return z_bin, m_bin


@dataclass(frozen=True)
class MixedPair:
    """Two distinct events of one mixing bin; `first` arrived earlier."""

    first: Event
    second: Event
    mixing_bin: MixingBin


class EventMixer:
    """Pair events with up to `n_mix` earlier events of the same mixing bin."""

    def __init__(self, binning: MixingBinning | None = None, n_mix: int = 5) -> None:
        if n_mix < 1:
            raise ConfigurationError(f"Number of events to mix must be positive, got {n_mix}.")
        self.binning = binning or MixingBinning()
        self.n_mix = n_mix
        self._pools: dict[MixingBin, deque[Event]] = {}

    def add(self, event: Event) -> list[MixedPair]:
        """Register `event` and return its pairs with the pooled partners."""
        key = self.binning.bin_of(event)
        if key is None:
            logger.debug(
                "Event %s (z=%.3f, mult=%.1f) is outside the mixing binning",
                event.event_id, event.pos_z, event.multiplicity,
            )
            return []
        pool = self._pools.get(key)
        if pool is None:
            pool = self._pools[key] = deque(maxlen=self.n_mix)
        pairs = [
            MixedPair(first=partner, second=event, mixing_bin=key)
            for partner in pool
            if partner.event_id != event.event_id
        ]
        pool.append(event)
        return pairs

    def pairs(self, events: Iterable[Event]) -> Iterator[MixedPair]:
        """Stream mixed pairs for a sequence of events in arrival order."""
        for event in events:
            yield from self.add(event)

    def pool(self, key: MixingBin) -> tuple[Event, ...]:
        """Events currently retained for `key`, oldest first."""
        return tuple(self._pools.get(key, ()))

    def reset(self) -> None:
        """Forget all pooled events."""
        self._pools.clear()
