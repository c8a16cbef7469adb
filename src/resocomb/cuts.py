"""pT-binned cut tables and bin lookup helpers.

Bins are half-open intervals `[edge_i, edge_{i+1})`. A value below the first
edge or at/above the last edge has no bin (`BIN_NOT_FOUND`), which callers
must treat as a rejection.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from .exceptions import ConfigurationError

BIN_NOT_FOUND = -1


def validate_edges(edges: Sequence[float], what: str, min_edges: int = 2) -> None:
    """Raise `ConfigurationError` unless `edges` is long enough and strictly increasing."""
    if len(edges) < min_edges:
        raise ConfigurationError(
            f"{what} edges need at least {min_edges} entries, got {len(edges)}."
        )
    for low, high in zip(edges, edges[1:]):
        if not high > low:
            raise ConfigurationError(
                f"{what} edges must be strictly increasing, got {low} followed by {high}."
            )


def find_bin(edges: Sequence[float], value: float) -> int:
    """Return the half-open bin index of `value`, or `BIN_NOT_FOUND`."""
    if value < edges[0] or value >= edges[-1]:
        return BIN_NOT_FOUND
    return bisect_right(edges, value) - 1


class CutVariable(str, Enum):
    """Closed set of topological cut variables, labelled as in the cut configuration."""

    PT_BACHELOR = "pT Pi"
    IMPACT_PARAMETER_PRODUCT = "Imp. Par. Product"
    DELTA_MASS_INTERMEDIATE = "DeltaMD0"
    DECAY_LENGTH = "B decLen"
    DECAY_LENGTH_XY = "B decLenXY"
    CPA = "CPA"
    IMPACT_PARAMETER_INTERMEDIATE = "d0 D0"
    IMPACT_PARAMETER_BACHELOR = "d0 Pi"

    @classmethod
    def from_label(cls, label: str) -> "CutVariable":
        """Resolve a configuration label or enum name into a cut variable."""
        for member in cls:
            if label == member.value or label == member.name:
                return member
        supported = ", ".join(repr(m.value) for m in cls)
        raise ConfigurationError(f"Unknown cut variable '{label}'. Supported: {supported}")


@dataclass(frozen=True)
class CutTable:
    """Ordered pT-bin edges plus one threshold per bin for every `CutVariable`.

    `values` is stored as a read-only mapping of tuples.
    """

    bin_edges: tuple[float, ...]
    values: Mapping[CutVariable, tuple[float, ...]] = field(hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "bin_edges", tuple(float(x) for x in self.bin_edges))
        object.__setattr__(
            self, "values", MappingProxyType({var: tuple(vals) for var, vals in self.values.items()})
        )
        validate_edges(self.bin_edges, "pT-bin")
        n_bins = self.n_bins
        missing = [v.value for v in CutVariable if v not in self.values]
        if missing:
            raise ConfigurationError(f"Cut table is missing thresholds for: {', '.join(missing)}")
        for var, per_bin in self.values.items():
            if len(per_bin) != n_bins:
                raise ConfigurationError(
                    f"Cut '{var.value}' has {len(per_bin)} thresholds for {n_bins} pT bins."
                )

    @property
    def n_bins(self) -> int:
        """Number of pT bins."""
        return len(self.bin_edges) - 1

    def find_bin(self, pt: float) -> int:
        """Return the pT bin of `pt`, or `BIN_NOT_FOUND`."""
        return find_bin(self.bin_edges, pt)

    def get(self, pt_bin: int, cut: CutVariable) -> float:
        """Return the threshold of `cut` in a known pT bin."""
        return self.values[cut][pt_bin]

    def threshold(self, cut: CutVariable | str, pt: float) -> float | None:
        """Return the threshold of `cut` at `pt`, or None when `pt` has no bin."""
        if not isinstance(cut, CutVariable):
            cut = CutVariable.from_label(cut)
        pt_bin = self.find_bin(pt)
        if pt_bin == BIN_NOT_FOUND:
            return None
        return self.get(pt_bin, cut)

    @classmethod
    def from_rows(
        cls,
        bin_edges: Sequence[float],
        rows: Sequence[Mapping[str, Any]],
    ) -> "CutTable":
        """Build a table from one `{label: threshold}` mapping per pT bin."""
        if not rows:
            raise ConfigurationError("Cut table must contain at least one pT-bin row.")
        columns: dict[CutVariable, list[float]] = {}
        for row in rows:
            for label, value in row.items():
                columns.setdefault(CutVariable.from_label(label), []).append(float(value))
        return cls(
            bin_edges=tuple(float(x) for x in bin_edges),
            values={var: tuple(vals) for var, vals in columns.items()},
        )


BPLUS_TO_D0_PI_BINS_PT: tuple[float, ...] = (
    0.0, 0.5, 1.0, 2.0, 3.0, 4.0, 5.0, 7.0, 10.0, 13.0, 16.0, 20.0, 24.0,
)

_BPLUS_TO_D0_PI_ROW: dict[str, float] = {
    "pT Pi": 0.15,
    "Imp. Par. Product": 0.0,
    "DeltaMD0": 0.1,
    "B decLen": 0.05,
    "B decLenXY": 0.05,
    "CPA": 0.8,
    "d0 D0": 0.01,
    "d0 Pi": 0.01,
}


def default_bplus_cut_table() -> CutTable:
    """Return the default B+ -> D0bar pi+ topological cut table."""
    n_bins = len(BPLUS_TO_D0_PI_BINS_PT) - 1
    return CutTable.from_rows(BPLUS_TO_D0_PI_BINS_PT, [_BPLUS_TO_D0_PI_ROW] * n_bins)
