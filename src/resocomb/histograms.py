"""Histogram accumulation for invariant-mass spectra and QA observables.

`HistogramAggregator` stores sparse N-dimensional counts keyed by bin index
along `hist` axes, so very fine (category, multiplicity, pT, mass) grids stay
cheap; dense `hist.Hist` projections are produced on demand. Aggregators
merge by pointwise summation over identical keys, which makes per-worker
partial aggregates order independent.

`HistogramRegistry` is a named collection of small dense `hist.Hist` objects
used for QA plots.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterator, Sequence

import hist
import numpy as np

from .models import PairCategory, TripletCategory, TruthCategory

_CATEGORY_AXES = (hist.axis.IntCategory, hist.axis.StrCategory)


class HistogramAggregator:
    """Sparse weighted counts over a fixed tuple of named `hist` axes."""

    def __init__(self, *axes: Any, name: str = "", title: str = "") -> None:
        if not axes:
            raise ValueError("A histogram aggregator needs at least one axis.")
        names = [ax.name for ax in axes]
        if any(not n for n in names) or len(set(names)) != len(names):
            raise ValueError(f"Aggregator axes need unique non-empty names, got {names}.")
        self.name = name
        self.title = title
        self.axes: tuple[Any, ...] = tuple(axes)
        self._cells: Counter[tuple[int, ...]] = Counter()

    @property
    def axis_names(self) -> tuple[str, ...]:
        """Axis names in fill order."""
        return tuple(ax.name for ax in self.axes)

    def fill(self, *values: Any, weight: float = 1.0) -> None:
        """Add `weight` to the cell containing `values` (one value per axis)."""
        self._cells[self._key(values)] += weight

    def count(self, *values: Any) -> float:
        """Return the accumulated weight of the cell containing `values`."""
        return self._cells.get(self._key(values), 0.0)

    def total(self) -> float:
        """Sum of all weights, flow cells included."""
        return float(sum(self._cells.values()))

    def cells(self) -> dict[tuple[int, ...], float]:
        """Copy of the non-empty cells keyed by per-axis bin index."""
        return dict(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    def is_compatible(self, other: "HistogramAggregator") -> bool:
        """Whether both aggregators share identical axes."""
        return len(self.axes) == len(other.axes) and all(
            a == b for a, b in zip(self.axes, other.axes)
        )

    def merge(self, other: "HistogramAggregator") -> "HistogramAggregator":
        """Add `other`'s cells into this aggregator in place and return it."""
        if not self.is_compatible(other):
            raise ValueError(
                f"Cannot merge aggregator '{other.name}' into '{self.name}': axes differ."
            )
        self._cells.update(other._cells)
        return self

    def __iadd__(self, other: "HistogramAggregator") -> "HistogramAggregator":
        return self.merge(other)

    def __add__(self, other: "HistogramAggregator") -> "HistogramAggregator":
        out = self.copy()
        return out.merge(other)

    def copy(self) -> "HistogramAggregator":
        """Independent copy sharing the (immutable) axes."""
        out = HistogramAggregator(*self.axes, name=self.name, title=self.title)
        out._cells = Counter(self._cells)
        return out

    def project(self, *names: str) -> hist.Hist:
        """Materialize a dense `hist.Hist` over the named axes, summing the others."""
        if not names:
            names = self.axis_names
        positions = [self._axis_position(n) for n in names]
        out = hist.Hist(*(self.axes[p] for p in positions), storage=hist.storage.Double())
        view = out.view(flow=True)
        offsets = [1 if self.axes[p].traits.underflow else 0 for p in positions]
        for key, weight in self._cells.items():
            flow_index = tuple(key[p] + off for p, off in zip(positions, offsets))
            view[flow_index] += weight
        return out

    def to_hist(self) -> hist.Hist:
        """Dense histogram over all axes. Only sensible for coarse binnings."""
        return self.project()

    def to_rows(self) -> Iterator[dict[str, Any]]:
        """Yield one flat row per non-empty cell (category values and bin edges)."""
        for key in sorted(self._cells):
            row: dict[str, Any] = {}
            for axis, idx in zip(self.axes, key):
                if isinstance(axis, _CATEGORY_AXES):
                    row[axis.name] = axis.value(idx)
                else:
                    low, high = _bin_edges(axis, idx)
                    row[f"{axis.name}_low"] = low
                    row[f"{axis.name}_high"] = high
            row["weight"] = self._cells[key]
            yield row

    def _axis_position(self, name: str) -> int:
        try:
            return self.axis_names.index(name)
        except ValueError as exc:
            raise KeyError(f"Aggregator '{self.name}' has no axis named '{name}'.") from exc

    def _key(self, values: Sequence[Any]) -> tuple[int, ...]:
        if len(values) != len(self.axes):
            raise ValueError(
                f"Aggregator '{self.name}' expects {len(self.axes)} values, got {len(values)}."
            )
        key: list[int] = []
        for axis, value in zip(self.axes, values):
            if isinstance(axis, hist.axis.IntCategory):
                value = int(value)
            try:
                idx = int(axis.index(value))
            except KeyError as exc:
                raise ValueError(f"Unknown category {value!r} for axis '{axis.name}'.") from exc
            if isinstance(axis, _CATEGORY_AXES) and idx >= len(axis):
                raise ValueError(f"Unknown category {value!r} for axis '{axis.name}'.")
            key.append(idx)
        return tuple(key)


def _bin_edges(axis: Any, idx: int) -> tuple[float, float]:
    """Return `(low, high)` of bin `idx`, with infinite bounds for flow bins."""
    edges = np.asarray(axis.edges)
    low = float(edges[idx]) if idx >= 0 else -math.inf
    high = float(edges[idx + 1]) if idx < len(axis) else math.inf
    return low, high


class HistogramRegistry:
    """Named collection of dense QA histograms."""

    def __init__(self) -> None:
        self._hists: dict[str, hist.Hist] = {}

    def add(self, name: str, *axes: Any, title: str = "") -> hist.Hist:
        """Register a new histogram and return it."""
        if name in self._hists:
            raise ValueError(f"Histogram '{name}' is already registered.")
        h = hist.Hist(*axes, storage=hist.storage.Double(), label=title or None, name=name)
        self._hists[name] = h
        return h

    def fill(self, name: str, *values: float, weight: float = 1.0) -> None:
        """Fill histogram `name` with one entry."""
        self[name].fill(*values, weight=weight)

    def __getitem__(self, name: str) -> hist.Hist:
        try:
            return self._hists[name]
        except KeyError as exc:
            raise KeyError(f"No histogram named '{name}' in registry.") from exc

    def __contains__(self, name: str) -> bool:
        return name in self._hists

    def names(self) -> list[str]:
        """Registered names in insertion order."""
        return list(self._hists)

    def merge(self, other: "HistogramRegistry") -> "HistogramRegistry":
        """Add every histogram of `other` into the matching one here."""
        for name, h in other._hists.items():
            if name in self._hists:
                self._hists[name] += h
            else:
                self._hists[name] = h.copy()
        return self


def _pt_axis() -> Any:
    return hist.axis.Regular(200, 0.0, 20.0, name="pt", label="p_T (GeV/c)")


def _pid_axis(name: str) -> Any:
    return hist.axis.Regular(130, -6.5, 6.5, name=name, label="n#sigma")


def _mult_axis() -> Any:
    return hist.axis.Regular(3000, 0.0, 3000.0, name="multiplicity", label="Raw multiplicity")


def _category_axis(categories: Sequence[int]) -> Any:
    return hist.axis.IntCategory([int(c) for c in categories], name="category", label="Histogram type")


def _pair_mass_axis() -> Any:
    return hist.axis.Regular(900, 0.6, 1.5, name="mass", label="Invariant mass (GeV/c^2)")


def _triplet_mass_axis() -> Any:
    return hist.axis.Regular(1600, 0.9, 2.5, name="mass", label="Invariant mass (GeV/c^2)")


def _scan_axis(name: str) -> Any:
    return hist.axis.Regular(250, 0.0, 2.5, name=name, label="Invariant mass (GeV/c^2)")


_TRACK_ROLES = ("pi", "ka", "pi_bach")


@dataclass
class ResonanceHistograms:
    """Output bundle of the resonance reconstruction.

    - `pairs`: (PairCategory, multiplicity, pT, mass) of the intermediate pair
    - `triplets`: (TripletCategory, multiplicity, pT, mass) of the composite
    - `triplets_mc`: (TruthCategory, multiplicity, pT, mass) of truth-matched composites
    - `qa`: quick-look masses, track QA, truth pT spectra
    """

    pairs: HistogramAggregator
    triplets: HistogramAggregator
    triplets_mc: HistogramAggregator
    qa: HistogramRegistry

    @classmethod
    def create(cls) -> "ResonanceHistograms":
        """Book all histograms with the default binning."""
        pairs = HistogramAggregator(
            _category_axis(list(PairCategory)), _mult_axis(), _pt_axis(), _pair_mass_axis(),
            name="THnK892invmass", title="Invariant mass of K(892)0",
        )
        triplets = HistogramAggregator(
            _category_axis(list(TripletCategory)), _mult_axis(), _pt_axis(), _triplet_mass_axis(),
            name="THnK1invmass", title="Invariant mass of K(892)0 + pion",
        )
        triplets_mc = HistogramAggregator(
            _category_axis(list(TruthCategory)), _mult_axis(), _pt_axis(), _triplet_mass_axis(),
            name="THnK1invmassMC", title="Invariant mass of MC K(892)0 + pion",
        )
        qa = HistogramRegistry()
        qa.add("k892invmass", _pair_mass_axis(), title="Invariant mass of K(892)0")
        qa.add("k1invmass", _triplet_mass_axis(), title="Invariant mass of K1(1270)pm")
        for stage in ("QAbefore", "QAafter"):
            for role in _TRACK_ROLES:
                qa.add(f"{stage}/trkpT_{role}", _pt_axis(), title=f"pT of {role} candidates")
                qa.add(f"{stage}/TPC_Nsigma_{role}", _pt_axis(), _pid_axis("nsigma_tpc"))
                qa.add(f"{stage}/TOF_Nsigma_{role}", _pt_axis(), _pid_axis("nsigma_tof"))
                qa.add(f"{stage}/TOF_TPC_Map_{role}", _pid_axis("nsigma_tof"), _pid_axis("nsigma_tpc"))
        qa.add("QAMCbefore/InvMass_piK_pipi", _scan_axis("mass_pik"), _scan_axis("mass_pipi"))
        qa.add("QAMCafter/InvMass_piK_pipi", _scan_axis("mass_pik"), _scan_axis("mass_pipi"))
        qa.add("hReconK892pt", _pt_axis(), title="pT of reconstructed MC K(892)0")
        qa.add("hReconK1pt", _pt_axis(), title="pT of reconstructed MC K1")
        qa.add("hTrueK1pt", _pt_axis(), title="pT of generated MC K1")
        return cls(pairs=pairs, triplets=triplets, triplets_mc=triplets_mc, qa=qa)

    def merge(self, other: "ResonanceHistograms") -> "ResonanceHistograms":
        """Pointwise sum of another bundle into this one."""
        self.pairs.merge(other.pairs)
        self.triplets.merge(other.triplets)
        self.triplets_mc.merge(other.triplets_mc)
        self.qa.merge(other.qa)
        return self
