"""Core data models used by the resonance-combination framework.

This module defines:
- immutable physics objects (`Track`, `Event`, `TruthParticle`, `LorentzVector`)
- pre-built candidates consumed by the cascading selector
  (`TwoProngCandidate`, `CompositeCandidate`)
- particle-mass assignment objects (`ParticleHypothesis`)
- histogram category tags (`PairCategory`, `TripletCategory`, `TruthCategory`)
- configurable filtering controls (`TrackSelection`, `DetectorWindow`,
  `PtBinnedNSigmaCut`, `ResonanceConfig`).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import IntEnum

from .cuts import validate_edges
from .exceptions import ConfigurationError

DETECTORS = ("tpc", "tof")
NSIGMA_SPECIES = ("pi", "ka", "pr")


@dataclass(frozen=True)
class ParticleHypothesis:
    """Named particle hypothesis used to derive mass-dependent observables."""

    name: str
    mass: float
    pdg_id: int | None = None

    @property
    def has_nsigma(self) -> bool:
        """Whether tracks store a detector response for this species."""
        return self.name in NSIGMA_SPECIES


def require_nsigma_species(hypothesis: ParticleHypothesis, role: str) -> None:
    """Raise `ConfigurationError` unless tracks carry nSigma for `hypothesis`."""
    if not hypothesis.has_nsigma:
        raise ConfigurationError(
            f"The {role} hypothesis '{hypothesis.name}' has no stored nSigma response; "
            f"use one of {NSIGMA_SPECIES}."
        )


@dataclass(frozen=True)
class Track:
    """Single reconstructed track with kinematics, DCA, PID responses and truth linkage.

    `index` is the global row index of the track table. It is unique across
    all events of one input and is what self-reference checks compare.
    """

    index: int
    px: float
    py: float
    pz: float
    charge: int = 0
    dca_xy: float = 0.0
    dca_z: float = 0.0
    has_tpc: bool = True
    has_tof: bool = False
    tpc_nsigma_pi: float = 0.0
    tpc_nsigma_ka: float = 0.0
    tpc_nsigma_pr: float = 0.0
    tof_nsigma_pi: float = 0.0
    tof_nsigma_ka: float = 0.0
    tof_nsigma_pr: float = 0.0
    pdg_code: int | None = None
    mother_id: int | None = None
    mother_pdg: int | None = None
    event_id: str | None = None

    @property
    def pt(self) -> float:
        """Transverse momentum."""
        return math.hypot(self.px, self.py)

    @property
    def p(self) -> float:
        """Momentum magnitude."""
        return (self.px * self.px + self.py * self.py + self.pz * self.pz) ** 0.5

    @property
    def sign(self) -> int:
        """Electric-charge sign (-1, 0, +1)."""
        return (self.charge > 0) - (self.charge < 0)

    def nsigma(self, detector: str, hypothesis: ParticleHypothesis) -> float:
        """Return the nSigma response of `detector` (`tpc`/`tof`) for a species."""
        if detector not in DETECTORS:
            raise ValueError(f"Unknown detector '{detector}'. Use one of {DETECTORS}.")
        if hypothesis.name not in NSIGMA_SPECIES:
            raise ValueError(
                f"No nSigma response stored for species '{hypothesis.name}'."
            )
        return getattr(self, f"{detector}_nsigma_{hypothesis.name}")

    def has_detector(self, detector: str) -> bool:
        """Whether the track carries a usable signal in `detector`."""
        if detector == "tpc":
            return self.has_tpc
        if detector == "tof":
            return self.has_tof
        raise ValueError(f"Unknown detector '{detector}'. Use one of {DETECTORS}.")


@dataclass(frozen=True)
class Event:
    """One collision: vertex position, multiplicity estimator and its tracks."""

    event_id: str
    pos_z: float
    multiplicity: float
    tracks: tuple[Track, ...]


@dataclass(frozen=True)
class TruthParticle:
    """Generator-level particle with its daughters' row indices."""

    index: int
    pdg_code: int
    px: float
    py: float
    pz: float
    e: float
    daughter_indices: tuple[int, ...] = ()

    @property
    def p4(self) -> "LorentzVector":
        """Four-momentum of the particle."""
        return LorentzVector(self.px, self.py, self.pz, self.e)


@dataclass(frozen=True)
class TwoProngCandidate:
    """Pre-built two-track sub-candidate (e.g. D0 -> K pi)."""

    index: int
    prong0: Track
    prong1: Track


@dataclass(frozen=True)
class CompositeCandidate:
    """Pre-built sub-candidate + bachelor-track candidate (e.g. B+ -> D0bar pi+).

    Geometric quantities are computed upstream by the candidate producer.
    """

    index: int
    hf_flag: int
    prong0: TwoProngCandidate
    prong1: Track
    decay_length: float
    decay_length_xy: float
    cpa: float
    impact_parameter_product: float
    impact_parameter0: float
    impact_parameter1: float

    @property
    def pt(self) -> float:
        """Transverse momentum from the summed prong momenta."""
        px = self.prong0.prong0.px + self.prong0.prong1.px + self.prong1.px
        py = self.prong0.prong0.py + self.prong0.prong1.py + self.prong1.py
        return math.hypot(px, py)


@dataclass(frozen=True)
class LorentzVector:
    """Simple 4-vector with convenience properties and addition."""

    px: float
    py: float
    pz: float
    e: float

    def __add__(self, other: "LorentzVector") -> "LorentzVector":
        """Component-wise 4-vector addition."""
        return LorentzVector(
            self.px + other.px,
            self.py + other.py,
            self.pz + other.pz,
            self.e + other.e,
        )

    @property
    def p2(self) -> float:
        """Squared 3-momentum magnitude."""
        return self.px * self.px + self.py * self.py + self.pz * self.pz

    @property
    def mass2(self) -> float:
        """Invariant mass squared."""
        return self.e * self.e - self.p2

    @property
    def mass(self) -> float:
        """Invariant mass with signed handling for small negative mass2 values."""
        m2 = self.mass2
        return m2**0.5 if m2 >= 0.0 else -((-m2) ** 0.5)

    @property
    def pt(self) -> float:
        """Transverse momentum."""
        return math.hypot(self.px, self.py)

    @property
    def rapidity(self) -> float:
        """Longitudinal rapidity `0.5 * ln((E + pz) / (E - pz))`."""
        num = self.e + self.pz
        den = self.e - self.pz
        if num <= 0.0 or den <= 0.0:
            return math.copysign(1e9, self.pz)
        return 0.5 * math.log(num / den)


class PairCategory(IntEnum):
    """Charge-conjugate type of the intermediate two-body pair."""

    MATTER = 1
    ANTI = 2
    MATTER_MIX = 3
    ANTI_MIX = 4


class TripletCategory(IntEnum):
    """(bachelor sign) x (pair conjugate type) x (same/mixed event) tag."""

    MATTER_POS = 1
    MATTER_NEG = 2
    ANTI_POS = 3
    ANTI_NEG = 4
    MATTER_POS_MIX = 5
    MATTER_NEG_MIX = 6
    ANTI_POS_MIX = 7
    ANTI_NEG_MIX = 8


class TruthCategory(IntEnum):
    """Monte-Carlo histogram tag: generated input or truth-matched reconstruction."""

    INPUT = 1
    RECON = 2


@dataclass(frozen=True)
class TrackSelection:
    """Per-daughter kinematic gate applied before identification."""

    min_pt: float = 0.15
    max_dca_xy: float = 0.5
    min_dca_z: float = 0.0
    max_dca_z: float = 2.0

    def __post_init__(self) -> None:
        if self.min_dca_z > self.max_dca_z:
            raise ConfigurationError(
                f"DCAz window is inverted: [{self.min_dca_z}, {self.max_dca_z}]."
            )

    def accepts(self, track: Track) -> bool:
        """Return True when the track passes the pT and DCA window."""
        if track.pt < self.min_pt:
            return False
        if abs(track.dca_xy) > self.max_dca_xy:
            return False
        dca_z = abs(track.dca_z)
        return self.min_dca_z <= dca_z <= self.max_dca_z


@dataclass(frozen=True)
class DetectorWindow:
    """pT validity range and nSigma limits of one PID detector.

    `nsigma_max` is the stand-alone limit; `nsigma_combined_max` is the
    (usually looser) limit that makes the detector "conditional" when the
    other detector decides.
    """

    pt_min: float
    pt_max: float
    nsigma_max: float
    nsigma_combined_max: float

    def __post_init__(self) -> None:
        if self.pt_min > self.pt_max:
            raise ConfigurationError(
                f"Detector pT range is inverted: [{self.pt_min}, {self.pt_max}]."
            )
        if self.nsigma_max < 0.0 or self.nsigma_combined_max < 0.0:
            raise ConfigurationError("nSigma limits must be non-negative.")


@dataclass(frozen=True)
class PtBinnedNSigmaCut:
    """Breakpoint table of |nSigma| limits.

    Every breakpoint whose pT edge lies above the track pT applies
    independently; the track is rejected if any applicable limit fails.
    """

    pt_edges: tuple[float, ...]
    nsigma_max: tuple[float, ...]

    def __post_init__(self) -> None:
        if not self.pt_edges:
            raise ConfigurationError("nSigma breakpoint table must not be empty.")
        if len(self.pt_edges) != len(self.nsigma_max):
            raise ConfigurationError(
                f"nSigma breakpoint table has {len(self.pt_edges)} pT edges but "
                f"{len(self.nsigma_max)} limits."
            )
        validate_edges(self.pt_edges, "nSigma breakpoint", min_edges=1)

    def accepts(self, pt: float, nsigma: float) -> bool:
        """Return False as soon as one applicable breakpoint rejects `nsigma`."""
        for edge, limit in zip(self.pt_edges, self.nsigma_max, strict=True):
            if pt < edge and abs(nsigma) > limit:
                return False
        return True


def _default_kaon_cut() -> PtBinnedNSigmaCut:
    return PtBinnedNSigmaCut(pt_edges=(999.0,), nsigma_max=(2.0,))


@dataclass(frozen=True)
class ResonanceConfig:
    """Cuts of the on-the-fly pi K (+ bachelor pi) reconstruction."""

    track_selection: TrackSelection = field(default_factory=TrackSelection)
    pion_max_tpc_nsigma: float = 2.0
    pion_max_tof_nsigma: float = 2.0
    kaon_tpc_cut: PtBinnedNSigmaCut = field(default_factory=_default_kaon_cut)
    kaon_tof_cut: PtBinnedNSigmaCut = field(default_factory=_default_kaon_cut)
    bachelor_max_tpc_nsigma: float = 2.0
    bachelor_max_tof_nsigma: float = 2.0
    bachelor_tof_pid: bool = True
    intermediate_mass_window: float = 0.1
    aux_mass_window: tuple[float, float] | None = None
    min_rapidity: float = -0.5
    max_rapidity: float = 0.5
    activate_qa: bool = True

    def __post_init__(self) -> None:
        if self.intermediate_mass_window <= 0.0:
            raise ConfigurationError("Intermediate mass window must be positive.")
        if self.min_rapidity > self.max_rapidity:
            raise ConfigurationError(
                f"Rapidity window is inverted: [{self.min_rapidity}, {self.max_rapidity}]."
            )
        if self.aux_mass_window is not None and self.aux_mass_window[0] > self.aux_mass_window[1]:
            raise ConfigurationError(
                f"Auxiliary mass window is inverted: {self.aux_mass_window}."
            )
