"""Particle-identification gates built on TPC and TOF nSigma responses.

Two families of gates live here:
- `IdentificationGate`: the status-based TPC+TOF selector used by the
  cascading candidate selector (Accepted / Rejected / NotApplicable).
- `FixedNSigmaGate` and `PtBinnedNSigmaGate`: boolean gates used by the
  combinatorial reconstruction for the pion and kaon roles.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from .models import DetectorWindow, ParticleHypothesis, PtBinnedNSigmaCut, Track


class PidStatus(IntEnum):
    """Outcome of an identification check."""

    NOT_APPLICABLE = 0
    REJECTED = 1
    CONDITIONAL = 2
    ACCEPTED = 3


def is_pid_accepted(status: PidStatus, accept_not_applicable: bool) -> bool:
    """Translate a status into pass/fail.

    With `accept_not_applicable` only `REJECTED` fails; without it only
    `ACCEPTED` passes.
    """
    if accept_not_applicable:
        return status != PidStatus.REJECTED
    return status == PidStatus.ACCEPTED


def combine_tpc_tof(status_tpc: PidStatus, status_tof: PidStatus) -> PidStatus:
    """Merge two per-detector statuses into one track status."""
    soft = (PidStatus.NOT_APPLICABLE, PidStatus.CONDITIONAL)
    if status_tpc == PidStatus.ACCEPTED and status_tof == PidStatus.ACCEPTED:
        return PidStatus.ACCEPTED
    if status_tpc == PidStatus.ACCEPTED and status_tof in soft:
        return PidStatus.ACCEPTED
    if status_tpc in soft and status_tof == PidStatus.ACCEPTED:
        return PidStatus.ACCEPTED
    if status_tpc == PidStatus.CONDITIONAL and status_tof == PidStatus.CONDITIONAL:
        return PidStatus.ACCEPTED
    if status_tpc in soft and status_tof in soft:
        # at least one of the two is NotApplicable here
        return PidStatus.NOT_APPLICABLE
    return PidStatus.REJECTED


@dataclass(frozen=True)
class IdentificationGate:
    """TPC+TOF identification selector.

    A detector without a window, without a signal on the track, or outside its
    pT validity range is `NOT_APPLICABLE`. Inside the range the detector is
    `ACCEPTED` within `nsigma_max`, `CONDITIONAL` within
    `nsigma_combined_max`, and `REJECTED` otherwise.
    """

    tpc: DetectorWindow | None = None
    tof: DetectorWindow | None = None

    def detector_status(
        self, track: Track, hypothesis: ParticleHypothesis, detector: str
    ) -> PidStatus:
        """Evaluate one detector for one species hypothesis."""
        window = self.tpc if detector == "tpc" else self.tof if detector == "tof" else None
        if window is None or not track.has_detector(detector):
            return PidStatus.NOT_APPLICABLE
        if not window.pt_min <= track.pt <= window.pt_max:
            return PidStatus.NOT_APPLICABLE
        nsigma = abs(track.nsigma(detector, hypothesis))
        if nsigma <= window.nsigma_max:
            return PidStatus.ACCEPTED
        if nsigma <= window.nsigma_combined_max:
            return PidStatus.CONDITIONAL
        return PidStatus.REJECTED

    def status(self, track: Track, hypothesis: ParticleHypothesis) -> PidStatus:
        """Combined TPC and TOF status of `track` under `hypothesis`."""
        return combine_tpc_tof(
            self.detector_status(track, hypothesis, "tpc"),
            self.detector_status(track, hypothesis, "tof"),
        )

    def accepts(
        self, track: Track, hypothesis: ParticleHypothesis, accept_not_applicable: bool
    ) -> bool:
        """Shortcut for `is_pid_accepted(self.status(...), accept_not_applicable)`."""
        return is_pid_accepted(self.status(track, hypothesis), accept_not_applicable)


@dataclass(frozen=True)
class FixedNSigmaGate:
    """Constant |nSigma| limits; TOF is only checked for tracks with a TOF signal."""

    hypothesis: ParticleHypothesis
    max_tpc_nsigma: float
    max_tof_nsigma: float
    use_tof: bool = True

    def accepts(self, track: Track) -> bool:
        if abs(track.nsigma("tpc", self.hypothesis)) > self.max_tpc_nsigma:
            return False
        if self.use_tof and track.has_tof:
            if abs(track.nsigma("tof", self.hypothesis)) > self.max_tof_nsigma:
                return False
        return True


@dataclass(frozen=True)
class PtBinnedNSigmaGate:
    """pT-breakpoint |nSigma| limits for TPC and, when present, TOF."""

    hypothesis: ParticleHypothesis
    tpc_cut: PtBinnedNSigmaCut
    tof_cut: PtBinnedNSigmaCut

    def accepts(self, track: Track) -> bool:
        pt = track.pt
        if not self.tpc_cut.accepts(pt, track.nsigma("tpc", self.hypothesis)):
            return False
        if track.has_tof and not self.tof_cut.accepts(pt, track.nsigma("tof", self.hypothesis)):
            return False
        return True
