"""Cascading selection of pre-built composite candidates.

Each candidate is evaluated against an ordered list of stages (skim flag,
topology, identification). Every stage that passes sets its bit in a
`SelectionStatus`; the first failing stage stops evaluation and the bits
accumulated so far are emitted. Bits are therefore always prefix-set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Iterable

import hist

from .cuts import BIN_NOT_FOUND, CutTable, CutVariable, default_bplus_cut_table
from .histograms import HistogramRegistry
from .identification import IdentificationGate, is_pid_accepted
from .kinematics import invariant_mass
from .models import CompositeCandidate, DetectorWindow, ParticleHypothesis, require_nsigma_species
from .pid import make_d0, make_kaon, make_pion

logger = logging.getLogger(__name__)


class SelectionStep(IntEnum):
    """Cumulative selection stages, in evaluation order (bit positions)."""

    RECO_SKIMS = 0
    RECO_TOPOL = 1
    RECO_PID = 2


class DecayType(IntEnum):
    """Bit positions of the upstream decay-type flag."""

    BPLUS_TO_D0_PI = 0


@dataclass(frozen=True)
class SelectionStatus:
    """Integer bitmask over `SelectionStep`."""

    value: int = 0

    def has(self, step: SelectionStep) -> bool:
        """Whether `step` passed."""
        return bool(self.value & (1 << step))

    def with_step(self, step: SelectionStep) -> "SelectionStatus":
        """Return a new status with `step` set."""
        return SelectionStatus(self.value | (1 << step))

    @property
    def steps(self) -> tuple[SelectionStep, ...]:
        """Passed steps in evaluation order."""
        return tuple(step for step in SelectionStep if self.has(step))

    @property
    def last_step(self) -> SelectionStep | None:
        """Furthest stage reached, or None if the skim flag was missing."""
        steps = self.steps
        return steps[-1] if steps else None

    @property
    def is_cumulative(self) -> bool:
        """True when the set bits form a prefix of the stage order."""
        return self.value & (self.value + 1) == 0

    def __int__(self) -> int:
        return self.value


def pid_policy_in_sync(
    use_pid: bool,
    selection_flag_d0: int | None = None,
    selection_flag_d0bar: int | None = None,
) -> bool:
    """Check that the sub-candidate producer's PID policy matches `use_pid`.

    A flag of None means the producer did not declare it and counts as in sync.
    """
    flags = [f for f in (selection_flag_d0, selection_flag_d0bar) if f is not None]
    in_sync = True
    if use_pid and any(not f for f in flags):
        in_sync = False
        logger.warning(
            "PID selections required on composite daughters (use_pid=True) but no PID "
            "selections on the sub-candidates were required a priori."
        )
    if not use_pid and any(f for f in flags):
        in_sync = False
        logger.warning(
            "No PID selections required on composite daughters (use_pid=False) but PID "
            "selections on the sub-candidates were required a priori."
        )
    return in_sync


def _default_pion_gate() -> IdentificationGate:
    return IdentificationGate(
        tpc=DetectorWindow(pt_min=999.0, pt_max=9999.0, nsigma_max=5.0, nsigma_combined_max=5.0),
        tof=DetectorWindow(pt_min=0.15, pt_max=50.0, nsigma_max=5.0, nsigma_combined_max=999.0),
    )


@dataclass(frozen=True)
class SelectorConfig:
    """Configuration of the cascading selector.

    `intermediate_daughters` are the prong hypotheses of the sub-candidate
    when the bachelor is negative (D0 -> pi K); they are swapped for a positive
    bachelor (D0bar -> K pi).
    """

    cut_table: CutTable = field(default_factory=default_bplus_cut_table)
    use_pid: bool = True
    accept_pid_not_applicable: bool = True
    activate_qa: bool = False
    pid_gate: IdentificationGate = field(default_factory=_default_pion_gate)
    decay_type: int = DecayType.BPLUS_TO_D0_PI
    bachelor: ParticleHypothesis = field(default_factory=make_pion)
    intermediate: ParticleHypothesis = field(default_factory=make_d0)
    intermediate_daughters: tuple[ParticleHypothesis, ParticleHypothesis] = field(
        default_factory=lambda: (make_pion(), make_kaon())
    )

    def __post_init__(self) -> None:
        require_nsigma_species(self.bachelor, "bachelor")


Stage = tuple[SelectionStep, Callable[[CompositeCandidate], bool]]


class CascadingSelector:
    """Assign a cumulative `SelectionStatus` to every composite candidate.

    `pid_in_sync` is the precomputed result of `pid_policy_in_sync`; when it is
    False the identification stage is skipped and statuses stop at the
    topological bit.
    """

    def __init__(self, config: SelectorConfig | None = None, pid_in_sync: bool = True) -> None:
        self.config = config or SelectorConfig()
        self.pid_in_sync = pid_in_sync
        self.stages: tuple[Stage, ...] = self._build_stages()
        self.qa = HistogramRegistry()
        if self.config.activate_qa:
            self.qa.add(
                "hSelections",
                hist.axis.Regular(1 + len(SelectionStep), 0.5, 1.5 + len(SelectionStep), name="selection"),
                hist.axis.Variable(self.config.cut_table.bin_edges, name="pt", label="p_T (GeV/c)"),
                title="Selections",
            )

    def _build_stages(self) -> tuple[Stage, ...]:
        stages: list[Stage] = [
            (SelectionStep.RECO_SKIMS, self.passes_skim),
            (SelectionStep.RECO_TOPOL, self.passes_topology),
        ]
        if self.config.use_pid and self.pid_in_sync:
            stages.append((SelectionStep.RECO_PID, self.passes_pid))
        return tuple(stages)

    def evaluate(self, candidate: CompositeCandidate) -> SelectionStatus:
        """Run the stages in order and return the accumulated status."""
        status = SelectionStatus()
        for step, predicate in self.stages:
            if not predicate(candidate):
                break
            status = status.with_step(step)
            if self.config.activate_qa:
                self.qa.fill("hSelections", 2 + step, candidate.pt)
        return status

    def select(self, candidates: Iterable[CompositeCandidate]) -> list[SelectionStatus]:
        """Evaluate a batch; one status per candidate, in input order."""
        statuses = [self.evaluate(c) for c in candidates]
        logger.info(
            "Selected %d candidates: %d skim, %d topology, %d PID",
            len(statuses),
            sum(s.has(SelectionStep.RECO_SKIMS) for s in statuses),
            sum(s.has(SelectionStep.RECO_TOPOL) for s in statuses),
            sum(s.has(SelectionStep.RECO_PID) for s in statuses),
        )
        return statuses

    def passes_skim(self, candidate: CompositeCandidate) -> bool:
        """Upstream decay-type flag must contain the tested hypothesis."""
        return bool(candidate.hf_flag & (1 << self.config.decay_type))

    def intermediate_mass(self, candidate: CompositeCandidate) -> float:
        """Sub-candidate mass under the hypothesis implied by the bachelor charge."""
        first, second = self.config.intermediate_daughters
        if candidate.prong1.charge > 0:
            hypotheses = (second, first)
        else:
            hypotheses = (first, second)
        sub = candidate.prong0
        return invariant_mass((sub.prong0, sub.prong1), hypotheses)

    def passes_topology(self, candidate: CompositeCandidate) -> bool:
        """Apply the pT-binned topological cuts; False outside the table's pT range."""
        table = self.config.cut_table
        pt_bin = table.find_bin(candidate.pt)
        if pt_bin == BIN_NOT_FOUND:
            return False
        bachelor = candidate.prong1
        if bachelor.pt < table.get(pt_bin, CutVariable.PT_BACHELOR):
            return False
        if candidate.impact_parameter_product > table.get(pt_bin, CutVariable.IMPACT_PARAMETER_PRODUCT):
            return False
        delta_mass = abs(self.intermediate_mass(candidate) - self.config.intermediate.mass)
        if delta_mass > table.get(pt_bin, CutVariable.DELTA_MASS_INTERMEDIATE):
            return False
        if candidate.decay_length < table.get(pt_bin, CutVariable.DECAY_LENGTH):
            return False
        if candidate.decay_length_xy < table.get(pt_bin, CutVariable.DECAY_LENGTH_XY):
            return False
        if candidate.cpa < table.get(pt_bin, CutVariable.CPA):
            return False
        if abs(candidate.impact_parameter0) < table.get(pt_bin, CutVariable.IMPACT_PARAMETER_INTERMEDIATE):
            return False
        if abs(candidate.impact_parameter1) < table.get(pt_bin, CutVariable.IMPACT_PARAMETER_BACHELOR):
            return False
        return True

    def passes_pid(self, candidate: CompositeCandidate) -> bool:
        """Identification of the bachelor track."""
        return self.config.pid_gate.accepts(
            candidate.prong1,
            self.config.bachelor,
            self.config.accept_pid_not_applicable,
        )
