"""Monte-Carlo truth matching and generator-level counting for efficiency plots."""

from __future__ import annotations

import logging
from typing import Sequence

from .histograms import ResonanceHistograms
from .models import ParticleHypothesis, Track, TruthParticle
from .pid import make_k1, make_kstar0, make_pion

logger = logging.getLogger(__name__)


def _has_code(code: int | None, hypothesis: ParticleHypothesis) -> bool:
    return code is not None and hypothesis.pdg_id is not None and abs(code) == hypothesis.pdg_id


def is_pair_truth_matched(
    first: Track,
    second: Track,
    first_hypothesis: ParticleHypothesis,
    second_hypothesis: ParticleHypothesis,
    intermediate: ParticleHypothesis,
) -> bool:
    """Both daughters carry the expected species and share an `intermediate` mother."""
    if not _has_code(first.pdg_code, first_hypothesis):
        return False
    if not _has_code(second.pdg_code, second_hypothesis):
        return False
    if first.mother_id is None or first.mother_id != second.mother_id:
        return False
    return _has_code(first.mother_pdg, intermediate)


def is_bachelor_truth_matched(
    bachelor: Track,
    bachelor_hypothesis: ParticleHypothesis,
    composite: ParticleHypothesis,
) -> bool:
    """The third track has the expected species and comes from a `composite` mother."""
    return _has_code(bachelor.pdg_code, bachelor_hypothesis) and _has_code(
        bachelor.mother_pdg, composite
    )


def count_generated(
    particles: Sequence[TruthParticle],
    histograms: ResonanceHistograms,
    composite: ParticleHypothesis | None = None,
    daughters: Sequence[ParticleHypothesis] | None = None,
    min_rapidity: float = -0.5,
    max_rapidity: float = 0.5,
) -> int:
    """Fill `hTrueK1pt` with generated composites decaying into the expected daughters.

    A particle counts when its |pdg| matches `composite`, its rapidity lies in
    the window, and at least one daughter of each expected species exists.
    Returns the number of counted particles.
    """
    composite = composite or make_k1()
    daughters = daughters if daughters is not None else (make_kstar0(), make_pion())
    by_index = {p.index: p for p in particles}
    counted = 0
    for part in particles:
        if not _has_code(part.pdg_code, composite):
            continue
        p4 = part.p4
        if p4.rapidity > max_rapidity or p4.rapidity < min_rapidity:
            continue
        codes = {abs(by_index[i].pdg_code) for i in part.daughter_indices if i in by_index}
        if not all(d.pdg_id in codes for d in daughters):
            continue
        histograms.qa.fill("hTrueK1pt", p4.pt)
        counted += 1
    logger.debug("Counted %d generated %s in %d truth particles", counted, composite.name, len(particles))
    return counted
