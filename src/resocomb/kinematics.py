"""Four-vector helpers for building resonance candidates from tracks."""

from __future__ import annotations

from typing import Iterable, Sequence

from .models import LorentzVector, ParticleHypothesis, Track


def four_vector(px: float, py: float, pz: float, mass: float) -> LorentzVector:
    """Build a Lorentz vector from a 3-momentum and a mass (SetXYZM)."""
    energy = (px * px + py * py + pz * pz + mass * mass) ** 0.5
    return LorentzVector(px=px, py=py, pz=pz, e=energy)


def track_to_lorentz(track: Track, mass: float | ParticleHypothesis) -> LorentzVector:
    """Convert a track plus mass hypothesis into a Lorentz 4-vector."""
    if isinstance(mass, ParticleHypothesis):
        mass = mass.mass
    return four_vector(track.px, track.py, track.pz, mass)


def sum_lorentz(vectors: Iterable[LorentzVector]) -> LorentzVector:
    """Sum an iterable of Lorentz vectors."""
    total = LorentzVector(0.0, 0.0, 0.0, 0.0)
    for vec in vectors:
        total = total + vec
    return total


def invariant_mass(
    tracks: Sequence[Track],
    hypotheses: Sequence[float | ParticleHypothesis],
) -> float:
    """Invariant mass of `tracks` with one mass hypothesis per track."""
    return sum_lorentz(
        track_to_lorentz(track, hypothesis)
        for track, hypothesis in zip(tracks, hypotheses, strict=True)
    ).mass

