"""Particle-hypothesis helpers used in mass-assignment workflows.

This module exposes named hypothesis builders for the daughters, intermediate
resonances and composite particles handled by the combiner and selector.
"""

from __future__ import annotations

from .models import ParticleHypothesis

_PION = ParticleHypothesis(name="pi", mass=0.13957039, pdg_id=211)
_KAON = ParticleHypothesis(name="ka", mass=0.493677, pdg_id=321)
_PROTON = ParticleHypothesis(name="pr", mass=0.93827208816, pdg_id=2212)
_KSTAR0 = ParticleHypothesis(name="K*(892)0", mass=0.89555, pdg_id=313)
_K1 = ParticleHypothesis(name="K1(1270)+", mass=1.253, pdg_id=10323)
_D0 = ParticleHypothesis(name="D0", mass=1.86484, pdg_id=421)
_BPLUS = ParticleHypothesis(name="B+", mass=5.27934, pdg_id=521)

_NAME_TO_HYPOTHESIS: dict[str, ParticleHypothesis] = {
    "pi": _PION,
    "pion": _PION,
    "ka": _KAON,
    "k": _KAON,
    "kaon": _KAON,
    "pr": _PROTON,
    "p": _PROTON,
    "proton": _PROTON,
    "kstar0": _KSTAR0,
    "k892": _KSTAR0,
    "k1": _K1,
    "k1270": _K1,
    "d0": _D0,
    "bplus": _BPLUS,
}


def make_pion() -> ParticleHypothesis:
    """Return the standard charged-pion mass hypothesis."""
    return _PION


def make_kaon() -> ParticleHypothesis:
    """Return the standard charged-kaon mass hypothesis."""
    return _KAON


def make_proton() -> ParticleHypothesis:
    """Return the proton mass hypothesis."""
    return _PROTON


def make_kstar0() -> ParticleHypothesis:
    """Return the neutral K*(892) resonance hypothesis."""
    return _KSTAR0


def make_k1() -> ParticleHypothesis:
    """Return the charged K1(1270) resonance hypothesis."""
    return _K1


def make_d0() -> ParticleHypothesis:
    """Return the D0 meson hypothesis."""
    return _D0


def make_bplus() -> ParticleHypothesis:
    """Return the B+ meson hypothesis."""
    return _BPLUS


def particle_hypothesis_from_name(name: str) -> ParticleHypothesis:
    """Resolve a short particle name (e.g. `pi`, `kaon`, `k892`) into a hypothesis."""
    key = name.strip().lower()
    try:
        return _NAME_TO_HYPOTHESIS[key]
    except KeyError as exc:
        supported = ", ".join(sorted(_NAME_TO_HYPOTHESIS))
        raise ValueError(
            f"Unknown particle hypothesis name '{name}'. Supported names: {supported}"
        ) from exc
