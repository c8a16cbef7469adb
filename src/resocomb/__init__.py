"""Public package exports for the resonance selection and reconstruction framework."""

from .combiner import ResonanceCombiner, TripletCombination
from .cuts import CutTable, CutVariable, default_bplus_cut_table, find_bin
from .exceptions import ConfigurationError, ResoCombError
from .histograms import HistogramAggregator, HistogramRegistry, ResonanceHistograms
from .identification import (
    FixedNSigmaGate,
    IdentificationGate,
    PidStatus,
    PtBinnedNSigmaGate,
    combine_tpc_tof,
)
from .mixing import EventMixer, MixedPair, MixingBinning
from .models import (
    CompositeCandidate,
    DetectorWindow,
    Event,
    LorentzVector,
    PairCategory,
    ParticleHypothesis,
    PtBinnedNSigmaCut,
    ResonanceConfig,
    Track,
    TrackSelection,
    TripletCategory,
    TruthCategory,
    TruthParticle,
    TwoProngCandidate,
)
from .pid import (
    make_bplus,
    make_d0,
    make_k1,
    make_kaon,
    make_kstar0,
    make_pion,
    make_proton,
    particle_hypothesis_from_name,
)
from .selector import (
    CascadingSelector,
    SelectionStatus,
    SelectionStep,
    SelectorConfig,
    pid_policy_in_sync,
)
from .truth import count_generated

__all__ = [
    "ResonanceCombiner",
    "TripletCombination",
    "CascadingSelector",
    "SelectorConfig",
    "SelectionStatus",
    "SelectionStep",
    "pid_policy_in_sync",
    "CutTable",
    "CutVariable",
    "default_bplus_cut_table",
    "find_bin",
    "IdentificationGate",
    "FixedNSigmaGate",
    "PtBinnedNSigmaGate",
    "PidStatus",
    "combine_tpc_tof",
    "EventMixer",
    "MixingBinning",
    "MixedPair",
    "HistogramAggregator",
    "HistogramRegistry",
    "ResonanceHistograms",
    "Track",
    "Event",
    "TruthParticle",
    "TwoProngCandidate",
    "CompositeCandidate",
    "LorentzVector",
    "ParticleHypothesis",
    "TrackSelection",
    "DetectorWindow",
    "PtBinnedNSigmaCut",
    "ResonanceConfig",
    "PairCategory",
    "TripletCategory",
    "TruthCategory",
    "make_pion",
    "make_kaon",
    "make_proton",
    "make_kstar0",
    "make_k1",
    "make_d0",
    "make_bplus",
    "particle_hypothesis_from_name",
    "count_generated",
    "ResoCombError",
    "ConfigurationError",
]
