"""Combinatorial reconstruction of track-track-track resonance decays.

The default configuration reconstructs K1(1270)+- -> K*(892)0 pi+-,
K*(892)0 -> K pi:
1. enumerate ordered (pion, kaon) track pairs with distinct indices
2. keep opposite-sign pairs passing the track and identification gates
3. histogram the pair and apply the K*(892)0 mass window
4. extend every surviving pair with a bachelor pion, apply the rapidity
   window, classify by charge-conjugate type and histogram the triplet.

Ordered pairs mean each unordered pair is visited twice, once per role
assignment. Results are forwarded to `ResonanceHistograms`; the returned
`TripletCombination` records are transient.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from .histograms import ResonanceHistograms
from .identification import FixedNSigmaGate, PtBinnedNSigmaGate
from .kinematics import track_to_lorentz
from .mixing import EventMixer
from .models import (
    Event,
    LorentzVector,
    PairCategory,
    ParticleHypothesis,
    ResonanceConfig,
    Track,
    TripletCategory,
    TruthCategory,
    require_nsigma_species,
)
from .pid import make_k1, make_kaon, make_kstar0, make_pion
from .truth import is_bachelor_truth_matched, is_pair_truth_matched

logger = logging.getLogger(__name__)

# Triplet categories that correspond to a physical K1 decay.
_SIGNAL_LIKE = (TripletCategory.MATTER_POS, TripletCategory.ANTI_NEG)


@dataclass(frozen=True)
class TripletCombination:
    """One accepted (pion, kaon, bachelor) combination."""

    event_id: str | None
    pion_index: int
    kaon_index: int
    bachelor_index: int
    category: TripletCategory
    multiplicity: float
    pair_mass: float
    pair_pt: float
    mass: float
    pt: float
    rapidity: float
    aux_mass: float
    truth_matched: bool = False

    @property
    def track_indices(self) -> tuple[int, int, int]:
        """Indices of the pion, kaon and bachelor tracks."""
        return self.pion_index, self.kaon_index, self.bachelor_index


def pair_category(anti: bool, mixed: bool) -> PairCategory:
    """Category of the intermediate pair."""
    base = PairCategory.ANTI if anti else PairCategory.MATTER
    return PairCategory(base + 2) if mixed else base


def triplet_category(bachelor_positive: bool, anti: bool, mixed: bool) -> TripletCategory:
    """Category of a triplet from bachelor sign, pair conjugate type and mixing mode."""
    if bachelor_positive:
        base = TripletCategory.ANTI_POS if anti else TripletCategory.MATTER_POS
    else:
        base = TripletCategory.ANTI_NEG if anti else TripletCategory.MATTER_NEG
    return TripletCategory(base + 4) if mixed else base


def _same_track(a: Track, b: Track) -> bool:
    return a.index == b.index and a.event_id == b.event_id


class ResonanceCombiner:
    """Build pion-kaon pairs and pion-kaon-pion triplets and histogram them."""

    def __init__(
        self,
        config: ResonanceConfig | None = None,
        histograms: ResonanceHistograms | None = None,
        pion: ParticleHypothesis | None = None,
        kaon: ParticleHypothesis | None = None,
        intermediate: ParticleHypothesis | None = None,
        composite: ParticleHypothesis | None = None,
    ) -> None:
        self.config = config or ResonanceConfig()
        self.histograms = histograms or ResonanceHistograms.create()
        self.pion = pion or make_pion()
        self.kaon = kaon or make_kaon()
        self.intermediate = intermediate or make_kstar0()
        self.composite = composite or make_k1()
        require_nsigma_species(self.pion, "pion")
        require_nsigma_species(self.kaon, "kaon")
        cfg = self.config
        self.pion_gate = FixedNSigmaGate(self.pion, cfg.pion_max_tpc_nsigma, cfg.pion_max_tof_nsigma)
        self.kaon_gate = PtBinnedNSigmaGate(self.kaon, cfg.kaon_tpc_cut, cfg.kaon_tof_cut)
        self.bachelor_gate = FixedNSigmaGate(
            self.pion,
            cfg.bachelor_max_tpc_nsigma,
            cfg.bachelor_max_tof_nsigma,
            use_tof=cfg.bachelor_tof_pid,
        )

    def combine(
        self,
        multiplicity: float,
        pion_tracks: Sequence[Track],
        kaon_tracks: Sequence[Track],
        bachelor_tracks: Sequence[Track],
        mixed: bool = False,
        use_truth: bool = False,
        event_id: str | None = None,
    ) -> list[TripletCombination]:
        """Run the pair and triplet loops over the given track lists.

        In mixed mode the pair tracks and the bachelor tracks come from two
        different events; QA and quick-look histograms are then not filled.
        """
        cfg = self.config
        qa = cfg.activate_qa and not mixed
        selection = cfg.track_selection
        results: list[TripletCombination] = []
        for trk1 in pion_tracks:
            for trk2 in kaon_tracks:
                if _same_track(trk1, trk2):
                    continue
                if trk1.charge * trk2.charge >= 0:
                    continue
                if not selection.accepts(trk1) or not selection.accepts(trk2):
                    continue

                pion_ok = self.pion_gate.accepts(trk1)
                kaon_ok = self.kaon_gate.accepts(trk2)
                if qa:
                    self._fill_track_qa("QAbefore", "pi", trk1, self.pion)
                    self._fill_track_qa("QAbefore", "ka", trk2, self.kaon)
                if not (pion_ok and kaon_ok):
                    continue
                if qa:
                    self._fill_track_qa("QAafter", "pi", trk1, self.pion)
                    self._fill_track_qa("QAafter", "ka", trk2, self.kaon)

                p4_pion = track_to_lorentz(trk1, self.pion)
                p4_pair = p4_pion + track_to_lorentz(trk2, self.kaon)
                anti = trk2.charge > 0
                self.histograms.pairs.fill(
                    pair_category(anti, mixed), multiplicity, p4_pair.pt, p4_pair.mass
                )
                if not mixed:
                    self.histograms.qa.fill("k892invmass", p4_pair.mass)

                if abs(p4_pair.mass - self.intermediate.mass) > cfg.intermediate_mass_window:
                    continue
                pair_matched = use_truth and is_pair_truth_matched(
                    trk1, trk2, self.pion, self.kaon, self.intermediate
                )
                results.extend(
                    self._extend_with_bachelor(
                        trk1, trk2, p4_pion, p4_pair, anti, bachelor_tracks,
                        multiplicity, mixed, qa, pair_matched, event_id,
                    )
                )
        logger.debug(
            "Event %s (%s): %d triplets from %d x %d pair tracks and %d bachelor tracks",
            event_id, "mixed" if mixed else "same", len(results),
            len(pion_tracks), len(kaon_tracks), len(bachelor_tracks),
        )
        return results

    def _extend_with_bachelor(
        self,
        trk1: Track,
        trk2: Track,
        p4_pion: LorentzVector,
        p4_pair: LorentzVector,
        anti: bool,
        bachelor_tracks: Sequence[Track],
        multiplicity: float,
        mixed: bool,
        qa: bool,
        pair_matched: bool,
        event_id: str | None,
    ) -> list[TripletCombination]:
        cfg = self.config
        out: list[TripletCombination] = []
        for bach in bachelor_tracks:
            if _same_track(bach, trk1) or _same_track(bach, trk2):
                continue
            if not cfg.track_selection.accepts(bach):
                continue
            bach_ok = self.bachelor_gate.accepts(bach)
            if qa:
                self._fill_track_qa("QAbefore", "pi_bach", bach, self.pion)
            if not bach_ok:
                continue
            if qa:
                self._fill_track_qa("QAafter", "pi_bach", bach, self.pion)

            p4_bach = track_to_lorentz(bach, self.pion)
            p4 = p4_pair + p4_bach
            rapidity = p4.rapidity
            if rapidity > cfg.max_rapidity or rapidity < cfg.min_rapidity:
                continue

            aux_mass = (p4_pion + p4_bach).mass
            if qa:
                self.histograms.qa.fill("QAMCbefore/InvMass_piK_pipi", p4_pair.mass, aux_mass)
            if cfg.aux_mass_window is not None:
                low, high = cfg.aux_mass_window
                if aux_mass < low or aux_mass > high:
                    continue

            category = triplet_category(bach.charge > 0, anti, mixed)
            self.histograms.triplets.fill(category, multiplicity, p4.pt, p4.mass)
            if category in _SIGNAL_LIKE:
                self.histograms.qa.fill("k1invmass", p4.mass)

            # one entry per accepted bachelor, after the rapidity and aux-mass cuts
            if pair_matched:
                self.histograms.qa.fill("hReconK892pt", p4_pair.pt)
            matched = pair_matched and is_bachelor_truth_matched(bach, self.pion, self.composite)
            if matched:
                self.histograms.qa.fill("hReconK1pt", p4.pt)
                self.histograms.triplets_mc.fill(TruthCategory.RECON, multiplicity, p4.pt, p4.mass)
                self.histograms.qa.fill("QAMCafter/InvMass_piK_pipi", p4_pair.mass, aux_mass)

            out.append(
                TripletCombination(
                    event_id=event_id,
                    pion_index=trk1.index,
                    kaon_index=trk2.index,
                    bachelor_index=bach.index,
                    category=category,
                    multiplicity=multiplicity,
                    pair_mass=p4_pair.mass,
                    pair_pt=p4_pair.pt,
                    mass=p4.mass,
                    pt=p4.pt,
                    rapidity=rapidity,
                    aux_mass=aux_mass,
                    truth_matched=matched,
                )
            )
        return out

    def _fill_track_qa(self, stage: str, role: str, track: Track, hypothesis: ParticleHypothesis) -> None:
        qa = self.histograms.qa
        pt = track.pt
        nsigma_tpc = track.nsigma("tpc", hypothesis)
        qa.fill(f"{stage}/trkpT_{role}", pt)
        qa.fill(f"{stage}/TPC_Nsigma_{role}", pt, nsigma_tpc)
        if track.has_tof:
            nsigma_tof = track.nsigma("tof", hypothesis)
            qa.fill(f"{stage}/TOF_Nsigma_{role}", pt, nsigma_tof)
            qa.fill(f"{stage}/TOF_TPC_Map_{role}", nsigma_tof, nsigma_tpc)

    def process_event(self, event: Event, use_truth: bool = False) -> list[TripletCombination]:
        """Same-event reconstruction: all three roles drawn from one event."""
        return self.combine(
            multiplicity=event.multiplicity,
            pion_tracks=event.tracks,
            kaon_tracks=event.tracks,
            bachelor_tracks=event.tracks,
            use_truth=use_truth,
            event_id=event.event_id,
        )

    def process_mixed_pair(self, first: Event, second: Event) -> list[TripletCombination]:
        """Mixed-event reconstruction: pair from `second`, bachelor from `first`."""
        if first.event_id == second.event_id:
            raise ValueError(f"Cannot mix event '{first.event_id}' with itself.")
        return self.combine(
            multiplicity=first.multiplicity,
            pion_tracks=second.tracks,
            kaon_tracks=second.tracks,
            bachelor_tracks=first.tracks,
            mixed=True,
            event_id=f"{first.event_id}x{second.event_id}",
        )

    def process_events(
        self, events: Iterable[Event], use_truth: bool = False
    ) -> list[TripletCombination]:
        """Run `process_event` on a batch of events and aggregate the records."""
        out: list[TripletCombination] = []
        n_events = 0
        for event in events:
            out.extend(self.process_event(event, use_truth=use_truth))
            n_events += 1
        logger.info("Processed %d events: %d same-event triplets", n_events, len(out))
        return out

    def process_mixed_events(
        self, events: Iterable[Event], mixer: EventMixer
    ) -> list[TripletCombination]:
        """Run the mixed-event reconstruction over every pair yielded by `mixer`."""
        out: list[TripletCombination] = []
        n_pairs = 0
        for pair in mixer.pairs(events):
            out.extend(self.process_mixed_pair(pair.first, pair.second))
            n_pairs += 1
        logger.info("Processed %d mixed event pairs: %d mixed triplets", n_pairs, len(out))
        return out
