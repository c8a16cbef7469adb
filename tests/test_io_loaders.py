"""Unit tests for JSON input loaders, configuration parsing and table writers."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from resocomb import (
    CompositeCandidate,
    CutVariable,
    SelectionStatus,
    Track,
    TwoProngCandidate,
    make_pion,
)
from resocomb.histograms import ResonanceHistograms
from resocomb.io import (
    load_candidates_json,
    load_cut_table_json,
    load_events_json,
    load_mixing_config_json,
    load_resonance_config_json,
    load_selector_config_json,
    load_truth_particles_json,
    write_histogram_table,
    write_statuses_table,
)


def _track(px: float, charge: int = 1, **extra) -> dict:
    return {"px": px, "py": 0.1, "pz": 0.0, "charge": charge, **extra}


class TestIOLoaders(unittest.TestCase):
    """Validate parsing for event, candidate, truth and configuration documents."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmpdir = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, name: str, payload) -> Path:
        path = self.tmpdir / name
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    def test_load_events_assigns_global_indices(self) -> None:
        """Implicit track indices run across the whole document."""
        path = self._write(
            "events.json",
            {
                "events": [
                    {"event_id": "a", "pos_z": 1.0, "multiplicity": 12, "tracks": [_track(0.5), _track(-0.5, -1)]},
                    {"pos_z": -3.0, "multiplicity": 40, "tracks": [_track(0.7, has_tof=True, tof_nsigma_pi=1.5)]},
                ]
            },
        )
        events = load_events_json(path)
        self.assertEqual([e.event_id for e in events], ["a", "evt1"])
        self.assertEqual([t.index for e in events for t in e.tracks], [0, 1, 2])
        self.assertEqual(events[1].tracks[0].event_id, "evt1")
        self.assertTrue(events[1].tracks[0].has_tof)
        self.assertEqual(events[1].tracks[0].nsigma("tof", make_pion()), 1.5)
        self.assertEqual(events[0].multiplicity, 12.0)

    def test_implicit_indices_skip_explicit_ones(self) -> None:
        """Running indices never collide with an index given in the document."""
        path = self._write(
            "mixed_indices.json",
            {
                "events": [
                    {"pos_z": 0.0, "multiplicity": 5, "tracks": [_track(0.5), _track(-0.5, -1, index=0), _track(0.3)]},
                    {"pos_z": 1.0, "multiplicity": 5, "tracks": [_track(0.2), _track(0.4, index=2)]},
                ]
            },
        )
        events = load_events_json(path)
        indices = [t.index for e in events for t in e.tracks]
        self.assertEqual(indices, [1, 0, 3, 4, 2])
        self.assertEqual(len(set(indices)), len(indices))

    def test_duplicate_index_in_event_is_rejected(self) -> None:
        """Two tracks of one event may not share an explicit index."""
        path = self._write(
            "dup.json",
            {"events": [{"pos_z": 0.0, "multiplicity": 2, "tracks": [_track(0.5, index=7), _track(-0.5, -1, index=7)]}]},
        )
        with self.assertRaises(ValueError):
            load_events_json(path)

    def test_load_events_rejects_bad_documents(self) -> None:
        """Malformed event documents raise ValueError."""
        with self.assertRaises(ValueError):
            load_events_json(self._write("a.json", {"tracks": []}))
        with self.assertRaises(ValueError):
            load_events_json(self._write("b.json", {"events": [{"pos_z": 0.0, "multiplicity": 1}]}))
        with self.assertRaises(ValueError):
            load_events_json(self._write("c.json", {"events": [{"tracks": []}]}))
        with self.assertRaises(ValueError):
            load_events_json(
                self._write(
                    "d.json",
                    {"events": [{"pos_z": 0.0, "multiplicity": 1, "tracks": [_track(1.0, time=3.0)]}]},
                )
            )
        with self.assertRaises(ValueError):
            load_events_json(self._write("e.json", [1, 2]))

    def test_load_candidates(self) -> None:
        """Candidates parse with their sub-candidate and bachelor."""
        payload = {
            "candidates": [
                {
                    "hf_flag": 1,
                    "prong0": {"prong0": _track(0.8), "prong1": _track(-0.8, -1)},
                    "prong1": _track(2.0, -1),
                    "decay_length": 0.1,
                    "decay_length_xy": 0.08,
                    "cpa": 0.97,
                    "impact_parameter_product": -1e-4,
                    "impact_parameter0": 0.02,
                    "impact_parameter1": -0.03,
                }
            ]
        }
        [cand] = load_candidates_json(self._write("cands.json", payload))
        self.assertEqual(cand.hf_flag, 1)
        self.assertEqual(cand.prong1.charge, -1)
        self.assertAlmostEqual(cand.pt, (2.0**2 + 0.3**2) ** 0.5)
        del payload["candidates"][0]["cpa"]
        with self.assertRaises(ValueError):
            load_candidates_json(self._write("bad.json", payload))

    def test_load_truth_particles(self) -> None:
        """Generator-level particles parse with daughters."""
        path = self._write(
            "mc.json",
            {"mc_particles": [{"pdg_code": 10323, "px": 1, "py": 0, "pz": 0, "e": 1.6, "daughter_indices": [1, 2]}]},
        )
        [part] = load_truth_particles_json(path)
        self.assertEqual(part.index, 0)
        self.assertEqual(part.daughter_indices, (1, 2))

    def test_cut_table_document(self) -> None:
        """A cut table document round-trips into a CutTable."""
        row = {var.value: 0.1 for var in CutVariable}
        path = self._write("cuts.json", {"bins_pt": [0, 5, 10], "cuts": [row, dict(row, CPA=0.9)]})
        table = load_cut_table_json(path)
        self.assertEqual(table.threshold(CutVariable.CPA, 7.0), 0.9)
        with self.assertRaises(ValueError):
            load_cut_table_json(self._write("extra.json", {"bins_pt": [0, 1], "cuts": [row], "pt_max": 3}))

    def test_configuration_sections(self) -> None:
        """Every configuration section parses into its dataclass."""
        path = self._write(
            "config.json",
            {
                "selector": {
                    "use_pid": False,
                    "pid": {"tof": {"pt_min": 0.2, "pt_max": 10, "nsigma_max": 3, "nsigma_combined_max": 3}},
                },
                "resonance": {
                    "track_selection": {"min_pt": 0.2},
                    "kaon_tpc_cut": {"pt_edges": [0.5, 999], "nsigma_max": [3, 2]},
                    "aux_mass_window": [0.3, 1.0],
                    "bachelor_tof_pid": False,
                    "intermediate_mass_window": 0.05,
                },
                "mixing": {"n_mix": 10, "vertex_z_edges": [-5, 0, 5]},
            },
        )
        selector = load_selector_config_json(path)
        self.assertFalse(selector.use_pid)
        self.assertIsNone(selector.pid_gate.tpc)
        self.assertEqual(selector.pid_gate.tof.nsigma_max, 3.0)
        self.assertEqual(selector.cut_table.n_bins, 12)

        resonance = load_resonance_config_json(path)
        self.assertEqual(resonance.track_selection.min_pt, 0.2)
        self.assertEqual(resonance.kaon_tpc_cut.pt_edges, (0.5, 999.0))
        self.assertEqual(resonance.aux_mass_window, (0.3, 1.0))
        self.assertFalse(resonance.bachelor_tof_pid)
        self.assertEqual(resonance.intermediate_mass_window, 0.05)

        binning, n_mix = load_mixing_config_json(path)
        self.assertEqual(n_mix, 10)
        self.assertEqual(binning.vertex_z_edges, (-5.0, 0.0, 5.0))
        self.assertEqual(binning.multiplicity_bin(150.0), 5)

    def test_unknown_configuration_keys_are_rejected(self) -> None:
        """Unknown configuration keys raise ValueError."""
        with self.assertRaises(ValueError):
            load_selector_config_json(self._write("a.json", {"selector": {"usePID": True}}))
        with self.assertRaises(ValueError):
            load_resonance_config_json(self._write("b.json", {"resonance": {"nEvtMixing": 5}}))
        with self.assertRaises(ValueError):
            load_mixing_config_json(self._write("c.json", {"histograms": {}}))


class TestTableWriters(unittest.TestCase):
    """pandas-backed output tables."""

    def test_histogram_table(self) -> None:
        """Non-empty histogram cells are written as rows."""
        import pandas as pd

        hists = ResonanceHistograms.create()
        hists.pairs.fill(1, 10.0, 1.05, 0.895)
        hists.pairs.fill(1, 10.0, 1.05, 0.895, weight=2.0)
        with tempfile.TemporaryDirectory() as tmpdir:
            out = Path(tmpdir) / "pairs.csv"
            write_histogram_table(out, hists.pairs)
            df = pd.read_csv(out)
        self.assertEqual(len(df), 1)
        self.assertEqual(df.loc[0, "weight"], 3.0)
        self.assertEqual(df.loc[0, "category"], 1)
        self.assertIn("mass_low", df.columns)

    def test_status_table(self) -> None:
        """Statuses are written with one flag column per stage."""
        import pandas as pd

        candidate = CompositeCandidate(
            index=4,
            hf_flag=1,
            prong0=TwoProngCandidate(0, Track(0, 1.0, 0.0, 0.0), Track(1, -1.0, 0.0, 0.0)),
            prong1=Track(2, 0.0, 2.0, 0.0, charge=1),
            decay_length=0.1,
            decay_length_xy=0.1,
            cpa=0.9,
            impact_parameter_product=0.0,
            impact_parameter0=0.0,
            impact_parameter1=0.0,
        )
        with tempfile.TemporaryDirectory() as tmpdir:
            out = Path(tmpdir) / "statuses.csv"
            write_statuses_table(out, [candidate], [SelectionStatus(0b11)])
            df = pd.read_csv(out)
        self.assertEqual(df.loc[0, "candidate_index"], 4)
        self.assertEqual(df.loc[0, "status"], 3)
        self.assertTrue(df.loc[0, "is_reco_topol"])
        self.assertFalse(df.loc[0, "is_reco_pid"])
        self.assertAlmostEqual(df.loc[0, "pt"], 2.0)

    def test_invalid_outputs(self) -> None:
        """Unsupported suffixes and length mismatches raise ValueError."""
        with self.assertRaises(ValueError):
            write_statuses_table("unused.csv", [], [SelectionStatus(1)])
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ValueError):
                write_histogram_table(Path(tmpdir) / "out.txt", ResonanceHistograms.create().pairs)


if __name__ == "__main__":
    unittest.main()
