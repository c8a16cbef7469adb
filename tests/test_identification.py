"""Unit tests for TPC/TOF identification gates."""

from __future__ import annotations

import itertools
import unittest

from resocomb import (
    ConfigurationError,
    DetectorWindow,
    FixedNSigmaGate,
    IdentificationGate,
    PidStatus,
    PtBinnedNSigmaCut,
    PtBinnedNSigmaGate,
    Track,
    combine_tpc_tof,
    make_kaon,
    make_pion,
)
from resocomb.identification import is_pid_accepted


def _track(pt: float = 1.0, has_tof: bool = True, **nsigma: float) -> Track:
    """Track along x with the given pT and pion/kaon nSigma responses."""
    return Track(index=0, px=pt, py=0.0, pz=0.0, charge=1, has_tof=has_tof, **nsigma)


def _gate(single: float = 3.0, combined: float = 3.0) -> IdentificationGate:
    return IdentificationGate(
        tpc=DetectorWindow(pt_min=0.1, pt_max=1.0, nsigma_max=single, nsigma_combined_max=combined),
        tof=DetectorWindow(pt_min=0.5, pt_max=5.0, nsigma_max=single, nsigma_combined_max=combined),
    )


class TestCombinationRule(unittest.TestCase):
    """Merging of per-detector statuses."""

    def test_table(self) -> None:
        """Every TPC/TOF status combination gives the expected result."""
        A, C, N, R = (
            PidStatus.ACCEPTED,
            PidStatus.CONDITIONAL,
            PidStatus.NOT_APPLICABLE,
            PidStatus.REJECTED,
        )
        expected = {
            (A, A): A, (A, C): A, (A, N): A, (A, R): R,
            (C, A): A, (C, C): A, (C, N): N, (C, R): R,
            (N, A): A, (N, C): N, (N, N): N, (N, R): R,
            (R, A): R, (R, C): R, (R, N): R, (R, R): R,
        }
        for (tpc, tof), status in expected.items():
            with self.subTest(tpc=tpc.name, tof=tof.name):
                self.assertEqual(combine_tpc_tof(tpc, tof), status)

    def test_not_applicable_acceptance_flag(self) -> None:
        """The not-applicable outcome is accepted only when allowed."""
        self.assertTrue(is_pid_accepted(PidStatus.NOT_APPLICABLE, True))
        self.assertFalse(is_pid_accepted(PidStatus.NOT_APPLICABLE, False))
        self.assertTrue(is_pid_accepted(PidStatus.ACCEPTED, False))
        self.assertFalse(is_pid_accepted(PidStatus.REJECTED, True))


class TestIdentificationGate(unittest.TestCase):
    """Status evaluation from detector windows."""

    def test_not_applicable_outside_all_ranges(self) -> None:
        """Outside every detector pT range the status is not applicable."""
        gate = _gate()
        pion = make_pion()
        self.assertEqual(gate.status(_track(pt=10.0, tpc_nsigma_pi=9.0, tof_nsigma_pi=9.0), pion), PidStatus.NOT_APPLICABLE)
        self.assertEqual(gate.status(_track(pt=0.05, tpc_nsigma_pi=9.0), pion), PidStatus.NOT_APPLICABLE)

    def test_single_detector_decides_when_other_missing(self) -> None:
        """A lone applicable detector decides alone."""
        gate = _gate()
        pion = make_pion()
        # TPC-only range
        self.assertEqual(gate.status(_track(pt=0.3, tpc_nsigma_pi=1.0), pion), PidStatus.ACCEPTED)
        self.assertEqual(gate.status(_track(pt=0.3, tpc_nsigma_pi=4.0), pion), PidStatus.REJECTED)
        # no TOF signal on the track
        self.assertEqual(
            gate.status(_track(pt=0.7, has_tof=False, tpc_nsigma_pi=-2.5, tof_nsigma_pi=50.0), pion),
            PidStatus.ACCEPTED,
        )

    def test_both_detectors_must_agree(self) -> None:
        """With both detectors applicable both must accept."""
        gate = _gate()
        pion = make_pion()
        self.assertEqual(gate.status(_track(pt=0.7, tpc_nsigma_pi=1.0, tof_nsigma_pi=1.0), pion), PidStatus.ACCEPTED)
        self.assertEqual(gate.status(_track(pt=0.7, tpc_nsigma_pi=1.0, tof_nsigma_pi=4.0), pion), PidStatus.REJECTED)

    def test_uses_requested_species(self) -> None:
        """The gate reads the nSigma of the configured species."""
        gate = _gate()
        track = _track(pt=0.3, tpc_nsigma_pi=5.0, tpc_nsigma_ka=0.5)
        self.assertEqual(gate.status(track, make_pion()), PidStatus.REJECTED)
        self.assertEqual(gate.status(track, make_kaon()), PidStatus.ACCEPTED)

    def test_conditional_window(self) -> None:
        """A conditional response is accepted only by the combined threshold."""
        gate = _gate(single=2.0, combined=4.0)
        pion = make_pion()
        status = gate.detector_status(_track(pt=0.7, tpc_nsigma_pi=3.0), pion, "tpc")
        self.assertEqual(status, PidStatus.CONDITIONAL)
        both_conditional = _track(pt=0.7, tpc_nsigma_pi=3.0, tof_nsigma_pi=3.0)
        self.assertEqual(gate.status(both_conditional, pion), PidStatus.ACCEPTED)

    def test_looser_combined_threshold_never_rejects_more(self) -> None:
        """A looser combined threshold accepts a superset."""
        strict = _gate(single=2.0, combined=2.0)
        loose = _gate(single=2.0, combined=4.0)
        pion = make_pion()
        grid = (0.0, 1.5, 2.5, 3.5, 6.0)
        for pt, ns_tpc, ns_tof in itertools.product((0.3, 0.7, 3.0), grid, grid):
            track = _track(pt=pt, tpc_nsigma_pi=ns_tpc, tof_nsigma_pi=ns_tof)
            for accept_na in (True, False):
                if strict.accepts(track, pion, accept_na):
                    with self.subTest(pt=pt, tpc=ns_tpc, tof=ns_tof, accept_na=accept_na):
                        self.assertTrue(loose.accepts(track, pion, accept_na))

    def test_inverted_window_is_configuration_error(self) -> None:
        """A pT window with min above max is refused."""
        with self.assertRaises(ConfigurationError):
            DetectorWindow(pt_min=2.0, pt_max=1.0, nsigma_max=3.0, nsigma_combined_max=3.0)


class TestNSigmaGates(unittest.TestCase):
    """Boolean gates of the combinatorial reconstruction."""

    def test_fixed_gate_checks_tof_only_when_present(self) -> None:
        """The fixed gate applies TOF only to tracks with TOF."""
        gate = FixedNSigmaGate(make_pion(), max_tpc_nsigma=2.0, max_tof_nsigma=2.0)
        self.assertTrue(gate.accepts(_track(has_tof=False, tpc_nsigma_pi=1.9, tof_nsigma_pi=10.0)))
        self.assertFalse(gate.accepts(_track(has_tof=True, tpc_nsigma_pi=1.9, tof_nsigma_pi=10.0)))
        self.assertFalse(gate.accepts(_track(tpc_nsigma_pi=-2.1)))
        no_tof = FixedNSigmaGate(make_pion(), 2.0, 2.0, use_tof=False)
        self.assertTrue(no_tof.accepts(_track(has_tof=True, tof_nsigma_pi=10.0)))

    def test_every_applicable_breakpoint_gates(self) -> None:
        """Every breakpoint above the track pT has to pass."""
        cut = PtBinnedNSigmaCut(pt_edges=(0.5, 999.0), nsigma_max=(1.0, 3.0))
        # below 0.5 both limits apply, the tighter one rejects
        self.assertFalse(cut.accepts(0.3, 2.0))
        self.assertTrue(cut.accepts(0.3, 0.9))
        # above 0.5 only the looser limit applies
        self.assertTrue(cut.accepts(0.6, 2.0))
        self.assertFalse(cut.accepts(0.6, 3.5))
        # above every breakpoint nothing applies
        self.assertTrue(cut.accepts(1000.0, 50.0))

    def test_pt_binned_gate_uses_tof_for_tof_tracks(self) -> None:
        """TOF breakpoints apply to tracks with TOF."""
        gate = PtBinnedNSigmaGate(
            make_kaon(),
            tpc_cut=PtBinnedNSigmaCut((999.0,), (2.0,)),
            tof_cut=PtBinnedNSigmaCut((999.0,), (2.0,)),
        )
        self.assertTrue(gate.accepts(_track(has_tof=False, tpc_nsigma_ka=1.0, tof_nsigma_ka=9.0)))
        self.assertFalse(gate.accepts(_track(has_tof=True, tpc_nsigma_ka=1.0, tof_nsigma_ka=9.0)))

    def test_breakpoint_table_validation(self) -> None:
        """Breakpoint tables need matching lengths and increasing edges."""
        with self.assertRaises(ConfigurationError):
            PtBinnedNSigmaCut(pt_edges=(), nsigma_max=())
        with self.assertRaises(ConfigurationError):
            PtBinnedNSigmaCut(pt_edges=(1.0, 2.0), nsigma_max=(2.0,))
        with self.assertRaises(ConfigurationError):
            PtBinnedNSigmaCut(pt_edges=(2.0, 1.0), nsigma_max=(2.0, 2.0))


if __name__ == "__main__":
    unittest.main()
