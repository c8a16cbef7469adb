"""Unit tests for the cascading composite-candidate selector."""

from __future__ import annotations

import unittest

from resocomb import (
    CascadingSelector,
    CompositeCandidate,
    ConfigurationError,
    SelectionStatus,
    SelectionStep,
    SelectorConfig,
    Track,
    TwoProngCandidate,
    make_d0,
    make_kaon,
    make_pion,
    pid_policy_in_sync,
)
from resocomb.io import parse_selector_config
from resocomb.kinematics import invariant_mass


class TestCascadingSelector(unittest.TestCase):
    """Validate cumulative status bits, stage order and QA filling."""

    @staticmethod
    def _candidate(
        hf_flag: int = 1,
        bachelor_px: float = 2.5,
        bachelor_charge: int = -1,
        has_tof: bool = False,
        tof_nsigma_pi: float = 0.0,
        cpa: float = 0.95,
        decay_length: float = 0.1,
        impact_parameter_product: float = -0.001,
    ) -> CompositeCandidate:
        """Candidate whose D0 daughters sit close to the D0 mass, bachelor along x."""
        sub = TwoProngCandidate(
            index=0,
            prong0=Track(index=0, px=0.0, py=0.86, pz=0.0, charge=1),
            prong1=Track(index=1, px=0.0, py=-0.86, pz=0.0, charge=-1),
        )
        bachelor = Track(
            index=2,
            px=bachelor_px,
            py=0.0,
            pz=0.0,
            charge=bachelor_charge,
            has_tof=has_tof,
            tof_nsigma_pi=tof_nsigma_pi,
        )
        return CompositeCandidate(
            index=0,
            hf_flag=hf_flag,
            prong0=sub,
            prong1=bachelor,
            decay_length=decay_length,
            decay_length_xy=0.1,
            cpa=cpa,
            impact_parameter_product=impact_parameter_product,
            impact_parameter0=0.02,
            impact_parameter1=-0.02,
        )

    def test_missing_skim_bit_gives_zero(self) -> None:
        """A candidate without the tested decay-type bit gets status 0."""
        selector = CascadingSelector()
        self.assertEqual(int(selector.evaluate(self._candidate(hf_flag=0))), 0)
        self.assertEqual(int(selector.evaluate(self._candidate(hf_flag=0b10))), 0)

    def test_pid_disabled_sets_first_two_bits(self) -> None:
        """Disabling identification stops the status at the topology bit."""
        selector = CascadingSelector(SelectorConfig(use_pid=False))
        status = selector.evaluate(self._candidate())
        self.assertEqual(int(status), 0b11)
        self.assertEqual(status.steps, (SelectionStep.RECO_SKIMS, SelectionStep.RECO_TOPOL))

    def test_all_stages_pass(self) -> None:
        """A clean candidate reaches the identification bit."""
        status = CascadingSelector().evaluate(self._candidate())
        self.assertEqual(int(status), 0b111)
        self.assertEqual(status.last_step, SelectionStep.RECO_PID)

    def test_pid_out_of_sync_stops_at_topology(self) -> None:
        """An inconsistent upstream PID policy skips the identification stage."""
        selector = CascadingSelector(pid_in_sync=False)
        self.assertEqual(int(selector.evaluate(self._candidate())), 0b11)

    def test_not_applicable_policy(self) -> None:
        """Not-applicable identification follows the configured policy."""
        # TPC window of the default gate never applies; TOF is conditional at 6 sigma
        candidate = self._candidate(has_tof=True, tof_nsigma_pi=6.0)
        lenient = CascadingSelector(SelectorConfig(accept_pid_not_applicable=True))
        strict = CascadingSelector(SelectorConfig(accept_pid_not_applicable=False))
        self.assertEqual(int(lenient.evaluate(candidate)), 0b111)
        self.assertEqual(int(strict.evaluate(candidate)), 0b11)
        accepted = self._candidate(has_tof=True, tof_nsigma_pi=1.0)
        self.assertEqual(int(strict.evaluate(accepted)), 0b111)

    def test_topology_failures_keep_skim_bit(self) -> None:
        """Each topological cut failure leaves only the skim bit."""
        selector = CascadingSelector()
        for candidate in (
            self._candidate(cpa=0.5),
            self._candidate(decay_length=0.01),
            self._candidate(impact_parameter_product=0.01),
            self._candidate(bachelor_px=30.0),  # pT above the last bin edge
            self._candidate(bachelor_px=0.1),  # bachelor pT below 0.15
        ):
            self.assertEqual(int(selector.evaluate(candidate)), 0b1)

    def test_status_bits_are_prefix_set_and_idempotent(self) -> None:
        """Statuses are cumulative and stable across repeated runs."""
        selector = CascadingSelector()
        candidates = [
            self._candidate(hf_flag=flag, cpa=cpa, has_tof=True, tof_nsigma_pi=ns)
            for flag in (0, 1, 3)
            for cpa in (0.5, 0.99)
            for ns in (0.0, 6.0)
        ]
        first = selector.select(candidates)
        second = selector.select(candidates)
        self.assertEqual(len(first), len(candidates))
        self.assertEqual(first, second)
        for status in first:
            self.assertTrue(status.is_cumulative, msg=f"status {int(status):#b}")

    def test_intermediate_mass_hypothesis_follows_bachelor_charge(self) -> None:
        """The sub-candidate mass hypothesis swaps with the bachelor charge."""
        sub = TwoProngCandidate(
            index=0,
            prong0=Track(index=0, px=1.0, py=0.0, pz=0.0, charge=1),
            prong1=Track(index=1, px=-0.4, py=0.2, pz=0.0, charge=-1),
        )
        pion, kaon = make_pion(), make_kaon()
        selector = CascadingSelector()
        for charge, hypotheses in ((-1, (pion, kaon)), (1, (kaon, pion))):
            bachelor = Track(index=2, px=2.0, py=0.0, pz=0.0, charge=charge)
            candidate = CompositeCandidate(0, 1, sub, bachelor, 0.1, 0.1, 0.9, -0.001, 0.02, 0.02)
            expected = invariant_mass((sub.prong0, sub.prong1), hypotheses)
            self.assertAlmostEqual(selector.intermediate_mass(candidate), expected)

    def test_selection_qa_histogram(self) -> None:
        """The selection QA histogram counts every passed stage."""
        selector = CascadingSelector(SelectorConfig(activate_qa=True))
        selector.select([self._candidate(), self._candidate(cpa=0.1), self._candidate(hf_flag=0)])
        h = selector.qa["hSelections"]
        self.assertEqual(h.sum(), 3 + 1)
        per_stage = h.project("selection").values()
        self.assertEqual(list(per_stage), [0.0, 2.0, 1.0, 1.0])
        self.assertNotIn("hSelections", CascadingSelector().qa)

    def test_bachelor_without_detector_response_is_rejected(self) -> None:
        """A bachelor species with no stored nSigma fails when the configuration is built."""
        with self.assertRaises(ConfigurationError):
            SelectorConfig(bachelor=make_d0())
        with self.assertRaises(ValueError):
            parse_selector_config({"bachelor": "d0"})
        self.assertEqual(parse_selector_config({"bachelor": "kaon"}).bachelor, make_kaon())


class TestSelectionStatus(unittest.TestCase):
    """Bitmask helper behaviour."""

    def test_with_step_and_has(self) -> None:
        """Setting and querying individual stage bits."""
        status = SelectionStatus().with_step(SelectionStep.RECO_SKIMS)
        self.assertTrue(status.has(SelectionStep.RECO_SKIMS))
        self.assertFalse(status.has(SelectionStep.RECO_TOPOL))
        self.assertEqual(int(status), 1)
        self.assertFalse(SelectionStatus(0b101).is_cumulative)
        self.assertIsNone(SelectionStatus().last_step)


class TestPidPolicySync(unittest.TestCase):
    """Upstream identification-policy consistency flag."""

    def test_undeclared_flags_are_in_sync(self) -> None:
        """Missing upstream flags never flag a mismatch."""
        self.assertTrue(pid_policy_in_sync(True))
        self.assertTrue(pid_policy_in_sync(False))

    def test_mismatch_logs_warning(self) -> None:
        """A policy mismatch is reported with a warning."""
        with self.assertLogs("resocomb.selector", level="WARNING"):
            self.assertFalse(pid_policy_in_sync(True, selection_flag_d0=0, selection_flag_d0bar=1))
        with self.assertLogs("resocomb.selector", level="WARNING"):
            self.assertFalse(pid_policy_in_sync(False, selection_flag_d0=1))

    def test_matching_flags(self) -> None:
        """Consistent flags are in sync."""
        self.assertTrue(pid_policy_in_sync(True, 1, 1))
        self.assertTrue(pid_policy_in_sync(False, 0, 0))


if __name__ == "__main__":
    unittest.main()
