"""Command-line interface for candidate selection and resonance reconstruction."""

from __future__ import annotations

import argparse
import importlib.util
import logging
from pathlib import Path
from typing import Any

from .combiner import ResonanceCombiner, TripletCombination
from .histograms import ResonanceHistograms
from .io import (
    load_candidates_json,
    load_config_json,
    load_events_json,
    load_truth_particles_json,
    parse_mixing_config,
    parse_resonance_config,
    parse_selector_config,
    write_histogram_table,
    write_statuses_table,
    write_triplets_table,
)
from .mixing import EventMixer
from .selector import CascadingSelector, pid_policy_in_sync
from .truth import count_generated

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Define and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="resocomb",
        description="Cascading candidate selection and combinatorial resonance reconstruction.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    select = sub.add_parser("select", help="Assign cumulative selection statuses to composite candidates.")
    select.add_argument("--candidates", required=True, help="Input JSON with key 'candidates'.")
    select.add_argument("--config", default=None, help="Configuration JSON (section 'selector').")
    select.add_argument(
        "--selection-flag-d0",
        type=int,
        default=None,
        help="PID flag the sub-candidate producer used for D0 (omit if undeclared).",
    )
    select.add_argument(
        "--selection-flag-d0bar",
        type=int,
        default=None,
        help="PID flag the sub-candidate producer used for D0bar (omit if undeclared).",
    )
    select.add_argument("--out", required=True, help="Output status table (.parquet, .csv, .pkl).")

    reco = sub.add_parser("reconstruct", help="Build pi-K pairs and pi-K-pi triplets from events.")
    reco.add_argument("--events", required=True, help="Input JSON with key 'events'.")
    reco.add_argument("--config", default=None, help="Configuration JSON (sections 'resonance', 'mixing').")
    reco.add_argument(
        "--mode",
        choices=["same", "mixed", "mc"],
        default="same",
        help="Same-event, mixed-event, or same-event with truth matching.",
    )
    reco.add_argument(
        "--truth",
        default=None,
        help="Generator-level JSON with key 'mc_particles' (mode 'mc' only).",
    )
    reco.add_argument("--out", required=True, help="Output table of accepted triplets.")
    reco.add_argument(
        "--hist-out",
        default=None,
        help="Optional output table of the non-empty triplet histogram cells.",
    )
    reco.add_argument(
        "--pair-hist-out",
        default=None,
        help="Optional output table of the non-empty pion-kaon pair histogram cells.",
    )
    reco.add_argument(
        "--mc-hist-out",
        default=None,
        help="Optional output table of the non-empty truth-matched triplet histogram cells.",
    )
    reco.add_argument(
        "--custom-script",
        default=None,
        help="Path to Python file with process(results, context) function.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint: dispatch to the selected subcommand."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "select":
        return run_select(args)
    return run_reconstruct(args)


def run_select(args: argparse.Namespace) -> int:
    """Evaluate every candidate and write one status row per candidate."""
    config_doc = load_config_json(args.config) if args.config else {}
    config = parse_selector_config(config_doc.get("selector", {}))
    in_sync = pid_policy_in_sync(config.use_pid, args.selection_flag_d0, args.selection_flag_d0bar)
    selector = CascadingSelector(config, pid_in_sync=in_sync)
    candidates = load_candidates_json(args.candidates)
    statuses = selector.select(candidates)
    write_statuses_table(args.out, candidates, statuses)
    return 0


def run_reconstruct(args: argparse.Namespace) -> int:
    """Run the same-event, mixed-event or truth-matched reconstruction."""
    if args.truth and args.mode != "mc":
        raise ValueError("--truth is only meaningful with --mode mc.")
    config_doc = load_config_json(args.config) if args.config else {}
    config = parse_resonance_config(config_doc.get("resonance", {}))
    histograms = ResonanceHistograms.create()
    combiner = ResonanceCombiner(config=config, histograms=histograms)
    events = load_events_json(args.events)

    if args.mode == "mixed":
        binning, n_mix = parse_mixing_config(config_doc.get("mixing", {}))
        results = combiner.process_mixed_events(events, EventMixer(binning, n_mix=n_mix))
    else:
        results = combiner.process_events(events, use_truth=args.mode == "mc")
    if args.truth:
        n_generated = count_generated(load_truth_particles_json(args.truth), histograms)
        logger.info("Counted %d generated composites", n_generated)

    write_triplets_table(args.out, results)
    if args.hist_out:
        write_histogram_table(args.hist_out, histograms.triplets)
    if args.pair_hist_out:
        write_histogram_table(args.pair_hist_out, histograms.pairs)
    if args.mc_hist_out:
        write_histogram_table(args.mc_hist_out, histograms.triplets_mc)

    if args.custom_script:
        run_custom_script(
            script_path=args.custom_script,
            results=results,
            context={
                "events_path": args.events,
                "config_path": args.config,
                "mode": args.mode,
                "config": config,
                "histograms": histograms,
                "output_path": args.out,
            },
        )
    return 0


def run_custom_script(
    script_path: str, results: list[TripletCombination], context: dict[str, Any]
) -> None:
    """Execute user-supplied post-processing callback `process(results, context)`."""
    module = _load_module(script_path)
    process = getattr(module, "process", None)
    if process is None or not callable(process):
        raise ValueError(
            f"Custom script {script_path} must define callable process(results, context)."
        )
    process(results, context)


def _load_module(script_path: str):
    """Import a Python module from an arbitrary file path."""
    path = Path(script_path)
    spec = importlib.util.spec_from_file_location(path.stem, path)
    if spec is None or spec.loader is None:
        raise ValueError(f"Cannot import custom script: {script_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


if __name__ == "__main__":
    raise SystemExit(main())
