"""Cascading selection of B+ -> D0bar pi+ candidates from a JSON file.

Prints the fraction of candidates reaching each selection stage and the
per-stage pT spectrum of the QA histogram.

Run from repository root without installation:
    PYTHONPATH=src python examples/bplus_selection.py candidates.json [config.json]
"""

from __future__ import annotations

import sys
from dataclasses import replace

import hist

from resocomb import CascadingSelector, SelectionStep, SelectorConfig
from resocomb.io import load_candidates_json, load_config_json, parse_selector_config


def main(argv: list[str]) -> int:
    """Select candidates and summarize stage efficiencies."""
    if not argv:
        print(__doc__)
        return 1
    candidates = load_candidates_json(argv[0])
    config = parse_selector_config(load_config_json(argv[1]).get("selector", {})) if len(argv) > 1 else SelectorConfig()
    selector = CascadingSelector(replace(config, activate_qa=True))
    statuses = selector.select(candidates)

    n = max(len(statuses), 1)
    for step in SelectionStep:
        passed = sum(s.has(step) for s in statuses)
        print(f"{step.name:<12} {passed:6d} / {len(statuses)}  ({100.0 * passed / n:5.1f}%)")

    h = selector.qa["hSelections"]
    pt_edges = h.axes["pt"].edges
    for step in SelectionStep:
        row = h[hist.loc(2 + int(step)), :].values()
        cells = ", ".join(f"[{lo:g},{hi:g}): {v:.0f}" for lo, hi, v in zip(pt_edges[:-1], pt_edges[1:], row) if v)
        print(f"{step.name:<12} {cells}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
