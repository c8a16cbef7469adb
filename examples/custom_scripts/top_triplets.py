"""Example custom callback: keep the triplets closest to the K1(1270) mass.

Use with:
    resocomb reconstruct --events events.json --out triplets.parquet \
        --custom-script examples/custom_scripts/top_triplets.py
"""

from __future__ import annotations

import json
from pathlib import Path

K1_MASS = 1.253


def process(results, context):
    """Rank physical-category triplets by |m - m(K1)| and save the top five."""
    physical = [r for r in results if r.category.name in ("MATTER_POS", "ANTI_NEG")]
    ranked = sorted(physical, key=lambda r: abs(r.mass - K1_MASS))
    payload = {
        "mode": context["mode"],
        "n_total": len(results),
        "n_physical": len(physical),
        "top_triplets": [
            {
                "event_id": r.event_id,
                "track_indices": list(r.track_indices),
                "category": r.category.name,
                "pair_mass": r.pair_mass,
                "mass": r.mass,
                "pt": r.pt,
                "rapidity": r.rapidity,
            }
            for r in ranked[:5]
        ],
    }
    out = Path(context["output_path"]).with_name("top_triplets.json")
    out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    print(f"Wrote {out}")
