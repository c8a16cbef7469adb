"""Input/output helpers for JSON inputs, configuration and tabular result export."""

from __future__ import annotations

import json
import logging
from dataclasses import fields
from itertools import count
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

from .cuts import CutTable, default_bplus_cut_table
from .histograms import HistogramAggregator
from .identification import IdentificationGate
from .mixing import MixingBinning
from .models import (
    CompositeCandidate,
    DetectorWindow,
    Event,
    PtBinnedNSigmaCut,
    ResonanceConfig,
    Track,
    TrackSelection,
    TruthParticle,
    TwoProngCandidate,
)
from .pid import particle_hypothesis_from_name
from .selector import SelectionStatus, SelectionStep, SelectorConfig

logger = logging.getLogger(__name__)

_TRACK_FIELDS = {f.name for f in fields(Track)}


def load_events_json(path: str | Path) -> list[Event]:
    """Load multi-event input JSON into `Event` objects.

    Expected shape:
    {
      "events": [
        {"event_id": "...", "pos_z": ..., "multiplicity": ..., "tracks": [...]},
        ...
      ]
    }
    Tracks without an explicit `index` get a running index that is unique
    across the whole document and skips every explicit index. Two tracks of
    one event sharing an index are rejected.
    """
    data = _load_json(path)
    events_data = data.get("events")
    if not isinstance(events_data, list):
        raise ValueError("Events JSON must contain a list under key 'events'.")
    running = _free_indices(_explicit_track_indices(events_data))
    out: list[Event] = []
    for idx, event in enumerate(events_data):
        if not isinstance(event, dict):
            raise ValueError(f"Event entry at index {idx} must be an object.")
        event_id = str(event.get("event_id", f"evt{idx}"))
        tracks_data = event.get("tracks")
        if not isinstance(tracks_data, list):
            raise ValueError(f"Event '{event_id}' must contain a list under key 'tracks'.")
        try:
            pos_z = float(event["pos_z"])
            multiplicity = float(event["multiplicity"])
        except KeyError as exc:
            raise ValueError(f"Event '{event_id}' is missing field {exc}.") from exc
        tracks = tuple(
            _parse_track_item(
                item=track_item,
                idx=tidx,
                context=f"event '{event_id}'",
                indices=running,
                event_id=event_id,
            )
            for tidx, track_item in enumerate(tracks_data)
        )
        seen: set[int] = set()
        for track in tracks:
            if track.index in seen:
                raise ValueError(f"Event '{event_id}' has more than one track with index {track.index}.")
            seen.add(track.index)
        out.append(Event(event_id=event_id, pos_z=pos_z, multiplicity=multiplicity, tracks=tracks))
    logger.info("Loaded %d events from %s", len(out), path)
    return out


def load_truth_particles_json(path: str | Path) -> list[TruthParticle]:
    """Load generator-level particles from key 'mc_particles'."""
    data = _load_json(path)
    particles = data.get("mc_particles")
    if not isinstance(particles, list):
        raise ValueError("Truth JSON must contain a list under key 'mc_particles'.")
    out: list[TruthParticle] = []
    for idx, item in enumerate(particles):
        if not isinstance(item, dict):
            raise ValueError(f"Truth particle at index {idx} must be an object.")
        out.append(
            TruthParticle(
                index=int(item.get("index", idx)),
                pdg_code=int(item["pdg_code"]),
                px=float(item["px"]),
                py=float(item["py"]),
                pz=float(item["pz"]),
                e=float(item["e"]),
                daughter_indices=tuple(int(d) for d in item.get("daughter_indices", [])),
            )
        )
    return out


def load_candidates_json(path: str | Path) -> list[CompositeCandidate]:
    """Load pre-built composite candidates from key 'candidates'.

    Each candidate holds its sub-candidate under `prong0` (with two track
    objects `prong0`/`prong1`) and the bachelor track under `prong1`.
    """
    data = _load_json(path)
    cands = data.get("candidates")
    if not isinstance(cands, list):
        raise ValueError("Candidates JSON must contain a list under key 'candidates'.")
    running = count()
    out: list[CompositeCandidate] = []
    for idx, item in enumerate(cands):
        if not isinstance(item, dict):
            raise ValueError(f"Candidate entry at index {idx} must be an object.")
        context = f"candidate {idx}"
        sub = item.get("prong0")
        if not isinstance(sub, dict):
            raise ValueError(f"{context} must define sub-candidate object 'prong0'.")
        sub_candidate = TwoProngCandidate(
            index=int(sub.get("index", idx)),
            prong0=_parse_track_item(sub.get("prong0"), 0, f"{context} prong0", running),
            prong1=_parse_track_item(sub.get("prong1"), 1, f"{context} prong0", running),
        )
        try:
            out.append(
                CompositeCandidate(
                    index=int(item.get("index", idx)),
                    hf_flag=int(item["hf_flag"]),
                    prong0=sub_candidate,
                    prong1=_parse_track_item(item.get("prong1"), 1, context, running),
                    decay_length=float(item["decay_length"]),
                    decay_length_xy=float(item["decay_length_xy"]),
                    cpa=float(item["cpa"]),
                    impact_parameter_product=float(item["impact_parameter_product"]),
                    impact_parameter0=float(item["impact_parameter0"]),
                    impact_parameter1=float(item["impact_parameter1"]),
                )
            )
        except KeyError as exc:
            raise ValueError(f"{context} is missing field {exc}.") from exc
    logger.info("Loaded %d candidates from %s", len(out), path)
    return out


def load_config_json(path: str | Path) -> dict[str, Any]:
    """Read a configuration document (sections: selector, resonance, mixing)."""
    data = _load_json(path)
    _check_keys(data, {"selector", "resonance", "mixing"}, f"configuration {path}")
    return data


def parse_cut_table(data: dict[str, Any]) -> CutTable:
    """Build a `CutTable` from `{"bins_pt": [...], "cuts": [{label: value}, ...]}`."""
    _check_keys(data, {"bins_pt", "cuts"}, "cut table")
    bins = data.get("bins_pt")
    rows = data.get("cuts")
    if not isinstance(bins, list) or not isinstance(rows, list):
        raise ValueError("Cut table needs lists under 'bins_pt' and 'cuts'.")
    return CutTable.from_rows(bins, rows)


def load_cut_table_json(path: str | Path) -> CutTable:
    """Load a pT-binned cut table document."""
    return parse_cut_table(_load_json(path))


def parse_selector_config(data: dict[str, Any]) -> SelectorConfig:
    """Build a `SelectorConfig` from a JSON section."""
    _check_keys(
        data,
        {"use_pid", "accept_pid_not_applicable", "activate_qa", "cut_table", "pid", "bachelor", "intermediate"},
        "selector configuration",
    )
    cut_table = parse_cut_table(data["cut_table"]) if "cut_table" in data else default_bplus_cut_table()
    kwargs: dict[str, Any] = {"cut_table": cut_table}
    for key in ("use_pid", "accept_pid_not_applicable", "activate_qa"):
        if key in data:
            kwargs[key] = bool(data[key])
    for key in ("bachelor", "intermediate"):
        if key in data:
            kwargs[key] = particle_hypothesis_from_name(str(data[key]))
    if "pid" in data:
        pid = data["pid"]
        _check_keys(pid, {"tpc", "tof"}, "selector pid")
        kwargs["pid_gate"] = IdentificationGate(
            tpc=_parse_detector_window(pid.get("tpc")),
            tof=_parse_detector_window(pid.get("tof")),
        )
    return SelectorConfig(**kwargs)


def load_selector_config_json(path: str | Path) -> SelectorConfig:
    """Load the 'selector' section of a configuration document."""
    return parse_selector_config(load_config_json(path).get("selector", {}))


def parse_resonance_config(data: dict[str, Any]) -> ResonanceConfig:
    """Build a `ResonanceConfig` from a JSON section (flat keys, nested track selection)."""
    allowed = {f.name for f in fields(ResonanceConfig)}
    _check_keys(data, allowed, "resonance configuration")
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key == "track_selection":
            _check_keys(value, {f.name for f in fields(TrackSelection)}, "track selection")
            kwargs[key] = TrackSelection(**{k: float(v) for k, v in value.items()})
        elif key in ("kaon_tpc_cut", "kaon_tof_cut"):
            _check_keys(value, {"pt_edges", "nsigma_max"}, key)
            kwargs[key] = PtBinnedNSigmaCut(
                pt_edges=tuple(float(x) for x in value["pt_edges"]),
                nsigma_max=tuple(float(x) for x in value["nsigma_max"]),
            )
        elif key == "aux_mass_window":
            kwargs[key] = None if value is None else (float(value[0]), float(value[1]))
        elif key in ("bachelor_tof_pid", "activate_qa"):
            kwargs[key] = bool(value)
        else:
            kwargs[key] = float(value)
    return ResonanceConfig(**kwargs)


def load_resonance_config_json(path: str | Path) -> ResonanceConfig:
    """Load the 'resonance' section of a configuration document."""
    return parse_resonance_config(load_config_json(path).get("resonance", {}))


def parse_mixing_config(data: dict[str, Any]) -> tuple[MixingBinning, int]:
    """Return `(binning, n_mix)` from a JSON section."""
    _check_keys(data, {"n_mix", "vertex_z_edges", "multiplicity_edges"}, "mixing configuration")
    kwargs: dict[str, Any] = {}
    for key in ("vertex_z_edges", "multiplicity_edges"):
        if key in data:
            kwargs[key] = tuple(float(x) for x in data[key])
    return MixingBinning(**kwargs), int(data.get("n_mix", 5))


def load_mixing_config_json(path: str | Path) -> tuple[MixingBinning, int]:
    """Load the 'mixing' section of a configuration document."""
    return parse_mixing_config(load_config_json(path).get("mixing", {}))


def write_statuses_table(
    path: str | Path,
    candidates: Sequence[CompositeCandidate],
    statuses: Sequence[SelectionStatus],
) -> None:
    """Write one row per candidate with its status bitmask and per-step flags."""
    if len(candidates) != len(statuses):
        raise ValueError("Each candidate needs exactly one selection status.")
    rows: list[dict[str, Any]] = []
    for cand, status in zip(candidates, statuses):
        row: dict[str, Any] = {
            "candidate_index": cand.index,
            "pt": cand.pt,
            "status": int(status),
        }
        for step in SelectionStep:
            row[f"is_{step.name.lower()}"] = status.has(step)
        rows.append(row)
    _write_table(path, rows)


def write_triplets_table(path: str | Path, triplets: Iterable[Any]) -> None:
    """Write transient `TripletCombination` records as a table."""
    rows = [
        {
            "event_id": t.event_id,
            "pion_index": t.pion_index,
            "kaon_index": t.kaon_index,
            "bachelor_index": t.bachelor_index,
            "category": t.category.name,
            "multiplicity": t.multiplicity,
            "pair_mass": t.pair_mass,
            "pair_pt": t.pair_pt,
            "mass": t.mass,
            "pt": t.pt,
            "rapidity": t.rapidity,
            "aux_mass": t.aux_mass,
            "truth_matched": t.truth_matched,
        }
        for t in triplets
    ]
    _write_table(path, rows)


def write_histogram_table(path: str | Path, aggregator: HistogramAggregator) -> None:
    """Write the non-empty cells of an aggregator (one row per cell)."""
    _write_table(path, list(aggregator.to_rows()))


def _write_table(path: str | Path, rows: list[dict[str, Any]]) -> None:
    """Write rows into a Parquet/CSV/Pickle table chosen by file suffix."""
    pd = _require_pandas()
    df = pd.DataFrame(rows)
    out = Path(path)
    suffix = out.suffix.lower()
    if suffix == ".parquet":
        df.to_parquet(out, index=False)
    elif suffix in (".pkl", ".pickle"):
        df.to_pickle(out)
    elif suffix == ".csv":
        df.to_csv(out, index=False)
    else:
        raise ValueError(
            f"Unsupported output format '{suffix}'. Use .parquet, .csv, or .pkl"
        )
    logger.info("Wrote %d rows to %s", len(df), out)


def _require_pandas():
    """Import pandas lazily and provide a clear installation hint on failure."""
    try:
        import pandas as pd  # type: ignore
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "pandas is required to write output tables. Install pandas and pyarrow."
        ) from exc
    return pd


def _explicit_track_indices(events_data: Sequence[Any]) -> set[int]:
    taken: set[int] = set()
    for event in events_data:
        if not isinstance(event, dict) or not isinstance(event.get("tracks"), list):
            continue
        for item in event["tracks"]:
            if isinstance(item, dict) and item.get("index") is not None:
                try:
                    taken.add(int(item["index"]))
                except (TypeError, ValueError) as exc:
                    raise ValueError(f"Track index {item['index']!r} is not an integer.") from exc
    return taken


def _free_indices(taken: set[int]) -> Iterator[int]:
    """Yield 0, 1, 2, ... skipping the indices in `taken`."""
    return (i for i in count() if i not in taken)


def _parse_track_item(
    item: Any,
    idx: int,
    context: str,
    indices: Iterator[int],
    event_id: str | None = None,
) -> Track:
    """Parse one track dictionary into a `Track`, drawing from `indices` when no index is given."""
    if not isinstance(item, dict):
        raise ValueError(f"Track entry at index {idx} in {context} must be an object.")
    unknown = set(item) - _TRACK_FIELDS
    if unknown:
        raise ValueError(f"Track at index {idx} in {context} has unknown fields: {sorted(unknown)}")
    try:
        px, py, pz = float(item["px"]), float(item["py"]), float(item["pz"])
    except KeyError as exc:
        raise ValueError(f"Track at index {idx} in {context} is missing momentum {exc}.") from exc
    kwargs: dict[str, Any] = {}
    for key in ("dca_xy", "dca_z", "tpc_nsigma_pi", "tpc_nsigma_ka", "tpc_nsigma_pr",
                "tof_nsigma_pi", "tof_nsigma_ka", "tof_nsigma_pr"):
        if key in item:
            kwargs[key] = float(item[key])
    for key in ("has_tpc", "has_tof"):
        if key in item:
            kwargs[key] = bool(item[key])
    for key in ("pdg_code", "mother_id", "mother_pdg"):
        if item.get(key) is not None:
            kwargs[key] = int(item[key])
    return Track(
        index=int(item["index"]) if item.get("index") is not None else next(indices),
        px=px,
        py=py,
        pz=pz,
        charge=int(item.get("charge", 0)),
        event_id=str(item.get("event_id", event_id)) if (event_id or "event_id" in item) else None,
        **kwargs,
    )


def _parse_detector_window(value: Any) -> DetectorWindow | None:
    """Parse an optional `{pt_min, pt_max, nsigma_max, nsigma_combined_max}` object."""
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValueError("Detector window must be an object.")
    _check_keys(value, {f.name for f in fields(DetectorWindow)}, "detector window")
    try:
        return DetectorWindow(**{k: float(v) for k, v in value.items()})
    except TypeError as exc:
        raise ValueError(f"Incomplete detector window: {exc}") from exc


def _check_keys(data: Any, allowed: set[str], context: str) -> None:
    """Reject non-object sections and unknown keys."""
    if not isinstance(data, dict):
        raise ValueError(f"{context} must be an object.")
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in {context}: {sorted(unknown)}")


def _load_json(path: str | Path) -> dict[str, Any]:
    """Read and validate a JSON object document from disk."""
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"JSON document at {path} must be an object.")
    return data
