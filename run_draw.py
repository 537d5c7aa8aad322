#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Gift draw runner.

Reads the roster (``participants.csv``, optionally refreshed from the sheet
export), runs the matching engine and emits:

* ``assignments.json`` – the stored draw, replaced as a whole (skipped in
  ``--preview`` mode or when a draw already exists and ``--force`` is off).
* ``draw_log.csv`` – step-by-step decision log.
* ``draw_stats.txt`` – human-readable recap of the run.
* ``logs/draw_failures.log`` – one JSON line per infeasible run with the Hall
  witness and per-giver options.

Exit codes: 0 drawn (or existing draw kept), 1 bad roster, 2 no valid draw.
"""

from __future__ import annotations
import argparse, copy, json, sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import assignment_store as store
from matching_engine import Assignment, DrawResult, InputError, solve
from participants import DrawLogger, Roster, load_roster

SCRIPT_DIR = Path(__file__).resolve().parent

EXIT_OK = 0
EXIT_INPUT = 1
EXIT_INFEASIBLE = 2

# =============== CONFIG ====================
DEFAULT_CONFIG = {
    # Roster source. With DOC_ID and GID set the CSV export is downloaded into
    # the --participants path (cached unless FORCE_REFRESH).
    "SOURCE": {
        "DOC_ID": "",
        "GID": "",
        "FORCE_REFRESH": False,
    },

    # Treat exclusions (partners included) as mutual
    "MIRROR_PARTNERS": True,

    "MIN_PARTICIPANTS": 2,

    # None keeps roster order for candidates; an int permutes them reproducibly
    "SHUFFLE_SEED": None,

    # Replace an existing stored draw
    "FORCE": False,

    # Per-giver option lists kept in a failure log line
    "DIAGNOSTIC_OPTIONS_LIMIT": 50,

    # Print every giver's options after solving
    "VERBOSE": False,
}


def deep_update(dst: dict, src: dict) -> dict:
    """Recursively merge ``src`` into ``dst`` (in-place)."""

    for key, value in (src or {}).items():
        if isinstance(value, dict) and isinstance(dst.get(key), dict):
            deep_update(dst[key], value)
        else:
            dst[key] = copy.deepcopy(value)
    return dst


def _validate_config(cfg: dict) -> None:
    unknown = sorted(set(cfg) - set(DEFAULT_CONFIG))
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
    if int(cfg["MIN_PARTICIPANTS"]) < 2:
        raise ValueError("MIN_PARTICIPANTS must be >= 2")
    seed = cfg["SHUFFLE_SEED"]
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        raise ValueError("SHUFFLE_SEED must be an integer or null")
    limit = cfg["DIAGNOSTIC_OPTIONS_LIMIT"]
    if limit is not None and int(limit) < 0:
        raise ValueError("DIAGNOSTIC_OPTIONS_LIMIT must be >= 0 or null")


def build_config(overrides: dict | None = None) -> dict:
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    if overrides:
        deep_update(cfg, overrides)
    _validate_config(cfg)
    return cfg

# =====================================================================

# -------------------- CLI (paths + switches) --------------------
def parse_args(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(description="Run the gift draw")
    ap.add_argument("--participants", default="participants.csv",          type=Path)
    ap.add_argument("--assignments",  default="assignments.json",          type=Path)
    ap.add_argument("--log",          default="draw_log.csv",              type=Path)
    ap.add_argument("--stats",        default="draw_stats.txt",            type=Path)
    ap.add_argument("--failures",     default=Path("logs") / "draw_failures.log", type=Path)
    ap.add_argument("--config", type=Path, help="Optional JSON file with CONFIG overrides")
    ap.add_argument("--seed", type=int, help="Shuffle candidate order with this seed")
    ap.add_argument("--preview", action="store_true", help="Compute the draw without storing it")
    ap.add_argument("--force", action="store_true", help="Replace an existing stored draw")
    ap.add_argument("--refresh", action="store_true", help="Re-download the roster export")
    ap.add_argument("--reset", action="store_true", help="Clear the stored draw and exit")
    ap.add_argument("--verbose", action="store_true", help="Print per-giver options")
    return ap.parse_args(argv)

# -------------------- Helpers --------------------
def resolve_data_path(path: Path) -> Path:
    """Locate a data file relative to CWD or the script directory."""

    if path.exists():
        return path
    if not path.is_absolute():
        alt = SCRIPT_DIR / path
        if alt.exists():
            return alt
    return path


@dataclass
class DrawOutcome:
    status: str                      # "drawn" | "preview" | "existing" | "infeasible"
    exit_code: int
    result: Optional[DrawResult] = None
    stored: Optional[dict] = None
    roster: Optional[Roster] = None
    messages: List[str] = field(default_factory=list)

    @property
    def assignments(self) -> Optional[List[Assignment]]:
        if self.result is not None and self.result.feasible:
            return self.result.assignments
        if self.stored is not None:
            return store.assignments_from(self.stored)
        return None


def failure_record(result: DrawResult, roster: Roster, options_limit: Optional[int]) -> dict:
    claimed = roster.claimed_by
    record = {
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "event": "draw_match_failure",
        "claimedCount": sum(1 for pid in roster.ids if claimed.get(pid)),
        "partnerMap": {str(k): v for k, v in roster.partner_map.items()},
    }
    record.update(result.witness.to_dict(options_limit))
    return record


def append_failure(path: Path, record: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record) + "\n")


def print_options(roster: Roster, result: DrawResult, participants) -> None:
    """Per-giver candidate dump, the way the old debug script printed it."""
    names = roster.names
    by_giver: Dict = {}
    if result.feasible:
        by_giver = {a.giver_id: a.recipient_id for a in result.assignments}
    print(f"participants {result.participant_count}")
    print(f"match size {result.match_size}")
    for p in participants:
        options = [rid for rid in roster.ids if rid != p.id and rid not in p.excluded]
        line = f"{p.id} ({names.get(p.id, '')}) -> {options}"
        if p.id in by_giver:
            line += f"  drew {by_giver[p.id]}"
        print(line)


def write_stats(path: Path, outcome: DrawOutcome, cfg: dict, roster: Optional[Roster]) -> None:
    stats: List[str] = ["Gift draw"]
    stats.append(f"Status: {outcome.status}")
    if roster is not None:
        stats.append(f"Participants: {len(roster.entries)}")
        stats.append(f"Declared partners: {sum(1 for e in roster.entries if e.partner is not None)}")
        stats.append(f"Exclusions (directed): {sum(len(e.excluded) for e in roster.entries)}")
    res = outcome.result
    if res is not None:
        stats.append(f"Candidate edges: {res.edge_count}")
        stats.append(f"Max matching: {res.match_size}/{res.participant_count}")
        if res.witness is not None:
            w = res.witness
            stats.append(f"Hall violators ({len(w.violator_set)}): {', '.join(map(str, w.violator_set))}")
            stats.append(f"Their recipients ({len(w.reachable_recipients)}): {', '.join(map(str, w.reachable_recipients))}")
            if w.impossible_givers:
                stats.append(f"No eligible recipient: {', '.join(map(str, w.impossible_givers))}")
    if outcome.stored is not None:
        stats.append(f"Stored draw version: {outcome.stored.get('version')}")
    stats.append(f"Seed: {cfg['SHUFFLE_SEED']}")
    stats.extend(outcome.messages)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(stats) + "\n", encoding="utf-8")


# -------------------- Runner --------------------
def run_draw(
    *,
    participants: Path,
    assignments: Path,
    log_path: Path,
    stats_path: Path,
    failures_path: Path,
    preview: bool = False,
    overrides: dict | None = None,
) -> DrawOutcome:
    """Snapshot the roster, solve, then replace the stored draw in one step."""
    cfg = build_config(overrides)
    logger = DrawLogger()

    existing = store.load_draw(assignments)
    if existing and existing["assignments"] and not preview and not cfg["FORCE"]:
        outcome = DrawOutcome(status="existing", exit_code=EXIT_OK, stored=existing)
        outcome.messages.append("Existing draw kept (use --force to redraw)")
        logger.log("store", status="Existing draw kept", note=f"version={existing.get('version')}")
        logger.write_csv(log_path)
        write_stats(stats_path, outcome, cfg, None)
        return outcome

    src = cfg["SOURCE"]
    roster = load_roster(
        participants,
        logger,
        mirror_partners=bool(cfg["MIRROR_PARTNERS"]),
        doc_id=src.get("DOC_ID", ""),
        gid=src.get("GID", ""),
        force_refresh=bool(src.get("FORCE_REFRESH")),
    )
    people = roster.to_participants()
    for p in people:
        logger.log("graph", p.id, "", "Candidates", str(sum(1 for rid in roster.ids if rid != p.id and rid not in p.excluded)))

    result = solve(people, seed=cfg["SHUFFLE_SEED"], min_participants=int(cfg["MIN_PARTICIPANTS"]))
    logger.log("solve", status="Max matching", note=f"{result.match_size}/{result.participant_count}")
    if cfg["VERBOSE"]:
        print_options(roster, result, people)

    if not result.feasible:
        w = result.witness
        for gid in w.violator_set:
            logger.log("diagnose", gid, "", "Hall violator", f"options={len(w.per_giver_options.get(gid, []))}")
        for gid in w.impossible_givers:
            logger.log("diagnose", gid, "", "No eligible recipient")
        append_failure(failures_path, failure_record(result, roster, cfg["DIAGNOSTIC_OPTIONS_LIMIT"]))
        outcome = DrawOutcome(status="infeasible", exit_code=EXIT_INFEASIBLE, result=result,
                              stored=existing, roster=roster)
        outcome.messages.append("Stored draw left unchanged")
        logger.write_csv(log_path)
        write_stats(stats_path, outcome, cfg, roster)
        return outcome

    for a in result.assignments:
        logger.log("emit", a.giver_id, a.recipient_id, "Assigned")

    if preview:
        outcome = DrawOutcome(status="preview", exit_code=EXIT_OK, result=result, stored=existing, roster=roster)
        outcome.messages.append("Preview only; stored draw unchanged")
    else:
        stored = store.write_draw(assignments, result.assignments,
                                  claimed_by=roster.claimed_by, seed=cfg["SHUFFLE_SEED"])
        logger.log("store", status="Draw stored", note=f"version={stored['version']}")
        outcome = DrawOutcome(status="drawn", exit_code=EXIT_OK, result=result, stored=stored, roster=roster)

    logger.write_csv(log_path)
    write_stats(stats_path, outcome, cfg, roster)
    return outcome


def load_overrides(path: Path) -> dict:
    cfg_path = resolve_data_path(Path(path))
    overrides = json.loads(cfg_path.read_text(encoding="utf-8"))
    if not isinstance(overrides, dict):
        raise ValueError(f"{cfg_path} must hold a JSON object of CONFIG overrides")
    return overrides


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv)
    overrides: dict = {}
    if args.config:
        try:
            overrides = load_overrides(args.config)
        except ValueError as e:
            print(f"[error] Bad config file: {e}", file=sys.stderr)
            return EXIT_INPUT
    if args.seed is not None:
        overrides["SHUFFLE_SEED"] = args.seed
    if args.force:
        overrides["FORCE"] = True
    if args.verbose:
        overrides["VERBOSE"] = True
    if args.refresh:
        deep_update(overrides, {"SOURCE": {"FORCE_REFRESH": True}})

    if args.reset:
        cleared = store.clear_draw(args.assignments)
        print("Cleared stored draw" if cleared else "No stored draw to clear")
        return EXIT_OK

    try:
        outcome = run_draw(
            participants=resolve_data_path(args.participants),
            assignments=args.assignments,
            log_path=args.log,
            stats_path=args.stats,
            failures_path=args.failures,
            preview=args.preview,
            overrides=overrides,
        )
    except InputError as e:
        print(f"[error] {e}", file=sys.stderr)
        return EXIT_INPUT
    except ValueError as e:
        # Bad CONFIG values or an unreadable stored draw
        print(f"[error] {e}", file=sys.stderr)
        if args.assignments.exists():
            print(f"[info] Inspect {args.assignments} or clear it with --reset.", file=sys.stderr)
        return EXIT_INPUT

    if outcome.status == "infeasible":
        w = outcome.result.witness
        print(f"No valid draw: max matching {w.match_size}/{w.participant_count}", file=sys.stderr)
        print(f"  Hall violators: {', '.join(map(str, w.violator_set))}", file=sys.stderr)
        print(f"  share recipients: {', '.join(map(str, w.reachable_recipients)) or '(none)'}", file=sys.stderr)
        if w.impossible_givers:
            print(f"  no eligible recipient: {', '.join(map(str, w.impossible_givers))}", file=sys.stderr)
        print(f"Wrote diagnostics → {args.failures}", file=sys.stderr)
    elif outcome.status == "existing":
        print(f"[info] Draw version {outcome.stored.get('version')} already stored; use --force to redraw.")
    elif outcome.status == "preview":
        names = outcome.roster.names
        for a in outcome.result.assignments:
            print(f"{a.giver_id} ({names.get(a.giver_id, '')}) -> {a.recipient_id} ({names.get(a.recipient_id, '')})")
    else:
        print(f"Wrote {args.assignments} (version {outcome.stored['version']}) | {args.log} | {args.stats}")
    return outcome.exit_code


if __name__ == "__main__":
    sys.exit(main())
