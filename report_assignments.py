#!/usr/bin/env python3
"""Report on the stored draw.

With ``--giver`` prints the single recipient that giver drew (by profile id or
claiming user). Without it, audits the stored draw against the current roster
and writes a status summary that never lists who gives to whom: whether a draw
exists, its version, roster members missing from it, ids no longer on the
roster, and whether any stored pair now breaks an exclusion.
"""

from __future__ import annotations

import argparse
import sys
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional

import assignment_store as store
from participants import Roster, load_roster, parse_identity


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Show one giver's recipient or audit the stored draw", formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    ap.add_argument("--assignments", default="assignments.json", type=Path, help="Stored draw written by run_draw.py")
    ap.add_argument("--participants", default="participants.csv", type=Path, help="Roster used to audit the draw")
    ap.add_argument("--giver", default=None, help="Profile id or claiming user whose recipient to show")
    ap.add_argument("--summary", default=Path("reports") / "draw_status.txt", type=Path, help="Plaintext status summary (set to '-' to skip)")
    return ap.parse_args(argv)


def audit_draw(draw: Optional[dict], roster: Optional[Roster]) -> Dict[str, object]:
    audit: Dict[str, object] = {
        "has_draw": bool(draw and draw["assignments"]),
        "version": (draw or {}).get("version"),
        "generated_at": (draw or {}).get("generated_at"),
        "assignment_count": len(draw["assignments"]) if draw else 0,
        "missing_givers": [],
        "stale_ids": [],
        "duplicate_recipients": 0,
        "self_pairs": 0,
        "exclusion_breaks": 0,
    }
    if not draw:
        return audit

    rows = draw["assignments"]
    recipients = Counter(row["recipientId"] for row in rows)
    audit["duplicate_recipients"] = sum(1 for c in recipients.values() if c > 1)
    audit["self_pairs"] = sum(1 for row in rows if row["giverId"] == row["recipientId"])
    if roster is None:
        return audit

    roster_ids = set(roster.ids)
    givers = {row["giverId"] for row in rows}
    drawn_ids = givers | set(recipients)
    audit["missing_givers"] = [pid for pid in roster.ids if pid not in givers]
    audit["stale_ids"] = sorted((pid for pid in drawn_ids if pid not in roster_ids), key=str)
    excl = roster.exclusions()
    audit["exclusion_breaks"] = sum(
        1 for row in rows if row["recipientId"] in excl.get(row["giverId"], set())
    )
    return audit


def is_consistent(audit: Dict[str, object]) -> bool:
    return (
        bool(audit["has_draw"])
        and not audit["missing_givers"]
        and not audit["stale_ids"]
        and not audit["duplicate_recipients"]
        and not audit["self_pairs"]
        and not audit["exclusion_breaks"]
    )


def summary_lines(audit: Dict[str, object]) -> List[str]:
    lines = ["Draw status"]
    if not audit["has_draw"]:
        lines.append("No draw stored.")
        return lines
    lines.append(f"Version {audit['version']} generated {audit['generated_at']} ({audit['assignment_count']} assignments)")
    missing = audit["missing_givers"]
    if missing:
        lines.append(f"Roster members without an assignment: {len(missing)} ({', '.join(map(str, missing))})")
    stale = audit["stale_ids"]
    if stale:
        lines.append(f"Ids no longer on the roster: {len(stale)} ({', '.join(map(str, stale))})")
    if audit["duplicate_recipients"]:
        lines.append(f"Recipients drawn more than once: {audit['duplicate_recipients']}")
    if audit["self_pairs"]:
        lines.append(f"Self assignments: {audit['self_pairs']}")
    if audit["exclusion_breaks"]:
        lines.append(f"Pairs breaking current exclusions: {audit['exclusion_breaks']}")
    lines.append("Consistent with roster: " + ("YES" if is_consistent(audit) else "NO (rerun run_draw.py --force)"))
    return lines


def write_summary(lines: List[str], path: Path) -> None:
    if str(path) == "-":
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def describe_recipient(draw: Optional[dict], giver: str, roster: Optional[Roster]) -> Optional[str]:
    gid = parse_identity(giver)
    rid = store.recipient_for(draw, gid)
    if rid is None and gid != giver:
        # claimedBy values are stored as text
        rid = store.recipient_for(draw, giver)
    if rid is None:
        return None
    name = roster.names.get(rid, "") if roster else ""
    return f"{rid} ({name})" if name else str(rid)


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv)
    draw = store.load_draw(args.assignments)
    roster = load_roster(args.participants) if args.participants.exists() else None

    if args.giver is not None:
        text = describe_recipient(draw, args.giver, roster)
        if text is None:
            print(f"No assignment for {args.giver}", file=sys.stderr)
            return 1
        print(f"{args.giver} gives to {text}")
        return 0

    lines = summary_lines(audit_draw(draw, roster))
    for line in lines:
        print(line)
    write_summary(lines, args.summary)
    if str(args.summary) != "-":
        print(f"Summary saved to {args.summary}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
