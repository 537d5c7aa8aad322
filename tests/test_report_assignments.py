from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import assignment_store as store
import report_assignments as report
from matching_engine import Assignment
from participants import load_roster
from tests.utils import roster_row, write_roster

ROOT = Path(__file__).resolve().parents[1]


def _setup(tmp_path: Path):
    roster_path = write_roster(
        tmp_path / "participants.csv",
        [
            roster_row(1, name="Ann", partner=2),
            roster_row(2, name="Bob", claimed_by="bob@example.com"),
            roster_row(3, name="Cy"),
        ],
    )
    draw_path = tmp_path / "assignments.json"
    store.write_draw(
        draw_path,
        [Assignment(1, 3), Assignment(2, 3), Assignment(3, 1)],
        claimed_by={2: "bob@example.com"},
    )
    return roster_path, draw_path


def test_audit_flags_drift_without_revealing_pairs(tmp_path: Path) -> None:
    roster_path, draw_path = _setup(tmp_path)
    draw = store.load_draw(draw_path)
    roster = load_roster(roster_path)

    audit = report.audit_draw(draw, roster)
    assert audit["has_draw"]
    assert audit["version"] == 1
    assert audit["assignment_count"] == 3
    assert audit["duplicate_recipients"] == 1
    assert audit["missing_givers"] == []
    assert audit["stale_ids"] == []
    assert not report.is_consistent(audit)

    lines = report.summary_lines(audit)
    assert lines[0] == "Draw status"
    assert "Recipients drawn more than once: 1" in lines
    assert lines[-1] == "Consistent with roster: NO (rerun run_draw.py --force)"
    assert not any("->" in line or "gives to" in line for line in lines)


def test_audit_reports_roster_changes(tmp_path: Path) -> None:
    draw_path = tmp_path / "assignments.json"
    store.write_draw(draw_path, [Assignment(1, 2), Assignment(2, 3), Assignment(3, 1)])
    roster_path = write_roster(
        tmp_path / "participants.csv",
        [roster_row(1, excluded=[2]), roster_row(2), roster_row(4)],
    )

    audit = report.audit_draw(store.load_draw(draw_path), load_roster(roster_path))
    assert audit["missing_givers"] == [4]
    assert audit["stale_ids"] == [3]
    assert audit["exclusion_breaks"] == 1
    lines = report.summary_lines(audit)
    assert "Roster members without an assignment: 1 (4)" in lines
    assert "Ids no longer on the roster: 1 (3)" in lines
    assert "Pairs breaking current exclusions: 1" in lines


def test_clean_draw_is_consistent(tmp_path: Path) -> None:
    draw_path = tmp_path / "assignments.json"
    store.write_draw(draw_path, [Assignment(1, 2), Assignment(2, 3), Assignment(3, 1)])
    roster_path = write_roster(tmp_path / "participants.csv", [roster_row(i) for i in (1, 2, 3)])

    audit = report.audit_draw(store.load_draw(draw_path), load_roster(roster_path))
    assert report.is_consistent(audit)
    assert report.summary_lines(audit)[-1] == "Consistent with roster: YES"


def test_no_draw_summary() -> None:
    audit = report.audit_draw(None, None)
    assert not audit["has_draw"]
    assert report.summary_lines(audit) == ["Draw status", "No draw stored."]


def test_giver_lookup_by_profile_or_user(tmp_path: Path) -> None:
    roster_path, draw_path = _setup(tmp_path)
    draw = store.load_draw(draw_path)
    roster = load_roster(roster_path)

    assert report.describe_recipient(draw, "1", roster) == "3 (Cy)"
    assert report.describe_recipient(draw, "bob@example.com", roster) == "3 (Cy)"
    assert report.describe_recipient(draw, "3", None) == "1"
    assert report.describe_recipient(draw, "9", roster) is None


def test_cli_giver_and_summary(tmp_path: Path) -> None:
    roster_path, draw_path = _setup(tmp_path)
    summary_path = tmp_path / "reports" / "draw_status.txt"
    base = [
        sys.executable,
        str(ROOT / "report_assignments.py"),
        "--assignments", str(draw_path),
        "--participants", str(roster_path),
    ]

    res = subprocess.run(base + ["--giver", "3"], cwd=ROOT, capture_output=True, text=True)
    assert res.returncode == 0, res.stderr
    assert res.stdout.strip() == "3 gives to 1 (Ann)"

    res = subprocess.run(base + ["--giver", "nobody"], cwd=ROOT, capture_output=True, text=True)
    assert res.returncode == 1
    assert "No assignment for nobody" in res.stderr

    res = subprocess.run(base + ["--summary", str(summary_path)], cwd=ROOT, capture_output=True, text=True)
    assert res.returncode == 0, res.stderr
    text = summary_path.read_text(encoding="utf-8")
    assert text.startswith("Draw status\nVersion 1 generated ")
    assert "Consistent with roster: NO" in text

    # A removed draw is reported, not an error
    draw_path.write_text(json.dumps({"version": 1, "assignments": []}), encoding="utf-8")
    res = subprocess.run(base + ["--summary", "-"], cwd=ROOT, capture_output=True, text=True)
    assert res.returncode == 0, res.stderr
    assert "No draw stored." in res.stdout
    assert "Summary saved" not in res.stdout
