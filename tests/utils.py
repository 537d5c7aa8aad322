"""Fixtures and helpers for draw tests."""
from __future__ import annotations

import csv
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

from matching_engine import Assignment, Participant
from participants import ROSTER_HEADER


def roster_row(
    pid,
    *,
    name: str = "",
    partner=None,
    excluded: Iterable = (),
    claimed_by: str = "",
) -> List[str]:
    """Build a row for ``participants.csv`` in ``ROSTER_HEADER`` order."""

    return [
        str(pid),
        name,
        "" if partner is None else str(partner),
        ";".join(str(x) for x in excluded),
        claimed_by,
    ]


def write_roster(path: Path, rows: Iterable[Sequence[str]], header: Sequence[str] = ROSTER_HEADER) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(list(header))
        for row in rows:
            writer.writerow(list(row))
    return path


def people(spec: Dict) -> List[Participant]:
    """``{"A": ["B"], "B": []}`` -> participants with those exclusions, in key order."""
    return [Participant(id=pid, excluded=frozenset(excl)) for pid, excl in spec.items()]


def partner_pairs(count: int, pairs: int) -> List[Participant]:
    """``count`` people numbered from 1; the first ``pairs`` couples exclude each other."""
    excluded: Dict[int, set] = {i: set() for i in range(1, count + 1)}
    for k in range(pairs):
        a, b = 2 * k + 1, 2 * k + 2
        excluded[a].add(b)
        excluded[b].add(a)
    return [Participant(id=i, excluded=frozenset(excluded[i])) for i in range(1, count + 1)]


def assert_valid_draw(assignments: Sequence[Assignment], participants: Sequence[Participant]) -> None:
    ids = [p.id for p in participants]
    excl = {p.id: p.excluded for p in participants}
    assert len(assignments) == len(participants)
    assert [a.giver_id for a in assignments] == ids
    assert sorted(map(str, (a.recipient_id for a in assignments))) == sorted(map(str, ids))
    assert len({a.recipient_id for a in assignments}) == len(ids)
    for a in assignments:
        assert a.giver_id != a.recipient_id
        assert a.recipient_id not in excl[a.giver_id]


def independent_neighbourhood(participants: Sequence[Participant], givers: Iterable) -> set:
    """N(S) recomputed straight from the exclusion rules."""
    ids = [p.id for p in participants]
    by_id = {p.id: p for p in participants}
    out = set()
    for gid in givers:
        g = by_id[gid]
        out.update(rid for rid in ids if rid != gid and rid not in g.excluded)
    return out
