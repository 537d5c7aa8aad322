"""Stored draw: a single versioned JSON artifact replaced as a whole.

Layout::

    {
      "version": 3,
      "generated_at": "2026-12-01T18:00:00+00:00",
      "seed": null,
      "participant_count": 4,
      "assignments": [{"giverId": 1, "recipientId": 3, "claimedBy": "u7"}, ...]
    }

A new draw is written to a temp file next to the target and swapped in with
``os.replace``, so readers see either the previous draw or the new one.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from matching_engine import Assignment, Identity


def load_draw(path: Path) -> Optional[dict]:
    if not path.exists():
        return None
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict) or not isinstance(data.get("assignments"), list):
        raise ValueError(f"{path} is not a stored draw")
    for row in data["assignments"]:
        if not isinstance(row, dict) or "giverId" not in row or "recipientId" not in row:
            raise ValueError(f"{path} has a malformed assignment row: {row!r}")
    return data


def has_draw(path: Path) -> bool:
    data = load_draw(path)
    return bool(data and data["assignments"])


def _atomic_write(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
            handle.write("\n")
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def write_draw(
    path: Path,
    assignments: Iterable[Assignment],
    *,
    claimed_by: Optional[Dict[Identity, str]] = None,
    seed: Optional[int] = None,
) -> dict:
    """Replace the stored draw with ``assignments`` and return the new artifact."""
    previous = load_draw(path) if path.exists() else None
    version = int(previous.get("version", 0)) + 1 if previous else 1
    claims = claimed_by or {}
    rows: List[dict] = []
    for a in assignments:
        row = a.to_dict()
        row["claimedBy"] = claims.get(a.giver_id) or None
        rows.append(row)
    payload = {
        "version": version,
        "generated_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "seed": seed,
        "participant_count": len(rows),
        "assignments": rows,
    }
    _atomic_write(path, payload)
    return payload


def clear_draw(path: Path) -> bool:
    """Remove the stored draw. Returns False when there was nothing to clear."""
    if not path.exists():
        return False
    path.unlink()
    return True


def assignments_from(draw: dict) -> List[Assignment]:
    return [Assignment(giver_id=row["giverId"], recipient_id=row["recipientId"]) for row in draw["assignments"]]


def recipient_for(draw: Optional[dict], giver_id: Identity) -> Optional[Identity]:
    """The one recipient ``giver_id`` gives to, matched by profile id or claiming user."""
    if not draw:
        return None
    for row in draw["assignments"]:
        if row["giverId"] == giver_id:
            return row["recipientId"]
    for row in draw["assignments"]:
        if row.get("claimedBy") and row["claimedBy"] == giver_id:
            return row["recipientId"]
    return None


def transfer_claim(path: Path, profile_id: Identity, user_id: str) -> bool:
    """Hand an existing assignment for ``profile_id`` to the user who just claimed it."""
    draw = load_draw(path)
    if not draw:
        return False
    for row in draw["assignments"]:
        if row["giverId"] == profile_id:
            row["claimedBy"] = user_id
            _atomic_write(path, draw)
            return True
    return False
