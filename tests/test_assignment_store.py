from __future__ import annotations

import json
from pathlib import Path

import pytest

import assignment_store as store
from matching_engine import Assignment


PAIRS = [Assignment(1, 2), Assignment(2, 3), Assignment(3, 1)]


def test_write_bumps_version_and_replaces_wholesale(tmp_path: Path) -> None:
    path = tmp_path / "draw" / "assignments.json"
    first = store.write_draw(path, PAIRS, claimed_by={1: "u1"}, seed=5)
    assert first["version"] == 1
    assert first["participant_count"] == 3
    assert first["seed"] == 5
    assert first["assignments"][0] == {"giverId": 1, "recipientId": 2, "claimedBy": "u1"}
    assert first["assignments"][1]["claimedBy"] is None

    second = store.write_draw(path, [Assignment(1, 3), Assignment(3, 1)])
    assert second["version"] == 2
    on_disk = store.load_draw(path)
    assert on_disk == second
    assert [row["giverId"] for row in on_disk["assignments"]] == [1, 3]
    # No temp files left behind
    assert sorted(p.name for p in path.parent.iterdir()) == ["assignments.json"]


def test_status_and_reset(tmp_path: Path) -> None:
    path = tmp_path / "assignments.json"
    assert store.load_draw(path) is None
    assert not store.has_draw(path)
    assert not store.clear_draw(path)

    store.write_draw(path, PAIRS)
    assert store.has_draw(path)
    assert store.clear_draw(path)
    assert not path.exists()


def test_recipient_lookup_by_profile_or_user(tmp_path: Path) -> None:
    path = tmp_path / "assignments.json"
    store.write_draw(path, PAIRS, claimed_by={2: "bob@example.com"})
    draw = store.load_draw(path)

    assert store.recipient_for(draw, 1) == 2
    assert store.recipient_for(draw, "bob@example.com") == 3
    assert store.recipient_for(draw, 99) is None
    assert store.recipient_for(None, 1) is None
    assert store.assignments_from(draw) == PAIRS


def test_transfer_claim_moves_assignment_to_new_user(tmp_path: Path) -> None:
    path = tmp_path / "assignments.json"
    store.write_draw(path, PAIRS)
    assert store.transfer_claim(path, 3, "cy@example.com")
    draw = store.load_draw(path)
    assert draw["version"] == 1
    assert store.recipient_for(draw, "cy@example.com") == 1
    assert not store.transfer_claim(path, 42, "nobody")


def test_malformed_artifact_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "assignments.json"
    path.write_text(json.dumps({"assignments": [{"giverId": 1}]}), encoding="utf-8")
    with pytest.raises(ValueError):
        store.load_draw(path)
    path.write_text(json.dumps([1, 2]), encoding="utf-8")
    with pytest.raises(ValueError):
        store.load_draw(path)
