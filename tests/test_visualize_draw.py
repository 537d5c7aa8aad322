from __future__ import annotations

from pathlib import Path

import assignment_store as store
import visualize_draw as viz
from matching_engine import Assignment, build_graph, solve
from tests.utils import people, roster_row, write_roster


def test_eligibility_graph_marks_matched_edges() -> None:
    roster = people({"A": ["B"], "B": ["A"], "C": ["D"], "D": ["C"]})
    result = solve(roster)
    g = viz.build_eligibility_graph(build_graph(roster), result, {"A": "Ann"})

    assert g.number_of_nodes() == 8
    assert g.nodes["g:A"]["label"] == "A Ann"
    assert g.nodes["r:B"]["side"] == 1
    assert not g.has_edge("g:A", "r:B")
    assert not g.has_edge("g:A", "r:A")
    assert g.number_of_edges() == 8
    matched = [(a, b) for a, b, m in g.edges(data="matched") if m]
    assert len(matched) == 4
    assert not any(data["violator"] for _, data in g.nodes(data=True))


def test_eligibility_graph_highlights_violators() -> None:
    roster = people({"A": ["B", "C"], "B": [], "C": []})
    result = solve(roster)
    g = viz.build_eligibility_graph(build_graph(roster), result, {})

    assert g.nodes["g:A"]["violator"]
    assert g.degree("g:A") == 0
    # Partial maximum matching is still drawn
    assert sum(1 for _, _, m in g.edges(data="matched") if m) == result.match_size == 2


def test_gift_cycles_start_at_earliest_giver() -> None:
    pairs = [
        Assignment(1, 2),
        Assignment(2, 1),
        Assignment(3, 5),
        Assignment(4, 3),
        Assignment(5, 4),
    ]
    assert viz.gift_cycles(pairs) == [[1, 2], [3, 5, 4]]


def test_draw_variants_write_pngs(tmp_path: Path) -> None:
    roster_path = write_roster(
        tmp_path / "participants.csv",
        [roster_row(1, name="Ann", partner=2), roster_row(2, name="Bob"), roster_row(3), roster_row(4)],
    )
    out_dir = tmp_path / "graphs"
    outputs = viz.draw_variants(
        roster_path,
        out_dir,
        "draw_graph",
        layouts=["bipartite", "cycles"],
        assignments=tmp_path / "missing.json",
        dpi=60,
        label_mode="full",
    )
    assert outputs == [out_dir / "draw_graph_bipartite.png", out_dir / "draw_graph_cycles.png"]
    for path in outputs:
        assert path.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"


def test_cycles_layout_prefers_stored_draw(tmp_path: Path) -> None:
    roster_path = write_roster(tmp_path / "participants.csv", [roster_row(i) for i in (1, 2, 3)])
    draw_path = tmp_path / "assignments.json"
    store.write_draw(draw_path, [Assignment(1, 3), Assignment(2, 1), Assignment(3, 2)])

    outputs = viz.draw_variants(
        roster_path, tmp_path, "status", layouts=["cycles"], assignments=draw_path, dpi=60, label_mode="none"
    )
    assert outputs == [tmp_path / "status_cycles.png"]
    assert outputs[0].stat().st_size > 0


def test_cycles_layout_skipped_without_draw(tmp_path: Path, capsys) -> None:
    roster_path = write_roster(tmp_path / "participants.csv", [roster_row(1, partner=2), roster_row(2)])
    outputs = viz.draw_variants(roster_path, tmp_path, "x", layouts=["cycles", "bipartite"], dpi=60)
    assert outputs == [tmp_path / "x_bipartite.png"]
    assert "[warn] No draw available" in capsys.readouterr().out


def test_smallest_roster_renders_both_layouts(tmp_path: Path) -> None:
    roster_path = write_roster(tmp_path / "participants.csv", [roster_row(1), roster_row(2)])
    outputs = viz.draw_variants(roster_path, tmp_path, "pair", layouts=["bipartite", "cycles"], dpi=60)
    assert outputs == [tmp_path / "pair_bipartite.png", tmp_path / "pair_cycles.png"]
    assert viz.gift_cycles(solve(people({1: [], 2: []})).assignments) == [[1, 2]]
