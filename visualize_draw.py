#!/usr/bin/env python3
"""Draw the eligibility graph and the gift cycles for organizers.

``bipartite`` shows givers on the left, recipients on the right, every allowed
edge in grey and the matched edges in red; Hall violators are highlighted when
no draw exists. ``cycles`` shows the draw as a directed graph, one ring per
gift cycle. The cycles view reveals every pairing, so keep its output private.
"""
from __future__ import annotations

import argparse
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
from matplotlib.lines import Line2D
import networkx as nx

import assignment_store as store
from matching_engine import Assignment, BipartiteGraph, DrawResult, Identity, build_graph, hopcroft_karp, solve
from participants import load_roster

LAYOUT_CHOICES = ("bipartite", "cycles")
LABEL_CHOICES = ("full", "short", "none")

GIVER_COLOR = "#4c72b0"
RECIPIENT_COLOR = "#55a868"
VIOLATOR_COLOR = "#c44e52"
MATCH_COLOR = "#dd1c1c"


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Visualize the gift draw")
    ap.add_argument("--participants", default="participants.csv", type=Path)
    ap.add_argument("--assignments", default="assignments.json", type=Path,
                    help="Stored draw; the cycles layout falls back to a fresh solve when absent")
    ap.add_argument("--out-dir", default=Path("draw_graphs"), type=Path, help="Directory for generated graph files")
    ap.add_argument("--out-prefix", default="draw_graph", type=str,
                    help="Base filename prefix for graph images (suffixes are added per layout)")
    ap.add_argument("--layouts", nargs="+", default=["bipartite"], choices=LAYOUT_CHOICES,
                    help="One or more layout names to render")
    ap.add_argument("--seed", type=int, default=None, help="Candidate shuffle seed for the fresh solve")
    ap.add_argument("--dpi", type=int, default=200, help="Output DPI")
    ap.add_argument("--label-mode", choices=LABEL_CHOICES, default="short",
                    help="Label verbosity (id and name, id only, or none)")
    return ap.parse_args(argv)


def _giver_node(pid: Identity) -> str:
    return f"g:{pid}"


def _recipient_node(pid: Identity) -> str:
    return f"r:{pid}"


def build_eligibility_graph(
    graph: BipartiteGraph,
    result: DrawResult,
    names: Dict[Identity, str],
) -> nx.Graph:
    matched = {(a.giver_id, a.recipient_id) for a in (result.assignments or [])}
    violators = set(result.witness.violator_set) if result.witness else set()
    if not matched:
        # No perfect matching: still show the maximum one the solver found
        partial = hopcroft_karp(graph.adjacency, graph.size)
        for u, v in enumerate(partial.pair_giver):
            if v >= 0:
                matched.add((graph.ids[u], graph.ids[v]))

    g = nx.Graph()
    for pid in graph.ids:
        label = f"{pid} {names.get(pid, '')}".strip()
        g.add_node(_giver_node(pid), side=0, pid=pid, label=label, violator=pid in violators)
        g.add_node(_recipient_node(pid), side=1, pid=pid, label=label, violator=False)
    for u, cands in enumerate(graph.adjacency):
        gid = graph.ids[u]
        for v in cands:
            rid = graph.ids[v]
            g.add_edge(_giver_node(gid), _recipient_node(rid), matched=(gid, rid) in matched)
    return g


def build_assignment_graph(assignments: Iterable[Assignment], names: Dict[Identity, str]) -> nx.DiGraph:
    g = nx.DiGraph()
    for a in assignments:
        for pid in (a.giver_id, a.recipient_id):
            if pid not in g:
                g.add_node(pid, label=f"{pid} {names.get(pid, '')}".strip())
        g.add_edge(a.giver_id, a.recipient_id)
    return g


def gift_cycles(assignments: Sequence[Assignment]) -> List[List[Identity]]:
    """Split a draw into its gift cycles, each starting at its earliest giver."""
    order = {a.giver_id: i for i, a in enumerate(assignments)}
    g = nx.DiGraph([(a.giver_id, a.recipient_id) for a in assignments])
    cycles: List[List[Identity]] = []
    for cyc in nx.simple_cycles(g):
        start = min(range(len(cyc)), key=lambda k: order.get(cyc[k], len(order)))
        cycles.append(cyc[start:] + cyc[:start])
    cycles.sort(key=lambda c: order.get(c[0], len(order)))
    return cycles


def _layout_bipartite(graph: nx.Graph) -> Dict[str, Tuple[float, float]]:
    givers = [n for n, side in graph.nodes(data="side") if side == 0]
    return nx.bipartite_layout(graph, givers)


def _layout_cycles(graph: nx.DiGraph, cycles: List[List[Identity]]) -> Dict[Identity, Tuple[float, float]]:
    positions: Dict[Identity, Tuple[float, float]] = {}
    spacing = 3.0
    x_cursor = 0.0
    for cyc in sorted(cycles, key=len, reverse=True):
        sub = nx.circular_layout(graph.subgraph(cyc), center=(x_cursor, 0.0))
        positions.update({n: (float(x), float(y)) for n, (x, y) in sub.items()})
        x_cursor += spacing
    for node in graph.nodes:
        positions.setdefault(node, (x_cursor, 0.0))
    return positions


def _format_labels(graph: nx.Graph, mode: str) -> Dict:
    if mode == "none":
        return {}
    labels: Dict = {}
    for node, text in graph.nodes(data="label"):
        if mode == "short":
            text = str(text).split(" ", 1)[0]
        labels[node] = text
    return labels


def render_bipartite(graph: nx.Graph, out_path: Path, *, dpi: int, label_mode: str) -> None:
    positions = _layout_bipartite(graph)
    fig, ax = plt.subplots(figsize=(10, max(4, 0.35 * graph.number_of_nodes())))
    plain = [(a, b) for a, b, m in graph.edges(data="matched") if not m]
    matched = [(a, b) for a, b, m in graph.edges(data="matched") if m]
    nx.draw_networkx_edges(graph, positions, edgelist=plain, ax=ax, edge_color="#bbbbbb", alpha=0.5, width=0.6)
    nx.draw_networkx_edges(graph, positions, edgelist=matched, ax=ax, edge_color=MATCH_COLOR, width=1.8)
    colors = []
    for node, data in graph.nodes(data=True):
        if data.get("violator"):
            colors.append(VIOLATOR_COLOR)
        else:
            colors.append(GIVER_COLOR if data["side"] == 0 else RECIPIENT_COLOR)
    nx.draw_networkx_nodes(graph, positions, ax=ax, node_color=colors, node_size=220)
    nx.draw_networkx_labels(graph, positions, labels=_format_labels(graph, label_mode), ax=ax, font_size=7)
    handles = [
        Line2D([0], [0], marker="o", color="w", markerfacecolor=GIVER_COLOR, markersize=8, label="Giver"),
        Line2D([0], [0], marker="o", color="w", markerfacecolor=RECIPIENT_COLOR, markersize=8, label="Recipient"),
        Line2D([0], [0], marker="o", color="w", markerfacecolor=VIOLATOR_COLOR, markersize=8, label="Hall violator"),
        Line2D([0], [0], color=MATCH_COLOR, lw=2, label="Matched"),
    ]
    ax.legend(handles=handles, loc="upper center", ncol=4, fontsize=8, frameon=False)
    ax.set_title("Eligible recipients")
    ax.set_axis_off()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(out_path, dpi=dpi)
    plt.close(fig)


def render_cycles(graph: nx.DiGraph, cycles: List[List[Identity]], out_path: Path, *, dpi: int, label_mode: str) -> None:
    positions = _layout_cycles(graph, cycles)
    fig, ax = plt.subplots(figsize=(max(6, 3 * len(cycles)), 6))
    nx.draw_networkx_edges(graph, positions, ax=ax, arrows=True, arrowstyle="-|>", edge_color=MATCH_COLOR, width=1.2)
    nx.draw_networkx_nodes(graph, positions, ax=ax, node_color=GIVER_COLOR, node_size=260)
    nx.draw_networkx_labels(graph, positions, labels=_format_labels(graph, label_mode), ax=ax, font_size=7)
    lengths = defaultdict(int)
    for cyc in cycles:
        lengths[len(cyc)] += 1
    recap = ", ".join(f"{count}×{size}" for size, count in sorted(lengths.items()))
    ax.set_title(f"Gift cycles ({recap})")
    ax.set_axis_off()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(out_path, dpi=dpi)
    plt.close(fig)


def draw_variants(
    participants: Path,
    out_dir: Path,
    out_prefix: str,
    *,
    layouts: List[str],
    assignments: Optional[Path] = None,
    seed: Optional[int] = None,
    dpi: int = 200,
    label_mode: str = "short",
) -> List[Path]:
    roster = load_roster(participants)
    people = roster.to_participants()
    names = roster.names
    result = solve(people, seed=seed)
    prefix = Path(out_prefix).stem or "draw_graph"
    generated: List[Path] = []

    for layout in layouts:
        out_path = out_dir / f"{prefix}_{layout}.png"
        if layout == "bipartite":
            graph = build_eligibility_graph(build_graph(people, seed=seed), result, names)
            render_bipartite(graph, out_path, dpi=dpi, label_mode=label_mode)
        else:
            stored = store.load_draw(assignments) if assignments else None
            pairs = store.assignments_from(stored) if stored else result.assignments
            if not pairs:
                print(f"[warn] No draw available; skipping {layout} layout")
                continue
            digraph = build_assignment_graph(pairs, names)
            render_cycles(digraph, gift_cycles(pairs), out_path, dpi=dpi, label_mode=label_mode)
        generated.append(out_path)
    return generated


def main(argv: List[str] | None = None) -> None:
    args = parse_args(argv)
    outputs = draw_variants(
        args.participants,
        args.out_dir,
        args.out_prefix,
        layouts=args.layouts,
        assignments=args.assignments,
        seed=args.seed,
        dpi=args.dpi,
        label_mode=args.label_mode,
    )
    for path in outputs:
        print(f"Wrote graph to {path}")


if __name__ == "__main__":
    main()
