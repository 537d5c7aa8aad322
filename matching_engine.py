#!/usr/bin/env python3
"""Gift-draw matching engine.

Every participant is both a giver (left side) and a recipient (right side) of
a bipartite graph over the same identity set. A giver may be assigned any
recipient except itself and the ids in its ``excluded`` set. The draw is a
perfect matching on that graph:

* ``build_graph`` – identity → dense index map + per-giver candidate lists
* ``hopcroft_karp`` – phased BFS layering + layered DFS augmentation
* ``is_perfect`` – the matching covers every giver
* ``diagnose`` – Hall violator witness when no perfect matching exists
* ``emit_assignments`` – back to (giver id, recipient id) pairs, with the
  post-conditions checked

``solve`` chains the steps and returns a ``DrawResult``; ``draw`` raises
``InfeasibleMatchingError`` instead. Nothing here performs I/O or keeps state
between calls.
"""

from __future__ import annotations

import random
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Union

Identity = Union[int, str]

UNMATCHED = -1
INF = float("inf")
MIN_PARTICIPANTS = 2

# ---------------------------- Errors ---------------------------------


class DrawError(Exception):
    """Base class for draw failures."""


class InputError(DrawError, ValueError):
    """Participant list cannot be drawn (too few people, missing or duplicate ids)."""


class InfeasibleMatchingError(DrawError):
    """Well-formed input with no perfect matching; carries the witness."""

    def __init__(self, witness: "DiagnosticWitness"):
        self.witness = witness
        super().__init__(
            f"No valid draw for {witness.participant_count} participants "
            f"(max matching {witness.match_size}); "
            f"Hall violators: {', '.join(str(x) for x in witness.violator_set)}"
        )


class InternalInvariantError(DrawError, AssertionError):
    """The emitted assignment breaks a post-condition. Indicates a solver bug."""


# ------------------------ Model types --------------------------------


@dataclass(frozen=True)
class Participant:
    id: Identity
    excluded: FrozenSet[Identity] = frozenset()
    name: str = ""

    def __post_init__(self) -> None:
        excluded = self.excluded
        if isinstance(excluded, (str, int)):
            excluded = (excluded,)
        object.__setattr__(self, "excluded", frozenset(excluded or ()))


@dataclass(frozen=True)
class Assignment:
    giver_id: Identity
    recipient_id: Identity

    def to_dict(self) -> Dict[str, Identity]:
        return {"giverId": self.giver_id, "recipientId": self.recipient_id}


@dataclass
class BipartiteGraph:
    ids: List[Identity]
    index: Dict[Identity, int]
    adjacency: List[List[int]]
    excluded: List[FrozenSet[Identity]]

    @property
    def size(self) -> int:
        return len(self.ids)

    @property
    def edge_count(self) -> int:
        return sum(len(cands) for cands in self.adjacency)

    def options_for(self, giver: int) -> List[Identity]:
        """Eligible recipient ids for ``giver`` in roster order."""
        return [self.ids[v] for v in sorted(self.adjacency[giver])]


@dataclass
class Matching:
    pair_giver: List[int]
    pair_recipient: List[int]
    size: int


@dataclass
class DiagnosticWitness:
    violator_set: List[Identity]
    reachable_recipients: List[Identity]
    per_giver_options: Dict[Identity, List[Identity]]
    impossible_givers: List[Identity] = field(default_factory=list)
    participant_count: int = 0
    match_size: int = 0

    def to_dict(self, options_limit: Optional[int] = None) -> dict:
        options = list(self.per_giver_options.items())
        if options_limit is not None:
            options = options[:options_limit]
        return {
            "participantCount": self.participant_count,
            "matchSize": self.match_size,
            "impossibleGivers": list(self.impossible_givers),
            "violatorSet": list(self.violator_set),
            "reachableRecipients": list(self.reachable_recipients),
            # JSON object keys are strings; ids keep their type in the lists.
            "perGiverOptions": {str(k): list(v) for k, v in options},
        }


@dataclass
class DrawResult:
    participant_count: int
    match_size: int
    edge_count: int
    assignments: Optional[List[Assignment]] = None
    witness: Optional[DiagnosticWitness] = None

    @property
    def feasible(self) -> bool:
        return self.assignments is not None


# ------------------------ Graph builder ------------------------------


def coerce_participant(record: Union[Participant, Mapping]) -> Participant:
    """Accept a ``Participant`` or a ``{"id", "excludedIds"}`` mapping."""
    if isinstance(record, Participant):
        return record
    if not isinstance(record, Mapping):
        raise InputError(f"Unsupported participant record: {record!r}")
    excluded = record.get("excludedIds")
    if excluded is None:
        excluded = record.get("excluded") or ()
    try:
        return Participant(
            id=record.get("id"),
            excluded=excluded,
            name=str(record.get("name") or ""),
        )
    except TypeError as e:
        raise InputError(f"Malformed exclusions for {record.get('id')!r}: {e}") from e


def _missing_id(pid) -> bool:
    if pid is None:
        return True
    return isinstance(pid, str) and not pid.strip()


def _malformed_id(pid) -> bool:
    # bool is an int subclass and True would collide with 1
    return isinstance(pid, bool) or not isinstance(pid, (int, str))


def build_graph(
    participants: Iterable[Union[Participant, Mapping]],
    *,
    seed: Optional[int] = None,
    min_participants: int = MIN_PARTICIPANTS,
) -> BipartiteGraph:
    """Validate the roster and build per-giver candidate lists.

    Recipient ``j`` is a candidate for giver ``i`` iff ``i != j`` and the
    recipient's id is not in the giver's exclusion set. With ``seed`` each
    candidate list is permuted by ``random.Random(seed)``; otherwise it keeps
    roster order.
    """
    people = [coerce_participant(p) for p in participants]
    floor = max(MIN_PARTICIPANTS, int(min_participants))
    if len(people) < floor:
        raise InputError(f"At least {floor} participants are required, got {len(people)}")

    index: Dict[Identity, int] = {}
    for pos, person in enumerate(people):
        if _missing_id(person.id):
            raise InputError(f"Participant #{pos + 1} has no id")
        if _malformed_id(person.id):
            raise InputError(f"Participant #{pos + 1} id {person.id!r} must be an int or a string")
        if person.id in index:
            raise InputError(f"Duplicate participant id {person.id!r}")
        index[person.id] = pos

    ids = [p.id for p in people]
    adjacency: List[List[int]] = []
    for i, giver in enumerate(people):
        cands = [j for j, rid in enumerate(ids) if j != i and rid not in giver.excluded]
        adjacency.append(cands)

    if seed is not None:
        rng = random.Random(seed)
        for cands in adjacency:
            rng.shuffle(cands)

    return BipartiteGraph(
        ids=ids,
        index=index,
        adjacency=adjacency,
        excluded=[p.excluded for p in people],
    )


# ------------------------ Hopcroft–Karp ------------------------------


def _layer(
    adjacency: List[List[int]],
    pair_giver: List[int],
    pair_recipient: List[int],
    dist: List[float],
) -> bool:
    """BFS from every free giver; True when some free recipient is reachable."""
    queue: deque = deque()
    for u, v in enumerate(pair_giver):
        if v == UNMATCHED:
            dist[u] = 0
            queue.append(u)
        else:
            dist[u] = INF

    found = False
    while queue:
        u = queue.popleft()
        for v in adjacency[u]:
            w = pair_recipient[v]
            if w == UNMATCHED:
                found = True
            elif dist[w] == INF:
                dist[w] = dist[u] + 1
                queue.append(w)
    return found


def _augment(
    root: int,
    adjacency: List[List[int]],
    pair_giver: List[int],
    pair_recipient: List[int],
    dist: List[float],
    cursor: List[int],
) -> bool:
    """Layered DFS from ``root``; flips the path and returns True on success.

    ``path[k]`` is a giver and ``via[k]`` the recipient it takes. A giver whose
    candidates are exhausted is marked dead (``INF``) for the rest of the phase.
    """
    path = [root]
    via: List[int] = []
    while path:
        u = path[-1]
        cands = adjacency[u]
        advanced = False
        while cursor[u] < len(cands):
            v = cands[cursor[u]]
            cursor[u] += 1
            w = pair_recipient[v]
            if w == UNMATCHED:
                via.append(v)
                for giver, recipient in zip(path, via):
                    pair_giver[giver] = recipient
                    pair_recipient[recipient] = giver
                return True
            if dist[w] == dist[u] + 1:
                via.append(v)
                path.append(w)
                advanced = True
                break
        if not advanced:
            dist[u] = INF
            path.pop()
            if via:
                via.pop()
    return False


def hopcroft_karp(adjacency: List[List[int]], recipient_count: Optional[int] = None) -> Matching:
    """Maximum-cardinality matching over giver → recipient candidate lists."""
    n_left = len(adjacency)
    n_right = n_left if recipient_count is None else recipient_count
    pair_giver = [UNMATCHED] * n_left
    pair_recipient = [UNMATCHED] * n_right
    dist: List[float] = [INF] * n_left
    size = 0

    while _layer(adjacency, pair_giver, pair_recipient, dist):
        cursor = [0] * n_left
        for u in range(n_left):
            if pair_giver[u] == UNMATCHED and _augment(u, adjacency, pair_giver, pair_recipient, dist, cursor):
                size += 1

    return Matching(pair_giver=pair_giver, pair_recipient=pair_recipient, size=size)


def is_perfect(matching: Matching, participant_count: int) -> bool:
    return matching.size == participant_count


# ------------------------ Diagnostics --------------------------------


def diagnose(graph: BipartiteGraph, matching: Matching) -> DiagnosticWitness:
    """Explain why ``matching`` cannot be completed.

    Alternating BFS from all free givers (giver → any candidate, recipient →
    its matched giver). Every recipient reached is matched, otherwise an
    augmenting path would exist, so the reached givers S satisfy
    ``|N(S)| = |S| - free givers < |S|``.
    """
    n = graph.size
    seen_giver = [False] * n
    seen_recipient = [False] * n
    queue: deque = deque()
    for u in range(n):
        if matching.pair_giver[u] == UNMATCHED:
            seen_giver[u] = True
            queue.append(u)

    while queue:
        u = queue.popleft()
        for v in graph.adjacency[u]:
            if seen_recipient[v]:
                continue
            seen_recipient[v] = True
            w = matching.pair_recipient[v]
            if w != UNMATCHED and not seen_giver[w]:
                seen_giver[w] = True
                queue.append(w)

    options = {graph.ids[u]: graph.options_for(u) for u in range(n)}
    return DiagnosticWitness(
        violator_set=[graph.ids[u] for u in range(n) if seen_giver[u]],
        reachable_recipients=[graph.ids[v] for v in range(n) if seen_recipient[v]],
        per_giver_options=options,
        impossible_givers=[gid for gid, opts in options.items() if not opts],
        participant_count=n,
        match_size=matching.size,
    )


def neighbourhood(graph: BipartiteGraph, givers: Iterable[Identity]) -> List[Identity]:
    """Recipient ids reachable from ``givers`` through candidate edges."""
    hit = set()
    for gid in givers:
        hit.update(graph.adjacency[graph.index[gid]])
    return [graph.ids[v] for v in sorted(hit)]


# ------------------------ Emitter ------------------------------------


def emit_assignments(graph: BipartiteGraph, matching: Matching) -> List[Assignment]:
    """Translate a perfect matching to id pairs in roster order."""
    out: List[Assignment] = []
    used: set = set()
    for u, gid in enumerate(graph.ids):
        v = matching.pair_giver[u] if u < len(matching.pair_giver) else UNMATCHED
        if v == UNMATCHED or not 0 <= v < graph.size:
            raise InternalInvariantError(f"Giver {gid!r} has no recipient")
        rid = graph.ids[v]
        if rid == gid:
            raise InternalInvariantError(f"Giver {gid!r} assigned to themself")
        if rid in graph.excluded[u]:
            raise InternalInvariantError(f"Giver {gid!r} assigned excluded recipient {rid!r}")
        if v in used:
            raise InternalInvariantError(f"Recipient {rid!r} assigned more than once")
        used.add(v)
        out.append(Assignment(giver_id=gid, recipient_id=rid))

    if len(out) != graph.size or len(used) != graph.size:
        raise InternalInvariantError(f"Expected {graph.size} pairs, emitted {len(out)}")
    return out


# ------------------------ Entry points -------------------------------


def solve(
    participants: Iterable[Union[Participant, Mapping]],
    *,
    seed: Optional[int] = None,
    min_participants: int = MIN_PARTICIPANTS,
) -> DrawResult:
    """Run the draw. ``result.assignments`` on success, ``result.witness`` otherwise."""
    graph = build_graph(participants, seed=seed, min_participants=min_participants)
    matching = hopcroft_karp(graph.adjacency, graph.size)
    result = DrawResult(
        participant_count=graph.size,
        match_size=matching.size,
        edge_count=graph.edge_count,
    )
    if is_perfect(matching, graph.size):
        result.assignments = emit_assignments(graph, matching)
    else:
        result.witness = diagnose(graph, matching)
    return result


def draw(
    participants: Iterable[Union[Participant, Mapping]],
    *,
    seed: Optional[int] = None,
    min_participants: int = MIN_PARTICIPANTS,
) -> List[Assignment]:
    result = solve(participants, seed=seed, min_participants=min_participants)
    if not result.feasible:
        raise InfeasibleMatchingError(result.witness)
    return result.assignments
