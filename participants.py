#!/usr/bin/env python3
"""
Roster loading for the gift draw.

The roster is a CSV table (a local file, or a Google Sheets CSV export cached
locally) with one row per participant:

- Id          required; digit-only ids are read as integers
- Name        display name
- Partner     declared partner id (never drawn for each other)
- Excluded    further ids this participant must not draw, ';' or ',' separated
- Claimed By  user who claimed the profile (carried into the stored draw)

Columns are located by header name, so their order and any extra columns do
not matter.

PARTNER MIRRORING:
- A partner is an exclusion in both directions. When mirroring is on (the
  default), explicit Excluded entries are mirrored as well.
- Ids that are not on the roster, and self-exclusions, are dropped and logged.
"""

from __future__ import annotations
import csv, io, ssl, urllib.request, urllib.parse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set
import certifi

from matching_engine import Identity, InputError, Participant

# ---------------------------- CONFIG ---------------------------------

ID_COL = "id"
NAME_COL = "name"
PARTNER_COL = "partner"
EXCLUDED_COL = "excluded"
CLAIMED_COL = "claimed by"

ROSTER_HEADER = ["Id", "Name", "Partner", "Excluded", "Claimed By"]

# ---------------------------- I/O ------------------------------------

def export_csv_url(doc_id: str, gid: str) -> str:
    base = f"https://docs.google.com/spreadsheets/d/{doc_id}/export"
    q = urllib.parse.urlencode({"format": "csv", "gid": gid})
    return f"{base}?{q}"

def download_if_needed(url: str, dest: Path, force: bool = False) -> Path:
    if dest.exists() and not force:
        return dest
    ctx = ssl.create_default_context(cafile=certifi.where())
    req = urllib.request.Request(url, headers={"User-Agent": "Mozilla/5.0 (GiftDraw/1.0)"})
    with urllib.request.urlopen(req, context=ctx) as resp:
        data = resp.read()
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(data)
    return dest

def read_csv_matrix(path: Path) -> List[List[str]]:
    raw = path.read_bytes()
    text = raw.decode("utf-8-sig", errors="replace")
    rdr = csv.reader(io.StringIO(text))
    return [list(row) for row in rdr]

def trim(s: str) -> str:
    return (s or "").strip()

def parse_identity(raw: str) -> Optional[Identity]:
    """'17' -> 17, ' alice ' -> 'alice', '' -> None. Only ASCII digits become ints."""
    s = trim(raw)
    if not s:
        return None
    return int(s) if s.isascii() and s.isdigit() else s

def split_ids(raw: str) -> List[Identity]:
    out: List[Identity] = []
    for tok in trim(raw).replace(";", ",").split(","):
        pid = parse_identity(tok)
        if pid is not None:
            out.append(pid)
    return out

# ------------------------ Decision log --------------------------------

DECISION_FIELDS = ["Step", "Phase", "Giver", "Recipient", "Status", "Note"]

class DrawLogger:
    def __init__(self):
        self.rows: List[Dict[str, object]] = []
        self.step = 0
    def log(self, phase: str, giver="", recipient="", status: str = "", note: str = ""):
        self.step += 1
        self.rows.append({
            "Step": self.step, "Phase": phase,
            "Giver": giver, "Recipient": recipient,
            "Status": status, "Note": note,
        })
    def by_phase(self, phase: str) -> List[Dict[str, object]]:
        return [r for r in self.rows if r["Phase"] == phase]
    def write_csv(self, out: Path):
        out.parent.mkdir(parents=True, exist_ok=True)
        with out.open("w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=DECISION_FIELDS)
            w.writeheader()
            for r in self.rows: w.writerow({k: r.get(k, "") for k in DECISION_FIELDS})

# ------------------------ Roster parse --------------------------------

@dataclass
class RosterEntry:
    id: Identity
    name: str = ""
    partner: Optional[Identity] = None
    excluded: Set[Identity] = field(default_factory=set)
    claimed_by: str = ""

@dataclass
class Roster:
    entries: List[RosterEntry]

    @property
    def ids(self) -> List[Identity]:
        return [e.id for e in self.entries]

    @property
    def names(self) -> Dict[Identity, str]:
        return {e.id: e.name for e in self.entries}

    @property
    def claimed_by(self) -> Dict[Identity, str]:
        return {e.id: e.claimed_by for e in self.entries if e.claimed_by}

    @property
    def partner_map(self) -> Dict[Identity, Optional[Identity]]:
        return {e.id: e.partner for e in self.entries}

    def exclusions(self) -> Dict[Identity, Set[Identity]]:
        return {e.id: set(e.excluded) for e in self.entries}

    def to_participants(self) -> List[Participant]:
        return [Participant(id=e.id, excluded=frozenset(e.excluded), name=e.name) for e in self.entries]

def _header_index(header: List[str]) -> Dict[str, int]:
    return {trim(h).lower(): i for i, h in enumerate(header) if trim(h)}

def parse_roster(
    matrix: List[List[str]],
    logger: Optional[DrawLogger] = None,
    *,
    mirror_partners: bool = True,
) -> Roster:
    log = logger or DrawLogger()
    if not matrix:
        return Roster(entries=[])

    cols = _header_index(matrix[0])
    if ID_COL not in cols:
        raise InputError("Roster header has no 'Id' column")

    def col(row: List[str], key: str) -> str:
        i0 = cols.get(key)
        if i0 is None or i0 >= len(row):
            return ""
        return trim(row[i0])

    entries: List[RosterEntry] = []
    for r, row in enumerate(matrix[1:], start=2):
        if not any(trim(c) for c in row):
            continue
        pid = parse_identity(col(row, ID_COL))
        if pid is None:
            raise InputError(f"Roster row {r}: missing participant id")
        entries.append(RosterEntry(
            id=pid,
            name=col(row, NAME_COL),
            partner=parse_identity(col(row, PARTNER_COL)),
            excluded=set(split_ids(col(row, EXCLUDED_COL))),
            claimed_by=col(row, CLAIMED_COL),
        ))

    known = {e.id for e in entries}
    by_id = {e.id: e for e in entries}

    # Partner first so it shows up in the exclusion set like any other id
    for e in entries:
        if e.partner is None:
            continue
        if e.partner not in known:
            log.log("roster", e.id, e.partner, "Partner not on roster", "ignored")
            e.partner = None
            continue
        e.excluded.add(e.partner)

    for e in entries:
        for other in sorted(e.excluded, key=str):
            if other == e.id:
                log.log("roster", e.id, other, "Self exclusion", "ignored")
                e.excluded.discard(other)
            elif other not in known:
                log.log("roster", e.id, other, "Exclusion not on roster", "ignored")
                e.excluded.discard(other)

    if mirror_partners:
        for e in entries:
            for other in sorted(e.excluded, key=str):
                back = by_id[other]
                if e.id not in back.excluded:
                    back.excluded.add(e.id)
                    log.log("roster", other, e.id, "Mirrored exclusion",
                            "partner" if e.partner == other else "excluded")

    for e in entries:
        log.log("roster", e.id, "", "Loaded", f"excluded={len(e.excluded)}")
    return Roster(entries=entries)

def load_roster(
    path: Path,
    logger: Optional[DrawLogger] = None,
    *,
    mirror_partners: bool = True,
    doc_id: str = "",
    gid: str = "",
    force_refresh: bool = False,
) -> Roster:
    """Read the roster CSV, downloading the sheet export first when configured."""
    if doc_id and gid:
        download_if_needed(export_csv_url(doc_id, gid), path, force=force_refresh)
    return parse_roster(read_csv_matrix(path), logger, mirror_partners=mirror_partners)
