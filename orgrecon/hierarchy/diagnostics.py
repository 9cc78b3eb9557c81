from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from orgrecon.roster.schema import Position, is_position_code


@dataclass
class HierarchyReport:
    total_positions: int
    broken_chains: List[Tuple[str, str]] = field(default_factory=list)
    self_reporters: List[str] = field(default_factory=list)
    leaf_positions: int = 0
    root_positions: List[Position] = field(default_factory=list)


@dataclass
class Inconsistency:
    supervisor: Position
    supervisor_total: int
    max_report_total: int
    reports: List[Position]


@dataclass
class RosterStats:
    total_positions: int
    filled_positions: int
    vacant_positions: int
    part_time_positions: int
    fill_rate: float
    agencies: List[str]
    title_distribution: Dict[str, int]


def _valid(positions: Iterable[Position]) -> List[Position]:
    return [p for p in positions if p.has_valid_code]


def diagnose_hierarchy(positions: Iterable[Position]) -> HierarchyReport:
    """Data quality overview of the reporting chain."""
    valid = _valid(positions)
    codes = {p.code for p in valid}
    supervisors = {p.supervisor_code for p in valid if p.supervisor_code}

    broken = sorted(
        (p.code, p.supervisor_code)
        for p in valid
        if p.supervisor_code and p.supervisor_code not in codes
    )
    return HierarchyReport(
        total_positions=len(valid),
        broken_chains=broken,
        self_reporters=sorted(p.code for p in valid if p.is_self_reporting),
        leaf_positions=sum(1 for p in valid if p.code not in supervisors),
        root_positions=[p for p in valid if p.supervisor_code is None],
    )


def find_hierarchy_inconsistencies(positions: Iterable[Position]) -> List[Inconsistency]:
    """
    Supervisors whose total is lower than one of their direct reports' totals.
    Only possible after partial (forced) resolution.
    """
    positions = list(positions)
    reports_map: Dict[str, List[Position]] = {}
    for p in _valid(positions):
        if p.supervisor_code:
            reports_map.setdefault(p.supervisor_code, []).append(p)

    out: List[Inconsistency] = []
    for sup in _valid(positions):
        reports = reports_map.get(sup.code, [])
        if not reports:
            continue
        max_total = max(r.total_subordinates for r in reports)
        if max_total > 0 and sup.total_subordinates < max_total:
            out.append(
                Inconsistency(
                    supervisor=sup,
                    supervisor_total=sup.total_subordinates,
                    max_report_total=max_total,
                    reports=[r for r in reports if r.total_subordinates == max_total],
                )
            )
    return out


def find_missing_supervisors(positions: Iterable[Position]) -> List[str]:
    """Supervisor codes referenced by the roster but not present in it."""
    positions = list(positions)
    existing = {p.code for p in positions if p.code}
    referenced = {p.reports_to for p in positions if is_position_code(p.reports_to)}
    return sorted(referenced - existing)


def roster_stats(positions: Iterable[Position]) -> RosterStats:
    positions = list(positions)
    total = len(positions)
    vacant = sum(1 for p in positions if p.is_vacant)
    titles: Dict[str, int] = {}
    for p in positions:
        if p.title:
            titles[p.title] = titles.get(p.title, 0) + 1
    return RosterStats(
        total_positions=total,
        filled_positions=total - vacant,
        vacant_positions=vacant,
        part_time_positions=sum(1 for p in positions if p.part_time),
        fill_rate=(total - vacant) / total if total else 0.0,
        agencies=sorted({p.agency_code for p in positions if p.agency_code}),
        title_distribution=dict(sorted(titles.items())),
    )
