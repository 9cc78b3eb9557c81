"""
calculator.py

Direct / total subordinate counts over the roster's reporting chain.

Primary path is a bottom-up work queue seeded with leaf positions. Rosters
with cycles or chains that feed into cycles can't be fully resolved that
way; those positions are resolved with whatever child totals exist (missing
ones count 0) so the run always finishes within its iteration budget.
A roster without any leaf (pure cycle) goes through a depth-bounded
recursive count instead.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Literal, Optional, Set, Tuple

from orgrecon.roster.schema import Position

Algorithm = Literal["queue", "recursive", "empty"]


@dataclass(frozen=True)
class SubordinateCount:
    direct: int
    total: int


@dataclass
class HierarchyDiagnostics:
    algorithm: Algorithm
    positions: int  # distinct valid codes
    processed: int = 0
    iterations: int = 0
    budget: int = 0
    forced: List[str] = field(default_factory=list)
    self_reporters: List[str] = field(default_factory=list)
    broken_chains: List[Tuple[str, str]] = field(default_factory=list)
    depth_limited: bool = False

    @property
    def data_issues(self) -> int:
        return len(self.self_reporters) + len(self.broken_chains)

    def summary_lines(self) -> List[str]:
        lines = [
            f"Processed {self.processed} of {self.positions} positions "
            f"({self.algorithm}, {self.iterations} iterations)"
        ]
        if self.forced:
            lines.append(
                f"Resolved {len(self.forced)} positions with partial counts "
                "(cycle or unresolvable chain)"
            )
        if self.data_issues:
            lines.append(
                f"Data issues handled: {self.data_issues} "
                f"({len(self.self_reporters)} self-reporters, "
                f"{len(self.broken_chains)} broken chains)"
            )
        if self.depth_limited:
            lines.append("Recursive count hit its depth limit")
        return lines


@dataclass
class HierarchyResult:
    counts: Dict[str, SubordinateCount]
    diagnostics: HierarchyDiagnostics

    def direct(self, code: Optional[str]) -> int:
        c = self.counts.get(code) if code else None
        return c.direct if c else 0

    def total(self, code: Optional[str]) -> int:
        c = self.counts.get(code) if code else None
        return c.total if c else 0


# -----------------------------
# Graph index
# -----------------------------


class _ReportingIndex:
    """supervisor code -> direct report positions, restricted to valid codes."""

    def __init__(self, positions: Iterable[Position]):
        valid = [p for p in positions if p.has_valid_code]
        self.codes: List[str] = sorted({p.code for p in valid})
        self.code_set: Set[str] = set(self.codes)
        self.reports: Dict[str, List[Position]] = {}
        self.supervisors: Dict[str, Set[str]] = {}
        self.self_reporters: List[str] = sorted({p.code for p in valid if p.is_self_reporting})
        broken: Set[Tuple[str, str]] = set()

        for p in valid:
            sup = p.supervisor_code
            if sup is None:
                continue
            self.reports.setdefault(sup, []).append(p)
            if sup in self.code_set:
                self.supervisors.setdefault(p.code, set()).add(sup)
            else:
                broken.add((p.code, sup))
        self.broken_chains: List[Tuple[str, str]] = sorted(broken)

    def direct_reports(self, code: str) -> List[Position]:
        return self.reports.get(code, [])

    def leaves(self) -> List[str]:
        return [c for c in self.codes if not self.reports.get(c)]


# -----------------------------
# Recursive fallback
# -----------------------------


def count_subordinates_recursive(
    positions: Iterable[Position], *, max_depth: int = 200
) -> HierarchyResult:
    """
    Depth-bounded recursive count with a per-path visited set. A code already
    on the current path contributes 0 instead of recursing again.
    """
    index = _ReportingIndex(positions)
    diag = HierarchyDiagnostics(
        algorithm="recursive",
        positions=len(index.codes),
        self_reporters=index.self_reporters,
        broken_chains=index.broken_chains,
    )

    def count(code: str, path: frozenset, depth: int) -> int:
        if code in path:
            return 0
        if depth >= max_depth:
            diag.depth_limited = True
            return 0
        reports = index.direct_reports(code)
        inner = path | {code}
        return len(reports) + sum(count(r.code, inner, depth + 1) for r in reports)

    counts: Dict[str, SubordinateCount] = {}
    for code in index.codes:
        direct = len(index.direct_reports(code))
        counts[code] = SubordinateCount(direct=direct, total=max(direct, count(code, frozenset(), 0)))
    diag.processed = len(counts)
    return HierarchyResult(counts=counts, diagnostics=diag)


# -----------------------------
# Bottom-up queue
# -----------------------------


def calculate_subordinate_counts(
    positions: Iterable[Position],
    *,
    iteration_factor: int = 3,
    max_depth: int = 200,
) -> HierarchyResult:
    """
    Compute direct/total subordinate counts for every valid position code.

    Result depends only on the (code, reports_to) pairs of the input; for an
    acyclic roster total == direct + sum(total of direct reports).
    """
    positions = list(positions)
    index = _ReportingIndex(positions)
    n = len(index.codes)

    if n == 0:
        return HierarchyResult(counts={}, diagnostics=HierarchyDiagnostics(algorithm="empty", positions=0))

    leaves = index.leaves()
    if not leaves:
        return count_subordinates_recursive(positions, max_depth=max_depth)

    budget = iteration_factor * n
    diag = HierarchyDiagnostics(
        algorithm="queue",
        positions=n,
        budget=budget,
        self_reporters=index.self_reporters,
        broken_chains=index.broken_chains,
    )

    resolved: Dict[str, int] = {}
    queue: Deque[str] = deque(leaves)
    queued: Set[str] = set(leaves)

    def resolve(code: str) -> None:
        reports = index.direct_reports(code)
        resolved[code] = len(reports) + sum(resolved.get(r.code, 0) for r in reports)
        for sup in sorted(index.supervisors.get(code, ())):
            if sup not in resolved and sup not in queued:
                queue.append(sup)
                queued.add(sup)

    def force(code: str) -> None:
        queued.discard(code)
        diag.forced.append(code)
        resolve(code)

    while len(resolved) < n:
        if diag.iterations >= budget:
            # out of budget: finish everything that's left with partial data
            for code in index.codes:
                if code not in resolved:
                    force(code)
            break

        if not queue:
            # stalled: every remaining code waits on an unresolved report
            force(min(c for c in index.codes if c not in resolved))
            continue

        current = queue.popleft()
        queued.discard(current)
        diag.iterations += 1
        if current in resolved:
            continue

        if all(r.code in resolved for r in index.direct_reports(current)):
            resolve(current)
        # otherwise parked: re-enqueued once another direct report resolves

    diag.processed = len(resolved)
    counts = {
        code: SubordinateCount(direct=len(index.direct_reports(code)), total=resolved[code])
        for code in index.codes
    }
    return HierarchyResult(counts=counts, diagnostics=diag)


def add_subordinate_counts(
    positions: Iterable[Position],
    *,
    iteration_factor: int = 3,
    max_depth: int = 200,
) -> Tuple[List[Position], HierarchyResult]:
    """
    Return enriched copies of the positions (input order kept) together with
    the raw result. Rows without a valid code get 0/0.
    """
    positions = list(positions)
    result = calculate_subordinate_counts(
        positions, iteration_factor=iteration_factor, max_depth=max_depth
    )
    enriched = [
        p.model_copy(
            update={
                "direct_subordinates": result.direct(p.code) if p.has_valid_code else 0,
                "total_subordinates": result.total(p.code) if p.has_valid_code else 0,
            }
        )
        for p in positions
    ]
    return enriched, result
