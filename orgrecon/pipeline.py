"""
pipeline.py

One reconciliation run as an immutable value:
roster positions -> subordinate counts -> join with snapshot facts.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from orgrecon.config import Settings, get_settings
from orgrecon.extract.schema import ExtractionSnapshot
from orgrecon.extract.snapshot import load_snapshot, snapshot_to_facts
from orgrecon.hierarchy.calculator import HierarchyResult, add_subordinate_counts
from orgrecon.reconcile.engine import ReconciliationResult, reconcile
from orgrecon.reconcile.query import ReconciliationView
from orgrecon.reconcile.report import (
    HierarchySummary,
    MatchRow,
    ReconciliationReport,
)
from orgrecon.reconcile.schema import DetectedCode, PageContext
from orgrecon.roster.normalize import extract_positions
from orgrecon.roster.schema import Position
from orgrecon.roster.xlsx_reader import read_cells


@dataclass(frozen=True)
class RunContext:
    positions: Tuple[Position, ...]
    hierarchy: HierarchyResult
    detections: Tuple[DetectedCode, ...]
    pages: Tuple[PageContext, ...]
    result: ReconciliationResult

    def view(self) -> ReconciliationView:
        return ReconciliationView(self.positions, self.detections, self.pages, self.result)

    def report(self) -> ReconciliationReport:
        d = self.hierarchy.diagnostics
        return ReconciliationReport(
            summary=self.view().summary(),
            hierarchy=HierarchySummary(
                algorithm=d.algorithm,
                positions=d.positions,
                processed=d.processed,
                iterations=d.iterations,
                forced=list(d.forced),
                self_reporters=list(d.self_reporters),
                broken_chains=[list(pair) for pair in d.broken_chains],
            ),
            positions=list(self.positions),
            matches=[
                MatchRow(
                    file_name=m.file_name,
                    page=m.page,
                    code=m.code,
                    row_number=m.row_number,
                    title=m.position.title,
                    employee_name=m.position.employee_name,
                    reports_to=m.reports_to,
                )
                for m in self.result.matches
            ],
            errors=list(self.result.errors),
        )


def load_roster(path: Path, sheet_name: str) -> List[Position]:
    return extract_positions(read_cells(path, sheet_name), sheet_name)


def build_run_context(
    positions: Iterable[Position],
    detections: Iterable[DetectedCode],
    pages: Iterable[PageContext],
    *,
    settings: Optional[Settings] = None,
    workers: Optional[int] = None,
) -> RunContext:
    cfg = settings or get_settings()
    enriched, hierarchy = add_subordinate_counts(
        positions,
        iteration_factor=cfg.iteration_factor,
        max_depth=cfg.recursion_max_depth,
    )
    detections = tuple(detections)
    pages = tuple(pages)
    result = reconcile(
        enriched, detections, pages, workers=workers or cfg.reconcile_workers
    )
    return RunContext(
        positions=tuple(enriched),
        hierarchy=hierarchy,
        detections=detections,
        pages=pages,
        result=result,
    )


def run_from_snapshot(
    positions: Iterable[Position],
    snapshot: ExtractionSnapshot,
    *,
    settings: Optional[Settings] = None,
    workers: Optional[int] = None,
) -> RunContext:
    detections, pages = snapshot_to_facts(snapshot)
    return build_run_context(
        positions, detections, pages, settings=settings, workers=workers
    )


def run_from_files(
    roster_path: Path,
    snapshot_path: Path,
    *,
    sheet_name: Optional[str] = None,
    settings: Optional[Settings] = None,
    workers: Optional[int] = None,
) -> RunContext:
    cfg = settings or get_settings()
    positions = load_roster(roster_path, sheet_name or cfg.roster_sheet)
    return run_from_snapshot(
        positions, load_snapshot(snapshot_path), settings=cfg, workers=workers
    )
