from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import openpyxl
import pytest

from orgrecon.config import Settings
from orgrecon.extract.schema import (
    ExtractionMetadata,
    ExtractionSnapshot,
    FileExtraction,
    PageResult,
    PositionBox,
    summarize_pages,
)
from orgrecon.extract.snapshot import save_snapshot, snapshot_to_facts
from orgrecon.pipeline import build_run_context, run_from_files
from orgrecon.reconcile.report import write_report
from orgrecon.roster.normalize import RosterError
from orgrecon.roster.schema import Position

BOSS = "500-100-1000-001"
STAFF = "500-100-1000-002"
AIDE = "500-100-1000-003"
EXTRA = "500-100-1000-999"

# ---------------------------
# Test helpers
# ---------------------------


def _settings(tmp_path: Path, **kw) -> Settings:
    return Settings(project_root=tmp_path, output_dir=tmp_path / "out", **kw)


def _roster_file(path: Path) -> Path:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "ALL REGIONS"
    ws.append(["Position", "Title", "Current Employee", "Position Reports To Position"])
    ws.append([BOSS, "Director", "Ada Park", None])
    ws.append([STAFF, "Analyst", "Vacant", BOSS])
    ws.append([f"{AIDE} (.5)", "Aide", "Bo Lin", STAFF])
    wb.save(path)
    return path


def _page(page: int, *codes: str, status: str = "success") -> PageResult:
    boxes = [PositionBox(text=c, x=10.0 * i, y=0.0, width=50.0, height=8.0) for i, c in enumerate(codes)]
    return PageResult(
        page=page,
        position_count=len(boxes),
        positions=boxes,
        status=status,
        error="timeout after 30s" if status == "error" else None,
        file_path="/charts/north.pdf",
        file_name="North",
    )


def _snapshot() -> ExtractionSnapshot:
    pages = [_page(1, BOSS, STAFF), _page(2, AIDE, EXTRA), _page(3, status="error")]
    return ExtractionSnapshot(
        metadata=ExtractionMetadata(
            extracted_at=datetime(2024, 5, 1, tzinfo=timezone.utc), total_files=1
        ),
        extractions=[
            FileExtraction(
                file_path="/charts/north.pdf",
                name="North",
                summary=summarize_pages(pages),
                pages=pages,
            )
        ],
    )


# ---------------------------
# Tests
# ---------------------------


def test_settings_resolve_relative_paths(tmp_path: Path):
    cfg = _settings(tmp_path, roster_path="data/roster.xlsx", chart_map=" ")

    assert cfg.roster_path == (tmp_path / "data" / "roster.xlsx").resolve()
    assert cfg.chart_map is None
    assert cfg.output_dir_reconcile == tmp_path / "out" / "reconcile"
    assert cfg.output_dir_reconcile.is_dir()


def test_settings_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ORGRECON_RECONCILE_WORKERS", "4")
    monkeypatch.setenv("ORGRECON_ROSTER_SHEET", "North")
    cfg = _settings(tmp_path)
    assert cfg.reconcile_workers == 4
    assert cfg.roster_sheet == "North"


def test_run_from_files(tmp_path: Path):
    roster = _roster_file(tmp_path / "roster.xlsx")
    snap = save_snapshot(_snapshot(), tmp_path / "snapshot.json")

    ctx = run_from_files(roster, snap, settings=_settings(tmp_path))

    assert [p.code for p in ctx.positions] == [BOSS, STAFF, AIDE]
    assert [p.total_subordinates for p in ctx.positions] == [2, 1, 0]
    assert ctx.positions[2].part_time
    assert ctx.hierarchy.diagnostics.algorithm == "queue"

    summary = ctx.view().summary()
    assert summary["matches"] == 3
    assert summary["mismatch"] == 1
    # AIDE's supervisor is on page 1 of the same file
    assert summary["missing"] == 0
    assert summary["failed_pages"] == 1


def test_report_is_written_as_json(tmp_path: Path):
    positions = [
        Position(code=BOSS, row_number=1, title="Director"),
        Position(code=STAFF, row_number=2, reports_to=BOSS),
    ]
    detections, pages = snapshot_to_facts(_snapshot())
    ctx = build_run_context(positions, detections, pages, settings=_settings(tmp_path))
    out = write_report(ctx.report(), tmp_path / "out" / "reconcile" / "report.json")

    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["schema_version"] == "1.0.0"
    assert data["hierarchy"]["algorithm"] == "queue"
    assert data["summary"]["positions"] == 2
    assert [m["code"] for m in data["matches"]] == [BOSS, STAFF]
    assert sorted(e["kind"] for e in data["errors"]) == ["mismatch", "mismatch"]
    assert data["positions"][0]["total_subordinates"] == 1


def test_run_context_is_immutable(tmp_path: Path):
    ctx = build_run_context([Position(code=BOSS, row_number=1)], [], [], settings=_settings(tmp_path))
    with pytest.raises(AttributeError):
        ctx.positions = ()


def test_bad_roster_sheet(tmp_path: Path):
    roster = _roster_file(tmp_path / "roster.xlsx")
    snap = save_snapshot(_snapshot(), tmp_path / "snapshot.json")
    with pytest.raises(RosterError):
        run_from_files(roster, snap, sheet_name="Nope", settings=_settings(tmp_path))
