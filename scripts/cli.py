from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from rich import print
from rich.markup import escape
from rich.table import Table

# If not installed in editable mode, add repo root to PYTHONPATH
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from orgrecon.config import get_settings
from orgrecon.extract.batch import extract_chart_map, load_chart_map
from orgrecon.extract.schema import export_json_schema
from orgrecon.extract.snapshot import SnapshotError, load_snapshot, save_snapshot
from orgrecon.hierarchy.calculator import add_subordinate_counts
from orgrecon.hierarchy.diagnostics import (
    diagnose_hierarchy,
    find_hierarchy_inconsistencies,
    find_missing_supervisors,
    roster_stats,
)
from orgrecon.pipeline import load_roster, run_from_snapshot
from orgrecon.reconcile.report import write_report
from orgrecon.render.dot import page_bundle_to_dot, roster_to_dot
from orgrecon.roster.normalize import RosterError
from orgrecon.roster.schema import Position

app = typer.Typer(add_completion=False, help="Org chart vs. roster reconciliation")


def _fail(message: str) -> NoReturn:
    typer.secho(message, fg="red")
    raise typer.Exit(1)


def _roster(roster: Optional[Path], sheet: Optional[str]) -> List[Position]:
    cfg = get_settings()
    path = roster or cfg.roster_path
    if path is None:
        _fail("No roster specified; pass ROSTER or set ORGRECON_ROSTER_PATH")
    try:
        return load_roster(path, sheet or cfg.roster_sheet)
    except RosterError as e:
        _fail(str(e))


def _snapshot_path(snapshot: Optional[Path]) -> Path:
    path = snapshot or get_settings().output_dir_extract / "snapshot.json"
    if not path.exists():
        _fail(f"Missing snapshot: {path}")
    return path


@app.command()
def extract(
    chart_map: Path = typer.Argument(
        None, help="Chart map YAML; defaults to ORGRECON_CHART_MAP"
    ),
    out: Path = typer.Option(
        None, "--out", help="Snapshot JSON (defaults to <output_dir>/extract/snapshot.json)"
    ),
    timeout: float = typer.Option(None, help="Per-page timeout in seconds"),
):
    """
    Scan the mapped org-chart pages for position codes and save a snapshot.
    Precedence: CLI args > env (ORGRECON_*) > repo defaults.
    """
    cfg = get_settings()
    src = chart_map or cfg.chart_map
    if src is None or not src.exists():
        _fail(f"Chart map not found: {src}")
    try:
        files = load_chart_map(src)
    except (OSError, ValueError, KeyError) as e:
        _fail(f"Cannot read chart map {src}: {e}")

    snapshot = extract_chart_map(files, page_timeout=timeout or cfg.page_timeout)
    out_path = save_snapshot(snapshot, out or cfg.output_dir_extract / "snapshot.json")

    pages = sum(fx.summary.total_pages for fx in snapshot.extractions)
    codes = sum(fx.summary.total_positions for fx in snapshot.extractions)
    print("\n=== EXTRACTION SUMMARY ===")
    print(f"Org chart pages processed: {pages}")
    print(f"Position codes extracted: {codes}")
    print(f"[green]✓[/green] {src.name} → {out_path}")


@app.command("validate")
def validate_file(json_path: Path):
    """Validate a snapshot JSON against the schema."""
    try:
        load_snapshot(json_path)
    except SnapshotError as e:
        _fail(str(e))
    print("[green]OK[/green]")


@app.command()
def schema(
    out: Path = typer.Option(None, help="Target file (defaults to ORGRECON_SCHEMA_FILE)"),
):
    """Write the JSON Schema of the snapshot contract."""
    target = out or get_settings().schema_file
    if target is None:
        _fail("No schema file specified")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(export_json_schema(), indent=2), encoding="utf-8")
    print(f"[green]✓[/green] wrote {target}")


@app.command()
def hierarchy(
    roster: Path = typer.Argument(None, help="Roster .xlsx; defaults to ORGRECON_ROSTER_PATH"),
    sheet: str = typer.Option(None, help="Sheet name (default: ALL REGIONS)"),
    out: Path = typer.Option(None, help="Optional JSON with positions and counts"),
):
    """
    Compute subordinate counts and report data quality of the reporting chain.
    """
    cfg = get_settings()
    positions = _roster(roster, sheet)
    enriched, result = add_subordinate_counts(
        positions,
        iteration_factor=cfg.iteration_factor,
        max_depth=cfg.recursion_max_depth,
    )

    report = diagnose_hierarchy(enriched)
    print("\n=== HIERARCHY DIAGNOSTIC REPORT ===")
    print(f"Total positions: {report.total_positions}")
    print(f"Positions with missing supervisors: {len(report.broken_chains)}")
    for code, sup in report.broken_chains[:5]:
        print(f"  {code} reports to non-existent {sup}")
    print(f"Self-reporting positions: {len(report.self_reporters)}")
    for code in report.self_reporters:
        print(f"  {code} reports to itself")
    print(f"Leaf positions (no direct reports): {report.leaf_positions}")
    print(f"Root positions (no supervisor): {len(report.root_positions)}")
    for p in report.root_positions[:10]:
        print(f"  {p.code} - {p.title}")
    for line in result.diagnostics.summary_lines():
        print(f"[yellow]{line}[/yellow]" if result.diagnostics.forced else line)

    missing = find_missing_supervisors(enriched)
    if missing:
        print(f"Referenced supervisors absent from roster: {len(missing)}")

    inconsistencies = find_hierarchy_inconsistencies(enriched)
    if inconsistencies:
        print(f"[yellow]Found {len(inconsistencies)} hierarchy inconsistencies[/yellow]")
        for inc in inconsistencies[:5]:
            print(
                f"  Supervisor {inc.supervisor.code} has {inc.supervisor_total} "
                f"but a direct report has {inc.max_report_total}"
            )
    else:
        print("No hierarchy inconsistencies found!")

    stats = roster_stats(enriched)
    print(
        f"Filled {stats.filled_positions}/{stats.total_positions} "
        f"({stats.fill_rate:.1%}), vacant {stats.vacant_positions}, "
        f"part-time {stats.part_time_positions}"
    )

    if out:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(
            json.dumps(
                [p.model_dump(mode="json", exclude_none=True) for p in enriched],
                indent=2,
                ensure_ascii=False,
            ),
            encoding="utf-8",
        )
        print(f"[green]✓[/green] wrote {out}")


@app.command()
def reconcile(
    roster: Path = typer.Argument(None, help="Roster .xlsx; defaults to ORGRECON_ROSTER_PATH"),
    snapshot: Path = typer.Argument(None, help="Snapshot JSON from `extract`"),
    sheet: str = typer.Option(None, help="Sheet name (default: ALL REGIONS)"),
    out: Path = typer.Option(
        None, help="Report JSON (defaults to <output_dir>/reconcile/report.json)"
    ),
    workers: int = typer.Option(None, help="Parallel workers (one task per file)"),
):
    """
    Compare the roster with the detected codes and list mismatch / duplicate / missing findings.
    """
    cfg = get_settings()
    positions = _roster(roster, sheet)
    try:
        snap = load_snapshot(_snapshot_path(snapshot))
    except SnapshotError as e:
        _fail(str(e))

    ctx = run_from_snapshot(positions, snap, settings=cfg, workers=workers)
    view = ctx.view()

    table = Table(title="Reconciliation")
    table.add_column("File")
    table.add_column("Page", justify="right")
    table.add_column("Matches", justify="right")
    table.add_column("Mismatch", justify="right")
    table.add_column("Duplicate", justify="right")
    table.add_column("Missing", justify="right")
    for b in view.page_bundles():
        status = "" if b.context is None or b.context.status == "success" else " [red](error)[/red]"
        kinds = [sum(1 for e in b.errors if e.kind == k) for k in ("mismatch", "duplicate", "missing")]
        table.add_row(b.file_name, f"{b.page}{status}", str(len(b.matches)), *map(str, kinds))
    print(table)

    errors = view.errors()
    if errors:
        print("\n--- Findings (first 50) ---")
        for e in errors[:50]:
            print(escape(f"[{e.kind}] {e.file_name} p.{e.page}: {e.description}"))

    out_path = write_report(ctx.report(), out or cfg.output_dir_reconcile / "report.json")
    print(f"[green]✓[/green] wrote {out_path}")


@app.command()
def chart(
    roster: Path = typer.Argument(None, help="Roster .xlsx; defaults to ORGRECON_ROSTER_PATH"),
    snapshot: Path = typer.Option(None, help="Snapshot JSON; needed for --file/--page"),
    file: str = typer.Option(None, "--file", help="Document name from the snapshot"),
    page: int = typer.Option(None, "--page", help="Page of --file to chart"),
    sheet: str = typer.Option(None, help="Sheet name (default: ALL REGIONS)"),
    rankdir: str = typer.Option("TB", help="Graphviz rankdir (TB, LR, ...)"),
    out: Path = typer.Option(None, help="DOT output (defaults to <output_dir>/charts/)"),
):
    """
    Write a Graphviz DOT chart of the whole roster, or of one page with its findings.
    """
    cfg = get_settings()
    positions = _roster(roster, sheet)

    if file is None and page is None:
        enriched, _ = add_subordinate_counts(
            positions,
            iteration_factor=cfg.iteration_factor,
            max_depth=cfg.recursion_max_depth,
        )
        dot = roster_to_dot(enriched, rankdir=rankdir)
        target = out or cfg.output_dir_charts / "roster.dot"
    else:
        if file is None or page is None:
            _fail("--file and --page go together")
        try:
            snap = load_snapshot(_snapshot_path(snapshot))
        except SnapshotError as e:
            _fail(str(e))
        ctx = run_from_snapshot(positions, snap, settings=cfg)
        dot = page_bundle_to_dot(ctx.view().page_bundle(file, page), rankdir=rankdir)
        target = out or cfg.output_dir_charts / f"{Path(file).stem}.p{page}.dot"

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(dot, encoding="utf-8")
    print(f"[green]✓[/green] wrote {target}")


if __name__ == "__main__":
    app()
