from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

import yaml
from rich import print
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TextColumn,
    TimeElapsedColumn,
)

from orgrecon.extract.pdf_codes import codes_on_page
from orgrecon.extract.schema import (
    ExtractionMetadata,
    ExtractionSnapshot,
    FileExtraction,
    PageResult,
    PositionBox,
    summarize_pages,
)

# ---------- chart map ----------


@dataclass
class ChartPage:
    page: int
    description: str = ""


@dataclass
class ChartFile:
    file_path: str
    name: str
    org_charts: List[ChartPage] = field(default_factory=list)


def load_chart_map(path: Path) -> List[ChartFile]:
    """
    YAML list of documents to scan:

        - file_path: charts/southern.pdf
          name: Southern Region
          org_charts:
            - {page: 3, description: Leadership}

    Relative file paths resolve against the map's folder.
    """
    rows = yaml.safe_load(path.read_text(encoding="utf-8")) or []
    if not isinstance(rows, list):
        raise ValueError(f"{path}: expected a list of files")
    out: List[ChartFile] = []
    for r in rows:
        fp = Path(r["file_path"])
        if not fp.is_absolute():
            fp = (path.parent / fp).resolve()
        out.append(
            ChartFile(
                file_path=str(fp),
                name=r.get("name") or fp.stem,
                org_charts=[
                    ChartPage(page=int(c["page"]), description=c.get("description") or "")
                    for c in r.get("org_charts", [])
                ],
            )
        )
    return out


# ---------- extraction ----------

PageReader = Callable[[str, int], List[PositionBox]]


def extract_page(
    file_path: str,
    page: int,
    description: str,
    file_name: str,
    reader: PageReader = codes_on_page,
) -> PageResult:
    """One page; any failure is recorded on the result instead of raised."""
    try:
        boxes = reader(file_path, page)
    except Exception as e:  # noqa: BLE001 - a bad page must not stop the run
        return _error_page(file_path, page, description, file_name, f"{type(e).__name__}: {e}")
    return PageResult(
        page=page,
        description=description,
        position_count=len(boxes),
        positions=boxes,
        status="success",
        file_path=file_path,
        file_name=file_name,
    )


def _error_page(
    file_path: str, page: int, description: str, file_name: str, message: str
) -> PageResult:
    return PageResult(
        page=page,
        description=description,
        position_count=0,
        positions=[],
        status="error",
        error=message,
        file_path=file_path,
        file_name=file_name,
    )


def extract_chart_map(
    chart_files: List[ChartFile],
    *,
    page_timeout: float = 30.0,
    reader: PageReader = codes_on_page,
    show_progress: bool = True,
    now: Optional[datetime] = None,
) -> ExtractionSnapshot:
    """
    Scan every mapped page. Each page runs on a worker thread with its own
    timeout; a page that times out is recorded as an error and the worker is
    replaced so later pages are not queued behind it.
    """
    total = sum(len(cf.org_charts) for cf in chart_files)
    executor = ThreadPoolExecutor(max_workers=1)
    extractions: List[FileExtraction] = []

    def process(cf: ChartFile, chart: ChartPage) -> PageResult:
        nonlocal executor
        future = executor.submit(
            extract_page, cf.file_path, chart.page, chart.description, cf.name, reader
        )
        try:
            result = future.result(timeout=page_timeout)
        except FuturesTimeoutError:
            executor.shutdown(wait=False)
            executor = ThreadPoolExecutor(max_workers=1)
            result = _error_page(
                cf.file_path,
                chart.page,
                chart.description,
                cf.name,
                f"timeout after {page_timeout:g}s",
            )
        if result.status == "success":
            print(f"  page {chart.page}: {result.position_count} positions")
        else:
            print(f"  [red]page {chart.page}: ERROR[/red] {result.error}")
        return result

    def run(advance: Callable[[], None]) -> None:
        for cf in chart_files:
            print(f"Processing: {cf.name} ({len(cf.org_charts)} pages)")
            pages: List[PageResult] = []
            for chart in cf.org_charts:
                pages.append(process(cf, chart))
                advance()
            extractions.append(
                FileExtraction(
                    file_path=cf.file_path,
                    name=cf.name,
                    summary=summarize_pages(pages),
                    pages=pages,
                )
            )

    try:
        if show_progress:
            with Progress(
                TextColumn("[bold]Extract[/bold]"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                transient=False,
            ) as progress:
                task = progress.add_task("pages", total=total)
                run(lambda: progress.update(task, advance=1))
        else:
            run(lambda: None)
    finally:
        executor.shutdown(wait=False)

    return ExtractionSnapshot(
        metadata=ExtractionMetadata(
            extracted_at=now or datetime.now(timezone.utc),
            total_files=len(chart_files),
        ),
        extractions=extractions,
    )
