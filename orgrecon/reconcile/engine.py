"""
engine.py

Single-shot join of roster positions against detected page codes.

Four derived collections, each computed independently from the closed
inputs (so production order does not matter):
1) matches    detected code == roster code
2) mismatch   detected code with no match on its page
3) duplicate  >= 2 distinct roster rows matched one code on one page
4) missing    roster supervisor of a matched code, absent from every page of the file

The only cross-page dependency (4) stays inside one file, so work is
partitioned per file; partitions read the shared position index and return
their own partial results, merged afterwards.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Set, Tuple

from orgrecon.reconcile.schema import (
    DetectedCode,
    ErrorKind,
    Match,
    PageContext,
    PageKey,
    ReconciliationError,
)
from orgrecon.roster.schema import Position


@dataclass(frozen=True)
class ReconciliationResult:
    matches: Tuple[Match, ...] = ()
    errors: Tuple[ReconciliationError, ...] = ()

    def errors_of(self, kind: ErrorKind) -> Tuple[ReconciliationError, ...]:
        return tuple(e for e in self.errors if e.kind == kind)


def _match_sort_key(m: Match) -> Tuple[str, int, str, int]:
    return (m.file_name, m.page, m.code, m.row_number)


def build_position_index(positions: Iterable[Position]) -> Dict[str, List[Position]]:
    """code -> roster rows carrying it (several rows when the roster has duplicates)."""
    index: Dict[str, List[Position]] = {}
    for p in positions:
        if p.has_valid_code:
            index.setdefault(p.code, []).append(p)
    for rows in index.values():
        rows.sort(key=lambda p: p.row_number)
    return index


# -----------------------------
# Individual rules
# -----------------------------


def find_matches(
    index: Mapping[str, List[Position]], detections: Iterable[DetectedCode]
) -> List[Match]:
    seen: Set[Tuple[str, int, int]] = set()
    out: List[Match] = []
    for d in detections:
        for p in index.get(d.code, ()):
            key = (d.file_name, d.page, p.row_number)
            if key in seen:
                continue
            seen.add(key)
            out.append(Match(position=p, file_name=d.file_name, page=d.page))
    return sorted(out, key=_match_sort_key)


def find_mismatches(
    detections: Iterable[DetectedCode],
    matches: Iterable[Match],
    pages: Mapping[PageKey, PageContext],
) -> List[ReconciliationError]:
    matched = {(m.file_name, m.page, m.code) for m in matches}
    errors: Dict[Tuple[str, int, str], ReconciliationError] = {}
    for d in detections:
        key = (d.file_name, d.page, d.code)
        if key in matched or key in errors:
            continue
        ctx = pages.get(d.page_key)
        if ctx is None:
            continue
        errors[key] = ReconciliationError(
            kind="mismatch",
            file_name=d.file_name,
            page=d.page,
            file_path=ctx.file_path,
            position_code=d.code,
            description=f"Position {d.code} on page {d.page} is not in the roster",
        )
    return sorted(errors.values(), key=ReconciliationError.sort_key)


def find_duplicates(
    matches: Iterable[Match], pages: Mapping[PageKey, PageContext]
) -> List[ReconciliationError]:
    groups: Dict[Tuple[str, int, str], Set[int]] = {}
    for m in matches:
        groups.setdefault((m.file_name, m.page, m.code), set()).add(m.row_number)

    errors: List[ReconciliationError] = []
    for (file_name, page, code), rows in sorted(groups.items()):
        if len(rows) < 2:
            continue
        row_numbers = tuple(sorted(rows))
        ctx = pages.get((file_name, page))
        errors.append(
            ReconciliationError(
                kind="duplicate",
                file_name=file_name,
                page=page,
                file_path=ctx.file_path if ctx else None,
                position_code=code,
                row_numbers=row_numbers,
                description=(
                    f"Position {code} on page {page} matches {len(row_numbers)} roster rows: "
                    + ", ".join(str(r) for r in row_numbers)
                ),
            )
        )
    return errors


def find_missing(
    matches: Iterable[Match],
    detections: Iterable[DetectedCode],
    pages: Mapping[PageKey, PageContext],
    index: Mapping[str, List[Position]],
) -> List[ReconciliationError]:
    on_page: Set[Tuple[str, int, str]] = set()
    pages_by_file_code: Dict[Tuple[str, str], Set[int]] = {}
    for d in detections:
        on_page.add((d.file_name, d.page, d.code))
        pages_by_file_code.setdefault((d.file_name, d.code), set()).add(d.page)

    referenced: Dict[Tuple[str, int, str], Set[str]] = {}
    for m in matches:
        sup = m.position.supervisor_code
        # supervisors outside the roster are broken chains, not page errors
        if sup is None or sup not in index:
            continue
        if (m.file_name, m.page, sup) in on_page:
            continue
        # a supervisor shown on another page of the same document is a hand-off
        if pages_by_file_code.get((m.file_name, sup), set()) - {m.page}:
            continue
        referenced.setdefault((m.file_name, m.page, sup), set()).add(m.code)

    errors: List[ReconciliationError] = []
    for (file_name, page, sup), subordinates in sorted(referenced.items()):
        ctx = pages.get((file_name, page))
        refs = tuple(sorted(subordinates))
        errors.append(
            ReconciliationError(
                kind="missing",
                file_name=file_name,
                page=page,
                file_path=ctx.file_path if ctx else None,
                position_code=sup,
                referenced_by=refs,
                description=(
                    f"Supervisor {sup} of {', '.join(refs)} is not on page {page} "
                    f"or any other page of {file_name}"
                ),
            )
        )
    return errors


# -----------------------------
# Orchestration
# -----------------------------


def _reconcile_file(
    index: Mapping[str, List[Position]],
    detections: List[DetectedCode],
    pages: Mapping[PageKey, PageContext],
) -> ReconciliationResult:
    matches = find_matches(index, detections)
    errors = (
        find_mismatches(detections, matches, pages)
        + find_duplicates(matches, pages)
        + find_missing(matches, detections, pages, index)
    )
    return ReconciliationResult(matches=tuple(matches), errors=tuple(errors))


def reconcile(
    positions: Iterable[Position],
    detections: Iterable[DetectedCode],
    pages: Iterable[PageContext],
    *,
    workers: int = 1,
) -> ReconciliationResult:
    """
    Join positions with detected codes and derive the three error kinds.
    Inputs are deduplicated; output tuples are sorted, so permuting any input
    yields an equal result.
    """
    index = build_position_index(positions)

    page_map: Dict[PageKey, PageContext] = {}
    for ctx in sorted(set(pages), key=lambda c: (c.file_name, c.page, c.status)):
        # first context per page wins; "error" sorts before "success"
        page_map.setdefault(ctx.page_key, ctx)

    # pages that failed extraction contribute no facts
    failed = {k for k, c in page_map.items() if c.status == "error"}
    by_file: Dict[str, List[DetectedCode]] = {}
    for d in set(detections):
        if d.page_key in failed:
            continue
        by_file.setdefault(d.file_name, []).append(d)
    for dets in by_file.values():
        dets.sort(key=lambda d: (d.page, d.code, d.x, d.y, d.width, d.height))

    files = sorted(by_file)
    if workers > 1 and len(files) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            partials = list(
                executor.map(lambda f: _reconcile_file(index, by_file[f], page_map), files)
            )
    else:
        partials = [_reconcile_file(index, by_file[f], page_map) for f in files]

    matches = sorted((m for r in partials for m in r.matches), key=_match_sort_key)
    errors = sorted((e for r in partials for e in r.errors), key=ReconciliationError.sort_key)
    return ReconciliationResult(matches=tuple(matches), errors=tuple(errors))
