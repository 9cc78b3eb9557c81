from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from orgrecon.reconcile.engine import ReconciliationResult
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
class PageBundle:
    file_name: str
    page: int
    context: Optional[PageContext]
    matches: Tuple[Match, ...]
    errors: Tuple[ReconciliationError, ...]

    @property
    def is_clean(self) -> bool:
        return not self.errors


class ReconciliationView:
    """
    Read-only projections over one run's facts, per (file, page) and global.
    """

    def __init__(
        self,
        positions: Iterable[Position],
        detections: Iterable[DetectedCode],
        pages: Iterable[PageContext],
        result: ReconciliationResult,
    ):
        self._positions = tuple(positions)
        self._detections = tuple(
            sorted(set(detections), key=lambda d: (d.file_name, d.page, d.code, d.x, d.y))
        )
        self._pages: Dict[PageKey, PageContext] = {}
        for ctx in sorted(set(pages), key=lambda c: (c.file_name, c.page, c.status)):
            self._pages.setdefault(ctx.page_key, ctx)
        self._result = result

        self._matches_by_page: Dict[PageKey, List[Match]] = {}
        for m in result.matches:
            self._matches_by_page.setdefault(m.page_key, []).append(m)
        self._errors_by_page: Dict[PageKey, List[ReconciliationError]] = {}
        for e in result.errors:
            self._errors_by_page.setdefault(e.page_key, []).append(e)

    # ---------- per page ----------

    def page_keys(self) -> List[PageKey]:
        keys = set(self._pages) | set(self._matches_by_page) | set(self._errors_by_page)
        return sorted(keys)

    def page_bundle(self, file_name: str, page: int) -> PageBundle:
        key = (file_name, page)
        return PageBundle(
            file_name=file_name,
            page=page,
            context=self._pages.get(key),
            matches=tuple(self._matches_by_page.get(key, ())),
            errors=tuple(self._errors_by_page.get(key, ())),
        )

    def page_bundles(self) -> List[PageBundle]:
        return [self.page_bundle(f, p) for f, p in self.page_keys()]

    # ---------- global ----------

    def positions(self) -> Tuple[Position, ...]:
        return self._positions

    def detections(self) -> Tuple[DetectedCode, ...]:
        return self._detections

    def matches(self) -> Tuple[Match, ...]:
        return self._result.matches

    def errors(self, kind: Optional[ErrorKind] = None) -> Tuple[ReconciliationError, ...]:
        if kind is None:
            return self._result.errors
        return self._result.errors_of(kind)

    def errors_for_file(self, file_name: str) -> Tuple[ReconciliationError, ...]:
        return tuple(e for e in self._result.errors if e.file_name == file_name)

    def matches_for_code(self, code: str) -> Tuple[Match, ...]:
        return tuple(m for m in self._result.matches if m.code == code)

    def summary(self) -> Dict[str, int]:
        bundles = self.page_bundles()
        return {
            "positions": len(self._positions),
            "detections": len(self._detections),
            "pages": len(bundles),
            "failed_pages": sum(
                1 for b in bundles if b.context is not None and b.context.status == "error"
            ),
            "clean_pages": sum(1 for b in bundles if b.is_clean),
            "matches": len(self._result.matches),
            "mismatch": len(self._result.errors_of("mismatch")),
            "duplicate": len(self._result.errors_of("duplicate")),
            "missing": len(self._result.errors_of("missing")),
        }
