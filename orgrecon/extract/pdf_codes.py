"""
pdf_codes.py

Finds position codes (###-###-####-###) on org-chart PDF pages together
with their bounding boxes.
"""

from __future__ import annotations

import re
from typing import Dict, List

import fitz  # PyMuPDF

from orgrecon.extract.schema import PositionBox

# -----------------------------
# Utilities & configuration
# -----------------------------

CODE_RE = re.compile(r"\d{3}-\d{3}-\d{4}-\d{3}")

# hyphen, non-breaking hyphen, figure dash, en/em dash, minus
_DASHES_RE = re.compile("[\u2010\u2011\u2012\u2013\u2014\u2212]")


def normalize_dashes(s: str) -> str:
    return _DASHES_RE.sub("-", s) if s else s


class PDFLoader:
    """Light wrapper around PyMuPDF with helpers."""

    def __init__(self, path: str):
        self.path = path
        self.doc = fitz.open(path)

    def page_count(self) -> int:
        return len(self.doc)

    def get_page(self, page_number: int) -> fitz.Page:
        """1-based page access."""
        if page_number < 1 or page_number > self.page_count():
            raise IndexError(
                f"page {page_number} out of range (document has {self.page_count()} pages)"
            )
        return self.doc[page_number - 1]

    def close(self) -> None:
        self.doc.close()

    def __enter__(self) -> "PDFLoader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _line_chars(line: dict) -> List[dict]:
    return [ch for span in line.get("spans", ()) for ch in span.get("chars", ())]


def find_codes_on_page(page) -> List[PositionBox]:
    """
    Every code occurrence on the page, in reading order. The box spans only
    the characters of the code, so text glued to it ("...-001(.5)") is not
    included. Occurrences with the same text and box are one instance.
    """
    boxes: List[PositionBox] = []
    seen = set()
    for block in page.get_text("rawdict").get("blocks", ()):
        for line in block.get("lines", ()):
            chars = _line_chars(line)
            text = normalize_dashes("".join(ch["c"] for ch in chars))
            for m in CODE_RE.finditer(text):
                bboxes = [chars[i]["bbox"] for i in range(m.start(), m.end())]
                x0 = min(b[0] for b in bboxes)
                y0 = min(b[1] for b in bboxes)
                x1 = max(b[2] for b in bboxes)
                y1 = max(b[3] for b in bboxes)
                key = (m.group(0), x0, y0, x1 - x0, y1 - y0)
                if key in seen:
                    continue
                seen.add(key)
                boxes.append(
                    PositionBox(
                        text=m.group(0),
                        x=x0,
                        y=y0,
                        width=max(0.0, x1 - x0),
                        height=max(0.0, y1 - y0),
                    )
                )
    return boxes


def codes_on_page(path: str, page_number: int) -> List[PositionBox]:
    with PDFLoader(path) as loader:
        return find_codes_on_page(loader.get_page(page_number))


def find_codes_in_pdf(path: str) -> Dict[str, List[int]]:
    """code -> sorted pages (1-based) it appears on, for the whole document."""
    found: Dict[str, List[int]] = {}
    with PDFLoader(path) as loader:
        for i in range(1, loader.page_count() + 1):
            for box in find_codes_on_page(loader.get_page(i)):
                pages = found.setdefault(box.text, [])
                if i not in pages:
                    pages.append(i)
    return dict(sorted(found.items()))

