from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import fitz
import pytest

from orgrecon.extract.pdf_codes import (
    PDFLoader,
    codes_on_page,
    find_codes_in_pdf,
    find_codes_on_page,
    normalize_dashes,
)

# ---------------------------
# Test helpers
# ---------------------------

CHAR_W = 5.0
LINE_H = 9.0


class _FakePage:
    """Mimics fitz.Page.get_text('rawdict'); one block per text line."""

    def __init__(self, lines: List[Dict[str, Any]]):
        self._lines = lines

    def get_text(self, kind: str):
        assert kind == "rawdict"
        return {"blocks": [{"type": 0, "lines": [line]} for line in self._lines]}


def _line(text: str, x0: float, y0: float) -> Dict[str, Any]:
    chars = [
        {"c": c, "bbox": (x0 + i * CHAR_W, y0, x0 + (i + 1) * CHAR_W, y0 + LINE_H)}
        for i, c in enumerate(text)
    ]
    return {"spans": [{"chars": chars}]}


def _pdf(path: Path, pages: List[List[str]]) -> Path:
    doc = fitz.open()
    for lines in pages:
        page = doc.new_page()
        for i, line in enumerate(lines):
            page.insert_text((72, 72 + 20 * i), line)
    doc.save(str(path))
    doc.close()
    return path


# ---------------------------
# Tests
# ---------------------------


def test_normalize_dashes():
    assert normalize_dashes("100–200‑300−0001") == "100-200-300-0001"
    assert normalize_dashes("") == ""


def test_find_codes_on_fake_page():
    page = _FakePage(
        [
            _line("Director", 10, 10),
            _line("100-200-3000-001", 10, 22),
            _line("100–200–3000–002", 200, 22),
            _line("(100-200-3000-003)", 400, 22),
            _line("100-200-300-004", 10, 40),
        ]
    )
    boxes = find_codes_on_page(page)

    assert [b.text for b in boxes] == [
        "100-200-3000-001",
        "100-200-3000-002",
        "100-200-3000-003",
    ]
    assert boxes[0].x == 10
    assert boxes[0].y == 22
    assert boxes[0].width == 16 * CHAR_W
    assert boxes[0].height == LINE_H
    # the parenthesis is not part of the box
    assert boxes[2].x == 400 + CHAR_W


def test_same_code_same_box_is_one_occurrence():
    page = _FakePage(
        [
            _line("100-200-3000-001", 10, 22),
            _line("100-200-3000-001", 10, 22),
            _line("100-200-3000-001", 300, 22),
        ]
    )
    boxes = find_codes_on_page(page)
    assert [(b.text, b.x) for b in boxes] == [
        ("100-200-3000-001", 10),
        ("100-200-3000-001", 300),
    ]


def test_box_covers_only_the_code_when_text_is_glued_to_it():
    page = _FakePage([_line("Analyst:100-200-3000-001(.5)", 10, 22)])
    (box,) = find_codes_on_page(page)

    assert box.text == "100-200-3000-001"
    assert box.x == 10 + 8 * CHAR_W
    assert box.width == 16 * CHAR_W


def test_code_split_across_spans_is_found():
    line = _line("100-200-3000-001", 10, 22)
    chars = line["spans"][0]["chars"]
    page = _FakePage([{"spans": [{"chars": chars[:7]}, {"chars": chars[7:]}]}])

    (box,) = find_codes_on_page(page)
    assert box.text == "100-200-3000-001"
    assert box.width == 16 * CHAR_W


def test_image_blocks_are_skipped():
    class _ImagePage:
        def get_text(self, kind: str):
            return {"blocks": [{"type": 1, "image": b""}]}

    assert find_codes_on_page(_ImagePage()) == []


def test_real_pdf(tmp_path: Path):
    pdf = _pdf(
        tmp_path / "chart.pdf",
        [
            ["Regional Director", "100-200-3000-001"],
            ["Analyst 100-200-3000-002", "Reports to 100-200-3000-001"],
        ],
    )

    assert [b.text for b in codes_on_page(str(pdf), 2)] == [
        "100-200-3000-002",
        "100-200-3000-001",
    ]
    assert find_codes_in_pdf(str(pdf)) == {
        "100-200-3000-001": [1, 2],
        "100-200-3000-002": [2],
    }


def test_page_out_of_range(tmp_path: Path):
    pdf = _pdf(tmp_path / "one.pdf", [["nothing here"]])
    with PDFLoader(str(pdf)) as loader:
        assert loader.page_count() == 1
        with pytest.raises(IndexError):
            loader.get_page(2)
        with pytest.raises(IndexError):
            loader.get_page(0)


def test_real_pdf_box_is_narrower_than_glued_word(tmp_path: Path):
    pdf = _pdf(tmp_path / "glued.pdf", [["Analyst:100-200-3000-001(.5)"]])

    (box,) = codes_on_page(str(pdf), 1)
    with PDFLoader(str(pdf)) as loader:
        (word,) = loader.get_page(1).get_text("words")
    x0, x1 = word[0], word[2]

    assert box.x > x0
    assert box.x + box.width < x1
