"""
Position-Aware Layout Reconstruction
════════════════════════════════════

Rebuilds reading order from positioned text fragments and derives the
document structure the schema analyzer feeds on.

Line grouping
─────────────
  Fragments whose vertical coordinate rounds to the same multiple of
  Y_THRESHOLD belong to one line. Lines are ordered top-to-bottom and the
  fragments of a line left-to-right, then joined with single spaces.
  This recovers natural order across multi-column layouts where the raw
  content stream is ordered by drawing operation instead.

  Coordinates follow PyMuPDF: origin at the top-left, y grows downwards.

Table detection
───────────────
  A line is "tabular" when its text (≥ 5 chars) splits on runs of 2+ spaces
  into ≥ 3 cells, contains a tab, or has ≥ 3 fragments whose horizontal gaps
  are each within 50% of the mean gap. Three or more consecutive tabular
  lines form a table; the first row is the header row.

Section detection
─────────────────
  A line opens a section when it matches a numbered / lettered heading
  pattern, or when it is short (5–100 chars), sits below a vertical gap,
  and either ends with ':' or is an upper-case label. Content accumulates
  until the next heading.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# Fragments within this many units vertically share a line
Y_THRESHOLD = 3

# Vertical gap (units) above a line that marks it as a potential heading
HEADING_GAP = 15

MIN_TABLE_LINES     = 3
MIN_TABLE_LINE_CHARS = 5
ALIGNMENT_TOLERANCE = 0.5

_CELL_SPLIT_RE = re.compile(r"\s{2,}")
_UPPER_LABEL_RE = re.compile(r"^[A-Z0-9\s]{3,50}$")

# "1. Introduction", "(A) Scope", "B. Terms", "Section 4: Payment", "CHAPTER 2 Overview"
_HEADING_RE = re.compile(
    r"""
    ^(?:
        (?:\d+\.|\([A-Z]\)|\([0-9]\)|[A-Z]\.)\s+
      | (?:Section|SECTION|Chapter|CHAPTER)\s+\d+:?\s+
    )
    ([A-Z][A-Za-z0-9 ]+)$
    """,
    re.VERBOSE,
)


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextFragment:
    """A positioned run of text (one PyMuPDF span)."""
    text:  str
    x:     float
    y:     float
    width: float = 0.0


@dataclass(frozen=True)
class Line:
    text:  str
    y:     float
    items: tuple[TextFragment, ...] = ()


@dataclass(frozen=True)
class PageLayout:
    number: int
    width:  float
    height: float
    lines:  tuple[Line, ...] = ()

    @property
    def text(self) -> str:
        return "\n".join(line.text for line in self.lines)


@dataclass(frozen=True)
class Table:
    page_number: int
    rows:        tuple[tuple[str, ...], ...]
    text:        str = ""

    @property
    def header_row(self) -> tuple[str, ...]:
        return self.rows[0] if self.rows else ()


@dataclass(frozen=True)
class Section:
    title:   str
    content: str = ""


# ---------------------------------------------------------------------------
# Line reconstruction
# ---------------------------------------------------------------------------

def group_lines(fragments: list[TextFragment], y_threshold: float = Y_THRESHOLD) -> list[Line]:
    """Group fragments into reading-order lines."""
    by_row: dict[float, list[TextFragment]] = {}
    for frag in fragments:
        key = round(frag.y / y_threshold) * y_threshold
        by_row.setdefault(key, []).append(frag)

    lines: list[Line] = []
    for y in sorted(by_row):
        items = sorted(by_row[y], key=lambda f: f.x)
        text = " ".join(f.text for f in items)
        if not text.strip():
            continue
        lines.append(Line(text=text, y=y, items=tuple(items)))
    return lines


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

def _items_aligned(items: tuple[TextFragment, ...]) -> bool:
    if len(items) < 3:
        return False
    xs = [f.x for f in items]
    gaps = [b - a for a, b in zip(xs, xs[1:])]
    mean = sum(gaps) / len(gaps)
    return all(abs(g - mean) <= mean * ALIGNMENT_TOLERANCE for g in gaps)


def is_tabular(line: Line) -> bool:
    text = line.text
    if len(text.strip()) < MIN_TABLE_LINE_CHARS:
        return False
    return (
        ("  " in text and len(text.split("  ")) >= 3)
        or "\t" in text
        or _items_aligned(line.items)
    )


def _table_row(line: Line) -> tuple[str, ...]:
    if len(line.items) > 2:
        return tuple(f.text.strip() for f in sorted(line.items, key=lambda f: f.x))
    return tuple(c.strip() for c in _CELL_SPLIT_RE.split(line.text) if c.strip())


def _build_table(lines: list[Line], page_number: int) -> Table:
    return Table(
        page_number=page_number,
        rows=tuple(_table_row(line) for line in lines),
        text="\n".join(line.text for line in lines),
    )


def detect_tables(pages: list[PageLayout]) -> list[Table]:
    """Find runs of ≥ 3 consecutive tabular lines on each page."""
    tables: list[Table] = []
    for page in pages:
        run: list[Line] = []
        for line in page.lines:
            if len(line.text.strip()) < MIN_TABLE_LINE_CHARS:
                continue   # too short to decide either way
            if is_tabular(line):
                run.append(line)
                continue
            if len(run) >= MIN_TABLE_LINES:
                tables.append(_build_table(run, page.number))
            run = []
        if len(run) >= MIN_TABLE_LINES:
            tables.append(_build_table(run, page.number))
    return tables


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

def heading_title(text: str) -> str | None:
    """Title of a numbered / lettered heading line, or None."""
    match = _HEADING_RE.match(text.strip())
    return match.group(1).strip() if match else None


def _is_gap_heading(line: Line, previous: Line | None) -> bool:
    text = line.text.strip()
    if not 5 < len(text) < 100:
        return False
    if previous is not None and line.y - previous.y <= HEADING_GAP:
        return False
    return text.endswith(":") or bool(_UPPER_LABEL_RE.match(text))


def _to_sections(collected: list[tuple[str, list[str]]]) -> list[Section]:
    return [
        Section(title=title, content="\n".join(body).strip())
        for title, body in collected
    ]


def detect_sections(pages: list[PageLayout]) -> list[Section]:
    """Sections from positioned lines (heading pattern or gap heuristic)."""
    collected: list[tuple[str, list[str]]] = []

    for page in pages:
        previous: Line | None = None
        for line in page.lines:
            title = heading_title(line.text)
            if title is None and _is_gap_heading(line, previous):
                title = line.text.strip()
            if title is not None:
                collected.append((title, []))
            elif collected:
                collected[-1][1].append(line.text)
            previous = line

    return _to_sections(collected)


def detect_sections_from_text(text: str) -> list[Section]:
    """Heading-pattern sections for text without positional information."""
    collected: list[tuple[str, list[str]]] = []

    for raw in text.splitlines():
        title = heading_title(raw)
        if title is not None:
            collected.append((title, []))
        elif collected and raw.strip():
            collected[-1][1].append(raw.strip())

    return _to_sections(collected)
