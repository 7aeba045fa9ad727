"""Measurement conversions used by table layout.

Widths in the host format come in three flavours: absolute lengths in DXA
(twentieths of a point), proportional widths in fiftieths of a percent
(``5000`` is 100%), and centimetres as written by callers.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from docx.oxml.ns import qn

from docgen.errors import FormatError

if TYPE_CHECKING:
    from docx.document import Document

# 1 cm = 1440 / 2.54 DXA
CM_TO_DXA = 566.9291338582677

# Proportional width of a full-width table (100%).
FULL_WIDTH_PCT = 5000

# A4 portrait width in DXA.
DEFAULT_PAGE_WIDTH = 11906

_NUMBER_RE = re.compile(r"-?\d+(\.\d+)?")


def cm_to_dxa(cm: float) -> int:
    """Convert centimetres to DXA, rounded to the nearest integer."""
    return round(cm * CM_TO_DXA)


def dxa_to_pct(dxa: int, page_width_dxa: int) -> int:
    """Express an absolute DXA length as a share of *page_width_dxa*."""
    return round(dxa / page_width_dxa * FULL_WIDTH_PCT)


def percent_to_pct(percent: float) -> int:
    """Convert a percentage (0-100) to fiftieths of a percent."""
    return round(percent * 50)


def parse_number(text: str) -> float:
    """Extract the first decimal number found in *text*.

    ``"12.5cm"`` gives ``12.5`` and ``" -3 %"`` gives ``-3.0``.

    Raises
    ------
    FormatError
        If *text* contains no number.
    """
    match = _NUMBER_RE.search(text)
    if match is None:
        raise FormatError(f"Could not parse {text!r} into a number")
    return float(match.group(0))


def page_width_dxa(document: Document, default: int = DEFAULT_PAGE_WIDTH) -> int:
    """Return the body section's page width in DXA.

    Reads ``w:pgSz/@w:w`` of the body-level ``w:sectPr``; *default* is
    returned when the template does not declare one.
    """
    sect_pr = document.element.body.find(qn("w:sectPr"))
    if sect_pr is not None:
        pg_sz = sect_pr.find(qn("w:pgSz"))
        if pg_sz is not None:
            width = pg_sz.get(qn("w:w"))
            if width and width.isdigit():
                return int(width)
    return default
