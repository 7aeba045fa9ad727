"""Table layout.

:class:`TableLayoutEngine` turns a :class:`~docgen.models.Table` into a
``w:tbl`` element.  The table always spans the full text width; each cell
resolves its own width.  A cell that fails to compose is replaced by a cell
holding a visible diagnostic paragraph, so one bad cell never costs the
whole table.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from lxml import etree

from docgen.collaborators import (
    AltChunkMarkupConverter,
    AttachmentComposer,
    DocxAttachmentComposer,
    DocxPictureComposer,
    MarkupConverter,
    PictureComposer,
)
from docgen.errors import CellCompositionError, FormatError, RangeError
from docgen.models import Attachment, AttachmentKind, Cell, MarkupFragment, Row, Table
from docgen.runs import RunComposer
from docgen.settings import Settings
from docgen.units import (
    DEFAULT_PAGE_WIDTH,
    FULL_WIDTH_PCT,
    cm_to_dxa,
    dxa_to_pct,
    page_width_dxa,
    parse_number,
    percent_to_pct,
)
from docgen.validator import OPAQUE_TAGS

if TYPE_CHECKING:
    from docx.document import Document

    from docgen.slots import SlotLocator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Widths
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResolvedWidth:
    """A cell width in fiftieths of a percent, or automatic."""
    value: int = 0
    unit: str = "auto"

    @property
    def is_auto(self) -> bool:
        return self.unit == "auto"


AUTO_WIDTH = ResolvedWidth()


def resolve_cell_width(literal: str | None, page_width: int = DEFAULT_PAGE_WIDTH) -> ResolvedWidth:
    """Resolve a width literal such as ``"25%"`` or ``"3.5cm"``.

    Blank input gives an automatic width.

    Raises
    ------
    RangeError
        A percentage outside ``0..100`` or a non-positive length.
    FormatError
        Any other unit, or no readable number.
    """
    if literal is None or not literal.strip():
        return AUTO_WIDTH

    text = literal.strip().lower()
    if text.endswith("%"):
        percent = parse_number(text[:-1])
        if not 0 <= percent <= 100:
            raise RangeError(f"Cell width {literal!r} must be between 0% and 100%")
        return ResolvedWidth(percent_to_pct(percent), "pct")

    if text.endswith("cm"):
        centimetres = parse_number(text[:-2])
        if centimetres <= 0:
            raise RangeError(f"Cell width {literal!r} must be greater than 0cm")
        return ResolvedWidth(dxa_to_pct(cm_to_dxa(centimetres), page_width), "pct")

    raise FormatError(f"Unsupported cell width {literal!r}; use '%' or 'cm'")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _w(tag: str, **attrs) -> etree._Element:
    el = OxmlElement(tag)
    for key, value in attrs.items():
        el.set(qn(f"w:{key}"), str(value))
    return el


def _borders(tag: str, edges: tuple[str, ...], border: dict) -> etree._Element:
    """Build a border container with one identical border per edge."""
    container = OxmlElement(tag)
    for edge in edges:
        container.append(
            _w(
                f"w:{edge}",
                val=border["val"],
                sz=border["size"],
                space=border["space"],
                color=border["color"],
            )
        )
    return container


def _has_runs(paragraph: etree._Element) -> bool:
    return next(paragraph.iter(qn("w:r")), None) is not None


def _is_blank_paragraph(element: Optional[etree._Element]) -> bool:
    return element is not None and element.tag == qn("w:p") and not _has_runs(element)


def _is_last_paragraph_of_cell(paragraph: etree._Element) -> bool:
    parent = paragraph.getparent()
    if parent is None or parent.tag != qn("w:tc"):
        return False
    return parent.findall(qn("w:p"))[-1] is paragraph


def remove_blank_paragraphs_around_opaque_content(root: etree._Element) -> int:
    """Remove blank paragraphs directly around imported content.

    Imported markup leaves blank lines before and after its ``w:altChunk``.
    Every such chunk under *root* loses the blank paragraphs touching it on
    either side, the whole contiguous run of them and not only the nearest
    one; a blank paragraph that is the last paragraph of a table cell is kept.  Returns the number of paragraphs removed, and running it again
    removes nothing.
    """
    removed = 0
    chunks = [el for el in root.iter() if el.tag in OPAQUE_TAGS]
    for chunk in chunks:
        for step in (lambda el: el.getprevious(), lambda el: el.getnext()):
            neighbour = step(chunk)
            while _is_blank_paragraph(neighbour) and not _is_last_paragraph_of_cell(neighbour):
                following = step(neighbour)
                neighbour.getparent().remove(neighbour)
                removed += 1
                neighbour = following
    if removed:
        logger.debug("Removed %d blank paragraph(s) around imported content", removed)
    return removed


# ---------------------------------------------------------------------------
# TableLayoutEngine
# ---------------------------------------------------------------------------


class TableLayoutEngine:
    """Builds tables and the attachment and markup blocks they can hold.

    Parameters
    ----------
    runs : RunComposer or None, optional
        Composes cell paragraphs.
    pictures, attachments, markup : optional
        Collaborators for picture attachments, file attachments and markup
        fragments.  Default to the python-docx based implementations.
    settings : Settings or None, optional
        Supplies border attributes, diagnostic colour and page width default.
    """

    def __init__(
        self,
        runs: RunComposer | None = None,
        pictures: PictureComposer | None = None,
        attachments: AttachmentComposer | None = None,
        markup: MarkupConverter | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._pictures = pictures or DocxPictureComposer()
        self._runs = runs or RunComposer(pictures=self._pictures, settings=self._settings)
        self._attachments = attachments or DocxAttachmentComposer()
        self._markup = markup or AltChunkMarkupConverter(self._settings)

    # ── Public API ────────────────────────────────────────────────────

    def build(
        self, document: Document, table: Table, page_width: int | None = None
    ) -> etree._Element:
        """Return a detached ``w:tbl`` for *table*."""
        if page_width is None:
            page_width = page_width_dxa(document, self._settings.default_page_width)

        border = self._settings.get_border_config()
        column_count = table.column_count

        tbl = OxmlElement("w:tbl")

        tbl_pr = OxmlElement("w:tblPr")
        tbl_pr.append(_w("w:tblW", w=FULL_WIDTH_PCT, type="pct"))
        tbl_pr.append(
            _borders(
                "w:tblBorders",
                ("top", "left", "bottom", "right", "insideH", "insideV"),
                border,
            )
        )
        tbl_pr.append(_w("w:tblLayout", type="fixed"))
        tbl.append(tbl_pr)

        tbl_grid = OxmlElement("w:tblGrid")
        if column_count:
            share = int(FULL_WIDTH_PCT / column_count)
            for _ in range(column_count):
                tbl_grid.append(_w("w:gridCol", w=share))
        tbl.append(tbl_grid)

        for row_index, row in enumerate(table.rows):
            tbl.append(self._build_row(document, table, row, row_index, page_width))

        logger.debug(
            "Built table: %d row(s), %d column(s), header repeat=%s",
            len(table.rows), column_count, table.repeat_header_row,
        )
        return tbl

    def insert(
        self,
        document: Document,
        locator: SlotLocator,
        title: str,
        table: Table,
        page_width: int | None = None,
    ) -> Optional[etree._Element]:
        """Build *table* and append it, plus a separator, to slot *title*.

        Afterwards blank paragraphs around imported content are cleaned up
        across the whole body.  Tables without rows are skipped.
        """
        if not table.rows:
            logger.warning("Skipping table without rows in content control '%s'", title)
            return None

        tbl = self.build(document, table, page_width)
        separator = self._runs.compose_separator(page_break=table.insert_page_break_after)
        locator.append_to(title, tbl, separator)
        remove_blank_paragraphs_around_opaque_content(document.element.body)
        return tbl

    def compose_attachment(
        self, document: Document, attachment: Attachment
    ) -> list[etree._Element]:
        """Return the paragraph(s) representing *attachment*.

        A file becomes one linking paragraph; a picture becomes the picture
        paragraph followed by its caption.
        """
        match attachment.attachment_kind:
            case AttachmentKind.FILE:
                display_name = attachment.name or Path(attachment.path).name
                return [self._attachments.attach_file(document, attachment.path, display_name)]
            case AttachmentKind.PICTURE:
                drawing = self._pictures.create_drawing(
                    document, attachment.path, attachment.flattened
                )
                run = OxmlElement("w:r")
                run.append(drawing)
                picture = OxmlElement("w:p")
                picture.append(run)
                caption = self._runs.compose_caption(
                    attachment.name or Path(attachment.path).name
                )
                return [picture, caption]
            case _:
                raise ValueError(f"Unsupported attachment kind: {attachment.attachment_kind}")

    def compose_markup(
        self, document: Document, fragment: MarkupFragment
    ) -> list[etree._Element]:
        """Convert *fragment*; the result always holds at least one paragraph."""
        nodes = list(
            self._markup.convert(document, fragment.raw, fragment.font, fragment.font_size)
        )
        if not any(node.tag == qn("w:p") for node in nodes):
            nodes.append(OxmlElement("w:p"))
        return nodes

    # ── Rows and cells ────────────────────────────────────────────────

    def _build_row(
        self,
        document: Document,
        table: Table,
        row: Row,
        row_index: int,
        page_width: int,
    ) -> etree._Element:
        tr = OxmlElement("w:tr")
        if row_index == 0 and table.repeat_header_row:
            tr_pr = OxmlElement("w:trPr")
            tr_pr.append(OxmlElement("w:tblHeader"))
            tr.append(tr_pr)

        cells = row.cells
        if not cells:
            logger.warning("Row %d declares no cells; adding an empty one", row_index)
            cells = [Cell()]
        if row.merge_to_one_cell and len(cells) > 1:
            logger.debug(
                "Row %d merges to one cell; dropping %d extra cell(s)",
                row_index, len(cells) - 1,
            )
            cells = cells[:1]

        for column_index, cell in enumerate(cells):
            tr.append(
                self._build_cell(document, cell, row, row_index, column_index, page_width)
            )
        return tr

    def _build_cell(
        self,
        document: Document,
        cell: Cell,
        row: Row,
        row_index: int,
        column_index: int,
        page_width: int,
    ) -> etree._Element:
        try:
            tc = OxmlElement("w:tc")
            tc.append(self._cell_properties(resolve_cell_width(cell.width, page_width), cell, row))
            for node in self._cell_content(document, cell):
                tc.append(node)
            if tc.find(qn("w:p")) is None:
                raise CellCompositionError("Cell content contains no paragraph")
            return tc
        except Exception as exc:
            logger.exception(
                "Error rendering cell at row %d, column %d", row_index, column_index
            )
            return self._diagnostic_cell(row, row_index, column_index, exc)

    def _cell_properties(
        self, width: ResolvedWidth, cell: Cell, row: Row
    ) -> etree._Element:
        tc_pr = OxmlElement("w:tcPr")
        if width.is_auto:
            tc_pr.append(_w("w:tcW", w=0, type="auto"))
        else:
            tc_pr.append(_w("w:tcW", w=width.value, type="pct"))

        if row.merge_to_one_cell:
            tc_pr.append(_w("w:gridSpan", val=row.merge_span))

        tc_pr.append(
            _borders(
                "w:tcBorders",
                ("top", "left", "bottom", "right"),
                self._settings.get_border_config(),
            )
        )

        if cell.shading is not None:
            shd = _w("w:shd", val="clear", color=cell.shading.color, fill=cell.shading.fill)
            if cell.shading.theme_fill:
                shd.set(qn("w:themeFill"), cell.shading.theme_fill)
            if cell.shading.theme_fill_shade:
                shd.set(qn("w:themeFillShade"), cell.shading.theme_fill_shade)
            tc_pr.append(shd)
        return tc_pr

    def _cell_content(self, document: Document, cell: Cell) -> list[etree._Element]:
        nodes: list[etree._Element] = []

        for paragraph in cell.paragraphs:
            nodes.append(self._runs.compose_full_paragraph(document, paragraph))
        if not cell.paragraphs and not cell.attachments and cell.markup is None:
            nodes.append(OxmlElement("w:p"))

        for attachment in cell.attachments:
            nodes.extend(self.compose_attachment(document, attachment))

        if cell.markup is not None:
            nodes.extend(self.compose_markup(document, cell.markup))

        return nodes

    def _diagnostic_cell(
        self, row: Row, row_index: int, column_index: int, exc: Exception
    ) -> etree._Element:
        tc = OxmlElement("w:tc")
        tc.append(self._cell_properties(AUTO_WIDTH, Cell(), row))
        tc.append(
            self._runs.compose_diagnostic(
                f"Error rendering cell (row {row_index}, column {column_index}): {exc}"
            )
        )
        return tc
