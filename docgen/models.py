"""Data models for the content written into a template document.

A request names one or more content controls (slots) of the template and the
blocks to render into each of them.  Blocks and runs are tagged unions: every
block class carries a :class:`BlockKind` and every run a :class:`RunKind`, and
the renderers dispatch on those tags.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Optional


class BlockKind(Enum):
    PARAGRAPH = "paragraph"
    LIST = "list"
    TABLE = "table"
    ATTACHMENT = "attachment"
    MARKUP = "html"


class RunKind(Enum):
    TEXT = "text"
    BREAK = "break"
    IMAGE = "image"


class AttachmentKind(Enum):
    FILE = "file"
    PICTURE = "picture"


# ── Inline content ──────────────────────────────────────────────────


@dataclass
class TextStyle:
    """Character styling applied to a text run.

    ``size`` is in points; ``0`` leaves the size to the paragraph style.
    """
    font: str = "Arial"
    size: int = 12
    bold: bool = False
    italic: bool = False
    underline: bool = False
    font_color: Optional[str] = None
    hyperlink_uri: Optional[str] = None
    insert_line_break_before: bool = False
    preserve_space: bool = False


@dataclass
class Run:
    """A text run, a line break or an inline image."""
    kind: RunKind = RunKind.TEXT
    value: str = ""
    image_source: Optional[str] = None
    style: TextStyle = field(default_factory=TextStyle)


# ── Block-level content ─────────────────────────────────────────────


@dataclass
class Paragraph:
    """A paragraph; ``heading_level`` 0 means body text."""
    kind: ClassVar[BlockKind] = BlockKind.PARAGRAPH
    heading_level: int = 0
    runs: list[Run] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(r.value for r in self.runs if r.kind is RunKind.TEXT)


@dataclass
class ListItem:
    """A single list entry at nesting ``level`` (0 is the outermost)."""
    level: int = 0
    runs: list[Run] = field(default_factory=list)


@dataclass
class ListBlock:
    kind: ClassVar[BlockKind] = BlockKind.LIST
    items: list[ListItem] = field(default_factory=list)
    is_ordered: bool = False


@dataclass
class Attachment:
    """A file or picture to place in the document.

    ``flattened`` only applies to pictures and fits the image to the
    writable page width.
    """
    kind: ClassVar[BlockKind] = BlockKind.ATTACHMENT
    path: str = ""
    attachment_kind: AttachmentKind = AttachmentKind.FILE
    name: str = ""
    flattened: bool = False


@dataclass
class MarkupFragment:
    """Raw HTML to import as foreign content; ``font_size`` is in points."""
    kind: ClassVar[BlockKind] = BlockKind.MARKUP
    raw: str = ""
    font: str = "Arial"
    font_size: int = 12


@dataclass
class Shading:
    color: str = "auto"
    fill: str = "auto"
    theme_fill: Optional[str] = None
    theme_fill_shade: Optional[str] = None


@dataclass
class Cell:
    """A table cell.

    ``width`` is a literal such as ``"25%"`` or ``"3.5cm"``; blank means
    automatic width.
    """
    width: str = ""
    shading: Optional[Shading] = None
    paragraphs: list[Paragraph] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)
    markup: Optional[MarkupFragment] = None


@dataclass
class Row:
    cells: list[Cell] = field(default_factory=list)
    merge_to_one_cell: bool = False
    merge_span: int = 1


@dataclass
class Table:
    kind: ClassVar[BlockKind] = BlockKind.TABLE
    rows: list[Row] = field(default_factory=list)
    repeat_header_row: bool = True
    insert_page_break_after: bool = False

    @property
    def column_count(self) -> int:
        """Widest logical row, counting merged rows by their span."""
        counts = [
            max(len(row.cells), row.merge_span if row.merge_to_one_cell else 0)
            for row in self.rows
        ]
        return max(counts, default=0)


# ── Block union ─────────────────────────────────────────────────────

Block = Paragraph | ListBlock | Table | Attachment | MarkupFragment


# ── Request structure ───────────────────────────────────────────────


@dataclass
class ContentControl:
    """The blocks to render into the slot whose alias is ``title``."""
    title: str = ""
    force_clean: bool = False
    blocks: list[Block] = field(default_factory=list)


@dataclass
class DocumentModel:
    """A complete write request against one template."""
    content_controls: list[ContentControl] = field(default_factory=list)

    def summary(self) -> dict:
        """Count blocks per kind across all content controls."""
        stats: dict = {"content_controls": len(self.content_controls)}
        for kind in BlockKind:
            stats[kind.value] = 0
        for control in self.content_controls:
            for block in control.blocks:
                stats[block.kind.value] += 1
        return stats
