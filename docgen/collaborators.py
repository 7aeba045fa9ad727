"""Collaborators that touch document-level resources.

Pictures, attached files, imported markup and hyperlinks all need a part or
relationship registered on the document before the element referencing it
can be built.  The composers therefore receive them as explicit objects that
take the document handle; the protocols below describe what is expected and
the ``Docx*`` classes implement them on top of python-docx.
"""

from __future__ import annotations

import html
import logging
import secrets
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Protocol
from urllib.parse import quote, urlparse

from docx.opc.constants import RELATIONSHIP_TYPE as RT
from docx.opc.part import Part
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shape import InlineShape
from lxml import etree

from docgen.errors import InvalidUri
from docgen.settings import Settings

if TYPE_CHECKING:
    from docx.document import Document

logger = logging.getLogger(__name__)

# EMU per DXA (1 inch = 914400 EMU = 1440 DXA)
_EMU_PER_DXA = 635

_HTML_CONTENT_TYPE = "text/html"


# ── Protocols ──────────────────────────────────────────────────────────


class PictureComposer(Protocol):
    def create_drawing(
        self, document: Document, path: str, flattened: bool = False
    ) -> etree._Element: ...


class AttachmentComposer(Protocol):
    def attach_file(
        self, document: Document, path: str, display_name: str
    ) -> etree._Element: ...


class MarkupConverter(Protocol):
    def convert(
        self, document: Document, fragment: str, font: str, font_size: int
    ) -> list[etree._Element]: ...


class HyperlinkAllocator(Protocol):
    def add_relationship(self, document: Document, uri: str) -> str: ...

    def wrap_as_hyperlink(
        self, relationship_id: str, run: etree._Element
    ) -> etree._Element: ...


# ── Hyperlinks ─────────────────────────────────────────────────────────


class DocxHyperlinkAllocator:
    """Registers external hyperlink relationships on the main document part."""

    def add_relationship(self, document: Document, uri: str) -> str:
        """Return the relationship id for *uri*, registering it if new.

        Raises
        ------
        InvalidUri
            If *uri* is not absolute.
        """
        parsed = urlparse(uri.strip())
        if not parsed.scheme or not (parsed.netloc or parsed.path):
            raise InvalidUri(f"{uri!r} is not an absolute URI")
        return document.part.relate_to(uri.strip(), RT.HYPERLINK, is_external=True)

    @staticmethod
    def wrap_as_hyperlink(relationship_id: str, run: etree._Element) -> etree._Element:
        hyperlink = OxmlElement("w:hyperlink")
        hyperlink.set(qn("r:id"), relationship_id)
        hyperlink.set(qn("w:history"), "1")
        hyperlink.append(run)
        return hyperlink


# ── Pictures ───────────────────────────────────────────────────────────


class DocxPictureComposer:
    """Builds ``w:drawing`` elements for image files.

    The image part is added to the document package as a side effect.
    Flattened pictures are scaled down to the writable width of the last
    section when they are wider than it.
    """

    def create_drawing(
        self, document: Document, path: str, flattened: bool = False
    ) -> etree._Element:
        if not Path(path).is_file():
            raise FileNotFoundError(f"Picture not found: {path}")

        inline = document.part.new_pic_inline(path)
        if flattened:
            self._fit_to_width(document, inline)

        drawing = OxmlElement("w:drawing")
        drawing.append(inline)
        logger.debug("Created drawing for %s", path)
        return drawing

    @staticmethod
    def _fit_to_width(document: Document, inline: etree._Element) -> None:
        section = document.sections[-1]
        if section.page_width is None:
            return
        margins = (section.left_margin or 0) + (section.right_margin or 0)
        max_width = section.page_width - margins
        if max_width <= 0:
            return

        shape = InlineShape(inline)
        if shape.width > max_width:
            scale = max_width / shape.width
            shape.height = int(shape.height * scale)
            shape.width = int(max_width)
            logger.debug("Scaled picture to %d EMU wide", int(max_width))


# ── Attached files ─────────────────────────────────────────────────────


class DocxAttachmentComposer:
    """Links attached files from a paragraph showing their display name.

    Each file is linked by a path relative to the generated document, under
    *folder*.  The files themselves are only recorded here; call
    :meth:`copy_to` with the output directory once the document is saved so
    the links resolve wherever the document and its folder are moved.
    """

    def __init__(
        self, hyperlinks: HyperlinkAllocator | None = None, folder: str = "attachments"
    ) -> None:
        self._hyperlinks = hyperlinks or DocxHyperlinkAllocator()
        self._folder = folder
        self.pending: dict[str, Path] = {}

    def attach_file(self, document: Document, path: str, display_name: str) -> etree._Element:
        file_path = Path(path)
        if not file_path.is_file():
            raise FileNotFoundError(f"Attachment not found: {path}")

        run = OxmlElement("w:r")
        r_pr = OxmlElement("w:rPr")
        r_style = OxmlElement("w:rStyle")
        r_style.set(qn("w:val"), "Hyperlink")
        r_pr.append(r_style)
        run.append(r_pr)
        text = OxmlElement("w:t")
        text.text = display_name or file_path.name
        run.append(text)

        target = self._reserve(file_path, display_name)
        rel_id = document.part.relate_to(quote(target), RT.HYPERLINK, is_external=True)
        paragraph = OxmlElement("w:p")
        paragraph.append(self._hyperlinks.wrap_as_hyperlink(rel_id, run))
        logger.debug("Attached file %s as '%s' -> %s", path, text.text, target)
        return paragraph

    def copy_to(self, output_dir: str | Path) -> list[Path]:
        """Copy every recorded file into *output_dir* and forget them.

        Returns the paths written.
        """
        written = []
        for target, source in self.pending.items():
            destination = Path(output_dir) / target
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, destination)
            written.append(destination)
        if written:
            logger.info(
                "Copied %d attachment(s) into %s", len(written), Path(output_dir) / self._folder
            )
        self.pending.clear()
        return written

    def _reserve(self, source: Path, display_name: str) -> str:
        """Pick a relative target for *source* that no other attachment uses."""
        stem = (display_name or source.stem).replace("/", "_").replace("\\", "_")
        if source.suffix and stem.lower().endswith(source.suffix.lower()):
            stem = stem[: -len(source.suffix)]
        target = f"{self._folder}/{stem}{source.suffix}"
        while target in self.pending and self.pending[target] != source.resolve():
            target = f"{self._folder}/{stem}-{secrets.token_hex(2)}{source.suffix}"
        self.pending[target] = source.resolve()
        return target


# ── Markup ─────────────────────────────────────────────────────────────


def wrap_html_with_style(fragment: str, font: str, font_size: int) -> str:
    """Wrap *fragment* in an HTML body carrying the font family and size.

    Word ignores ``<style>`` blocks in imported chunks, so the common block
    tags inside the fragment get the same inline style.
    """
    style = f"font-family: {html.escape(font, quote=True)}, sans-serif; font-size: {font_size}pt;"
    styled = fragment
    for tag in ("p", "div", "span", "li"):
        styled = styled.replace(f"<{tag}>", f"<{tag} style='{style}'>")
    return (
        "<html><head><meta charset='utf-8'></head>"
        f"<body style='{style}'>{styled}</body></html>"
    )


class AltChunkMarkupConverter:
    """Imports HTML fragments as ``w:altChunk`` parts.

    Word converts the chunk when the document is opened; this engine treats
    the resulting ``w:altChunk`` as opaque.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()

    def convert(
        self, document: Document, fragment: str, font: str, font_size: int
    ) -> list[etree._Element]:
        if not fragment or not fragment.strip():
            return [OxmlElement("w:p")]

        font = font or self._settings.markup_font
        font_size = font_size or self._settings.markup_size
        payload = wrap_html_with_style(fragment, font, font_size).encode("utf-8")

        package = document.part.package
        partname = package.next_partname("/word/afchunk%d.html")
        chunk_part = Part(partname, _HTML_CONTENT_TYPE, payload, package)
        rel_id = document.part.relate_to(chunk_part, RT.A_F_CHUNK)

        alt_chunk = OxmlElement("w:altChunk")
        alt_chunk.set(qn("r:id"), rel_id)
        logger.debug("Imported markup fragment as %s (%s)", partname, rel_id)
        return [alt_chunk]
