"""Run and paragraph composition.

Turns :class:`~docgen.models.Run` and :class:`~docgen.models.Paragraph`
descriptions into detached ``w:r`` / ``w:p`` elements.  Nothing here inserts
into the document body; callers place the returned elements into a slot or a
table cell.

Run styling is applied in a fixed precedence:

1. a hyperlink URI forces the ``Hyperlink`` character style, the themed
   hyperlink colour and a single underline, and the explicit font is
   dropped;
2. otherwise the font is applied to the ASCII, high-ANSI and complex-script
   slots;
3. bold, italic, underline (only without a URI), size and colour follow.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from lxml import etree

from docgen.collaborators import (
    DocxHyperlinkAllocator,
    DocxPictureComposer,
    HyperlinkAllocator,
    PictureComposer,
)
from docgen.errors import InvalidUri
from docgen.models import Paragraph, Run, RunKind
from docgen.settings import Settings

if TYPE_CHECKING:
    from docx.document import Document

logger = logging.getLogger(__name__)

MAX_LIST_LEVEL = 8

# Schema order of the run properties emitted here.
_RPR_ORDER = ("rStyle", "rFonts", "b", "bCs", "i", "iCs", "color", "sz", "szCs", "u")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _element(tag: str, **attrs: str) -> etree._Element:
    """Create a ``w:`` element with ``w:``-namespaced attributes."""
    el = OxmlElement(tag)
    for key, value in attrs.items():
        el.set(qn(f"w:{key}"), str(value))
    return el


def _ordered_rpr(properties: list[etree._Element]) -> etree._Element:
    r_pr = OxmlElement("w:rPr")
    rank = {name: index for index, name in enumerate(_RPR_ORDER)}
    for prop in sorted(properties, key=lambda p: rank[etree.QName(p).localname]):
        r_pr.append(prop)
    return r_pr


def clamp_list_level(level: int, multi_level: bool) -> int:
    """Clamp *level* to ``0..8``; single-level lists always use 0."""
    if not multi_level:
        return 0
    return max(0, min(level, MAX_LIST_LEVEL))


# ---------------------------------------------------------------------------
# RunComposer
# ---------------------------------------------------------------------------


class RunComposer:
    """Builds styled runs and the paragraphs that hold them.

    Parameters
    ----------
    pictures : PictureComposer or None, optional
        Used for image runs.  Defaults to :class:`DocxPictureComposer`.
    hyperlinks : HyperlinkAllocator or None, optional
        Used by :meth:`append_runs` to wrap runs that carry a URI.
    settings : Settings or None, optional
        Supplies the colour palette.
    """

    def __init__(
        self,
        pictures: PictureComposer | None = None,
        hyperlinks: HyperlinkAllocator | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._pictures = pictures or DocxPictureComposer()
        self._hyperlinks = hyperlinks or DocxHyperlinkAllocator()
        self._settings = settings or Settings()

    # ── Runs ──────────────────────────────────────────────────────────

    def compose_run(self, document: Document, run: Run) -> etree._Element:
        """Return a ``w:r`` element for *run*."""
        r = OxmlElement("w:r")

        match run.kind:
            case RunKind.BREAK:
                r.append(OxmlElement("w:br"))
            case RunKind.IMAGE:
                if run.image_source:
                    r.append(self._pictures.create_drawing(document, run.image_source))
                else:
                    logger.debug("Image run without a source; emitting an empty run")
            case RunKind.TEXT:
                self._compose_text(r, run)
            case _:
                logger.warning("Unsupported run kind: %s", run.kind)

        return r

    def _compose_text(self, r: etree._Element, run: Run) -> None:
        style = run.style
        props: list[etree._Element] = []

        color = self._resolve_color(style.font_color)

        if style.hyperlink_uri:
            props.append(_element("w:rStyle", val="Hyperlink"))
            if color is None:
                props.append(_element("w:color", val="auto", themeColor="hyperlink"))
            props.append(_element("w:u", val="single"))
        else:
            props.append(
                _element("w:rFonts", ascii=style.font, hAnsi=style.font, cs=style.font)
            )

        if style.bold:
            props.append(OxmlElement("w:b"))
            props.append(OxmlElement("w:bCs"))

        if style.italic:
            props.append(OxmlElement("w:i"))
            props.append(OxmlElement("w:iCs"))

        if style.underline and not style.hyperlink_uri:
            props.append(_element("w:u", val="single"))

        if style.size:
            props.append(_element("w:sz", val=str(style.size * 2)))
            props.append(_element("w:szCs", val=str(style.size * 2)))

        if color is not None:
            props.append(_element("w:color", val=color))

        r.append(_ordered_rpr(props))

        if style.insert_line_break_before:
            r.append(OxmlElement("w:br"))

        if run.value:
            text = OxmlElement("w:t")
            text.text = run.value
            if style.preserve_space:
                text.set(qn("xml:space"), "preserve")
            r.append(text)

    def _resolve_color(self, name: str | None) -> str | None:
        if not name:
            return None
        try:
            return self._settings.resolve_color(name)
        except KeyError:
            logger.error("Invalid color value %r; run left uncolored", name)
            return None

    def append_runs(
        self, document: Document, paragraph: etree._Element, runs: Iterable[Run]
    ) -> etree._Element:
        """Compose *runs* into *paragraph*, wrapping linked runs in hyperlinks.

        A URI the allocator rejects is logged and the run is appended
        without a link.
        """
        for run in runs:
            element = self.compose_run(document, run)
            uri = run.style.hyperlink_uri if run.kind is RunKind.TEXT else None
            if uri:
                try:
                    rel_id = self._hyperlinks.add_relationship(document, uri)
                    element = self._hyperlinks.wrap_as_hyperlink(rel_id, element)
                except InvalidUri as exc:
                    logger.error("%s is an invalid uri: %s", uri, exc)
            paragraph.append(element)
        return paragraph

    # ── Paragraphs ────────────────────────────────────────────────────

    @staticmethod
    def compose_paragraph(
        paragraph: Paragraph, under_standard_heading: bool = True
    ) -> etree._Element:
        """Return an empty ``w:p`` carrying the heading style, if any.

        Under a custom heading the requested level is shifted up by one,
        never below ``Heading1``.
        """
        p = OxmlElement("w:p")
        if paragraph.heading_level == 0:
            return p

        level = paragraph.heading_level
        if not under_standard_heading:
            level = max(level - 1, 1)

        p_pr = OxmlElement("w:pPr")
        p_pr.append(_element("w:pStyle", val=f"Heading{level}"))
        p.append(p_pr)
        return p

    def compose_full_paragraph(
        self,
        document: Document,
        paragraph: Paragraph,
        under_standard_heading: bool = True,
    ) -> etree._Element:
        """Compose *paragraph* together with all of its runs."""
        p = self.compose_paragraph(paragraph, under_standard_heading)
        return self.append_runs(document, p, paragraph.runs)

    @staticmethod
    def compose_list_item_paragraph(
        level: int, is_ordered: bool, numbering_id: int, multi_level: bool
    ) -> etree._Element:
        """Return a ``ListParagraph`` paragraph referencing *numbering_id*."""
        clamped = clamp_list_level(level, multi_level)
        if clamped != level:
            logger.debug("List level %d clamped to %d", level, clamped)

        num_pr = OxmlElement("w:numPr")
        num_pr.append(_element("w:ilvl", val=str(clamped)))
        num_pr.append(_element("w:numId", val=str(numbering_id)))

        p_pr = OxmlElement("w:pPr")
        p_pr.append(_element("w:pStyle", val="ListParagraph"))
        p_pr.append(num_pr)

        p = OxmlElement("w:p")
        p.append(p_pr)
        logger.debug(
            "List item paragraph: %s, level %d, numId %d",
            "ordered" if is_ordered else "bulleted", clamped, numbering_id,
        )
        return p

    @staticmethod
    def compose_caption(text: str) -> etree._Element:
        """Return a left-justified ``Caption`` paragraph holding *text*."""
        p_pr = OxmlElement("w:pPr")
        p_pr.append(_element("w:pStyle", val="Caption"))
        p_pr.append(_element("w:jc", val="left"))

        run = OxmlElement("w:r")
        t = OxmlElement("w:t")
        t.text = text
        run.append(t)

        p = OxmlElement("w:p")
        p.append(p_pr)
        p.append(_element("w:proofErr", type="spellStart"))
        p.append(run)
        p.append(_element("w:proofErr", type="spellEnd"))
        return p

    def compose_diagnostic(self, message: str) -> etree._Element:
        """Return a paragraph showing *message* in bold diagnostic colour."""
        run = OxmlElement("w:r")
        run.append(
            _ordered_rpr([
                OxmlElement("w:b"),
                _element("w:color", val=self._settings.diagnostic_color),
            ])
        )
        t = OxmlElement("w:t")
        t.text = message
        run.append(t)

        p = OxmlElement("w:p")
        p.append(run)
        return p

    @staticmethod
    def compose_separator(page_break: bool = False) -> etree._Element:
        """Return the paragraph placed after a block; optionally a page break."""
        run = OxmlElement("w:r")
        if page_break:
            run.append(_element("w:br", type="page"))
        p = OxmlElement("w:p")
        p.append(run)
        return p
