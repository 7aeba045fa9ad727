"""Numbering definitions for generated lists.

Every list block gets its own abstract definition and numbering instance so
that it always starts counting at 1 and never continues an unrelated list.
Identifiers are derived from the numbering part each time a list is
allocated; nothing is cached between calls, so allocations against one
document must be made one after the other.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING

from docx.opc.constants import CONTENT_TYPE as CT
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from docx.opc.packuri import PackURI
from docx.oxml import OxmlElement, parse_xml
from docx.oxml.ns import nsdecls, qn
from docx.parts.numbering import NumberingPart
from lxml import etree

from docgen.models import ListBlock, ListItem
from docgen.runs import MAX_LIST_LEVEL, RunComposer

if TYPE_CHECKING:
    from docx.document import Document

logger = logging.getLogger(__name__)

ORDERED_FORMATS = ("decimal", "lowerLetter", "lowerRoman")

# (glyph, font) per level, cycling
BULLETS = (("·", "Symbol"), ("o", "Courier New"), ("§", "Wingdings"))

LEVEL_INDENT = 720
HANGING_INDENT = 360


def _w(tag: str, **attrs) -> etree._Element:
    el = OxmlElement(tag)
    for key, value in attrs.items():
        el.set(qn(f"w:{key}"), str(value))
    return el


def _int_attr(element: etree._Element, name: str) -> int | None:
    value = element.get(qn(name))
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def next_ids(numbering: etree._Element) -> tuple[int, int]:
    """Return the next free ``(abstractNumId, numId)`` pair for *numbering*.

    The two counters are independent: each is one above the highest id in
    use, or 1 when there is none.
    """
    abstract_ids = [
        i for i in (_int_attr(a, "w:abstractNumId") for a in numbering.findall(qn("w:abstractNum")))
        if i is not None
    ]
    num_ids = [
        i for i in (_int_attr(n, "w:numId") for n in numbering.findall(qn("w:num")))
        if i is not None
    ]
    return max(abstract_ids, default=0) + 1, max(num_ids, default=0) + 1


def numbering_element(document: Document) -> etree._Element:
    """Return the ``w:numbering`` root of *document*, creating the part if needed."""
    try:
        return document.part.numbering_part.element
    except NotImplementedError:
        # python-docx cannot create a numbering part on its own
        package = document.part.package
        part = NumberingPart(
            PackURI("/word/numbering.xml"),
            CT.WML_NUMBERING,
            parse_xml(f"<w:numbering {nsdecls('w')}/>"),
            package,
        )
        document.part.relate_to(part, RT.NUMBERING)
        logger.debug("Created numbering part for document")
        return part.element


# ── Definition builders ───────────────────────────────────────────────


def _discriminator() -> str:
    return secrets.token_hex(4).upper()


def build_level(level: int, is_ordered: bool) -> etree._Element:
    """Build the ``w:lvl`` definition for nesting *level*."""
    lvl = _w("w:lvl", ilvl=level)
    lvl.append(_w("w:start", val=1))

    if is_ordered:
        lvl.append(_w("w:numFmt", val=ORDERED_FORMATS[level % len(ORDERED_FORMATS)]))
        text = "".join(f"%{i}." for i in range(1, level + 2))
        lvl.append(_w("w:lvlText", val=text))
    else:
        glyph, font = BULLETS[level % len(BULLETS)]
        lvl.append(_w("w:numFmt", val="bullet"))
        lvl.append(_w("w:lvlText", val=glyph))

    lvl.append(_w("w:lvlJc", val="left"))

    p_pr = OxmlElement("w:pPr")
    p_pr.append(_w("w:ind", left=LEVEL_INDENT * (level + 1), hanging=HANGING_INDENT))
    lvl.append(p_pr)

    if not is_ordered:
        r_pr = OxmlElement("w:rPr")
        r_pr.append(_w("w:rFonts", ascii=font, hAnsi=font, hint="default"))
        lvl.append(r_pr)
    return lvl


def build_abstract_num(abstract_id: int, multi_level: bool, is_ordered: bool) -> etree._Element:
    abstract = _w("w:abstractNum", abstractNumId=abstract_id)
    abstract.append(_w("w:nsid", val=_discriminator()))
    abstract.append(
        _w("w:multiLevelType", val="hybridMultilevel" if multi_level else "singleLevel")
    )
    abstract.append(_w("w:tmpl", val=_discriminator()))

    top = MAX_LIST_LEVEL if multi_level else 0
    for level in range(top + 1):
        abstract.append(build_level(level, is_ordered))
    return abstract


def build_num(num_id: int, abstract_id: int) -> etree._Element:
    num = _w("w:num", numId=num_id)
    num.append(_w("w:abstractNumId", val=abstract_id))
    override = _w("w:lvlOverride", ilvl=0)
    override.append(_w("w:startOverride", val=1))
    num.append(override)
    return num


# ── Allocation ────────────────────────────────────────────────────────


@dataclass
class NumberingAllocation:
    """A freshly registered numbering instance for one list block."""
    num_id: int
    abstract_id: int
    multi_level: bool
    is_ordered: bool

    def paragraph_for(self, item: ListItem) -> etree._Element:
        """Return the list paragraph for *item*, without its runs."""
        return RunComposer.compose_list_item_paragraph(
            item.level, self.is_ordered, self.num_id, self.multi_level
        )


class NumberingAllocator:
    """Registers numbering definitions in a document's numbering part."""

    def __init__(self, document: Document) -> None:
        self._document = document

    def allocate(self, block: ListBlock) -> NumberingAllocation:
        """Add an abstract definition and an instance for *block*.

        A list with a single item is always single-level.
        """
        numbering = numbering_element(self._document)
        multi_level = len(block.items) > 1
        abstract_id, num_id = next_ids(numbering)

        abstract = build_abstract_num(abstract_id, multi_level, block.is_ordered)
        existing_abstracts = numbering.findall(qn("w:abstractNum"))
        if existing_abstracts:
            existing_abstracts[-1].addnext(abstract)
        else:
            numbering.insert(0, abstract)

        num = build_num(num_id, abstract_id)
        existing_nums = numbering.findall(qn("w:num"))
        if existing_nums:
            existing_nums[-1].addnext(num)
        else:
            cleanup = numbering.find(qn("w:numIdMacAtCleanup"))
            if cleanup is not None:
                cleanup.addprevious(num)
            else:
                numbering.append(num)

        logger.debug(
            "Allocated numbering %d (abstract %d, %s, %s)",
            num_id, abstract_id,
            "ordered" if block.is_ordered else "bulleted",
            "multi-level" if multi_level else "single-level",
        )
        return NumberingAllocation(
            num_id=num_id,
            abstract_id=abstract_id,
            multi_level=multi_level,
            is_ordered=block.is_ordered,
        )
