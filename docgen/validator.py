"""Structural checks for elements about to be promoted out of a slot.

:class:`StructuralValidator` covers the part of the WordprocessingML schema
this engine produces: paragraphs, runs, hyperlinks and tables.  It is not a
schema validator; anything outside the main ``w:`` namespace is accepted as
is, and ``w:altChunk`` (imported foreign content) is never inspected.
"""

from __future__ import annotations

import logging
from typing import Protocol

from docx.oxml.ns import qn
from lxml import etree

logger = logging.getLogger(__name__)

_W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"

OPAQUE_TAGS = frozenset({qn("w:altChunk")})

_BLOCK_CHILDREN = {
    "p", "tbl", "sdt", "altChunk", "bookmarkStart", "bookmarkEnd",
    "customXml", "permStart", "permEnd", "proofErr", "ins", "del",
    "commentRangeStart", "commentRangeEnd",
}

_ALLOWED_CHILDREN: dict[str, set[str]] = {
    "p": {
        "pPr", "r", "hyperlink", "proofErr", "bookmarkStart", "bookmarkEnd",
        "sdt", "fldSimple", "ins", "del", "smartTag", "customXml",
        "commentRangeStart", "commentRangeEnd", "permStart", "permEnd",
        "moveFrom", "moveTo",
    },
    "r": {
        "rPr", "t", "br", "tab", "drawing", "object", "pict", "sym",
        "fldChar", "instrText", "lastRenderedPageBreak", "cr", "ptab",
        "noBreakHyphen", "softHyphen", "delText", "footnoteReference",
        "endnoteReference", "commentReference", "separator",
        "continuationSeparator",
    },
    "hyperlink": {"r", "proofErr", "bookmarkStart", "bookmarkEnd", "fldSimple"},
    "tbl": {"tblPr", "tblGrid", "tr", "bookmarkStart", "bookmarkEnd", "sdt", "customXml"},
    "tr": {"trPr", "tblPrEx", "tc", "bookmarkStart", "bookmarkEnd", "sdt", "customXml"},
    "tc": {"tcPr"} | _BLOCK_CHILDREN,
    "sdt": {"sdtPr", "sdtEndPr", "sdtContent"},
    "sdtContent": _BLOCK_CHILDREN | {"r", "hyperlink", "tc", "tr"},
}

# Properties elements that must come first when present.
_LEADING_PROPERTIES = {
    "p": "pPr", "r": "rPr", "tbl": "tblPr", "tr": "trPr", "tc": "tcPr",
}


class ElementValidator(Protocol):
    """Anything able to check a single top-level element."""

    def validate_element(self, element: etree._Element) -> list[str]: ...


def _local_name(element: etree._Element) -> str:
    return etree.QName(element).localname


def _is_main_namespace(element: etree._Element) -> bool:
    return etree.QName(element).namespace == _W_NS


class StructuralValidator:
    """Report structural problems in emitted WordprocessingML.

    Usage::

        errors = StructuralValidator().validate_element(paragraph)
    """

    def validate_element(self, element: etree._Element) -> list[str]:
        """Return one message per problem found in *element* and its subtree.

        An empty list means the element is acceptable.  Opaque foreign
        content returns an empty list without being looked at.
        """
        if element is None:
            logger.error("Asked to validate a missing element")
            return []
        if not isinstance(element.tag, str) or element.tag in OPAQUE_TAGS:
            return []

        errors: list[str] = []
        self._check(element, _local_name(element), errors)
        return errors

    def _check(self, element: etree._Element, path: str, errors: list[str]) -> None:
        if not _is_main_namespace(element):
            return

        name = _local_name(element)
        allowed = _ALLOWED_CHILDREN.get(name)
        children = [c for c in element if isinstance(c.tag, str)]

        leading = _LEADING_PROPERTIES.get(name)
        if leading:
            for index, child in enumerate(children):
                if _is_main_namespace(child) and _local_name(child) == leading and index != 0:
                    self._report(errors, name, f"{leading} must be the first child", path)

        for specific in self._specific_problems(name, children):
            self._report(errors, name, specific, path)

        for index, child in enumerate(children):
            if child.tag in OPAQUE_TAGS:
                continue
            child_name = _local_name(child)
            child_path = f"{path}/{child_name}[{index + 1}]"
            if allowed is not None and _is_main_namespace(child) and child_name not in allowed:
                self._report(
                    errors, name, f"unexpected child element {child_name}", child_path
                )
                continue
            self._check(child, child_path, errors)

    @staticmethod
    def _specific_problems(name: str, children: list[etree._Element]) -> list[str]:
        names = [_local_name(c) for c in children if _is_main_namespace(c)]
        problems: list[str] = []
        if name == "tbl":
            if "tblPr" not in names:
                problems.append("table has no tblPr")
            if "tblGrid" not in names:
                problems.append("table has no tblGrid")
            if "tr" not in names:
                problems.append("table has no rows")
        elif name == "tr" and "tc" not in names:
            problems.append("row has no cells")
        elif name == "tc" and "p" not in names:
            problems.append("cell must contain at least one paragraph")
        return problems

    @staticmethod
    def _report(errors: list[str], name: str, description: str, path: str) -> None:
        errors.append(f"Element {name} Error: {description} at {path}")
