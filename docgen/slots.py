"""Locating and manipulating content controls (slots) in a template.

A slot is a block-level ``w:sdt`` whose ``w:sdtPr/w:alias`` carries a title.
Generated content is appended to the slot's ``w:sdtContent`` and, once a
slot is complete, :meth:`SlotLocator.remove` promotes that content to the
slot's position and deletes the wrapper.

Slots are always looked up again by title before they are mutated: earlier
insertions move siblings around but never change titles.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from lxml import etree

from docgen.errors import InvalidInnerContent, SlotNotFound
from docgen.settings import Settings
from docgen.validator import ElementValidator, StructuralValidator

if TYPE_CHECKING:
    from docx.document import Document

logger = logging.getLogger(__name__)


def _alias_of(sdt: etree._Element) -> Optional[str]:
    alias = sdt.find(f"{qn('w:sdtPr')}/{qn('w:alias')}")
    if alias is None:
        return None
    return alias.get(qn("w:val"))


@dataclass
class Slot:
    """A located content control."""
    title: str
    element: etree._Element

    @property
    def content(self) -> Optional[etree._Element]:
        """The first ``w:sdtContent`` child, or ``None``."""
        return self.element.find(qn("w:sdtContent"))

    @property
    def contents(self) -> list[etree._Element]:
        return self.element.findall(qn("w:sdtContent"))

    @property
    def text(self) -> str:
        """All text of the slot, flattened."""
        return "".join(t.text or "" for t in self.element.iter(qn("w:t")))


class SlotLocator:
    """Finds, clears, fills and unwraps slots of one document.

    Parameters
    ----------
    document : docx.document.Document
        The open template being edited.
    validator : ElementValidator or None, optional
        Checks promoted content in :meth:`remove`.  Defaults to
        :class:`StructuralValidator`.
    settings : Settings or None, optional
        Supplies the empty-placeholder text used by :meth:`clear`.
    """

    def __init__(
        self,
        document: Document,
        validator: ElementValidator | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._document = document
        self._validator = validator or StructuralValidator()
        self._settings = settings or Settings()

    @property
    def document(self) -> Document:
        return self._document

    # ── Lookup ─────────────────────────────────────────────────────

    def _block_slots(self):
        for sdt in self._document.element.body.iter(qn("w:sdt")):
            parent = sdt.getparent()
            if parent is not None and parent.tag == qn("w:p"):
                continue
            yield sdt

    def find(self, title: str) -> Slot:
        """Return the first slot whose alias equals *title*.

        Raises
        ------
        SlotNotFound
            If no slot carries that alias.
        """
        for sdt in self._block_slots():
            if _alias_of(sdt) == title:
                return Slot(title=title, element=sdt)
        raise SlotNotFound(title)

    def titles(self) -> list[str]:
        """Aliases of all block-level slots in document order."""
        return [a for a in (_alias_of(s) for s in self._block_slots()) if a]

    # ── Mutation ───────────────────────────────────────────────────

    def clear(self, title: str, force: bool = False) -> None:
        """Drop the slot's content if it only shows the placeholder, or if *force*."""
        slot = self.find(title)
        text = slot.text
        if (text and text == self._settings.empty_placeholder) or force:
            for content in slot.contents:
                slot.element.remove(content)
            logger.debug("Cleared content control '%s' (force=%s)", title, force)

    def append(self, slot: Slot, *blocks: etree._Element) -> etree._Element:
        """Append *blocks* to the slot's content wrapper, creating it if needed."""
        content = slot.content
        if content is None:
            content = OxmlElement("w:sdtContent")
            slot.element.append(content)
        for block in blocks:
            content.append(block)
        return content

    def append_to(self, title: str, *blocks: etree._Element) -> etree._Element:
        """Locate the slot named *title* and append *blocks* to it."""
        return self.append(self.find(title), *blocks)

    def remove(self, title: str) -> None:
        """Replace the slot by its own content.

        Every top-level element inside the slot is validated first.  If any
        problem is reported nothing is changed and :class:`InvalidInnerContent`
        is raised with all the messages.
        """
        slot = self.find(title)
        logger.info("Removing content control: %s", title)

        inner = [
            element
            for content in slot.contents
            for element in content
            if isinstance(element.tag, str)
        ]

        errors: list[str] = []
        for element in inner:
            errors.extend(self._validator.validate_element(element))

        if errors:
            logger.error("\n".join(errors))
            raise InvalidInnerContent(title, errors)

        for element in inner:
            slot.element.addprevious(copy.deepcopy(element))
        slot.element.getparent().remove(slot.element)
        logger.info("Content control removed: %s", title)

    # ── Heading context ────────────────────────────────────────────

    def is_under_standard_heading(
        self,
        slot: Slot,
        known: dict[str, bool] | None = None,
    ) -> bool:
        """Tell whether *slot* sits under a built-in heading.

        Walks backwards through the body.  A preceding slot whose status is
        in *known* passes its status on; otherwise the nearest heading
        paragraph decides, and only a heading style flagged as custom yields
        ``False``.  No heading at all counts as standard.
        """
        known = known or {}
        body = self._document.element.body
        ordered = list(body.iter())
        try:
            position = ordered.index(slot.element)
        except ValueError:
            return True

        for element in reversed(ordered[:position]):
            if element.tag == qn("w:sdt") and element not in slot.element.iterancestors():
                previous = _alias_of(element)
                if previous and previous in known:
                    logger.debug(
                        "Content control %s follows %s, inheriting status %s",
                        slot.title, previous, known[previous],
                    )
                    return known[previous]
            if element.tag == qn("w:p"):
                verdict = self._heading_verdict(element)
                if verdict is not None:
                    return verdict
        return True

    def _heading_verdict(self, paragraph: etree._Element) -> Optional[bool]:
        style_el = paragraph.find(f"{qn('w:pPr')}/{qn('w:pStyle')}")
        if style_el is None:
            return None
        style_id = style_el.get(qn("w:val")) or ""

        style = self._style_element(style_id)
        if style is None:
            return None

        based_on = style.find(qn("w:basedOn"))
        based_on_id = based_on.get(qn("w:val")) if based_on is not None else ""
        if not (style_id.startswith("Heading") or (based_on_id or "").startswith("Heading")):
            return None

        return style.get(qn("w:customStyle")) not in ("1", "true")

    def _style_element(self, style_id: str) -> Optional[etree._Element]:
        styles = self._document.styles.element
        for style in styles.iter(qn("w:style")):
            if style.get(qn("w:styleId")) == style_id:
                return style
        return None
