"""Writes a :class:`~docgen.models.DocumentModel` into a template document.

Usage::

    from docgen.writer import DocumentWriter

    writer = DocumentWriter()
    result = writer.write("templates/report.docx", model, "output/report.docx")

The write runs in two passes.  The first records, for every content control
named in the model, whether it sits under a built-in or a custom heading.
The second fills each content control in turn: clear it, insert its blocks,
then unwrap it.  A content control that fails is logged and left in place;
the remaining ones are still written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from docx import Document as open_docx
from docx.oxml import OxmlElement

from docgen.collaborators import (
    AltChunkMarkupConverter,
    AttachmentComposer,
    DocxAttachmentComposer,
    DocxHyperlinkAllocator,
    DocxPictureComposer,
    HyperlinkAllocator,
    MarkupConverter,
    PictureComposer,
)
from docgen.errors import SlotNotFound
from docgen.models import Block, BlockKind, ContentControl, DocumentModel, ListBlock
from docgen.numbering import NumberingAllocator
from docgen.runs import RunComposer
from docgen.settings import Settings
from docgen.slots import SlotLocator
from docgen.tables import TableLayoutEngine
from docgen.validator import ElementValidator, StructuralValidator

if TYPE_CHECKING:
    from docx.document import Document

logger = logging.getLogger(__name__)


@dataclass
class WriteResult:
    """Outcome of writing a model into one document."""
    written: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    output_path: str | None = None

    @property
    def ok(self) -> bool:
        return not self.failed


class DocumentWriter:
    """Fills the content controls of a template.

    Parameters
    ----------
    settings : Settings or None, optional
        Engine configuration.  A default :class:`Settings` is loaded when
        omitted.
    validator : ElementValidator or None, optional
        Checks content before a content control is unwrapped.
    pictures, attachments, markup, hyperlinks : optional
        Document-level collaborators.  Default to the python-docx based
        implementations in :mod:`docgen.collaborators`.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        validator: ElementValidator | None = None,
        pictures: PictureComposer | None = None,
        attachments: AttachmentComposer | None = None,
        markup: MarkupConverter | None = None,
        hyperlinks: HyperlinkAllocator | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._validator = validator or StructuralValidator()

        hyperlinks = hyperlinks or DocxHyperlinkAllocator()
        pictures = pictures or DocxPictureComposer()
        self._markup = markup or AltChunkMarkupConverter(self._settings)
        self._attachments = attachments or DocxAttachmentComposer(hyperlinks)

        self._runs = RunComposer(pictures=pictures, hyperlinks=hyperlinks, settings=self._settings)
        self._tables = TableLayoutEngine(
            runs=self._runs,
            pictures=pictures,
            attachments=self._attachments,
            markup=self._markup,
            settings=self._settings,
        )

        logger.debug("DocumentWriter initialised")

    # ── Public API ────────────────────────────────────────────────────

    def write(
        self,
        template_path: str | Path,
        model: DocumentModel,
        output_path: str | Path,
    ) -> WriteResult:
        """Open *template_path*, write *model* into it and save to *output_path*.

        Returns
        -------
        WriteResult
            Per content control outcome; ``output_path`` holds the absolute
            path of the saved document.  Attached files are copied into an
            ``attachments`` folder beside it.

        Raises
        ------
        FileNotFoundError
            If the template does not exist.
        ValueError
            If the template is not a ``.docx`` file or cannot be opened.
        """
        template = Path(template_path)
        if not template.is_file():
            raise FileNotFoundError(f"Template not found: {template}")

        if template.suffix.lower() != ".docx":
            raise ValueError(f"Unsupported template type (expected .docx): {template}")

        try:
            document = open_docx(str(template))
        except Exception as exc:
            raise ValueError(
                f"Failed to open template (file may be corrupted): {exc}"
            ) from exc

        logger.info("Writing %d content control(s) into %s", len(model.content_controls), template)
        result = self.write_document(document, model)

        out = Path(output_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        document.save(str(out))
        if isinstance(self._attachments, DocxAttachmentComposer):
            self._attachments.copy_to(out.parent)

        result.output_path = str(out.resolve())
        logger.info(
            "Document saved to %s (%d written, %d failed)",
            result.output_path, len(result.written), len(result.failed),
        )
        return result

    def write_document(self, document: Document, model: DocumentModel) -> WriteResult:
        """Write *model* into an already open *document*."""
        locator = SlotLocator(document, self._validator, self._settings)
        result = WriteResult()

        # -- 1. Heading context, recorded before any slot moves ---------------
        statuses: dict[str, bool] = {}
        for control in model.content_controls:
            try:
                slot = locator.find(control.title)
            except SlotNotFound:
                logger.warning("Content control '%s' not found in template", control.title)
                continue
            statuses[control.title] = locator.is_under_standard_heading(slot, statuses)

        # -- 2. Fill and unwrap ------------------------------------------------
        for control in model.content_controls:
            try:
                self._write_control(
                    document, locator, control, statuses.get(control.title, True)
                )
            except Exception as exc:
                logger.exception("Failed to write content control '%s'", control.title)
                result.failed[control.title] = str(exc)
            else:
                result.written.append(control.title)

        return result

    # ── Content controls ──────────────────────────────────────────────

    def _write_control(
        self,
        document: Document,
        locator: SlotLocator,
        control: ContentControl,
        under_standard_heading: bool,
    ) -> None:
        title = control.title
        logger.debug(
            "Writing content control '%s': %d block(s), standard heading=%s",
            title, len(control.blocks), under_standard_heading,
        )
        locator.clear(title, control.force_clean)
        for block in control.blocks:
            self._insert_block(document, locator, title, block, under_standard_heading)
        locator.remove(title)

    def _insert_block(
        self,
        document: Document,
        locator: SlotLocator,
        title: str,
        block: Block,
        under_standard_heading: bool,
    ) -> None:
        """Route a block to its composer and append the result to slot *title*."""
        match block.kind:
            case BlockKind.PARAGRAPH:
                locator.append_to(
                    title,
                    self._runs.compose_full_paragraph(document, block, under_standard_heading),
                )
            case BlockKind.LIST:
                self._insert_list(document, locator, title, block)
            case BlockKind.TABLE:
                self._tables.insert(document, locator, title, block)
            case BlockKind.ATTACHMENT:
                locator.append_to(title, *self._tables.compose_attachment(document, block))
            case BlockKind.MARKUP:
                nodes = self._markup.convert(document, block.raw, block.font, block.font_size)
                locator.append_to(title, *nodes)
            case _:
                logger.warning("Unsupported block kind: %s", block.kind)

    def _insert_list(
        self, document: Document, locator: SlotLocator, title: str, block: ListBlock
    ) -> None:
        if not block.items:
            logger.warning("Skipping empty list in content control '%s'", title)
            return

        allocation = NumberingAllocator(document).allocate(block)
        paragraphs = [
            self._runs.append_runs(document, allocation.paragraph_for(item), item.runs)
            for item in block.items
        ]
        locator.append_to(title, *paragraphs, OxmlElement("w:p"))
