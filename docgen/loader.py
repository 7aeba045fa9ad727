"""Reads write requests from JSON or YAML files.

A request looks like::

    content_controls:
      - title: Summary
        force_clean: true
        blocks:
          - type: paragraph
            heading_level: 1
            text: Executive summary
          - type: list
            ordered: true
            items: [First point, {level: 1, text: Detail}]
          - type: table
            rows:
              - cells:
                  - {width: 30%, text: Name}
                  - {width: 70%, html: "<p>Value</p>"}
          - {type: picture, path: figures/chart.png, name: Figure 1}
          - {type: html, html: "<p>Imported text</p>"}

Paragraphs, list items and cells accept either ``text`` (a single plain
run) or ``runs`` (a list of run mappings).  JSON is a subset of YAML, so
both formats go through :func:`yaml.safe_load`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from docgen.errors import ModelError
from docgen.models import (
    Attachment,
    AttachmentKind,
    Block,
    Cell,
    ContentControl,
    DocumentModel,
    ListBlock,
    ListItem,
    MarkupFragment,
    Paragraph,
    Row,
    Run,
    RunKind,
    Shading,
    Table,
    TextStyle,
)
from docgen.settings import Settings

logger = logging.getLogger(__name__)

_SUPPORTED_SUFFIXES = (".json", ".yaml", ".yml")


def _require_mapping(value: Any, where: str) -> dict:
    if not isinstance(value, dict):
        raise ModelError(f"{where}: expected a mapping, got {type(value).__name__}")
    return value


def _require_list(value: Any, where: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ModelError(f"{where}: expected a list, got {type(value).__name__}")
    return value


def _require_int(value: Any, where: str) -> int:
    if isinstance(value, bool):
        raise ModelError(f"{where}: expected an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ModelError(f"{where}: expected an integer, got {value!r}") from exc


class ModelLoader:
    """Builds a :class:`DocumentModel` from a request file or mapping.

    Parameters
    ----------
    settings : Settings or None, optional
        Supplies the default font and size for runs that do not set them.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()

    # ── Public API ────────────────────────────────────────────────────

    def load(self, file_path: str | Path) -> DocumentModel:
        """Parse *file_path* into a :class:`DocumentModel`.

        Raises
        ------
        FileNotFoundError
            If *file_path* does not exist.
        ModelError
            If the file is not JSON/YAML or does not describe a request.
        """
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")

        if path.suffix.lower() not in _SUPPORTED_SUFFIXES:
            raise ModelError(f"Unsupported model file type (expected JSON or YAML): {path}")

        with open(path, "r", encoding="utf-8") as fh:
            try:
                data = yaml.safe_load(fh)
            except yaml.YAMLError as exc:
                raise ModelError(f"Could not parse {path}: {exc}") from exc

        model = self.from_dict(data)
        logger.info(
            "Loaded model from %s: %d content control(s)", path, len(model.content_controls)
        )
        return model

    def from_dict(self, data: Any) -> DocumentModel:
        data = _require_mapping(data, "model")
        controls = _require_list(data.get("content_controls"), "content_controls")
        return DocumentModel(
            content_controls=[
                self._content_control(item, f"content_controls[{i}]")
                for i, item in enumerate(controls)
            ]
        )

    # ── Structure ─────────────────────────────────────────────────────

    def _content_control(self, data: Any, where: str) -> ContentControl:
        data = _require_mapping(data, where)
        title = data.get("title")
        if not title:
            raise ModelError(f"{where}: missing 'title'")

        blocks: list[Block] = []
        for i, item in enumerate(_require_list(data.get("blocks"), f"{where}.blocks")):
            block = self._block(item, f"{where}.blocks[{i}]")
            if block is not None:
                blocks.append(block)

        return ContentControl(
            title=str(title),
            force_clean=bool(data.get("force_clean", False)),
            blocks=blocks,
        )

    def _block(self, data: Any, where: str) -> Block | None:
        data = _require_mapping(data, where)
        block_type = str(data.get("type", "")).lower()

        match block_type:
            case "paragraph":
                return self._paragraph(data, where)
            case "list":
                return ListBlock(
                    items=[
                        self._list_item(item, f"{where}.items[{i}]")
                        for i, item in enumerate(_require_list(data.get("items"), f"{where}.items"))
                    ],
                    is_ordered=bool(data.get("ordered", False)),
                )
            case "table":
                return self._table(data, where)
            case "file" | "picture":
                return self._attachment(data, where)
            case "html":
                return self._markup(data, where)
            case _:
                logger.warning("%s: unknown block type %r; skipping", where, block_type)
                return None

    def _paragraph(self, data: Any, where: str) -> Paragraph:
        if isinstance(data, str):
            return Paragraph(runs=[self._text_run(data)])
        data = _require_mapping(data, where)
        level = data.get("heading_level", 0)
        if not isinstance(level, int) or not 0 <= level <= 9:
            raise ModelError(f"{where}: heading_level must be an integer between 0 and 9")
        return Paragraph(heading_level=level, runs=self._runs(data, where))

    def _list_item(self, data: Any, where: str) -> ListItem:
        if isinstance(data, str):
            return ListItem(runs=[self._text_run(data)])
        data = _require_mapping(data, where)
        return ListItem(
            level=_require_int(data.get("level", 0), f"{where}.level"),
            runs=self._runs(data, where),
        )

    def _table(self, data: dict, where: str) -> Table:
        rows = []
        for r, row_data in enumerate(_require_list(data.get("rows"), f"{where}.rows")):
            row_where = f"{where}.rows[{r}]"
            row_data = _require_mapping(row_data, row_where)
            rows.append(
                Row(
                    cells=[
                        self._cell(cell, f"{row_where}.cells[{c}]")
                        for c, cell in enumerate(
                            _require_list(row_data.get("cells"), f"{row_where}.cells")
                        )
                    ],
                    merge_to_one_cell=bool(row_data.get("merge_to_one_cell", False)),
                    merge_span=_require_int(
                        row_data.get("merge_span", 1), f"{row_where}.merge_span"
                    ),
                )
            )
        return Table(
            rows=rows,
            repeat_header_row=bool(data.get("repeat_header_row", True)),
            insert_page_break_after=bool(data.get("page_break_after", False)),
        )

    def _cell(self, data: Any, where: str) -> Cell:
        if isinstance(data, str):
            return Cell(paragraphs=[Paragraph(runs=[self._text_run(data)])])
        data = _require_mapping(data, where)

        paragraphs = [
            self._paragraph(p, f"{where}.paragraphs[{i}]")
            for i, p in enumerate(_require_list(data.get("paragraphs"), f"{where}.paragraphs"))
        ]
        if "text" in data or "runs" in data:
            paragraphs.insert(0, Paragraph(runs=self._runs(data, where)))

        shading = None
        if data.get("shading") is not None:
            shading_data = _require_mapping(data["shading"], f"{where}.shading")
            shading = Shading(
                color=str(shading_data.get("color", "auto")),
                fill=str(shading_data.get("fill", "auto")),
                theme_fill=shading_data.get("theme_fill"),
                theme_fill_shade=shading_data.get("theme_fill_shade"),
            )

        markup = self._markup(data, where) if data.get("html") is not None else None

        return Cell(
            width=str(data.get("width") or ""),
            shading=shading,
            paragraphs=paragraphs,
            attachments=[
                self._attachment(a, f"{where}.attachments[{i}]")
                for i, a in enumerate(_require_list(data.get("attachments"), f"{where}.attachments"))
            ],
            markup=markup,
        )

    def _attachment(self, data: Any, where: str) -> Attachment:
        data = _require_mapping(data, where)
        path = data.get("path")
        if not path:
            raise ModelError(f"{where}: missing 'path'")
        try:
            kind = AttachmentKind(str(data.get("type", "file")).lower())
        except ValueError as exc:
            raise ModelError(f"{where}: unknown attachment type {data.get('type')!r}") from exc
        return Attachment(
            path=str(path),
            attachment_kind=kind,
            name=str(data.get("name", "")),
            flattened=bool(data.get("flattened", False)),
        )

    def _markup(self, data: dict, where: str) -> MarkupFragment:
        return MarkupFragment(
            raw=str(data.get("html") or ""),
            font=str(data.get("font") or self._settings.markup_font),
            font_size=_require_int(
                data.get("font_size") or self._settings.markup_size, f"{where}.font_size"
            ),
        )

    # ── Runs ──────────────────────────────────────────────────────────

    def _runs(self, data: dict, where: str) -> list[Run]:
        if "runs" in data:
            return [
                self._run(item, f"{where}.runs[{i}]")
                for i, item in enumerate(_require_list(data["runs"], f"{where}.runs"))
            ]
        text = data.get("text")
        return [self._text_run(str(text))] if text is not None else []

    def _text_run(self, text: str) -> Run:
        return Run(
            value=text,
            style=TextStyle(font=self._settings.default_font, size=self._settings.default_size),
        )

    def _run(self, data: Any, where: str) -> Run:
        if isinstance(data, str):
            return self._text_run(data)
        data = _require_mapping(data, where)
        try:
            kind = RunKind(str(data.get("type", "text")).lower())
        except ValueError as exc:
            raise ModelError(f"{where}: unknown run type {data.get('type')!r}") from exc

        style = TextStyle(
            font=str(data.get("font") or self._settings.default_font),
            size=_require_int(data.get("size", self._settings.default_size), f"{where}.size"),
            bold=bool(data.get("bold", False)),
            italic=bool(data.get("italic", False)),
            underline=bool(data.get("underline", False)),
            font_color=data.get("color"),
            hyperlink_uri=data.get("hyperlink"),
            insert_line_break_before=bool(data.get("line_break_before", False)),
            preserve_space=bool(data.get("preserve_space", False)),
        )
        return Run(
            kind=kind,
            value=str(data.get("text", "")),
            image_source=data.get("image"),
            style=style,
        )
