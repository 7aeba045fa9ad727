"""Exception types raised by the document assembly engine."""

from __future__ import annotations


class DocGenError(Exception):
    """Base class for every error raised by :mod:`docgen`."""


class SlotNotFound(DocGenError, LookupError):
    """No content control carries the requested alias."""

    def __init__(self, title: str) -> None:
        super().__init__(f"Did not find a content control with the title {title!r}")
        self.title = title


class InvalidInnerContent(DocGenError):
    """A content control holds elements that failed validation.

    All validation messages collected for the control are kept on
    :attr:`errors`; the message joins them one per line.
    """

    def __init__(self, title: str, errors: list[str]) -> None:
        message = f"{title} content control is not valid:\n" + "\n".join(errors)
        super().__init__(message)
        self.title = title
        self.errors = list(errors)


class FormatError(DocGenError, ValueError):
    """A measurement or number literal could not be parsed."""


class RangeError(DocGenError, ValueError):
    """A parsed measurement lies outside its permitted range."""


class InvalidUri(DocGenError, ValueError):
    """A hyperlink target is not an absolute URI."""


class CellCompositionError(DocGenError):
    """A table cell ended up without any paragraph."""


class ModelError(DocGenError, ValueError):
    """A request file does not describe a valid document model."""
