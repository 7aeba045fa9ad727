"""CLI entry point for docgen.

Usage::

    python main.py template.docx request.yaml [-o output.docx] \\
        [--config path/to/overlay.yaml] [-v]
"""

import argparse
import logging
import sys
from pathlib import Path

from docgen.errors import DocGenError
from docgen.loader import ModelLoader
from docgen.settings import Settings
from docgen.writer import DocumentWriter

logger = logging.getLogger("docgen")


def _build_argument_parser() -> argparse.ArgumentParser:
    """Create and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="docgen",
        description="Fill the content controls of a .docx template from a JSON or YAML request.",
    )

    parser.add_argument(
        "template",
        help="Path to the .docx template containing the content controls.",
    )
    parser.add_argument(
        "model",
        help="Path to the JSON or YAML request describing the content.",
    )
    parser.add_argument(
        "-o", "--output",
        default=None,
        help=(
            "Path to the output .docx file. "
            "Defaults to {template_stem}_filled.docx in the same directory."
        ),
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML file overriding the default settings.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="Enable verbose (DEBUG) logging output.",
    )

    return parser


def _setup_logging(verbose: bool, log_format: str) -> None:
    """Configure the root logger for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stderr),
        logging.FileHandler(log_dir / "docgen.log", encoding="utf-8"),
    ]

    logging.basicConfig(level=level, format=log_format, handlers=handlers)


def _resolve_output_path(template_path: str, output_arg: str | None) -> str:
    """Determine the output file path.

    If *output_arg* is provided it is returned as-is.  Otherwise the output
    is placed alongside the template with a ``_filled`` suffix.
    """
    if output_arg:
        return output_arg

    src = Path(template_path)
    return str(src.with_name(f"{src.stem}_filled{src.suffix}"))


def _print_summary(summary: dict, failed: dict[str, str]) -> None:
    """Print a human-readable summary of the request to stdout."""
    print("\n--- Generation Summary ---")
    print(f"  Content controls : {summary.get('content_controls', 0)}")
    print(f"  Paragraphs       : {summary.get('paragraph', 0)}")
    print(f"  Lists            : {summary.get('list', 0)}")
    print(f"  Tables           : {summary.get('table', 0)}")
    print(f"  Attachments      : {summary.get('attachment', 0)}")
    print(f"  HTML fragments   : {summary.get('html', 0)}")
    for title, reason in failed.items():
        print(f"  FAILED {title}: {reason}")
    print("--------------------------\n")


def main() -> None:
    """Run docgen."""
    parser = _build_argument_parser()
    args = parser.parse_args()

    try:
        settings = Settings(overlay_path=args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    # -- Logging -----------------------------------------------------------
    _setup_logging(args.verbose, settings.log_format)

    output_path = _resolve_output_path(args.template, args.output)
    logger.info("Template: %s", args.template)
    logger.info("Model   : %s", args.model)
    logger.info("Output  : %s", output_path)

    try:
        # -- Step 1: Load request ------------------------------------------
        model = ModelLoader(settings).load(args.model)

        # -- Step 2: Write -------------------------------------------------
        writer = DocumentWriter(settings=settings)
        result = writer.write(args.template, model, output_path)

        # -- Summary -------------------------------------------------------
        _print_summary(model.summary(), result.failed)
        print(f"Document saved to: {result.output_path}")
        logger.info("Generation complete: %s", result.output_path)

    except FileNotFoundError as exc:
        logger.error("File not found: %s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except (DocGenError, ValueError) as exc:
        logger.error("Invalid input: %s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except Exception as exc:
        logger.exception("Unexpected error during generation.")
        print(
            f"Error: An unexpected error occurred: {exc}\n"
            "Run with -v for detailed debug output.",
            file=sys.stderr,
        )
        sys.exit(2)

    if not result.ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
