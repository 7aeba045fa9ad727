"""Runtime settings for the assembly engine.

Loads the packaged ``docgen.yaml`` defaults and, optionally, an overlay file
whose values are deep-merged on top.  Composers and collaborators receive a
:class:`Settings` instance instead of reading module-level constants, so two
documents can be rendered with different settings in the same process.
"""

from __future__ import annotations

import logging
import re
from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# ── Constants ──────────────────────────────────────────────────────────

_HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{6})$")

_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "config" / "docgen.yaml"


# ── Settings ───────────────────────────────────────────────────────────


class Settings:
    """Loads and queries the engine configuration.

    Parameters
    ----------
    config_path : str or Path, optional
        Base YAML configuration.  Defaults to the packaged
        ``docgen/config/docgen.yaml``.
    overlay_path : str or Path or None, optional
        Optional YAML overlay deep-merged on top of the base configuration.

    Raises
    ------
    FileNotFoundError
        If a requested configuration file does not exist.
    ValueError
        If the base file does not contain a YAML mapping.
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        overlay_path: str | Path | None = None,
    ) -> None:
        self._config_path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH
        self._raw: dict[str, Any] = {}
        self._colors: dict[str, str] = {}

        self._load(self._config_path)

        if overlay_path is not None:
            self._apply_overlay(Path(overlay_path))

        logger.debug("Settings loaded from %s", self._config_path)

    # ── Loading / merging ──────────────────────────────────────────

    def _load(self, path: Path) -> None:
        if not path.is_file():
            raise FileNotFoundError(f"Configuration not found: {path}")

        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)

        if not isinstance(data, dict):
            raise ValueError(f"Expected a YAML mapping at the top level in {path}")

        self._raw = data
        self._index_colors()

    def _apply_overlay(self, overlay_path: Path) -> None:
        """Deep-merge an overlay on top of the current configuration."""
        if not overlay_path.is_file():
            raise FileNotFoundError(f"Overlay configuration not found: {overlay_path}")

        with open(overlay_path, "r", encoding="utf-8") as fh:
            overlay = yaml.safe_load(fh)

        if not isinstance(overlay, dict):
            logger.warning(
                "Overlay file %s does not contain a YAML mapping; skipping", overlay_path
            )
            return

        self._raw = self._deep_merge(self._raw, overlay)
        self._index_colors()
        logger.info("Applied configuration overlay from %s", overlay_path)

    def _index_colors(self) -> None:
        palette = self._raw.get("colors") or {}
        self._colors = {str(k).lower(): str(v) for k, v in palette.items()}

    @staticmethod
    def _deep_merge(base: dict, overlay: dict) -> dict:
        """Recursively merge *overlay* into a copy of *base*.

        Overlay values take precedence.  Nested dicts are merged rather than
        replaced outright.
        """
        result = deepcopy(base)
        for key, value in overlay.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = Settings._deep_merge(result[key], value)
            else:
                result[key] = deepcopy(value)
        return result

    def _section(self, name: str) -> dict[str, Any]:
        return self._raw.get(name) or {}

    # ── Colour resolution ──────────────────────────────────────────

    def resolve_color(self, name: str) -> str:
        """Resolve a colour name or hex literal to a bare ``RRGGBB`` string.

        Raises
        ------
        KeyError
            If *name* is neither a hex literal nor a known palette name.
        """
        match = _HEX_COLOR_RE.match(name.strip())
        if match:
            return match.group(1).upper()

        value = self._colors.get(name.strip().lower())
        if value is None:
            raise KeyError(f"Unknown color name: '{name}'")
        return value.lstrip("#").upper()

    # ── Accessors ──────────────────────────────────────────────────

    @property
    def default_page_width(self) -> int:
        """Page width in DXA used when the template does not declare one."""
        return int(self._section("page").get("default_width", 11906))

    @property
    def empty_placeholder(self) -> str:
        return self._section("slots").get(
            "empty_placeholder", "Click or tap here to enter text."
        )

    @property
    def default_font(self) -> str:
        return self._section("runs").get("default_font", "Arial")

    @property
    def default_size(self) -> int:
        return int(self._section("runs").get("default_size", 12))

    def get_border_config(self) -> dict[str, Any]:
        """Return the table/cell border attributes (``val``, ``size``, ...)."""
        border = {"val": "single", "size": 4, "space": 0, "color": "auto"}
        border.update(self._section("tables").get("border") or {})
        return border

    @property
    def diagnostic_color(self) -> str:
        return str(self._section("tables").get("diagnostic_color", "FF0000"))

    @property
    def markup_font(self) -> str:
        return self._section("markup").get("default_font", self.default_font)

    @property
    def markup_size(self) -> int:
        return int(self._section("markup").get("default_size", self.default_size))

    @property
    def log_format(self) -> str:
        return self._section("logging").get(
            "format", "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        )
