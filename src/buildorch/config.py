"""Build configuration loading.

The configuration is read from exactly one file whose format is chosen by its
extension. Anything that goes wrong while loading (missing file, unknown
extension, parser error, non-mapping root) is reported once as a warning and
an empty configuration is returned, so a build can always run on defaults.
"""

from __future__ import annotations

import json
import re
import tomllib
from pathlib import Path
from typing import Any, Callable, Dict

import yaml

from .errors import ConfigLoadError
from .logging import get_logger


log = get_logger("buildorch.config")

# String literals are matched first and kept, so `//` or `/*` inside a
# string is not mistaken for a comment.
_JSONC_COMMENT = re.compile(
    r'("(?:\\.|[^"\\])*")|//[^\n]*|/\*.*?\*/',
    re.DOTALL,
)


def strip_json_comments(text: str) -> str:
    return _JSONC_COMMENT.sub(
        lambda m: m.group(1) if m.group(1) is not None else "", text
    )


def _load_yaml(text: str) -> Any:
    return yaml.safe_load(text)


def _load_json(text: str) -> Any:
    return json.loads(strip_json_comments(text)) if text.strip() else None


def _load_toml(text: str) -> Any:
    return tomllib.loads(text)


_PARSERS: Dict[str, Callable[[str], Any]] = {
    ".yaml": _load_yaml,
    ".yml": _load_yaml,
    ".json": _load_json,
    ".jsonc": _load_json,
    ".toml": _load_toml,
}

YAML_EXTENSIONS = frozenset({".yaml", ".yml"})


def supported_extensions() -> list[str]:
    return sorted(_PARSERS)


def is_yaml_config(path: str | Path) -> bool:
    return Path(path).suffix.lower() in YAML_EXTENSIONS


def parse_config_file(path: str | Path) -> dict:
    """Parse `path` strictly, raising :class:`ConfigLoadError` on any problem."""
    p = Path(path)
    if not p.is_file():
        raise ConfigLoadError(f"Build configuration not found: {p}")
    parser = _PARSERS.get(p.suffix.lower())
    if parser is None:
        raise ConfigLoadError(
            f"Unsupported build configuration extension '{p.suffix}' for {p}; "
            f"expected one of {', '.join(supported_extensions())}"
        )
    try:
        data = parser(p.read_text(encoding="utf-8"))
    except Exception as e:  # noqa: BLE001
        raise ConfigLoadError(f"Failed to parse build configuration {p}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(
            f"Build configuration {p} must contain a mapping at the root, "
            f"got {type(data).__name__}"
        )
    return data


def load_build_config(path: str | Path) -> dict:
    """Load the build configuration, falling back to an empty one."""
    try:
        data = parse_config_file(path)
    except ConfigLoadError as e:
        log.warning("%s. Continuing with an empty configuration.", e)
        return {}
    log.debug("Loaded build configuration from %s (%d keys)", path, len(data))
    return data
