"""Environment variable helpers."""

from __future__ import annotations

import os
from pathlib import Path

_EXPORT_PREFIX = "export "


def _unquote(value: str) -> str:
    """Strip one pair of matching single or double quotes."""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _parse_line(line: str, source: Path, line_number: int) -> tuple[str, str] | None:
    """Parse one dotenv line into a key/value pair, skipping blanks and comments."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    if stripped.startswith(_EXPORT_PREFIX):
        stripped = stripped[len(_EXPORT_PREFIX) :].strip()
    key, separator, raw_value = stripped.partition("=")
    key = key.strip()
    if not separator or not key:
        raise ValueError(f"Invalid dotenv entry at {source}:{line_number}")
    return key, _unquote(raw_value.strip())


def load_dotenv(path: Path = Path(".env"), override: bool = False) -> dict[str, str]:
    """
    Load ``KEY=value`` pairs from a dotenv file into ``os.environ``.

    Used to pick up ``COINGECKO_API_KEY`` and the ``COINSIGHT_API_*`` server
    settings without exporting them in the shell.

    Args:
        path: Dotenv file path. A missing file is not an error.
        override: Replace variables that are already set.

    Returns:
        The variables this call actually set.
    """
    resolved_path = path.expanduser().resolve()
    if not resolved_path.exists():
        return {}
    if not resolved_path.is_file():
        raise ValueError(f"Dotenv path is not a file: {resolved_path}")

    applied: dict[str, str] = {}
    lines = resolved_path.read_text(encoding="utf-8").splitlines()
    for line_number, line in enumerate(lines, start=1):
        entry = _parse_line(line, resolved_path, line_number)
        if entry is None:
            continue
        key, value = entry
        if key in os.environ and not override:
            continue
        os.environ[key] = value
        applied[key] = value
    return applied
