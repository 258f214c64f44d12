"""Terminal output helpers for the context-recall CLI.

Styling is plain text unless stdout is a TTY and ``NO_COLOR`` is unset.
"""

from __future__ import annotations

import os
import sys

_CODES = {"bold": "1", "dim": "2", "red": "31", "green": "32", "yellow": "33"}


def _use_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


_COLOR = _use_color()


def style(name: str, text: str) -> str:
    if not _COLOR:
        return text
    return f"\033[{_CODES[name]}m{text}\033[0m"


def bold(text: str) -> str:
    return style("bold", text)


def dim(text: str) -> str:
    return style("dim", text)


def green(text: str) -> str:
    return style("green", text)


# ── Messages ────────────────────────────────────────────────────────


def _status(marker: str, msg: str) -> None:
    print(f"  {marker} {msg}" if marker else f"  {msg}")


def header(title: str) -> None:
    print()
    print(bold(title))


def success(msg: str) -> None:
    _status(green("✓"), msg)


def warn(msg: str) -> None:
    _status(style("yellow", "!"), msg)


def error(msg: str) -> None:
    _status(style("red", "✗"), msg)


def info(msg: str) -> None:
    _status("", msg)


def kv(key: str, value: object, indent: int = 2) -> None:
    label = dim(f"{key}:")
    print(f"{' ' * indent}{label}  {value}")


def block(text: str) -> None:
    """Print multi-line text indented under the current header."""
    for line in text.splitlines():
        print(f"    {line}")


def score_bar(score: float, width: int = 20) -> str:
    """Render a 0..1 relevance score as a fixed-width bar."""
    filled = round(max(0.0, min(1.0, score)) * width)
    return green("█" * filled) + dim("·" * (width - filled))
