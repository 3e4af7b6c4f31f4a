"""
Utility functions for filesystem paths, search terms and paging.

This module provides helper functions for:
- Deriving safe file extensions from user-supplied filenames
- Ensuring directory creation
- Escaping substring search terms for SQL LIKE
- Normalizing page numbers and employee usernames
"""

from __future__ import annotations

import math
import re
from pathlib import Path
from typing import Any

# Extensions are kept only when they consist of these characters
EXTENSION_PATTERN = re.compile(r"^\.[a-z0-9]{1,10}$")
WHITESPACE_PATTERN = re.compile(r"\s+")
LIKE_ESCAPE = "\\"


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_extension(filename: str | None) -> str:
    """
    Extract a lowercase extension that is safe to reuse in a stored filename.

    Args:
        filename: The client-supplied filename (may be None or contain a path)

    Returns:
        The extension including the dot, or an empty string when the original
        extension is missing or contains anything beyond letters and digits

    Example:
        >>> safe_extension("Foto Jahit.JPG")
        ".jpg"
        >>> safe_extension("../../etc/passwd")
        ""
    """
    if not filename:
        return ""
    suffix = Path(filename.replace("\\", "/")).suffix.lower()
    return suffix if EXTENSION_PATTERN.match(suffix) else ""


def escape_like(term: str) -> str:
    """Wrap a search term as an unanchored LIKE pattern with wildcards escaped."""
    escaped = (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


def normalize_page(value: Any) -> int:
    """Parse a page query value; anything unusable or below 1 becomes 1."""
    try:
        page = int(value)
    except (TypeError, ValueError):
        return 1
    return max(page, 1)


def count_pages(total_items: int, page_size: int) -> int:
    return math.ceil(total_items / page_size) if page_size else 0


def normalize_username(name: str) -> str:
    """
    Derive a login username from an employee name.

    Example:
        >>> normalize_username("Dede Sutisna")
        "dedesutisna"
    """
    return WHITESPACE_PATTERN.sub("", name).lower()
