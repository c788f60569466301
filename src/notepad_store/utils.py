"""Utility functions for the notepad store."""
from pathlib import Path
from typing import Union


def escape_like_pattern(value: str) -> str:
    """Escape SQL LIKE wildcards to treat them as literals.

    Searching for "100%" must match the literal text, not every title
    starting with "100". Use together with ``ESCAPE '\\'``.

    Example:
        >>> escape_like_pattern("100% complete")
        '100\\\\% complete'
        >>> escape_like_pattern("file_name")
        'file\\\\_name'
    """
    escape_table = str.maketrans(
        {
            "\\": "\\\\",  # Escape backslash first
            "%": "\\%",
            "_": "\\_",
        }
    )
    return value.translate(escape_table)


def title_from_path(path: Union[str, Path]) -> str:
    """Node title for an imported file: its base name without extension."""
    return Path(path).stem
