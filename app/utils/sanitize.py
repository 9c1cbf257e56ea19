"""
Name sanitizers applied to user-supplied upload parameters.

All functions are total over strings and idempotent.
"""

import re

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED_OBJECT_CHARS = re.compile(r"[^a-z0-9!._*'()\-]")
_REPEATED_HYPHENS = re.compile(r"-+")
_LEADING_HYPHENS = re.compile(r"^-+")
_TRAILING_HYPHENS = re.compile(r"-+$")
_HYPHENS_BEFORE_DOT = re.compile(r"-+\.")
_TRAILING_CONTAINER_JUNK = re.compile(r"[\s-]+$")
_SLASHES = re.compile(r"/+")


def sanitize_object_name(name: str) -> str:
    """
    Make a file name safe for use as an object key segment.

    >>> sanitize_object_name("My Document (2024).pdf")
    'my-document-(2024).pdf'
    """
    name = name.lower()
    name = _WHITESPACE.sub("-", name)
    name = _DISALLOWED_OBJECT_CHARS.sub("", name)
    name = _REPEATED_HYPHENS.sub("-", name)
    name = _LEADING_HYPHENS.sub("", name)
    name = _TRAILING_HYPHENS.sub("", name)
    return _HYPHENS_BEFORE_DOT.sub(".", name)


def sanitize_container_name(name: str) -> str:
    """Trim, lowercase and drop trailing hyphens."""
    return _TRAILING_CONTAINER_JUNK.sub("", name.strip().lower())


def normalize_prefix(prefix: str | None) -> str:
    """Turn a folder prefix into ``a/b/c`` form; backslashes count as separators."""
    normalized = (prefix or "").strip().replace("\\", "/")
    return _SLASHES.sub("/", normalized).strip("/")
