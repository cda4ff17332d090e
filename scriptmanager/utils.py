"""
Utility functions for scriptmanager
"""

import re
from typing import Optional
from urllib.parse import unquote

# characters that can not appear in a filename on some system
_ENCODE = {'%': '%25', '/': '%2F', ':': '%3A', '\\': '%5C'}
# replaces a leading '.' so sanitized names never become hidden files
_DOT_ESCAPE = '%2'
_HEX = frozenset('0123456789abcdefABCDEF')

_INT_RE = re.compile(r'^[+-]?\d+$')

MIN_WEIGHT = 1
MAX_WEIGHT = 999


def _encode(s: str) -> str:
    return ''.join(_ENCODE.get(ch, ch) for ch in s)


def sanitize(name: str) -> str:
    """
    Make a script name or resource url usable as a filename.

    Path separators, colons and percent signs are percent-encoded and a
    leading dot is replaced by a two character escape. A hex digit right after
    that escape is percent-encoded too, so the escape can never be read as
    the start of an encoded character.

    Args:
        name: Script name (from @name) or dependency url

    Returns:
        Sanitized filename
    """
    if not name.startswith('.'):
        return _encode(name)
    rest = name[1:]
    if rest and rest[0] in _HEX:
        return _DOT_ESCAPE + '%{:02X}'.format(ord(rest[0])) + _encode(rest[1:])
    return _DOT_ESCAPE + _encode(rest)


def unsanitize(name: str) -> str:
    """Reverse sanitize()."""
    if name.startswith(_DOT_ESCAPE) and name[2:3] not in _HEX:
        return '.' + unquote(name[2:])
    return unquote(name)


def normalize_weight(weight: Optional[str]) -> int:
    """Clamp a declared @weight to 1..999; anything non-numeric becomes 1."""
    if weight is None or not _INT_RE.match(weight):
        return MIN_WEIGHT
    return max(MIN_WEIGHT, min(MAX_WEIGHT, int(weight)))


def date_to_milliseconds(timestamp: float) -> int:
    return int(timestamp * 1000)


def file_type(filename: str) -> str:
    """Extension without the dot, e.g. 'js'."""
    return filename.rsplit('.', 1)[-1] if '.' in filename else ''
