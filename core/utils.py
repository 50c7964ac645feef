"""
Text helpers shared by the file models and responses
"""

import re
import unicodedata


def ascii_fold(value: str) -> str:
    """
    Transliterate value to ASCII, dropping characters
    that have no ASCII decomposition.
    """
    normalized = unicodedata.normalize("NFKD", value)
    return normalized.encode("ascii", "ignore").decode("ascii")


def slugify(value: str, separator: str = "-") -> str:
    """
    Build a URL-safe slug: ASCII-folded, lowercase, with every run of
    non-alphanumeric characters collapsed into a single separator.

    >>> slugify("My Report")
    'my-report'
    """
    value = ascii_fold(value).lower()
    slug = re.sub(r"[^a-z0-9]+", separator, value)
    return slug.strip(separator)


def matches_pattern(pattern: str, value: str | None) -> bool:
    """
    Glob match where '*' matches any run of characters and everything
    else is literal and case-sensitive.

    >>> matches_pattern("image/*", "image/png")
    True
    """
    if value is None:
        return False
    if pattern == value:
        return True
    regex = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.fullmatch(regex, value, flags=re.DOTALL) is not None
