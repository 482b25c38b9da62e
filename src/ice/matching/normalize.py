"""
Name normalization for matching.

Produces the key every alias lookup is done on: quote and geresh variants
removed, Hebrew final letters folded to their regular forms, whitespace
collapsed, lowercased. Idempotent by construction.
"""
import re
from typing import Tuple

# Apostrophe / quote variants (ASCII, typographic, Hebrew geresh and gershayim)
# plus Hebrew maqaf and rafe
_REMOVED_CODEPOINTS = (
    0x0027,  # apostrophe
    0x0060,  # grave accent / backtick
    0x00B4,  # acute accent
    0x2018, 0x2019, 0x201B,  # single quotes
    0x0022, 0x201C, 0x201D,  # double quotes
    0x05F3,  # geresh
    0x05F4,  # gershayim
    0x05BE,  # maqaf
    0x05BF,  # rafe
)
_CHARS_TO_REMOVE = re.compile("[" + re.escape("".join(map(chr, _REMOVED_CODEPOINTS))) + "]")

# Final (sofit) letters -> regular forms: mem, nun, tsadi, kaf, pe
_HEBREW_FINAL_LETTERS = str.maketrans({
    chr(0x05DD): chr(0x05DE),
    chr(0x05DF): chr(0x05E0),
    chr(0x05E5): chr(0x05E6),
    chr(0x05DA): chr(0x05DB),
    chr(0x05E3): chr(0x05E4),
})

_WHITESPACE = re.compile(r"\s+")


def normalize_name(name: str) -> str:
    """Return the matching key for a human-entered name ('' for empty input).

    >>> normalize_name("  ג׳ונסון  ")
    'גונסונ'
    >>> normalize_name("David   O'Brien")
    'david obrien'
    """
    if not name:
        return ""
    normalized = _CHARS_TO_REMOVE.sub("", name)
    normalized = normalized.translate(_HEBREW_FINAL_LETTERS)
    normalized = _WHITESPACE.sub(" ", normalized).strip()
    return normalized.lower()


def normalize_for_display(name: str) -> str:
    """Keep original characters, only clean up whitespace."""
    if not name:
        return ""
    return _WHITESPACE.sub(" ", name).strip()


def first_token(normalized: str) -> str:
    """First whitespace-delimited segment of an already-normalized name."""
    return normalized.split(" ", 1)[0]


def split_name(full_name: str) -> Tuple[str, str]:
    """Split a display name into (first_name, last_name)."""
    parts = normalize_for_display(full_name).split(" ")
    return parts[0], " ".join(parts[1:])
