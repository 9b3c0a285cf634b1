"""TXT string segmentation helpers.

The record model keeps TXT data as one logical string. Wire and zone-file
renderers need it cut into character-strings of at most 255 octets.

Octets that are not valid UTF-8 are carried as lone surrogates
(``surrogateescape``) so that a value read from a server renders back to
the same bytes.
"""

from __future__ import annotations

from .fieldtypes import quote

MAX_SEGMENT = 255


def txt_octets(value: str) -> bytes:
    """Return the wire octets of a TXT value."""
    return value.encode("utf-8", errors="surrogateescape")


def split_segments(value: str, size: int = MAX_SEGMENT) -> list[str]:
    """Split ``value`` into chunks of at most ``size`` octets.

    A multi-byte character is never cut in half.
    """
    data = txt_octets(value)
    if not data:
        return [""]
    segments: list[str] = []
    start = 0
    while start < len(data):
        end = min(start + size, len(data))
        # Back off to a character boundary.
        while end < len(data) and end > start and (data[end] & 0xC0) == 0x80:
            end -= 1
        if end == start:
            # A run of stray continuation octets; cut anywhere.
            end = min(start + size, len(data))
        segments.append(data[start:end].decode("utf-8", errors="surrogateescape"))
        start = end
    return segments


def join_segments(segments) -> str:
    """Join character-strings (text or bytes) into one logical string."""
    parts = []
    for segment in segments:
        if isinstance(segment, bytes):
            segment = segment.decode("utf-8", errors="surrogateescape")
        parts.append(segment)
    return "".join(parts)


def quote_segments(value: str) -> str:
    """Return the zone-file presentation of a TXT value."""
    return " ".join(quote(segment) for segment in split_segments(value))
