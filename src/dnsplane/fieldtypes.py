"""Typed scalar fields and the label algebra used by the record model.

Every parser is strict: it either returns the canonical value or raises
:class:`~dnsplane.errors.FieldParseError` carrying the offending input.
"""

from __future__ import annotations

import base64
import binascii
import ipaddress
import re
from enum import StrEnum

from .errors import FieldParseError, LabelError

_DIGITS = re.compile(r"[0-9]+")
_HEX = re.compile(r"[0-9a-fA-F]+")
_REVERSE_SUFFIXES = (".in-addr.arpa", ".ip6.arpa")
_STRAY_OCTET = re.compile("[\udc80-\udcff]")


def parse_ipv4(raw: str) -> str:
    """Return the dotted-quad form of an IPv4 address or 32-bit integer."""
    if not isinstance(raw, str) or raw != raw.strip() or not raw:
        raise FieldParseError("IPv4", raw, "expected a dotted-quad address")
    if _DIGITS.fullmatch(raw):
        value = int(raw)
        if value > 0xFFFFFFFF:
            raise FieldParseError("IPv4", raw, "integer form exceeds 32 bits")
        return str(ipaddress.IPv4Address(value))
    try:
        return str(ipaddress.IPv4Address(raw))
    except ValueError as exc:
        raise FieldParseError("IPv4", raw, str(exc)) from exc


def parse_ipv6(raw: str) -> str:
    """Return the compressed canonical form of an IPv6 address."""
    if not isinstance(raw, str) or raw != raw.strip() or not raw or "%" in raw:
        raise FieldParseError("IPv6", raw, "expected an IPv6 address")
    try:
        return ipaddress.IPv6Address(raw).compressed
    except ValueError as exc:
        raise FieldParseError("IPv6", raw, str(exc)) from exc


def _parse_uint(kind: str, raw: str | int, bits: int) -> int:
    if isinstance(raw, bool):
        raise FieldParseError(kind, raw, "booleans are not numbers")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str) and _DIGITS.fullmatch(raw):
        value = int(raw)
    else:
        raise FieldParseError(kind, raw, "expected an unsigned integer")
    if value < 0 or value >= 1 << bits:
        raise FieldParseError(kind, raw, f"out of range for {bits}-bit unsigned integer")
    return value


def parse_uint8(raw: str | int) -> int:
    """Return an unsigned 8-bit integer."""
    return _parse_uint("Uint8", raw, 8)


def parse_uint16(raw: str | int) -> int:
    """Return an unsigned 16-bit integer."""
    return _parse_uint("Uint16", raw, 16)


def parse_uint32(raw: str | int) -> int:
    """Return an unsigned 32-bit integer."""
    return _parse_uint("Uint32", raw, 32)


def parse_hostname_dot(raw: str, origin: str = "") -> str:
    """Return an absolute hostname (with trailing dot).

    ``@`` means the origin, dotless or relative names are made absolute by
    appending the origin, and ``.`` is the root (used by null MX/SRV targets).
    """
    if not isinstance(raw, str) or not raw or raw != raw.strip() or any(c.isspace() for c in raw):
        raise FieldParseError("HostnameDot", raw, "expected a hostname")
    if raw == ".":
        return raw
    if raw == "@":
        if not origin:
            raise FieldParseError("HostnameDot", raw, "'@' needs an origin")
        return f"{origin}."
    if ".." in raw or raw.startswith("."):
        raise FieldParseError("HostnameDot", raw, "empty label")
    if raw.endswith("."):
        return raw
    if not origin:
        raise FieldParseError("HostnameDot", raw, "relative name without an origin")
    return f"{raw}.{origin}."


def parse_hex(raw: str) -> str:
    """Return a lowercase hexadecimal string."""
    if not isinstance(raw, str):
        raise FieldParseError("Hex", raw, "expected hexadecimal text")
    compact = "".join(raw.split())
    if not _HEX.fullmatch(compact):
        raise FieldParseError("Hex", raw, "expected hexadecimal text")
    return compact.lower()


def parse_base64(raw: str) -> str:
    """Return base64 text with whitespace removed."""
    if not isinstance(raw, str):
        raise FieldParseError("Base64", raw, "expected base64 text")
    compact = "".join(raw.split())
    try:
        base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise FieldParseError("Base64", raw, str(exc)) from exc
    return compact


def parse_string(raw: str) -> str:
    """Return the text unchanged (strings accept anything)."""
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return str(raw)
    if not isinstance(raw, str):
        raise FieldParseError("String", raw, "expected text")
    return raw


def parse_token(raw: str) -> str:
    """Return a single whitespace-free token."""
    value = parse_string(raw)
    if not value or any(c.isspace() for c in value):
        raise FieldParseError("Token", raw, "expected a single token")
    return value


class FieldKind(StrEnum):
    """Closed set of scalar kinds used by record payloads."""

    IPV4 = "IPv4"
    IPV6 = "IPv6"
    UINT8 = "Uint8"
    UINT16 = "Uint16"
    UINT32 = "Uint32"
    HOSTNAME = "HostnameDot"
    HEX = "Hex"
    BASE64 = "Base64"
    TOKEN = "Token"
    STRING = "String"
    QSTRING = "QuotedString"

    def parse(self, raw, origin: str = ""):
        """Parse ``raw`` into the canonical value of this kind."""
        if self is FieldKind.HOSTNAME:
            return parse_hostname_dot(raw, origin)
        return _PARSERS[self](raw)

    def render(self, value) -> str:
        """Return the presentation text of a parsed value."""
        if self is FieldKind.QSTRING:
            return quote(value)
        return str(value)

    @property
    def is_hostname(self) -> bool:
        return self is FieldKind.HOSTNAME


_PARSERS = {
    FieldKind.IPV4: parse_ipv4,
    FieldKind.IPV6: parse_ipv6,
    FieldKind.UINT8: parse_uint8,
    FieldKind.UINT16: parse_uint16,
    FieldKind.UINT32: parse_uint32,
    FieldKind.HEX: parse_hex,
    FieldKind.BASE64: parse_base64,
    FieldKind.TOKEN: parse_token,
    FieldKind.STRING: parse_string,
    FieldKind.QSTRING: parse_string,
}


def quote(value: str) -> str:
    """Return ``value`` as a double-quoted presentation string."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    if _STRAY_OCTET.search(escaped):
        # Octets that were not valid UTF-8 become \DDD escapes.
        escaped = _STRAY_OCTET.sub(lambda m: f"\\{ord(m.group()) - 0xDC00:03d}", escaped)
    return f'"{escaped}"'


def is_reverse_name(name: str) -> bool:
    """Return True for names under in-addr.arpa or ip6.arpa."""
    lowered = name.lower().rstrip(".")
    return lowered.endswith(_REVERSE_SUFFIXES) or lowered in {"in-addr.arpa", "ip6.arpa"}


def parse_label3(short: str, subdomain: str, origin: str) -> tuple[str, str]:
    """Return ``(label, fqdn)`` for a record label inside ``origin``.

    ``fqdn`` never has a trailing dot and the label is ``@`` exactly when the
    record sits at the apex.
    """
    if not origin or origin != origin.lower() or origin.endswith("."):
        raise LabelError(f"origin {origin!r} must be non-empty, lowercase and without a trailing dot")
    if short == ".":
        raise LabelError(f"label '.' is not valid in {origin}")

    if not short.endswith(".") and is_reverse_name(short) and is_reverse_name(origin):
        short = f"{short}."

    if short.endswith("."):
        absolute = short[:-1]
        if absolute.lower() == origin:
            return "@", origin
        suffix = f".{origin}"
        if absolute.lower().endswith(suffix):
            label = absolute[: -len(suffix)]
            return label, f"{label}.{origin}"
        raise LabelError(f"label {short!r} is not in zone {origin}")

    if subdomain:
        short = subdomain if short in {"", "@"} else f"{short}.{subdomain}"
    if short in {"", "@"}:
        return "@", origin
    return short, f"{short}.{origin}"


def label_from_fqdn(fqdn: str, origin: str) -> str:
    """Return the short label of an FQDN (without trailing dot) in ``origin``."""
    name = fqdn.rstrip(".")
    if name.lower() == origin:
        return "@"
    suffix = f".{origin}"
    if name.lower().endswith(suffix):
        return name[: -len(suffix)]
    raise LabelError(f"name {fqdn!r} is not in zone {origin}")
