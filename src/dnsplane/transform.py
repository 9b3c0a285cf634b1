"""IPv4 conversion tables used by IMPORT_TRANSFORM and ``transform`` metadata.

A table is a ``;``-separated list of rows ``low ~ high ~ newBase ~ newIPs``.
An address between ``low`` and ``high`` is either shifted onto ``newBase``
(keeping its offset from ``low``) or replaced by the comma-separated
``newIPs``. Addresses matching no row are returned unchanged.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass

from .errors import ConfigError


@dataclass(frozen=True)
class IPConversion:
    """One row of a conversion table."""

    low: ipaddress.IPv4Address
    high: ipaddress.IPv4Address
    new_base: ipaddress.IPv4Address | None = None
    new_ips: tuple[ipaddress.IPv4Address, ...] = ()

    def covers(self, ip: ipaddress.IPv4Address) -> bool:
        return self.low <= ip <= self.high


def _ip(text: str, table: str) -> ipaddress.IPv4Address:
    try:
        return ipaddress.IPv4Address(text.strip())
    except ValueError as exc:
        raise ConfigError(f"invalid address {text.strip()!r} in transform table {table!r}") from exc


def decode_transform_table(table: str) -> list[IPConversion]:
    """Parse a conversion table."""
    rows: list[IPConversion] = []
    for row in table.split(";"):
        if not row.strip():
            continue
        parts = [part.strip() for part in row.split("~")]
        if len(parts) != 4:
            raise ConfigError(f"transform row {row.strip()!r} must have 4 '~'-separated parts")
        low, high = _ip(parts[0], table), _ip(parts[1], table)
        if low > high:
            raise ConfigError(f"transform row {row.strip()!r} has low > high")
        if bool(parts[2]) == bool(parts[3]):
            raise ConfigError(f"transform row {row.strip()!r} needs exactly one of newBase or newIPs")
        new_base = _ip(parts[2], table) if parts[2] else None
        new_ips = tuple(_ip(ip, table) for ip in parts[3].split(",")) if parts[3] else ()
        rows.append(IPConversion(low, high, new_base, new_ips))
    return rows


def transform_ip(address: str, table: list[IPConversion]) -> list[str]:
    """Return the addresses ``address`` maps to under ``table``."""
    ip = ipaddress.IPv4Address(address)
    for row in table:
        if not row.covers(ip):
            continue
        if row.new_base is not None:
            return [str(row.new_base + (int(ip) - int(row.low)))]
        return [str(new_ip) for new_ip in row.new_ips]
    return [address]
