"""Utilities to serialise observed zones for ``get-zones``."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import yaml

from .models import RecordConfig
from .renderer import SOAConfig, record_sort_key, render_zone

FORMATS = ("yaml", "json", "zone", "tsv")


def _record_to_dict(rc: RecordConfig) -> dict[str, Any]:
    """Convert a record into a serialisable dictionary."""
    entry: dict[str, Any] = {
        "name": rc.name,
        "type": rc.type,
        "ttl": rc.ttl,
        "value": rc.to_rfc1035(),
    }
    if rc.metadata:
        entry["meta"] = dict(rc.metadata)
    return entry


def zone_to_dict(zone: str, records: list[RecordConfig]) -> dict[str, Any]:
    """Create a dictionary describing the zone."""
    return {
        "zone": zone,
        "records": [_record_to_dict(rc) for rc in sorted(records, key=record_sort_key)],
    }


def zones_to_yaml(zones: dict[str, list[RecordConfig]]) -> str:
    """Return YAML documents, one per zone."""
    return yaml.safe_dump_all([zone_to_dict(z, r) for z, r in zones.items()], sort_keys=False)


def zones_to_json(zones: dict[str, list[RecordConfig]]) -> str:
    """Return a JSON list with one object per zone."""
    return json.dumps([zone_to_dict(z, r) for z, r in zones.items()], indent=2)


def zones_to_tsv(zones: dict[str, list[RecordConfig]]) -> str:
    """Return tab separated ``fqdn ttl class type value`` lines."""
    lines = []
    for records in zones.values():
        for rc in sorted(records, key=record_sort_key):
            lines.append("\t".join([f"{rc.name_fqdn}.", str(rc.ttl), "IN", rc.type, rc.to_rfc1035()]))
    return "\n".join(lines) + ("\n" if lines else "")


def zones_to_zonefiles(
    zones: dict[str, list[RecordConfig]], default_ttl: int = 300, templates_dir: Path | None = None
) -> str:
    """Return BIND zone files for every zone, concatenated.

    A ``zone.j2`` in ``templates_dir`` replaces the bundled template.
    """
    parts = []
    for zone, records in zones.items():
        soa_records = [rc for rc in records if rc.type == "SOA"]
        if soa_records:
            soa = SOAConfig.from_payload(soa_records[0].fields)
        else:
            soa = SOAConfig.default_for(zone)
        parts.append(render_zone(zone, records, soa, default_ttl, templates_dir))
    return "\n".join(parts)


_SERIALIZERS: dict[str, Callable[[dict[str, list[RecordConfig]]], str]] = {
    "yaml": zones_to_yaml,
    "json": zones_to_json,
    "zone": zones_to_zonefiles,
    "tsv": zones_to_tsv,
}


def serialize_zones(zones: dict[str, list[RecordConfig]], fmt: str, templates_dir: Path | None = None) -> str:
    """Serialise ``zones`` in one of :data:`FORMATS`."""
    try:
        serializer = _SERIALIZERS[fmt]
    except KeyError:
        raise ValueError(f"unknown output format {fmt!r}") from None
    if fmt == "zone":
        return zones_to_zonefiles(zones, templates_dir=templates_dir)
    return serializer(zones)


def write_output(path: Path, content: str) -> None:
    """Write content to the given path, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
