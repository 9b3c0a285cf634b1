"""Render zone files via Jinja2 templates."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .diffing import label_sort_key
from .models import RecordConfig
from .rtypes import SOA

BUNDLED_TEMPLATES = Path(__file__).parent / "templates"
SERIAL_STRATEGIES = ("date", "epoch")


@dataclass(frozen=True)
class SOAConfig:
    """Configuration required to render an SOA record."""

    primary_ns: str
    admin_email: str
    serial: int
    refresh: int = 3600
    retry: int = 600
    expire: int = 604800
    minimum: int = 86400

    @classmethod
    def from_payload(cls, soa: SOA) -> SOAConfig:
        return cls(soa.ns, soa.mbox, soa.serial, soa.refresh, soa.retry, soa.expire, soa.minttl)

    @classmethod
    def default_for(cls, origin: str, primary_ns: str = "", admin_email: str = "") -> SOAConfig:
        """Return an SOA for a zone that has none yet."""
        return cls(
            primary_ns=primary_ns or f"ns.{origin}.",
            admin_email=admin_email or f"hostmaster.{origin}.",
            serial=0,
        )


def suggest_serial(strategy: str, current_serial: int | None) -> int:
    """Return a serial number that satisfies the chosen strategy."""
    if strategy == "epoch":
        candidate = int(time.time())
    else:
        candidate = int(datetime.now(tz=timezone.utc).strftime("%Y%m%d00"))
    if current_serial is None:
        return candidate
    return max(candidate, current_serial + 1)


def record_sort_key(rc: RecordConfig) -> tuple:
    return (label_sort_key(rc.name), rc.type != "NS", rc.type, rc.to_comparable_no_ttl())


def _record_to_template_data(rc: RecordConfig) -> dict[str, str | int]:
    """Convert a record into template-friendly data."""
    return {
        "owner": rc.name,
        "ttl": rc.ttl,
        "type": rc.type,
        "value": rc.to_rfc1035(),
    }


def render_zone(
    origin: str,
    records: Iterable[RecordConfig],
    soa: SOAConfig,
    default_ttl: int,
    templates_dir: Path | None = None,
    comments: Iterable[str] = (),
    template_name: str = "zone.j2",
) -> str:
    """Render a zone file.

    A template of the same name in ``templates_dir`` takes precedence over
    the bundled one. SOA records in ``records`` are ignored; ``soa`` is used.
    """
    search_path = [str(templates_dir)] if templates_dir else []
    search_path.append(str(BUNDLED_TEMPLATES))
    env = Environment(
        loader=FileSystemLoader(search_path),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    template = env.get_template(template_name)
    data = [_record_to_template_data(rc) for rc in sorted(records, key=record_sort_key) if rc.type != "SOA"]
    text = template.render(
        origin=origin,
        default_ttl=default_ttl,
        soa=asdict(soa),
        records=data,
        comments=list(comments),
    )
    return text.strip() + "\n"
