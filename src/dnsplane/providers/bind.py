"""BIND zone files kept in a directory.

Each zone lives in ``<directory>/<zone>.zone``. Reading parses the file with
dnspython; writing renders the whole zone through the Jinja2 zone template
and bumps the SOA serial.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any

import dns.exception
import dns.rdatatype
import dns.zone

from ..capabilities import Capability, can
from ..diffing import Verb, by_zone
from ..errors import ConfigError, ProviderError, ZoneFetchError
from ..models import Correction, DomainConfig, Nameserver, RecordConfig
from ..renderer import SERIAL_STRATEGIES, SOAConfig, render_zone, suggest_serial
from ..rtypes import TYPES
from .base import DNSServiceProvider, ZoneCreator, ZoneLister

LOG = logging.getLogger(__name__)

ZONE_SUFFIX = ".zone"


class BindProvider(DNSServiceProvider, ZoneLister, ZoneCreator):
    """Manages zone files for a BIND server."""

    def __init__(self, creds: dict[str, Any] | None = None, meta: dict[str, Any] | None = None, timeout: float = 30):
        creds = creds or {}
        meta = meta or {}
        self.directory = Path(creds.get("directory") or "zones")
        self.serial_strategy = str(creds.get("serial_strategy") or "date")
        if self.serial_strategy not in SERIAL_STRATEGIES:
            raise ConfigError(f"BIND serial_strategy must be one of {', '.join(SERIAL_STRATEGIES)}")
        self.templates_dir = Path(creds["templates_dir"]) if creds.get("templates_dir") else None
        self.default_ns = [str(ns).rstrip(".").lower() for ns in meta.get("default_ns", [])]
        self.default_soa = dict(meta.get("default_soa") or {})
        self._soa: dict[str, SOAConfig] = {}
        self._lock = threading.Lock()

    def zone_path(self, domain: str) -> Path:
        return self.directory / f"{domain}{ZONE_SUFFIX}"

    def get_nameservers(self, domain: str) -> list[Nameserver]:
        return [Nameserver(ns) for ns in self.default_ns]

    def get_zone_records(self, domain: str, meta: dict[str, Any]) -> list[RecordConfig]:
        """Parse the zone file; a missing or empty file is an empty zone."""
        path = self.zone_path(domain)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            LOG.debug("Zone file %s does not exist yet", path)
            return []
        except OSError as exc:
            raise ZoneFetchError(f"cannot read zone file {path}: {exc}") from exc
        if not text.strip():
            return []

        try:
            zone = dns.zone.from_text(text, origin=f"{domain}.", relativize=False, check_origin=False)
        except dns.exception.DNSException as exc:
            raise ZoneFetchError(f"cannot parse zone file {path}: {exc}") from exc

        records: list[RecordConfig] = []
        for name, ttl, rdata in zone.iterate_rdatas():
            rtype = dns.rdatatype.to_text(rdata.rdtype)
            if rtype == "SOA":
                with self._lock:
                    self._soa[domain] = SOAConfig(
                        rdata.mname.to_text(),
                        rdata.rname.to_text(),
                        rdata.serial,
                        rdata.refresh,
                        rdata.retry,
                        rdata.expire,
                        rdata.minimum,
                    )
                continue
            if rtype not in TYPES:
                LOG.warning("Skipping unsupported %s record %s in %s", rtype, name, path)
                continue
            records.append(RecordConfig.from_rdata(name.to_text(), ttl, rtype, rdata, domain))
        LOG.debug("Read %d records from %s", len(records), path)
        return records

    def _default_soa(self, domain: str) -> SOAConfig:
        primary_ns = self.default_soa.get("primary_ns") or (f"{self.default_ns[0]}." if self.default_ns else "")
        base = SOAConfig.default_for(domain, primary_ns, self.default_soa.get("admin_email", ""))
        return SOAConfig(
            base.primary_ns,
            base.admin_email,
            0,
            int(self.default_soa.get("refresh", base.refresh)),
            int(self.default_soa.get("retry", base.retry)),
            int(self.default_soa.get("expire", base.expire)),
            int(self.default_soa.get("minimum", base.minimum)),
        )

    def _next_soa(self, domain: str) -> SOAConfig:
        """Return the SOA to write, with a serial newer than the current one."""
        with self._lock:
            current = self._soa.get(domain) or self._default_soa(domain)
        serial = suggest_serial(self.serial_strategy, current.serial or None)
        return replace(current, serial=serial)

    def _write_zone(self, domain: str, records: list[RecordConfig], comments: list[str]) -> None:
        soa = self._next_soa(domain)
        text = render_zone(domain, records, soa, self.default_ttl, self.templates_dir, comments)
        path = self.zone_path(domain)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise ProviderError(f"cannot write zone file {path}: {exc}") from exc
        with self._lock:
            self._soa[domain] = soa
        LOG.info("Wrote zone file %s (serial %d)", path, soa.serial)

    def get_zone_records_corrections(
        self, dc: DomainConfig, existing: list[RecordConfig]
    ) -> tuple[list[Correction], int]:
        changes, count = by_zone(existing, dc)
        corrections = [Correction(change.msgs_joined) for change in changes if change.type is Verb.REPORT]
        if count == 0:
            return corrections, 0

        zone_change = changes[-1]
        desired = [rc.copy() for rc in zone_change.new]
        comments = ["generated by dnsplane"]
        if dc.auto_dnssec == "on":
            comments.append("Automatic DNSSEC signing requested")
        msg = f"GENERATE_ZONEFILE: '{dc.name}'. Changes:\n{zone_change.msgs_joined}"
        corrections.append(
            Correction(msg, action=lambda: self._write_zone(dc.name, desired, comments))
        )
        return corrections, count

    def list_zones(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        return sorted(path.name[: -len(ZONE_SUFFIX)] for path in self.directory.glob(f"*{ZONE_SUFFIX}"))

    def ensure_zone_exists(self, domain: str, meta: dict[str, Any]) -> None:
        """Create an empty zone file holding only the SOA."""
        if self.zone_path(domain).exists():
            return
        self._write_zone(domain, [], ["generated by dnsplane"])


def register(registry) -> None:
    registry.register(
        "BIND",
        BindProvider,
        features={
            Capability.CAN_AUTO_DNSSEC: can("Only records the request as a comment in the zone file."),
            Capability.CAN_CONCUR: True,
            Capability.DOC_DUAL_HOST: True,
            Capability.DOC_OFFICIALLY_SUPPORTED: True,
            Capability.CAN_USE_DS_FOR_CHILDREN: True,
        },
        record_types=[
            "A",
            "AAAA",
            "CAA",
            "CNAME",
            "DNSKEY",
            "DS",
            "HTTPS",
            "LOC",
            "MX",
            "NAPTR",
            "NS",
            "PTR",
            "SOA:unimplemented:The SOA is managed by the provider.",
            "SRV",
            "SSHFP",
            "SVCB",
            "TLSA",
            "TXT",
        ],
        creds_fields=["directory", "serial_strategy", "templates_dir"],
        maintainer="dnsplane",
    )

