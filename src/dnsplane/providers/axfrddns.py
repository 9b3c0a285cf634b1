"""Zones read with AXFR and changed with RFC 2136 dynamic updates.

Credentials:

``master``
    ``host[:port]`` receiving the updates.
``transfer-server``
    ``host[:port]`` serving the zone transfer; defaults to ``master``.
``update-key`` / ``transfer-key``
    TSIG keys in ``algorithm:name:secret`` form.
``tsig_keyfile_b64``
    A base64-encoded BIND key file used when the keys above are absent.
``nameservers``
    Comma separated nameservers advertised for every zone.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Any

import dns.exception
import dns.query
import dns.rcode
import dns.rdatatype
import dns.tsigkeyring
import dns.update
import dns.zone

from .. import rejectif
from ..auditor import RecordAuditor
from ..capabilities import Capability, cannot
from ..diffing import Verb, by_record
from ..errors import ConfigError, ProviderError, ZoneFetchError
from ..models import Correction, DomainConfig, Nameserver, RecordConfig
from ..rtypes import TYPES
from .base import DNSServiceProvider

LOG = logging.getLogger(__name__)

DEFAULT_PORT = 53
# Records maintained by the server itself.
SKIPPED_TYPES = frozenset({"SOA", "RRSIG", "NSEC", "NSEC3", "NSEC3PARAM", "DNSKEY", "CDS", "CDNSKEY"})


@dataclass(frozen=True)
class TsigKey:
    """Holds TSIG credentials."""

    name: str
    algorithm: str
    secret: str

    def keyring(self):
        return dns.tsigkeyring.from_text({self.name: self.secret})


KEYFILE_PATTERN = re.compile(
    r'key\s+"(?P<name>[^"]+)"\s*\{'
    r"(?P<body>.*?)"
    r"\}",
    re.IGNORECASE | re.DOTALL,
)
ALGORITHM_PATTERN = re.compile(
    r"algorithm\s+(?P<algorithm>[\w-]+)\s*;",
    re.IGNORECASE,
)
SECRET_PATTERN = re.compile(
    r'secret\s+"(?P<secret>[^"]+)"\s*;',
    re.IGNORECASE,
)


def parse_keyfile(encoded: str) -> TsigKey:
    """Decode and parse a base64-encoded BIND keyfile."""
    try:
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ConfigError("Failed to decode TSIG key file base64 payload.") from exc

    match = KEYFILE_PATTERN.search(decoded)
    if not match:
        raise ConfigError("TSIG key file does not match expected format.")
    body = match.group("body")
    algo_match = ALGORITHM_PATTERN.search(body)
    secret_match = SECRET_PATTERN.search(body)
    if not (algo_match and secret_match):
        raise ConfigError("TSIG key file missing algorithm or secret.")
    return TsigKey(name=match.group("name"), algorithm=algo_match.group("algorithm"), secret=secret_match.group("secret"))


def parse_key_spec(spec: str) -> TsigKey:
    """Parse an ``algorithm:name:secret`` key."""
    parts = spec.split(":", 2)
    if len(parts) != 3 or not all(parts):
        raise ConfigError("TSIG keys must have the form 'algorithm:name:secret'.")
    algorithm, name, secret = parts
    return TsigKey(name=name, algorithm=algorithm, secret=secret)


def split_server(spec: str) -> tuple[str, int]:
    """Split ``host``, ``host:port`` or ``[v6]:port`` into host and port."""
    spec = spec.strip()
    if spec.startswith("["):
        host, _, rest = spec[1:].partition("]")
        port = rest.lstrip(":")
    elif spec.count(":") == 1:
        host, port = spec.split(":")
    else:
        host, port = spec, ""
    if not host:
        raise ConfigError(f"invalid server address {spec!r}")
    try:
        return host, int(port) if port else DEFAULT_PORT
    except ValueError:
        raise ConfigError(f"invalid port in server address {spec!r}") from None


class AxfrDdnsProvider(DNSServiceProvider):
    """Talks to an authoritative server over AXFR and dynamic update."""

    def __init__(self, creds: dict[str, Any] | None = None, meta: dict[str, Any] | None = None, timeout: float = 30):
        creds = creds or {}
        if not creds.get("master"):
            raise ConfigError("AXFRDDNS requires the 'master' credential.")
        self.master = split_server(str(creds["master"]))
        self.transfer_server = split_server(str(creds.get("transfer-server") or creds["master"]))
        keyfile = parse_keyfile(creds["tsig_keyfile_b64"]) if creds.get("tsig_keyfile_b64") else None
        self.update_key = parse_key_spec(creds["update-key"]) if creds.get("update-key") else keyfile
        self.transfer_key = parse_key_spec(creds["transfer-key"]) if creds.get("transfer-key") else keyfile
        self.nameservers = [
            ns.strip().rstrip(".").lower() for ns in str(creds.get("nameservers", "")).split(",") if ns.strip()
        ]
        self.timeout = timeout

    def get_nameservers(self, domain: str) -> list[Nameserver]:
        return [Nameserver(ns) for ns in self.nameservers]

    def get_zone_records(self, domain: str, meta: dict[str, Any]) -> list[RecordConfig]:
        """Return the current zone through a zone transfer."""
        host, port = self.transfer_server
        kwargs: dict[str, Any] = {}
        if self.transfer_key:
            kwargs = {
                "keyring": self.transfer_key.keyring(),
                "keyname": self.transfer_key.name,
                "keyalgorithm": self.transfer_key.algorithm,
            }
        LOG.debug("AXFR of %s from %s:%d", domain, host, port)
        try:
            xfr = dns.query.xfr(
                where=host,
                zone=f"{domain}.",
                port=port,
                relativize=False,
                timeout=self.timeout,
                lifetime=self.timeout,
                **kwargs,
            )
            zone = dns.zone.from_xfr(xfr, relativize=False)
        except (dns.exception.DNSException, OSError) as exc:
            raise ZoneFetchError(f"AXFR failed for zone {domain}: {exc}") from exc

        records: list[RecordConfig] = []
        for name, ttl, rdata in zone.iterate_rdatas():
            rtype = dns.rdatatype.to_text(rdata.rdtype)
            if rtype in SKIPPED_TYPES:
                continue
            if rtype not in TYPES:
                LOG.warning("Skipping unsupported %s record %s in %s", rtype, name, domain)
                continue
            records.append(RecordConfig.from_rdata(name.to_text(), ttl, rtype, rdata, domain))
        return records

    def get_zone_records_corrections(
        self, dc: DomainConfig, existing: list[RecordConfig]
    ) -> tuple[list[Correction], int]:
        changes, count = by_record(existing, dc)
        corrections = [Correction(change.msgs_joined) for change in changes if change.type is Verb.REPORT]
        real = [change for change in changes if change.type is not Verb.REPORT]
        if not real:
            return corrections, 0

        removals = [rc for change in real for rc in change.old]
        additions = [rc for change in real for rc in change.new]
        msg = "\n".join(change.msgs_joined for change in real)
        corrections.append(Correction(msg, action=lambda: self._send_update(dc.name, removals, additions)))
        return corrections, count

    def _send_update(self, domain: str, removals: list[RecordConfig], additions: list[RecordConfig]) -> None:
        """Send one dynamic update; deletions go first."""
        kwargs: dict[str, Any] = {}
        if self.update_key:
            kwargs = {
                "keyring": self.update_key.keyring(),
                "keyname": self.update_key.name,
                "keyalgorithm": self.update_key.algorithm,
            }
        update = dns.update.UpdateMessage(f"{domain}.", **kwargs)
        for rc in removals:
            update.delete(f"{rc.name_fqdn}.", rc.type, rc.to_rfc1035())
        for rc in additions:
            update.add(f"{rc.name_fqdn}.", rc.ttl, rc.type, rc.to_rfc1035())

        host, port = self.master
        LOG.info(
            "Sending dynamic update for %s to %s:%d: %d additions, %d removals",
            domain,
            host,
            port,
            len(additions),
            len(removals),
        )
        try:
            response = dns.query.tcp(update, host, port=port, timeout=self.timeout)
        except (dns.exception.DNSException, OSError) as exc:
            raise ProviderError(f"Dynamic update for {domain} failed: {exc}") from exc
        rcode = response.rcode()
        if rcode != dns.rcode.NOERROR:
            raise ProviderError(f"Dynamic update for {domain} failed with rcode {dns.rcode.to_text(rcode)}")


def _auditor() -> RecordAuditor:
    auditor = RecordAuditor()
    auditor.add("MX", rejectif.mx_null)
    auditor.add("TXT", rejectif.txt_is_empty)
    return auditor


def register(registry) -> None:
    registry.register(
        "AXFRDDNS",
        AxfrDdnsProvider,
        features={
            Capability.CAN_AUTO_DNSSEC: cannot("Signing is configured on the server."),
            Capability.CAN_CONCUR: True,
            Capability.CAN_USE_DS_FOR_CHILDREN: True,
            Capability.DOC_DUAL_HOST: cannot("Apex NS records are managed on the server."),
            Capability.DOC_OFFICIALLY_SUPPORTED: True,
        },
        record_types=[
            "A",
            "AAAA",
            "CAA",
            "CNAME",
            "HTTPS",
            "LOC",
            "MX",
            "NAPTR",
            "NS",
            "PTR",
            "SRV",
            "SSHFP",
            "SVCB",
            "TLSA",
            "TXT",
            "DNSKEY:unimplemented:DNSKEY records are maintained by the server.",
        ],
        creds_fields=["master", "transfer-server", "update-key", "transfer-key", "tsig_keyfile_b64", "nameservers"],
        auditor=_auditor(),
        maintainer="dnsplane",
    )
