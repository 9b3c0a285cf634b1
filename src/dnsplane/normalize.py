"""Normalise the desired state and validate it against provider capabilities."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable

import idna

from .capabilities import Capability
from .errors import (
    AuditError,
    CapabilityError,
    ConfigError,
    DnsplaneError,
    ValidationWarning,
    ZoneScopedError,
)
from .models import DNSConfig, DomainConfig, Nameserver, RecordConfig
from .providers.registry import ProviderRegistry
from .rtypes import DIRECTIVE_TYPES, TYPES
from .transform import decode_transform_table, transform_ip

LOG = logging.getLogger(__name__)

DEFAULT_TTL = 300

# Types whose owner names legitimately contain underscores.
UNDERSCORE_TYPES = frozenset({"CNAME", "DNSKEY", "DS", "HTTPS", "NAPTR", "PTR", "SRV", "SVCB", "TLSA", "TXT"})
CAA_TAGS = frozenset({"issue", "issuewild", "iodef"})


def punycode_name(name: str) -> str:
    """Return ``name`` with every non-ASCII label in its ACE form."""
    if name.isascii():
        return name
    labels = []
    for label in name.split("."):
        if label.isascii():
            labels.append(label)
            continue
        try:
            labels.append(idna.alabel(idna.uts46_remap(label, std3_rules=False)).decode("ascii"))
        except idna.IDNAError as exc:
            raise ConfigError(f"cannot punycode {name!r}: {exc}") from exc
    return ".".join(labels)


def _canonical_hostname(value: str) -> str:
    return punycode_name(value.lower())


def normalize_record(rc: RecordConfig, default_ttl: int = DEFAULT_TTL) -> None:
    """Normalise one record in place. Applying it twice changes nothing."""
    rc.name = punycode_name(rc.name.lower())
    rc.name_fqdn = punycode_name(rc.name_fqdn.lower())
    rc.map_payload(lambda payload: payload.map_hostnames(_canonical_hostname))
    if TYPES.get(rc.type).lowercase_target:
        rc.map_payload(lambda payload: payload.map_target(str.lower))
    if rc.ttl == 0:
        rc.ttl = default_ttl


def normalize_records(records: Iterable[RecordConfig], default_ttl: int = DEFAULT_TTL) -> None:
    """Normalise desired or observed records in place."""
    for rc in records:
        normalize_record(rc, default_ttl)


def _check_label(rc: RecordConfig, dc: DomainConfig) -> list[DnsplaneError]:
    errors: list[DnsplaneError] = []
    label = rc.name
    if not label:
        errors.append(ConfigError(f"{rc.type} record in {dc.name} has an empty label"))
    elif label.endswith("."):
        errors.append(ConfigError(f"label {label!r} in {dc.name} has a trailing dot"))
    elif (label == dc.name or label.endswith(f".{dc.name}")) and rc.metadata.get("skip_fqdn_check") != "true":
        errors.append(
            ConfigError(
                f"label {label!r} in {dc.name} repeats the domain name "
                "(use a trailing dot for an FQDN, or set skip_fqdn_check)"
            )
        )
    if "_" in label and rc.type not in UNDERSCORE_TYPES:
        errors.append(ValidationWarning(f"label {rc.name_fqdn} contains an underscore ({rc.type})", zone=dc.name))
    return errors


def _check_target(rc: RecordConfig, dc: DomainConfig) -> list[DnsplaneError]:
    errors: list[DnsplaneError] = []
    where = f"{rc.type} record {rc.name_fqdn}"
    if rc.type in {"CNAME", "ALIAS"} and rc.target == ".":
        errors.append(ConfigError(f"{where} points at the root"))
    if rc.type == "CNAME":
        if rc.name == "@":
            errors.append(ConfigError(f"cannot create a CNAME at the apex of {dc.name}"))
        if rc.target.rstrip(".") == rc.name_fqdn:
            errors.append(ConfigError(f"{where} points at itself"))
    elif rc.type == "CAA" and rc.fields.tag not in CAA_TAGS:
        errors.append(ConfigError(f"{where} has invalid CAA tag {rc.fields.tag!r}"))
    elif rc.type == "TLSA":
        fields = rc.fields
        if fields.usage > 3 or fields.selector > 1 or fields.matching_type > 2:
            errors.append(ConfigError(f"{where} has an out-of-range usage, selector or matching type"))
    elif rc.type == "SOA":
        if rc.name != "@":
            errors.append(ConfigError(f"{where} must be at the apex"))
        if "@" in rc.fields.mbox:
            errors.append(ConfigError(f"{where} mbox must use a dot instead of '@'"))
    elif rc.type == "R53_ALIAS" and rc.fields.type not in TYPES:
        errors.append(ConfigError(f"{where} aliases unknown type {rc.fields.type!r}"))
    return errors


def _check_cnames(dc: DomainConfig) -> list[DnsplaneError]:
    errors: list[DnsplaneError] = []
    by_label: dict[str, list[RecordConfig]] = defaultdict(list)
    for rc in dc.records:
        by_label[rc.name_fqdn].append(rc)
    for fqdn in sorted(by_label):
        records = by_label[fqdn]
        cnames = [rc for rc in records if rc.type == "CNAME"]
        if len(cnames) > 1:
            errors.append(ConfigError(f"{fqdn} has more than one CNAME record"))
        if cnames and len(cnames) != len(records):
            others = sorted({rc.type for rc in records if rc.type != "CNAME"})
            errors.append(ConfigError(f"{fqdn} has a CNAME and other records ({', '.join(others)})"))
    return errors


def _check_duplicates(dc: DomainConfig) -> list[DnsplaneError]:
    errors: list[DnsplaneError] = []
    seen: set[tuple] = set()
    for rc in dc.records:
        identity = (rc.key(), rc.to_comparable_no_ttl())
        if identity in seen:
            errors.append(ConfigError(f"duplicate {rc.type} record {rc.name_fqdn} {rc.to_comparable_no_ttl()}"))
        seen.add(identity)
    return errors


def _check_ttl_consistency(dc: DomainConfig) -> list[DnsplaneError]:
    ttls: dict = defaultdict(set)
    for rc in dc.records:
        ttls[rc.key()].add(rc.ttl)
    return [
        ValidationWarning(f"{key} has inconsistent TTLs {sorted(values)}", zone=dc.name)
        for key, values in sorted(ttls.items())
        if len(values) > 1
    ]


def check_provider_capabilities(
    dc: DomainConfig, provider_types: dict[str, str], registry: ProviderRegistry
) -> list[ZoneScopedError]:
    """Return one error per record or feature the zone's providers cannot handle."""
    errors: list[ZoneScopedError] = []
    for provider_name in sorted(dc.dns_provider_names):
        ptype = provider_types.get(provider_name, "")
        for rc in dc.records:
            if rc.type in DIRECTIVE_TYPES:
                continue
            if rc.type == "DS":
                if registry.has_capability(ptype, Capability.CAN_USE_DS):
                    continue
                if registry.has_capability(ptype, Capability.CAN_USE_DS_FOR_CHILDREN) and rc.name != "@":
                    continue
            elif registry.supports_type(ptype, rc.type):
                continue
            errors.append(
                CapabilityError(
                    f"provider {provider_name} ({ptype}) does not support {rc.type} record {rc.name_fqdn} "
                    f"in domain {dc.name}",
                    zone=dc.unique_name,
                    provider=provider_name,
                )
            )
        if dc.auto_dnssec in {"on", "off"} and not registry.has_capability(ptype, Capability.CAN_AUTO_DNSSEC):
            errors.append(
                CapabilityError(
                    f"provider {provider_name} ({ptype}) does not support AUTODNSSEC in domain {dc.name}",
                    zone=dc.unique_name,
                    provider=provider_name,
                )
            )
    return errors


def audit_domain(dc: DomainConfig, provider_types: dict[str, str], registry: ProviderRegistry) -> list[AuditError]:
    """Run every bound provider's auditor; one aggregated error per provider."""
    errors: list[AuditError] = []
    records = [rc for rc in dc.records if rc.type not in DIRECTIVE_TYPES]
    for provider_name in sorted(dc.dns_provider_names):
        ptype = provider_types.get(provider_name, "")
        if ptype not in registry:
            continue
        violations = registry.audit(ptype, records)
        if violations:
            errors.append(
                AuditError(
                    f"{ptype} rejects domain {dc.name}: " + "; ".join(violations),
                    zone=dc.unique_name,
                    provider=provider_name,
                    violations=violations,
                )
            )
    return errors


def _apply_import_transforms(config: DNSConfig, dc: DomainConfig) -> list[DnsplaneError]:
    errors: list[DnsplaneError] = []
    kept: list[RecordConfig] = []
    imported: list[RecordConfig] = []
    for rc in dc.records:
        if rc.type != "IMPORT_TRANSFORM":
            kept.append(rc)
            continue
        source = config.find_domain(rc.fields.domain)
        if source is None:
            errors.append(ConfigError(f"IMPORT_TRANSFORM in {dc.name} refers to unknown domain {rc.fields.domain}"))
            continue
        try:
            table = decode_transform_table(rc.fields.table)
        except ConfigError as exc:
            errors.append(exc)
            continue
        for src in source.records:
            if src.type not in {"A", "CNAME"}:
                continue
            label = src.name_fqdn
            if rc.fields.suffix:
                label = f"{label}.{rc.fields.suffix}"
            if src.type == "CNAME":
                imported.append(RecordConfig.build("CNAME", label, dc.name, [src.target], ttl=rc.ttl))
                continue
            for address in transform_ip(src.target, table):
                imported.append(RecordConfig.build("A", label, dc.name, [address], ttl=rc.ttl))
    dc.records = kept + imported
    return errors


def _apply_record_transforms(dc: DomainConfig) -> list[DnsplaneError]:
    errors: list[DnsplaneError] = []
    result: list[RecordConfig] = []
    for rc in dc.records:
        table_text = rc.metadata.get("transform")
        if rc.type != "A" or not table_text:
            result.append(rc)
            continue
        try:
            table = decode_transform_table(table_text)
        except ConfigError as exc:
            errors.append(exc)
            result.append(rc)
            continue
        metadata = {key: value for key, value in rc.metadata.items() if key != "transform"}
        for address in transform_ip(rc.target, table):
            result.append(RecordConfig.build("A", rc.name, dc.name, [address], ttl=rc.ttl, metadata=metadata))
    dc.records = result
    return errors


def validate_and_normalize_config(
    config: DNSConfig,
    registry: ProviderRegistry,
    default_ttl: int = DEFAULT_TTL,
) -> list[DnsplaneError]:
    """Normalise ``config`` in place and return every finding.

    Findings are :class:`ConfigError` (fatal for the run),
    :class:`ZoneScopedError` subclasses (fatal for one zone) and
    :class:`ValidationWarning` (informational).
    """
    errors: list[DnsplaneError] = []

    provider_types: dict[str, str] = {}
    registrar_types: dict[str, str] = {}
    for kind, declared, table in (
        ("DNS provider", config.dns_providers, provider_types),
        ("registrar", config.registrars, registrar_types),
    ):
        for provider in declared:
            if provider.name in table:
                errors.append(ConfigError(f"{kind} {provider.name} declared twice"))
                continue
            table[provider.name] = provider.type
            if not provider.type:
                errors.append(ConfigError(f"{kind} {provider.name} has no type"))
            elif provider.type not in registry:
                errors.append(ConfigError(f"{kind} {provider.name} has unknown type {provider.type}"))
            elif kind == "registrar" and not registry.has_capability(provider.type, Capability.IS_REGISTRAR):
                errors.append(ConfigError(f"{provider.type} cannot be used as a registrar"))
            elif kind == "DNS provider" and not registry.has_capability(
                provider.type, Capability.IS_DNS_SERVICE_PROVIDER
            ):
                errors.append(ConfigError(f"{provider.type} cannot be used as a DNS provider"))

    seen: set[str] = set()
    for dc in config.domains:
        if dc.unique_name in seen:
            errors.append(ConfigError(f"domain {dc.unique_name} declared twice"))
        seen.add(dc.unique_name)
        if dc.registrar_name and dc.registrar_name not in registrar_types:
            errors.append(ConfigError(f"domain {dc.name} uses undeclared registrar {dc.registrar_name}"))
        for provider_name in dc.dns_provider_names:
            if provider_name not in provider_types:
                errors.append(ConfigError(f"domain {dc.name} uses undeclared DNS provider {provider_name}"))
        if dc.auto_dnssec not in {"", "on", "off"}:
            errors.append(ConfigError(f"domain {dc.name} has invalid auto_dnssec {dc.auto_dnssec!r}"))

        for ns in list(dc.nameservers):
            if ns.name.endswith("."):
                errors.append(ConfigError(f"nameserver {ns.name!r} of {dc.name} must not end with a dot"))
        dc.nameservers = [Nameserver(punycode_name(ns.name.lower())) for ns in dc.nameservers]

        for rc in dc.records + dc.ensure_absent:
            errors.extend(_check_label(rc, dc))
            normalize_record(rc, default_ttl)
            errors.extend(_check_target(rc, dc))

    for dc in config.domains:
        errors.extend(_apply_import_transforms(config, dc))
        errors.extend(_apply_record_transforms(dc))
        normalize_records(dc.records, default_ttl)

    for dc in config.domains:
        errors.extend(_check_cnames(dc))
        errors.extend(_check_duplicates(dc))
        errors.extend(_check_ttl_consistency(dc))
        errors.extend(check_provider_capabilities(dc, provider_types, registry))
        errors.extend(audit_domain(dc, provider_types, registry))

    for error in errors:
        if isinstance(error, ValidationWarning):
            LOG.warning("%s", error)
    return errors


def split_findings(
    findings: Iterable[DnsplaneError],
) -> tuple[list[DnsplaneError], dict[str, list[ZoneScopedError]], list[ValidationWarning]]:
    """Split findings into (fatal, per-zone, warnings)."""
    fatal: list[DnsplaneError] = []
    per_zone: dict[str, list[ZoneScopedError]] = defaultdict(list)
    warnings: list[ValidationWarning] = []
    for finding in findings:
        if isinstance(finding, ValidationWarning):
            warnings.append(finding)
        elif isinstance(finding, ZoneScopedError):
            per_zone[finding.zone].append(finding)
        else:
            fatal.append(finding)
    return fatal, dict(per_zone), warnings
