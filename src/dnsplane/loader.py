"""Load and validate the desired-state document.

The document is JSON or YAML, optionally a Jinja2 template, and follows the
shape produced by the configuration front-end: ``registrars``,
``dns_providers`` and ``domains``.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError, DnsplaneError
from .models import (
    DNSConfig,
    DomainConfig,
    Nameserver,
    ProviderConfig,
    RawRecordConfig,
    RecordConfig,
    UnmanagedPattern,
)
from .normalize import punycode_name

LOG = logging.getLogger(__name__)

LEGACY_KNOWN_FIELDS = {"type", "name", "target", "ttl", "meta", "subdomain"}


class ProviderSpec(BaseModel):
    """Schema for a registrar or DNS provider declaration."""

    name: str
    type: str = ""
    meta: dict[str, Any] = Field(default_factory=dict)


class RawRecordSpec(BaseModel):
    """Schema for a record as emitted by the front-end."""

    type: str
    args: list[Any] = Field(default_factory=list)
    metas: list[dict[str, Any]] = Field(default_factory=list)
    ttl: int = Field(default=0, ge=0)
    subdomain: str = ""
    ensure_absent: bool = False

    @field_validator("type")
    @classmethod
    def _uppercase_type(cls, value: str) -> str:
        """Normalise RR type to uppercase."""
        return value.upper()


class RecordSpec(BaseModel):
    """Schema for a pre-typed legacy record; side fields such as
    ``mxpreference`` are accepted as extras."""

    model_config = ConfigDict(extra="allow")

    type: str
    name: str = "@"
    target: str = ""
    ttl: int = Field(default=0, ge=0)
    meta: dict[str, Any] = Field(default_factory=dict)
    subdomain: str = ""

    @field_validator("type")
    @classmethod
    def _uppercase_type(cls, value: str) -> str:
        return value.upper()


class NameserverSpec(BaseModel):
    name: str


class UnmanagedSpec(BaseModel):
    """Schema for an IGNORE triple."""

    label_pattern: str = ""
    rtype_pattern: str = ""
    target_pattern: str = ""


class DomainSpec(BaseModel):
    """Schema for one zone."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    registrar: str = ""
    dns_providers: dict[str, int] = Field(default_factory=dict, alias="dnsProviders")
    meta: dict[str, Any] = Field(default_factory=dict)
    records: list[RecordSpec] = Field(default_factory=list)
    rawrecords: list[RawRecordSpec] = Field(default_factory=list)
    nameservers: list[NameserverSpec | str] = Field(default_factory=list)
    keepunknown: bool = False
    ignored_names: list[str] = Field(default_factory=list)
    ignored_targets: list[str] = Field(default_factory=list)
    unmanaged: list[UnmanagedSpec] = Field(default_factory=list)
    unmanaged_disable_safety_check: bool = False
    auto_dnssec: Literal["", "on", "off"] = ""


class ConfigSpec(BaseModel):
    """Schema for the whole document."""

    registrars: list[ProviderSpec] = Field(default_factory=list)
    dns_providers: list[ProviderSpec] = Field(default_factory=list)
    domains: list[DomainSpec] = Field(default_factory=list)


def _render_template(path: Path, extra_context: dict[str, Any] | None = None) -> str:
    """Render the document through Jinja2."""
    env = Environment(
        loader=FileSystemLoader(str(path.parent)),
        undefined=StrictUndefined,
        autoescape=False,
        keep_trailing_newline=True,
    )
    template = env.get_template(path.name)
    context: dict[str, Any] = {"env": os.environ}
    if extra_context:
        context.update(extra_context)
    return template.render(**context)


def _stringify(meta: dict[str, Any]) -> dict[str, str]:
    return {key: ("true" if value is True else "false" if value is False else str(value)) for key, value in meta.items()}


def _zone_name(name: str) -> str:
    base, bang, tag = name.strip().partition("!")
    return f"{punycode_name(base.lower().rstrip('.'))}{bang}{tag}"


def _build_domain(spec: DomainSpec, errors: list[str]) -> DomainConfig:
    dc = DomainConfig(
        name=_zone_name(spec.name),
        registrar_name=spec.registrar,
        dns_provider_names=dict(spec.dns_providers),
        metadata=_stringify(spec.meta),
        keep_unknown=spec.keepunknown,
        ignored_names=list(spec.ignored_names),
        ignored_targets=list(spec.ignored_targets),
        unmanaged=[UnmanagedPattern(u.label_pattern, u.rtype_pattern, u.target_pattern) for u in spec.unmanaged],
        unmanaged_disable_safety_check=spec.unmanaged_disable_safety_check,
        auto_dnssec=spec.auto_dnssec,
    )
    for ns in spec.nameservers:
        dc.nameservers.append(Nameserver(ns if isinstance(ns, str) else ns.name))

    for legacy in spec.records:
        extras = {key: value for key, value in (legacy.model_extra or {}).items() if key not in LEGACY_KNOWN_FIELDS}
        try:
            dc.records.append(
                RecordConfig.import_from_legacy(
                    legacy.type,
                    legacy.name,
                    dc.name,
                    legacy.target,
                    ttl=legacy.ttl,
                    metadata=_stringify(legacy.meta),
                    extras=extras,
                    subdomain=legacy.subdomain,
                )
            )
        except DnsplaneError as exc:
            errors.append(f"{dc.unique_name}: {legacy.type} {legacy.name}: {exc}")

    for index, raw_spec in enumerate(spec.rawrecords):
        raw = RawRecordConfig(
            type=raw_spec.type,
            args=list(raw_spec.args),
            metas=list(raw_spec.metas),
            ttl=raw_spec.ttl,
            subdomain=raw_spec.subdomain,
            ensure_absent=raw_spec.ensure_absent,
        )
        dc.raw_records.append(raw)
        if raw.type == "NAMESERVER":
            if len(raw.args) < 2:
                errors.append(f"{dc.unique_name}: NAMESERVER #{index} needs a name")
                continue
            dc.nameservers.append(Nameserver(str(raw.args[-1])))
            continue
        try:
            rc = RecordConfig.from_raw(raw, dc.name)
        except DnsplaneError as exc:
            errors.append(f"{dc.unique_name}: {raw.type} record #{index} {raw.args!r}: {exc}")
            continue
        if raw.ensure_absent:
            dc.ensure_absent.append(rc)
        else:
            dc.records.append(rc)
    return dc


def build_dns_config(spec: ConfigSpec) -> DNSConfig:
    """Turn a validated document into the core model.

    Every record that cannot be parsed is reported; they are raised together.
    """
    errors: list[str] = []
    config = DNSConfig(
        registrars=[ProviderConfig(p.name, p.type, dict(p.meta)) for p in spec.registrars],
        dns_providers=[ProviderConfig(p.name, p.type, dict(p.meta)) for p in spec.dns_providers],
    )
    for domain in spec.domains:
        try:
            config.domains.append(_build_domain(domain, errors))
        except DnsplaneError as exc:
            errors.append(f"{domain.name}: {exc}")
    if errors:
        raise ConfigError(f"{len(errors)} errors in the configuration:\n" + "\n".join(errors))
    LOG.debug("Loaded %d domains", len(config.domains))
    return config


def parse_document(text: str, source: str = "<config>", as_json: bool = False) -> ConfigSpec:
    """Parse and validate the document text."""
    try:
        data = json.loads(text) if as_json else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to parse {source}: {exc}") from exc
    try:
        return ConfigSpec.model_validate(data or {})
    except ValidationError as exc:
        raise ConfigError(f"{source} validation error: {exc}") from exc


def load_dns_config(path: Path, template_vars: dict[str, Any] | None = None) -> DNSConfig:
    """Load a desired-state document from ``path``."""
    if not path.exists():
        raise ConfigError(f"configuration file {path} does not exist")
    try:
        rendered = _render_template(path, template_vars)
    except TemplateError as exc:
        raise ConfigError(f"Failed to render {path}: {exc}") from exc
    spec = parse_document(rendered, str(path), as_json=path.suffix == ".json")
    return build_dns_config(spec)
