"""Core data models used by dnsplane."""

from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import Any, Callable

from .errors import InvariantError
from .fieldtypes import label_from_fqdn, parse_label3
from .rtypes import (
    TYPES,
    TXT,
    Payload,
    TypeRegistry,
    payload_from_legacy,
    payload_from_rdata,
    payload_from_string,
)
from .txtutil import split_segments


@dataclass(frozen=True, order=True)
class RecordKey:
    """Index of a record: fully qualified name plus type."""

    name_fqdn: str
    type: str

    def __str__(self) -> str:
        return f"{self.name_fqdn}:{self.type}"


@dataclass
class RecordConfig:
    """Canonical representation of a DNS record.

    ``fields`` holds the typed payload for ``type``. ``original`` is an
    opaque handle owned by the adapter that produced the record; the core
    never looks inside it.
    """

    type: str
    name: str
    name_fqdn: str
    fields: Payload
    ttl: int = 0
    metadata: dict[str, str] = field(default_factory=dict)
    subdomain: str = ""
    original: Any = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        info = TYPES.get(self.type)
        if type(self.fields) is not info.payload:
            raise InvariantError(
                f"{self.type} record {self.name_fqdn!r} carries a {type(self.fields).__name__} payload"
            )
        if self.name_fqdn.endswith("."):
            raise InvariantError(f"record name {self.name_fqdn!r} has a trailing dot")

    @classmethod
    def build(
        cls,
        rtype: str,
        label: str,
        origin: str,
        args: list[Any],
        ttl: int = 0,
        metadata: dict[str, str] | None = None,
        subdomain: str = "",
        registry: TypeRegistry = TYPES,
    ) -> RecordConfig:
        """Create a record from a label and positional payload arguments."""
        info = registry.get(rtype)
        name, fqdn = parse_label3(label, subdomain, origin)
        payload = info.payload.from_args(args, origin)
        return cls(rtype, name, fqdn, payload, ttl=ttl, metadata=dict(metadata or {}), subdomain=subdomain)

    @classmethod
    def from_raw(cls, raw: RawRecordConfig, origin: str, registry: TypeRegistry = TYPES) -> RecordConfig:
        """Populate a record from the front-end's raw form."""
        info = registry.get(raw.type)
        if not raw.args:
            raise InvariantError(f"raw {raw.type} record in {origin} has no label argument")
        metadata = raw.merged_metadata()
        name, fqdn = parse_label3(str(raw.args[0]), raw.subdomain, origin)
        payload = info.payload.from_args(list(raw.args[1:]), origin)
        return cls(raw.type, name, fqdn, payload, ttl=raw.ttl, metadata=metadata, subdomain=raw.subdomain)

    @classmethod
    def from_string(
        cls,
        rtype: str,
        label: str,
        origin: str,
        contents: str,
        ttl: int = 0,
        metadata: dict[str, str] | None = None,
    ) -> RecordConfig:
        """Create a record from RFC 1035 presentation text."""
        name, fqdn = parse_label3(label, "", origin)
        payload = payload_from_string(rtype, contents, origin)
        return cls(rtype, name, fqdn, payload, ttl=ttl, metadata=dict(metadata or {}))

    @classmethod
    def from_rdata(cls, owner: str, ttl: int, rtype: str, rdata, origin: str, original: Any = None) -> RecordConfig:
        """Create a record from a dnspython rdata read back from a provider."""
        name = label_from_fqdn(owner, origin)
        name, fqdn = parse_label3(name, "", origin)
        payload = payload_from_rdata(rtype, rdata, origin)
        return cls(rtype, name, fqdn, payload, ttl=ttl, original=original)

    @classmethod
    def import_from_legacy(
        cls,
        rtype: str,
        label: str,
        origin: str,
        target: str,
        ttl: int = 0,
        metadata: dict[str, str] | None = None,
        extras: dict[str, Any] | None = None,
        subdomain: str = "",
    ) -> RecordConfig:
        """Lift a pre-typed legacy record into the model."""
        name, fqdn = parse_label3(label, subdomain, origin)
        payload = payload_from_legacy(rtype, target, extras, origin)
        return cls(rtype, name, fqdn, payload, ttl=ttl, metadata=dict(metadata or {}), subdomain=subdomain)

    def set_label(self, short: str, origin: str, subdomain: str = "") -> None:
        """Set ``name`` and ``name_fqdn`` from a short label."""
        self.name, self.name_fqdn = parse_label3(short, subdomain, origin)

    def set_label_from_fqdn(self, fqdn: str, origin: str) -> None:
        """Set ``name`` and ``name_fqdn`` from a fully qualified name."""
        self.name, self.name_fqdn = parse_label3(label_from_fqdn(fqdn, origin), "", origin)

    def populate_from_string(self, rtype: str, contents: str, origin: str) -> None:
        """Replace the type and payload from RFC 1035 presentation text."""
        self.fields = payload_from_string(rtype, contents, origin)
        self.type = rtype

    @property
    def display(self) -> str:
        return f"{self.type} {self.name_fqdn} {self.to_comparable_no_ttl()} ttl={self.ttl}"

    @property
    def target(self) -> str:
        """Legacy single-string target."""
        return self.fields.legacy_target()

    @property
    def mx_preference(self) -> int:
        return getattr(self.fields, "preference", 0)

    @property
    def srv_priority(self) -> int:
        return getattr(self.fields, "priority", 0)

    @property
    def srv_weight(self) -> int:
        return getattr(self.fields, "weight", 0)

    @property
    def srv_port(self) -> int:
        return getattr(self.fields, "port", 0)

    def key(self) -> RecordKey:
        """Return the (name, type) key; R53_ALIAS is widened by its sub-type."""
        if self.type == "R53_ALIAS":
            return RecordKey(self.name_fqdn, f"R53_ALIAS_{self.fields.type}")
        return RecordKey(self.name_fqdn, self.type)

    def to_comparable_no_ttl(self) -> str:
        """Return the canonical payload text, ignoring TTL."""
        return self.fields.comparable()

    def to_diffable(self, extra: str = "") -> str:
        """Return the canonical text including TTL and optional extras."""
        text = f"{self.fields.comparable()} ttl={self.ttl}"
        return f"{text} {extra}" if extra else text

    def to_rfc1035(self) -> str:
        """Return the zone-file presentation of the payload."""
        return self.fields.presentation()

    def copy(self) -> RecordConfig:
        """Return a copy that shares no mutable state with this record."""
        return replace(self, metadata=dict(self.metadata))

    def set_target_txt(self, value: str) -> None:
        """Replace the payload of a TXT record with one logical string."""
        if self.type != "TXT":
            raise InvariantError(f"set_target_txt called on a {self.type} record")
        self.fields = TXT(value=value)

    def get_target_txt_joined(self) -> str:
        """Return the TXT value as one string."""
        return self.fields.value

    def get_target_txt_segmented(self) -> list[str]:
        """Return the TXT value cut into 255-octet character-strings."""
        return split_segments(self.fields.value)

    def map_payload(self, func: Callable[[Payload], Payload]) -> None:
        self.fields = func(self.fields)


@dataclass
class RawRecordConfig:
    """A record as emitted by the configuration front-end."""

    type: str
    args: list[Any] = field(default_factory=list)
    metas: list[dict[str, Any]] = field(default_factory=list)
    ttl: int = 0
    subdomain: str = ""
    ensure_absent: bool = False

    def merged_metadata(self) -> dict[str, str]:
        """Flatten the meta maps into one string-to-string mapping."""
        merged: dict[str, str] = {}
        for meta in self.metas:
            for key, value in meta.items():
                merged[key] = _meta_string(value)
        return merged


def _meta_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class Nameserver:
    """A delegation nameserver (FQDN without trailing dot)."""

    name: str


@dataclass
class Correction:
    """A named unit of work. Without an action it is a report line."""

    msg: str
    action: Callable[[], None] | None = field(default=None, repr=False)

    @property
    def is_report(self) -> bool:
        return self.action is None


@dataclass(frozen=True)
class UnmanagedPattern:
    """Label/type/target globs selecting records dnsplane must not touch."""

    label_pattern: str = ""
    rtype_pattern: str = ""
    target_pattern: str = ""

    @cached_property
    def _label_re(self) -> re.Pattern | None:
        return _compile_glob(self.label_pattern)

    @cached_property
    def _target_re(self) -> re.Pattern | None:
        return _compile_glob(self.target_pattern)

    @cached_property
    def _rtypes(self) -> frozenset[str]:
        items = {item.strip().upper() for item in self.rtype_pattern.split(",")}
        items.discard("")
        items.discard("*")
        return frozenset(items)

    def matches(self, rc: RecordConfig) -> bool:
        """Return True when ``rc`` is selected by every part of the pattern."""
        if self._rtypes and rc.type not in self._rtypes:
            return False
        if self._label_re is not None and not self._label_re.match(rc.name):
            return False
        if self._target_re is not None:
            target = rc.target
            if not (self._target_re.match(target) or self._target_re.match(target.rstrip("."))):
                return False
        return True

    def __str__(self) -> str:
        return f"label={self.label_pattern or '*'} rtype={self.rtype_pattern or '*'} target={self.target_pattern or '*'}"


def _compile_glob(pattern: str) -> re.Pattern | None:
    if pattern in {"", "*"}:
        return None
    return re.compile(fnmatch.translate(pattern), re.IGNORECASE)


@dataclass
class ProviderConfig:
    """A provider declaration from the desired-state document."""

    name: str
    type: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class DNSProviderInstance:
    """A DNS provider bound to a zone."""

    name: str
    provider_type: str
    driver: Any = field(repr=False)
    num_nameservers: int = -1


@dataclass
class RegistrarInstance:
    """The registrar bound to a zone."""

    name: str
    provider_type: str
    driver: Any = field(repr=False)


@dataclass
class DomainConfig:
    """Desired state of one zone.

    A name of the form ``example.com!tag`` declares one view of a
    split-horizon zone: ``name`` is the zone and ``unique_name`` keeps the tag.
    """

    name: str
    registrar_name: str = ""
    dns_provider_names: dict[str, int] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)
    records: list[RecordConfig] = field(default_factory=list)
    raw_records: list[RawRecordConfig] = field(default_factory=list)
    nameservers: list[Nameserver] = field(default_factory=list)
    keep_unknown: bool = False
    ignored_names: list[str] = field(default_factory=list)
    ignored_targets: list[str] = field(default_factory=list)
    unmanaged: list[UnmanagedPattern] = field(default_factory=list)
    unmanaged_disable_safety_check: bool = False
    auto_dnssec: str = ""
    ensure_absent: list[RecordConfig] = field(default_factory=list)
    unique_name: str = ""
    tag: str = ""
    registrar: RegistrarInstance | None = field(default=None, repr=False)
    dns_providers: list[DNSProviderInstance] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        if "!" in self.name:
            self.unique_name = self.name
            self.name, self.tag = self.name.split("!", 1)
        elif not self.unique_name:
            self.unique_name = self.name

    @cached_property
    def ignore_patterns(self) -> list[UnmanagedPattern]:
        """All ignore rules of the zone, compiled once."""
        patterns = [UnmanagedPattern(label_pattern=name) for name in self.ignored_names]
        patterns.extend(UnmanagedPattern(target_pattern=target) for target in self.ignored_targets)
        patterns.extend(self.unmanaged)
        return patterns

    def copy(self) -> DomainConfig:
        """Return a copy whose record lists can be changed freely."""
        return replace(
            self,
            metadata=dict(self.metadata),
            records=[rc.copy() for rc in self.records],
            nameservers=list(self.nameservers),
            ensure_absent=[rc.copy() for rc in self.ensure_absent],
            dns_providers=list(self.dns_providers),
        )


@dataclass
class DNSConfig:
    """The whole desired-state document."""

    registrars: list[ProviderConfig] = field(default_factory=list)
    dns_providers: list[ProviderConfig] = field(default_factory=list)
    domains: list[DomainConfig] = field(default_factory=list)

    def find_domain(self, name: str) -> DomainConfig | None:
        """Return the domain with the given unique name."""
        for dc in self.domains:
            if dc.unique_name == name:
                return dc
        return None
