"""Record-type payloads and the process-wide record-type registry.

Each record type has exactly one frozen payload dataclass. Payload fields
carry their :class:`~dnsplane.fieldtypes.FieldKind` in the dataclass field
metadata, so parsing, rendering and comparison are driven by one table.
"""

from __future__ import annotations

import base64
from dataclasses import MISSING, dataclass, field, fields, replace
from typing import Any, Callable, ClassVar, Sequence

import dns.exception
import dns.name
import dns.rdata
import dns.rdataclass
import dns.rdatatype

from .capabilities import Capability, capability_for_type
from .errors import FieldParseError, RegistrationError, UnknownRecordTypeError
from .fieldtypes import FieldKind
from .txtutil import join_segments, quote_segments


def _f(kind: FieldKind, optional: bool = False):
    default = "" if optional else MISSING
    return field(default=default, metadata={"kind": kind, "optional": optional})


@dataclass(frozen=True)
class Payload:
    """Base class of every typed record payload."""

    TARGET_FIELD: ClassVar[str | None] = None

    @classmethod
    def field_kinds(cls) -> list[tuple[str, FieldKind]]:
        """Return ``(name, kind)`` for each payload field in order."""
        return [(f.name, f.metadata["kind"]) for f in fields(cls)]

    @classmethod
    def from_args(cls, args: Sequence[Any], origin: str = "") -> "Payload":
        """Parse positional arguments into a payload."""
        specs = fields(cls)
        required = sum(1 for f in specs if not f.metadata["optional"])
        if not required <= len(args) <= len(specs):
            expected = str(required) if required == len(specs) else f"{required}-{len(specs)}"
            raise FieldParseError(cls.__name__, list(args), f"expected {expected} arguments, got {len(args)}")
        values = {}
        for spec, raw in zip(specs, args):
            values[spec.name] = spec.metadata["kind"].parse(raw, origin)
        return cls(**values)

    def comparable(self) -> str:
        """Return the canonical text used for equality in the diff engine."""
        parts = []
        for name, kind in self.field_kinds():
            value = getattr(self, name)
            if value == "" and kind is not FieldKind.QSTRING:
                continue
            parts.append(kind.render(value))
        return " ".join(parts)

    def presentation(self) -> str:
        """Return the RFC 1035 presentation text of the payload."""
        return self.comparable()

    def legacy_target(self) -> str:
        """Legacy single-string view of the payload."""
        if self.TARGET_FIELD is None:
            return self.comparable()
        return str(getattr(self, self.TARGET_FIELD))

    def map_hostnames(self, func: Callable[[str], str]) -> "Payload":
        """Return a copy with ``func`` applied to every hostname field."""
        changes = {
            name: func(getattr(self, name))
            for name, kind in self.field_kinds()
            if kind.is_hostname and getattr(self, name) not in ("", ".")
        }
        return replace(self, **changes) if changes else self

    def map_target(self, func: Callable[[str], str]) -> "Payload":
        """Return a copy with ``func`` applied to the legacy target field."""
        if self.TARGET_FIELD is None:
            return self
        return replace(self, **{self.TARGET_FIELD: func(getattr(self, self.TARGET_FIELD))})


@dataclass(frozen=True)
class A(Payload):
    TARGET_FIELD: ClassVar[str] = "a"
    a: str = _f(FieldKind.IPV4)


@dataclass(frozen=True)
class AAAA(Payload):
    TARGET_FIELD: ClassVar[str] = "aaaa"
    aaaa: str = _f(FieldKind.IPV6)


@dataclass(frozen=True)
class CNAME(Payload):
    TARGET_FIELD: ClassVar[str] = "target"
    target: str = _f(FieldKind.HOSTNAME)


@dataclass(frozen=True)
class ALIAS(CNAME):
    pass


@dataclass(frozen=True)
class NS(CNAME):
    pass


@dataclass(frozen=True)
class PTR(CNAME):
    pass


@dataclass(frozen=True)
class MX(Payload):
    TARGET_FIELD: ClassVar[str] = "mx"
    preference: int = _f(FieldKind.UINT16)
    mx: str = _f(FieldKind.HOSTNAME)


@dataclass(frozen=True)
class SRV(Payload):
    TARGET_FIELD: ClassVar[str] = "target"
    priority: int = _f(FieldKind.UINT16)
    weight: int = _f(FieldKind.UINT16)
    port: int = _f(FieldKind.UINT16)
    target: str = _f(FieldKind.HOSTNAME)


@dataclass(frozen=True)
class TXT(Payload):
    TARGET_FIELD: ClassVar[str] = "value"
    value: str = _f(FieldKind.QSTRING)

    @classmethod
    def from_args(cls, args: Sequence[Any], origin: str = "") -> "TXT":
        if not args:
            raise FieldParseError("TXT", list(args), "expected at least 1 argument")
        return cls(value=join_segments(FieldKind.STRING.parse(arg) for arg in args))

    def presentation(self) -> str:
        return quote_segments(self.value)


@dataclass(frozen=True)
class CAA(Payload):
    TARGET_FIELD: ClassVar[str] = "value"
    flag: int = _f(FieldKind.UINT8)
    tag: str = _f(FieldKind.TOKEN)
    value: str = _f(FieldKind.QSTRING)


@dataclass(frozen=True)
class TLSA(Payload):
    TARGET_FIELD: ClassVar[str] = "certificate"
    usage: int = _f(FieldKind.UINT8)
    selector: int = _f(FieldKind.UINT8)
    matching_type: int = _f(FieldKind.UINT8)
    certificate: str = _f(FieldKind.HEX)


@dataclass(frozen=True)
class SSHFP(Payload):
    TARGET_FIELD: ClassVar[str] = "fingerprint"
    algorithm: int = _f(FieldKind.UINT8)
    fingerprint_type: int = _f(FieldKind.UINT8)
    fingerprint: str = _f(FieldKind.HEX)


@dataclass(frozen=True)
class DS(Payload):
    TARGET_FIELD: ClassVar[str] = "digest"
    key_tag: int = _f(FieldKind.UINT16)
    algorithm: int = _f(FieldKind.UINT8)
    digest_type: int = _f(FieldKind.UINT8)
    digest: str = _f(FieldKind.HEX)


@dataclass(frozen=True)
class DNSKEY(Payload):
    TARGET_FIELD: ClassVar[str] = "public_key"
    flags: int = _f(FieldKind.UINT16)
    protocol: int = _f(FieldKind.UINT8)
    algorithm: int = _f(FieldKind.UINT8)
    public_key: str = _f(FieldKind.BASE64)


@dataclass(frozen=True)
class NAPTR(Payload):
    TARGET_FIELD: ClassVar[str] = "replacement"
    order: int = _f(FieldKind.UINT16)
    preference: int = _f(FieldKind.UINT16)
    flags: str = _f(FieldKind.QSTRING)
    service: str = _f(FieldKind.QSTRING)
    regexp: str = _f(FieldKind.QSTRING)
    replacement: str = _f(FieldKind.HOSTNAME)


def _wire_text(rtype: str, text: str, origin: str = "") -> str:
    """Round-trip presentation text through dnspython's parser."""
    try:
        rdata = dns.rdata.from_text(
            dns.rdataclass.IN,
            dns.rdatatype.from_text(rtype),
            text,
            origin=dns.name.from_text(origin) if origin else None,
            relativize=False,
        )
    except (dns.exception.DNSException, ValueError) as exc:
        raise FieldParseError(rtype, text, str(exc)) from exc
    return rdata.to_text()


@dataclass(frozen=True)
class LOC(Payload):
    text: str = _f(FieldKind.STRING)

    @classmethod
    def from_args(cls, args: Sequence[Any], origin: str = "") -> "LOC":
        if not args:
            raise FieldParseError("LOC", list(args), "expected a location")
        return cls(text=_wire_text("LOC", " ".join(str(arg) for arg in args)))


@dataclass(frozen=True)
class SVCB(Payload):
    TARGET_FIELD: ClassVar[str] = "target"
    priority: int = _f(FieldKind.UINT16)
    target: str = _f(FieldKind.HOSTNAME)
    params: str = _f(FieldKind.STRING, optional=True)

    @classmethod
    def from_args(cls, args: Sequence[Any], origin: str = "") -> "SVCB":
        parsed = super().from_args(args, origin)
        if not parsed.params:
            return parsed
        rtype = "HTTPS" if isinstance(parsed, HTTPS) else "SVCB"
        canonical = _wire_text(rtype, f"{parsed.priority} {parsed.target} {parsed.params}")
        params = canonical.split(None, 2)[2] if len(canonical.split(None, 2)) == 3 else ""
        return replace(parsed, params=params)


@dataclass(frozen=True)
class HTTPS(SVCB):
    pass


@dataclass(frozen=True)
class SOA(Payload):
    TARGET_FIELD: ClassVar[str] = "ns"
    ns: str = _f(FieldKind.HOSTNAME)
    mbox: str = _f(FieldKind.HOSTNAME)
    serial: int = _f(FieldKind.UINT32)
    refresh: int = _f(FieldKind.UINT32)
    retry: int = _f(FieldKind.UINT32)
    expire: int = _f(FieldKind.UINT32)
    minttl: int = _f(FieldKind.UINT32)

    def comparable(self) -> str:
        # The serial is managed by the provider and never drives a change.
        return f"{self.ns} {self.mbox} {self.refresh} {self.retry} {self.expire} {self.minttl}"

    def presentation(self) -> str:
        return f"{self.ns} {self.mbox} {self.serial} {self.refresh} {self.retry} {self.expire} {self.minttl}"


@dataclass(frozen=True)
class R53_ALIAS(Payload):
    TARGET_FIELD: ClassVar[str] = "target"
    type: str = _f(FieldKind.TOKEN)
    target: str = _f(FieldKind.HOSTNAME)
    zone_id: str = _f(FieldKind.TOKEN, optional=True)


@dataclass(frozen=True)
class AZURE_ALIAS(Payload):
    TARGET_FIELD: ClassVar[str] = "target"
    type: str = _f(FieldKind.TOKEN)
    target: str = _f(FieldKind.TOKEN)


@dataclass(frozen=True)
class CF_SINGLE_REDIRECT(Payload):
    TARGET_FIELD: ClassVar[str] = "then"
    name: str = _f(FieldKind.QSTRING)
    code: int = _f(FieldKind.UINT16)
    when: str = _f(FieldKind.QSTRING)
    then: str = _f(FieldKind.QSTRING)


@dataclass(frozen=True)
class AKAMAICDN(Payload):
    TARGET_FIELD: ClassVar[str] = "target"
    target: str = _f(FieldKind.TOKEN)


@dataclass(frozen=True)
class AKAMAITLC(AKAMAICDN):
    pass


@dataclass(frozen=True)
class PAGE_RULE(Payload):
    TARGET_FIELD: ClassVar[str] = "to"
    from_: str = _f(FieldKind.QSTRING)
    to: str = _f(FieldKind.QSTRING)
    code: int = _f(FieldKind.UINT16)


@dataclass(frozen=True)
class URL(Payload):
    TARGET_FIELD: ClassVar[str] = "target"
    target: str = _f(FieldKind.TOKEN)


@dataclass(frozen=True)
class URL301(URL):
    pass


@dataclass(frozen=True)
class FRAME(URL):
    pass


@dataclass(frozen=True)
class NAMESERVER(Payload):
    TARGET_FIELD: ClassVar[str] = "target"
    target: str = _f(FieldKind.TOKEN)


@dataclass(frozen=True)
class IMPORT_TRANSFORM(Payload):
    TARGET_FIELD: ClassVar[str] = "domain"
    table: str = _f(FieldKind.STRING)
    domain: str = _f(FieldKind.TOKEN)
    suffix: str = _f(FieldKind.TOKEN, optional=True)


@dataclass(frozen=True)
class RecordTypeInfo:
    """Registry entry for one record type."""

    name: str
    payload: type[Payload]
    pseudo: bool = False
    lowercase_target: bool = False

    @property
    def capability(self) -> Capability | None:
        return capability_for_type(self.name)


class TypeRegistry:
    """Maps record-type names to their payload class and metadata."""

    def __init__(self) -> None:
        self._types: dict[str, RecordTypeInfo] = {}
        self._frozen = False

    def register(self, info: RecordTypeInfo) -> None:
        """Add a record type; registering a name twice is an error."""
        if self._frozen:
            raise RegistrationError(f"record type registry is frozen; cannot add {info.name}")
        if info.name != info.name.upper():
            raise RegistrationError(f"record type {info.name!r} must be uppercase")
        if info.name in self._types:
            raise RegistrationError(f"record type {info.name} registered twice")
        self._types[info.name] = info

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> RecordTypeInfo:
        """Return the entry for ``name`` or raise UnknownRecordTypeError."""
        try:
            return self._types[name]
        except KeyError:
            raise UnknownRecordTypeError(f"unknown record type {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def names(self) -> list[str]:
        return sorted(self._types)


_BUILTIN_TYPES = [
    RecordTypeInfo("A", A),
    RecordTypeInfo("AAAA", AAAA),
    RecordTypeInfo("ALIAS", ALIAS, pseudo=True, lowercase_target=True),
    RecordTypeInfo("CAA", CAA),
    RecordTypeInfo("CNAME", CNAME, lowercase_target=True),
    RecordTypeInfo("DNSKEY", DNSKEY),
    RecordTypeInfo("DS", DS),
    RecordTypeInfo("HTTPS", HTTPS),
    RecordTypeInfo("LOC", LOC),
    RecordTypeInfo("MX", MX, lowercase_target=True),
    RecordTypeInfo("NAPTR", NAPTR),
    RecordTypeInfo("NS", NS, lowercase_target=True),
    RecordTypeInfo("PTR", PTR, lowercase_target=True),
    RecordTypeInfo("SOA", SOA),
    RecordTypeInfo("SRV", SRV),
    RecordTypeInfo("SSHFP", SSHFP),
    RecordTypeInfo("SVCB", SVCB),
    RecordTypeInfo("TLSA", TLSA),
    RecordTypeInfo("TXT", TXT),
    RecordTypeInfo("AKAMAICDN", AKAMAICDN, pseudo=True),
    RecordTypeInfo("AKAMAITLC", AKAMAITLC, pseudo=True),
    RecordTypeInfo("AZURE_ALIAS", AZURE_ALIAS, pseudo=True, lowercase_target=True),
    RecordTypeInfo("CF_SINGLE_REDIRECT", CF_SINGLE_REDIRECT, pseudo=True),
    RecordTypeInfo("FRAME", FRAME, pseudo=True),
    RecordTypeInfo("IMPORT_TRANSFORM", IMPORT_TRANSFORM, pseudo=True),
    RecordTypeInfo("NAMESERVER", NAMESERVER, pseudo=True),
    RecordTypeInfo("PAGE_RULE", PAGE_RULE, pseudo=True),
    RecordTypeInfo("R53_ALIAS", R53_ALIAS, pseudo=True, lowercase_target=True),
    RecordTypeInfo("URL", URL, pseudo=True),
    RecordTypeInfo("URL301", URL301, pseudo=True),
]

# Types consumed by the normalizer and never handed to a provider.
DIRECTIVE_TYPES = frozenset({"NAMESERVER", "IMPORT_TRANSFORM"})

TYPES = TypeRegistry()
for _info in _BUILTIN_TYPES:
    TYPES.register(_info)
TYPES.freeze()


def _rdata_args(rtype: str, rdata) -> list[Any]:
    if rtype in {"A", "AAAA"}:
        return [rdata.address]
    if rtype in {"CNAME", "NS", "PTR"}:
        return [rdata.target.to_text()]
    if rtype == "MX":
        return [rdata.preference, rdata.exchange.to_text()]
    if rtype == "SRV":
        return [rdata.priority, rdata.weight, rdata.port, rdata.target.to_text()]
    if rtype == "TXT":
        return [join_segments(rdata.strings)]
    if rtype == "CAA":
        return [rdata.flags, rdata.tag.decode("ascii"), rdata.value.decode("utf-8")]
    if rtype == "TLSA":
        return [rdata.usage, rdata.selector, rdata.mtype, rdata.cert.hex()]
    if rtype == "SSHFP":
        return [rdata.algorithm, rdata.fp_type, rdata.fingerprint.hex()]
    if rtype == "DS":
        return [rdata.key_tag, int(rdata.algorithm), rdata.digest_type, rdata.digest.hex()]
    if rtype == "DNSKEY":
        return [rdata.flags, rdata.protocol, int(rdata.algorithm), base64.b64encode(rdata.key).decode("ascii")]
    if rtype == "NAPTR":
        return [
            rdata.order,
            rdata.preference,
            rdata.flags.decode("utf-8"),
            rdata.service.decode("utf-8"),
            rdata.regexp.decode("utf-8"),
            rdata.replacement.to_text(),
        ]
    if rtype in {"HTTPS", "SVCB"}:
        return rdata.to_text().split(None, 2)
    if rtype == "SOA":
        return [
            rdata.mname.to_text(),
            rdata.rname.to_text(),
            rdata.serial,
            rdata.refresh,
            rdata.retry,
            rdata.expire,
            rdata.minimum,
        ]
    if rtype == "LOC":
        return [rdata.to_text()]
    raise UnknownRecordTypeError(f"cannot import {rtype} rdata")


def payload_from_rdata(rtype: str, rdata, origin: str = "", registry: TypeRegistry = TYPES) -> Payload:
    """Build a payload from a dnspython rdata object."""
    info = registry.get(rtype)
    return info.payload.from_args(_rdata_args(rtype, rdata), origin)


def payload_from_string(rtype: str, contents: str, origin: str = "", registry: TypeRegistry = TYPES) -> Payload:
    """Build a payload from RFC 1035 presentation text.

    Wire types go through dnspython's parser; pseudo-types are split on
    whitespace.
    """
    info = registry.get(rtype)
    if info.pseudo:
        return info.payload.from_args(contents.split(), origin)
    try:
        rdata = dns.rdata.from_text(
            dns.rdataclass.IN,
            dns.rdatatype.from_text(rtype),
            contents,
            origin=dns.name.from_text(origin) if origin else None,
            relativize=False,
        )
    except (dns.exception.DNSException, ValueError) as exc:
        raise FieldParseError(rtype, contents, str(exc)) from exc
    return payload_from_rdata(rtype, rdata, origin, registry)


# Legacy JSON field names, in payload argument order. ``target`` is the
# legacy free-form target string.
_LEGACY_FIELDS: dict[str, tuple[str, ...]] = {
    "MX": ("mxpreference", "target"),
    "SRV": ("srvpriority", "srvweight", "srvport", "target"),
    "CAA": ("caaflag", "caatag", "target"),
    "TLSA": ("tlsausage", "tlsaselector", "tlsamatchingtype", "target"),
    "SSHFP": ("sshfpalgorithm", "sshfpfingerprint", "target"),
    "DS": ("dskeytag", "dsalgorithm", "dsdigesttype", "dsdigest"),
    "DNSKEY": ("dnskeyflags", "dnskeyprotocol", "dnskeyalgorithm", "dnskeypublickey"),
    "NAPTR": ("naptrorder", "naptrpreference", "naptrflags", "naptrservice", "naptrregexp", "target"),
    "SOA": ("target", "soambox", "soaserial", "soarefresh", "soaretry", "soaexpire", "soaminttl"),
    "R53_ALIAS": ("r53_alias_type", "target", "r53_alias_zone_id"),
    "AZURE_ALIAS": ("azure_alias_type", "target"),
}


def payload_from_legacy(
    rtype: str,
    target: str,
    extras: dict[str, Any] | None = None,
    origin: str = "",
    registry: TypeRegistry = TYPES,
) -> Payload:
    """Lift a pre-typed legacy record (target plus side fields) into a payload."""
    info = registry.get(rtype)
    extras = extras or {}
    names = _LEGACY_FIELDS.get(rtype)
    if names and any(name in extras for name in names if name != "target"):
        args = [target if name == "target" else extras.get(name, "") for name in names]
        while args and args[-1] == "":
            args.pop()
        return info.payload.from_args(args, origin)
    if len(fields(info.payload)) == 1 or rtype == "TXT":
        return info.payload.from_args([target], origin)
    return payload_from_string(rtype, target, origin, registry)
