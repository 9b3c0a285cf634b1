"""Provider registration and the capability matrix.

A :class:`ProviderRegistry` is filled while the process starts and frozen
before any zone is processed; after :meth:`ProviderRegistry.freeze` it is
read-only.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from ..auditor import RecordAuditor
from ..capabilities import (
    TYPE_CAPABILITIES,
    Capability,
    DocumentationNote,
    can,
    cannot,
    unimplemented,
)
from ..errors import ConfigError, RegistrationError
from ..rtypes import DIRECTIVE_TYPES, TYPES, TypeRegistry
from .base import DNSServiceProvider, Registrar, ZoneCreator, ZoneLister

LOG = logging.getLogger(__name__)

# Interface implemented -> capability it implies.
AUTO_DERIVED: tuple[tuple[type, Capability], ...] = (
    (ZoneLister, Capability.CAN_GET_ZONES),
    (Registrar, Capability.IS_REGISTRAR),
    (ZoneCreator, Capability.DOC_CREATE_DOMAINS),
    (DNSServiceProvider, Capability.IS_DNS_SERVICE_PROVIDER),
)

CREDS_FIELD_TYPES = ("string", "bool")
DEFAULT_UNIMPLEMENTED_NOTE = "Support for this record type is not implemented yet."


@dataclass
class ProviderInfo:
    """Everything known about one registered provider type."""

    name: str
    provider_class: type
    features: dict[Capability, DocumentationNote] = field(default_factory=dict)
    record_types: dict[str, DocumentationNote] = field(default_factory=dict)
    creds_fields: dict[str, str] = field(default_factory=dict)
    auditor: RecordAuditor | None = None
    maintainer: str = ""

    @property
    def is_registrar(self) -> bool:
        return self.has_capability(Capability.IS_REGISTRAR)

    @property
    def is_dns_provider(self) -> bool:
        return self.has_capability(Capability.IS_DNS_SERVICE_PROVIDER)

    @property
    def creds_schema(self) -> dict[str, Any]:
        """JSON-schema style description of the credential fields."""
        properties = {
            name: {"type": "boolean" if kind == "bool" else "string"} for name, kind in self.creds_fields.items()
        }
        return {"type": "object", "properties": properties, "additionalProperties": True}

    def supports_type(self, rtype: str) -> bool:
        note = self.record_types.get(rtype)
        return bool(note and note.has_feature)

    def has_capability(self, cap: Capability) -> bool:
        if cap in TYPE_CAPABILITIES:
            return self.supports_type(TYPE_CAPABILITIES[cap])
        note = self.features.get(cap)
        return bool(note and note.has_feature)

    def documentation_notes(self) -> dict[str, DocumentationNote]:
        """Return features and per-type notes keyed by capability token."""
        notes: dict[str, DocumentationNote] = {str(cap): note for cap, note in self.features.items()}
        for rtype, note in self.record_types.items():
            notes[f"CanUse{rtype}"] = note
        return notes


def parse_field_type_spec(spec: str) -> tuple[str, str]:
    """Parse a ``name[:type]`` credential field declaration."""
    name, _, kind = spec.partition(":")
    kind = kind or "string"
    if not name:
        raise RegistrationError(f"empty credential field name in {spec!r}")
    if kind not in CREDS_FIELD_TYPES:
        raise RegistrationError(f"credential field {name!r} has invalid type {kind!r}")
    return name, kind


def parse_record_types(specs: Iterable[str], types: TypeRegistry = TYPES) -> dict[str, DocumentationNote]:
    """Parse ``TYPE[:verb[:note]]`` elements into documentation notes.

    ``verb`` is empty or ``note`` for supported types and ``unimplemented``
    for types the provider knows about but does not handle. A note that
    starts with a URL becomes the note's link.
    """
    result: dict[str, DocumentationNote] = {}
    for spec in specs:
        parts = spec.split(":", 2)
        rtype = parts[0]
        verb = parts[1] if len(parts) > 1 else ""
        note = parts[2] if len(parts) > 2 else ""
        if rtype != rtype.upper() or not rtype:
            raise RegistrationError(f"record type {rtype!r} must be uppercase")
        if rtype not in types:
            raise RegistrationError(f"record type {rtype!r} is not a known type")
        if rtype in result:
            raise RegistrationError(f"record type {rtype} listed twice")
        link = ""
        if note.startswith(("http://", "https://")):
            link, _, note = note.partition(" ")
        if verb in ("", "note"):
            result[rtype] = can(note, link)
        elif verb == "unimplemented":
            result[rtype] = unimplemented(note or DEFAULT_UNIMPLEMENTED_NOTE, link)
        else:
            raise RegistrationError(f"invalid verb {verb!r} in record type spec {spec!r}")
    return result


def _coerce_note(value: DocumentationNote | bool) -> DocumentationNote:
    if isinstance(value, DocumentationNote):
        return value
    return can() if value else cannot()


class ProviderRegistry:
    """Registered provider types and their resolved capabilities."""

    def __init__(self, types: TypeRegistry = TYPES) -> None:
        self.types = types
        self._providers: dict[str, ProviderInfo] = {}
        self._frozen = False

    def register(
        self,
        name: str,
        provider_class: type,
        *,
        features: Mapping[Capability | str, DocumentationNote | bool] | None = None,
        record_types: Iterable[str] = (),
        creds_fields: Iterable[str] = (),
        auditor: RecordAuditor | None = None,
        maintainer: str = "",
    ) -> ProviderInfo:
        """Register a provider type.

        Capabilities implied by the interfaces ``provider_class`` implements,
        and per-type capabilities implied by ``record_types``, are derived
        here; declaring them in ``features`` is an error.
        """
        if self._frozen:
            raise RegistrationError(f"provider registry is frozen; cannot register {name}")
        if name in self._providers:
            raise RegistrationError(f"provider {name} registered twice")
        if not issubclass(provider_class, (DNSServiceProvider, Registrar)):
            raise RegistrationError(f"provider {name} implements neither DNSServiceProvider nor Registrar")

        derived = {cap: can() for iface, cap in AUTO_DERIVED if issubclass(provider_class, iface)}
        derivable = {cap for _, cap in AUTO_DERIVED} | set(TYPE_CAPABILITIES)
        resolved: dict[Capability, DocumentationNote] = {}
        for key, value in (features or {}).items():
            try:
                cap = Capability(key)
            except ValueError:
                raise RegistrationError(f"provider {name} declares unknown capability {key!r}") from None
            if cap in derivable:
                raise RegistrationError(f"provider {name} declares auto-derived capability {cap}")
            resolved[cap] = _coerce_note(value)
        resolved.update(derived)

        fields: dict[str, str] = {}
        for spec in creds_fields:
            field_name, kind = parse_field_type_spec(spec)
            if field_name in fields:
                raise RegistrationError(f"provider {name} lists credential field {field_name!r} twice")
            fields[field_name] = kind

        info = ProviderInfo(
            name=name,
            provider_class=provider_class,
            features=resolved,
            record_types=parse_record_types(record_types, self.types),
            creds_fields=fields,
            auditor=auditor,
            maintainer=maintainer,
        )
        self._providers[name] = info
        LOG.debug("Registered provider %s", name)
        return info

    def freeze(self) -> None:
        """Finish initialisation; providers without a type list get every type."""
        all_types = [rtype for rtype in self.types.names() if rtype not in DIRECTIVE_TYPES]
        for info in self._providers.values():
            if not info.record_types:
                info.record_types = {rtype: can() for rtype in all_types}
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> ProviderInfo:
        """Return the registration of ``name`` or raise ConfigError."""
        try:
            return self._providers[name]
        except KeyError:
            raise ConfigError(f"unknown provider type {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def names(self) -> list[str]:
        return sorted(self._providers)

    def has_capability(self, name: str, cap: Capability) -> bool:
        """Return True if provider type ``name`` has ``cap``; unknown names have nothing."""
        info = self._providers.get(name)
        return bool(info and info.has_capability(cap))

    def supports_type(self, name: str, rtype: str) -> bool:
        info = self._providers.get(name)
        return bool(info and info.supports_type(rtype))

    def audit(self, name: str, records) -> list[str]:
        """Run the provider's auditor over ``records``."""
        info = self.get(name)
        if info.auditor is None:
            return []
        return info.auditor.audit(records)

    def capability_matrix(self) -> dict[str, dict[str, DocumentationNote]]:
        return {name: info.documentation_notes() for name, info in sorted(self._providers.items())}


@functools.lru_cache(maxsize=None)
def default_registry() -> ProviderRegistry:
    """Return the frozen registry holding the bundled providers."""
    from . import axfrddns, bind, none

    registry = ProviderRegistry()
    for module in (none, bind, axfrddns):
        module.register(registry)
    registry.freeze()
    return registry
