"""Interfaces every provider adapter implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..models import Correction, DomainConfig, Nameserver, RecordConfig


class DNSServiceProvider(ABC):
    """A provider that serves the records of a zone."""

    default_ttl = 300

    @abstractmethod
    def get_nameservers(self, domain: str) -> list[Nameserver]:
        """Return the nameservers the provider assigns to ``domain``."""

    @abstractmethod
    def get_zone_records(self, domain: str, meta: dict[str, Any]) -> list[RecordConfig]:
        """Return the records currently served for ``domain``."""

    @abstractmethod
    def get_zone_records_corrections(
        self, dc: DomainConfig, existing: list[RecordConfig]
    ) -> tuple[list[Correction], int]:
        """Return the corrections that turn ``existing`` into ``dc.records``."""

    def post_process_records(self, records: list[RecordConfig]) -> None:
        """Adjust records read from the provider before diffing."""


class Registrar(ABC):
    """A provider that manages the delegation of a zone."""

    @abstractmethod
    def get_registrar_corrections(self, dc: DomainConfig) -> list[Correction]:
        """Return corrections that make the delegation match ``dc.nameservers``."""


class ZoneLister(ABC):
    """Provider can enumerate the zones it hosts."""

    @abstractmethod
    def list_zones(self) -> list[str]:
        """Return the names of all hosted zones."""


class ZoneCreator(ABC):
    """Provider can create zones."""

    @abstractmethod
    def ensure_zone_exists(self, domain: str, meta: dict[str, Any]) -> None:
        """Create ``domain`` if it does not exist yet."""
