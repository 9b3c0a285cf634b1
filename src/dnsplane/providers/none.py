"""A provider that manages nothing.

Useful as the registrar of zones whose delegation is handled elsewhere, and
as a DNS provider while a zone is being migrated.
"""

from __future__ import annotations

import logging
from typing import Any

from ..capabilities import Capability
from ..models import Correction, DomainConfig, Nameserver, RecordConfig
from .base import DNSServiceProvider, Registrar

LOG = logging.getLogger(__name__)


class NoneProvider(DNSServiceProvider, Registrar):
    """Reports an empty zone and accepts no changes."""

    def __init__(self, creds: dict[str, Any] | None = None, meta: dict[str, Any] | None = None, timeout: float = 30):
        self.creds = creds or {}
        self.meta = meta or {}

    def get_nameservers(self, domain: str) -> list[Nameserver]:
        return []

    def get_zone_records(self, domain: str, meta: dict[str, Any]) -> list[RecordConfig]:
        return []

    def get_zone_records_corrections(
        self, dc: DomainConfig, existing: list[RecordConfig]
    ) -> tuple[list[Correction], int]:
        LOG.debug("NONE provider ignores %d records of %s", len(dc.records), dc.name)
        return [], 0

    def get_registrar_corrections(self, dc: DomainConfig) -> list[Correction]:
        return []


def register(registry) -> None:
    registry.register(
        "NONE",
        NoneProvider,
        features={Capability.CAN_CONCUR: True},
    )
