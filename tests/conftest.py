"""Pytest fixtures for the dnsplane test suite."""

from __future__ import annotations

from typing import Any

import pytest

from dnsplane.config import AppConfig
from dnsplane.diffing import Verb, by_record
from dnsplane.errors import ProviderError
from dnsplane.models import Correction, DomainConfig, Nameserver, RecordConfig
from dnsplane.nameservers import registrar_corrections
from dnsplane.providers.base import DNSServiceProvider, Registrar
from dnsplane.providers.registry import ProviderRegistry

ORIGIN = "example.com"


def make_record(rtype: str, label: str, *args: Any, ttl: int = 300, origin: str = ORIGIN, **kwargs) -> RecordConfig:
    """Build a record in ``origin`` from positional payload arguments."""
    return RecordConfig.build(rtype, label, origin, list(args), ttl=ttl, **kwargs)


class FakeProvider(DNSServiceProvider, Registrar):
    """In-memory DNS provider and registrar.

    Corrections are produced by the by-record diff and applied to the
    in-memory zone. ``fail_on`` makes the action of any correction whose
    message contains the text raise a ProviderError.
    """

    def __init__(self, creds: dict[str, Any] | None = None, meta: dict[str, Any] | None = None, timeout: float = 30):
        self.creds = creds or {}
        self.meta = meta or {}
        self.zones: dict[str, list[RecordConfig]] = {}
        self.nameservers = [Nameserver("ns1.fake.net"), Nameserver("ns2.fake.net")]
        self.delegation: dict[str, list[str]] = {}
        self.fail_on: str | None = None
        self.applied: list[str] = []

    def get_nameservers(self, domain: str) -> list[Nameserver]:
        return list(self.nameservers)

    def get_zone_records(self, domain: str, meta: dict[str, Any]) -> list[RecordConfig]:
        return [rc.copy() for rc in self.zones.get(domain, [])]

    def get_zone_records_corrections(self, dc: DomainConfig, existing: list[RecordConfig]):
        changes, count = by_record(existing, dc)
        corrections = []
        for change in changes:
            if change.type is Verb.REPORT:
                corrections.append(Correction(change.msgs_joined))
                continue

            def action(change=change):
                if self.fail_on and self.fail_on in change.msgs_joined:
                    raise ProviderError(f"refused: {change.msgs_joined}")
                zone = self.zones.setdefault(dc.name, [])
                for old in change.old:
                    zone[:] = [rc for rc in zone if rc.to_diffable() != old.to_diffable() or rc.key() != old.key()]
                zone.extend(rc.copy() for rc in change.new)
                self.applied.append(change.msgs_joined)

            corrections.append(Correction(change.msgs_joined, action))
        return corrections, count

    def get_registrar_corrections(self, dc: DomainConfig) -> list[Correction]:
        def apply(names: list[str]) -> None:
            self.delegation[dc.name] = names

        return registrar_corrections(dc, self.delegation.get(dc.name, []), apply)


@pytest.fixture
def rec():
    """Factory for records in example.com."""
    return make_record


@pytest.fixture
def domain():
    """Factory for domain configurations."""

    def factory(records=(), name: str = ORIGIN, **kwargs) -> DomainConfig:
        return DomainConfig(name=name, records=list(records), **kwargs)

    return factory


@pytest.fixture
def fake_registry() -> ProviderRegistry:
    """A frozen registry holding FAKE (concurrent) and SLOW (serial) providers."""
    registry = ProviderRegistry()
    registry.register("FAKE", FakeProvider, features={"CanConcur": True, "DocDualHost": True})
    registry.register("SLOW", FakeProvider)
    registry.freeze()
    return registry


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    """Settings pointing at files under a temporary directory."""
    return AppConfig(
        config_path=tmp_path / "dnsconfig.json",
        creds_path=tmp_path / "creds.json",
        default_record_ttl=300,
        log_level="DEBUG",
        concurrency_mode="concurrent",
        concurrency_max=4,
        adapter_timeout=5,
        templates_dir=None,
    )
