"""High-level orchestration for dnsplane."""

from __future__ import annotations

import fnmatch
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .capabilities import Capability
from .config import AppConfig
from .corrections import (
    ConcurrencyMode,
    CorrectionGroup,
    CorrectionPipeline,
    ZoneOutcome,
    ZoneStep,
    gather_zone_corrections,
)
from .credsfile import coerce_fields, load_credentials, provider_credentials
from .errors import ConfigError, ValidationWarning, ZoneScopedError
from .loader import load_dns_config
from .models import (
    Correction,
    DNSConfig,
    DNSProviderInstance,
    DomainConfig,
    ProviderConfig,
    RecordConfig,
    RegistrarInstance,
)
from .nameservers import add_ns_records, determine_nameservers
from .normalize import normalize_records, split_findings, validate_and_normalize_config
from .providers.base import ZoneCreator, ZoneLister
from .providers.registry import ProviderRegistry, default_registry

LOG = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure logging output."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@dataclass
class PreparedConfig:
    """A loaded, normalised and validated desired state."""

    dns_config: DNSConfig
    zone_errors: dict[str, list[ZoneScopedError]] = field(default_factory=dict)
    warnings: list[ValidationWarning] = field(default_factory=list)


@dataclass
class RunResult:
    """Outcomes of a preview or push, in configuration order."""

    push: bool
    outcomes: list[ZoneOutcome] = field(default_factory=list)

    @property
    def total_corrections(self) -> int:
        return sum(outcome.pending for outcome in self.outcomes)

    @property
    def any_errors(self) -> bool:
        return any(outcome.has_errors for outcome in self.outcomes)

    def report(self) -> list[dict[str, Any]]:
        """Return the JSON-serialisable ``--report`` content."""
        entries: list[dict[str, Any]] = []
        for outcome in self.outcomes:
            for group in outcome.groups:
                if group.role not in ("dns", "registrar"):
                    continue
                key = "provider" if group.role == "dns" else "registrar"
                entries.append(
                    {
                        "domain": group.domain,
                        key: group.source,
                        "corrections": group.pending,
                        "correction_details": [c.msg for c in group.corrections if not c.is_report],
                    }
                )
        return entries


def matches_any(dc: DomainConfig, patterns: list[str] | None) -> bool:
    """Return True when ``dc`` is selected by one of the ``--domains`` globs."""
    if not patterns:
        return True
    return any(fnmatch.fnmatch(dc.unique_name, p) or fnmatch.fnmatch(dc.name, p) for p in patterns)


class Controller:
    """Coordinates preview/push and the other commands."""

    def __init__(self, config: AppConfig, registry: ProviderRegistry | None = None):
        """Store configuration for subsequent runs."""
        self.config = config
        self.registry = registry or default_registry()
        self._drivers: dict[str, Any] = {}
        self._zone_listings: dict[str, set[str]] = {}
        self._missing: set[tuple[str, str]] = set()
        self._lock = threading.Lock()

    def credentials(self, path: Path | None = None) -> dict[str, dict[str, Any]]:
        return load_credentials(path or self.config.creds_path)

    def prepare(
        self,
        path: Path | None = None,
        template_vars: dict[str, Any] | None = None,
        creds: dict[str, dict[str, Any]] | None = None,
    ) -> PreparedConfig:
        """Load, normalise and validate the desired state.

        Raises ConfigError when a finding is fatal for the whole run.
        """
        dns_config = load_dns_config(path or self.config.config_path, template_vars)
        if creds is not None:
            self.resolve_provider_types(dns_config, creds)
        return self.validate(dns_config)

    def resolve_provider_types(self, dns_config: DNSConfig, creds: dict[str, dict[str, Any]]) -> None:
        """Fill in provider types that are only given in the credentials file."""
        for provider in dns_config.registrars + dns_config.dns_providers:
            if provider.name in creds or not provider.type:
                provider.type, _ = provider_credentials(creds, provider.name, provider.type)

    def validate(self, dns_config: DNSConfig) -> PreparedConfig:
        findings = validate_and_normalize_config(dns_config, self.registry, self.config.default_record_ttl)
        fatal, zone_errors, warnings = split_findings(findings)
        if fatal:
            raise ConfigError(f"{len(fatal)} errors in the configuration:\n" + "\n".join(str(e) for e in fatal))
        for zone, errors in zone_errors.items():
            for error in errors:
                LOG.error("%s: %s", zone, error)
        return PreparedConfig(dns_config, zone_errors, warnings)

    def driver_for(self, provider: ProviderConfig, creds: dict[str, dict[str, Any]]):
        """Return the adapter instance of ``provider``, creating it once."""
        with self._lock:
            if provider.name in self._drivers:
                return self._drivers[provider.name]
        ptype, settings = provider_credentials(creds, provider.name, provider.type)
        info = self.registry.get(ptype)
        settings = coerce_fields(settings, info.creds_fields)
        if self.config.templates_dir and "templates_dir" in info.creds_fields and not settings.get("templates_dir"):
            settings["templates_dir"] = str(self.config.templates_dir)
        LOG.debug("Creating %s provider %s", ptype, provider.name)
        driver = info.provider_class(settings, dict(provider.metadata), timeout=self.config.adapter_timeout)
        with self._lock:
            return self._drivers.setdefault(provider.name, driver)

    def bind_providers(
        self, prepared: PreparedConfig, creds: dict[str, dict[str, Any]], domains: list[str] | None = None
    ) -> None:
        """Attach adapter instances to every selected domain."""
        dns_config = prepared.dns_config
        registrars = {p.name: p for p in dns_config.registrars}
        providers = {p.name: p for p in dns_config.dns_providers}
        for dc in dns_config.domains:
            if not matches_any(dc, domains) or dc.unique_name in prepared.zone_errors:
                continue
            if dc.registrar_name:
                reg = registrars[dc.registrar_name]
                dc.registrar = RegistrarInstance(reg.name, reg.type, self.driver_for(reg, creds))
            dc.dns_providers = [
                DNSProviderInstance(name, providers[name].type, self.driver_for(providers[name], creds), count)
                for name, count in dc.dns_provider_names.items()
            ]

    def can_concur(self, dc: DomainConfig) -> bool:
        types = [instance.provider_type for instance in dc.dns_providers]
        if dc.registrar is not None:
            types.append(dc.registrar.provider_type)
        return all(self.registry.has_capability(ptype, Capability.CAN_CONCUR) for ptype in types)

    def _list_zones(self, instance: DNSProviderInstance) -> set[str]:
        with self._lock:
            cached = self._zone_listings.get(instance.name)
        if cached is None:
            LOG.debug("Listing zones of %s", instance.name)
            cached = set(instance.driver.list_zones())
            with self._lock:
                self._zone_listings[instance.name] = cached
        return cached

    def _populate_step(self, dc: DomainConfig, instance: DNSProviderInstance) -> ZoneStep:
        def step() -> CorrectionGroup:
            group = CorrectionGroup(dc.unique_name, instance.name, "populate")
            if dc.name in self._list_zones(instance):
                return group
            with self._lock:
                self._missing.add((instance.name, dc.name))
            if isinstance(instance.driver, ZoneCreator):

                def create() -> None:
                    instance.driver.ensure_zone_exists(dc.name, dc.metadata)
                    with self._lock:
                        self._zone_listings.setdefault(instance.name, set()).add(dc.name)
                        self._missing.discard((instance.name, dc.name))

                group.corrections.append(Correction(f'Ensuring zone "{dc.name}" exists in "{instance.name}"', create))
            else:
                group.corrections.append(Correction(f"Zone {dc.name} does not exist in {instance.name}"))
            return group

        return step

    def _nameserver_step(self, dc: DomainConfig) -> ZoneStep:
        def step() -> CorrectionGroup:
            dc.nameservers = determine_nameservers(dc)
            add_ns_records(dc)
            LOG.debug("%s: nameservers %s", dc.unique_name, ", ".join(ns.name for ns in dc.nameservers))
            return CorrectionGroup(dc.unique_name, "nameservers", "nameservers")

        return step

    def _dns_step(self, dc: DomainConfig, instance: DNSProviderInstance, push: bool) -> ZoneStep:
        def step() -> CorrectionGroup:
            with self._lock:
                missing = (instance.name, dc.name) in self._missing
            if missing and not push:
                msg = f"Zone {dc.name} does not exist in {instance.name} yet; its records are not compared"
                return CorrectionGroup(dc.unique_name, instance.name, "dns", [Correction(msg)])
            return gather_zone_corrections(dc, instance, self.registry)

        return step

    def _registrar_step(self, dc: DomainConfig) -> ZoneStep:
        def step() -> CorrectionGroup:
            registrar = dc.registrar
            group = CorrectionGroup(dc.unique_name, registrar.name, "registrar")
            if not dc.nameservers and dc.metadata.get("no_ns") != "true":
                group.corrections.append(Correction(f"Skipping registrar {registrar.name}: no nameservers declared"))
                return group
            group.corrections.extend(registrar.driver.get_registrar_corrections(dc))
            return group

        return step

    def plan_zone(
        self, dc: DomainConfig, push: bool, providers: list[str] | None = None, populate: bool = True
    ) -> list[ZoneStep]:
        """Return the ordered steps of one zone."""
        selected = [i for i in dc.dns_providers if not providers or i.name in providers]
        steps: list[ZoneStep] = []
        if populate:
            steps.extend(self._populate_step(dc, i) for i in selected if isinstance(i.driver, ZoneLister))
        steps.append(self._nameserver_step(dc))
        steps.extend(self._dns_step(dc, i, push) for i in selected)
        if dc.registrar is not None and (not providers or dc.registrar.name in providers):
            steps.append(self._registrar_step(dc))
        return steps

    def run(
        self,
        prepared: PreparedConfig,
        push: bool,
        domains: list[str] | None = None,
        providers: list[str] | None = None,
        populate: bool = True,
        notify: bool = False,
        mode: str | None = None,
        max_workers: int | None = None,
        cancel: threading.Event | None = None,
    ) -> RunResult:
        """Preview or push every selected zone."""
        selected = [dc for dc in prepared.dns_config.domains if matches_any(dc, domains)]
        runnable = [dc for dc in selected if dc.unique_name not in prepared.zone_errors]
        pipeline = CorrectionPipeline(
            push=push,
            mode=ConcurrencyMode(mode or self.config.concurrency_mode),
            max_workers=max_workers or self.config.concurrency_max,
            cancel=cancel,
            notify=notify,
        )
        outcomes = pipeline.run(
            runnable,
            lambda dc: self.plan_zone(dc, push, providers, populate),
            self.can_concur,
        )
        by_name = {outcome.domain: outcome for outcome in outcomes}
        result = RunResult(push)
        for dc in selected:
            if dc.unique_name in prepared.zone_errors:
                result.outcomes.append(ZoneOutcome(dc.unique_name, errors=list(prepared.zone_errors[dc.unique_name])))
            else:
                result.outcomes.append(by_name[dc.unique_name])
        return result

    def get_zones(
        self,
        provider_name: str,
        zones: list[str],
        creds: dict[str, dict[str, Any]],
        dns_config: DNSConfig | None = None,
    ) -> dict[str, list[RecordConfig]]:
        """Read zones through a provider's read path; ``all`` lists every zone."""
        provider = None
        if dns_config is not None:
            provider = next((p for p in dns_config.dns_providers if p.name == provider_name), None)
        if provider is None:
            if provider_name not in creds:
                raise ConfigError(f"provider {provider_name} is not declared in the config or the credentials file")
            provider = ProviderConfig(provider_name)
        driver = self.driver_for(provider, creds)
        if zones == ["all"]:
            if not isinstance(driver, ZoneLister):
                raise ConfigError(f"provider {provider_name} cannot list its zones")
            zones = sorted(driver.list_zones())
        result: dict[str, list[RecordConfig]] = {}
        for zone in zones:
            records = driver.get_zone_records(zone.lower().rstrip("."), {})
            normalize_records(records, driver.default_ttl)
            result[zone] = records
        return result

    def create_domains(
        self, prepared: PreparedConfig, creds: dict[str, dict[str, Any]], domains: list[str] | None = None
    ) -> list[str]:
        """Ensure every selected zone exists at each provider that can create zones."""
        self.bind_providers(prepared, creds, domains)
        messages: list[str] = []
        for dc in prepared.dns_config.domains:
            if not matches_any(dc, domains) or dc.unique_name in prepared.zone_errors:
                continue
            for instance in dc.dns_providers:
                if not self.registry.has_capability(instance.provider_type, Capability.DOC_CREATE_DOMAINS):
                    LOG.debug("%s cannot create zones; skipping %s", instance.name, dc.name)
                    continue
                LOG.info("Ensuring zone %s exists in %s", dc.name, instance.name)
                instance.driver.ensure_zone_exists(dc.name, dc.metadata)
                messages.append(f"{dc.name}: ensured in {instance.name}")
        return messages
