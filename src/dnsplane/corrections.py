"""Gather corrections per zone and execute them.

Corrections of one zone always run in order on one thread. Zones may run
in parallel when the concurrency mode allows it; a failing correction stops
the rest of its zone and the run moves on to the next zone.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Callable

from .capabilities import Capability
from .models import Correction, DNSProviderInstance, DomainConfig, RecordConfig
from .normalize import normalize_records
from .providers.registry import ProviderRegistry

LOG = logging.getLogger(__name__)
NOTIFY_LOG = logging.getLogger("dnsplane.notify")


class ConcurrencyMode(StrEnum):
    """Which zones may be processed in parallel."""

    CONCURRENT = "concurrent"
    NONE = "none"
    ALL = "all"


@dataclass
class CorrectionGroup:
    """Corrections produced by one provider (or registrar) for one zone."""

    domain: str
    source: str
    role: str
    corrections: list[Correction] = field(default_factory=list)
    actual_change_count: int = 0

    @property
    def pending(self) -> int:
        return sum(1 for c in self.corrections if not c.is_report)


@dataclass
class ZoneOutcome:
    """What happened to one zone during a run."""

    domain: str
    groups: list[CorrectionGroup] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)
    done: set[int] = field(default_factory=set)
    failed: dict[int, Exception] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def has_errors(self) -> bool:
        return bool(self.errors) or self.cancelled

    @property
    def pending(self) -> int:
        return sum(group.pending for group in self.groups)

    def status(self, correction: Correction) -> str:
        """Return ``done``, ``failed``, ``skipped`` or ``report``."""
        if correction.is_report:
            return "report"
        if id(correction) in self.done:
            return "done"
        if id(correction) in self.failed:
            return "failed"
        return "skipped"


ZoneStep = Callable[[], CorrectionGroup]


def _is_apex_ns(rc: RecordConfig) -> bool:
    return rc.type == "NS" and rc.name == "@"


def gather_zone_corrections(
    dc: DomainConfig, instance: DNSProviderInstance, registry: ProviderRegistry
) -> CorrectionGroup:
    """Read the zone from one provider and ask it for corrections.

    Observed records are normalised like the desired ones. Apex NS records
    are dropped from both sides when the provider cannot manage them.
    """
    driver = instance.driver
    existing = driver.get_zone_records(dc.name, dc.metadata)
    normalize_records(existing, driver.default_ttl)
    driver.post_process_records(existing)

    desired = dc.copy()
    if not registry.has_capability(instance.provider_type, Capability.DOC_DUAL_HOST):
        desired.records = [rc for rc in desired.records if not _is_apex_ns(rc)]
        existing = [rc for rc in existing if not _is_apex_ns(rc)]

    corrections, count = driver.get_zone_records_corrections(desired, existing)
    return CorrectionGroup(dc.unique_name, instance.name, "dns", corrections, count)


class CorrectionPipeline:
    """Runs zone plans in preview or push mode."""

    def __init__(
        self,
        push: bool,
        mode: ConcurrencyMode = ConcurrencyMode.CONCURRENT,
        max_workers: int = 5,
        cancel: threading.Event | None = None,
        notify: bool = False,
    ):
        self.push = push
        self.mode = ConcurrencyMode(mode)
        self.max_workers = max(1, max_workers)
        self.cancel = cancel or threading.Event()
        self.notify = notify

    def run(
        self,
        domains: list[DomainConfig],
        plan: Callable[[DomainConfig], list[ZoneStep]],
        can_concur: Callable[[DomainConfig], bool] = lambda dc: False,
    ) -> list[ZoneOutcome]:
        """Process every zone and return outcomes in the order of ``domains``."""
        parallel = [dc for dc in domains if self._eligible(dc, can_concur)]
        chosen = {id(dc) for dc in parallel}
        serial = [dc for dc in domains if id(dc) not in chosen]
        outcomes: dict[str, ZoneOutcome] = {}

        if parallel:
            LOG.debug("Processing %d zones concurrently", len(parallel))
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = {dc.unique_name: pool.submit(self.process_zone, dc, plan(dc)) for dc in parallel}
                for name, future in futures.items():
                    outcomes[name] = future.result()
        for dc in serial:
            outcomes[dc.unique_name] = self.process_zone(dc, plan(dc))
        return [outcomes[dc.unique_name] for dc in domains]

    def _eligible(self, dc: DomainConfig, can_concur: Callable[[DomainConfig], bool]) -> bool:
        if self.mode is ConcurrencyMode.NONE:
            return False
        if self.mode is ConcurrencyMode.ALL:
            return True
        return can_concur(dc)

    def process_zone(self, dc: DomainConfig, steps: list[ZoneStep]) -> ZoneOutcome:
        """Run each step of a zone; in push mode execute its corrections."""
        outcome = ZoneOutcome(dc.unique_name)
        for step in steps:
            if self.cancel.is_set():
                outcome.cancelled = True
                break
            try:
                group = step()
            except Exception as exc:  # noqa: BLE001
                LOG.error("%s: %s", dc.unique_name, exc)
                outcome.errors.append(exc)
                break
            outcome.groups.append(group)
            if not self._execute(group, outcome):
                break
        return outcome

    def _execute(self, group: CorrectionGroup, outcome: ZoneOutcome) -> bool:
        for correction in group.corrections:
            if correction.is_report:
                continue
            if not self.push:
                if self.notify:
                    NOTIFY_LOG.info("[preview] %s (%s): %s", group.domain, group.source, correction.msg)
                continue
            if self.cancel.is_set():
                outcome.cancelled = True
                return False
            LOG.info("%s (%s): %s", group.domain, group.source, correction.msg)
            try:
                correction.action()
            except Exception as exc:  # noqa: BLE001
                LOG.error("%s (%s): correction failed: %s", group.domain, group.source, exc)
                outcome.failed[id(correction)] = exc
                outcome.errors.append(exc)
                if self.notify:
                    NOTIFY_LOG.error("[push] %s (%s) FAILED: %s: %s", group.domain, group.source, correction.msg, exc)
                return False
            outcome.done.add(id(correction))
            if self.notify:
                NOTIFY_LOG.info("[push] %s (%s): %s", group.domain, group.source, correction.msg)
        return True
