"""Nameserver determination and registrar delegation."""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from .errors import ConfigError
from .models import Correction, DomainConfig, Nameserver, RecordConfig

LOG = logging.getLogger(__name__)

DEFAULT_NS_TTL = 300


def _clean(name: str) -> str:
    return name.strip().rstrip(".").lower()


def determine_nameservers(dc: DomainConfig) -> list[Nameserver]:
    """Return declared nameservers followed by those the DNS providers advertise.

    Each provider contributes its first ``num_nameservers`` entries, all of
    them for ``-1`` and none for ``0``.
    """
    result = list(dc.nameservers)
    seen = {ns.name for ns in result}
    for instance in dc.dns_providers:
        count = instance.num_nameservers
        if count == 0:
            continue
        LOG.debug("Getting nameservers for %s from %s", dc.name, instance.name)
        found = instance.driver.get_nameservers(dc.name)
        if count > 0:
            found = found[:count]
        for ns in found:
            name = _clean(ns.name)
            if name and name not in seen:
                seen.add(name)
                result.append(Nameserver(name))
    return result


def add_ns_records(dc: DomainConfig) -> None:
    """Add apex NS records for every nameserver not already present."""
    raw_ttl = dc.metadata.get("ns_ttl", str(DEFAULT_NS_TTL))
    try:
        ttl = int(raw_ttl)
    except ValueError:
        raise ConfigError(f"ns_ttl {raw_ttl!r} of {dc.name} is not a number") from None
    present = {rc.target for rc in dc.records if rc.type == "NS" and rc.name == "@"}
    for ns in dc.nameservers:
        target = f"{ns.name}."
        if target in present:
            continue
        present.add(target)
        dc.records.append(RecordConfig.build("NS", "@", dc.name, [target], ttl=ttl))


def registrar_corrections(
    dc: DomainConfig,
    current: Iterable[str],
    apply: Callable[[list[str]], None],
) -> list[Correction]:
    """Compare the current delegation with ``dc.nameservers``.

    Returns a single correction calling ``apply`` with the sorted desired
    nameservers when the two sets differ.
    """
    desired = sorted({_clean(ns.name) for ns in dc.nameservers})
    found = sorted({_clean(name) for name in current})
    if desired == found:
        return []
    msg = f"Change nameservers from '{','.join(found)}' to '{','.join(desired)}'"
    return [Correction(msg, action=lambda: apply(desired))]
