"""Decide which observed records dnsplane must leave alone.

Three mechanisms feed the diff: ignore patterns (observed records matching
them are carried over as if desired), KeepUnknown (observed records not in
the desired state are carried over as well) and ENSURE_ABSENT (listed
records are dropped from the desired state so they get deleted).
"""

from __future__ import annotations

import logging

from .errors import IgnoreConflictError
from .models import RecordConfig, RecordKey, UnmanagedPattern

LOG = logging.getLogger(__name__)


def _identity(rc: RecordConfig) -> tuple[RecordKey, str]:
    return rc.key(), rc.to_comparable_no_ttl()


def _describe(rc: RecordConfig) -> str:
    return f"    {rc.type} {rc.name_fqdn} {rc.to_comparable_no_ttl()}"


def handsoff(
    domain: str,
    existing: list[RecordConfig],
    desired: list[RecordConfig],
    absences: list[RecordConfig],
    patterns: list[UnmanagedPattern],
    disable_safety_check: bool = False,
    keep_unknown: bool = False,
) -> tuple[list[RecordConfig], list[str]]:
    """Return the desired records to diff against plus report lines.

    Raises IgnoreConflictError when a desired record matches an ignore
    pattern, unless ``disable_safety_check`` is set.
    """
    msgs: list[str] = []

    absent = {_identity(rc) for rc in absences}
    desired = [rc for rc in desired if _identity(rc) not in absent]

    conflicts = [rc for rc in desired if any(p.matches(rc) for p in patterns)]
    if conflicts:
        lines = [_describe(rc) for rc in conflicts]
        if not disable_safety_check:
            raise IgnoreConflictError(
                f"{len(conflicts)} records in {domain} are both managed and ignored:\n" + "\n".join(lines),
                zone=domain,
            )
        msgs.append(f"{len(conflicts)} records are both managed and ignored (safety check disabled):")
        msgs.extend(lines)

    wanted = {_identity(rc) for rc in desired}
    ignored: list[RecordConfig] = []
    foreign: list[RecordConfig] = []
    for rc in existing:
        ident = _identity(rc)
        if any(p.matches(rc) for p in patterns):
            if ident not in wanted:
                ignored.append(rc.copy())
        elif keep_unknown and ident not in wanted and ident not in absent:
            foreign.append(rc.copy())

    if ignored:
        LOG.debug("%s: %d records ignored", domain, len(ignored))
    if foreign:
        msgs.append(f"{len(foreign)} records not being deleted because of NO_PURGE:")
        msgs.extend(_describe(rc) for rc in foreign)

    return desired + ignored + foreign, msgs
