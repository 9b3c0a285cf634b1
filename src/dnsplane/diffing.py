"""Reconcile observed records with the desired state.

All four algorithms share one core: records are bucketed by label and
type, exact matches are dropped, records that differ only in TTL are paired,
the rest are sorted and paired positionally, and any surplus becomes a
create or a delete. The algorithms differ only in how the resulting
record-level changes are grouped.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Callable, Iterable

from .errors import InvariantError
from .handsoff import handsoff
from .models import DomainConfig, RecordConfig, RecordKey

CompareFn = Callable[[RecordConfig], str]


class Verb(StrEnum):
    """Kind of change."""

    REPORT = "REPORT"
    CREATE = "CREATE"
    CHANGE = "CHANGE"
    DELETE = "DELETE"


@dataclass
class Change:
    """One unit of reconciliation.

    ``record_changes`` holds the record-level changes behind a grouped
    (recordset, label or zone) change; it is empty for by-record changes.
    """

    type: Verb
    key: RecordKey
    old: list[RecordConfig] = field(default_factory=list)
    new: list[RecordConfig] = field(default_factory=list)
    msgs: list[str] = field(default_factory=list)
    record_changes: list["Change"] = field(default_factory=list)

    @property
    def msgs_joined(self) -> str:
        return "\n".join(self.msgs)

    def __str__(self) -> str:
        return self.msgs_joined


@dataclass
class _Target:
    rec: RecordConfig
    comparable: str
    diffable: str


@dataclass
class _Bucket:
    rtype: str
    existing: list[_Target] = field(default_factory=list)
    desired: list[_Target] = field(default_factory=list)

    @property
    def rank(self) -> int:
        # An observed CNAME must go before other types at its label and a
        # new CNAME after them, so no label ever holds a CNAME and data.
        if self.rtype == "CNAME":
            return 0 if self.existing else 2
        return 1


@dataclass
class _Label:
    fqdn: str
    short: str
    buckets: dict[str, _Bucket] = field(default_factory=dict)

    def ordered(self) -> list[_Bucket]:
        return sorted(self.buckets.values(), key=lambda b: (b.rank, b.rtype))


def label_sort_key(short: str) -> tuple[int, list[str]]:
    """Sort key placing the apex first, then names compared right to left."""
    if short == "@":
        return (0, [])
    return (1, list(reversed(short.split("."))))


def _target(rc: RecordConfig, compare_fn: CompareFn | None) -> _Target:
    comparable = rc.to_comparable_no_ttl()
    if compare_fn is not None:
        extra = compare_fn(rc)
        if extra:
            comparable = f"{comparable} {extra}"
    return _Target(rc, comparable, f"{comparable} ttl={rc.ttl}")


def _sort_key(target: _Target) -> tuple[str, int]:
    return target.comparable, target.rec.ttl


def _build(existing: Iterable[RecordConfig], desired: Iterable[RecordConfig], compare_fn: CompareFn | None):
    labels: dict[str, _Label] = {}
    for side, records in (("existing", existing), ("desired", desired)):
        for rc in records:
            if rc.name_fqdn.endswith("."):
                raise InvariantError(f"record name {rc.name_fqdn!r} reached the diff engine with a trailing dot")
            label = labels.setdefault(rc.name_fqdn, _Label(rc.name_fqdn, rc.name))
            rtype = rc.key().type
            bucket = label.buckets.setdefault(rtype, _Bucket(rtype))
            getattr(bucket, side).append(_target(rc, compare_fn))
    for label in labels.values():
        for bucket in label.buckets.values():
            bucket.existing.sort(key=_sort_key)
            bucket.desired.sort(key=_sort_key)
    return sorted(labels.values(), key=lambda lbl: label_sort_key(lbl.short))


def _remove_common(existing: list[_Target], desired: list[_Target]) -> tuple[list[_Target], list[_Target]]:
    remaining = list(desired)
    leftover: list[_Target] = []
    for target in existing:
        for index, candidate in enumerate(remaining):
            if candidate.diffable == target.diffable:
                del remaining[index]
                break
        else:
            leftover.append(target)
    return leftover, remaining


def _find_ttl_changes(existing: list[_Target], desired: list[_Target]):
    pairs: list[tuple[_Target, _Target]] = []
    remaining = list(desired)
    leftover: list[_Target] = []
    for target in existing:
        for index, candidate in enumerate(remaining):
            if candidate.comparable == target.comparable:
                pairs.append((target, candidate))
                del remaining[index]
                break
        else:
            leftover.append(target)
    return pairs, leftover, remaining


def _diff_bucket(label: _Label, bucket: _Bucket) -> list[Change]:
    rtype = bucket.rtype
    short = label.short
    existing, desired = _remove_common(bucket.existing, bucket.desired)
    ttl_pairs, existing, desired = _find_ttl_changes(existing, desired)

    changes: list[Change] = []
    for old, new in ttl_pairs:
        key = old.rec.key()
        msg = f"± MODIFY-TTL {rtype} {short} {new.comparable} ttl=({old.rec.ttl}→{new.rec.ttl})"
        changes.append(Change(Verb.CHANGE, key, [old.rec], [new.rec], [msg]))

    paired = min(len(existing), len(desired))
    for old, new in zip(existing[:paired], desired[:paired]):
        msg = f"± MODIFY {rtype} {short} ({old.comparable} ttl={old.rec.ttl}) → ({new.comparable} ttl={new.rec.ttl})"
        changes.append(Change(Verb.CHANGE, old.rec.key(), [old.rec], [new.rec], [msg]))
    for old in existing[paired:]:
        msg = f"- DELETE {rtype} {short} {old.comparable} ttl={old.rec.ttl}"
        changes.append(Change(Verb.DELETE, old.rec.key(), [old.rec], [], [msg]))
    for new in desired[paired:]:
        msg = f"+ CREATE {rtype} {short} → {new.comparable} ttl={new.rec.ttl}"
        changes.append(Change(Verb.CREATE, new.rec.key(), [], [new.rec], [msg]))
    return changes


def _prepare(existing: list[RecordConfig], dc: DomainConfig, compare_fn: CompareFn | None):
    desired, msgs = handsoff(
        dc.name,
        existing,
        dc.records,
        dc.ensure_absent,
        dc.ignore_patterns,
        disable_safety_check=dc.unmanaged_disable_safety_check,
        keep_unknown=dc.keep_unknown,
    )
    labels = _build(existing, desired, compare_fn)
    reports = [Change(Verb.REPORT, RecordKey(dc.name, ""), msgs=msgs)] if msgs else []
    return labels, reports


def _group_verb(old: list[RecordConfig], new: list[RecordConfig]) -> Verb:
    if not old:
        return Verb.CREATE
    if not new:
        return Verb.DELETE
    return Verb.CHANGE


def _grouped(key: RecordKey, old: list[RecordConfig], new: list[RecordConfig], details: list[Change]) -> Change:
    msgs = [msg for change in details for msg in change.msgs]
    return Change(_group_verb(old, new), key, old, new, msgs, details)


def by_record(
    existing: list[RecordConfig], dc: DomainConfig, compare_fn: CompareFn | None = None
) -> tuple[list[Change], int]:
    """Return one change per affected record and the number of real changes."""
    labels, reports = _prepare(existing, dc, compare_fn)
    changes = [change for label in labels for bucket in label.ordered() for change in _diff_bucket(label, bucket)]
    return reports + changes, len(changes)


def by_recordset(
    existing: list[RecordConfig], dc: DomainConfig, compare_fn: CompareFn | None = None
) -> tuple[list[Change], int]:
    """Return one change per affected (label, type) pair."""
    labels, reports = _prepare(existing, dc, compare_fn)
    changes: list[Change] = []
    for label in labels:
        for bucket in label.ordered():
            details = _diff_bucket(label, bucket)
            if not details:
                continue
            old = [t.rec for t in bucket.existing]
            new = [t.rec for t in bucket.desired]
            changes.append(_grouped(RecordKey(label.fqdn, bucket.rtype), old, new, details))
    return reports + changes, len(changes)


def by_label(
    existing: list[RecordConfig], dc: DomainConfig, compare_fn: CompareFn | None = None
) -> tuple[list[Change], int]:
    """Return one change per affected label."""
    labels, reports = _prepare(existing, dc, compare_fn)
    changes: list[Change] = []
    for label in labels:
        buckets = label.ordered()
        details = [change for bucket in buckets for change in _diff_bucket(label, bucket)]
        if not details:
            continue
        old = [t.rec for bucket in buckets for t in bucket.existing]
        new = [t.rec for bucket in buckets for t in bucket.desired]
        changes.append(_grouped(RecordKey(label.fqdn, ""), old, new, details))
    return reports + changes, len(changes)


def by_zone(
    existing: list[RecordConfig], dc: DomainConfig, compare_fn: CompareFn | None = None
) -> tuple[list[Change], int]:
    """Return at most one change that replaces the whole zone.

    The count is the number of record-level changes folded into it.
    """
    labels, reports = _prepare(existing, dc, compare_fn)
    details: list[Change] = []
    old: list[RecordConfig] = []
    new: list[RecordConfig] = []
    for label in labels:
        for bucket in label.ordered():
            details.extend(_diff_bucket(label, bucket))
            old.extend(t.rec for t in bucket.existing)
            new.extend(t.rec for t in bucket.desired)
    if not details:
        return reports, 0
    return reports + [_grouped(RecordKey(dc.name, ""), old, new, details)], len(details)


def tally(changes: Iterable[Change]) -> Counter:
    """Count record-level CREATE/CHANGE/DELETE changes, ignoring reports."""
    counts: Counter = Counter()
    for change in changes:
        if change.type is Verb.REPORT:
            continue
        for detail in change.record_changes or [change]:
            counts[detail.type] += 1
    return counts
