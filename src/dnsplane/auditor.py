"""Per-provider record auditing."""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, Iterable

from .models import RecordConfig

Check = Callable[[RecordConfig], None]

ALL_TYPES = "*"


class RecordAuditor:
    """Maps record types to predicates that reject unsupported records.

    A predicate raises ``ValueError`` with a human message when the record
    is unacceptable and returns None otherwise. Predicates registered under
    ``"*"`` run for every record.
    """

    def __init__(self) -> None:
        self._checks: dict[str, list[Check]] = defaultdict(list)

    def add(self, rtype: str, check: Check) -> None:
        """Register ``check`` for records of ``rtype``."""
        self._checks[rtype].append(check)

    def audit(self, records: Iterable[RecordConfig]) -> list[str]:
        """Return one message per failed predicate; empty means accept."""
        errors: list[str] = []
        for rc in records:
            for check in self._checks.get(ALL_TYPES, []) + self._checks.get(rc.type, []):
                try:
                    check(rc)
                except ValueError as exc:
                    errors.append(f"{rc.type} record {rc.name_fqdn} ({rc.to_comparable_no_ttl()}): {exc}")
        return errors
