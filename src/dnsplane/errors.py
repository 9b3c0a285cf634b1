"""Exception hierarchy shared by every dnsplane component."""

from __future__ import annotations

from typing import Any


class DnsplaneError(Exception):
    """Base exception for dnsplane."""


class ConfigError(DnsplaneError):
    """Raised when the desired-state document is invalid."""


class FieldParseError(DnsplaneError, ValueError):
    """Raised when a typed field cannot be parsed from its text form."""

    def __init__(self, kind: str, raw: Any, reason: str):
        super().__init__(f"invalid {kind} {raw!r}: {reason}")
        self.kind = kind
        self.raw = raw
        self.reason = reason


class LabelError(ConfigError):
    """Raised when a record label cannot be placed inside its zone."""


class UnknownRecordTypeError(ConfigError):
    """Raised for record types that are not in the type registry."""


class RegistrationError(DnsplaneError):
    """Raised when a provider or record type registration is rejected."""


class ZoneScopedError(DnsplaneError):
    """An error that is fatal for one zone only."""

    def __init__(self, message: str, zone: str = "", provider: str = ""):
        super().__init__(message)
        self.zone = zone
        self.provider = provider


class CapabilityError(ZoneScopedError):
    """Raised when a zone asks a provider for something it cannot do."""


class AuditError(ZoneScopedError):
    """Raised when records fail a provider's audit predicates."""

    def __init__(self, message: str, zone: str = "", provider: str = "", violations: list[str] | None = None):
        super().__init__(message, zone=zone, provider=provider)
        self.violations = list(violations or [])


class IgnoreConflictError(ZoneScopedError):
    """Raised when a desired record matches one of the zone's ignore patterns."""


class ProviderError(DnsplaneError):
    """Raised when a provider adapter call fails."""


class ZoneFetchError(ProviderError):
    """Raised when observed records cannot be read back from a provider."""


class InvariantError(DnsplaneError, AssertionError):
    """Raised when an internal invariant is violated."""


class ValidationWarning(DnsplaneError):
    """A validation finding that is reported but never fatal."""

    def __init__(self, message: str, zone: str = ""):
        super().__init__(message)
        self.zone = zone
