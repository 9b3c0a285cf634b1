"""Provider capability tokens and their documentation notes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class Capability(StrEnum):
    """Closed set of features a provider can declare."""

    CAN_AUTO_DNSSEC = "CanAutoDNSSEC"
    CAN_CONCUR = "CanConcur"
    CAN_GET_ZONES = "CanGetZones"
    CAN_USE_AKAMAICDN = "CanUseAKAMAICDN"
    CAN_USE_AKAMAITLC = "CanUseAKAMAITLC"
    CAN_USE_ALIAS = "CanUseAlias"
    CAN_USE_AZURE_ALIAS = "CanUseAzureAlias"
    CAN_USE_CAA = "CanUseCAA"
    CAN_USE_DNSKEY = "CanUseDNSKEY"
    CAN_USE_DS = "CanUseDS"
    CAN_USE_DS_FOR_CHILDREN = "CanUseDSForChildren"
    CAN_USE_HTTPS = "CanUseHTTPS"
    CAN_USE_LOC = "CanUseLOC"
    CAN_USE_NAPTR = "CanUseNAPTR"
    CAN_USE_PTR = "CanUsePTR"
    CAN_USE_ROUTE53_ALIAS = "CanUseRoute53Alias"
    CAN_USE_SOA = "CanUseSOA"
    CAN_USE_SRV = "CanUseSRV"
    CAN_USE_SSHFP = "CanUseSSHFP"
    CAN_USE_SVCB = "CanUseSVCB"
    CAN_USE_TLSA = "CanUseTLSA"
    DOC_CREATE_DOMAINS = "DocCreateDomains"
    DOC_DUAL_HOST = "DocDualHost"
    DOC_OFFICIALLY_SUPPORTED = "DocOfficiallySupported"
    IS_REGISTRAR = "IsRegistrar"
    IS_DNS_SERVICE_PROVIDER = "IsDnsServiceProvider"


# Capabilities that stand for "this record type is supported". They are
# derived from a provider's RecordTypes list and never declared directly.
TYPE_CAPABILITIES: dict[Capability, str] = {
    Capability.CAN_USE_AKAMAICDN: "AKAMAICDN",
    Capability.CAN_USE_AKAMAITLC: "AKAMAITLC",
    Capability.CAN_USE_ALIAS: "ALIAS",
    Capability.CAN_USE_AZURE_ALIAS: "AZURE_ALIAS",
    Capability.CAN_USE_CAA: "CAA",
    Capability.CAN_USE_DNSKEY: "DNSKEY",
    Capability.CAN_USE_DS: "DS",
    Capability.CAN_USE_HTTPS: "HTTPS",
    Capability.CAN_USE_LOC: "LOC",
    Capability.CAN_USE_NAPTR: "NAPTR",
    Capability.CAN_USE_PTR: "PTR",
    Capability.CAN_USE_ROUTE53_ALIAS: "R53_ALIAS",
    Capability.CAN_USE_SOA: "SOA",
    Capability.CAN_USE_SRV: "SRV",
    Capability.CAN_USE_SSHFP: "SSHFP",
    Capability.CAN_USE_SVCB: "SVCB",
    Capability.CAN_USE_TLSA: "TLSA",
}


def capability_for_type(rtype: str) -> Capability | None:
    """Return the named capability token for a record type, if it has one."""
    for cap, name in TYPE_CAPABILITIES.items():
        if name == rtype:
            return cap
    return None


@dataclass(frozen=True)
class DocumentationNote:
    """How well a provider supports one capability or record type."""

    has_feature: bool
    unimplemented: bool = False
    comment: str = ""
    link: str = ""


def can(comment: str = "", link: str = "") -> DocumentationNote:
    """Return a note saying the feature is supported."""
    return DocumentationNote(has_feature=True, comment=comment, link=link)


def cannot(comment: str = "", link: str = "") -> DocumentationNote:
    """Return a note saying the feature is not supported."""
    return DocumentationNote(has_feature=False, comment=comment, link=link)


def unimplemented(comment: str = "", link: str = "") -> DocumentationNote:
    """Return a note saying the provider could support it but does not yet."""
    return DocumentationNote(has_feature=False, unimplemented=True, comment=comment, link=link)
