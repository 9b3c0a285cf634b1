"""Unit tests for nameserver determination and registrar corrections."""

import pytest

from conftest import FakeProvider, make_record

from dnsplane.errors import ConfigError
from dnsplane.models import DNSProviderInstance, DomainConfig, Nameserver
from dnsplane.nameservers import add_ns_records, determine_nameservers, registrar_corrections


def _zone(count, declared=()):
    instance = DNSProviderInstance("fake", "FAKE", FakeProvider(), num_nameservers=count)
    return DomainConfig(name="example.com", nameservers=[Nameserver(n) for n in declared], dns_providers=[instance])


class TestDetermineNameservers:
    """Tests for determine_nameservers()."""

    def test_all_provider_nameservers(self):
        """-1 takes every nameserver the provider advertises."""
        names = [ns.name for ns in determine_nameservers(_zone(-1, ["ns0.example.net"]))]
        assert names == ["ns0.example.net", "ns1.fake.net", "ns2.fake.net"]

    def test_limited_count(self):
        """A positive count takes that many."""
        assert [ns.name for ns in determine_nameservers(_zone(1))] == ["ns1.fake.net"]

    def test_zero_means_none(self):
        """0 asks the provider for nothing."""
        assert determine_nameservers(_zone(0, ["ns0.example.net"])) == [Nameserver("ns0.example.net")]

    def test_no_duplicates(self):
        """A declared nameserver is not repeated."""
        names = [ns.name for ns in determine_nameservers(_zone(-1, ["ns1.fake.net"]))]
        assert names == ["ns1.fake.net", "ns2.fake.net"]


class TestAddNSRecords:
    """Tests for add_ns_records()."""

    def test_adds_apex_ns(self):
        """Each nameserver becomes an apex NS record."""
        dc = DomainConfig(name="example.com", nameservers=[Nameserver("ns1.fake.net"), Nameserver("ns2.fake.net")])
        add_ns_records(dc)
        assert [(rc.name, rc.target, rc.ttl) for rc in dc.records] == [
            ("@", "ns1.fake.net.", 300),
            ("@", "ns2.fake.net.", 300),
        ]

    def test_ns_ttl_metadata(self):
        """ns_ttl sets the TTL of added records."""
        dc = DomainConfig(name="example.com", nameservers=[Nameserver("ns1.fake.net")], metadata={"ns_ttl": "3600"})
        add_ns_records(dc)
        assert dc.records[0].ttl == 3600

    def test_existing_record_kept(self):
        """Apex NS records already present are not duplicated."""
        dc = DomainConfig(
            name="example.com",
            nameservers=[Nameserver("ns1.fake.net")],
            records=[make_record("NS", "@", "ns1.fake.net.", ttl=60)],
        )
        add_ns_records(dc)
        assert len(dc.records) == 1

    def test_bad_ns_ttl(self):
        """A non-numeric ns_ttl is a configuration error."""
        dc = DomainConfig(name="example.com", nameservers=[Nameserver("ns1.fake.net")], metadata={"ns_ttl": "1h"})
        with pytest.raises(ConfigError):
            add_ns_records(dc)


class TestRegistrarCorrections:
    """Tests for registrar_corrections()."""

    def test_in_sync(self):
        """Case and trailing dots do not count as differences."""
        dc = DomainConfig(name="example.com", nameservers=[Nameserver("ns1.fake.net"), Nameserver("ns2.fake.net")])
        assert registrar_corrections(dc, ["NS2.fake.net.", "ns1.fake.net"], lambda names: None) == []

    def test_change(self):
        """A differing delegation yields one correction that applies the sorted list."""
        applied = []
        dc = DomainConfig(name="example.com", nameservers=[Nameserver("ns2.fake.net"), Nameserver("ns1.fake.net")])
        (correction,) = registrar_corrections(dc, ["old.example.net"], applied.append)
        assert correction.msg == "Change nameservers from 'old.example.net' to 'ns1.fake.net,ns2.fake.net'"
        correction.action()
        assert applied == [["ns1.fake.net", "ns2.fake.net"]]
