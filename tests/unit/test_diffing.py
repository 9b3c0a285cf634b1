"""Unit tests for the diff engine."""

import pytest

from conftest import FakeProvider, make_record

from dnsplane.corrections import gather_zone_corrections
from dnsplane.diffing import Verb, by_label, by_record, by_recordset, by_zone, label_sort_key, tally
from dnsplane.errors import InvariantError
from dnsplane.models import DNSProviderInstance

ALGORITHMS = [by_record, by_recordset, by_label, by_zone]


def _msgs(changes):
    return [msg for change in changes for msg in change.msgs]


class TestScenarios:
    """End-to-end diff scenarios."""

    @pytest.mark.parametrize("algorithm", ALGORITHMS)
    def test_pure_add(self, domain, algorithm):
        """An empty zone gets one CREATE, whatever the grouping."""
        changes, count = algorithm([], domain([make_record("A", "@", "1.2.3.4")]))
        assert count == 1
        assert [c.type for c in changes] == [Verb.CREATE]
        assert _msgs(changes) == ["+ CREATE A @ → 1.2.3.4 ttl=300"]

    def test_ttl_change(self, domain):
        """Same value, new TTL is exactly one change."""
        existing = [make_record("A", "www", "1.1.1.1")]
        changes, count = by_record(existing, domain([make_record("A", "www", "1.1.1.1", ttl=3600)]))
        assert count == 1
        assert changes[0].type is Verb.CHANGE
        assert changes[0].msgs == ["± MODIFY-TTL A www 1.1.1.1 ttl=(300→3600)"]

    def test_type_flip_deletes_before_create(self, domain):
        """A CNAME replaced by an A is deleted first."""
        existing = [make_record("CNAME", "www", "example.com.")]
        changes, count = by_record(existing, domain([make_record("A", "www", "1.2.3.4")]))
        assert count == 2
        assert [(c.type, c.key.type) for c in changes] == [(Verb.DELETE, "CNAME"), (Verb.CREATE, "A")]

    def test_a_to_cname_creates_last(self, domain):
        """An A replaced by a CNAME is deleted before the CNAME is created."""
        existing = [make_record("A", "www", "1.2.3.4")]
        changes, _ = by_record(existing, domain([make_record("CNAME", "www", "example.com.")]))
        assert [(c.type, c.key.type) for c in changes] == [(Verb.DELETE, "A"), (Verb.CREATE, "CNAME")]

    def test_multi_valued_label(self, domain):
        """Unchanged values are left alone; TTL pairs and surplus are found."""
        existing = [make_record("A", "www", ip) for ip in ("1.1.1.1", "2.2.2.2", "3.3.3.3")]
        desired = [make_record("A", "www", ip) for ip in ("1.1.1.1", "2.2.2.2", "2.2.2.3")]
        desired.append(make_record("A", "www", "3.3.3.3", ttl=10))
        changes, count = by_record(existing, domain(desired))
        assert count == 2
        assert _msgs(changes) == [
            "± MODIFY-TTL A www 3.3.3.3 ttl=(300→10)",
            "+ CREATE A www → 2.2.2.3 ttl=300",
        ]

    def test_value_change_pairs_positionally(self, domain):
        """Different values of one set become MODIFY."""
        existing = [make_record("MX", "@", 10, "mail")]
        changes, _ = by_record(existing, domain([make_record("MX", "@", 20, "mail")]))
        assert _msgs(changes) == [
            "± MODIFY MX @ (10 mail.example.com. ttl=300) → (20 mail.example.com. ttl=300)"
        ]

    def test_ignored_names(self, domain):
        """Ignored observed records produce no corrections."""
        existing = [make_record("TXT", "_acme-challenge", "x"), make_record("A", "www", "1.1.1.1")]
        dc = domain([make_record("A", "www", "1.1.1.1")], ignored_names=["_acme-challenge"])
        for algorithm in ALGORITHMS:
            assert algorithm(existing, dc) == ([], 0)

    def test_apex_ns_left_alone_without_dual_host(self, domain, fake_registry):
        """Providers without DocDualHost never see apex NS changes."""
        driver = FakeProvider()
        driver.zones["example.com"] = [make_record("NS", "@", "ns1.example.net."), make_record("NS", "@", "ns2.example.net.")]
        dc = domain([make_record("NS", "@", "ns3.example.net.")])
        group = gather_zone_corrections(dc, DNSProviderInstance("slow", "SLOW", driver), fake_registry)
        assert group.corrections == []
        assert group.actual_change_count == 0

    def test_apex_ns_managed_with_dual_host(self, domain, fake_registry):
        """DocDualHost providers get apex NS corrections."""
        driver = FakeProvider()
        driver.zones["example.com"] = [make_record("NS", "@", "ns1.example.net.")]
        dc = domain([make_record("NS", "@", "ns3.example.net.")])
        group = gather_zone_corrections(dc, DNSProviderInstance("fake", "FAKE", driver), fake_registry)
        assert group.actual_change_count == 1


class TestProperties:
    """General properties of every algorithm."""

    @pytest.mark.parametrize("algorithm", ALGORITHMS)
    def test_identical_inputs(self, domain, algorithm):
        """Observed equal to desired means nothing to do."""
        records = [make_record("A", "www", "1.1.1.1"), make_record("MX", "@", 10, "mail"), make_record("TXT", "@", "v")]
        assert algorithm([rc.copy() for rc in records], domain(records)) == ([], 0)

    def test_deterministic(self, domain):
        """Input order does not change the output."""
        existing = [make_record("A", label, "10.0.0.1") for label in ("b", "a", "@", "c.b")]
        desired = [make_record("A", label, "10.0.0.2") for label in ("c.b", "@", "a", "b")]
        first, _ = by_record(existing, domain(desired))
        second, _ = by_record(list(reversed(existing)), domain(list(reversed(desired))))
        assert _msgs(first) == _msgs(second)

    def test_labels_sorted_apex_first(self, domain):
        """Labels come out apex first, then compared right to left."""
        desired = [make_record("A", label, "10.0.0.1") for label in ("mail", "a.www", "www", "@")]
        changes, _ = by_record([], domain(desired))
        assert [c.key.name_fqdn for c in changes] == [
            "example.com",
            "mail.example.com",
            "www.example.com",
            "a.www.example.com",
        ]
        assert sorted(["b", "@", "a.b"], key=label_sort_key) == ["@", "b", "a.b"]

    def test_keep_unknown_never_deletes(self, domain):
        """With keep_unknown foreign records are reported, not deleted."""
        existing = [make_record("A", "www", "1.1.1.1"), make_record("A", "old", "2.2.2.2")]
        dc = domain([make_record("A", "www", "1.1.1.1"), make_record("A", "new", "3.3.3.3")], keep_unknown=True)
        changes, count = by_record(existing, dc)
        assert count == 1
        assert changes[0].type is Verb.REPORT
        assert "1 records not being deleted because of NO_PURGE:" in changes[0].msgs
        assert all(c.type is not Verb.DELETE for c in changes)

    def test_tally_matches_record_changes(self, domain):
        """Grouped changes tally the same as by-record changes."""
        existing = [make_record("A", "www", "1.1.1.1"), make_record("A", "gone", "1.1.1.1")]
        desired = [make_record("A", "www", "1.1.1.2"), make_record("AAAA", "www", "2001:db8::1")]
        counts = {algorithm.__name__: tally(algorithm(existing, domain(desired))[0]) for algorithm in ALGORITHMS}
        assert counts["by_record"] == {Verb.CHANGE: 1, Verb.CREATE: 1, Verb.DELETE: 1}
        assert all(value == counts["by_record"] for value in counts.values())

    def test_by_zone_counts_record_changes(self, domain):
        """The whole-zone change reports how many record changes it folds in."""
        existing = [make_record("A", "www", "1.1.1.1")]
        desired = [make_record("A", "www", "1.1.1.2"), make_record("A", "api", "1.1.1.3")]
        changes, count = by_zone(existing, domain(desired))
        assert len(changes) == 1
        assert count == 2
        assert len(changes[0].record_changes) == 2
        assert [rc.target for rc in changes[0].new] == ["1.1.1.3", "1.1.1.2"]

    def test_by_recordset_groups_one_set(self, domain):
        """One change per (label, type) with all desired values."""
        existing = [make_record("A", "www", "1.1.1.1")]
        desired = [make_record("A", "www", "1.1.1.1"), make_record("A", "www", "1.1.1.2")]
        changes, count = by_recordset(existing, domain(desired))
        assert count == 1
        assert changes[0].type is Verb.CHANGE
        assert len(changes[0].new) == 2

    def test_trailing_dot_is_invariant_violation(self, domain):
        """Names reaching the engine must not end with a dot."""
        rc = make_record("A", "www", "1.1.1.1")
        rc.name_fqdn = "www.example.com."
        with pytest.raises(InvariantError):
            by_record([rc], domain([]))
