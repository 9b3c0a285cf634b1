"""Unit tests for the controller using in-memory providers."""

from dataclasses import replace

import pytest

from conftest import make_record

from dnsplane.controller import Controller, PreparedConfig, matches_any
from dnsplane.errors import CapabilityError, ConfigError
from dnsplane.models import DNSConfig, DomainConfig, ProviderConfig
from dnsplane.providers.registry import default_registry


def _dns_config(*names, records=None):
    domains = []
    for name in names:
        zone_records = records if records is not None else [make_record("A", "www", "192.0.2.1", origin=name)]
        domains.append(
            DomainConfig(
                name=name,
                registrar_name="reg",
                dns_provider_names={"main": -1},
                records=[rc.copy() for rc in zone_records],
            )
        )
    return DNSConfig(
        registrars=[ProviderConfig("reg", "FAKE")],
        dns_providers=[ProviderConfig("main", "FAKE")],
        domains=domains,
    )


@pytest.fixture
def controller(app_config, fake_registry):
    """Controller bound to the in-memory registry."""
    return Controller(app_config, fake_registry)


def _run(controller, dns_config, push, **kwargs):
    prepared = controller.validate(dns_config)
    controller.bind_providers(prepared, {}, kwargs.get("domains"))
    return controller.run(prepared, push=push, **kwargs)


class TestController:
    """Tests for Controller."""

    def test_preview_lists_everything(self, controller):
        """Preview reports records, apex NS and the delegation."""
        result = _run(controller, _dns_config("example.com"), push=False)
        (outcome,) = result.outcomes
        assert [(g.role, g.pending) for g in outcome.groups] == [("nameservers", 0), ("dns", 3), ("registrar", 1)]
        assert result.total_corrections == 4
        assert not result.any_errors

    def test_push_converges(self, controller):
        """After a push a second preview finds nothing to do."""
        _run(controller, _dns_config("example.com"), push=True)
        driver = controller.driver_for(ProviderConfig("main", "FAKE"), {})
        registrar = controller.driver_for(ProviderConfig("reg", "FAKE"), {})
        assert sorted(rc.display for rc in driver.zones["example.com"]) == [
            "A www.example.com 192.0.2.1 ttl=300",
            "NS example.com ns1.fake.net. ttl=300",
            "NS example.com ns2.fake.net. ttl=300",
        ]
        assert registrar.delegation["example.com"] == ["ns1.fake.net", "ns2.fake.net"]
        assert _run(controller, _dns_config("example.com"), push=False).total_corrections == 0

    def test_failure_does_not_stop_other_zones(self, controller):
        """A failing correction only affects its own zone."""
        driver = controller.driver_for(ProviderConfig("main", "FAKE"), {})
        driver.fail_on = "broken"
        dns_config = _dns_config("a.com")
        dns_config.domains[0].records.append(make_record("A", "broken", "192.0.2.2", origin="a.com"))
        dns_config.domains.append(_dns_config("b.com").domains[0])
        result = _run(controller, dns_config, push=True)
        first, second = result.outcomes
        assert first.has_errors and not second.has_errors
        assert "b.com" in driver.zones
        assert result.any_errors

    def test_zone_errors_skip_the_zone(self, controller):
        """Zones with validation errors are reported and not processed."""
        prepared = controller.validate(_dns_config("a.com", "b.com"))
        prepared = PreparedConfig(
            prepared.dns_config, {"a.com": [CapabilityError("no CAA", zone="a.com")]}, prepared.warnings
        )
        controller.bind_providers(prepared, {})
        result = controller.run(prepared, push=True)
        assert [o.domain for o in result.outcomes] == ["a.com", "b.com"]
        assert str(result.outcomes[0].errors[0]) == "no CAA"
        assert result.outcomes[0].groups == []
        assert "a.com" not in controller.driver_for(ProviderConfig("main", "FAKE"), {}).zones

    def test_domain_filter(self, controller):
        """--domains limits the zones processed."""
        result = _run(controller, _dns_config("a.com", "b.org"), push=False, domains=["*.org"])
        assert [o.domain for o in result.outcomes] == ["b.org"]

    def test_provider_filter_skips_registrar(self, controller):
        """--providers limits which providers and registrars run."""
        result = _run(controller, _dns_config("a.com"), push=False, providers=["main"])
        assert [g.role for g in result.outcomes[0].groups] == ["nameservers", "dns"]

    def test_report(self, controller):
        """The report lists one entry per provider and registrar."""
        result = _run(controller, _dns_config("a.com"), push=False)
        report = result.report()
        assert report[0]["provider"] == "main"
        assert report[0]["corrections"] == 3
        assert report[1] == {
            "domain": "a.com",
            "registrar": "reg",
            "corrections": 1,
            "correction_details": ["Change nameservers from '' to 'ns1.fake.net,ns2.fake.net'"],
        }

    def test_can_concur(self, controller):
        """Zones only run concurrently when every provider allows it."""
        dc = _dns_config("a.com").domains[0]
        prepared = controller.validate(DNSConfig(
            registrars=[ProviderConfig("reg", "SLOW")],
            dns_providers=[ProviderConfig("main", "FAKE")],
            domains=[dc],
        ))
        controller.bind_providers(prepared, {})
        assert not controller.can_concur(dc)
        dc.registrar = None
        assert controller.can_concur(dc)

    def test_driver_cached_per_provider(self, controller):
        """One adapter instance serves every zone of a provider."""
        first = controller.driver_for(ProviderConfig("main", "FAKE"), {})
        assert controller.driver_for(ProviderConfig("main", "FAKE"), {}) is first

    def test_get_zones_all_needs_lister(self, controller):
        """Listing every zone needs CanGetZones."""
        with pytest.raises(ConfigError, match="cannot list"):
            controller.get_zones("main", ["all"], {"main": {"TYPE": "FAKE"}})

    def test_get_zones_reads_records(self, controller):
        """Named zones are read through the provider."""
        driver = controller.driver_for(ProviderConfig("main", "FAKE"), {})
        driver.zones["example.com"] = [make_record("A", "WWW", "192.0.2.1", ttl=0)]
        zones = controller.get_zones("main", ["example.com."], {"main": {"TYPE": "FAKE"}})
        assert [rc.display for rc in zones["example.com."]] == ["A www.example.com 192.0.2.1 ttl=300"]

    def test_fatal_config_error(self, controller):
        """Run-wide errors raise before anything runs."""
        dns_config = _dns_config("a.com")
        dns_config.domains[0].dns_provider_names = {"missing": -1}
        with pytest.raises(ConfigError, match="undeclared DNS provider"):
            controller.validate(dns_config)

    def test_declared_apex_ns_without_dual_host(self, controller):
        """A declared apex NS passes validation and is left alone by a provider that cannot manage it."""
        dc = DomainConfig(
            name="example.com",
            dns_provider_names={"main": -1},
            records=[make_record("A", "www", "192.0.2.1"), make_record("NS", "@", "ns3.example.net.")],
        )
        dns_config = DNSConfig(dns_providers=[ProviderConfig("main", "SLOW")], domains=[dc])
        driver = controller.driver_for(ProviderConfig("main", "SLOW"), {})
        driver.zones["example.com"] = [
            make_record("A", "www", "192.0.2.1"),
            make_record("NS", "@", "ns1.fake.net."),
            make_record("NS", "@", "ns2.fake.net."),
        ]
        result = _run(controller, dns_config, push=False)
        (outcome,) = result.outcomes
        assert not result.any_errors
        assert [(g.role, g.pending) for g in outcome.groups] == [("nameservers", 0), ("dns", 0)]
        assert sorted(rc.target for rc in dc.records if rc.type == "NS") == [
            "ns1.fake.net.",
            "ns2.fake.net.",
            "ns3.example.net.",
        ]

    def test_templates_dir_reaches_bind(self, app_config, tmp_path):
        """TEMPLATES_DIR is used by BIND providers whose credentials name no template directory."""
        templates = tmp_path / "templates"
        templates.mkdir()
        (templates / "zone.j2").write_text("; custom {{ origin }}\n")
        controller = Controller(replace(app_config, templates_dir=templates), default_registry())
        creds = {
            "zones": {"TYPE": "BIND", "directory": str(tmp_path / "zones")},
            "other": {"TYPE": "BIND", "directory": str(tmp_path / "other"), "templates_dir": str(tmp_path)},
        }
        driver = controller.driver_for(ProviderConfig("zones"), creds)
        assert driver.templates_dir == templates
        driver.ensure_zone_exists("example.com", {})
        assert (tmp_path / "zones" / "example.com.zone").read_text() == "; custom example.com\n"
        assert controller.driver_for(ProviderConfig("other"), creds).templates_dir == tmp_path


def test_matches_any():
    """Globs match the zone name or the tagged unique name."""
    dc = DomainConfig(name="example.com!internal")
    assert matches_any(dc, None)
    assert matches_any(dc, ["example.*"])
    assert matches_any(dc, ["*!internal"])
    assert not matches_any(dc, ["other.com"])
