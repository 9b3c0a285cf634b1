"""Unit tests for loading the desired-state document."""

import json

import pytest

from dnsplane.errors import ConfigError
from dnsplane.loader import load_dns_config, parse_document

YAML_DOCUMENT = """
registrars:
  - name: none
    type: NONE
dns_providers:
  - name: bind
    type: BIND
domains:
  - name: Example.COM
    registrar: none
    dnsProviders:
      bind: -1
    meta:
      ns_ttl: 600
      managed: true
    rawrecords:
      - type: a
        args: ["www", "{{ web_ip }}"]
        ttl: 60
      - type: MX
        args: ["@", 10, "mail"]
        metas: [{"priority": "high"}]
      - type: NAMESERVER
        args: ["", "ns1.example.net"]
      - type: A
        args: ["old", "192.0.2.9"]
        ensure_absent: true
    ignored_names: ["_acme-challenge"]
"""


def _write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text)
    return path


class TestLoadDnsConfig:
    """Tests for load_dns_config()."""

    def test_yaml_template(self, tmp_path):
        """YAML documents are rendered with template variables first."""
        config = load_dns_config(_write(tmp_path, "dnsconfig.yaml", YAML_DOCUMENT), {"web_ip": "192.0.2.10"})
        (dc,) = config.domains
        assert dc.name == "example.com"
        assert dc.registrar_name == "none"
        assert dc.dns_provider_names == {"bind": -1}
        assert dc.metadata == {"ns_ttl": "600", "managed": "true"}
        assert [rc.display for rc in dc.records] == [
            "A www.example.com 192.0.2.10 ttl=60",
            "MX example.com 10 mail.example.com. ttl=0",
        ]
        assert dc.records[1].metadata == {"priority": "high"}
        assert [ns.name for ns in dc.nameservers] == ["ns1.example.net"]
        assert [rc.name for rc in dc.ensure_absent] == ["old"]
        assert len(dc.raw_records) == 4
        assert dc.ignored_names == ["_acme-challenge"]

    def test_json_with_environment(self, tmp_path, monkeypatch):
        """JSON documents can read the environment."""
        monkeypatch.setenv("WEB_IP", "192.0.2.20")
        document = {
            "dns_providers": [{"name": "bind", "type": "BIND"}],
            "domains": [
                {
                    "name": "example.com!internal",
                    "dnsProviders": {"bind": 0},
                    "rawrecords": [{"type": "A", "args": ["www", "{{ env.WEB_IP }}"]}],
                }
            ],
        }
        config = load_dns_config(_write(tmp_path, "dnsconfig.json", json.dumps(document)))
        (dc,) = config.domains
        assert (dc.name, dc.tag, dc.unique_name) == ("example.com", "internal", "example.com!internal")
        assert dc.records[0].target == "192.0.2.20"

    def test_legacy_records(self, tmp_path):
        """Pre-typed records keep their side fields."""
        document = {
            "domains": [
                {
                    "name": "example.com",
                    "records": [
                        {"type": "mx", "name": "@", "target": "mail.example.com.", "mxpreference": 5},
                        {"type": "TXT", "name": "www", "target": "hello", "ttl": 120},
                    ],
                }
            ]
        }
        config = load_dns_config(_write(tmp_path, "dnsconfig.json", json.dumps(document)))
        assert [rc.display for rc in config.domains[0].records] == [
            "MX example.com 5 mail.example.com. ttl=0",
            'TXT www.example.com "hello" ttl=120',
        ]

    def test_unicode_zone_name(self, tmp_path):
        """Zone names are converted to punycode."""
        document = {"domains": [{"name": "bücher.example"}]}
        config = load_dns_config(_write(tmp_path, "dnsconfig.json", json.dumps(document)))
        assert config.domains[0].name == "xn--bcher-kva.example"

    def test_all_record_errors_reported(self, tmp_path):
        """Every broken record is listed in one error."""
        document = {
            "domains": [
                {
                    "name": "example.com",
                    "rawrecords": [
                        {"type": "A", "args": ["www", "999.0.0.1"]},
                        {"type": "BOGUS", "args": ["www", "x"]},
                        {"type": "A", "args": ["ok", "192.0.2.1"]},
                    ],
                }
            ]
        }
        with pytest.raises(ConfigError, match="2 errors in the configuration") as info:
            load_dns_config(_write(tmp_path, "dnsconfig.json", json.dumps(document)))
        assert "BOGUS" in str(info.value)

    def test_missing_file(self, tmp_path):
        """A missing document is a configuration error."""
        with pytest.raises(ConfigError, match="does not exist"):
            load_dns_config(tmp_path / "missing.json")

    def test_undefined_template_variable(self, tmp_path):
        """Undefined variables fail rendering."""
        with pytest.raises(ConfigError, match="Failed to render"):
            load_dns_config(_write(tmp_path, "dnsconfig.yaml", "domains: [{name: '{{ nope }}'}]"))


class TestParseDocument:
    """Tests for schema validation."""

    def test_invalid_auto_dnssec(self):
        """auto_dnssec accepts only on, off or empty."""
        with pytest.raises(ConfigError, match="validation error"):
            parse_document("domains: [{name: example.com, auto_dnssec: maybe}]")

    def test_negative_ttl(self):
        """TTLs cannot be negative."""
        with pytest.raises(ConfigError):
            parse_document('{"domains": [{"name": "example.com", "rawrecords": [{"type": "A", "ttl": -1}]}]}', as_json=True)

    def test_invalid_yaml(self):
        """Syntax errors are reported as configuration errors."""
        with pytest.raises(ConfigError, match="Failed to parse"):
            parse_document("domains: [")

    def test_empty_document(self):
        """An empty document has no domains."""
        assert parse_document("").domains == []
