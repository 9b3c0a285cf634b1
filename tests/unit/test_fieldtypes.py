"""Unit tests for typed scalar fields and label handling."""

import pytest

from dnsplane.errors import FieldParseError, LabelError
from dnsplane.fieldtypes import (
    FieldKind,
    label_from_fqdn,
    parse_base64,
    parse_hex,
    parse_hostname_dot,
    parse_ipv4,
    parse_ipv6,
    parse_label3,
    parse_uint8,
    parse_uint16,
)


class TestAddresses:
    """Tests for IPv4 and IPv6 parsing."""

    def test_ipv4_dotted_quad(self):
        """Dotted-quad text is returned unchanged."""
        assert parse_ipv4("192.0.2.1") == "192.0.2.1"

    def test_ipv4_integer_form(self):
        """A 32-bit integer is converted to dotted-quad."""
        assert parse_ipv4("3221225985") == "192.0.2.1"

    def test_ipv4_rejects_whitespace(self):
        """Surrounding whitespace is an error, not silently stripped."""
        with pytest.raises(FieldParseError):
            parse_ipv4(" 192.0.2.1")

    def test_ipv4_rejects_garbage(self):
        """Non-addresses raise FieldParseError, which is also a ValueError."""
        with pytest.raises(ValueError):
            parse_ipv4("192.0.2.256")

    def test_ipv6_is_compressed(self):
        """IPv6 addresses are returned in compressed form."""
        assert parse_ipv6("2001:0db8:0000:0000:0000:0000:0000:0001") == "2001:db8::1"

    def test_ipv6_rejects_zone_index(self):
        """Scoped addresses are not valid record data."""
        with pytest.raises(FieldParseError):
            parse_ipv6("fe80::1%eth0")


class TestIntegers:
    """Tests for unsigned integer fields."""

    def test_uint8_accepts_text_and_int(self):
        """Both digit strings and ints are accepted."""
        assert parse_uint8("10") == 10
        assert parse_uint8(255) == 255

    def test_uint8_out_of_range(self):
        """256 does not fit in eight bits."""
        with pytest.raises(FieldParseError, match="out of range"):
            parse_uint8(256)

    def test_uint16_rejects_negative_text(self):
        """A minus sign is not a digit."""
        with pytest.raises(FieldParseError):
            parse_uint16("-1")

    def test_booleans_are_not_numbers(self):
        """True must not silently become 1."""
        with pytest.raises(FieldParseError):
            parse_uint16(True)


class TestHostnames:
    """Tests for HostnameDot parsing."""

    def test_relative_name_gets_origin(self):
        """A relative name is made absolute within the origin."""
        assert parse_hostname_dot("mail", "example.com") == "mail.example.com."

    def test_at_means_origin(self):
        """@ is the origin itself."""
        assert parse_hostname_dot("@", "example.com") == "example.com."

    def test_absolute_name_is_kept(self):
        """A name with a trailing dot is already absolute."""
        assert parse_hostname_dot("mx.other.net.", "example.com") == "mx.other.net."

    def test_root_is_kept(self):
        """The root name is used by null MX targets."""
        assert parse_hostname_dot(".", "example.com") == "."

    def test_empty_label_rejected(self):
        """Consecutive dots are invalid."""
        with pytest.raises(FieldParseError, match="empty label"):
            parse_hostname_dot("a..b", "example.com")


class TestEncodings:
    """Tests for hex and base64 fields."""

    def test_hex_is_lowercased(self):
        """Hex text is canonicalised to lowercase."""
        assert parse_hex("ABCDEF01") == "abcdef01"

    def test_hex_rejects_non_hex(self):
        """Letters beyond f are rejected."""
        with pytest.raises(FieldParseError):
            parse_hex("xyz")

    def test_base64_strips_whitespace(self):
        """Whitespace inside base64 text is removed."""
        assert parse_base64("AQID BAU=") == "AQIDBAU="

    def test_quoted_string_renders_with_quotes(self):
        """QuotedString fields render quoted and escaped."""
        assert FieldKind.QSTRING.render('say "hi"') == '"say \\"hi\\""'


class TestLabels:
    """Tests for the label algebra."""

    def test_apex(self):
        """@ and the empty label are the apex."""
        assert parse_label3("@", "", "example.com") == ("@", "example.com")
        assert parse_label3("", "", "example.com") == ("@", "example.com")

    def test_short_label(self):
        """A short label is joined with the origin."""
        assert parse_label3("www", "", "example.com") == ("www", "www.example.com")

    def test_subdomain_composition(self):
        """Labels inside a subdomain block are joined with it."""
        assert parse_label3("www", "dev", "example.com") == ("www.dev", "www.dev.example.com")
        assert parse_label3("@", "dev", "example.com") == ("dev", "dev.example.com")

    def test_fqdn_inside_origin(self):
        """An FQDN within the zone is shortened."""
        assert parse_label3("www.example.com.", "", "example.com") == ("www", "www.example.com")
        assert parse_label3("example.com.", "", "example.com") == ("@", "example.com")

    def test_fqdn_outside_origin(self):
        """An FQDN outside the zone is rejected."""
        with pytest.raises(LabelError):
            parse_label3("www.other.net.", "", "example.com")

    def test_origin_must_be_canonical(self):
        """The origin is lowercase and has no trailing dot."""
        with pytest.raises(LabelError):
            parse_label3("www", "", "example.com.")
        with pytest.raises(LabelError):
            parse_label3("www", "", "Example.com")

    def test_reverse_names_are_absolute(self):
        """A reverse name inside a reverse zone is treated as an FQDN."""
        assert parse_label3("1.2.0.192.in-addr.arpa", "", "2.0.192.in-addr.arpa") == (
            "1",
            "1.2.0.192.in-addr.arpa",
        )

    def test_label_from_fqdn(self):
        """label_from_fqdn is the inverse of joining with the origin."""
        assert label_from_fqdn("www.example.com.", "example.com") == "www"
        assert label_from_fqdn("example.com", "example.com") == "@"
