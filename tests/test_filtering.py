import ipaddress

import pytest

from zeekhunt.filtering import (
    ImportFilter,
    contains_domain,
    contains_ip,
    parse_subnets,
)

ALWAYS = ["10.0.0.1/32", "10.0.0.3/32", "1.1.1.1/32", "1.1.1.3/32"]
NEVER = ["10.0.0.2/32", "10.0.0.3/32", "1.1.1.2/32", "1.1.1.3/32"]

INTERNAL = "10.0.0.0"
INTERNAL_ALWAYS = "10.0.0.1"
INTERNAL_NEVER = "10.0.0.2"
INTERNAL_ALWAYS_NEVER = "10.0.0.3"
EXTERNAL = "1.1.1.0"
EXTERNAL_ALWAYS = "1.1.1.1"
EXTERNAL_NEVER = "1.1.1.2"
EXTERNAL_ALWAYS_NEVER = "1.1.1.3"


@pytest.fixture
def with_internal():
    return ImportFilter(
        internal=parse_subnets(["10.0.0.0/8"]),
        always_included=parse_subnets(ALWAYS),
        never_included=parse_subnets(NEVER),
    )


@pytest.fixture
def without_internal():
    return ImportFilter(
        always_included=parse_subnets(ALWAYS),
        never_included=parse_subnets(NEVER),
    )


@pytest.mark.parametrize("src,dst,expected", [
    (INTERNAL, INTERNAL, True),
    (INTERNAL, INTERNAL_ALWAYS, False),
    (INTERNAL, INTERNAL_NEVER, True),
    (INTERNAL, INTERNAL_ALWAYS_NEVER, False),
    (INTERNAL_ALWAYS, INTERNAL_NEVER, False),
    (INTERNAL, EXTERNAL, False),
    (INTERNAL, EXTERNAL_ALWAYS, False),
    (INTERNAL, EXTERNAL_NEVER, True),
    (INTERNAL, EXTERNAL_ALWAYS_NEVER, False),
    (INTERNAL_ALWAYS, EXTERNAL_NEVER, False),
    (EXTERNAL, INTERNAL, False),
    (EXTERNAL, INTERNAL_ALWAYS, False),
    (EXTERNAL, INTERNAL_NEVER, True),
    (EXTERNAL, INTERNAL_ALWAYS_NEVER, False),
    (EXTERNAL_ALWAYS, INTERNAL_NEVER, False),
    (EXTERNAL, EXTERNAL, True),
    (EXTERNAL, EXTERNAL_ALWAYS, False),
    (EXTERNAL, EXTERNAL_NEVER, True),
    (EXTERNAL, EXTERNAL_ALWAYS_NEVER, False),
    (EXTERNAL_ALWAYS, EXTERNAL_NEVER, False),
])
def test_filter_conn_pair_with_internal_subnets(with_internal, src, dst, expected):
    assert with_internal.filter_conn_pair(src, dst) is expected


@pytest.mark.parametrize("src,dst,expected", [
    (INTERNAL, INTERNAL, False),
    (INTERNAL, INTERNAL_NEVER, True),
    (INTERNAL, EXTERNAL, False),
    (EXTERNAL, INTERNAL, False),
    (EXTERNAL, EXTERNAL, False),
])
def test_filter_conn_pair_without_internal_subnets(without_internal, src, dst, expected):
    assert without_internal.filter_conn_pair(src, dst) is expected


@pytest.mark.parametrize("domain,expected", [
    ("bad.com", False),
    ("good.com", True),
    ("google.com", False),
    ("a.mydomain.com", True),
    ("a.myotherdomain.com", False),
])
def test_filter_domain(domain, expected):
    fs = ImportFilter(
        internal=parse_subnets(["10.0.0.0/8"]),
        always_included=parse_subnets(ALWAYS),
        never_included=parse_subnets(NEVER),
        always_included_domain=["bad.com", "google.com", "*.myotherdomain.com"],
        never_included_domain=["good.com", "google.com", "*.mydomain.com"],
    )
    assert fs.filter_domain(domain) is expected


def test_filter_domain_default_keeps():
    assert ImportFilter().filter_domain("example.com") is False


def test_parse_subnets_skips_invalid_and_accepts_bare_address():
    nets = parse_subnets(["10.0.0.0/8", "not-a-subnet", "1.1.1.1"])
    assert nets == [ipaddress.ip_network("10.0.0.0/8"), ipaddress.ip_network("1.1.1.1/32")]


def test_contains_ip():
    nets = parse_subnets(["10.0.0.0/8", "fd00::/8"])
    assert contains_ip(nets, "10.1.2.3") is True
    assert contains_ip(nets, "11.0.0.1") is False
    assert contains_ip(nets, "fd00::1") is True
    assert contains_ip(nets, "::ffff:10.0.0.5") is True
    assert contains_ip(nets, "garbage") is False
    assert contains_ip(nets, None) is False
    assert contains_ip([], "10.0.0.1") is False


def test_contains_domain():
    assert contains_domain(["example.com"], "example.com") is True
    assert contains_domain(["example.com"], "www.example.com") is False
    assert contains_domain(["*.example.com"], "www.example.com") is True
    assert contains_domain(["*.example.com"], "example.org") is False
    assert contains_domain([], "example.com") is False