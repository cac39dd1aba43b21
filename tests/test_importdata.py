import pytest

from zeekhunt.importdata import (
    CertificateInput,
    HostInput,
    HostKey,
    HostnameInput,
    HostPair,
    UconnInput,
    UserAgentInput,
    batch_files_by_size,
)
from zeekhunt.indexedfile import IndexedFile


def _file(path, length, collection="conn"):
    return IndexedFile(path=path, length=length, target_collection=collection)


def test_private_address_is_tied_to_agent():
    key = HostKey.for_agent("10.0.0.5", "uuid-a", "sensor-a")
    assert key.network_uuid == "uuid-a"
    assert key.network_name == "sensor-a"


def test_public_address_has_no_network():
    key = HostKey.for_agent("8.8.8.8", "uuid-a", "sensor-a")
    assert key == HostKey("8.8.8.8")


def test_public_address_same_across_agents():
    a = HostKey.for_agent("8.8.8.8", "uuid-a", "sensor-a")
    b = HostKey.for_agent("8.8.8.8", "uuid-b", "sensor-b")
    assert a.map_key() == b.map_key()


def test_private_address_differs_across_agents():
    a = HostKey.for_agent("10.0.0.5", "uuid-a", "sensor-a")
    b = HostKey.for_agent("10.0.0.5", "uuid-b", "sensor-b")
    assert a.map_key() != b.map_key()
    assert a.ip == b.ip


def test_pair_key_depends_on_direction():
    src = HostKey("10.0.0.1")
    dst = HostKey("10.0.0.2")
    assert HostPair(src, dst).map_key() != HostPair(dst, src).map_key()
    assert HostPair(src, dst).map_key() == HostPair(HostKey("10.0.0.1"),
                                                   HostKey("10.0.0.2")).map_key()


def test_host_input_ipv4_fields():
    host = HostInput(HostKey("10.0.0.1"))
    assert host.ip4 is True
    assert host.ip4_bin == 0x0A000001


def test_host_input_ipv6_fields():
    host = HostInput(HostKey("2001:db8::1"))
    assert host.ip4 is False
    assert host.ip4_bin == 0


def test_input_defaults_are_independent():
    a = UconnInput(HostPair(HostKey("1.1.1.1"), HostKey("2.2.2.2")))
    b = UconnInput(HostPair(HostKey("1.1.1.1"), HostKey("2.2.2.2")))
    a.tuples.append("80:tcp:http")
    assert b.tuples == []
    h1, h2 = HostnameInput("example.com"), HostnameInput("example.com")
    h1.client_ips.add(HostKey("10.0.0.1"))
    assert h2.client_ips == set()


def test_sets_deduplicate_hosts():
    agent = UserAgentInput("curl")
    agent.orig_ips.add(HostKey.for_agent("10.0.0.1", "u", "n"))
    agent.orig_ips.add(HostKey.for_agent("10.0.0.1", "u", "n"))
    cert = CertificateInput(HostKey("1.1.1.1"))
    cert.orig_ips.add(HostKey("10.0.0.1"))
    cert.orig_ips.add(HostKey("10.0.0.1"))
    assert len(agent.orig_ips) == 1
    assert len(cert.orig_ips) == 1


def test_batch_empty_input_gives_one_empty_batch():
    assert batch_files_by_size([], 100) == [[]]


def test_batch_splits_when_limit_reached():
    files = [_file("c.log", 10), _file("a.log", 10), _file("b.log", 10)]
    batches = batch_files_by_size(files, 25)
    assert [[f.path for f in batch] for batch in batches] == [["a.log", "b.log"], ["c.log"]]


def test_batch_oversized_files_each_alone():
    files = [_file("a.log", 100), _file("b.log", 100)]
    batches = batch_files_by_size(files, 10)
    assert [[f.path for f in batch] for batch in batches] == [["a.log"], ["b.log"]]


@pytest.mark.parametrize("limit", [1, 15, 30, 1000])
def test_batch_keeps_every_file_once(limit):
    files = [_file(f"conn{i}.log", 5 + i, "conn") for i in range(4)]
    files += [_file(f"dns{i}.log", 3, "dns") for i in range(2)]
    batches = batch_files_by_size(files, limit)
    flat = [f.path for batch in batches for f in batch]
    assert sorted(flat) == sorted(f.path for f in files)
    assert len(flat) == len(set(flat))


def test_batch_interleaves_collections():
    files = [_file("conn1.log", 1, "conn"), _file("conn2.log", 1, "conn"),
             _file("dns1.log", 1, "dns")]
    batches = batch_files_by_size(files, 1000)
    assert len(batches) == 1
    assert [f.path for f in batches[0]] == ["conn1.log", "dns1.log", "conn2.log"]


def test_batch_does_not_reorder_input():
    files = [_file("b.log", 1), _file("a.log", 1)]
    batch_files_by_size(files, 100)
    assert [f.path for f in files] == ["b.log", "a.log"]