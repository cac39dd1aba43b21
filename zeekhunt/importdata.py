"""Aggregation records built while importing logs, and import batching."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from zeekhunt.indexedfile import IndexedFile

# Default upper bound on the bytes of log data read in for one batch.
DEFAULT_BATCH_SIZE_BYTES = 2 * (2 << 30)


def _parse_address(ip: str) -> Optional[ipaddress._BaseAddress]:
    try:
        return ipaddress.ip_address(ip)
    except ValueError:
        return None


@dataclass(frozen=True)
class HostKey:
    """An address, qualified by the sensor network it was seen on when needed."""

    ip: str
    network_uuid: str = ""
    network_name: str = ""

    @classmethod
    def for_agent(cls, ip: str, agent_uuid: str = "",
                  agent_hostname: str = "") -> "HostKey":
        """Build a key, tying addresses that are not publicly routable to the agent.

        Public addresses are the same host whichever sensor saw them, so they
        carry no network qualifier.
        """
        address = _parse_address(ip)
        if address is not None and address.is_global:
            return cls(ip)
        return cls(ip, agent_uuid, agent_hostname)

    def map_key(self) -> str:
        """Return a string that identifies this host in aggregation maps."""
        return f"{self.ip}|{self.network_uuid}"


@dataclass(frozen=True)
class HostPair:
    """A source and destination host."""

    src: HostKey
    dst: HostKey

    def map_key(self) -> str:
        """Return a string that identifies this pair in aggregation maps."""
        return f"{self.src.map_key()}>{self.dst.map_key()}"


@dataclass
class HostInput:
    """Statistics gathered for one host."""

    host: HostKey
    is_local: bool = False
    ip4: bool = False
    ip4_bin: int = 0
    count_src: int = 0
    count_dst: int = 0
    untrusted_app_conn_count: int = 0
    connection_count: int = 0
    total_bytes: int = 0
    total_duration: float = 0.0
    max_duration: float = 0.0
    dns_query_count: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        address = _parse_address(self.host.ip)
        if address is None:
            return
        if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
            address = address.ipv4_mapped
        if isinstance(address, ipaddress.IPv4Address):
            if "." in self.host.ip:
                self.ip4 = True
            self.ip4_bin = int(address)


@dataclass
class UconnInput:
    """Statistics gathered for one unique source/destination pair."""

    hosts: HostPair
    is_local_src: bool = False
    is_local_dst: bool = False
    upps_flag: bool = False
    invalid_cert_flag: bool = False
    tuples: List[str] = field(default_factory=list)
    connection_count: int = 0
    ts_list: List[int] = field(default_factory=list)
    orig_bytes_list: List[int] = field(default_factory=list)
    total_bytes: int = 0
    total_duration: float = 0.0
    max_duration: float = 0.0


@dataclass
class HostnameInput:
    """Clients that queried a domain and the addresses it resolved to."""

    host: str
    client_ips: Set[HostKey] = field(default_factory=set)
    resolved_ips: Set[HostKey] = field(default_factory=set)


@dataclass
class UserAgentInput:
    """Sightings of one user agent string or JA3 hash."""

    name: str
    seen: int = 0
    requests: List[str] = field(default_factory=list)
    orig_ips: Set[HostKey] = field(default_factory=set)
    ja3: bool = False


@dataclass
class CertificateInput:
    """Invalid certificate sightings for one destination host."""

    host: HostKey
    seen: int = 0
    tuples: List[str] = field(default_factory=list)
    invalid_certs: List[str] = field(default_factory=list)
    orig_ips: Set[HostKey] = field(default_factory=set)


def batch_files_by_size(indexed_files: Iterable[IndexedFile],
                        size: int = DEFAULT_BATCH_SIZE_BYTES) -> List[List[IndexedFile]]:
    """Split files into batches whose combined length stays below size.

    Files are taken in path order, one from each target collection per round,
    so every batch covers all collections evenly. A round is never split, so
    a batch may exceed the limit when single files are too large.
    """
    groups: Dict[str, List[IndexedFile]] = {}
    for indexed in sorted(indexed_files, key=lambda f: f.path):
        groups.setdefault(indexed.target_collection, []).append(indexed)

    batches: List[List[IndexedFile]] = []
    current: List[IndexedFile] = []
    current_bytes = 0
    rounds = max((len(files) for files in groups.values()), default=0)
    for position in range(rounds):
        round_files = [files[position] for files in groups.values()
                       if position < len(files)]
        round_bytes = sum(f.length for f in round_files)
        if current and current_bytes + round_bytes >= size:
            batches.append(current)
            current = []
            current_bytes = 0
        current.extend(round_files)
        current_bytes += round_bytes
    batches.append(current)
    return batches