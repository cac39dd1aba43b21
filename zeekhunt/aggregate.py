"""Aggregation of parsed log records into per-host and per-pair statistics."""

from __future__ import annotations

import ipaddress
import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, NamedTuple, Optional

from zeekhunt.filtering import ImportFilter, contains_ip
from zeekhunt.importdata import (
    CertificateInput,
    HostInput,
    HostKey,
    HostnameInput,
    HostPair,
    UconnInput,
    UserAgentInput,
)
from zeekhunt.indexedfile import IndexedFile
from zeekhunt.logparser import LogParseError, open_log, parse_line
from zeekhunt.parsetypes import DNS, BroData, Conn, TableNames
from zeekhunt.webrecords import HTTP, SSL

logger = logging.getLogger(__name__)

EMPTY_USER_AGENT = "Empty user agent string"
NO_JA3_HASH = "No JA3 hash generated"
_VALID_CERT_STATUSES = frozenset({"ok", "-", "", " "})


class _TrustedApp(NamedTuple):
    protocol: str
    port: int
    service: str


TRUSTED_APPS = (
    _TrustedApp("tcp", 80, "http"),
    _TrustedApp("tcp", 443, "ssl"),
)


def _is_ip(text: str) -> bool:
    try:
        ipaddress.ip_address(text)
    except ValueError:
        return False
    return True


def _append_unique(items: list, value) -> None:
    if value not in items:
        items.append(value)


@dataclass
class ParseResults:
    """Everything gathered from one batch of log files."""

    uconns: Dict[str, UconnInput] = field(default_factory=dict)
    hosts: Dict[str, HostInput] = field(default_factory=dict)
    exploded_dns: Dict[str, int] = field(default_factory=dict)
    hostnames: Dict[str, HostnameInput] = field(default_factory=dict)
    useragents: Dict[str, UserAgentInput] = field(default_factory=dict)
    certificates: Dict[str, CertificateInput] = field(default_factory=dict)


class Aggregator:
    """Folds parsed conn, DNS, HTTP and SSL records into ParseResults."""

    def __init__(self, tables: Optional[TableNames] = None,
                 import_filter: Optional[ImportFilter] = None) -> None:
        self.tables = tables if tables is not None else TableNames()
        self.filter = import_filter if import_filter is not None else ImportFilter()
        self.results = ParseResults()
        self._lock = threading.Lock()

    def _is_local(self, ip: str) -> bool:
        return contains_ip(self.filter.internal, ip)

    def _host(self, key: HostKey, ip: str) -> HostInput:
        hosts = self.results.hosts
        map_key = key.map_key()
        if map_key not in hosts:
            hosts[map_key] = HostInput(host=key, is_local=self._is_local(ip))
        return hosts[map_key]

    def add(self, record: BroData, collection: str) -> None:
        """Aggregate one record heading for the named collection.

        Records whose type does not suit the collection are ignored.
        """
        with self._lock:
            if collection == self.tables.conn_table:
                if isinstance(record, Conn):
                    self._add_conn(record)
            elif collection == self.tables.dns_table:
                if isinstance(record, DNS):
                    self._add_dns(record)
            elif collection == self.tables.http_table:
                if isinstance(record, HTTP):
                    self._add_http(record)
            elif collection == self.tables.ssl_table:
                if isinstance(record, SSL):
                    self._add_ssl(record)

    def _add_conn(self, conn: Conn) -> None:
        src, dst = conn.source, conn.destination
        src_key = HostKey.for_agent(src, conn.agent_uuid, conn.agent_hostname)
        dst_key = HostKey.for_agent(dst, conn.agent_uuid, conn.agent_hostname)
        pair = HostPair(src_key, dst_key)

        if self.filter.filter_conn_pair(src, dst):
            return

        duration = math.ceil(conn.duration * 10000) / 10000
        total = conn.orig_ip_bytes + conn.resp_ip_bytes
        protocol, service, port = conn.proto, conn.service, conn.destination_port
        tuple_name = f"{port}:{protocol}:{service or '-'}"

        src_host = self._host(src_key, src)
        dst_host = self._host(dst_key, dst)

        uconns = self.results.uconns
        pair_key = pair.map_key()
        if pair_key not in uconns:
            uconns[pair_key] = UconnInput(
                hosts=pair,
                is_local_src=self._is_local(src),
                is_local_dst=self._is_local(dst),
            )
            src_host.count_src += 1
            dst_host.count_dst += 1
        uconn = uconns[pair_key]

        # count a host once per unexpected port:protocol:service destination
        if not uconn.upps_flag:
            for app in TRUSTED_APPS:
                if protocol == app.protocol and port == app.port and service != app.service:
                    src_host.untrusted_app_conn_count += 1
                    uconn.upps_flag = True

        _append_unique(uconn.tuples, tuple_name)

        cert = self.results.certificates.get(dst_key.map_key())
        if cert is not None:
            _append_unique(cert.tuples, tuple_name)

        uconn.connection_count += 1
        src_host.connection_count += 1
        dst_host.connection_count += 1

        _append_unique(uconn.ts_list, conn.timestamp)
        uconn.orig_bytes_list.append(conn.orig_ip_bytes)

        for stats in (uconn, src_host, dst_host):
            stats.total_bytes += total
            stats.total_duration += duration
            if duration > stats.max_duration:
                stats.max_duration = duration

    def _add_dns(self, dns: DNS) -> None:
        domain = dns.query
        if self.filter.filter_domain(domain):
            return

        results = self.results
        results.exploded_dns[domain] = results.exploded_dns.get(domain, 0) + 1
        hostname = results.hostnames.setdefault(domain, HostnameInput(host=domain))

        src = dns.source
        src_key = HostKey.for_agent(src, dns.agent_uuid, dns.agent_hostname)
        hostname.client_ips.add(src_key)

        if dns.qtype_name == "A":
            for answer in dns.answers:
                if _is_ip(answer):
                    hostname.resolved_ips.add(
                        HostKey.for_agent(answer, dns.agent_uuid, dns.agent_hostname))

        if domain and not domain.endswith("in-addr.arpa"):
            host = self._host(src_key, src)
            host.dns_query_count[domain] = host.dns_query_count.get(domain, 0) + 1

    def _record_agent(self, name: str, request: str, src_key: HostKey,
                      ja3: bool) -> None:
        agents = self.results.useragents
        agent = agents.get(name)
        if agent is None:
            agent = UserAgentInput(name=name, seen=1, requests=[request], ja3=ja3)
            agents[name] = agent
        else:
            agent.seen += 1
            _append_unique(agent.requests, request)
        agent.orig_ips.add(src_key)

    def _add_http(self, http: HTTP) -> None:
        src_key = HostKey.for_agent(http.source, http.agent_uuid, http.agent_hostname)
        name = http.user_agent or EMPTY_USER_AGENT
        self._record_agent(name, http.host, src_key, ja3=False)

    def _add_ssl(self, ssl: SSL) -> None:
        src, dst = ssl.source, ssl.destination
        src_key = HostKey.for_agent(src, ssl.agent_uuid, ssl.agent_hostname)
        dst_key = HostKey.for_agent(dst, ssl.agent_uuid, ssl.agent_hostname)
        pair = HostPair(src_key, dst_key)

        self._record_agent(ssl.ja3 or NO_JA3_HASH, ssl.server_name, src_key, ja3=True)

        status = ssl.validation_status
        if status in _VALID_CERT_STATUSES or self.filter.filter_conn_pair(src, dst):
            return

        uconns = self.results.uconns
        pair_key = pair.map_key()
        if pair_key not in uconns:
            uconns[pair_key] = UconnInput(
                hosts=pair,
                is_local_src=self._is_local(src),
                is_local_dst=self._is_local(dst),
            )
        uconn = uconns[pair_key]
        uconn.invalid_cert_flag = True

        certs = self.results.certificates
        dst_map_key = dst_key.map_key()
        cert = certs.get(dst_map_key)
        if cert is None:
            cert = CertificateInput(host=dst_key, seen=1)
            certs[dst_map_key] = cert
        else:
            cert.seen += 1

        for tuple_name in uconn.tuples:
            _append_unique(cert.tuples, tuple_name)
        _append_unique(cert.invalid_certs, status)
        cert.orig_ips.add(src_key)

    def parse_file(self, indexed_file: IndexedFile) -> int:
        """Parse every line of an indexed file and aggregate it.

        Returns the number of records aggregated. A file that cannot be
        opened is logged and gives 0.
        """
        if indexed_file.factory is None or indexed_file.header is None:
            raise LogParseError(f"file has not been indexed: {indexed_file.path}")
        count = 0
        try:
            with open_log(indexed_file.path) as lines:
                for line in lines:
                    record = parse_line(line, indexed_file.header, indexed_file.field_map,
                                        indexed_file.factory, indexed_file.is_json)
                    if record is None:
                        continue
                    self.add(record, indexed_file.target_collection)
                    count += 1
        except (OSError, LogParseError) as err:
            logger.error("Could not read %s for parsing: %s", indexed_file.path, err)
            return 0
        indexed_file.parse_time = datetime.now(timezone.utc)
        logger.info("Finished parsing file %s", indexed_file.path)
        return count

    def parse_files(self, indexed_files: Iterable[IndexedFile],
                    threads: int = 1) -> ParseResults:
        """Parse many indexed files in parallel and return the gathered results."""
        if threads < 1:
            raise ValueError("at least one parsing thread is required")
        files = list(indexed_files)
        with ThreadPoolExecutor(max_workers=threads) as pool:
            list(pool.map(self.parse_file, files))
        return self.results