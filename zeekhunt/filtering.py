"""Rules deciding which connections and domains are left out of an import."""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

logger = logging.getLogger(__name__)

Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]
Address = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def parse_subnets(subnets: Iterable[str]) -> List[Network]:
    """Parse CIDR strings (or bare addresses) into networks, skipping bad ones."""
    parsed: List[Network] = []
    for text in subnets:
        try:
            parsed.append(ipaddress.ip_network(text.strip(), strict=False))
        except ValueError as err:
            logger.error("Error parsing subnet %r: %s", text, err)
    return parsed


def _to_address(ip: Union[str, Address, None]) -> Optional[Address]:
    if ip is None:
        return None
    if isinstance(ip, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return ip
    try:
        return ipaddress.ip_address(ip)
    except ValueError:
        return None


def contains_ip(subnets: Iterable[Network], ip: Union[str, Address, None]) -> bool:
    """Report whether an address lies in any of the subnets."""
    address = _to_address(ip)
    if address is None:
        return False
    candidates = [address]
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        candidates.append(address.ipv4_mapped)
    return any(
        candidate in subnet
        for subnet in subnets
        for candidate in candidates
        if candidate.version == subnet.version
    )


def contains_domain(domains: Iterable[str], domain: str) -> bool:
    """Report whether a domain matches any entry; "*.x" matches subdomains of x."""
    for entry in domains:
        if entry.startswith("*"):
            if domain.endswith(entry[1:]):
                return True
        elif entry == domain:
            return True
    return False


@dataclass
class ImportFilter:
    """Inclusion and exclusion lists applied while importing logs."""

    internal: List[Network] = field(default_factory=list)
    always_included: List[Network] = field(default_factory=list)
    never_included: List[Network] = field(default_factory=list)
    always_included_domain: List[str] = field(default_factory=list)
    never_included_domain: List[str] = field(default_factory=list)

    def filter_conn_pair(self, src: Union[str, Address, None],
                         dst: Union[str, Address, None]) -> bool:
        """Return True if the connection pair should be left out.

        Rules in order: kept if either address is always included; dropped
        if either is never included; kept if no internal subnets are set;
        dropped if both are internal or both external; otherwise kept.
        """
        if contains_ip(self.always_included, src) or contains_ip(self.always_included, dst):
            return False
        if contains_ip(self.never_included, src) or contains_ip(self.never_included, dst):
            return True
        if not self.internal:
            return False
        src_internal = contains_ip(self.internal, src)
        dst_internal = contains_ip(self.internal, dst)
        return src_internal == dst_internal

    def filter_domain(self, domain: str) -> bool:
        """Return True if the domain should be left out."""
        if contains_domain(self.always_included_domain, domain):
            return False
        return contains_domain(self.never_included_domain, domain)