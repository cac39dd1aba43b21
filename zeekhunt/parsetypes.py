"""Record types for Zeek/Bro log lines and their field metadata."""

from __future__ import annotations

import calendar
import dataclasses
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Optional

# Zeek data type names as they appear in the "#types" header line.
BOOL = "bool"
COUNT = "count"
INT = "int"
DOUBLE = "double"
TIME = "time"
INTERVAL = "interval"
STRING = "string"
PATTERN = "pattern"
PORT = "port"
ADDR = "addr"
SUBNET = "subnet"
ENUM = "enum"
STRING_SET = "set[string]"
ENUM_SET = "set[enum]"
STRING_VECTOR = "vector[string]"
INTERVAL_VECTOR = "vector[interval]"
FUNCTION = "function"
EVENT = "event"
HOOK = "hook"
FILE = "file"
OPAQUE = "opaque"
ANY = "any"

# Keys used in dataclass field metadata to describe a log field.
BRO_NAME_KEY = "bro"
BRO_TYPE_KEY = "brotype"
JSON_NAME_KEY = "json"


def _meta(bro: Optional[str] = None, brotype: Optional[str] = None,
          json: Optional[str] = None) -> dict:
    return {BRO_NAME_KEY: bro, BRO_TYPE_KEY: brotype, JSON_NAME_KEY: json}


def _logfield(bro: str, brotype: str, default: Any = None,
              factory: Any = None, json: Optional[str] = None) -> Any:
    metadata = _meta(bro, brotype, bro if json is None else json)
    if factory is not None:
        return field(default_factory=factory, metadata=metadata)
    return field(default=default, metadata=metadata)


@dataclass
class TableNames:
    """Names of the collections that parsed records are routed to."""

    conn_table: str = "conn"
    dns_table: str = "dns"
    http_table: str = "http"
    ssl_table: str = "ssl"
    unique_conn_table: str = "uconn"
    host_table: str = "host"


@dataclass(frozen=True)
class FieldSpec:
    """How one attribute of a record maps onto TSV and JSON log fields."""

    attr: str
    bro_name: Optional[str]
    bro_type: Optional[str]
    json_name: Optional[str]


@lru_cache(maxsize=None)
def _specs_for_class(cls: type) -> tuple:
    if not dataclasses.is_dataclass(cls):
        raise TypeError(f"{cls.__name__} is not a log record type")
    specs = []
    for fld in dataclasses.fields(cls):
        bro_name = fld.metadata.get(BRO_NAME_KEY) or None
        bro_type = fld.metadata.get(BRO_TYPE_KEY) or None
        json_name = fld.metadata.get(JSON_NAME_KEY) or None
        if (bro_name is None) != (bro_type is None):
            raise ValueError("incomplete bro variable")
        specs.append(FieldSpec(fld.name, bro_name, bro_type, json_name))
    return tuple(specs)


def field_specs(record_type: Any) -> tuple:
    """Return the FieldSpec of every attribute of a record class or instance.

    Raises ValueError when a field names a Zeek field without a Zeek type or
    the other way round, and TypeError for non-record types.
    """
    cls = record_type if isinstance(record_type, type) else type(record_type)
    return _specs_for_class(cls)


_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.\d+)?"
    r"(Z|[+-]\d{2}:\d{2})"
)


def _parse_rfc3339(text: str) -> Optional[int]:
    match = _RFC3339.fullmatch(text)
    if match is None:
        return None
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    zone = match.group(7)
    try:
        if zone == "Z":
            tz = timezone.utc
        else:
            sign = -1 if zone[0] == "-" else 1
            zh, zm = int(zone[1:3]), int(zone[4:6])
            if zh > 23 or zm > 59:
                return None
            tz = timezone(sign * timedelta(hours=zh, minutes=zm))
        moment = datetime(year, month, day, hour, minute, second, tzinfo=tz)
    except ValueError:
        return None
    return calendar.timegm(moment.utctimetuple())


def convert_timestamp(timestamp: Any) -> int:
    """Convert a JSON timestamp (number or RFC 3339 string) to Unix seconds.

    Unrecognised values give 0.
    """
    if isinstance(timestamp, bool):
        return 0
    if isinstance(timestamp, int):
        return timestamp
    if isinstance(timestamp, float):
        return int(timestamp) if math.isfinite(timestamp) else 0
    if isinstance(timestamp, str):
        seconds = _parse_rfc3339(timestamp)
        if seconds is not None:
            return seconds
    return 0


class BroData(ABC):
    """A single parsed line of a Zeek log."""

    timestamp: int
    timestamp_generic: Any

    @abstractmethod
    def target_collection(self, tables: TableNames) -> str:
        """Name of the collection this record belongs in."""

    def convert_from_json(self) -> None:
        """Finish conversion of a record loaded from a JSON log line."""
        self.timestamp = convert_timestamp(self.timestamp_generic)


@dataclass
class Conn(BroData):
    """A line of the Zeek connection log."""

    timestamp: int = field(default=0, metadata=_meta(bro="ts", brotype=TIME))
    timestamp_generic: Any = field(default=None, metadata=_meta(json="ts"))
    uid: str = _logfield("uid", STRING, "")
    source: str = _logfield("id.orig_h", ADDR, "")
    source_port: int = _logfield("id.orig_p", PORT, 0)
    destination: str = _logfield("id.resp_h", ADDR, "")
    destination_port: int = _logfield("id.resp_p", PORT, 0)
    proto: str = _logfield("proto", ENUM, "")
    service: str = _logfield("service", STRING, "")
    duration: float = _logfield("duration", INTERVAL, 0.0)
    orig_bytes: int = _logfield("orig_bytes", COUNT, 0)
    resp_bytes: int = _logfield("resp_bytes", COUNT, 0)
    conn_state: str = _logfield("conn_state", STRING, "")
    local_origin: bool = _logfield("local_orig", BOOL, False)
    local_response: bool = _logfield("local_resp", BOOL, False)
    missed_bytes: int = _logfield("missed_bytes", COUNT, 0)
    history: str = _logfield("history", STRING, "")
    orig_pkts: int = _logfield("orig_pkts", COUNT, 0)
    orig_ip_bytes: int = _logfield("orig_ip_bytes", COUNT, 0)
    resp_pkts: int = _logfield("resp_pkts", COUNT, 0)
    resp_ip_bytes: int = _logfield("resp_ip_bytes", COUNT, 0)
    tunnel_parents: list = _logfield("tunnel_parents", STRING_SET, factory=list)
    agent_hostname: str = _logfield("agent_hostname", STRING, "")
    agent_uuid: str = _logfield("agent_uuid", STRING, "")

    def target_collection(self, tables: TableNames) -> str:
        return tables.conn_table


@dataclass
class DNS(BroData):
    """A line of the Zeek DNS log."""

    timestamp: int = field(default=0, metadata=_meta(bro="ts", brotype=TIME))
    timestamp_generic: Any = field(default=None, metadata=_meta(json="ts"))
    uid: str = _logfield("uid", STRING, "")
    source: str = _logfield("id.orig_h", ADDR, "")
    source_port: int = _logfield("id.orig_p", PORT, 0)
    destination: str = _logfield("id.resp_h", ADDR, "")
    destination_port: int = _logfield("id.resp_p", PORT, 0)
    proto: str = _logfield("proto", ENUM, "")
    trans_id: int = _logfield("trans_id", COUNT, 0)
    rtt: float = _logfield("rtt", INTERVAL, 0.0)
    query: str = _logfield("query", STRING, "")
    qclass: int = _logfield("qclass", COUNT, 0)
    qclass_name: str = _logfield("qclass_name", STRING, "")
    qtype: int = _logfield("qtype", COUNT, 0)
    qtype_name: str = _logfield("qtype_name", STRING, "")
    rcode: int = _logfield("rcode", COUNT, 0)
    rcode_name: str = _logfield("rcode_name", STRING, "")
    aa: bool = _logfield("AA", BOOL, False)
    tc: bool = _logfield("TC", BOOL, False)
    rd: bool = _logfield("RD", BOOL, False)
    ra: bool = _logfield("RA", BOOL, False)
    z: int = _logfield("Z", COUNT, 0)
    answers: list = _logfield("answers", STRING_VECTOR, factory=list)
    ttls: list = _logfield("TTLs", INTERVAL_VECTOR, factory=list)
    rejected: bool = _logfield("rejected", BOOL, False)
    agent_hostname: str = _logfield("agent_hostname", STRING, "")
    agent_uuid: str = _logfield("agent_uuid", STRING, "")

    def target_collection(self, tables: TableNames) -> str:
        return tables.dns_table