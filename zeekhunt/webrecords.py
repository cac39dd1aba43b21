"""Record types for the Zeek HTTP and SSL logs, and the log type lookup."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from zeekhunt.parsetypes import (
    ADDR,
    BOOL,
    BRO_NAME_KEY,
    BRO_TYPE_KEY,
    COUNT,
    DNS,
    ENUM_SET,
    INT,
    JSON_NAME_KEY,
    PORT,
    STRING,
    STRING_SET,
    STRING_VECTOR,
    TIME,
    BroData,
    Conn,
    TableNames,
)


def _meta(bro: Optional[str] = None, brotype: Optional[str] = None,
          json: Optional[str] = None) -> dict:
    return {BRO_NAME_KEY: bro, BRO_TYPE_KEY: brotype, JSON_NAME_KEY: json}


def _logfield(bro: str, brotype: str, default: Any = None,
              factory: Any = None) -> Any:
    metadata = _meta(bro, brotype, bro)
    if factory is not None:
        return field(default_factory=factory, metadata=metadata)
    return field(default=default, metadata=metadata)


@dataclass
class HTTP(BroData):
    """A line of the Zeek HTTP log."""

    timestamp: int = field(default=0, metadata=_meta(bro="ts", brotype=TIME))
    timestamp_generic: Any = field(default=None, metadata=_meta(json="ts"))
    uid: str = _logfield("uid", STRING, "")
    source: str = _logfield("id.orig_h", ADDR, "")
    source_port: int = _logfield("id.orig_p", PORT, 0)
    destination: str = _logfield("id.resp_h", ADDR, "")
    destination_port: int = _logfield("id.resp_p", PORT, 0)
    trans_depth: int = _logfield("trans_depth", COUNT, 0)
    version: str = _logfield("version", STRING, "")
    method: str = _logfield("method", STRING, "")
    host: str = _logfield("host", STRING, "")
    uri: str = _logfield("uri", STRING, "")
    referrer: str = _logfield("referrer", STRING, "")
    user_agent: str = _logfield("user_agent", STRING, "")
    req_len: int = _logfield("request_body_len", COUNT, 0)
    resp_len: int = _logfield("response_body_len", COUNT, 0)
    status_code: int = _logfield("status_code", COUNT, 0)
    status_msg: str = _logfield("status_msg", STRING, "")
    info_code: int = _logfield("info_code", COUNT, 0)
    info_msg: str = _logfield("info_msg", STRING, "")
    tags: list = _logfield("tags", ENUM_SET, factory=list)
    username: str = _logfield("username", STRING, "")
    password: str = _logfield("password", STRING, "")
    proxied: list = _logfield("proxied", STRING_SET, factory=list)
    orig_fuids: list = _logfield("orig_fuids", STRING_VECTOR, factory=list)
    orig_filenames: list = _logfield("orig_filenames", STRING_VECTOR, factory=list)
    orig_mime_types: list = _logfield("orig_mime_types", STRING_VECTOR, factory=list)
    resp_fuids: list = _logfield("resp_fuids", STRING_VECTOR, factory=list)
    resp_filenames: list = _logfield("resp_filenames", STRING_VECTOR, factory=list)
    resp_mime_types: list = _logfield("resp_mime_types", STRING_VECTOR, factory=list)
    agent_hostname: str = _logfield("agent_hostname", STRING, "")
    agent_uuid: str = _logfield("agent_uuid", STRING, "")

    def target_collection(self, tables: TableNames) -> str:
        return tables.http_table


@dataclass
class SSL(BroData):
    """A line of the Zeek SSL log."""

    timestamp: int = field(default=0, metadata=_meta(bro="ts", brotype=TIME))
    timestamp_generic: Any = field(default=None, metadata=_meta(json="ts"))
    uid: str = _logfield("uid", STRING, "")
    source: str = _logfield("id.orig_h", ADDR, "")
    source_port: int = _logfield("id.orig_p", PORT, 0)
    destination: str = _logfield("id.resp_h", ADDR, "")
    destination_port: int = _logfield("id.resp_p", PORT, 0)
    version_num: int = _logfield("version_num", COUNT, 0)
    version: str = _logfield("version", STRING, "")
    cipher: str = _logfield("cipher", STRING, "")
    curve: str = _logfield("curve", STRING, "")
    server_name: str = _logfield("server_name", STRING, "")
    session_id: str = _logfield("session_id", STRING, "")
    resumed: bool = _logfield("resumed", BOOL, False)
    client_ticket_empty_session_seen: bool = _logfield(
        "client_ticket_empty_session_seen", BOOL, False)
    client_key_exchange_seen: bool = _logfield("client_key_exchange_seen", BOOL, False)
    server_appdata: int = _logfield("server_appdata", COUNT, 0)
    client_appdata: bool = _logfield("client_appdata", BOOL, False)
    last_alert: str = _logfield("last_alert", STRING, "")
    next_protocol: str = _logfield("next_protocol", STRING, "")
    analyzer_id: int = _logfield("analyzer_id", COUNT, 0)
    established: bool = _logfield("established", BOOL, False)
    logged: bool = _logfield("logged", BOOL, False)
    cert_chain_fuids: list = _logfield("cert_chain_fuids", STRING_VECTOR, factory=list)
    client_cert_chain_fuids: list = _logfield(
        "client_cert_chain_fuids", STRING_VECTOR, factory=list)
    subject: str = _logfield("subject", STRING, "")
    issuer: str = _logfield("issuer", STRING, "")
    client_subject: str = _logfield("client_subject", STRING, "")
    client_issuer: str = _logfield("client_issuer", STRING, "")
    validation_status: str = _logfield("validation_status", STRING, "")
    validation_code: int = _logfield("validation_code", INT, 0)
    ja3: str = _logfield("ja3", STRING, "")
    agent_hostname: str = _logfield("agent_hostname", STRING, "")
    agent_uuid: str = _logfield("agent_uuid", STRING, "")

    def target_collection(self, tables: TableNames) -> str:
        return tables.ssl_table


_FACTORIES = (
    ("conn", Conn),
    ("dns", DNS),
    ("http", HTTP),
    ("ssl", SSL),
)


def new_bro_data_factory(file_type: str) -> Optional[Callable[[], BroData]]:
    """Return the record class for a log type name, or None if unknown.

    Matching is by prefix so that tagged logs such as "http_eth0" are
    recognised.
    """
    for prefix, record_type in _FACTORIES:
        if file_type.startswith(prefix):
            return record_type
    return None