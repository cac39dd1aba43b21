import gzip

import pytest

from zeekhunt.logparser import (
    BroHeader,
    LogParseError,
    find_log_files,
    map_header_to_type,
    open_log,
    parse_json_line,
    parse_line,
    parse_tsv_line,
    read_dir,
    scan_tsv_header,
)
from zeekhunt.parsetypes import DNS, Conn

CONN_HEADER = [
    "#separator \\x09",
    "#set_separator\t,",
    "#empty_field\t(empty)",
    "#unset_field\t-",
    "#path\tconn",
    "#fields\tts\tuid\tid.orig_h\tid.orig_p\tid.resp_h\tid.resp_p\tproto\tservice"
    "\tduration\torig_bytes\tlocal_orig\ttunnel_parents\textra_field",
    "#types\ttime\tstring\taddr\tport\taddr\tport\tenum\tstring"
    "\tinterval\tcount\tbool\tset[string]\tstring",
]
CONN_LINE = ("1517336042.090842\tCAbc\t10.0.0.1\t5353\t10.0.0.2\t53\tudp\tdns"
             "\t0.5\t120\tT\ta,b\tzzz")


def _conn_header():
    header, first = scan_tsv_header(CONN_HEADER + [CONN_LINE])
    return header, first, map_header_to_type(header, Conn)


def test_scan_header_reads_fields():
    header, first, _ = _conn_header()
    assert header.separator == "\t"
    assert header.set_sep == ","
    assert header.empty == "(empty)"
    assert header.unset == "-"
    assert header.obj_type == "conn"
    assert header.names[:3] == ["ts", "uid", "id.orig_h"]
    assert len(header.names) == len(header.types)
    assert first == CONN_LINE


def test_scan_header_skips_blank_lines_and_reports_eof():
    header, first = scan_tsv_header(["", "#path\tdns", ""])
    assert header.obj_type == "dns"
    assert first is None


def test_scan_header_name_type_mismatch():
    with pytest.raises(LogParseError):
        scan_tsv_header(["#fields\ta\tb", "#types\tstring"])


def test_scan_header_bad_separator_escape():
    with pytest.raises(LogParseError):
        scan_tsv_header(["#separator \\q"])


def test_map_header_ignores_unknown_and_maps_known():
    _, _, field_map = _conn_header()
    assert "extra_field" not in field_map
    assert field_map["id.orig_h"] == "source"
    assert field_map["ts"] == "timestamp"


def test_map_header_type_mismatch():
    header = BroHeader(names=["uid"], types=["count"], separator="\t")
    with pytest.raises(LogParseError):
        map_header_to_type(header, Conn)


def test_parse_tsv_conn_line():
    header, first, field_map = _conn_header()
    record = parse_tsv_line(first, header, field_map, Conn)
    assert record.timestamp == 1517336042
    assert record.uid == "CAbc"
    assert record.source == "10.0.0.1"
    assert record.source_port == 5353
    assert record.destination_port == 53
    assert record.proto == "udp"
    assert record.duration == 0.5
    assert record.orig_bytes == 120
    assert record.local_origin is True
    assert record.tunnel_parents == ["a", "b"]


def test_parse_tsv_unset_and_empty_leave_defaults():
    header, _, field_map = _conn_header()
    line = CONN_LINE.replace("CAbc", "-").replace("\tdns\t", "\t(empty)\t")
    record = parse_tsv_line(line, header, field_map, Conn)
    assert record.uid == Conn().uid
    assert record.service == Conn().service
    assert record.proto == "udp"


def test_parse_tsv_bad_port_becomes_minus_one():
    header, _, field_map = _conn_header()
    line = CONN_LINE.replace("\t5353\t", "\tnope\t")
    record = parse_tsv_line(line, header, field_map, Conn)
    assert record.source_port == -1


def test_parse_tsv_short_and_comment_lines():
    header, _, field_map = _conn_header()
    assert parse_tsv_line("1\t2", header, field_map, Conn) is None
    comment = "#close" + "\tx" * len(header.names)
    assert parse_tsv_line(comment, header, field_map, Conn) is None


def test_parse_tsv_interval_vector_stops_at_bad_value():
    header = BroHeader(names=["TTLs"], types=["vector[interval]"], separator="\t")
    field_map = map_header_to_type(header, DNS)
    record = parse_tsv_line("1.5,bad,2.5", header, field_map, DNS)
    assert len(record.ttls) == 3
    assert record.ttls[0] == 1.5
    assert record.ttls[2] != 2.5


def test_parse_json_line_fields():
    line = ('{"ts": 1517336042.090842, "id.orig_h": "10.0.0.1",'
            ' "id.resp_p": 53, "proto": "udp", "duration": 2}')
    record = parse_json_line(line, Conn)
    assert record.timestamp == 1517336042
    assert record.source == "10.0.0.1"
    assert record.destination_port == 53
    assert record.proto == "udp"
    assert record.duration == 2.0


def test_parse_json_line_rfc3339_and_case_insensitive_keys():
    record = parse_json_line('{"ts": "2018-01-30T18:14:02Z", "aa": true}', DNS)
    assert record.timestamp == 1517336042
    assert record.aa is True


def test_parse_json_line_wrong_type_keeps_default():
    record = parse_json_line('{"id.resp_p": "53", "proto": "tcp"}', Conn)
    assert record.destination_port == Conn().destination_port
    assert record.proto == "tcp"


def test_parse_json_line_invalid_json_gives_empty_record():
    assert parse_json_line("{not json", Conn) == Conn()


def test_parse_line_dispatches():
    header, first, field_map = _conn_header()
    assert parse_line(first, header, field_map, Conn, False) == \
        parse_tsv_line(first, header, field_map, Conn)
    doc = '{"uid": "CAbc"}'
    assert parse_line(doc, header, None, Conn, True) == parse_json_line(doc, Conn)


def test_open_log_plain_and_gzip(tmp_path):
    plain = tmp_path / "conn.log"
    plain.write_bytes(b"first\r\nsecond\n")
    packed = tmp_path / "conn.log.gz"
    with gzip.open(packed, "wb") as handle:
        handle.write(b"first\r\nsecond\n")
    with open_log(str(plain)) as lines:
        assert list(lines) == ["first", "second"]
    with open_log(str(packed)) as lines:
        assert list(lines) == ["first", "second"]


def test_open_log_rejects_unknown_type(tmp_path):
    other = tmp_path / "notes.txt"
    other.write_text("x")
    with pytest.raises(LogParseError):
        with open_log(str(other)):
            pass


def test_read_dir_and_find_log_files(tmp_path):
    for name in ("b.gz", "a.log", "c.txt"):
        (tmp_path / name).write_text("x")
    (tmp_path / "sub").mkdir()
    expected = [str(tmp_path / "a.log"), str(tmp_path / "b.gz")]
    assert read_dir(str(tmp_path)) == expected
    single = str(tmp_path / "a.log")
    ignored = str(tmp_path / "c.txt")
    assert find_log_files([str(tmp_path), single, ignored]) == expected + [single]


def test_read_dir_missing_directory(tmp_path):
    assert read_dir(str(tmp_path / "missing")) == []