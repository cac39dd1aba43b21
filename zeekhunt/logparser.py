"""Reading Zeek log files: locating them, parsing headers and lines."""

from __future__ import annotations

import gzip
import json
import logging
import os
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from zeekhunt.parsetypes import (
    ADDR,
    BOOL,
    COUNT,
    DOUBLE,
    ENUM,
    ENUM_SET,
    INT,
    INTERVAL,
    INTERVAL_VECTOR,
    PORT,
    STRING,
    STRING_SET,
    STRING_VECTOR,
    TIME,
    BroData,
    field_specs,
)

logger = logging.getLogger(__name__)

LOG_SUFFIXES = (".gz", ".log")

_INT64_MIN, _INT64_MAX = -(1 << 63), (1 << 63) - 1
_INT32_MIN, _INT32_MAX = -(1 << 31), (1 << 31) - 1
_INT_RE = re.compile(r"[+-]?\d+")
_NANOS_PER_SECOND = 1_000_000_000


class LogParseError(Exception):
    """A log file or header could not be understood."""


@dataclass
class BroHeader:
    """Parse information taken from the comment lines of a Zeek TSV log."""

    names: List[str] = field(default_factory=list)
    types: List[str] = field(default_factory=list)
    separator: str = ""
    set_sep: str = ""
    empty: str = ""
    unset: str = ""
    obj_type: str = ""


def read_dir(path: str) -> List[str]:
    """Return the .log and .gz files directly inside a directory, sorted by name.

    Subdirectories are not followed. A directory that cannot be read is
    logged and gives an empty list.
    """
    try:
        entries = sorted(os.scandir(path), key=lambda entry: entry.name)
    except OSError as err:
        logger.error("Error when reading directory %s: %s", path, err)
        return []
    return [
        os.path.join(path, entry.name)
        for entry in entries
        if (not entry.is_dir(follow_symlinks=False) and entry.name.endswith(".gz"))
        or entry.name.endswith(".log")
    ]


def find_log_files(paths: Iterable[str]) -> List[str]:
    """Expand directories and keep only .log and .gz files from the given paths."""
    found: List[str] = []
    for path in paths:
        if os.path.isdir(path):
            found.extend(read_dir(path))
        elif path.endswith(LOG_SUFFIXES):
            found.append(path)
        else:
            logger.warning("Ignoring non .log or .gz file: %s", path)
    return found


def _strip_newline(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]
    return line


@contextmanager
def open_log(path: str) -> Iterator[Iterator[str]]:
    """Open a plain or gzip-compressed log and yield an iterator over its lines.

    Line endings are removed. Raises LogParseError for unrecognised file types.
    """
    name = os.fspath(path)
    suffix = name[-3:]
    if suffix not in (".gz", "log"):
        raise LogParseError("Filetype not recognized")
    opener = gzip.open if suffix == ".gz" else open
    with opener(name, "rt", encoding="utf-8", errors="surrogateescape",
                newline="") as handle:
        yield (_strip_newline(line) for line in handle)


_SIMPLE_ESCAPES = {
    "a": "\a", "b": "\b", "f": "\f", "n": "\n", "r": "\r",
    "t": "\t", "v": "\v", "\\": "\\", '"': '"',
}
_HEX_WIDTHS = {"x": 2, "u": 4, "U": 8}
_HEX_DIGITS = set("0123456789abcdefABCDEF")
_OCT_DIGITS = set("01234567")


def _unquote(text: str) -> str:
    """Interpret backslash escapes as in a double-quoted string literal."""
    out: List[str] = []
    pos = 0
    while pos < len(text):
        char = text[pos]
        if char in ('"', "\n"):
            raise LogParseError(f"invalid separator: {text!r}")
        if char != "\\":
            out.append(char)
            pos += 1
            continue
        if pos + 1 >= len(text):
            raise LogParseError(f"invalid separator: {text!r}")
        code = text[pos + 1]
        if code in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[code])
            pos += 2
        elif code in _HEX_WIDTHS:
            width = _HEX_WIDTHS[code]
            digits = text[pos + 2:pos + 2 + width]
            if len(digits) != width or not set(digits) <= _HEX_DIGITS:
                raise LogParseError(f"invalid separator: {text!r}")
            value = int(digits, 16)
            if value > 0x10FFFF or 0xD800 <= value <= 0xDFFF and code != "x":
                raise LogParseError(f"invalid separator: {text!r}")
            out.append(chr(value))
            pos += 2 + width
        elif code in _OCT_DIGITS:
            digits = text[pos + 1:pos + 4]
            if len(digits) != 3 or not set(digits) <= _OCT_DIGITS:
                raise LogParseError(f"invalid separator: {text!r}")
            value = int(digits, 8)
            if value > 255:
                raise LogParseError(f"invalid separator: {text!r}")
            out.append(chr(value))
            pos += 4
        else:
            raise LogParseError(f"invalid separator: {text!r}")
    return "".join(out)


def scan_tsv_header(lines: Iterable[str]) -> Tuple[BroHeader, Optional[str]]:
    """Read the comment lines at the start of a log.

    Returns the header and the first non-comment line (None when the input
    ends first). Raises LogParseError if the header is malformed or the
    field names and types differ in number.
    """
    header = BroHeader()
    first_line: Optional[str] = None
    for text in lines:
        if not text:
            continue
        if not text.startswith("#"):
            first_line = text
            break
        tokens = text.split()
        key = tokens[0][1:]
        values = tokens[1:]
        if key in ("separator", "set_separator", "empty_field", "unset_field", "path") \
                and not values:
            raise LogParseError(f"missing value for #{key}")
        if key == "separator":
            header.separator = _unquote(values[0])
        elif key == "set_separator":
            header.set_sep = values[0]
        elif key == "empty_field":
            header.empty = values[0]
        elif key == "unset_field":
            header.unset = values[0]
        elif key == "fields":
            header.names = values
        elif key == "types":
            header.types = values
        elif key == "path":
            header.obj_type = values[0]
    if len(header.names) != len(header.types):
        raise LogParseError("Name / Type mismatch")
    return header, first_line


def map_header_to_type(header: BroHeader,
                       factory: Callable[[], BroData]) -> Dict[str, str]:
    """Map each Zeek field name of the record type to its attribute name.

    Fields in the log but not in the record are logged and skipped. Raises
    LogParseError when a field's type in the log differs from the record's.
    """
    try:
        specs = field_specs(factory())
    except ValueError as err:
        raise LogParseError(str(err)) from err
    field_types: Dict[str, str] = {}
    field_map: Dict[str, str] = {}
    for spec in specs:
        if spec.bro_name is None:
            continue
        field_types[spec.bro_name] = spec.bro_type
        field_map[spec.bro_name] = spec.attr

    for name, bro_type in zip(header.names, header.types):
        expected = field_types.get(name)
        if expected is None:
            logger.info("the log contains a field with no candidate in the data "
                        "structure: %s", name)
            continue
        if bro_type != expected:
            raise LogParseError("Type mismatch found in log")
    return field_map


def parse_line(line: str, header: BroHeader, field_map: Optional[Dict[str, str]],
               factory: Callable[[], BroData], is_json: bool) -> Optional[BroData]:
    """Parse one log line as JSON or TSV."""
    if is_json:
        return parse_json_line(line, factory)
    return parse_tsv_line(line, header, field_map or {}, factory)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _json_value(bro_type: Optional[str], value: Any) -> Tuple[bool, Any]:
    """Check a JSON value against a field type; return (accepted, converted)."""
    if bro_type is None:
        return True, value
    if bro_type in (STRING, ADDR, ENUM):
        return isinstance(value, str), value
    if bro_type in (PORT, COUNT, INT, TIME):
        ok = isinstance(value, int) and not isinstance(value, bool)
        return ok and _INT64_MIN <= value <= _INT64_MAX, value
    if bro_type in (INTERVAL, DOUBLE):
        return _is_number(value), float(value) if _is_number(value) else value
    if bro_type == BOOL:
        return isinstance(value, bool), value
    if bro_type in (STRING_SET, ENUM_SET, STRING_VECTOR):
        ok = isinstance(value, list) and all(isinstance(v, str) for v in value)
        return ok, value
    if bro_type == INTERVAL_VECTOR:
        ok = isinstance(value, list) and all(_is_number(v) for v in value)
        return ok, [float(v) for v in value] if ok else value
    return True, value


def parse_json_line(line: str, factory: Callable[[], BroData]) -> BroData:
    """Parse a JSON log line into a new record.

    Keys match field names exactly first, then case-insensitively. Values of
    the wrong type are logged and leave the field at its default.
    """
    record = factory()
    try:
        document = json.loads(line)
    except ValueError as err:
        logger.error("Encountered unparsable JSON in log: %s", err)
        document = None

    if document is not None and not isinstance(document, dict):
        logger.error("Encountered unparsable JSON in log: not an object")
    elif isinstance(document, dict):
        specs = [spec for spec in field_specs(record) if spec.json_name]
        exact = {spec.json_name: spec for spec in specs}
        folded: Dict[str, Any] = {}
        for spec in specs:
            folded.setdefault(spec.json_name.lower(), spec)
        first_error: Optional[str] = None
        for key, value in document.items():
            spec = exact.get(key) or folded.get(key.lower())
            if spec is None or value is None:
                continue
            accepted, converted = _json_value(spec.bro_type, value)
            if accepted:
                setattr(record, spec.attr, converted)
            elif first_error is None:
                first_error = f"cannot use {value!r} for field {key}"
        if first_error is not None:
            logger.error("Encountered unparsable JSON in log: %s", first_error)

    record.convert_from_json()
    return record


def _parse_int(text: str, low: int, high: int) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"invalid integer: {text!r}")
    value = int(text)
    if not low <= value <= high:
        raise ValueError(f"integer out of range: {text!r}")
    return value


def _parse_float(text: str) -> float:
    if "_" in text or text != text.strip():
        raise ValueError(f"invalid float: {text!r}")
    return float(text)


def _parse_time(text: str) -> int:
    seconds, _, fraction = text.partition(".")
    secs = _parse_int(seconds, _INT64_MIN, _INT64_MAX)
    nanos = _parse_int(fraction, _INT64_MIN, _INT64_MAX) if fraction else 0
    return secs + nanos // _NANOS_PER_SECOND


def _parse_float_list(text: str) -> List[float]:
    tokens = text.split(",")
    floats = [0.0] * len(tokens)
    for pos, token in enumerate(tokens):
        try:
            floats[pos] = _parse_float(token)
        except ValueError as err:
            logger.error("Couldn't convert float %r: %s", token, err)
            break
    return floats


def _split(text: str, separator: str) -> List[str]:
    return text.split(separator) if separator else list(text)


def parse_tsv_line(line: str, header: BroHeader, field_map: Dict[str, str],
                   factory: Callable[[], BroData]) -> Optional[BroData]:
    """Parse a TSV log line into a new record.

    Returns None for lines with too few fields and for comment lines. Values
    that fail to convert are logged and stored as -1.
    """
    values = _split(line, header.separator)
    if len(values) < len(header.names):
        return None
    if "#" in values[0]:
        return None

    record = factory()
    for name, bro_type, value in zip(header.names, header.types, values):
        if value == header.empty or value == header.unset:
            continue
        attr = field_map.get(name)
        if attr is None:
            continue

        if bro_type == TIME:
            try:
                setattr(record, attr, _parse_time(value))
            except ValueError as err:
                logger.error("Couldn't convert unix ts %r: %s", value, err)
                setattr(record, attr, -1)
        elif bro_type in (STRING, ADDR, ENUM):
            setattr(record, attr, value)
        elif bro_type == PORT:
            try:
                setattr(record, attr, _parse_int(value, _INT32_MIN, _INT32_MAX))
            except ValueError as err:
                logger.error("Couldn't convert port number %r: %s", value, err)
                setattr(record, attr, -1)
        elif bro_type == INTERVAL:
            try:
                setattr(record, attr, _parse_float(value))
            except ValueError as err:
                logger.error("Couldn't convert float %r: %s", value, err)
                setattr(record, attr, -1.0)
        elif bro_type == COUNT:
            try:
                setattr(record, attr, _parse_int(value, _INT64_MIN, _INT64_MAX))
            except ValueError as err:
                logger.error("Couldn't convert count %r: %s", value, err)
                setattr(record, attr, -1)
        elif bro_type == BOOL:
            setattr(record, attr, value == "T")
        elif bro_type in (STRING_SET, ENUM_SET, STRING_VECTOR):
            setattr(record, attr, value.split(","))
        elif bro_type == INTERVAL_VECTOR:
            setattr(record, attr, _parse_float_list(value))
        else:
            logger.error("Encountered unhandled type in log: %s", bro_type)
    return record