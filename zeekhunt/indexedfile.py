"""Indexing of Zeek log files: hashing, type detection and routing."""

from __future__ import annotations

import hashlib
import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from zeekhunt.logparser import (
    BroHeader,
    LogParseError,
    map_header_to_type,
    open_log,
    parse_line,
    scan_tsv_header,
)
from zeekhunt.parsetypes import BroData, TableNames
from zeekhunt.webrecords import new_bro_data_factory

logger = logging.getLogger(__name__)

HASH_PREFIX_BYTES = 15000


class NoLogsFoundError(Exception):
    """None of the given files could be indexed as a supported log."""


@dataclass
class IndexedFile:
    """A log file tied to the collection and database it is imported into."""

    path: str
    length: int = 0
    mod_time: Optional[datetime] = None
    hash: str = ""
    target_collection: str = ""
    target_database: str = ""
    cid: int = 0
    parse_time: Optional[datetime] = None
    header: Optional[BroHeader] = None
    factory: Optional[Callable[[], BroData]] = None
    field_map: Optional[Dict[str, str]] = None
    is_json: bool = False


def file_hash(path: str) -> str:
    """Return the hex MD5 digest of the first 15000 bytes of a file."""
    digest = hashlib.md5()
    with open(path, "rb") as handle:
        digest.update(handle.read(HASH_PREFIX_BYTES))
    return digest.hexdigest()


def _json_path(document: object) -> str:
    if not isinstance(document, dict):
        return ""
    value = document.get("_path")
    if value is None:
        for key, candidate in document.items():
            if isinstance(key, str) and key.lower() == "_path":
                value = candidate
                break
    return value if isinstance(value, str) else ""


def index_file(path: str, tables: TableNames, target_database: str,
               chunk: int = 0) -> IndexedFile:
    """Read a log file's metadata and work out how to parse and route it.

    Raises OSError when the file cannot be read and LogParseError when it is
    not a supported log.
    """
    info = os.stat(path)
    indexed = IndexedFile(
        path=path,
        length=info.st_size,
        mod_time=datetime.fromtimestamp(info.st_mtime, tz=timezone.utc),
        hash=file_hash(path),
    )

    with open_log(path) as lines:
        header, first_line = scan_tsv_header(lines)
    indexed.header = header
    text = first_line if first_line is not None else ""

    factory: Optional[Callable[[], BroData]] = None
    if header.obj_type:
        factory = new_bro_data_factory(header.obj_type)
    elif text:
        try:
            document = json.loads(text)
        except ValueError:
            pass
        else:
            indexed.is_json = True
            factory = new_bro_data_factory(_json_path(document))
            if factory is None:
                factory = new_bro_data_factory(os.path.basename(path))
    if factory is None:
        raise LogParseError("Could not map file header to parse type")
    indexed.factory = factory

    if not indexed.is_json:
        indexed.field_map = map_header_to_type(header, factory)

    record = parse_line(text, header, indexed.field_map, factory, indexed.is_json)
    if record is None:
        raise LogParseError("Could not parse first line of file")

    indexed.target_collection = record.target_collection(tables)
    if not indexed.target_collection:
        raise LogParseError("Could not find a target collection for file")

    indexed.target_database = target_database
    indexed.cid = chunk
    return indexed


def index_files(paths: Iterable[str], tables: TableNames, target_database: str,
                chunk: int = 0, threads: int = 1) -> List[IndexedFile]:
    """Index many files in parallel, keeping input order and dropping failures.

    Raises NoLogsFoundError when no file could be indexed.
    """
    if threads < 1:
        raise ValueError("at least one indexing thread is required")
    path_list = list(paths)

    def attempt(path: str) -> Optional[IndexedFile]:
        try:
            return index_file(path, tables, target_database, chunk)
        except (OSError, LogParseError) as err:
            logger.debug("An error was encountered while indexing %s: %s", path, err)
            return None

    with ThreadPoolExecutor(max_workers=threads) as pool:
        results = list(pool.map(attempt, path_list))

    indexed = [result for result in results if result is not None]
    if not indexed:
        raise NoLogsFoundError(
            "No compatible logs found or all log files provided were empty.")
    return indexed


def remove_old_files(indexed_files: Iterable[IndexedFile],
                     previous_hashes: Iterable[str]) -> List[IndexedFile]:
    """Drop files whose hash shows they were already imported."""
    seen = set(previous_hashes)
    kept: List[IndexedFile] = []
    for indexed in indexed_files:
        if indexed.hash in seen:
            logger.warning("Refusing to import file into the same database twice: "
                           "%s -> %s", indexed.path, indexed.target_database)
            continue
        kept.append(indexed)
    return kept