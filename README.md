# zeekhunt

`zeekhunt` reads the logs written by the Zeek (formerly Bro) network monitor
and turns them into per-host and per-connection summaries that are useful for
threat hunting: who talked to whom, how often, with how many bytes, which
domains were looked up and what they resolved to, which user agents and JA3
fingerprints were seen, and which TLS certificates failed validation.

It has no dependencies outside the standard library.

## What it understands

* `conn`, `dns`, `http` and `ssl` logs, including tagged variants such as
  `http_eth0` (the log type is matched by prefix).
* Zeek's tab-separated format with its `#separator`, `#set_separator`,
  `#empty_field`, `#unset_field`, `#fields`, `#types` and `#path` header lines.
* Zeek's JSON format, with the log type taken from a `_path` key or, failing
  that, from the file name.
* Plain `.log` files and gzip-compressed `.gz` files.

## The pieces

| Module | What it gives you |
| --- | --- |
| `zeekhunt.parsetypes` | `Conn` and `DNS` records, the `BroData` base class, `TableNames`, `FieldSpec`, `field_specs()` and `convert_timestamp()` |
| `zeekhunt.webrecords` | `HTTP` and `SSL` records and `new_bro_data_factory()`, which returns the record class for a log type name, or `None` |
| `zeekhunt.logparser` | `find_log_files()`, `read_dir()`, `open_log()`, `scan_tsv_header()`, `map_header_to_type()`, `parse_line()`, `parse_tsv_line()`, `parse_json_line()` and `BroHeader`; malformed files and headers raise `LogParseError` |
| `zeekhunt.indexedfile` | `IndexedFile`, `file_hash()`, `index_file()`, `index_files()` and `remove_old_files()`; `NoLogsFoundError` when no file could be indexed |
| `zeekhunt.filtering` | `ImportFilter`, `parse_subnets()`, `contains_ip()` and `contains_domain()` |
| `zeekhunt.importdata` | The aggregate records (`HostInput`, `UconnInput`, `HostnameInput`, `UserAgentInput`, `CertificateInput`), their keys (`HostKey`, `HostPair`) and `batch_files_by_size()` |
| `zeekhunt.aggregate` | `Aggregator`, which parses indexed files into a `ParseResults` |

## A typical run

1. `find_log_files()` collects the `.log` and `.gz` files from the paths you
   give it; directories are read one level deep, subdirectories are not
   followed.
2. `index_files()` opens each file (in parallel when `threads` is above one),
   reads its header, decides what kind of record it holds and which collection
   of `TableNames` it belongs to, and fingerprints it with `file_hash()` (an
   MD5 of the first 15000 bytes). Files that cannot be read or are not a
   supported log are dropped; if none are left, `NoLogsFoundError` is raised.
3. `remove_old_files()` drops files whose fingerprints are among the hashes you
   pass in, that is, files already imported.
4. `batch_files_by_size()` groups the remaining files in path order, taking one
   file of each collection per round and starting a new batch before the byte
   total would reach the limit. A round is never split, so a batch can exceed
   the limit when single files are very large.
5. `Aggregator.parse_files()` reads every line of a batch, runs each
   connection and domain through an `ImportFilter`, and builds up the host,
   connection, hostname, user agent and certificate summaries in a
   `ParseResults`.

```python
from zeekhunt.aggregate import Aggregator
from zeekhunt.filtering import ImportFilter, parse_subnets
from zeekhunt.importdata import batch_files_by_size
from zeekhunt.indexedfile import index_files, remove_old_files
from zeekhunt.logparser import find_log_files
from zeekhunt.parsetypes import TableNames

tables = TableNames()
import_filter = ImportFilter(internal=parse_subnets(["10.0.0.0/8"]))

files = index_files(find_log_files(["zeek-logs"]), tables, "dataset", threads=4)
files = remove_old_files(files, previous_hashes=[])

for batch in batch_files_by_size(files):
    results = Aggregator(tables, import_filter).parse_files(batch, threads=4)
    for key, uconn in results.uconns.items():
        print(key, uconn.connection_count, uconn.total_bytes)
```

An `Aggregator` keeps adding to the same `ParseResults`, so use a fresh one for
each batch you want summarised on its own.

## Parsing details

* In TSV logs, a value equal to the header's empty or unset marker leaves the
  field at its default. Numbers that fail to convert are logged and stored as
  `-1` (or `-1.0` for intervals). Lines with too few fields, and lines whose
  first field contains `#`, give `None`.
* `map_header_to_type()` raises `LogParseError` when a field's type in the log
  differs from the record's; fields the record does not have are logged and
  skipped.
* In JSON logs, values of the wrong type are logged and leave the field at its
  default. The `ts` value may be a number or an RFC 3339 string and is turned
  into Unix seconds by `convert_timestamp()`.

```python
from zeekhunt.parsetypes import convert_timestamp
from zeekhunt.webrecords import HTTP, new_bro_data_factory

assert convert_timestamp("2018-01-30T18:14:02Z") == 1517336042
assert convert_timestamp(1517336042.090842) == 1517336042

factory = new_bro_data_factory("http_eth0")
assert isinstance(factory(), HTTP)
assert new_bro_data_factory("ASDF") is None
```

## Filtering

`ImportFilter` decides which traffic is kept. For a connection pair,
`filter_conn_pair()` returns `True` (leave out) by these rules, in order:

1. kept if either address is on the always-include list;
2. dropped if either address is on the never-include list;
3. kept if no internal subnets are configured;
4. dropped if both addresses are internal, or both are external;
5. kept otherwise.

`filter_domain()` keeps a domain that matches the always-include list, drops
one that matches the never-include list, and keeps everything else. Domain
entries may start with `*`, which matches any domain ending in the rest:

```python
from zeekhunt.filtering import contains_domain

assert contains_domain(["*.mydomain.com"], "a.mydomain.com")
```

## Host keys

`HostKey.for_agent()` leaves publicly routable addresses unqualified, and ties
any other address to the sensor (`agent_uuid`, `agent_hostname`) that logged
it, so private addresses seen by different sensors stay apart.

## What it does not do

`zeekhunt` stops at the summaries in `ParseResults`. It does not store them in
a database, keep a record of which files were imported (you supply the earlier
hashes to `remove_old_files()`), score beaconing or other behaviour, produce
reports, or offer a command-line tool.

## Running the tests

Install the `test` extra and run `pytest` from the project directory.