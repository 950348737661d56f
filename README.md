# minhareceita

Tools for the CNPJ open data published by the Brazilian Federal Revenue:
download the archives, check their integrity, build small samples for quick
manual testing, turn the CSV files into one JSON record per CNPJ, and serve
those records over HTTP.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Command line

The `minha-receita` command has these sub-commands. Run
`minha-receita --help`, or `--help` after any sub-command, for every option.

Show, sorted, the URLs of the files to be downloaded (`--skip` leaves out
files already present in `--directory`):

```
minha-receita urls
```

Download every file into a directory, which must already exist (the default
is `data`). The city codes table is fetched with a single request; the
Federal Revenue archives are fetched in byte-range chunks, in parallel, with
retries, and can resume an interrupted download. The extraction date is
written to `updated_at.txt` in the same directory.

```
minha-receita download --directory data
```

Options: `--skip`, `--timeout` (a duration such as `3m0s`, `1h30m` or `90s`),
`--retries` (`-1` for unlimited), `--parallel`, `--chunk-size` (bytes) and
`--restart`.

Check that every downloaded ZIP archive can be read, optionally deleting the
broken ones so they can be downloaded again:

```
minha-receita check --directory data
minha-receita check --directory data --delete
```

Create an `.md5` checksum file next to each downloaded file, and later
compare the checksum files of one directory with those of another:

```
minha-receita check checksum create --directory data
minha-receita check checksum check --directory data --src-directory other
```

Create a sample of the source files, keeping only the first lines of each
archive and of `TABMUN.CSV`, and copying `updated_at.txt`:

```
minha-receita sample --directory data --target-directory data/sample --max-lines 10000
```

If the data directory has no `updated_at.txt`, pass the extraction date with
`--updated-at YYYY-MM-DD`.

## Library

CNPJ helpers live in `minhareceita.cnpj`:

```python
from minhareceita.cnpj import is_valid, mask, unmask, base

is_valid("19.131.243/0001-97")   # True
mask("19131243000197")           # "19.131.243/0001-97"
unmask("19.131.243/0001-97")     # "19131243000197"
base("19131243000197")           # "19131243"
```

`minhareceita.cast` converts the raw CSV values (`to_int`, `to_float`,
`to_bool`, `to_date`), returning `None` for missing values so the JSON output
can tell an empty field from a zero.

`minhareceita.transform.transform(directory, db, ...)` reads a data
directory, builds the lookup tables, loads companies, partners and tax data
into a temporary key-value store (`minhareceita.kv.KVStorage`, on disk or in
memory with `high_memory=True`) and saves one JSON record per CNPJ to `db` in
batches, returning how many records were saved. With `privacy=True` (the
default) a CPF at the end of a trade name is masked and e-mail addresses are
left out.

`minhareceita.api.Api` is a WSGI application exposing the records: a `GET`
on `/<cnpj>` returns the company JSON, `/updated` tells the date of the data
extraction and `/healthz` answers health checks; `GET /` redirects to the
address in the `DOCS_URL` environment variable. `minhareceita.api.serve(db,
port)` starts it on all interfaces. When the `ALLOWED_HOST` environment
variable is set, requests with a different `Host` header are refused.

## What is not included

The package has no database layer of its own. `transform` needs an object
with `create_companies(batch)`, `create_index()` and `meta_save(key, value)`
(see `minhareceita.transform.Database`), and `Api`/`serve` need an object
with `get_company(cnpj)` and `meta_read(key)`; you provide these, for
example on top of PostgreSQL. For the same reason the command line has no
commands to create or drop tables, run the transformation or start the web
server: call `transform` and `serve` from Python instead.