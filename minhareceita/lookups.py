"""Lookup tables translating codes into descriptions."""

from __future__ import annotations

import csv
import os
from dataclasses import dataclass, field

from minhareceita.archive import SEPARATOR, ArchivedCSV
from minhareceita.cast import to_int
from minhareceita.source import SourceType, paths_for_source

NATIONAL_TREASURE_FILE_NAME = "TABMUN.CSV"

_LOOKUP_KINDS = (
    SourceType.MOTIVES,
    SourceType.CITIES,
    SourceType.COUNTRIES,
    SourceType.CNAES,
    SourceType.QUALIFICATIONS,
    SourceType.NATURES,
)


@dataclass
class Lookups:
    """Every code-to-description table used to build the company records."""

    motives: dict[int, str] = field(default_factory=dict)
    cities: dict[int, str] = field(default_factory=dict)
    countries: dict[int, str] = field(default_factory=dict)
    cnaes: dict[int, str] = field(default_factory=dict)
    qualifications: dict[int, str] = field(default_factory=dict)
    natures: dict[int, str] = field(default_factory=dict)
    ibge: dict[int, str] = field(default_factory=dict)


def new_lookup(path) -> dict[int, str]:
    """Build a lookup table from an archived two-column CSV."""
    with ArchivedCSV(path, SEPARATOR) as archive:
        return archive.to_lookup()


def cities_lookup(directory) -> dict[int, str]:
    """Map the Federal Revenue city codes to the IBGE city codes."""
    path = os.path.join(directory, NATIONAL_TREASURE_FILE_NAME)
    lookup: dict[int, str] = {}
    with open(path, encoding="utf-8", errors="surrogateescape", newline="") as handle:
        reader = csv.reader(handle, delimiter=";", strict=True)
        fields = None
        try:
            for row in reader:
                if not row:
                    continue
                if fields is None:
                    fields = len(row)
                elif len(row) != fields:
                    raise ValueError(
                        f"error reading {path}: record on line {reader.line_num}: "
                        "wrong number of fields"
                    )
                code = to_int(row[0])
                if code is None:
                    raise ValueError(f"error converting an empty code to int in {path}")
                if len(row) < 5:
                    raise ValueError(f"error reading {path}: missing IBGE code for {code}")
                lookup[code] = row[4]
        except csv.Error as error:
            raise ValueError(f"error reading {path}: {error}") from error
    return lookup


def load_lookups(directory) -> Lookups:
    """Build every lookup table from the files in ``directory``."""
    tables = [
        new_lookup(path)
        for kind in _LOOKUP_KINDS
        for path in paths_for_source(kind, directory)
    ]
    if len(tables) != len(_LOOKUP_KINDS):
        raise ValueError(
            "error creating look up tables, expected "
            f"{len(_LOOKUP_KINDS)} items, got {len(tables)}"
        )
    motives, cities, countries, cnaes, qualifications, natures = tables
    return Lookups(
        motives=motives,
        cities=cities,
        countries=countries,
        cnaes=cnaes,
        qualifications=qualifications,
        natures=natures,
        ibge=cities_lookup(directory),
    )