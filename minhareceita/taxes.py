"""Tax regime data (Simples Nacional and MEI) of a base CNPJ."""

from __future__ import annotations

import datetime
import json
from dataclasses import dataclass, fields

from minhareceita.cast import format_date, parse_date, to_bool, to_date

_JSON_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)

_DATE_FIELDS = (
    "data_opcao_pelo_simples",
    "data_exclusao_do_simples",
    "data_opcao_pelo_mei",
    "data_exclusao_do_mei",
)


@dataclass
class TaxesData:
    """Whether a company opted for Simples and MEI, and when."""

    opcao_pelo_simples: bool | None = None
    data_opcao_pelo_simples: datetime.date | None = None
    data_exclusao_do_simples: datetime.date | None = None
    opcao_pelo_mei: bool | None = None
    data_opcao_pelo_mei: datetime.date | None = None
    data_exclusao_do_mei: datetime.date | None = None

    def to_dict(self) -> dict:
        """The data as JSON-ready values, dates as ``YYYY-MM-DD``."""
        result = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, datetime.date):
                value = format_date(value)
            result[item.name] = value
        return result


def _optional_bool(data: dict, key: str) -> bool | None:
    value = data.get(key)
    if value is not None and not isinstance(value, bool):
        raise ValueError(f"expected a boolean for {key}, got {value!r}")
    return value


def taxes_from_dict(data) -> TaxesData:
    """Build :class:`TaxesData` from a decoded JSON object."""
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object for taxes, got {data!r}")
    return TaxesData(
        opcao_pelo_simples=_optional_bool(data, "opcao_pelo_simples"),
        opcao_pelo_mei=_optional_bool(data, "opcao_pelo_mei"),
        **{name: parse_date(data.get(name)) for name in _DATE_FIELDS},
    )


def _date_field(row: list[str], index: int, name: str) -> datetime.date | None:
    try:
        return to_date(row[index])
    except ValueError as error:
        raise ValueError(f"error parsing {name} {row[index]}: {error}") from error


def taxes_from_row(row) -> TaxesData:
    """Build :class:`TaxesData` from a row of the Simples CSV files."""
    return TaxesData(
        opcao_pelo_simples=to_bool(row[1]),
        data_opcao_pelo_simples=_date_field(row, 2, "DataOpcaoPeloSimples"),
        data_exclusao_do_simples=_date_field(row, 3, "DataExclusaoDoSimples"),
        opcao_pelo_mei=to_bool(row[4]),
        data_opcao_pelo_mei=_date_field(row, 5, "DataOpcaoPeloMEI"),
        data_exclusao_do_mei=_date_field(row, 6, "DataExclusaoDoMEI"),
    )


def load_taxes_row(lookups, row) -> bytes:
    """Serialize a row of the Simples CSV files as compact JSON."""
    try:
        data = taxes_from_row(row)
    except ValueError as error:
        raise ValueError(f"error parsing taxes line: {error}") from error
    text = json.dumps(data.to_dict(), ensure_ascii=False, separators=(",", ":"))
    return text.translate(_JSON_ESCAPES).encode("utf-8")