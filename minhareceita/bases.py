"""Data shared by every venue of a base CNPJ (the Empresas files)."""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass
from decimal import Decimal

from minhareceita.cast import to_float, to_int

_JSON_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)

_PORTES = {
    0: "NÃO INFORMADO",
    1: "MICRO EMPRESA",
    3: "EMPRESA DE PEQUENO PORTE",
    5: "DEMAIS",
}


@dataclass
class BaseData:
    """Company name, legal nature, size and capital of a base CNPJ."""

    codigo_porte: int | None = None
    porte: str | None = None
    razao_social: str = ""
    codigo_natureza_juridica: int | None = None
    natureza_juridica: str | None = None
    qualificacao_do_responsavel: int | None = None
    capital_social: float | None = None
    ente_federativo_responsavel: str = ""

    def to_dict(self) -> dict:
        """The data as JSON-ready values."""
        return asdict(self)


def _format_float(value: float) -> str:
    """Format a number the way the published JSON writes single precision numbers."""
    if not math.isfinite(value):
        raise ValueError(f"cannot serialize {value} as JSON")
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    number = Decimal(repr(value)).normalize()
    if 1e-6 <= abs(value) < 1e21:
        return format(number, "f")
    sign, digits, exponent = number.as_tuple()
    text = "".join(str(digit) for digit in digits)
    mantissa = text[0] + (f".{text[1:]}" if len(text) > 1 else "")
    power = exponent + len(digits) - 1
    suffix = f"e+{power:02d}" if power >= 0 else f"e-{-power}"
    return ("-" if sign else "") + mantissa + suffix


def _dumps(data: dict) -> bytes:
    parts = []
    for key, value in data.items():
        if isinstance(value, float):
            encoded = _format_float(value)
        else:
            encoded = json.dumps(value, ensure_ascii=False)
        parts.append(f"{json.dumps(key, ensure_ascii=False)}:{encoded}")
    return ("{" + ",".join(parts) + "}").translate(_JSON_ESCAPES).encode("utf-8")


def _typed(data: dict, key: str, kind, default=None):
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, kind) or isinstance(value, bool):
        raise ValueError(f"unexpected value for {key}: {value!r}")
    return value


def base_from_dict(data) -> BaseData:
    """Build :class:`BaseData` from a decoded JSON object."""
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object for base data, got {data!r}")
    capital = _typed(data, "capital_social", (int, float))
    return BaseData(
        codigo_porte=_typed(data, "codigo_porte", int),
        porte=_typed(data, "porte", str),
        razao_social=_typed(data, "razao_social", str, ""),
        codigo_natureza_juridica=_typed(data, "codigo_natureza_juridica", int),
        natureza_juridica=_typed(data, "natureza_juridica", str),
        qualificacao_do_responsavel=_typed(data, "qualificacao_do_responsavel", int),
        capital_social=None if capital is None else float(capital),
        ente_federativo_responsavel=_typed(data, "ente_federativo_responsavel", str, ""),
    )


def _parse(parser, value: str, name: str):
    try:
        return parser(value)
    except ValueError as error:
        raise ValueError(f"error trying to parse {name} {value}: {error}") from error


def base_from_row(lookups, row) -> BaseData:
    """Build :class:`BaseData` from a row of the Empresas CSV files."""
    try:
        natureza = _parse(to_int, row[2], "CodigoNaturezaJuridica")
        qualificacao = _parse(to_int, row[3], "QualificacaoDoResponsavel")
        capital = _parse(to_float, row[4], "CapitalSocial")
        codigo_porte = _parse(to_int, row[5], "Porte")
    except ValueError as error:
        raise ValueError(
            f"error handling base data for base cnpj {row[0]}: {error}"
        ) from error
    natureza_juridica = (
        lookups.natures.get(natureza) or None if natureza is not None else None
    )
    return BaseData(
        codigo_porte=codigo_porte,
        porte=_PORTES.get(codigo_porte) if codigo_porte is not None else None,
        razao_social=row[1],
        codigo_natureza_juridica=natureza,
        natureza_juridica=natureza_juridica,
        qualificacao_do_responsavel=qualificacao,
        capital_social=capital,
        ente_federativo_responsavel=row[6],
    )


def load_base_row(lookups, row) -> bytes:
    """Serialize a row of the Empresas CSV files as compact JSON."""
    try:
        data = base_from_row(lookups, row)
    except ValueError as error:
        raise ValueError(f"error parsing base line: {error}") from error
    return _dumps(data.to_dict())