"""Partners (QSA) of a base CNPJ."""

from __future__ import annotations

import datetime
import json
from dataclasses import dataclass, fields

from minhareceita.cast import format_date, parse_date, to_date, to_int

_JSON_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)

_AGE_GROUPS = {
    1: "para os intervalos entre 0 a 12 anos",
    2: "Entre 13 a 20 ano",
    3: "Entre 21 a 30 anos",
    4: "Entre 31 a 40 anos",
    5: "Entre 41 a 50 anos",
    6: "Entre 51 a 60 anos",
    7: "Entre 61 a 70 anos",
    8: "Entre 71 a 80 anos",
    9: "Maiores de 80 anos",
    0: "Não se aplica",
}

_INT_FIELDS = (
    "identificador_de_socio",
    "codigo_qualificacao_socio",
    "codigo_pais",
    "codigo_qualificacao_representante_legal",
    "codigo_faixa_etaria",
)
_STR_FIELDS = (
    "nome_socio",
    "cnpj_cpf_do_socio",
    "cpf_representante_legal",
    "nome_representante_legal",
)
_OPTIONAL_STR_FIELDS = (
    "qualificacao_socio",
    "pais",
    "qualificacao_representante_legal",
    "faixa_etaria",
)


@dataclass
class PartnerData:
    """One partner of a company."""

    identificador_de_socio: int | None = None
    nome_socio: str = ""
    cnpj_cpf_do_socio: str = ""
    codigo_qualificacao_socio: int | None = None
    qualificacao_socio: str | None = None
    data_entrada_sociedade: datetime.date | None = None
    codigo_pais: int | None = None
    pais: str | None = None
    cpf_representante_legal: str = ""
    nome_representante_legal: str = ""
    codigo_qualificacao_representante_legal: int | None = None
    qualificacao_representante_legal: str | None = None
    codigo_faixa_etaria: int | None = None
    faixa_etaria: str | None = None

    def to_dict(self) -> dict:
        """The data as JSON-ready values, dates as ``YYYY-MM-DD``."""
        result = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, datetime.date):
                value = format_date(value)
            result[item.name] = value
        return result


def _typed(data: dict, key: str, kind: type, default=None):
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, kind) or isinstance(value, bool):
        raise ValueError(f"unexpected value for {key}: {value!r}")
    return value


def partner_from_dict(data) -> PartnerData:
    """Build :class:`PartnerData` from a decoded JSON object."""
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object for a partner, got {data!r}")
    values = {name: _typed(data, name, int) for name in _INT_FIELDS}
    values.update({name: _typed(data, name, str, "") for name in _STR_FIELDS})
    values.update({name: _typed(data, name, str) for name in _OPTIONAL_STR_FIELDS})
    values["data_entrada_sociedade"] = parse_date(data.get("data_entrada_sociedade"))
    return PartnerData(**values)


def _country(lookups, value: str) -> tuple[int | None, str | None]:
    try:
        code = to_int(value)
    except ValueError:
        return None, None
    if code is None:
        return None, None
    return code, lookups.countries.get(code) or None


def _age_group(value: str) -> tuple[int | None, str | None]:
    try:
        code = to_int(value)
    except ValueError:
        return None, None
    if code is None:
        return None, None
    return code, _AGE_GROUPS.get(code)


def _qualifications(lookups, partner: str, representative: str):
    try:
        partner_code = to_int(partner)
        representative_code = to_int(representative)
    except ValueError:
        return None, None, None, None
    partner_name = (
        lookups.qualifications.get(partner_code) or None
        if partner_code is not None
        else None
    )
    representative_name = (
        lookups.qualifications.get(representative_code) or None
        if representative_code is not None
        else None
    )
    return partner_code, partner_name, representative_code, representative_name


def partner_from_row(lookups, row) -> PartnerData:
    """Build :class:`PartnerData` from a row of the Socios CSV files."""
    try:
        identificador = to_int(row[1])
    except ValueError as error:
        raise ValueError(f"error parsing IdentificadorDeSocio {row[1]}: {error}") from error
    try:
        entrada = to_date(row[5])
    except ValueError as error:
        raise ValueError(f"error parsing DataEntradaSociedade {row[5]}: {error}") from error

    codigo_pais, pais = _country(lookups, row[6])
    codigo_faixa, faixa = _age_group(row[10])
    codigo_socio, socio, codigo_representante, representante = _qualifications(
        lookups, row[4], row[9]
    )
    return PartnerData(
        identificador_de_socio=identificador,
        nome_socio=row[2],
        cnpj_cpf_do_socio=row[3],
        codigo_qualificacao_socio=codigo_socio,
        qualificacao_socio=socio,
        data_entrada_sociedade=entrada,
        codigo_pais=codigo_pais,
        pais=pais,
        cpf_representante_legal=row[7],
        nome_representante_legal=row[8],
        codigo_qualificacao_representante_legal=codigo_representante,
        qualificacao_representante_legal=representante,
        codigo_faixa_etaria=codigo_faixa,
        faixa_etaria=faixa,
    )


def load_partner_row(lookups, row) -> bytes:
    """Serialize a row of the Socios CSV files as compact JSON."""
    try:
        data = partner_from_row(lookups, row)
    except ValueError as error:
        raise ValueError(f"error parsing partners line: {error}") from error
    text = json.dumps(data.to_dict(), ensure_ascii=False, separators=(",", ":"))
    return text.translate(_JSON_ESCAPES).encode("utf-8")