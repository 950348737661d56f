"""The JSON record built for each CNPJ (one venue of a company)."""

from __future__ import annotations

import datetime
import json
import logging
import re
from dataclasses import asdict, dataclass, fields

from minhareceita.bases import _format_float
from minhareceita.cast import format_date, to_date, to_int
from minhareceita.cnpj import mask
from minhareceita.partners import PartnerData

logger = logging.getLogger(__name__)

_NAME_CLEANUP = re.compile(r"([^0-9])([0-9]{3})([0-9]{5})([0-9]{3})\Z")

_JSON_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)

_SITUACOES = {1: "NULA", 2: "ATIVA", 3: "SUSPENSA", 4: "INAPTA", 8: "BAIXADA"}
_MATRIZ_FILIAL = {1: "MATRIZ", 2: "FILIAL"}


def company_name_cleanup(name: str) -> str:
    """Mask a CPF at the end of a trade name (common in MEI companies)."""
    return _NAME_CLEANUP.sub(r"\1***\3***", name).strip()


@dataclass
class Cnae:
    """An economic activity code and its description."""

    codigo: int = 0
    descricao: str = ""


@dataclass
class Company:
    """Everything published about one CNPJ."""

    cnpj: str = ""
    identificador_matriz_filial: int | None = None
    descricao_identificador_matriz_filial: str | None = None
    nome_fantasia: str = ""
    situacao_cadastral: int | None = None
    descricao_situacao_cadastral: str | None = None
    data_situacao_cadastral: datetime.date | None = None
    motivo_situacao_cadastral: int | None = None
    descricao_motivo_situacao_cadastral: str | None = None
    nome_cidade_no_exterior: str = ""
    codigo_pais: int | None = None
    pais: str | None = None
    data_inicio_atividade: datetime.date | None = None
    cnae_fiscal: int | None = None
    cnae_fiscal_descricao: str | None = None
    descricao_tipo_de_logradouro: str = ""
    logradouro: str = ""
    numero: str = ""
    complemento: str = ""
    bairro: str = ""
    cep: str = ""
    uf: str = ""
    codigo_municipio: int | None = None
    codigo_municipio_ibge: int | None = None
    municipio: str | None = None
    ddd_telefone_1: str = ""
    ddd_telefone_2: str = ""
    ddd_fax: str = ""
    email: str | None = None
    situacao_especial: str = ""
    data_situacao_especial: datetime.date | None = None
    opcao_pelo_simples: bool | None = None
    data_opcao_pelo_simples: datetime.date | None = None
    data_exclusao_do_simples: datetime.date | None = None
    opcao_pelo_mei: bool | None = None
    data_opcao_pelo_mei: datetime.date | None = None
    data_exclusao_do_mei: datetime.date | None = None
    razao_social: str = ""
    codigo_natureza_juridica: int | None = None
    natureza_juridica: str | None = None
    qualificacao_do_responsavel: int | None = None
    capital_social: float | None = None
    codigo_porte: int | None = None
    porte: str | None = None
    ente_federativo_responsavel: str = ""
    descricao_porte: str = ""
    qsa: list[PartnerData] | None = None
    cnaes_secundarios: list[Cnae] | None = None

    def to_dict(self) -> dict:
        """The record as JSON-ready values, in the published field order."""
        result = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, datetime.date):
                value = format_date(value)
            elif item.name == "qsa" and value is not None:
                value = [partner.to_dict() for partner in value]
            elif item.name == "cnaes_secundarios" and value is not None:
                value = [asdict(cnae) for cnae in value]
            result[item.name] = value
        return result

    def to_json(self) -> str:
        """The record as compact JSON."""
        try:
            return _encode(self.to_dict()).translate(_JSON_ESCAPES)
        except ValueError as error:
            raise ValueError(f"error while marshaling company JSON: {error}") from error


def _encode(value) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, (int, str)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, dict):
        items = (
            f"{json.dumps(key, ensure_ascii=False)}:{_encode(item)}"
            for key, item in value.items()
        )
        return "{" + ",".join(items) + "}"
    if isinstance(value, list):
        return "[" + ",".join(_encode(item) for item in value) + "]"
    raise ValueError(f"cannot serialize {value!r}")


def _parse_int(value: str, name: str) -> int | None:
    try:
        return to_int(value)
    except ValueError as error:
        raise ValueError(f"error trying to parse {name} {value}: {error}") from error


def _parse_date(value: str, name: str) -> datetime.date | None:
    try:
        return to_date(value)
    except ValueError as error:
        raise ValueError(f"error trying to parse {name} {value}: {error}") from error


def _required_int(value: str, name: str) -> int:
    code = _parse_int(value, name)
    if code is None:
        raise ValueError(f"error trying to parse {name} {value}: missing value")
    return code


def new_cnae(lookups, value: str) -> Cnae:
    """Build a :class:`Cnae` from its code; an empty code gives an empty one."""
    code = _parse_int(value, "cnae")
    if code is None:
        return Cnae()
    return Cnae(codigo=code, descricao=lookups.cnaes.get(code, ""))


def _set_cnaes(company: Company, lookups, primary: str, secondary: str) -> None:
    try:
        main = new_cnae(lookups, primary)
    except ValueError as error:
        raise ValueError(f"error trying to parse CNAEFiscal {primary}: {error}") from error
    company.cnae_fiscal = main.codigo
    if main.descricao:
        company.cnae_fiscal_descricao = main.descricao

    company.cnaes_secundarios = []
    for code in secondary.split(","):
        try:
            company.cnaes_secundarios.append(new_cnae(lookups, code))
        except ValueError as error:
            raise ValueError(
                f"error trying to parse CNAESecundarios {code}: {error}"
            ) from error


def _set_municipio(company: Company, lookups, value: str) -> None:
    if company.uf == "EX":
        return
    code = _parse_int(value, "CodigoMunicipio")
    if code is None:
        return
    company.codigo_municipio = code
    name = lookups.cities.get(code)
    if name is None:
        return
    company.municipio = name
    ibge = lookups.ibge.get(code)
    if ibge is None:
        logger.info(
            "Could not find IBGE city code for %s-%s (%d)", name, company.uf, code
        )
        return
    company.codigo_municipio_ibge = _parse_int(ibge, "ibge code")


def new_company(row, lookups, kv, privacy: bool) -> Company:
    """Build the record of a venue from a row of the Estabelecimentos files."""
    company = Company(
        cnpj=row[0] + row[1] + row[2],
        nome_fantasia=row[4],
        nome_cidade_no_exterior=row[8],
        descricao_tipo_de_logradouro=row[13],
        logradouro=row[14],
        numero=row[15],
        complemento=row[16],
        bairro=row[17],
        cep=row[18],
        uf=row[19],
        ddd_telefone_1=row[21] + row[22],
        ddd_telefone_2=row[23] + row[24],
        ddd_fax=row[25] + row[26],
        email=row[27],
        situacao_especial=row[28],
    )

    if privacy:
        company.nome_fantasia = company_name_cleanup(row[4])
        company.email = None
        if company.codigo_natureza_juridica is not None and "individual" in (
            company.natureza_juridica or ""
        ).lower():
            company.descricao_tipo_de_logradouro = ""
            company.logradouro = ""
            company.numero = ""
            company.complemento = ""
            company.ddd_telefone_1 = ""
            company.ddd_telefone_2 = ""
            company.ddd_fax = ""

    try:
        code = _required_int(row[3], "IdentificadorMatrizFilial")
    except ValueError as error:
        raise ValueError(f"error trying to parse IdentificadorMatrizFilial: {error}") from error
    company.identificador_matriz_filial = code
    company.descricao_identificador_matriz_filial = _MATRIZ_FILIAL.get(code)

    try:
        code = _required_int(row[5], "SituacaoCadastral")
    except ValueError as error:
        raise ValueError(f"error trying to parse SituacaoCadastral: {error}") from error
    company.situacao_cadastral = code
    company.descricao_situacao_cadastral = _SITUACOES.get(code)

    company.data_situacao_cadastral = _parse_date(row[6], "DataSituacaoCadastral")

    try:
        code = _parse_int(row[7], "MotivoSituacaoCadastral")
    except ValueError as error:
        raise ValueError(f"error trying to parse MotivoSituacaoCadastral: {error}") from error
    if code is not None:
        company.motivo_situacao_cadastral = code
        company.descricao_motivo_situacao_cadastral = lookups.motives.get(code) or None

    try:
        code = _parse_int(row[9], "CodigoPais")
    except ValueError as error:
        raise ValueError(f"error trying to parse CodigoPais: {error}") from error
    if code is not None:
        company.codigo_pais = code
        company.pais = lookups.countries.get(code) or None

    company.data_inicio_atividade = _parse_date(row[10], "DataInicioAtividade")

    try:
        _set_cnaes(company, lookups, row[11], row[12])
    except ValueError as error:
        raise ValueError(f"error trying to parse cnae: {error}") from error

    try:
        _set_municipio(company, lookups, row[20])
    except ValueError as error:
        raise ValueError(f"error trying to parse CodigoMunicipio {row[20]}: {error}") from error

    company.data_situacao_especial = _parse_date(row[29], "DataSituacaoEspecial")

    try:
        kv.enrich_company(company)
    except ValueError as error:
        raise ValueError(f"error enriching company {mask(company.cnpj)}: {error}") from error
    return company