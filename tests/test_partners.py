import datetime
import json

import pytest

from minhareceita.lookups import Lookups
from minhareceita.partners import (
    PartnerData,
    load_partner_row,
    partner_from_dict,
    partner_from_row,
)

PARTNER_ROW = [
    "BASE DO CNPJ",
    "1",
    "Hannah",
    "123",
    "16",
    "20070812",
    "105",
    "789",
    "Arendt",
    "10",
    "4",
]

EXPECTED = PartnerData(
    identificador_de_socio=1,
    nome_socio="Hannah",
    cnpj_cpf_do_socio="123",
    codigo_qualificacao_socio=16,
    qualificacao_socio="Presidente",
    data_entrada_sociedade=datetime.date(2007, 8, 12),
    codigo_pais=105,
    pais="BRASIL",
    cpf_representante_legal="789",
    nome_representante_legal="Arendt",
    codigo_qualificacao_representante_legal=10,
    qualificacao_representante_legal="Diretor",
    codigo_faixa_etaria=4,
    faixa_etaria="Entre 31 a 40 anos",
)

EXPECTED_JSON = (
    '{"identificador_de_socio":1,"nome_socio":"Hannah","cnpj_cpf_do_socio":"123",'
    '"codigo_qualificacao_socio":16,"qualificacao_socio":"Presidente",'
    '"data_entrada_sociedade":"2007-08-12","codigo_pais":105,"pais":"BRASIL",'
    '"cpf_representante_legal":"789","nome_representante_legal":"Arendt",'
    '"codigo_qualificacao_representante_legal":10,'
    '"qualificacao_representante_legal":"Diretor","codigo_faixa_etaria":4,'
    '"faixa_etaria":"Entre 31 a 40 anos"}'
)


@pytest.fixture
def lookups():
    return Lookups(
        countries={105: "BRASIL"},
        qualifications={16: "Presidente", 10: "Diretor"},
    )


def test_partner_from_row(lookups):
    assert partner_from_row(lookups, PARTNER_ROW) == EXPECTED


def test_load_partner_row(lookups):
    assert load_partner_row(lookups, PARTNER_ROW) == EXPECTED_JSON.encode()


def test_round_trip_through_json(lookups):
    decoded = json.loads(load_partner_row(lookups, PARTNER_ROW))
    assert partner_from_dict(decoded) == EXPECTED


@pytest.mark.parametrize(
    "code, expected",
    [("0", "Não se aplica"), ("1", "para os intervalos entre 0 a 12 anos"), ("9", "Maiores de 80 anos")],
)
def test_age_groups(lookups, code, expected):
    row = list(PARTNER_ROW)
    row[10] = code
    assert partner_from_row(lookups, row).faixa_etaria == expected


def test_unknown_age_group_keeps_code(lookups):
    row = list(PARTNER_ROW)
    row[10] = "42"
    partner = partner_from_row(lookups, row)
    assert (partner.codigo_faixa_etaria, partner.faixa_etaria) == (42, None)


def test_invalid_country_is_ignored(lookups):
    row = list(PARTNER_ROW)
    row[6] = "foo"
    partner = partner_from_row(lookups, row)
    assert (partner.codigo_pais, partner.pais) == (None, None)


def test_unknown_qualification_keeps_code(lookups):
    row = list(PARTNER_ROW)
    row[4] = "99"
    partner = partner_from_row(lookups, row)
    assert (partner.codigo_qualificacao_socio, partner.qualificacao_socio) == (99, None)


def test_invalid_identifier_raises(lookups):
    row = list(PARTNER_ROW)
    row[1] = "x"
    with pytest.raises(ValueError, match="IdentificadorDeSocio"):
        partner_from_row(lookups, row)


def test_invalid_date_raises_from_load(lookups):
    row = list(PARTNER_ROW)
    row[5] = "foobar"
    with pytest.raises(ValueError, match="DataEntradaSociedade"):
        load_partner_row(lookups, row)


def test_html_characters_are_escaped(lookups):
    row = list(PARTNER_ROW)
    row[2] = "<A&B>"
    assert b'"nome_socio":"\\u003cA\\u0026B\\u003e"' in load_partner_row(lookups, row)


def test_from_dict_defaults():
    assert partner_from_dict({}) == PartnerData()


def test_from_dict_rejects_wrong_type():
    with pytest.raises(ValueError):
        partner_from_dict({"codigo_pais": "105"})