import datetime
import json

import pytest

from minhareceita.bases import BaseData
from minhareceita.partners import PartnerData, partner_from_dict
from minhareceita.source import SourceType
from minhareceita.store import (
    KeyValueStore,
    key_for_base,
    key_for_partners,
    key_for_taxes,
)
from minhareceita.taxes import TaxesData

BASE_CNPJ = "12345678"

PARTNER_1 = PartnerData(1, "Nome da pessoa 1", "123", 2, "Dois", None, 3, "Três", "456", "Representante legal 1", 4, "Quatro", 5, "Cinco")
PARTNER_2 = PartnerData(6, "Nome da pessoa 2", "789", 7, "Sete", None, 8, "Oito", "012", "Representante legal 2", 9, "Nove", 10, "Dez")
NEW_PARTNER = PartnerData(
    1,
    "Hannah",
    "123",
    16,
    "Presidente",
    datetime.date(2007, 8, 12),
    105,
    "BRASIL",
    "789",
    "Arendt",
    10,
    "Diretor",
    4,
    "Entre 31 a 40 anos",
)
BASE = BaseData(5, "DEMAIS", "Razão Social", 2011, "Empresa Pública", 13, 4.2, "Responsável")
TAXES = TaxesData(
    True,
    datetime.date(2022, 12, 17),
    None,
    False,
    datetime.date(2022, 11, 18),
    datetime.date(2022, 12, 1),
)


def to_bytes(data):
    return json.dumps(data).encode()


@pytest.fixture(params=["memory", "disk"])
def store(request, tmp_path):
    path = None if request.param == "memory" else tmp_path / "kv"
    with KeyValueStore(path) as kv:
        yield kv


def test_keys():
    assert key_for_partners("42") == "partners42"
    assert key_for_base("42") == "base42"
    assert key_for_taxes("42") == "taxes42"


@pytest.mark.parametrize(
    "existing",
    [[], [PARTNER_1], [PARTNER_1, PARTNER_2]],
)
def test_merge_partners(store, existing):
    key = BASE_CNPJ.encode()
    for partner in existing:
        store.save_item(SourceType.PARTNERS, key, to_bytes(partner.to_dict()))
    merged = store.merge_partners(key, to_bytes(NEW_PARTNER.to_dict()))
    got = [partner_from_dict(item) for item in json.loads(merged)]
    assert got == [*existing, NEW_PARTNER]


def test_save_and_read_partners(store):
    store.save_item(
        SourceType.PARTNERS,
        key_for_partners(BASE_CNPJ),
        to_bytes(NEW_PARTNER.to_dict()),
    )
    assert store.partners_of(BASE_CNPJ) == [NEW_PARTNER]


def test_save_and_read_base(store):
    store.save_item(SourceType.BASE, key_for_base(BASE_CNPJ), to_bytes(BASE.to_dict()))
    assert store.base_of(BASE_CNPJ) == BASE


def test_save_and_read_taxes(store):
    store.save_item(SourceType.TAXES, key_for_taxes(BASE_CNPJ), to_bytes(TAXES.to_dict()))
    assert store.taxes_of(BASE_CNPJ) == TAXES


def test_non_partner_items_are_replaced(store):
    key = key_for_base(BASE_CNPJ)
    store.save_item(SourceType.BASE, key, to_bytes(BaseData(razao_social="A").to_dict()))
    store.save_item(SourceType.BASE, key, to_bytes(BASE.to_dict()))
    assert store.base_of(BASE_CNPJ) == BASE


def test_missing_keys_return_empty_values(store):
    assert store.partners_of("00000000") == []
    assert store.base_of("00000000") == BaseData()
    assert store.taxes_of("00000000") == TaxesData()


def test_invalid_partner_raises(store):
    with pytest.raises(ValueError, match="error merging partners"):
        store.save_item(SourceType.PARTNERS, key_for_partners(BASE_CNPJ), b"not json")


def test_disk_store_persists(tmp_path):
    path = tmp_path / "kv"
    with KeyValueStore(path) as kv:
        kv.save_item(SourceType.TAXES, key_for_taxes(BASE_CNPJ), to_bytes(TAXES.to_dict()))
    with KeyValueStore(path) as kv:
        assert kv.taxes_of(BASE_CNPJ) == TAXES