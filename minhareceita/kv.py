"""Temporary key-value storage of base CNPJ data, partners and taxes."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from tqdm import tqdm

from minhareceita.bases import load_base_row
from minhareceita.cnpj import base
from minhareceita.partners import load_partner_row
from minhareceita.source import SourceType, load_sources
from minhareceita.store import (
    KeyValueStore,
    key_for_base,
    key_for_partners,
    key_for_taxes,
)
from minhareceita.taxes import load_taxes_row

logger = logging.getLogger(__name__)

_DIRECTORY_PREFIX = "minha-receita-kv-"

_HANDLERS = {
    SourceType.PARTNERS: (key_for_partners, load_partner_row),
    SourceType.BASE: (key_for_base, load_base_row),
    SourceType.TAXES: (key_for_taxes, load_taxes_row),
}


@dataclass
class KVItem:
    """A key and its serialized value, ready to be stored."""

    key: bytes
    value: bytes
    kind: SourceType


def new_kv_item(kind, lookups, row) -> KVItem:
    """Build the storage item for a row of the Empresas, Socios or Simples files."""
    kind = SourceType(kind)
    handler = _HANDLERS.get(kind)
    if handler is None:
        raise ValueError(f"unknown source type {kind.value}")
    key_for, loader = handler
    try:
        value = loader(lookups, row)
    except ValueError as error:
        raise ValueError(f"error loading value from source: {error}") from error
    return KVItem(key=key_for(row[0]).encode("utf-8"), value=value, kind=kind)


class KVStorage:
    """Data joined to each venue, kept in memory or in a temporary directory."""

    def __init__(self, in_memory: bool = False):
        self.path: str | None = None
        if not in_memory:
            self.path = tempfile.mkdtemp(prefix=_DIRECTORY_PREFIX)
            if os.environ.get("DEBUG"):
                logger.info("Creating temporary key-value storage at %s", self.path)
        self.store = KeyValueStore(self.path)

    def _load_reader(self, kind, reader, lookups, bar, lock, stop) -> None:
        rows = iter(reader)
        while not stop.is_set():
            try:
                row = next(rows)
            except StopIteration:
                return
            except ValueError as error:
                raise ValueError(f"error reading {reader.path}: {error}") from error
            try:
                item = new_kv_item(kind, lookups, row)
            except ValueError as error:
                raise ValueError(f"error creating an {kind.value} item: {error}") from error
            try:
                self.store.save_item(item.kind, item.key, item.value)
            except ValueError as error:
                raise ValueError(f"could not save key-value: {error}") from error
            with lock:
                bar.update(1)

    def load(self, directory, lookups) -> None:
        """Read base data, partners and taxes from ``directory`` into the storage."""
        sources = load_sources(
            directory, [SourceType.BASE, SourceType.PARTNERS, SourceType.TAXES]
        )
        try:
            jobs = [(source.kind, reader) for source in sources for reader in source.readers]
            total = sum(source.total_lines for source in sources)
            lock = threading.Lock()
            stop = threading.Event()
            with tqdm(
                total=total, desc="Processing base CNPJ, partners and taxes"
            ) as bar, ThreadPoolExecutor(max_workers=max(len(jobs), 1)) as pool:
                futures = [
                    pool.submit(self._load_reader, kind, reader, lookups, bar, lock, stop)
                    for kind, reader in jobs
                ]
                try:
                    for future in as_completed(futures):
                        future.result()
                except ValueError as error:
                    stop.set()
                    raise ValueError(
                        f"error creating key-value storage: {error}"
                    ) from error
        finally:
            for source in sources:
                source.close()

    def enrich_company(self, company) -> None:
        """Fill a company with its partners, base data and taxes data."""
        number = base(company.cnpj)
        try:
            partners = self.store.partners_of(number)
            data = self.store.base_of(number)
            taxes = self.store.taxes_of(number)
        except ValueError as error:
            raise ValueError(f"error enriching company: {error}") from error

        company.qsa = partners

        company.codigo_porte = data.codigo_porte
        company.porte = data.porte
        company.razao_social = data.razao_social
        company.codigo_natureza_juridica = data.codigo_natureza_juridica
        company.natureza_juridica = data.natureza_juridica
        company.qualificacao_do_responsavel = data.qualificacao_do_responsavel
        company.capital_social = data.capital_social
        company.ente_federativo_responsavel = data.ente_federativo_responsavel

        company.opcao_pelo_simples = taxes.opcao_pelo_simples
        company.data_opcao_pelo_simples = taxes.data_opcao_pelo_simples
        company.data_exclusao_do_simples = taxes.data_exclusao_do_simples
        company.opcao_pelo_mei = taxes.opcao_pelo_mei
        company.data_opcao_pelo_mei = taxes.data_opcao_pelo_mei
        company.data_exclusao_do_mei = taxes.data_exclusao_do_mei

    def close(self) -> None:
        """Close the storage and remove its temporary directory, if any."""
        self.store.close()
        if self.path is not None:
            try:
                shutil.rmtree(self.path)
            except FileNotFoundError:
                pass
            except OSError as error:
                raise OSError(
                    f"error cleaning up key-value storage directory: {error}"
                ) from error

    def __enter__(self) -> KVStorage:
        return self

    def __exit__(self, *args) -> None:
        self.close()