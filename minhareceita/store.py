"""Key-value storage for base CNPJ data, partners and taxes."""

from __future__ import annotations

import json
import os
import sqlite3
import threading

from minhareceita.bases import BaseData, base_from_dict
from minhareceita.partners import PartnerData, partner_from_dict
from minhareceita.source import SourceType
from minhareceita.taxes import TaxesData, taxes_from_dict

_FILE_NAME = "store.sqlite3"


def key_for_partners(number) -> str:
    """Key under which the partners of a base CNPJ are stored."""
    return f"partners{number}"


def key_for_base(number) -> str:
    """Key under which the base data of a base CNPJ is stored."""
    return f"base{number}"


def key_for_taxes(number) -> str:
    """Key under which the taxes data of a base CNPJ is stored."""
    return f"taxes{number}"


def _as_bytes(value) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


class KeyValueStore:
    """A thread safe key-value store, in memory or in a directory on disk."""

    def __init__(self, path=None):
        self.path = None if path is None else os.fspath(path)
        if self.path is None:
            database = ":memory:"
        else:
            os.makedirs(self.path, exist_ok=True)
            database = os.path.join(self.path, _FILE_NAME)
        self._lock = threading.RLock()
        self._connection = sqlite3.connect(
            database, check_same_thread=False, isolation_level=None
        )
        self._connection.execute("PRAGMA synchronous = OFF")
        self._connection.execute("PRAGMA journal_mode = MEMORY")
        self._connection.execute(
            "CREATE TABLE IF NOT EXISTS items (key BLOB PRIMARY KEY, value BLOB NOT NULL)"
        )

    def _get(self, key) -> bytes | None:
        with self._lock:
            row = self._connection.execute(
                "SELECT value FROM items WHERE key = ?", (_as_bytes(key),)
            ).fetchone()
        return None if row is None else bytes(row[0])

    def _set(self, key, value) -> None:
        with self._lock:
            self._connection.execute(
                "INSERT OR REPLACE INTO items (key, value) VALUES (?, ?)",
                (_as_bytes(key), _as_bytes(value)),
            )

    def merge_partners(self, key, value) -> bytes:
        """Append the partner in ``value`` to the partners stored at ``key``."""
        current = self._get(key)
        try:
            existing = json.loads(current) if current is not None else []
            partners = [partner_from_dict(item) for item in existing or []]
        except (ValueError, TypeError) as error:
            raise ValueError(f"could not parse partners: {error}") from error
        try:
            partners.append(partner_from_dict(json.loads(value)))
        except ValueError as error:
            raise ValueError(f"could not parse partner: {error}") from error
        merged = [partner.to_dict() for partner in partners]
        return json.dumps(merged, ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    def save_item(self, kind, key, value) -> None:
        """Store ``value`` at ``key``; partners are appended instead of replaced."""
        with self._lock:
            if SourceType(kind) is SourceType.PARTNERS:
                try:
                    value = self.merge_partners(key, value)
                except ValueError as error:
                    raise ValueError(f"error merging partners: {error}") from error
            self._set(key, value)

    def _decoded(self, key: str, what: str):
        value = self._get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except ValueError as error:
            raise ValueError(f"could not parse {what}: {error}") from error

    def partners_of(self, number) -> list[PartnerData]:
        """Partners of a base CNPJ, empty when there are none."""
        data = self._decoded(key_for_partners(number), "partners")
        try:
            return [partner_from_dict(item) for item in data or []]
        except (ValueError, TypeError) as error:
            raise ValueError(f"error getting partners for {number}: {error}") from error

    def base_of(self, number) -> BaseData:
        """Base data of a base CNPJ, empty when there is none."""
        data = self._decoded(key_for_base(number), "base")
        if data is None:
            return BaseData()
        try:
            return base_from_dict(data)
        except ValueError as error:
            raise ValueError(f"error getting base for {number}: {error}") from error

    def taxes_of(self, number) -> TaxesData:
        """Taxes data of a base CNPJ, empty when there is none."""
        data = self._decoded(key_for_taxes(number), "taxes")
        if data is None:
            return TaxesData()
        try:
            return taxes_from_dict(data)
        except ValueError as error:
            raise ValueError(f"error getting taxes for {number}: {error}") from error

    def close(self) -> None:
        """Close the underlying database."""
        with self._lock:
            self._connection.close()

    def __enter__(self) -> KeyValueStore:
        return self

    def __exit__(self, *args) -> None:
        self.close()