"""Creation of one JSON record per CNPJ from the downloaded files."""

from __future__ import annotations

import logging
import os
import queue
import threading
from typing import Protocol

from tqdm import tqdm

from minhareceita.cnpj import mask
from minhareceita.company import new_company
from minhareceita.download import FEDERAL_REVENUE_UPDATED_AT
from minhareceita.kv import KVStorage
from minhareceita.lookups import load_lookups
from minhareceita.source import Source, SourceType

logger = logging.getLogger(__name__)

MAX_PARALLEL_DB_QUERIES = 8
"""Default maximum number of parallel save queries sent to the database."""

BATCH_SIZE = 8192
"""Default number of records saved to the database at once."""

_VENUES = SourceType("Estabelecimentos")
_DONE = object()
_POLL_SECONDS = 0.1


class TransformError(Exception):
    """Raised when the downloaded files cannot be turned into records."""


class Database(Protocol):
    """What the transformation needs from a database."""

    def create_companies(self, batch: list[list]) -> None:
        """Save a batch of ``[cnpj as int, json]`` pairs."""

    def create_index(self) -> None:
        """Index the saved records once all of them are in place."""

    def meta_save(self, key: str, value: str) -> None:
        """Save a metadata key/value pair."""


def save_updated_at(db, directory) -> str:
    """Store the extraction date found in ``directory`` as metadata and return it."""
    logger.info("Saving the updated at date to the database…")
    path = os.path.join(os.fspath(directory), FEDERAL_REVENUE_UPDATED_AT)
    try:
        with open(path, encoding="utf-8") as handle:
            value = handle.read()
    except OSError as error:
        raise TransformError(f"error reading {path}: {error}") from error
    db.meta_save("updated-at", value)
    return value


def save_batch(db, batch) -> int:
    """Save a batch of companies and return how many were saved."""
    if not batch:
        return 0
    rows = []
    for company in batch:
        try:
            data = company.to_json()
        except ValueError as error:
            raise TransformError(
                f"error getting company {mask(company.cnpj)} as json: {error}"
            ) from error
        if not (company.cnpj.isascii() and company.cnpj.isdigit()):
            raise TransformError(f"could not convert cnpj {company.cnpj} to int")
        rows.append([int(company.cnpj), data])
    try:
        db.create_companies(rows)
    except Exception as error:
        raise TransformError(f"error saving companies: {error}") from error
    return len(rows)


class VenuesTask:
    """Reads the venues files and saves one record per CNPJ in batches."""

    def __init__(self, directory, db, lookups, kv, batch_size=BATCH_SIZE, privacy=True):
        if batch_size < 1:
            raise ValueError("batch size must be at least 1")
        self.directory = os.fspath(directory)
        try:
            self.source = Source(_VENUES, self.directory)
        except (OSError, ValueError) as error:
            raise TransformError(
                f"error creating a source for venues from {self.directory}: {error}"
            ) from error
        self.db = db
        self.lookups = lookups
        self.kv = kv
        self.batch_size = batch_size
        self.privacy = privacy
        self.saved = 0

    def run(self, max_parallel=MAX_PARALLEL_DB_QUERIES) -> int:
        """Process every venue with ``max_parallel`` workers; return records saved."""
        if max_parallel < 1:
            raise ValueError("maximum parallel queries must be at least 1")
        stop = threading.Event()
        rows: queue.Queue = queue.Queue(maxsize=max_parallel * 64)
        errors: list[Exception] = []
        lock = threading.Lock()

        def fail(error: Exception) -> None:
            with lock:
                if not errors:
                    errors.append(error)
            stop.set()

        def put(item) -> bool:
            while not stop.is_set():
                try:
                    rows.put(item, timeout=_POLL_SECONDS)
                    return True
                except queue.Full:
                    continue
            return False

        def get():
            while True:
                try:
                    item = rows.get(timeout=_POLL_SECONDS)
                except queue.Empty:
                    if stop.is_set():
                        return None
                    continue
                return None if stop.is_set() else item

        try:
            with tqdm(
                total=self.source.total_lines,
                desc="Creating the JSON data for each CNPJ",
            ) as bar:

                def record(count: int) -> None:
                    with lock:
                        bar.update(count)
                        self.saved += count

                def produce(reader) -> None:
                    try:
                        for row in reader:
                            if not put(row):
                                return
                    except Exception as error:
                        fail(TransformError(f"error reading {reader.path}: {error}"))

                def consume() -> None:
                    batch = []
                    try:
                        while True:
                            row = get()
                            if row is None:
                                return
                            if row is _DONE:
                                break
                            try:
                                company = new_company(
                                    row, self.lookups, self.kv, self.privacy
                                )
                            except Exception as error:
                                raise TransformError(
                                    f"error parsing company from {row!r}: {error}"
                                ) from error
                            batch.append(company)
                            if len(batch) >= self.batch_size:
                                record(save_batch(self.db, batch))
                                batch = []
                        if batch and not stop.is_set():
                            record(save_batch(self.db, batch))
                    except Exception as error:
                        fail(error)

                producers = [
                    threading.Thread(target=produce, args=(reader,), daemon=True)
                    for reader in self.source.readers
                ]
                consumers = [
                    threading.Thread(target=consume, daemon=True)
                    for _ in range(max_parallel)
                ]
                for thread in producers + consumers:
                    thread.start()
                for thread in producers:
                    thread.join()
                for _ in consumers:
                    put(_DONE)
                for thread in consumers:
                    thread.join()
        finally:
            self.source.close()

        if errors:
            raise errors[0]
        self.db.create_index()
        return self.saved


def transform(
    directory,
    db,
    max_parallel_db_queries=MAX_PARALLEL_DB_QUERIES,
    batch_size=BATCH_SIZE,
    privacy=True,
    high_memory=False,
) -> int:
    """Create a database record per CNPJ from the files in ``directory``."""
    directory = os.fspath(directory)
    try:
        save_updated_at(db, directory)
    except TransformError as error:
        raise TransformError(f"error saving the update at date: {error}") from error
    try:
        lookups = load_lookups(directory)
    except (OSError, ValueError) as error:
        raise TransformError(
            f"error creating look up tables from {directory}: {error}"
        ) from error
    with KVStorage(high_memory) as kv:
        try:
            kv.load(directory, lookups)
        except (OSError, ValueError) as error:
            raise TransformError(
                f"error loading data to the key-value storage: {error}"
            ) from error
        task = VenuesTask(directory, db, lookups, kv, batch_size, privacy)
        return task.run(max_parallel_db_queries)