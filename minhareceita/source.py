"""Groups of archived CSV files from the Federal Revenue, by kind."""

from __future__ import annotations

import logging
import os
import zipfile
from concurrent.futures import ThreadPoolExecutor
from enum import Enum

from minhareceita.archive import SEPARATOR, ArchivedCSV

logger = logging.getLogger(__name__)

_CHUNK = 32 * 1024


class SourceType(str, Enum):
    """Kinds of files published by the Federal Revenue."""

    VENUES = "Estabelecimentos"
    MOTIVES = "Motivos"
    BASE = "Empresas"
    CITIES = "Municipios"
    CNAES = "Cnaes"
    COUNTRIES = "Paises"
    NATURES = "Naturezas"
    PARTNERS = "Socios"
    QUALIFICATIONS = "Qualificacoes"
    TAXES = "Simples"


def _extension(name: str) -> str:
    index = name.rfind(".")
    return name[index:] if index >= 0 else ""


def paths_for_source(kind, directory) -> list[str]:
    """Paths of the files in ``directory`` whose names mention ``kind``."""
    needle = SourceType(kind).value.lower()
    with os.scandir(directory) as entries:
        names = sorted(
            entry.name
            for entry in entries
            if not entry.is_dir(follow_symlinks=False)
            and _extension(entry.name) != ".md5"
        )
    return [os.path.join(directory, name) for name in names if needle in name.lower()]


def _count_lines(path: str) -> int:
    with zipfile.ZipFile(path) as archive:
        member = next((i for i in archive.infolist() if not i.is_dir()), None)
        if member is None:
            return 0
        with archive.open(member) as handle:
            return sum(chunk.count(b"\n") for chunk in iter(lambda: handle.read(_CHUNK), b""))


class Source:
    """All the archived CSV files of one kind, with their total line count."""

    def __init__(self, kind, directory):
        self.kind = SourceType(kind)
        self.directory = directory
        logger.info("Loading %s files…", self.kind.value)
        self.files = paths_for_source(self.kind, directory)
        self.readers: list[ArchivedCSV] = []
        self._open_readers()
        try:
            self.total_lines = sum(_count_lines(path) for path in self.files)
        except Exception:
            self.close()
            raise

    def _open_readers(self) -> None:
        self.readers = []
        try:
            for path in self.files:
                self.readers.append(ArchivedCSV(path, SEPARATOR))
        except Exception:
            self.close()
            raise

    def reset_readers(self) -> None:
        """Close the readers and open them again from the beginning."""
        self.close()
        self._open_readers()

    def close(self) -> None:
        """Close every reader."""
        for reader in self.readers:
            reader.close()

    def __enter__(self) -> Source:
        return self

    def __exit__(self, *args) -> None:
        self.close()


def load_sources(directory, kinds) -> list[Source]:
    """Load one :class:`Source` per kind, in parallel, in the given order."""
    kinds = [SourceType(kind) for kind in kinds]
    if not kinds:
        return []
    with ThreadPoolExecutor(max_workers=len(kinds)) as pool:
        futures = [pool.submit(Source, kind, directory) for kind in kinds]

    loaded: list[Source] = []
    failure: BaseException | None = None
    for future in futures:
        error = future.exception()
        if error is None:
            loaded.append(future.result())
        elif failure is None:
            failure = error
    if failure is not None:
        for source in loaded:
            source.close()
        raise failure
    return loaded