"""Reading of the semicolon separated CSV files archived in ZIP files."""

from __future__ import annotations

import csv
import io
import os
import re
import zipfile
import zlib
from collections.abc import Iterator

from minhareceita.cast import to_int

SEPARATOR = ";"

_MULTIPLE_SPACES = re.compile(r"[\t\n\f\r ]{2,}")


class ArchiveError(ValueError):
    """Raised when an archived CSV cannot be opened or parsed."""


def _clean(value: str) -> str:
    return _MULTIPLE_SPACES.sub(" ", value.replace("\x00", ""))


class ArchivedCSV:
    """The first file inside a ZIP archive, read as ISO-8859-1 CSV."""

    def __init__(self, path, separator: str = SEPARATOR):
        self.path = os.fspath(path)
        try:
            self._archive = zipfile.ZipFile(self.path)
        except zipfile.BadZipFile as error:
            raise ArchiveError(f"error opening archive {self.path}: {error}") from error

        member = next((i for i in self._archive.infolist() if not i.is_dir()), None)
        if member is None:
            self._archive.close()
            name = os.path.splitext(os.path.basename(self.path))[0]
            raise ArchiveError(
                f"could not find file {name} in the archive {self.path}"
            )

        self._file = self._archive.open(member)
        text = io.TextIOWrapper(self._file, encoding="latin-1", newline="")
        lines = (line.replace("\x00", "") for line in text)
        self._text = text
        self._reader = csv.reader(lines, delimiter=separator, strict=True)
        self._fields: int | None = None
        self._closed = False

    def read(self) -> list[str]:
        """Return the next row, raising ``EOFError`` when there are no more."""
        if self._closed:
            raise ValueError(f"archive {self.path} is closed")
        while True:
            try:
                row = next(self._reader)
            except StopIteration:
                raise EOFError(f"end of {self.path}") from None
            except (csv.Error, zipfile.BadZipFile, zlib.error) as error:
                raise ArchiveError(
                    f"error reading archived csv line from {self.path}: {error}"
                ) from error
            if row:
                break

        if self._fields is None:
            self._fields = len(row)
        elif len(row) != self._fields:
            raise ArchiveError(
                f"error reading archived csv line from {self.path}: record on "
                f"line {self._reader.line_num}: wrong number of fields"
            )
        return [_clean(value) for value in row]

    def __iter__(self) -> Iterator[list[str]]:
        while True:
            try:
                yield self.read()
            except EOFError:
                return

    def close(self) -> None:
        """Release the archive and the file opened inside it."""
        if self._closed:
            return
        self._closed = True
        self._text.close()
        self._archive.close()

    def to_lookup(self) -> dict[int, str]:
        """Map the integer in the first column to the text in the second one."""
        lookup: dict[int, str] = {}
        for row in self:
            try:
                key = to_int(row[0])
            except ValueError as error:
                raise ArchiveError(
                    f"error converting key {row[0]} to int in {self.path}: {error}"
                ) from error
            if key is None:
                raise ArchiveError(f"empty key in {self.path}")
            if len(row) < 2:
                raise ArchiveError(f"missing value for key {row[0]} in {self.path}")
            lookup[key] = row[1]
        return lookup

    def __enter__(self) -> ArchivedCSV:
        return self

    def __exit__(self, *args) -> None:
        self.close()