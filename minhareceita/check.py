"""Integrity checks and MD5 checksums of the downloaded files."""

from __future__ import annotations

import glob
import hashlib
import logging
import os
import zipfile
import zlib
from concurrent.futures import ThreadPoolExecutor

from tqdm import tqdm

logger = logging.getLogger(__name__)

_CHUNK = 64 * 1024


class CheckError(Exception):
    """Raised when a downloaded file fails a check."""


def check_zip_file(path) -> None:
    """Read every file in a ZIP archive, raising :class:`CheckError` on failure."""
    path = os.fspath(path)
    try:
        archive = zipfile.ZipFile(path)
    except (OSError, zipfile.BadZipFile) as error:
        raise CheckError(f"error opening {path}: {error}") from error
    with archive:
        for member in archive.infolist():
            if member.is_dir():
                continue
            try:
                with archive.open(member) as handle:
                    while handle.read(_CHUNK):
                        pass
            except (
                OSError,
                EOFError,
                RuntimeError,
                NotImplementedError,
                zipfile.BadZipFile,
                zlib.error,
            ) as error:
                raise CheckError(
                    f"error reading {member.filename} in {path}: {error}"
                ) from error


def _checked(path: str) -> CheckError | None:
    try:
        check_zip_file(path)
    except CheckError as error:
        logger.error("%s\tFAILED with\t%s", path, error)
        return error
    return None


def check_zip_files(directory) -> dict[str, CheckError]:
    """Map each broken ZIP file in ``directory`` to its error."""
    paths = sorted(glob.glob(os.path.join(glob.escape(os.fspath(directory)), "*.zip")))
    if not paths:
        raise CheckError("no zip files found")
    logger.info("Checking %d files…", len(paths))
    with ThreadPoolExecutor(max_workers=min(len(paths), 32)) as pool:
        results = list(pool.map(_checked, paths))
    return {path: error for path, error in zip(paths, results) if error is not None}


def check(directory, delete=False) -> list[str]:
    """Check the ZIP files; delete the broken ones if asked, else raise.

    Returns the paths that were deleted.
    """
    try:
        failures = check_zip_files(directory)
    except CheckError as error:
        raise CheckError(f"error checking zip files in {directory}: {error}") from error
    if not failures:
        return []
    if not delete:
        raise CheckError("error checking the zip files above")
    removed = []
    for path in sorted(failures):
        logger.info("Deleting %s", path)
        try:
            os.remove(path)
        except OSError:
            continue
        removed.append(path)
    return removed


def checksum_for(path) -> str:
    """The hexadecimal MD5 checksum of a file."""
    path = os.fspath(path)
    digest = hashlib.md5()
    try:
        with open(path, "rb") as handle:
            for block in iter(lambda: handle.read(_CHUNK), b""):
                digest.update(block)
    except OSError as error:
        raise CheckError(f"error opening {path}: {error}") from error
    return digest.hexdigest()


def _same_checksum(src: str, target: str) -> bool:
    try:
        source_sum = checksum_for(src)
    except CheckError as error:
        raise CheckError(f"error getting {src} checksum: {error}") from error
    path = os.path.join(target, os.path.basename(src))
    try:
        target_sum = checksum_for(path)
    except CheckError as error:
        raise CheckError(f"error getting {path} checksum: {error}") from error
    return source_sum == target_sum


def check_checksum(src, target) -> list[str]:
    """Compare the ``.md5`` files in ``src`` with those in ``target``.

    Returns the checksum files compared.
    """
    src, target = os.fspath(src), os.fspath(target)
    paths = sorted(glob.glob(os.path.join(glob.escape(src), "*.md5")))
    if not paths:
        raise CheckError(
            f"target directory {target} has no checksum files to compare with"
        )
    different = []
    with tqdm(total=len(paths), desc="Checking files checksum") as bar, ThreadPoolExecutor(
        max_workers=min(len(paths), 32)
    ) as pool:
        for path, equal in zip(paths, pool.map(lambda p: _same_checksum(p, target), paths)):
            bar.update(1)
            if not equal:
                different.append(path)
    if different:
        raise CheckError(f"got different checksum for file(s): [{' '.join(different)}]")
    logger.info("OK!")
    return paths


def _write_checksum(path: str) -> str:
    try:
        checksum = checksum_for(path)
    except CheckError as error:
        raise CheckError(f"error getting checksum for {path}: {error}") from error
    target = f"{path}.md5"
    try:
        with open(target, "w", encoding="ascii") as handle:
            handle.write(checksum)
    except OSError as error:
        raise CheckError(f"error writing {target} checksum file: {error}") from error
    return target


def create_checksum(src) -> list[str]:
    """Write a ``.md5`` file next to each visible file in ``src``; return their paths."""
    src = os.fspath(src)
    try:
        with os.scandir(src) as entries:
            names = sorted(
                entry.name
                for entry in entries
                if not entry.is_dir() and not entry.name.startswith(".")
            )
    except OSError as error:
        raise CheckError(f"error reading {src} directory: {error}") from error
    paths = [os.path.join(src, name) for name in names]
    created = []
    with tqdm(total=len(paths), desc="Creating checksum files") as bar:
        if paths:
            with ThreadPoolExecutor(max_workers=min(len(paths), 32)) as pool:
                for target in pool.map(_write_checksum, paths):
                    created.append(target)
                    bar.update(1)
    return created