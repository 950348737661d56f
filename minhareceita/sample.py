"""Sample versions of the downloaded files, limited to a few lines each."""

from __future__ import annotations

import datetime
import glob
import itertools
import logging
import os
import re
import shutil
import zipfile
from concurrent.futures import ThreadPoolExecutor

from tqdm import tqdm

from minhareceita.download import FEDERAL_REVENUE_UPDATED_AT

logger = logging.getLogger(__name__)

MAX_LINES = 10000
"""Default maximum number of lines in each sample file."""

TARGET_DIR = "sample"
"""Default directory name for the sample files."""

NATIONAL_TREASURE_FILE_NAME = "TABMUN.CSV"

_DATE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


class SampleError(Exception):
    """Raised when sample files cannot be created."""


def sample_lines(reader, writer, max_lines) -> int:
    """Copy the first ``max_lines`` lines of a binary reader; return lines written."""
    count = 0
    try:
        for line in itertools.islice(reader, max(max_lines, 0)):
            line = line.removesuffix(b"\n").removesuffix(b"\r")
            writer.write(line + b"\n")
            count += 1
    except OSError as error:
        raise SampleError(f"error writing sample: {error}") from error
    return count


def _sample_csv(src: str, out_dir: str, max_lines: int) -> str:
    out = os.path.join(out_dir, os.path.basename(src))
    try:
        source = open(src, "rb")
    except OSError as error:
        raise SampleError(f"error opening {src}: {error}") from error
    with source:
        try:
            target = open(out, "wb")
        except OSError as error:
            raise SampleError(f"error creating {out}: {error}") from error
        with target:
            try:
                sample_lines(source, target, max_lines)
            except SampleError as error:
                raise SampleError(
                    f"error creating sample {out} from {src}: {error}"
                ) from error
    return out


def _sample_zip(src: str, out_dir: str, max_lines: int) -> str | None:
    name = os.path.basename(src)
    stem = os.path.splitext(name)[0]
    out = os.path.join(out_dir, name)
    try:
        archive = zipfile.ZipFile(src)
    except (OSError, zipfile.BadZipFile) as error:
        raise SampleError(f"error opening {src}: {error}") from error
    with archive:
        member = next((item for item in archive.infolist() if not item.is_dir()), None)
        if member is None:
            return None
        try:
            with archive.open(member) as source, zipfile.ZipFile(
                out, "w", zipfile.ZIP_DEFLATED
            ) as target, target.open(stem, "w") as destination:
                sample_lines(source, destination, max_lines)
        except (OSError, zipfile.BadZipFile, SampleError) as error:
            raise SampleError(
                f"error creating sample {out} from {member.filename} in {src}: {error}"
            ) from error
    return out


def _valid_date(value: str) -> bool:
    if not _DATE.fullmatch(value):
        return False
    try:
        datetime.datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def _updated_at(src: str, out_dir: str, updated_at: str) -> str | None:
    out = os.path.join(out_dir, os.path.basename(src))
    if not os.path.exists(src):
        if not updated_at:
            logger.info("%s not found", src)
            return None
        if not _valid_date(updated_at):
            logger.info(
                "updated_at.txt will not be created, date %s is not YYYY-MM-DD",
                updated_at,
            )
            return None
        try:
            with open(out, "w", encoding="utf-8") as handle:
                handle.write(updated_at)
        except OSError as error:
            raise SampleError(f"error writing {out}: {error}") from error
        return out
    try:
        shutil.copyfile(src, out)
    except OSError as error:
        raise SampleError(f"error copying {src} to {out}: {error}") from error
    return out


def make_sample(src, out_dir, max_lines=MAX_LINES, updated_at="") -> str | None:
    """Create the sample of one file; return its path, or None if none was made."""
    src, out_dir = os.fspath(src), os.fspath(out_dir)
    if os.path.basename(src) == FEDERAL_REVENUE_UPDATED_AT:
        return _updated_at(src, out_dir, updated_at)
    extension = os.path.splitext(src)[1].lower()
    if extension == ".zip":
        return _sample_zip(src, out_dir, max_lines)
    if extension == ".csv":
        return _sample_csv(src, out_dir, max_lines)
    raise SampleError(f"no make sample handler for {extension}")


def sample(src, target, max_lines=MAX_LINES, updated_at="") -> list[str]:
    """Copy the first ``max_lines`` lines of each source file into ``target``.

    Returns the paths of the sample files created.
    """
    src, target = os.fspath(src), os.fspath(target)
    if os.path.abspath(src) == os.path.abspath(target):
        raise SampleError("data directory and target directory cannot be the same")
    try:
        os.makedirs(target, exist_ok=True)
    except OSError as error:
        raise SampleError(f"error creating directory {target}: {error}") from error
    paths = sorted(glob.glob(os.path.join(glob.escape(src), "*.zip")))
    if not paths:
        raise SampleError(f"source directory {src} has no zip files")
    paths += [
        os.path.join(src, NATIONAL_TREASURE_FILE_NAME),
        os.path.join(src, FEDERAL_REVENUE_UPDATED_AT),
    ]
    created = []
    with tqdm(total=len(paths), desc="Creating sample files") as bar, ThreadPoolExecutor(
        max_workers=min(len(paths), 32)
    ) as pool:
        futures = [
            pool.submit(make_sample, path, target, max_lines, updated_at)
            for path in paths
        ]
        for future in futures:
            try:
                out = future.result()
            except SampleError as error:
                for other in futures:
                    other.cancel()
                raise SampleError(f"error creating samples: {error}") from error
            bar.update(1)
            if out is not None:
                created.append(out)
    return created