"""Discovery and download of the files published by the Federal Revenue and the National Treasure."""

from __future__ import annotations

import datetime
import logging
import os
import posixpath
import re
import threading
import time
from collections.abc import Callable
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from urllib.parse import urlsplit

import requests
from tqdm import tqdm

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1_048_576
DEFAULT_MAX_RETRIES = 32
DEFAULT_MAX_PARALLEL = 16
DEFAULT_TIMEOUT = datetime.timedelta(minutes=3)

FEDERAL_REVENUE_UPDATED_AT = "updated_at.txt"
FEDERAL_REVENUE_URL = (
    "https://dados.gov.br/api/publico/conjuntos-dados/"
    "cadastro-nacional-da-pessoa-juridica-cnpj"
)
FEDERAL_REVENUE_FORMAT = "zip+csv"
_FEDERAL_REVENUE_DATE_FORMAT = "%d/%m/%Y %H:%M:%S"

CKAN_PKG_PATH = "/ckan/api/3/action/package_show?id="
NATIONAL_TREASURE_BASE_URL = "https://www.tesourotransparente.gov.br"
NATIONAL_TREASURE_PKG_ID = "abb968cb-3710-4f85-89cf-875c91b9c7f6"

_PROGRESS_DIRECTORY = ".progress"
_CONTENT_RANGE = re.compile(r"/([0-9]+)\s*$")
_ZERO_TIME = datetime.datetime.min

URLsHandler = Callable[[str, str], list]


class DownloadError(RuntimeError):
    """Raised when the files or their listings cannot be fetched."""


def _seconds(timeout) -> float:
    if isinstance(timeout, datetime.timedelta):
        return timeout.total_seconds()
    return float(timeout)


def _basename(url: str) -> str:
    name = posixpath.basename(url.rstrip("/"))
    return name or "/"


def _field(data, name: str, default=None):
    """Read a JSON object field, matching its name case-insensitively."""
    if not isinstance(data, dict):
        return default
    if name in data:
        return data[name]
    lowered = name.lower()
    for key, value in data.items():
        if isinstance(key, str) and key.lower() == lowered:
            return value
    return default


def get_urls(url, handler, directory, skip) -> list[str]:
    """URLs listed by ``handler``, without those already in ``directory`` if ``skip``."""
    try:
        found = handler(url, directory)
    except DownloadError as error:
        raise DownloadError(f"error getting urls: {error}") from error
    if not skip:
        return list(found)
    return [
        item
        for item in found
        if not os.path.exists(os.path.join(directory, _basename(item)))
    ]


def _get_json(url: str):
    try:
        response = requests.get(url, timeout=_seconds(DEFAULT_TIMEOUT))
    except requests.RequestException as error:
        raise DownloadError(f"error getting {url}: {error}") from error
    if response.status_code != 200:
        raise DownloadError(
            f"{url} responded with {response.status_code} {response.reason}"
        )
    try:
        return response.json(), response.text
    except ValueError as error:
        raise DownloadError(f"could not unmarshal {url} json response: {error}") from error


def _parse_modified(value) -> datetime.datetime:
    if value is None or value == "null":
        return _ZERO_TIME
    text = str(value)
    try:
        return datetime.datetime.strptime(text, _FEDERAL_REVENUE_DATE_FORMAT)
    except ValueError as error:
        raise DownloadError(
            f"could not parse date/time {text} as {_FEDERAL_REVENUE_DATE_FORMAT}: {error}"
        ) from error


def _federal_revenue_urls(url: str, directory, updated_at: bool) -> list[str]:
    data, _ = _get_json(url)
    found: list[str] = []
    latest = _ZERO_TIME
    for resource in _field(data, "resources") or []:
        if _field(resource, "format") == FEDERAL_REVENUE_FORMAT:
            found.append(_field(resource, "url", ""))
        modified = _parse_modified(_field(resource, "metadata_modified"))
        if latest < modified:
            latest = modified
    if updated_at:
        try:
            save_updated_at(directory, latest)
        except OSError as error:
            raise DownloadError(f"could not save the update at date: {error}") from error
    return found


def federal_revenue_get_urls(url, directory) -> list[str]:
    """ZIP file URLs from the Federal Revenue, saving the extraction date."""
    return _federal_revenue_urls(url, directory, True)


def federal_revenue_get_urls_no_updated_at(url, directory) -> list[str]:
    """ZIP file URLs from the Federal Revenue, without saving any date."""
    return _federal_revenue_urls(url, directory, False)


def save_updated_at(directory, when) -> str:
    """Write the extraction date as ``YYYY-MM-DD`` and return the file path."""
    path = os.path.join(directory, FEDERAL_REVENUE_UPDATED_AT)
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(f"{when.year:04d}-{when.month:02d}-{when.day:02d}")
    return path


def _ckan_get_urls(base_url: str, package_id: str) -> list[str]:
    url = f"{base_url}{CKAN_PKG_PATH}{package_id}"
    data, text = _get_json(url)
    if not _field(data, "success", False):
        raise DownloadError(f"error in ckan api response:\n{text}")
    result = _field(data, "result") or {}
    return [_field(resource, "url", "") for resource in _field(result, "resources") or []]


def national_treasure_get_urls(base_url, directory) -> list[str]:
    """URLs of the city codes table published by the National Treasure."""
    return _ckan_get_urls(base_url, NATIONAL_TREASURE_PKG_ID)


def simple_download(url, directory) -> str:
    """Download a whole file with a single request and return its path."""
    path = os.path.join(directory, _basename(url))
    try:
        handle = open(path, "wb")
    except OSError as error:
        raise DownloadError(f"could not create {path}: {error}") from error
    with handle:
        try:
            response = requests.get(url, stream=True, timeout=_seconds(DEFAULT_TIMEOUT))
        except requests.RequestException as error:
            raise DownloadError(f"error requesting {url}: {error}") from error
        with response:
            try:
                for block in response.iter_content(chunk_size=64 * 1024):
                    handle.write(block)
            except (OSError, requests.RequestException) as error:
                raise DownloadError(f"error writing to {path}: {error}") from error
    return path


def _with_retries(action, retries: int, description: str, stop: threading.Event):
    attempt = 0
    while True:
        if stop.is_set():
            raise DownloadError(f"{description}: cancelled")
        try:
            return action()
        except (requests.RequestException, DownloadError) as error:
            attempt += 1
            if 0 <= retries < attempt:
                raise DownloadError(
                    f"{description} failed after {attempt} attempt(s): {error}"
                ) from error
            time.sleep(min(0.05 * 2**attempt, 5.0))


def _content_length(url: str, timeout: float) -> int:
    response = requests.head(url, timeout=timeout, allow_redirects=True)
    response.raise_for_status()
    try:
        length = int(response.headers.get("Content-Length", "0") or 0)
    except ValueError:
        length = 0
    if length > 0:
        return length
    response = requests.get(url, headers={"Range": "bytes=0-0"}, timeout=timeout)
    response.raise_for_status()
    if response.status_code == 206:
        match = _CONTENT_RANGE.search(response.headers.get("Content-Range", ""))
        if match is None:
            raise DownloadError(f"could not get the size of {url}")
        return int(match.group(1))
    return len(response.content)


def _fetch_chunk(url: str, start: int, end: int, timeout: float) -> bytes:
    response = requests.get(url, headers={"Range": f"bytes={start}-{end}"}, timeout=timeout)
    response.raise_for_status()
    data = response.content
    expected = end - start + 1
    if response.status_code == 200 and len(data) > expected:
        data = data[start : end + 1]
    if len(data) != expected:
        raise DownloadError(f"expected {expected} bytes from {url}, got {len(data)}")
    return data


class _FileDownload:
    """State of one file being downloaded in chunks."""

    def __init__(self, directory: str, url: str, size: int, chunk_size: int, restart: bool):
        self.url = url
        self.size = size
        self.path = os.path.join(directory, _basename(url))
        self.progress_path = os.path.join(
            directory, _PROGRESS_DIRECTORY, _basename(url) + ".chunks"
        )
        self.lock = threading.Lock()
        self.chunks = [
            (index, start, min(start + chunk_size, size) - 1)
            for index, start in enumerate(range(0, size, chunk_size))
        ]
        self.done = set() if restart else self._resumed()
        if restart and os.path.exists(self.progress_path):
            os.remove(self.progress_path)
        if not self.done:
            with open(self.path, "wb") as handle:
                handle.truncate(size)
        os.makedirs(os.path.dirname(self.progress_path), exist_ok=True)

    def _resumed(self) -> set[int]:
        if not os.path.exists(self.progress_path) or not os.path.exists(self.path):
            return set()
        if os.path.getsize(self.path) != self.size:
            return set()
        with open(self.progress_path, encoding="utf-8") as handle:
            return {int(line) for line in handle if line.strip().isdigit()}

    @property
    def pending(self):
        return [chunk for chunk in self.chunks if chunk[0] not in self.done]

    @property
    def finished(self) -> bool:
        return len(self.done) == len(self.chunks)

    def write(self, index: int, start: int, data: bytes) -> bool:
        with self.lock:
            with open(self.path, "r+b") as handle:
                handle.seek(start)
                handle.write(data)
            with open(self.progress_path, "a", encoding="utf-8") as handle:
                handle.write(f"{index}\n")
            self.done.add(index)
            return self.finished

    def clean_up(self) -> None:
        if os.path.exists(self.progress_path):
            os.remove(self.progress_path)
        try:
            os.rmdir(os.path.dirname(self.progress_path))
        except OSError:
            pass


def download_files(
    directory,
    urls,
    parallel=DEFAULT_MAX_PARALLEL,
    retries=DEFAULT_MAX_RETRIES,
    chunk_size=DEFAULT_CHUNK_SIZE,
    timeout=DEFAULT_TIMEOUT,
    restart=False,
) -> list[str]:
    """Download files using parallel requests by bytes range; return their paths."""
    if parallel < 1:
        raise ValueError("parallel downloads must be at least 1")
    if chunk_size < 1:
        raise ValueError("chunk size must be at least 1")
    urls = list(urls)
    if not urls:
        return []
    seconds = _seconds(timeout)
    directory = os.fspath(directory)
    stop = threading.Event()
    hosts = {urlsplit(url).netloc for url in urls}
    limits = {host: threading.Semaphore(parallel) for host in hosts}

    def size_of(url: str) -> int:
        with limits[urlsplit(url).netloc]:
            return _with_retries(
                lambda: _content_length(url, seconds), retries, f"getting size of {url}", stop
            )

    with ThreadPoolExecutor(max_workers=parallel * len(hosts)) as pool:
        sizes = list(pool.map(size_of, urls))

    files = [
        _FileDownload(directory, url, size, chunk_size, restart)
        for url, size in zip(urls, sizes)
    ]
    total = sum(item.size for item in files)
    already = sum(
        end - start + 1 for item in files for index, start, end in item.chunks if index in item.done
    )
    bar_lock = threading.Lock()
    files_done = sum(1 for item in files if item.finished)

    with tqdm(total=total, initial=already, unit="B", unit_scale=True) as bar:
        bar.set_description(f"Downloading ({files_done} of {len(files)} files done)")

        def fetch(item: _FileDownload, index: int, start: int, end: int) -> None:
            nonlocal files_done
            with limits[urlsplit(item.url).netloc]:
                data = _with_retries(
                    lambda: _fetch_chunk(item.url, start, end, seconds),
                    retries,
                    f"downloading {item.url} bytes {start}-{end}",
                    stop,
                )
            finished = item.write(index, start, data)
            with bar_lock:
                bar.update(len(data))
                if finished:
                    files_done += 1
                    bar.set_description(
                        f"Downloading ({files_done} of {len(files)} files done)"
                    )

        with ThreadPoolExecutor(max_workers=parallel * len(hosts)) as pool:
            futures = [
                pool.submit(fetch, item, index, start, end)
                for item in files
                for index, start, end in item.pending
            ]
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            for future in done:
                error = future.exception()
                if error is not None:
                    stop.set()
                    for other in futures:
                        other.cancel()
                    raise error

    for item in files:
        item.clean_up()
    return [item.path for item in files]


def _download_national_treasure(directory, skip: bool) -> None:
    try:
        found = get_urls(NATIONAL_TREASURE_BASE_URL, national_treasure_get_urls, directory, skip)
    except DownloadError as error:
        raise DownloadError(
            f"error gathering resources for national treasure download: {error}"
        ) from error
    for url in found:
        simple_download(url, directory)


def download(
    directory,
    timeout=DEFAULT_TIMEOUT,
    skip=False,
    restart=False,
    parallel=DEFAULT_MAX_PARALLEL,
    retries=DEFAULT_MAX_RETRIES,
    chunk_size=DEFAULT_CHUNK_SIZE,
) -> None:
    """Download every file needed (this might take days)."""
    logger.info("Downloading file(s) from the National Treasure…")
    try:
        _download_national_treasure(directory, skip)
    except DownloadError as error:
        raise DownloadError(
            f"error downloading files from the national treasure: {error}"
        ) from error
    logger.info("Downloading files from the Federal Revenue…")
    try:
        found = get_urls(FEDERAL_REVENUE_URL, federal_revenue_get_urls, directory, skip)
    except DownloadError as error:
        raise DownloadError(f"error gathering resources for download: {error}") from error
    if not found:
        return
    try:
        download_files(directory, found, parallel, retries, chunk_size, timeout, restart)
    except DownloadError as error:
        raise DownloadError(
            f"error downloading files from the federal revenue: {error}"
        ) from error


def urls(directory, skip=False) -> list[str]:
    """Print, sorted, and return the URLs to be downloaded."""
    sources = (
        (FEDERAL_REVENUE_URL, federal_revenue_get_urls_no_updated_at),
        (NATIONAL_TREASURE_BASE_URL, national_treasure_get_urls),
    )
    found: list[str] = []
    for url, handler in sources:
        try:
            found.extend(get_urls(url, handler, directory, skip))
        except DownloadError as error:
            raise DownloadError(f"error gathering resources for download: {error}") from error
    found.sort()
    print("\n".join(found))
    return found