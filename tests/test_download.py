import datetime
import json
import os
import re

import pytest
import responses

from minhareceita.download import (
    CKAN_PKG_PATH,
    FEDERAL_REVENUE_UPDATED_AT,
    FEDERAL_REVENUE_URL,
    NATIONAL_TREASURE_BASE_URL,
    NATIONAL_TREASURE_PKG_ID,
    DownloadError,
    download_files,
    federal_revenue_get_urls,
    federal_revenue_get_urls_no_updated_at,
    get_urls,
    national_treasure_get_urls,
    save_updated_at,
    simple_download,
    urls,
)

LISTING_URL = "https://example.com/api/cnpj"
CKAN_BASE = "https://example.com"

FEDERAL_REVENUE = {
    "resources": [
        {
            "format": "zip+csv",
            "url": "https://example.com/CNPJ/Cnaes.zip",
            "metadata_modified": "24/11/2022 10:15:00",
        },
        {
            "format": "zip+csv",
            "url": "https://example.com/CNPJ/Empresas0.zip",
            "metadata_modified": "20/11/2022 08:00:00",
        },
        {
            "format": "pdf",
            "url": "https://example.com/CNPJ/layout.pdf",
            "metadata_modified": None,
        },
    ]
}

TREASURE_FILE = "https://example.com/ckan/download/TABMUN.CSV"
NATIONAL_TREASURE = {"success": True, "result": {"resources": [{"url": TREASURE_FILE}]}}


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


def _ranged(body: bytes):
    def callback(request):
        header = request.headers.get("Range")
        if not header:
            return (200, {}, body)
        match = re.fullmatch(r"bytes=(\d+)-(\d+)", header)
        start, end = int(match[1]), int(match[2])
        part = body[start : end + 1]
        content_range = f"bytes {start}-{start + len(part) - 1}/{len(body)}"
        return (206, {"Content-Range": content_range}, part)

    return callback


def _head(body: bytes):
    return lambda request: (200, {"Content-Length": str(len(body))}, b"")


def test_federal_revenue_get_urls(mocked, tmp_path):
    mocked.add(responses.GET, LISTING_URL, json=FEDERAL_REVENUE)
    got = federal_revenue_get_urls(LISTING_URL, str(tmp_path))
    assert got == [
        "https://example.com/CNPJ/Cnaes.zip",
        "https://example.com/CNPJ/Empresas0.zip",
    ]
    assert (tmp_path / FEDERAL_REVENUE_UPDATED_AT).read_text() == "2022-11-24"


def test_federal_revenue_get_urls_no_updated_at(mocked, tmp_path):
    mocked.add(responses.GET, LISTING_URL, json=FEDERAL_REVENUE)
    got = federal_revenue_get_urls_no_updated_at(LISTING_URL, str(tmp_path))
    assert len(got) == 2
    assert not (tmp_path / FEDERAL_REVENUE_UPDATED_AT).exists()


def test_federal_revenue_bad_status(mocked, tmp_path):
    mocked.add(responses.GET, LISTING_URL, status=500)
    with pytest.raises(DownloadError, match="responded with 500"):
        federal_revenue_get_urls(LISTING_URL, str(tmp_path))


def test_federal_revenue_bad_date(mocked, tmp_path):
    data = {"resources": [{"format": "zip+csv", "url": "x", "metadata_modified": "2022"}]}
    mocked.add(responses.GET, LISTING_URL, json=data)
    with pytest.raises(DownloadError, match="could not parse date/time 2022"):
        federal_revenue_get_urls(LISTING_URL, str(tmp_path))


def test_save_updated_at_without_dates(tmp_path):
    path = save_updated_at(str(tmp_path), datetime.datetime.min)
    with open(path) as handle:
        assert handle.read() == "0001-01-01"


def test_national_treasure_get_urls(mocked, tmp_path):
    mocked.add(
        responses.GET,
        f"{CKAN_BASE}{CKAN_PKG_PATH}{NATIONAL_TREASURE_PKG_ID}",
        json=NATIONAL_TREASURE,
    )
    assert national_treasure_get_urls(CKAN_BASE, str(tmp_path)) == [TREASURE_FILE]


def test_national_treasure_unsuccessful(mocked, tmp_path):
    mocked.add(
        responses.GET,
        f"{CKAN_BASE}{CKAN_PKG_PATH}{NATIONAL_TREASURE_PKG_ID}",
        json={"success": False},
    )
    with pytest.raises(DownloadError, match="error in ckan api response"):
        national_treasure_get_urls(CKAN_BASE, str(tmp_path))


def test_get_urls_skips_existing_files(mocked, tmp_path):
    mocked.add(responses.GET, LISTING_URL, json=FEDERAL_REVENUE)
    (tmp_path / "Cnaes.zip").write_bytes(b"")
    got = get_urls(LISTING_URL, federal_revenue_get_urls, str(tmp_path), True)
    assert got == ["https://example.com/CNPJ/Empresas0.zip"]


def test_get_urls_without_skip_keeps_everything(mocked, tmp_path):
    mocked.add(responses.GET, LISTING_URL, json=FEDERAL_REVENUE)
    (tmp_path / "Cnaes.zip").write_bytes(b"")
    got = get_urls(LISTING_URL, federal_revenue_get_urls, str(tmp_path), False)
    assert len(got) == 2


def test_get_urls_wraps_errors(mocked, tmp_path):
    mocked.add(responses.GET, LISTING_URL, status=404)
    with pytest.raises(DownloadError, match="error getting urls"):
        get_urls(LISTING_URL, federal_revenue_get_urls, str(tmp_path), True)


def test_simple_download(mocked, tmp_path):
    mocked.add(responses.GET, TREASURE_FILE, body=b"1;2;3;4;5\n")
    path = simple_download(TREASURE_FILE, str(tmp_path))
    assert path == os.path.join(str(tmp_path), "TABMUN.CSV")
    assert (tmp_path / "TABMUN.CSV").read_bytes() == b"1;2;3;4;5\n"


def test_download_files_in_chunks(mocked, tmp_path):
    body = json.dumps(FEDERAL_REVENUE).encode()
    pattern = re.compile(r"https://example\.com/files/.*")
    mocked.add_callback(responses.HEAD, pattern, callback=_head(body))
    mocked.add_callback(responses.GET, pattern, callback=_ranged(body))
    targets = ["https://example.com/files/file1.html", "https://example.com/files/file2.html"]
    paths = download_files(str(tmp_path), targets, 4, 3, 7, 10, True)
    assert paths == [str(tmp_path / "file1.html"), str(tmp_path / "file2.html")]
    for path in paths:
        with open(path, "rb") as handle:
            assert handle.read() == body
    assert not (tmp_path / ".progress").exists()


def test_download_files_retries(mocked, tmp_path):
    body = b"0123456789abcdef"
    calls = {"count": 0}
    ranged = _ranged(body)

    def flaky(request):
        calls["count"] += 1
        if calls["count"] == 1:
            return (500, {}, b"")
        return ranged(request)

    url = "https://example.com/files/flaky.bin"
    mocked.add_callback(responses.HEAD, url, callback=_head(body))
    mocked.add_callback(responses.GET, url, callback=flaky)
    paths = download_files(str(tmp_path), [url], 1, 3, 100, 10, True)
    with open(paths[0], "rb") as handle:
        assert handle.read() == body
    assert calls["count"] == 2


def test_download_files_gives_up(mocked, tmp_path):
    body = b"0123456789"
    url = "https://example.com/files/broken.bin"
    mocked.add_callback(responses.HEAD, url, callback=_head(body))
    mocked.add(responses.GET, url, status=500)
    with pytest.raises(DownloadError, match="failed after 1 attempt"):
        download_files(str(tmp_path), [url], 1, 0, 100, 10, True)


def test_download_files_rejects_bad_parallel(tmp_path):
    with pytest.raises(ValueError):
        download_files(str(tmp_path), ["https://example.com/a"], 0, 1, 10, 10, True)


def test_urls_are_sorted(mocked, tmp_path, capsys):
    mocked.add(responses.GET, FEDERAL_REVENUE_URL, json=FEDERAL_REVENUE)
    mocked.add(
        responses.GET,
        f"{NATIONAL_TREASURE_BASE_URL}{CKAN_PKG_PATH}{NATIONAL_TREASURE_PKG_ID}",
        json=NATIONAL_TREASURE,
    )
    got = urls(str(tmp_path), False)
    expected = sorted(
        [
            "https://example.com/CNPJ/Cnaes.zip",
            "https://example.com/CNPJ/Empresas0.zip",
            TREASURE_FILE,
        ]
    )
    assert got == expected
    assert capsys.readouterr().out == "\n".join(expected) + "\n"
    assert not (tmp_path / FEDERAL_REVENUE_UPDATED_AT).exists()