import hashlib
import os
import zipfile

import pytest

from minhareceita.check import (
    CheckError,
    check,
    check_checksum,
    check_zip_file,
    check_zip_files,
    checksum_for,
    create_checksum,
)

BAD_ZIP_FILE = "BAD_FILE.zip"


def _make_zip(path, name, content):
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(name, content)


@pytest.fixture
def zips(tmp_path):
    _make_zip(tmp_path / "Simples.zip", "SIMPLES.CSV", "1;S;20221217\n2;N;\n")
    _make_zip(tmp_path / "Motivos.zip", "MOTIVOS.CSV", "00;SEM MOTIVO\n")
    return tmp_path


def _add_bad_zip(directory):
    path = directory / BAD_ZIP_FILE
    path.write_bytes(b"")
    return str(path)


def test_check_zip_files_failure(zips):
    bad = _add_bad_zip(zips)
    got = check_zip_files(str(zips))
    assert list(got) == [bad]
    assert isinstance(got[bad], CheckError)


def test_check_zip_files_success(zips):
    assert check_zip_files(str(zips)) == {}


def test_check_zip_files_empty_directory(tmp_path):
    with pytest.raises(CheckError, match="no zip files found"):
        check_zip_files(str(tmp_path))


def test_check_zip_file_bad(tmp_path):
    bad = _add_bad_zip(tmp_path)
    with pytest.raises(CheckError) as info:
        check_zip_file(bad)
    assert str(info.value).startswith(f"error opening {bad}:")


def test_check_zip_file_corrupted_content(tmp_path):
    path = tmp_path / "Corrupted.zip"
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_STORED) as archive:
        archive.writestr("DATA.CSV", "abcdefghij" * 10)
    data = bytearray(path.read_bytes())
    offset = data.index(b"abcdefghij")
    data[offset] = ord("X")
    path.write_bytes(bytes(data))
    with pytest.raises(CheckError, match="error reading DATA.CSV"):
        check_zip_file(str(path))


def test_check_deletes_bad_files(zips):
    bad = _add_bad_zip(zips)
    assert check(str(zips), True) == [bad]
    assert not os.path.exists(bad)
    assert sorted(os.listdir(zips)) == ["Motivos.zip", "Simples.zip"]


def test_check_without_delete_raises(zips):
    bad = _add_bad_zip(zips)
    with pytest.raises(CheckError, match="error checking the zip files above"):
        check(str(zips), False)
    assert os.path.exists(bad)


def test_check_all_good(zips):
    assert check(str(zips), True) == []


def test_check_no_zip_files(tmp_path):
    with pytest.raises(CheckError, match="error checking zip files in"):
        check(str(tmp_path), False)


def test_checksum_for_known_values(tmp_path):
    empty = tmp_path / "empty"
    empty.write_bytes(b"")
    hello = tmp_path / "hello"
    hello.write_bytes(b"hello")
    assert checksum_for(str(empty)) == "d41d8cd98f00b204e9800998ecf8427e"
    assert checksum_for(str(hello)) == "5d41402abc4b2a76b9719d911017c592"


def test_checksum_for_missing_file(tmp_path):
    with pytest.raises(CheckError):
        checksum_for(str(tmp_path / "no-dir" / "Estabelecimentos0.zip"))


def test_checksum_for_different_files(zips):
    assert checksum_for(str(zips / "Simples.zip")) != checksum_for(str(zips / "Motivos.zip"))


def test_create_checksum(zips):
    (zips / ".hidden").write_bytes(b"ignored")
    created = create_checksum(str(zips))
    assert created == [
        str(zips / "Motivos.zip.md5"),
        str(zips / "Simples.zip.md5"),
    ]
    expected = hashlib.md5((zips / "Simples.zip").read_bytes()).hexdigest()
    assert (zips / "Simples.zip.md5").read_text() == expected
    assert not (zips / ".hidden.md5").exists()


def test_create_checksum_missing_directory(tmp_path):
    with pytest.raises(CheckError, match="error reading"):
        create_checksum(str(tmp_path / "no-dir"))


def _copy_with_checksums(src, dst):
    dst.mkdir()
    for name in ("Simples.zip", "Motivos.zip"):
        (dst / name).write_bytes((src / name).read_bytes())
    create_checksum(str(dst))
    return dst


def test_check_checksum_no_checksum_files(tmp_path):
    source = tmp_path / "a"
    target = tmp_path / "b"
    source.mkdir()
    target.mkdir()
    with pytest.raises(CheckError, match="no checksum files to compare with"):
        check_checksum(str(source), str(target))


def test_check_checksum_match(zips, tmp_path):
    source = _copy_with_checksums(zips, tmp_path / "source")
    target = _copy_with_checksums(zips, tmp_path / "target")
    assert check_checksum(str(source), str(target)) == [
        str(source / "Motivos.zip.md5"),
        str(source / "Simples.zip.md5"),
    ]


def test_check_checksum_mismatch(zips, tmp_path):
    source = _copy_with_checksums(zips, tmp_path / "source")
    target = _copy_with_checksums(zips, tmp_path / "target")
    (target / "Simples.zip.md5").write_text(hashlib.md5(b"different data").hexdigest())
    with pytest.raises(CheckError, match="got different checksum") as info:
        check_checksum(str(source), str(target))
    assert "Simples.zip.md5" in str(info.value)
    assert "Motivos.zip.md5" not in str(info.value)


def test_check_checksum_missing_target_file(zips, tmp_path):
    source = _copy_with_checksums(zips, tmp_path / "source")
    target = _copy_with_checksums(zips, tmp_path / "target")
    os.remove(target / "Motivos.zip.md5")
    with pytest.raises(CheckError, match="checksum"):
        check_checksum(str(source), str(target))