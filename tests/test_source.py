import os
import zipfile

import pytest

from minhareceita.source import Source, SourceType, load_sources, paths_for_source


def write_zip(path, lines):
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr(path.stem.upper() + "CSV", "".join(f"{l}\n" for l in lines))


@pytest.fixture
def data_dir(tmp_path):
    write_zip(tmp_path / "Estabelecimentos0.zip", ['"33683111";"0002";"80"'])
    write_zip(tmp_path / "Motivos.zip", ['"00";"SEM MOTIVO"'])
    write_zip(tmp_path / "Empresas0.zip", ['"33683111";"EMPRESA A"'])
    write_zip(tmp_path / "Empresas1.zip", ['"19131243";"EMPRESA B"'])
    write_zip(
        tmp_path / "Simples.zip",
        ['"33683111";"S"', '"19131243";"N"', '"12345678";"S"'],
    )
    (tmp_path / "Empresas0.zip.md5").write_text("d41d8cd98f00b204e9800998ecf8427e")
    (tmp_path / "Empresas_extra").mkdir()
    return tmp_path


def test_paths_for_source(data_dir):
    directory = str(data_dir)
    assert paths_for_source(SourceType.VENUES, directory) == [
        os.path.join(directory, "Estabelecimentos0.zip")
    ]
    assert paths_for_source(SourceType.MOTIVES, directory) == [
        os.path.join(directory, "Motivos.zip")
    ]
    assert paths_for_source(SourceType.BASE, directory) == [
        os.path.join(directory, "Empresas0.zip"),
        os.path.join(directory, "Empresas1.zip"),
    ]


def test_paths_for_source_accepts_plain_names(data_dir):
    directory = str(data_dir)
    assert paths_for_source("Simples", directory) == [
        os.path.join(directory, "Simples.zip")
    ]


def test_paths_for_source_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        paths_for_source(SourceType.BASE, str(tmp_path / "missing"))


def test_source(data_dir):
    with Source(SourceType.BASE, str(data_dir)) as source:
        assert len(source.files) == 2
        assert len(source.readers) == 2
        assert source.total_lines == 2


def test_source_counts_every_line(data_dir):
    with Source(SourceType.TAXES, str(data_dir)) as source:
        assert source.total_lines == 3


def test_reset_readers(data_dir):
    with Source(SourceType.TAXES, str(data_dir)) as source:
        first = source.readers[0].read()
        source.readers[0].read()
        source.reset_readers()
        assert source.readers[0].read() == first == ["33683111", "S"]


def test_load_sources(data_dir):
    sources = load_sources(
        str(data_dir), [SourceType.BASE, SourceType.TAXES, SourceType.VENUES]
    )
    try:
        assert [s.kind for s in sources] == [
            SourceType.BASE,
            SourceType.TAXES,
            SourceType.VENUES,
        ]
        assert [s.total_lines for s in sources] == [2, 3, 1]
    finally:
        for source in sources:
            source.close()


def test_load_sources_propagates_errors(data_dir):
    (data_dir / "Socios0.zip").write_bytes(b"not a zip")
    with pytest.raises(ValueError):
        load_sources(str(data_dir), [SourceType.BASE, SourceType.PARTNERS])