import base64
import os

import pytest

from pgembed.decompression import decompress_tar_xz
from pgembed.errors import ExtractionError

XZ_ARCHIVE = (
    "/Td6WFoAAATm1rRGAgAhARYAAAB0L+Wj4Av/AKZdADIaSqdFdWDG5Dyin7tszujmfm9YJn6/1REVUfqW8HwXvgwbrrcDDc4Q2ql+"
    "L+ybLTxJ+QNhhaKnawviRjKhUOT3syXi2Ye8k4QMkeurnnCu4a8eoCV+hqNFWkk8/w8MzyMzQZ2D3wtvoaZV/KqJ8jyLbNVj+vsK"
    "rzqg5vbSGz5/h7F37nqN1V8ZsdCnKnDMZPzovM8RwtelDd0g3fPC0dG/W9PH4wAAAAC2dqs1k9ZA0QABwgGAGAAAIQZ5XbHEZ/sC"
    "AAAAAARZWg=="
)


@pytest.fixture
def archive(tmp_path):
    path = tmp_path / "remote_fetch_test.txz"
    path.write_bytes(base64.b64decode(XZ_ARCHIVE))
    return str(path)


def test_decompress_tar_xz(archive, tmp_path):
    destination = tmp_path / "extracted"
    decompress_tar_xz(archive, str(destination))
    extracted = destination / "dir1" / "dir2" / "some_content"
    assert extracted.read_text() == "b33r is g00d"


def test_temporary_directory_removed(archive, tmp_path):
    destination = tmp_path / "extracted"
    decompress_tar_xz(archive, str(destination))
    assert sorted(os.listdir(tmp_path)) == ["extracted", "remote_fetch_test.txz"]
    assert (destination / "dir1" / "dir2" / "some_content").read_text() == "b33r is g00d"


def test_error_when_file_not_exists():
    with pytest.raises(ExtractionError) as info:
        decompress_tar_xz("/does-not-exist", "/also-fake")
    assert (
        "unable to extract postgres archive /does-not-exist to /also-fake, if running parallel tests, "
        "configure RuntimePath to isolate testing directories" in str(info.value)
    )


def test_error_when_archive_corrupted(archive, tmp_path):
    with open(archive, "r+b") as handle:
        handle.seek(35)
        handle.write(b"someJunk")
    with pytest.raises(ExtractionError) as info:
        decompress_tar_xz(archive, str(tmp_path / "extracted"))
    assert str(info.value).startswith("unable to extract postgres archive: ")


def test_error_with_invalid_destination(archive, tmp_path):
    destination = os.path.join(str(tmp_path), "\x00")
    with pytest.raises(ExtractionError) as info:
        decompress_tar_xz(archive, destination)
    assert str(info.value).startswith("unable to extract postgres archive: ")