import io
import tarfile
import zipfile
from pathlib import Path

import pytest

from ybuild.buildpacks.archive import archive_root, detect_format, extract_archive
from ybuild.common.config.constants import ArchiveFormat
from ybuild.common.exceptions.provision_exceptions import ExtractionError
from tests.fakes import make_zip


def test_detect_format_by_suffix(tmp_path: Path):
    assert detect_format(tmp_path / "a.tar.gz") == ArchiveFormat.TAR_GZ
    assert detect_format(tmp_path / "a.tar.xz") == ArchiveFormat.TAR_XZ
    assert detect_format(tmp_path / "a.zip") == ArchiveFormat.ZIP


def test_zip_extraction_and_root(tmp_path: Path):
    archive = make_zip(tmp_path / "tool.zip", {"tool-1.0/bin/tool": "x", "tool-1.0/README": "y"})

    extracted = extract_archive(archive, tmp_path / "out")

    assert archive_root(extracted) == extracted / "tool-1.0"
    assert (extracted / "tool-1.0" / "bin" / "tool").read_text() == "x"


def test_archive_root_without_single_directory(tmp_path: Path):
    (tmp_path / "a").mkdir()
    (tmp_path / "b.txt").write_text("b")
    assert archive_root(tmp_path) == tmp_path


def test_zip_path_traversal_rejected(tmp_path: Path):
    archive = make_zip(tmp_path / "evil.zip", {"../escape.txt": "nope"})

    with pytest.raises(ExtractionError):
        extract_archive(archive, tmp_path / "out")
    assert not (tmp_path / "escape.txt").exists()


def test_tar_path_traversal_rejected(tmp_path: Path):
    archive = tmp_path / "evil.tar.gz"
    with tarfile.open(archive, "w:gz") as tar:
        data = b"nope"
        info = tarfile.TarInfo("../escape.txt")
        info.size = len(data)
        tar.addfile(info, io.BytesIO(data))

    with pytest.raises(ExtractionError):
        extract_archive(archive, tmp_path / "out")
    assert not (tmp_path / "escape.txt").exists()


def test_corrupt_archive_raises_extraction_error(tmp_path: Path):
    archive = tmp_path / "broken.zip"
    archive.write_bytes(b"this is not a zip file")

    with pytest.raises(ExtractionError):
        extract_archive(archive, tmp_path / "out")


def test_unknown_format(tmp_path: Path):
    blob = tmp_path / "blob.bin"
    blob.write_bytes(b"\x00\x01")

    with pytest.raises(ExtractionError):
        extract_archive(blob, tmp_path / "out")


def test_tar_absolute_symlink_rejected(tmp_path: Path):
    archive_path = tmp_path / "links.tar.gz"
    with tarfile.open(archive_path, "w:gz") as archive:
        info = tarfile.TarInfo("tool-1.0/bin/escape")
        info.type = tarfile.SYMTYPE
        info.linkname = "/etc/passwd"
        archive.addfile(info)

    with pytest.raises(ExtractionError):
        extract_archive(archive_path, tmp_path / "out")
    assert not (tmp_path / "out" / "tool-1.0" / "bin" / "escape").is_symlink()
