from pathlib import Path
from typing import Union
import asyncio
import os
import tarfile
import zipfile

from ybuild.common.config.constants import ArchiveFormat
from ybuild.common.config.logging_config import get_logger
from ybuild.common.exceptions.provision_exceptions import ExtractionError, CacheWriteError


logger = get_logger(__name__)


def detect_format(archive_path: Union[str, Path]) -> ArchiveFormat:
    name = Path(archive_path).name.lower()
    if name.endswith((".tar.gz", ".tgz")):
        return ArchiveFormat.TAR_GZ
    if name.endswith((".tar.xz", ".txz")):
        return ArchiveFormat.TAR_XZ
    if name.endswith((".tar.bz2", ".tbz2")):
        return ArchiveFormat.TAR_BZ2
    if name.endswith(".zip"):
        return ArchiveFormat.ZIP

    if zipfile.is_zipfile(archive_path):
        return ArchiveFormat.ZIP
    if tarfile.is_tarfile(archive_path):
        return ArchiveFormat.TAR_GZ
    raise ExtractionError(
        f"Unrecognized archive format: {name}",
        archive_path=str(archive_path),
    )


def _ensure_within(destination: Path, member_name: str) -> None:
    target = (destination / member_name).resolve()
    if target != destination and destination not in target.parents:
        raise ExtractionError(
            f"Archive member escapes extraction directory: {member_name}",
            details={"member": member_name},
        )


def _extract_zip(archive_path: Path, destination: Path) -> None:
    with zipfile.ZipFile(archive_path) as archive:
        for member in archive.infolist():
            _ensure_within(destination, member.filename)
        archive.extractall(destination)

        # zipfile drops unix permissions, restore them so bin/ stays executable
        for member in archive.infolist():
            mode = (member.external_attr >> 16) & 0o777
            if mode:
                os.chmod(destination / member.filename, mode)


def _extract_tar(archive_path: Path, destination: Path) -> None:
    with tarfile.open(archive_path, mode="r:*") as archive:
        archive.extractall(destination, filter="data")


def extract_archive(
    archive_path: Union[str, Path],
    destination: Union[str, Path],
) -> Path:
    archive_path = Path(archive_path)
    destination = Path(destination).resolve()

    archive_format = detect_format(archive_path)
    logger.debug(f"Extracting {archive_path} ({archive_format.value}) into {destination}")

    try:
        destination.mkdir(parents=True, exist_ok=True)
        if archive_format == ArchiveFormat.ZIP:
            _extract_zip(archive_path, destination)
        else:
            _extract_tar(archive_path, destination)
    except ExtractionError:
        raise
    except PermissionError as e:
        raise CacheWriteError(
            f"Unable to write into {destination}: {e}",
            path=str(destination),
            cause=e,
        )
    except (tarfile.TarError, zipfile.BadZipFile, EOFError, OSError) as e:
        raise ExtractionError(
            f"Unable to decompress {archive_path.name}: {e}",
            archive_path=str(archive_path),
            cause=e,
        )

    return destination


async def unarchive(
    archive_path: Union[str, Path],
    destination: Union[str, Path],
) -> Path:
    return await asyncio.to_thread(extract_archive, archive_path, destination)


def archive_root(extracted_dir: Union[str, Path]) -> Path:
    """Return the single top-level directory most distributions ship, if any."""
    extracted_dir = Path(extracted_dir)
    entries = list(extracted_dir.iterdir())
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return extracted_dir
