from pathlib import Path
from typing import Union
import errno
import shutil
import tempfile
import os

from ybuild.common.config.logging_config import get_logger


logger = get_logger(__name__)


def ensure_directory(
    dir_path: Union[str, Path],
) -> Path:
    dir_path = Path(dir_path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def create_temp_sibling(
    final_path: Union[str, Path],
) -> Path:
    final_path = Path(final_path)
    ensure_directory(final_path.parent)

    temp_dir = tempfile.mkdtemp(
        dir=final_path.parent,
        prefix=f".{final_path.name}.",
        suffix=".tmp",
    )
    logger.debug(f"Created staging directory: {temp_dir}")
    return Path(temp_dir)


def publish_directory(
    staged_path: Union[str, Path],
    final_path: Union[str, Path],
) -> bool:
    """Atomically rename a fully populated staging directory into place.

    Returns False when another writer already published ``final_path``; the
    staged copy is discarded in that case.
    """
    staged_path = Path(staged_path)
    final_path = Path(final_path)

    try:
        os.replace(staged_path, final_path)
        return True
    except OSError as e:
        if e.errno not in (errno.ENOTEMPTY, errno.EEXIST) or not final_path.exists():
            raise
        logger.debug(f"{final_path} was published concurrently, discarding {staged_path}")
        remove_tree(staged_path)
        return False


def atomic_write_bytes(
    file_path: Union[str, Path],
    content: bytes,
) -> Path:
    file_path = Path(file_path)
    ensure_directory(file_path.parent)

    temp_fd, temp_path = tempfile.mkstemp(
        dir=file_path.parent,
        prefix=f".{file_path.name}.",
        suffix=".tmp"
    )

    try:
        with os.fdopen(temp_fd, "wb") as f:
            f.write(content)
        os.replace(temp_path, file_path)
    except Exception:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise

    return file_path


def remove_tree(
    dir_path: Union[str, Path],
) -> bool:
    dir_path = Path(dir_path)

    if not dir_path.exists():
        return False

    try:
        shutil.rmtree(dir_path)
        return True
    except OSError as e:
        logger.warning(f"Failed to remove {dir_path}: {e}")
        return False
