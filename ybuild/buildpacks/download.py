from pathlib import Path
from typing import Optional, Dict, Union
from urllib.parse import urlparse
import asyncio
import os
import tempfile

import aiohttp

from ybuild.common.config.logging_config import get_logger
from ybuild.common.exceptions.provision_exceptions import DownloadError, CacheWriteError
from ybuild.common.utils.file_utils import ensure_directory
from ybuild.common.utils.hash_utils import compute_hash
from ybuild.common.utils.retry import RetryConfig, async_with_retry


logger = get_logger(__name__)

CHUNK_SIZE = 1024 * 1024


class DownloadCache:
    """URL-keyed download cache shared by every tool provider.

    A cached file is only ever visible once completely written; concurrent
    fetches of the same URL in one process share a single download.
    """

    def __init__(
        self,
        cache_dir: Union[str, Path],
        timeout_seconds: float = 600.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self._cache_dir = Path(cache_dir)
        self._timeout = timeout_seconds
        self._retry_config = RetryConfig(
            max_retries=max_retries,
            initial_delay=retry_delay,
            retryable_exceptions=(DownloadError,),
        )
        self._locks: Dict[str, asyncio.Lock] = {}
        self.network_fetches = 0

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    def cache_path(self, url: str) -> Path:
        filename = os.path.basename(urlparse(url).path) or "download"
        return self._cache_dir / compute_hash(url)[:16] / filename

    def _lock_for(self, url: str) -> asyncio.Lock:
        lock = self._locks.get(url)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[url] = lock
        return lock

    async def fetch(self, url: str) -> Path:
        path = self.cache_path(url)
        if path.exists():
            logger.info(f"Using cached download {path}")
            return path

        async with self._lock_for(url):
            if path.exists():
                return path
            logger.info(f"Downloading {url}...")
            await async_with_retry(self._download, self._retry_config, url, path)

        return path

    async def _download(self, url: str, path: Path) -> None:
        self.network_fetches += 1

        try:
            ensure_directory(path.parent)
            temp_fd, temp_name = tempfile.mkstemp(
                dir=path.parent, prefix=f".{path.name}.", suffix=".part"
            )
        except OSError as e:
            raise CacheWriteError(
                f"Download cache is not writable: {e}",
                path=str(path.parent),
                cause=e,
            )

        timeout = aiohttp.ClientTimeout(total=self._timeout)
        try:
            with os.fdopen(temp_fd, "wb") as handle:
                async with aiohttp.ClientSession(timeout=timeout) as session:
                    async with session.get(url) as response:
                        if response.status != 200:
                            raise DownloadError(
                                f"Unexpected status {response.status} downloading {url}",
                                url=url,
                                status_code=response.status,
                            )
                        async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                            handle.write(chunk)
            os.replace(temp_name, path)
        except aiohttp.ClientError as e:
            raise DownloadError(f"Unable to download {url}: {e}", url=url, cause=e)
        except asyncio.TimeoutError as e:
            raise DownloadError(f"Timed out downloading {url}", url=url, cause=e)
        except OSError as e:
            raise CacheWriteError(
                f"Unable to write {path}: {e}",
                path=str(path),
                cause=e,
            )
        finally:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
