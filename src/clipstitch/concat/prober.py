"""Cache warming for segments on networked storage.

NFS clients cache attributes, so a segment the recorder just closed can be
listed in its directory while this host still sees it as short or missing.
A fresh stat() on every segment before ffmpeg opens them forces the client
to revalidate.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

from clipstitch.errors import ProbeError
from clipstitch.models import FileStats, PathLike
from clipstitch.storage.base import StorageProvider
from clipstitch.utils.logging import get_logger

log = get_logger(__name__)


class CacheProber:
    """Stats segment paths concurrently and never raises."""

    MAX_WORKERS = 8

    def __init__(self, storage: StorageProvider, max_workers: int = MAX_WORKERS):
        self.storage = storage
        self.max_workers = max_workers

    def refresh(self, paths: Sequence[PathLike]) -> None:
        """Stat every path, joining all probes before returning.

        Individual failures are logged and dropped: existence problems are
        reported by the ffmpeg attempt that follows.
        """
        if not paths:
            return

        log.debug("cache_refresh_started", count=len(paths))
        workers = min(self.max_workers, len(paths))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="cache-probe") as pool:
            results = list(pool.map(self._try_probe, paths))

        log.debug(
            "cache_refresh_complete",
            count=len(paths),
            failed=results.count(False),
        )

    def probe(self, path: PathLike) -> FileStats:
        """Stat one path.

        Raises:
            ProbeError: The stat failed. The original error is chained.
        """
        try:
            return self.storage.get_file_stats(path)
        except Exception as e:
            raise ProbeError(f"Could not stat {path}: {e}") from e

    def _try_probe(self, path: PathLike) -> bool:
        try:
            self.probe(path)
        except ProbeError as e:
            log.debug("cache_probe_failed", path=str(path), error=str(e))
            return False
        return True
