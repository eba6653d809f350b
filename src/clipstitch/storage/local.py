"""Local (or locally mounted network) filesystem storage."""

import os
import shutil
from pathlib import Path
from typing import Callable, Optional

from clipstitch.models import FileStats, PathLike
from clipstitch.storage.base import StorageProvider
from clipstitch.utils.logging import get_logger

log = get_logger(__name__)


class LocalStorage(StorageProvider):
    """StorageProvider backed by pathlib/shutil.

    NFS and SMB mounts look local to this class; the pipeline's cache prober
    deals with their attribute caching.
    """

    def ensure_directory(self, path: PathLike) -> None:
        try:
            Path(path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.error("storage_ensure_directory_failed", path=str(path), error=str(e))
            raise
        log.debug("storage_directory_ensured", path=str(path))

    def write_file(self, path: PathLike, data: bytes | str) -> None:
        target = Path(path)
        try:
            if isinstance(data, str):
                target.write_text(data, encoding="utf-8")
            else:
                target.write_bytes(data)
        except OSError as e:
            log.error("storage_write_failed", path=str(path), error=str(e))
            raise
        log.debug("storage_file_written", path=str(path))

    def read_file(self, path: PathLike) -> bytes:
        try:
            return Path(path).read_bytes()
        except OSError as e:
            log.error("storage_read_failed", path=str(path), error=str(e))
            raise

    def get_file_stats(self, path: PathLike) -> FileStats:
        st = os.stat(path)
        return FileStats(size=st.st_size, mtime=st.st_mtime, ctime=st.st_ctime)

    def delete_directory(
        self,
        path: PathLike,
        recursive: bool = False,
        force: bool = False,
    ) -> None:
        target = Path(path)
        try:
            if recursive:
                shutil.rmtree(target)
            else:
                target.rmdir()
        except FileNotFoundError:
            if not force:
                log.error("storage_delete_directory_missing", path=str(path))
                raise
            return
        except OSError as e:
            log.error("storage_delete_directory_failed", path=str(path), error=str(e))
            raise
        log.debug("storage_directory_deleted", path=str(path))

    def list_files(
        self,
        path: PathLike,
        filter: Optional[Callable[[str], bool]] = None,
    ) -> list[str]:
        try:
            names = sorted(os.listdir(path))
        except OSError as e:
            log.error("storage_list_failed", path=str(path), error=str(e))
            raise
        if filter is not None:
            return [name for name in names if filter(name)]
        return names

    def file_exists(self, path: PathLike) -> bool:
        return Path(path).exists()
