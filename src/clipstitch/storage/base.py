"""Storage collaborator interface used by the concatenation pipeline."""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from clipstitch.models import FileStats, PathLike


class StorageProvider(ABC):
    """Every filesystem touch the pipeline makes goes through this interface.

    Keeping it behind one seam lets a networked mount, a local disk or a
    test double be swapped without the pipeline noticing.
    """

    @abstractmethod
    def ensure_directory(self, path: PathLike) -> None:
        """Create a directory and its parents if missing."""

    @abstractmethod
    def write_file(self, path: PathLike, data: bytes | str) -> None:
        """Write a whole file. Text is encoded as UTF-8."""

    @abstractmethod
    def read_file(self, path: PathLike) -> bytes:
        """Read a whole file."""

    @abstractmethod
    def get_file_stats(self, path: PathLike) -> FileStats:
        """Stat a file.

        Raises:
            OSError: If the path cannot be stat'ed.
        """

    @abstractmethod
    def delete_directory(
        self,
        path: PathLike,
        recursive: bool = False,
        force: bool = False,
    ) -> None:
        """Remove a directory.

        Args:
            path: Directory to remove.
            recursive: Remove contents as well.
            force: Do not raise if the directory is already gone.
        """

    @abstractmethod
    def list_files(
        self,
        path: PathLike,
        filter: Optional[Callable[[str], bool]] = None,
    ) -> list[str]:
        """List file names (not paths) in a directory."""

    @abstractmethod
    def file_exists(self, path: PathLike) -> bool:
        """Check whether a path exists."""
