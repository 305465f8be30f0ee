"""File and archive operations for n8nctl."""

import logging
import os
import re
import shutil
import tarfile
from datetime import datetime
from typing import List, Optional

from .errors import InvalidFormatError

logger = logging.getLogger(__name__)

SAFETY_SUFFIX = ".bak_"


def human_size(num_bytes: int) -> str:
    """Format a byte count the way ``du -h`` does (1K, 2.5M, ...)."""
    size = float(num_bytes)
    for unit in ("B", "K", "M", "G", "T"):
        if size < 1024 or unit == "T":
            if unit == "B":
                return f"{int(size)}B"
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}T"


def _is_within(directory: str, target: str) -> bool:
    directory = os.path.realpath(directory)
    target = os.path.realpath(target)
    return os.path.commonpath([directory, target]) == directory


class FileManager:
    """Manages file and archive operations for n8nctl."""

    def __init__(self, verbose: bool = False):
        """Initialize file manager."""
        self.verbose = verbose

    def create_tarball(self, source_dir: str, output_path: str, arcname: Optional[str] = None) -> str:
        """
        Create a gzip-compressed tarball of a directory.

        The archive is written under a ``.partial`` name first and renamed into
        place, so an interrupted run never leaves a file at ``output_path``.

        Args:
            source_dir: Directory to archive
            output_path: Path of the ``.tar.gz`` to create
            arcname: Name of the top-level entry (defaults to the basename)

        Returns:
            str: Path to the created archive
        """
        if not os.path.isdir(source_dir):
            raise FileNotFoundError(f"Directory not found: {source_dir}")

        arcname = arcname or os.path.basename(os.path.normpath(source_dir))
        partial_path = output_path + ".partial"

        try:
            with tarfile.open(partial_path, "w:gz") as tar:
                tar.add(source_dir, arcname=arcname)
            os.replace(partial_path, output_path)
        finally:
            if os.path.exists(partial_path):
                os.remove(partial_path)

        if self.verbose:
            logger.debug("Created archive %s from %s", output_path, source_dir)

        return output_path

    def extract_tarball(self, archive_path: str, destination: str) -> List[str]:
        """
        Extract a tarball, refusing members that would land outside ``destination``.

        Symlinks are restored as archived, absolute targets included, so data
        directories round-trip unchanged. Hard links must point inside the
        archive, and the ``tar`` extraction filter refuses writes that escape
        ``destination`` through an already extracted link.

        Args:
            archive_path: Archive to extract
            destination: Directory to extract into (created if missing)

        Returns:
            List[str]: Names of the top-level entries that were extracted

        Raises:
            InvalidFormatError: If the file is not a readable tar archive or
                contains unsafe members
        """
        os.makedirs(destination, exist_ok=True)

        try:
            with tarfile.open(archive_path, "r:*") as tar:
                members = tar.getmembers()
                for member in members:
                    self._check_member(member, destination, archive_path)
                tar.extractall(destination, members=members, filter="tar")
        except (tarfile.TarError, EOFError, OSError) as e:
            raise InvalidFormatError(
                f"Cannot read archive: {os.path.basename(archive_path)}",
                details=str(e),
            ) from e

        top_level = sorted({member.name.split("/", 1)[0] for member in members if member.name})
        return top_level

    def _check_member(self, member: tarfile.TarInfo, destination: str, archive_path: str) -> None:
        paths = [member.name]
        if member.islnk():
            paths.append(member.linkname)

        for path in paths:
            if os.path.isabs(path) or not _is_within(destination, os.path.join(destination, path)):
                raise InvalidFormatError(
                    f"Unsafe path in archive: {path}",
                    details=f"Archive: {archive_path}",
                )

    def copy_if_exists(self, source: str, destination: str) -> Optional[str]:
        """
        Copy a file when it exists.

        Args:
            source: File to copy
            destination: Target file or directory

        Returns:
            Optional[str]: Path written, or None when ``source`` is missing
        """
        if not os.path.isfile(source):
            return None

        written = shutil.copy2(source, destination)

        if self.verbose:
            logger.debug("Copied %s to %s", source, written)

        return written

    def safety_copy_name(self, path: str, now: Optional[datetime] = None) -> str:
        """
        Build an unused rename-aside name for ``path``.

        The name is ``<path>.bak_<YYYYMMDD_HHMMSS>``; if that already exists a
        ``.<n>`` counter is appended.
        """
        now = now or datetime.now()
        candidate = f"{os.path.normpath(path)}{SAFETY_SUFFIX}{now.strftime('%Y%m%d_%H%M%S')}"

        counter = 1
        original = candidate
        while os.path.exists(candidate):
            candidate = f"{original}.{counter}"
            counter += 1

        return candidate

    def rename_aside(self, path: str, now: Optional[datetime] = None) -> str:
        """
        Rename an existing directory out of the way instead of deleting it.

        Args:
            path: Directory to move aside
            now: Timestamp used in the suffix

        Returns:
            str: New path of the safety copy
        """
        if not os.path.exists(path):
            raise FileNotFoundError(f"Path not found: {path}")

        target = self.safety_copy_name(path, now)
        os.rename(path, target)

        if self.verbose:
            logger.debug("Renamed %s to %s", path, target)

        return target

    def list_safety_copies(self, path: str) -> List[str]:
        """List rename-aside copies of ``path``, newest first."""
        path = os.path.normpath(path)
        parent = os.path.dirname(path) or "."
        base = os.path.basename(path)
        pattern = re.compile(rf"^{re.escape(base)}{re.escape(SAFETY_SUFFIX)}(\d{{8}}_\d{{6}})(?:\.(\d+))?$")

        if not os.path.isdir(parent):
            return []

        found = []
        for name in os.listdir(parent):
            match = pattern.match(name)
            if match:
                found.append(((match.group(1), int(match.group(2) or 0)), os.path.join(parent, name)))

        found.sort(reverse=True)
        return [copy_path for _, copy_path in found]

    def prune_safety_copies(self, path: str, keep: int) -> List[str]:
        """
        Delete all but the newest ``keep`` safety copies of ``path``.

        Args:
            path: Live directory whose copies should be pruned
            keep: Number of copies to keep; 0 keeps everything

        Returns:
            List[str]: Paths that were removed
        """
        if keep <= 0:
            return []

        removed = []
        for stale in self.list_safety_copies(path)[keep:]:
            if os.path.isdir(stale) and not os.path.islink(stale):
                shutil.rmtree(stale)
            else:
                os.remove(stale)
            removed.append(stale)

        return removed

    def directory_size(self, path: str) -> int:
        """Total size in bytes of the files below ``path``."""
        if os.path.isfile(path):
            return os.path.getsize(path)

        total = 0
        for root, _dirs, files in os.walk(path):
            for name in files:
                file_path = os.path.join(root, name)
                if not os.path.islink(file_path):
                    total += os.path.getsize(file_path)
        return total
