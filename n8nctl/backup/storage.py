"""Backup archive naming, lookup and retention."""

import glob
import logging
import os
import re
from datetime import datetime
from typing import List, Optional, Tuple

from n8nctl.utils.errors import NotFoundError, create_error_suggestions

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
ARCHIVE_SUFFIX = ".tar.gz"

_COUNTER_RE = re.compile(r"^(\d{8}_\d{6})(?:_(\d+))?$")


class BackupStorage:
    """Owns the backup directory: archive names, the retention set and pruning."""

    def __init__(self, backup_dir: str, prefix: str = "n8n_backup", keep: int = 7, verbose: bool = False):
        """
        Initialize backup storage.

        Args:
            backup_dir: Directory holding the archives
            prefix: Archive name prefix
            keep: Number of archives the retention policy keeps
            verbose: Enable verbose output
        """
        self.backup_dir = os.path.abspath(backup_dir)
        self.prefix = prefix
        self.keep = keep
        self.verbose = verbose

    def ensure_directory(self) -> str:
        os.makedirs(self.backup_dir, exist_ok=True)
        return self.backup_dir

    def reserve_name(self, now: Optional[datetime] = None) -> str:
        """
        Pick an unused backup name ``<prefix>_<YYYYMMDD_HHMMSS>``.

        When a staging directory or archive with that name already exists (two
        runs within the same second) a ``_<n>`` counter is appended.
        """
        now = now or datetime.now()
        base = f"{self.prefix}_{now.strftime(TIMESTAMP_FORMAT)}"

        candidate = base
        counter = 1
        while os.path.exists(self.staging_path(candidate)) or os.path.exists(self.archive_path(candidate)):
            candidate = f"{base}_{counter}"
            counter += 1

        return candidate

    def staging_path(self, backup_name: str) -> str:
        return os.path.join(self.backup_dir, backup_name)

    def archive_path(self, backup_name: str) -> str:
        return os.path.join(self.backup_dir, backup_name + ARCHIVE_SUFFIX)

    def list_archives(self) -> List[str]:
        """
        List archives matching the naming pattern, newest first.

        Returns:
            List[str]: Absolute archive paths ordered by modification time
        """
        pattern = os.path.join(glob.escape(self.backup_dir), f"{glob.escape(self.prefix)}_*{ARCHIVE_SUFFIX}")
        archives = [path for path in glob.glob(pattern) if os.path.isfile(path)]
        archives.sort(key=lambda path: (os.path.getmtime(path), self._name_order(path)), reverse=True)
        return archives

    def _name_order(self, archive_path: str) -> Tuple[str, int]:
        """Sort key for equal mtimes: timestamp text, then the ``_<n>`` counter as a number."""
        name = os.path.basename(archive_path)[len(self.prefix) + 1 : -len(ARCHIVE_SUFFIX)]
        match = _COUNTER_RE.match(name)
        if match:
            return match.group(1), int(match.group(2) or 0)
        return name, 0

    def prune(self, keep: Optional[int] = None) -> List[str]:
        """
        Delete all archives beyond the newest ``keep``.

        Args:
            keep: Override for the configured keep-count

        Returns:
            List[str]: Paths that were removed
        """
        keep = self.keep if keep is None else keep
        removed = []

        for stale in self.list_archives()[keep:]:
            os.remove(stale)
            removed.append(stale)
            logger.debug("Removed old backup %s", stale)

        return removed

    def archive_size(self, archive_path: str) -> int:
        return os.path.getsize(archive_path)

    def resolve_archive(self, reference: str) -> str:
        """
        Resolve a user-supplied archive reference.

        Accepts a path (absolute or relative to the current directory) or a
        bare file name inside the backup directory.

        Raises:
            NotFoundError: If no such file exists
        """
        if os.path.isfile(reference):
            return os.path.abspath(reference)

        candidate = os.path.join(self.backup_dir, reference)
        if os.path.isfile(candidate):
            return candidate

        raise NotFoundError(
            f"Backup file not found: {reference}",
            suggestions=create_error_suggestions("archive_not_found", path=reference),
        )
