"""Git operations for n8nctl."""

import logging
import os

import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from n8nctl.utils.errors import GitError

logger = logging.getLogger(__name__)


class GitOperations:
    """Read-only queries against the git work tree holding the deployment."""

    def __init__(self, verbose: bool = False):
        """
        Initialize Git operations.

        Args:
            verbose: Whether to enable verbose output
        """
        self.verbose = verbose

    def _open(self, repo_path: str) -> git.Repo:
        return git.Repo(repo_path, search_parent_directories=True)

    def is_file_modified(self, repo_path: str, file_path: str) -> bool:
        """
        Check whether a tracked file has uncommitted changes.

        Args:
            repo_path: Path inside the repository
            file_path: File to check, absolute or relative to ``repo_path``

        Returns:
            bool: True if the file differs from HEAD (staged or not); False when
                ``repo_path`` is not a git work tree

        Raises:
            GitError: If git itself fails
        """
        try:
            repo = self._open(repo_path)
        except (InvalidGitRepositoryError, NoSuchPathError):
            logger.debug("%s is not a git work tree", repo_path)
            return False

        if not os.path.isabs(file_path):
            file_path = os.path.join(repo_path, file_path)
        relative = os.path.relpath(os.path.realpath(file_path), os.path.realpath(repo.working_tree_dir))

        try:
            return repo.is_dirty(index=True, working_tree=True, untracked_files=False, path=relative)
        except GitCommandError as e:
            raise GitError(f"Failed to check git status of {relative}", details=str(e)) from e
