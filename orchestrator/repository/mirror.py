# =============================================================================
# TICKET AGENT SYSTEM - REPOSITORY MIRROR
# =============================================================================
"""
Repository Mirror

Local git working copy that agents read for code context and write
their changes to. Git is driven through the command line.

Usage:
    mirror = RepositoryMirror.open_or_clone("https://host/org/repo.git", "./repo")
    files = mirror.read_all_files()
    mirror.write_file("src/app.py", b"print('hi')\\n")
    mirror.commit("Add app", "Backend Agent", "backend@example.com")
    mirror.push("git", token)
"""

import os
import logging
import subprocess
from pathlib import Path
from typing import Dict, List
from urllib.parse import quote, urlsplit, urlunsplit


logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Raised when a git command fails."""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


class RepositoryMirror:
    """
    Git working copy wrapper.

    Attributes:
        repo_path: Local working copy path
        repo_url: Remote URL the copy was cloned from (may be empty)

    Pull/commit/push ordering is the caller's responsibility; the mirror
    does not serialize concurrent writers.
    """

    GIT_DIR = ".git"

    def __init__(self, repo_path: str, repo_url: str = ""):
        self.repo_path = str(repo_path)
        self.repo_url = repo_url

    @classmethod
    def open_or_clone(cls, repo_url: str, repo_path: str) -> "RepositoryMirror":
        """
        Clone repo_url into repo_path unless a copy already exists there.

        Raises:
            RepositoryError: If the clone fails or the path is not a repository
        """
        path = Path(repo_path)
        if not path.exists():
            logger.info(f"Local repository not found, cloning {repo_url}")
            _run(["git", "clone", repo_url, str(path)], "clone repository")
        elif not (path / cls.GIT_DIR).exists():
            raise RepositoryError(f"Not a git repository: {repo_path}")
        return cls(str(path), repo_url)

    # =========================================================================
    # FILE OPERATIONS
    # =========================================================================

    def read_all_files(self) -> Dict[str, str]:
        """
        Read every file in the working copy, skipping git metadata.

        Returns:
            Mapping of path relative to the repository root to file content
        """
        files: Dict[str, str] = {}
        for root, dirs, filenames in os.walk(self.repo_path):
            if self.GIT_DIR in dirs:
                dirs.remove(self.GIT_DIR)
            dirs.sort()
            for filename in sorted(filenames):
                full_path = os.path.join(root, filename)
                rel_path = os.path.relpath(full_path, self.repo_path)
                with open(full_path, "r", encoding="utf-8", errors="replace") as f:
                    files[rel_path] = f.read()
        return files

    def write_file(self, file_name: str, content: bytes) -> None:
        """Write content to a path relative to the repository root."""
        full_path = Path(self.repo_path) / file_name
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_bytes(content)
        logger.debug(f"Wrote {len(content)} bytes to {file_name}")

    # =========================================================================
    # GIT OPERATIONS
    # =========================================================================

    def commit(self, message: str, author_name: str, author_email: str) -> str:
        """
        Stage all changes and commit them.

        Returns:
            The new commit hash
        """
        self._git("add", "--all", action="stage changes")
        self._git(
            "-c", f"user.name={author_name}",
            "-c", f"user.email={author_email}",
            "commit", "-m", message,
            "--author", f"{author_name} <{author_email}>",
            action="commit changes",
        )
        commit_hash = self._git("rev-parse", "HEAD", action="read commit hash").strip()
        logger.info(f"Commit successful: {commit_hash}")
        return commit_hash

    def push(self, username: str, password: str) -> None:
        """Push the current branch using basic credentials."""
        remote = self.repo_url or self._git(
            "remote", "get-url", "origin", action="read remote url"
        ).strip()
        self._git("push", _with_credentials(remote, username, password), "HEAD",
                  action="push changes")
        logger.info("Push successful")

    def pull(self) -> None:
        """Fetch and merge from origin. Being up to date is not an error."""
        self._git("pull", "origin", action="pull changes")

    def _git(self, *args: str, action: str) -> str:
        return _run(["git", "-C", self.repo_path, *args], action)


# =============================================================================
# HELPERS
# =============================================================================

def _run(cmd: List[str], action: str) -> str:
    """Run a git command and return stdout."""
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise RepositoryError(f"failed to {action}: {e}") from e
    if result.returncode != 0:
        raise RepositoryError(
            f"failed to {action}: {result.stderr.strip()}",
            stderr=result.stderr,
        )
    return result.stdout


def _with_credentials(url: str, username: str, password: str) -> str:
    """Embed basic credentials in an http(s) remote URL."""
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    netloc = f"{quote(username, safe='')}:{quote(password, safe='')}@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
