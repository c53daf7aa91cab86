import asyncio
import os
import time
from typing import Callable, Dict, List, Optional, Tuple

from ..config import settings
from ..types import DiffStatus, FileDiff
from ..utils.logger import app_logger


UNTRACKED_HEADER = "New file (not tracked in git)"


class GitCommandError(Exception):
    """A git invocation exited with a non-zero status."""


class GitDiffCache:
    """Per-file git diff lookups with a short-lived cache.

    Every lookup result is cached for ``ttl`` seconds. Entries are never
    evicted actively; an expired entry is simply ignored on the next read.
    When the watched root is not inside a git work tree (or git is not
    installed) every lookup answers ``DiffStatus.DISABLED``.
    """

    def __init__(self, ttl: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.logger = app_logger.bind(component="diff_cache")
        self.ttl = ttl if ttl is not None else settings.diff_cache_ttl
        self.clock = clock
        self.repo_root: Optional[str] = None
        self._cache: Dict[str, Tuple[FileDiff, float]] = {}

    @property
    def enabled(self) -> bool:
        return self.repo_root is not None

    async def initialize(self, path: str) -> bool:
        """Locate the git work tree containing ``path``."""
        self.repo_root = None
        self._cache.clear()
        try:
            root = await self._git(["rev-parse", "--show-toplevel"], cwd=path)
        except (GitCommandError, OSError) as e:
            self.logger.info(f"Not a git repository, git features disabled ({e})")
            return False

        self.repo_root = os.path.normpath(root.strip())
        self.logger.info(f"Git integration initialized at {self.repo_root}")
        return True

    async def get_file_diff(self, file_path: str) -> FileDiff:
        """Get the working tree diff of ``file_path`` against HEAD."""
        if not self.enabled:
            return FileDiff(status=DiffStatus.DISABLED)

        # Check cache
        cached = self._cache.get(file_path)
        if cached is not None and self.clock() - cached[1] < self.ttl:
            return cached[0]

        try:
            result = await self._query(file_path)
        except (GitCommandError, OSError) as e:
            self.logger.error(f"Error getting diff for {file_path}: {e}")
            return FileDiff(status=DiffStatus.UNCHANGED)

        self._cache[file_path] = (result, self.clock())
        return result

    async def _query(self, file_path: str) -> FileDiff:
        relative_path = os.path.relpath(os.path.realpath(file_path), self.repo_root)
        status = await self._git(["status", "--porcelain", "--", relative_path], cwd=self.repo_root)

        if status.startswith("??"):
            content = await asyncio.to_thread(self._read_text, file_path)
            return FileDiff(status=DiffStatus.UNTRACKED, text=f"{UNTRACKED_HEADER}\n\n{content}")

        if not status.strip():
            return FileDiff(status=DiffStatus.UNCHANGED)

        try:
            diff = await self._git(["diff", "HEAD", "--", relative_path], cwd=self.repo_root)
        except GitCommandError:
            # No commits yet, compare against the index instead
            diff = await self._git(["diff", "--cached", "--", relative_path], cwd=self.repo_root)

        if not diff.strip():
            return FileDiff(status=DiffStatus.UNCHANGED)
        return FileDiff(status=DiffStatus.MODIFIED, text=diff)

    @staticmethod
    def _read_text(file_path: str) -> str:
        try:
            with open(file_path, "r", encoding="utf-8", errors="ignore") as f:
                return f.read()
        except OSError:
            return ""

    @staticmethod
    async def _git(args: List[str], cwd: str) -> str:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            raise GitCommandError(stderr.decode("utf-8", errors="ignore").strip() or f"git {args[0]} failed")
        return stdout.decode("utf-8", errors="ignore")

    def clear_cache(self):
        self._cache.clear()
