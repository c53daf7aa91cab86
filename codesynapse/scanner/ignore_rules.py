import fnmatch
import os
from typing import Iterable, List


class IgnoreRules:
    """Decide which paths under a watch root are excluded.

    A pattern matches a path when it matches any single component of the path
    relative to the root (``node_modules``, ``*.log``) or any leading run of
    components (``src/generated``). Chokidar-style globs such as
    ``**/dist/**`` are reduced to their core (``dist``) first.
    """

    def __init__(self, root: str, patterns: Iterable[str]):
        self.root = os.path.abspath(root)
        self.patterns: List[str] = []
        for pattern in patterns:
            normalized = self.normalize(pattern)
            if normalized and normalized not in self.patterns:
                self.patterns.append(normalized)

    @staticmethod
    def normalize(pattern: str) -> str:
        p = pattern.strip().replace("\\", "/")
        while p.startswith("**/"):
            p = p[3:]
        while p.endswith("/**"):
            p = p[:-3]
        return p.strip("/")

    def is_ignored(self, path: str) -> bool:
        rel_path = os.path.relpath(os.path.abspath(path), self.root)
        if rel_path == ".":
            return False
        # Nothing outside the root belongs to this watch
        if rel_path == ".." or rel_path.startswith(".." + os.sep):
            return True

        parts = rel_path.replace(os.sep, "/").split("/")
        for pattern in self.patterns:
            for i, part in enumerate(parts):
                if fnmatch.fnmatch(part, pattern):
                    return True
                if fnmatch.fnmatch("/".join(parts[: i + 1]), pattern):
                    return True
        return False
