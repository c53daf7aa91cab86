import os
from typing import List, Optional

from ..config import settings


class PathResolver:
    """Resolve import specifiers to files on disk.

    Only relative (``./``, ``../``) and absolute specifiers are resolved; bare
    package names are external and always come back as None. Lookups run in a
    fixed order against the live filesystem:

    1. the exact path, if it is a file
    2. ``index<ext>`` inside it, if it is a directory
    3. the path with each supported extension appended
    """

    def __init__(self, extensions: Optional[List[str]] = None):
        self.extensions = list(extensions) if extensions is not None else settings.supported_extensions_list

    @staticmethod
    def is_relative(specifier: str) -> bool:
        return specifier.startswith(".") or specifier.startswith("/")

    def resolve(self, specifier: str, from_file: str) -> Optional[str]:
        """Resolve ``specifier`` as written in ``from_file``."""
        if not specifier or not self.is_relative(specifier):
            return None

        base_dir = os.path.dirname(os.path.abspath(from_file))
        resolved = os.path.normpath(os.path.join(base_dir, specifier))

        if os.path.isfile(resolved):
            return resolved

        if os.path.isdir(resolved):
            for ext in self.extensions:
                index_file = os.path.join(resolved, f"index{ext}")
                if os.path.isfile(index_file):
                    return index_file

        for ext in self.extensions:
            with_ext = f"{resolved}{ext}"
            if os.path.isfile(with_ext):
                return with_ext

        return None
