"""Exception types shared across the package."""


class CodeSynapseError(Exception):
    """Base class for errors raised by codesynapse."""


class WatchSetupError(CodeSynapseError):
    """The watcher could not be started on the requested root."""

    def __init__(self, root: str, reason: str):
        self.root = root
        self.reason = reason
        super().__init__(f"Cannot watch {root}: {reason}")
