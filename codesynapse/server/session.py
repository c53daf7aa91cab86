import asyncio
import os
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..orchestrator.update_orchestrator import UpdateOrchestrator
from ..types import DiffData, DiffStatus, ErrorMessage
from ..utils.logger import app_logger
from ..vcs.diff_cache import GitDiffCache
from .channel import PushChannel


LANGUAGE_MAP = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".json": "json",
    ".css": "css",
    ".html": "html",
    ".md": "markdown",
    ".py": "python",
    ".java": "java",
    ".go": "go",
    ".rs": "rust",
    ".cpp": "cpp",
    ".c": "c",
    ".sh": "bash",
}

NO_CHANGES = "No changes detected"
DIFF_DISABLED = "Diff unavailable: not a git repository"
UNREADABLE = "Unable to read file content"


class WatchStartCommand(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    path: str
    ignore_patterns: Optional[List[str]] = Field(default=None, alias="ignorePatterns")


class DiffRequestCommand(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_path: str = Field(alias="filePath")


def detect_language(file_path: str) -> str:
    """Detect language from file extension."""
    return LANGUAGE_MAP.get(os.path.splitext(file_path)[1].lower(), "plaintext")


def _read_content(file_path: str) -> Tuple[str, bool]:
    try:
        with open(file_path, "r", encoding="utf-8", errors="ignore") as f:
            return f.read(), True
    except OSError:
        return UNREADABLE, False


class WatchSession:
    """One client connection: dispatches its commands and owns its watch.

    Commands:
        watch:start   {path, ignorePatterns?}
        watch:stop
        diff:request  {filePath}
    """

    def __init__(self, channel: PushChannel, orchestrator: Optional[UpdateOrchestrator] = None):
        self.logger = app_logger.bind(component="session")
        self.channel = channel
        self.orchestrator = orchestrator or UpdateOrchestrator(channel)
        self.diff_cache = GitDiffCache()
        # Bumped by every start and stop; a start that finds it changed gives up
        self._watch_epoch = 0

    async def handle_command(self, event: str, data: Any = None):
        """Dispatch one command received from the client."""
        try:
            if event == "watch:start":
                command = WatchStartCommand.model_validate(data or {})
                await self.watch_start(command.path, command.ignore_patterns)
            elif event == "watch:stop":
                self.watch_stop()
            elif event == "diff:request":
                command = DiffRequestCommand.model_validate(data or {})
                await self.diff_request(command.file_path)
            else:
                self.logger.warning(f"Unknown command: {event}")
                await self.channel.send(ErrorMessage(message=f"Unknown command: {event}"))
        except ValidationError as e:
            self.logger.warning(f"Invalid {event} payload: {e}")
            await self.channel.send(ErrorMessage(message=f"Invalid {event} payload"))

    async def watch_start(self, path: str, ignore_patterns: Optional[List[str]] = None) -> bool:
        self.logger.info(f"Starting watch on: {path}")
        self._watch_epoch += 1
        epoch = self._watch_epoch
        self.orchestrator.stop()

        # Fresh diff cache for every watch
        diff_cache = GitDiffCache()
        await diff_cache.initialize(path)
        if epoch != self._watch_epoch:
            self.logger.debug(f"Watch on {path} superseded before it started")
            return False
        self.diff_cache = diff_cache

        started = await self.orchestrator.start(path, ignore_patterns)
        if not started and epoch == self._watch_epoch:
            self.logger.error(f"Failed to start watching {path}")
        return started

    def watch_stop(self):
        self.logger.info("Stopping watch")
        self._watch_epoch += 1
        self.orchestrator.stop()
        self.diff_cache.clear_cache()

    async def diff_request(self, file_path: str):
        self.logger.info(f"Received diff request for: {file_path}")
        result = await self.diff_cache.get_file_diff(file_path)
        if result.status is DiffStatus.DISABLED:
            diff = DIFF_DISABLED
        else:
            diff = result.text or NO_CHANGES

        content, readable = await asyncio.to_thread(_read_content, file_path)
        language = detect_language(file_path) if readable else "plaintext"

        await self.channel.send(DiffData(file_path=file_path, diff=diff, content=content, language=language))

    async def close(self):
        """Release everything held for the connection."""
        self._watch_epoch += 1
        self.orchestrator.stop()
        self.diff_cache.clear_cache()
