import asyncio
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..config import settings
from ..errors import WatchSetupError
from ..types import ChangeKind, FileChange, WatcherError, WatcherReady, WatcherSignal
from ..utils.logger import app_logger
from .ignore_rules import IgnoreRules


SignalListener = Callable[[WatcherSignal], None]
# (size, mtime_ns) of a file, or None when it does not exist
StatSignature = Optional[Tuple[int, int]]


def _signature(path: str) -> Tuple[StatSignature, Optional[os.stat_result]]:
    try:
        stat = os.stat(path)
    except OSError:
        return None, None
    if not os.path.isfile(path):
        return None, None
    return (stat.st_size, stat.st_mtime_ns), stat


class _RawEventHandler(FileSystemEventHandler):
    """Forward watchdog notifications to the watcher's event loop.

    Runs on the observer thread, so it never touches watcher state directly.
    """

    def __init__(self, watcher: "ChangeWatcher", loop: asyncio.AbstractEventLoop, epoch: int):
        super().__init__()
        self.watcher = watcher
        self.loop = loop
        self.epoch = epoch

    def _forward(self, path, is_directory: bool):
        try:
            self.loop.call_soon_threadsafe(self.watcher._touch, self.epoch, os.fsdecode(path), is_directory)
        except RuntimeError:
            # Loop already closed; the watch is going away
            pass

    def on_created(self, event: FileSystemEvent):
        self._forward(event.src_path, event.is_directory)

    def on_modified(self, event: FileSystemEvent):
        if not event.is_directory:
            self._forward(event.src_path, False)

    def on_closed(self, event: FileSystemEvent):
        if not event.is_directory:
            self._forward(event.src_path, False)

    def on_deleted(self, event: FileSystemEvent):
        self._forward(event.src_path, event.is_directory)

    def on_moved(self, event: FileSystemEvent):
        self._forward(event.src_path, event.is_directory)
        self._forward(event.dest_path, event.is_directory)


class ChangeWatcher:
    """Recursive file watcher producing settled add/modify/delete changes.

    Raw notifications from watchdog are collapsed per file: a change is only
    reported once the file has been quiet for the stability threshold, and it
    is classified against the set of files already reported, so listeners see
    ``add`` before any ``modify`` and ``delete`` only for files they know.

    Listeners receive ``FileChange`` for every file found by the initial scan,
    then exactly one ``WatcherReady``, then live changes. Setup failures are
    reported as ``WatcherError`` instead of being raised.
    """

    def __init__(
        self,
        stability_threshold: Optional[float] = None,
        default_ignore_patterns: Optional[List[str]] = None,
    ):
        self.logger = app_logger.bind(component="change_watcher")
        if stability_threshold is None:
            stability_threshold = settings.stability_threshold_ms / 1000
        self.stability_threshold = stability_threshold
        self.default_ignore_patterns = (
            list(default_ignore_patterns) if default_ignore_patterns is not None
            else settings.default_ignore_patterns_list
        )

        self._listeners: List[SignalListener] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._observer: Optional[Observer] = None
        self._root: Optional[str] = None
        self._ignore: Optional[IgnoreRules] = None
        self._epoch = 0

        self._known: Set[str] = set()
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._armed: Dict[str, StatSignature] = {}
        self._scanning = False
        self._held: Set[str] = set()
        self._rescans: Set[asyncio.Task] = set()

    def subscribe(self, listener: SignalListener) -> Callable[[], None]:
        """Register a signal listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, signal: WatcherSignal):
        for listener in list(self._listeners):
            listener(signal)

    @property
    def watch_path(self) -> Optional[str]:
        return self._root

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    @property
    def ignore_rules(self) -> Optional[IgnoreRules]:
        return self._ignore

    async def start(self, root: str, ignore_patterns: Optional[List[str]] = None) -> bool:
        """Watch ``root`` recursively. Returns False if the watch could not start."""
        if self._observer is not None:
            self.stop()

        self._epoch += 1
        epoch = self._epoch
        self._loop = asyncio.get_running_loop()

        try:
            root_path = self._validate_root(root)
        except WatchSetupError as e:
            self.logger.error(str(e))
            self._emit(WatcherError(root=str(root), message=str(e)))
            return False

        self._root = root_path
        self._ignore = IgnoreRules(root_path, self.default_ignore_patterns + list(ignore_patterns or []))
        self._known = set()
        self._held = set()
        self._scanning = True

        self.logger.info(f"Starting file watcher on: {root_path}")
        self.logger.debug(f"Ignoring patterns: {self._ignore.patterns}")

        observer = Observer()
        try:
            observer.schedule(_RawEventHandler(self, self._loop, epoch), root_path, recursive=True)
            observer.start()
        except OSError as e:
            self._scanning = False
            error = WatchSetupError(root_path, str(e))
            self.logger.error(str(error))
            self._emit(WatcherError(root=root_path, message=str(error)))
            return False
        self._observer = observer

        files = await asyncio.to_thread(self._scan, root_path)
        if epoch != self._epoch:
            # Stopped while scanning
            return False

        for path, stat in files:
            self._known.add(path)
            self._emit(FileChange(kind=ChangeKind.ADD, path=path, size=stat.st_size, mtime=stat.st_mtime * 1000))

        # Changes that raced the scan are settled right away so they land before ready
        self._scanning = False
        held, self._held = self._held, set()
        for path in sorted(held):
            self._settle(path, report_modify=False)

        self.logger.info(f"Initial scan complete ({len(self._known)} files). Ready for changes.")
        self._emit(WatcherReady(root=root_path, file_count=len(self._known)))
        return True

    def stop(self):
        """Stop watching and release the OS watch handles."""
        self._epoch += 1
        for handle in self._timers.values():
            handle.cancel()
        for task in list(self._rescans):
            task.cancel()
        self._rescans.clear()
        self._timers.clear()
        self._armed.clear()
        self._held.clear()
        self._known.clear()
        self._scanning = False

        if self._observer is not None:
            self.logger.info("Stopping file watcher")
            observer, self._observer = self._observer, None
            observer.stop()
            observer.join()

    @staticmethod
    def _validate_root(root: str) -> str:
        root_path = Path(root).expanduser()
        if not root_path.exists():
            raise WatchSetupError(str(root), "path not found")
        if not root_path.is_dir():
            raise WatchSetupError(str(root), "not a directory")
        if not os.access(root_path, os.R_OK | os.X_OK):
            raise WatchSetupError(str(root), "permission denied")
        return str(root_path.resolve())

    def _scan(self, root_path: str) -> List[Tuple[str, os.stat_result]]:
        """Walk the tree and stat every file that is not ignored."""
        files = []
        ignore = self._ignore

        def on_error(error: OSError):
            self.logger.warning(f"Error reading directory {error.filename}: {error}")

        for dir_path, dirs, file_names in os.walk(root_path, onerror=on_error):
            # Remove ignored directories
            dirs[:] = sorted(d for d in dirs if not ignore.is_ignored(os.path.join(dir_path, d)))

            for file_name in sorted(file_names):
                file_path = os.path.join(dir_path, file_name)
                if ignore.is_ignored(file_path):
                    continue
                signature, stat = _signature(file_path)
                if signature is None:
                    # Vanished between listing and stat
                    continue
                files.append((file_path, stat))

        return files

    def _touch(self, epoch: int, path: str, is_directory: bool):
        """Handle one raw notification on the loop thread."""
        if epoch != self._epoch or self._observer is None:
            return

        path = os.path.normpath(path)
        if self._ignore.is_ignored(path):
            return

        if not is_directory:
            self._schedule(path)
            return

        # A directory appeared, vanished or moved: revisit everything under it
        prefix = path + os.sep
        for file_path in sorted(known for known in self._known if known.startswith(prefix)):
            self._schedule(file_path)
        if os.path.isdir(path):
            task = self._loop.create_task(self._rescan(epoch, path))
            self._rescans.add(task)
            task.add_done_callback(self._rescans.discard)

    async def _rescan(self, epoch: int, path: str):
        """Walk a directory that appeared under the root, off the loop."""
        try:
            files = await asyncio.to_thread(self._scan, path)
        except OSError as e:
            self.logger.warning(f"Error rescanning {path}: {e}")
            return
        if epoch != self._epoch:
            return
        for file_path, _ in files:
            self._schedule(file_path)

    def _schedule(self, path: str):
        if self._scanning:
            self._held.add(path)
            return
        self._arm(path)

    def _arm(self, path: str):
        """(Re)start the stability timer for ``path``."""
        existing = self._timers.pop(path, None)
        if existing is not None:
            existing.cancel()
        self._armed[path], _ = _signature(path)
        self._timers[path] = self._loop.call_later(self.stability_threshold, self._on_stable, self._epoch, path)

    def _on_stable(self, epoch: int, path: str):
        if epoch != self._epoch:
            return
        self._timers.pop(path, None)

        signature, _ = _signature(path)
        if signature != self._armed.get(path):
            # Still being written
            self._arm(path)
            return

        self._armed.pop(path, None)
        self._settle(path)

    def _settle(self, path: str, report_modify: bool = True):
        """Classify the current state of ``path`` and emit the change, if any."""
        signature, stat = _signature(path)
        exists = signature is not None

        if exists and path in self._known:
            if not report_modify:
                return
            change = FileChange(kind=ChangeKind.MODIFY, path=path, size=stat.st_size, mtime=stat.st_mtime * 1000)
        elif exists:
            self._known.add(path)
            change = FileChange(kind=ChangeKind.ADD, path=path, size=stat.st_size, mtime=stat.st_mtime * 1000)
        elif path in self._known:
            self._known.discard(path)
            change = FileChange(kind=ChangeKind.DELETE, path=path)
        else:
            return

        self.logger.debug(f"File {change.kind.value}: {path}")
        self._emit(change)
