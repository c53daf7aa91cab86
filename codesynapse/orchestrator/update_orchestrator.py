import asyncio
from typing import Dict, List, Optional, Set, Tuple

from ..config import settings
from ..graph.graph_store import GraphStore
from ..processor.dependency_extractor import Dependencies, DependencyExtractor
from ..scanner.change_watcher import ChangeWatcher
from ..server.channel import PushChannel
from ..types import (
    ChangeKind,
    ErrorMessage,
    FileChange,
    GraphInit,
    GraphMutation,
    PushMessage,
    StatsUpdate,
    WatcherError,
    WatcherReady,
    WatcherSignal,
)
from ..utils.logger import app_logger
from .debounce import StatsDebouncer


class UpdateOrchestrator:
    """Keep a GraphStore in step with a watched directory.

    Watcher signals are queued and handled one at a time, in the order the
    watcher emitted them. For every file change the file's dependencies are
    re-extracted and only the difference against its current outgoing edges is
    applied to the store.

    Each queued change carries a per-path generation number. Extraction runs
    off the loop; when it finishes and a newer change for the same path has
    been queued meanwhile, the result is dropped and the newer change does the
    work instead.

    Until the watcher reports ready the graph is built silently. Then the
    channel gets ``graph:init`` followed by every mutation as it happens, and a
    ``stats:update`` once changes have settled for the debounce window.
    """

    def __init__(
        self,
        channel: PushChannel,
        extractor: Optional[DependencyExtractor] = None,
        watcher: Optional[ChangeWatcher] = None,
        stats_debounce: Optional[float] = None,
    ):
        self.logger = app_logger.bind(component="update_orchestrator")
        self.channel = channel
        self.extractor = extractor or DependencyExtractor()
        self.watcher = watcher or ChangeWatcher()
        if stats_debounce is None:
            stats_debounce = settings.stats_debounce_ms / 1000
        self.stats_debouncer = StatsDebouncer(self._push_stats, stats_debounce)

        self.store = GraphStore()
        self._unsubscribe_store = self.store.subscribe(self._on_mutation)
        self.watcher.subscribe(self.handle_signal)

        self._epoch = 0
        self._live = False
        self._queue: Optional["asyncio.Queue[Tuple[int, WatcherSignal, int]]"] = None
        self._consumer: Optional[asyncio.Task] = None
        self._generations: Dict[str, int] = {}
        # Paths the watcher reported; every other node exists only as an edge target
        self._tracked: Set[str] = set()
        self._outbox: List[PushMessage] = []

    @property
    def is_live(self) -> bool:
        return self._live

    async def start(self, root: str, ignore_patterns: Optional[List[str]] = None) -> bool:
        """Build a fresh graph for ``root`` and follow its changes."""
        self.stop()
        self._epoch += 1
        epoch = self._epoch

        self._unsubscribe_store()
        self.store = GraphStore()
        self._unsubscribe_store = self.store.subscribe(self._on_mutation)
        self._generations = {}
        self._tracked = set()
        self._outbox = []

        queue: "asyncio.Queue[Tuple[int, WatcherSignal, int]]" = asyncio.Queue()
        self._queue = queue
        self._consumer = asyncio.create_task(self._consume(queue))

        started = await self.watcher.start(root, ignore_patterns)
        if not started and epoch == self._epoch:
            # Deliver the setup error before shutting the consumer down
            await queue.join()
            # A later start may have taken over meanwhile
            if epoch == self._epoch:
                self.stop()
        return started

    def stop(self):
        """Stop watching. Work already in flight is abandoned."""
        self._epoch += 1
        self._live = False
        self.watcher.stop()
        self.stats_debouncer.cancel()
        if self._consumer is not None and not self._consumer.done():
            self._consumer.cancel()
        self._consumer = None
        if self._queue is not None:
            # Abandoned signals still count as done for anyone in drain()
            while not self._queue.empty():
                self._queue.get_nowait()
                self._queue.task_done()
        self._queue = None
        self._outbox = []

    async def drain(self):
        """Wait until every queued signal has been processed."""
        if self._queue is not None:
            await self._queue.join()

    def handle_signal(self, signal: WatcherSignal):
        """Watcher subscription callback."""
        if self._queue is None:
            return
        generation = 0
        if isinstance(signal, FileChange):
            generation = self._generations.get(signal.path, 0) + 1
            self._generations[signal.path] = generation
        self._queue.put_nowait((self._epoch, signal, generation))

    async def _consume(self, queue: "asyncio.Queue[Tuple[int, WatcherSignal, int]]"):
        while True:
            epoch, signal, generation = await queue.get()
            try:
                if epoch == self._epoch:
                    await self._process(signal, generation, epoch)
            except Exception:
                self.logger.exception(f"Error processing {signal}")
            finally:
                queue.task_done()

    async def _process(self, signal: WatcherSignal, generation: int, epoch: int):
        if isinstance(signal, FileChange):
            if signal.kind is ChangeKind.DELETE:
                self._apply_delete(signal.path, generation)
            else:
                await self._apply_change(signal, generation, epoch)
            if epoch != self._epoch:
                return
            if self._live:
                self.stats_debouncer.trigger()
            await self._flush()

        elif isinstance(signal, WatcherReady):
            self.logger.info(
                f"Graph built: {len(self.store)} nodes, {self.store.stats().connection_count} links"
            )
            self._live = True
            self._outbox = []
            await self._send(GraphInit(graph=self.store.snapshot()))
            await self._send(StatsUpdate(stats=self.store.stats()))

        elif isinstance(signal, WatcherError):
            await self._send(ErrorMessage(message=signal.message))

    async def _apply_change(self, change: FileChange, generation: int, epoch: int):
        path = change.path
        dependencies = await asyncio.to_thread(self.extractor.parse_file, path)

        if epoch != self._epoch:
            return
        if self._generations.get(path) != generation:
            self.logger.debug(f"Discarding stale {change.kind.value} of {path}")
            return

        existed = self.store.has_node(path)
        self._tracked.add(path)
        self.store.add_node(path)
        self.reconcile(path, dependencies)
        if change.kind is ChangeKind.MODIFY and existed:
            self.store.update_node(path)

    def reconcile(self, path: str, dependencies: Dependencies):
        """Make the outgoing edges of ``path`` match ``dependencies``."""
        current = self.store.outgoing(path)

        removed = sorted(current - dependencies.keys())
        for target in removed:
            self.store.remove_edge(path, target)

        for target in sorted(dependencies):
            kind = dependencies[target]
            if target in current:
                if self.store.edge_kind(path, target) is kind:
                    continue
                self.store.remove_edge(path, target)
            self.store.add_edge(path, target, kind)

        self._prune(removed)

    def _apply_delete(self, path: str, generation: int):
        self._tracked.discard(path)
        if self._generations.get(path) == generation:
            # Nothing newer is queued for the path
            del self._generations[path]
        neighbors = self.store.outgoing(path)
        self.store.remove_node(path)
        self._prune(neighbors)

    def _prune(self, candidates):
        """Drop nodes that were only edge targets and have lost their last edge."""
        for path in candidates:
            node = self.store.get_node(path)
            if node is not None and node.connection_count == 0 and path not in self._tracked:
                self.store.remove_node(path)

    def _on_mutation(self, mutation: GraphMutation):
        if self._live:
            self._outbox.append(mutation)

    async def _flush(self):
        outbox, self._outbox = self._outbox, []
        for message in outbox:
            await self._send(message)

    async def _push_stats(self):
        if self._live:
            await self._send(StatsUpdate(stats=self.store.stats()))

    async def _send(self, message: PushMessage):
        try:
            await self.channel.send(message)
        except Exception as e:
            self.logger.error(f"Failed to push {message.event}: {e}")
