import os
import time
import dataclasses
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..types import (
    EdgeKind,
    FileType,
    GraphData,
    GraphEdge,
    GraphMutation,
    GraphNode,
    GraphStats,
    LinkAdded,
    LinkRemoved,
    NodeAdded,
    NodeChanged,
    NodeRemoved,
)
from ..utils.logger import app_logger


MutationListener = Callable[[GraphMutation], None]

# Fields update_node() lets callers overwrite before the filesystem stat
_UPDATABLE_FIELDS = {"size", "last_modified"}


def _stat_file(file_path: str) -> Optional[os.stat_result]:
    try:
        return os.stat(file_path)
    except OSError:
        # File might have been deleted
        return None


class GraphStore:
    """In-memory file dependency graph.

    Nodes are keyed by absolute file path and edges by their ordered
    (source, target) pair. Every mutation keeps ``connection_count`` equal to
    the node's degree and reports itself to subscribers once it has completed.
    """

    def __init__(self):
        self.logger = app_logger.bind(component="graph_store")
        self._nodes: Dict[str, GraphNode] = {}
        self._edges: Dict[Tuple[str, str], GraphEdge] = {}
        self._outgoing: Dict[str, Set[str]] = {}
        self._incoming: Dict[str, Set[str]] = {}
        # Survives node removal so a re-created file keeps its history
        self._change_frequency: Dict[str, int] = {}
        self._listeners: List[MutationListener] = []

    def subscribe(self, listener: MutationListener) -> Callable[[], None]:
        """Register a mutation listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, mutation: GraphMutation):
        for listener in list(self._listeners):
            listener(mutation)

    def add_node(self, file_path: str) -> GraphNode:
        """Create a node for ``file_path``, or return the existing one unchanged."""
        node = self._nodes.get(file_path)
        if node is not None:
            return node

        stat = _stat_file(file_path)
        node = GraphNode(
            id=file_path,
            name=os.path.basename(file_path),
            file_type=FileType.from_path(file_path),
            size=stat.st_size if stat else 0,
            last_modified=stat.st_mtime * 1000 if stat else time.time() * 1000,
            change_frequency=self._change_frequency.get(file_path, 0),
        )
        self._nodes[file_path] = node
        self._outgoing[file_path] = set()
        self._incoming[file_path] = set()

        self._notify(NodeAdded(node=node))
        return node

    def update_node(self, file_path: str, changes: Optional[Dict[str, Any]] = None) -> Optional[GraphNode]:
        """Record a modification of ``file_path``.

        Returns None when the node does not exist. Otherwise applies ``changes``,
        bumps the change frequency and refreshes size/mtime from disk, keeping
        the previous values if the file can no longer be stat'ed.
        """
        node = self._nodes.get(file_path)
        if node is None:
            return None

        for key, value in (changes or {}).items():
            if key in _UPDATABLE_FIELDS:
                setattr(node, key, value)
            else:
                self.logger.debug(f"Ignoring non-updatable field {key} for {file_path}")

        stat = _stat_file(file_path)
        if stat is not None:
            node.size = stat.st_size
            node.last_modified = stat.st_mtime * 1000

        frequency = self._change_frequency.get(file_path, 0) + 1
        self._change_frequency[file_path] = frequency
        node.change_frequency = frequency

        self._notify(NodeChanged(node_id=file_path, changes=node.to_dict()))
        return node

    def remove_node(self, file_path: str) -> bool:
        """Remove a node and every edge incident to it."""
        if file_path not in self._nodes:
            return False

        for target in list(self._outgoing.get(file_path, ())):
            self.remove_edge(file_path, target)
        for source in list(self._incoming.get(file_path, ())):
            self.remove_edge(source, file_path)

        del self._nodes[file_path]
        self._outgoing.pop(file_path, None)
        self._incoming.pop(file_path, None)

        self._notify(NodeRemoved(node_id=file_path))
        return True

    def add_edge(self, source: str, target: str, kind: EdgeKind = EdgeKind.STATIC_IMPORT) -> GraphEdge:
        """Link ``source`` to ``target``, creating missing endpoint nodes first.

        Adding an edge whose (source, target) pair already exists returns the
        existing edge and leaves connection counts untouched.
        """
        key = (source, target)
        existing = self._edges.get(key)
        if existing is not None:
            return existing

        # Ensure both nodes exist
        source_node = self.add_node(source)
        target_node = self.add_node(target)

        edge = GraphEdge(source=source, target=target, kind=kind)
        self._edges[key] = edge
        self._outgoing[source].add(target)
        self._incoming[target].add(source)

        source_node.connection_count += 1
        # A self-import counts once towards its node's degree
        if target != source:
            target_node.connection_count += 1

        self._notify(LinkAdded(edge=edge))
        return edge

    def remove_edge(self, source: str, target: str) -> bool:
        """Remove the edge (source, target). Missing edges are a no-op."""
        edge = self._edges.pop((source, target), None)
        if edge is None:
            return False

        self._outgoing[source].discard(target)
        self._incoming[target].discard(source)
        self._nodes[source].connection_count -= 1
        if target != source:
            self._nodes[target].connection_count -= 1

        self._notify(LinkRemoved(source=source, target=target))
        return True

    def get_node(self, file_path: str) -> Optional[GraphNode]:
        return self._nodes.get(file_path)

    def has_node(self, file_path: str) -> bool:
        return file_path in self._nodes

    def outgoing(self, file_path: str) -> Set[str]:
        """Targets of the edges leaving ``file_path``."""
        return set(self._outgoing.get(file_path, ()))

    def edge_kind(self, source: str, target: str) -> Optional[EdgeKind]:
        edge = self._edges.get((source, target))
        return edge.kind if edge else None

    def __len__(self) -> int:
        return len(self._nodes)

    def snapshot(self) -> GraphData:
        """Get a copy of the complete graph."""
        return GraphData(
            nodes=[dataclasses.replace(node) for node in self._nodes.values()],
            links=[dataclasses.replace(edge) for edge in self._edges.values()],
        )

    def stats(self) -> GraphStats:
        """Get aggregate graph statistics."""
        last_change_time = None
        if self._nodes:
            last_change_time = max(node.last_modified for node in self._nodes.values())

        return GraphStats(
            file_count=len(self._nodes),
            connection_count=len(self._edges),
            change_count=sum(self._change_frequency.values()),
            last_change_time=last_change_time,
        )
