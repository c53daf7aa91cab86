"""Shared helpers for the test suite."""

import asyncio
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from codesynapse.graph.graph_store import GraphStore
from codesynapse.server.channel import QueueChannel


def write_file(root: Path, relative_path: str, content: str = "") -> Path:
    """Create ``relative_path`` under ``root`` with ``content``."""
    path = root / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def degree_violations(store: GraphStore) -> Dict[str, tuple]:
    """Nodes whose connection_count differs from the degree recomputed from the edges."""
    snapshot = store.snapshot()
    degree = {node.id: 0 for node in snapshot.nodes}
    for edge in snapshot.links:
        degree[edge.source] += 1
        if edge.target != edge.source:
            degree[edge.target] += 1
    return {
        node.id: (node.connection_count, degree[node.id])
        for node in snapshot.nodes
        if node.connection_count != degree[node.id]
    }


def edge_set(store: GraphStore) -> set:
    return {(edge.source, edge.target, edge.kind) for edge in store.snapshot().links}


async def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll ``predicate`` on the event loop until it holds or ``timeout`` passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


def messages_of(channel: QueueChannel, event: Optional[str] = None) -> List:
    """Take everything pushed so far, optionally only one event type."""
    messages = channel.drain_nowait()
    if event is None:
        return messages
    return [m for m in messages if m.event == event]
