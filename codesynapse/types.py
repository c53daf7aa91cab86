from typing import List, Dict, Any, Optional, Tuple, Union, ClassVar
from dataclasses import dataclass, field
from enum import Enum
import os


class FileType(Enum):
    """File type enumeration."""
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    JSON = "json"
    STYLE = "style"
    MARKUP = "markup"
    MARKDOWN = "markdown"
    TEXT = "text"
    CONFIG = "config"
    OTHER = "other"

    @classmethod
    def from_path(cls, file_path: str) -> "FileType":
        """Classify a file by its extension."""
        name = os.path.basename(file_path).lower()
        ext = os.path.splitext(name)[1]
        # ".env" has no extension as far as splitext is concerned
        if not ext and name.startswith("."):
            ext = name
        return _EXTENSION_FILE_TYPES.get(ext, cls.OTHER)


_EXTENSION_FILE_TYPES = {
    ".js": FileType.JAVASCRIPT,
    ".jsx": FileType.JAVASCRIPT,
    ".mjs": FileType.JAVASCRIPT,
    ".cjs": FileType.JAVASCRIPT,
    ".ts": FileType.TYPESCRIPT,
    ".tsx": FileType.TYPESCRIPT,
    ".json": FileType.JSON,
    ".css": FileType.STYLE,
    ".scss": FileType.STYLE,
    ".sass": FileType.STYLE,
    ".less": FileType.STYLE,
    ".html": FileType.MARKUP,
    ".md": FileType.MARKDOWN,
    ".txt": FileType.TEXT,
    ".yml": FileType.CONFIG,
    ".yaml": FileType.CONFIG,
    ".toml": FileType.CONFIG,
    ".env": FileType.CONFIG,
}


class EdgeKind(Enum):
    """Kind of dependency an edge represents. Values are the client wire names."""
    STATIC_IMPORT = "import"
    DYNAMIC_REQUIRE = "require"


class ChangeKind(Enum):
    """Normalized filesystem change kinds emitted by the watcher."""
    ADD = "add"
    MODIFY = "modify"
    DELETE = "delete"


class DiffStatus(Enum):
    """Version control state of a file."""
    MODIFIED = "modified"
    UNTRACKED = "untracked"
    UNCHANGED = "unchanged"
    DISABLED = "disabled"


@dataclass
class GraphNode:
    """Represents one tracked file in the dependency graph."""
    id: str
    name: str
    file_type: FileType
    size: int = 0
    last_modified: float = 0.0
    connection_count: int = 0
    change_frequency: int = 0

    @property
    def path(self) -> str:
        return self.id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the client wire format."""
        return {
            "id": self.id,
            "name": self.name,
            "path": self.id,
            "type": self.file_type.value,
            "size": self.size,
            "lastModified": self.last_modified,
            "connections": self.connection_count,
            "changeFrequency": self.change_frequency,
        }


@dataclass
class GraphEdge:
    """Represents a directed dependency between two files."""
    source: str
    target: str
    kind: EdgeKind = EdgeKind.STATIC_IMPORT

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source, self.target)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the client wire format."""
        return {
            "source": self.source,
            "target": self.target,
            "type": self.kind.value,
        }


@dataclass
class GraphData:
    """A full copy of the graph."""
    nodes: List[GraphNode]
    links: List[GraphEdge]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "links": [link.to_dict() for link in self.links],
        }


@dataclass
class GraphStats:
    """Aggregate counters over the graph."""
    file_count: int
    connection_count: int
    change_count: int
    # None until at least one node exists
    last_change_time: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fileCount": self.file_count,
            "connectionCount": self.connection_count,
            "changeCount": self.change_count,
            "lastChangeTime": self.last_change_time,
        }


@dataclass
class FileDiff:
    """Result of a version control lookup for one file."""
    status: DiffStatus
    text: Optional[str] = None


# Watcher signals

@dataclass
class FileChange:
    """A settled add/modify/delete of one file."""
    kind: ChangeKind
    path: str
    size: Optional[int] = None
    mtime: Optional[float] = None


@dataclass
class WatcherReady:
    """The initial scan has been fully delivered."""
    root: str
    file_count: int = 0


@dataclass
class WatcherError:
    """The watcher failed; during setup this means the watch did not start."""
    root: str
    message: str
    fatal: bool = True


WatcherSignal = Union[FileChange, WatcherReady, WatcherError]


# Push channel messages

@dataclass
class GraphInit:
    event: ClassVar[str] = "graph:init"
    graph: GraphData

    def to_payload(self) -> Dict[str, Any]:
        return self.graph.to_dict()


@dataclass
class NodeAdded:
    event: ClassVar[str] = "graph:nodeAdded"
    node: GraphNode

    def to_payload(self) -> Dict[str, Any]:
        return self.node.to_dict()


@dataclass
class NodeChanged:
    event: ClassVar[str] = "graph:nodeChanged"
    node_id: str
    changes: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {"nodeId": self.node_id, "changes": self.changes}


@dataclass
class NodeRemoved:
    event: ClassVar[str] = "graph:nodeRemoved"
    node_id: str

    def to_payload(self) -> Dict[str, Any]:
        return {"nodeId": self.node_id}


@dataclass
class LinkAdded:
    event: ClassVar[str] = "graph:linkAdded"
    edge: GraphEdge

    def to_payload(self) -> Dict[str, Any]:
        return self.edge.to_dict()


@dataclass
class LinkRemoved:
    event: ClassVar[str] = "graph:linkRemoved"
    source: str
    target: str

    def to_payload(self) -> Dict[str, Any]:
        return {"source": self.source, "target": self.target}


@dataclass
class StatsUpdate:
    event: ClassVar[str] = "stats:update"
    stats: GraphStats

    def to_payload(self) -> Dict[str, Any]:
        return self.stats.to_dict()


@dataclass
class DiffData:
    event: ClassVar[str] = "diff:data"
    file_path: str
    diff: str
    content: Optional[str] = None
    language: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "filePath": self.file_path,
            "diff": self.diff,
            "content": self.content,
            "language": self.language,
        }


@dataclass
class ErrorMessage:
    event: ClassVar[str] = "error"
    message: str

    def to_payload(self) -> Dict[str, Any]:
        return {"message": self.message}


GraphMutation = Union[NodeAdded, NodeChanged, NodeRemoved, LinkAdded, LinkRemoved]

PushMessage = Union[
    GraphInit,
    NodeAdded,
    NodeChanged,
    NodeRemoved,
    LinkAdded,
    LinkRemoved,
    StatsUpdate,
    DiffData,
    ErrorMessage,
]
