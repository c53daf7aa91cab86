import os
from typing import Dict, Iterator, List, Optional, Tuple

from tree_sitter import Node, Parser, Tree
from tree_sitter_language_pack import get_language

from ..config import settings
from ..types import EdgeKind
from ..utils.logger import app_logger
from .path_resolver import PathResolver


# TSX accepts TypeScript and JSX, so every file is parsed with it first. A tree
# with errors is retried with the narrower grammars of its extension; `<T>x`
# casts, for one, only parse as plain TypeScript.
SUPERSET_GRAMMAR = "tsx"

EXTENSION_GRAMMARS = {
    ".js": ["typescript", "javascript"],
    ".jsx": ["javascript"],
    ".mjs": ["typescript", "javascript"],
    ".cjs": ["typescript", "javascript"],
    ".ts": ["typescript"],
    ".tsx": [],
}

Dependencies = Dict[str, EdgeKind]


class DependencyExtractor:
    """Extract the files a JavaScript/TypeScript module statically depends on.

    Recognized forms:
        import x from './a'          (static)
        import './a'                 (static)
        export { x } from './a'      (static)
        export * from './a'          (static)
        import('./a')                (dynamic)
        require('./a')               (dynamic)
        import x = require('./a')    (dynamic, TypeScript)

    Only string literal specifiers are considered. Unresolvable specifiers are
    dropped and each target appears once in the result.
    """

    def __init__(
        self,
        resolver: Optional[PathResolver] = None,
        extensions: Optional[List[str]] = None,
        max_file_size: Optional[int] = None,
    ):
        self.logger = app_logger.bind(component="dependency_extractor")
        self.resolver = resolver or PathResolver()
        self.supported_extensions = set(extensions if extensions is not None else settings.supported_extensions_list)
        self.max_file_size = max_file_size if max_file_size is not None else settings.max_file_size
        self.parsers: Dict[str, Optional[Parser]] = {}

    def _get_parser(self, grammar: str) -> Optional[Parser]:
        """Get a cached tree-sitter parser for ``grammar``."""
        if grammar in self.parsers:
            return self.parsers[grammar]
        try:
            parser = Parser(get_language(grammar))
        except Exception as e:
            # Without a grammar no file of this kind yields dependencies
            self.logger.error(f"Failed to initialize parser for {grammar}: {e}")
            parser = None
        else:
            self.logger.info(f"Initialized parser for {grammar}")
        self.parsers[grammar] = parser
        return parser

    def _grammars_for(self, file_path: str) -> List[str]:
        ext = os.path.splitext(file_path)[1].lower()
        return [SUPERSET_GRAMMAR] + EXTENSION_GRAMMARS[ext]

    def _parse(self, source: bytes, file_path: str) -> Optional[Tree]:
        """Parse with the first grammar that accepts ``source`` without errors."""
        for grammar in self._grammars_for(file_path):
            parser = self._get_parser(grammar)
            if parser is None:
                continue
            tree = parser.parse(source)
            if not tree.root_node.has_error:
                return tree
        return None

    def supports(self, file_path: str) -> bool:
        ext = os.path.splitext(file_path)[1].lower()
        return ext in self.supported_extensions and ext in EXTENSION_GRAMMARS

    def parse_file(self, file_path: str) -> Dependencies:
        """Read ``file_path`` from disk and extract its dependencies."""
        if not self.supports(file_path):
            return {}

        try:
            if os.path.getsize(file_path) > self.max_file_size:
                self.logger.warning(f"Skipping large file: {file_path}")
                return {}
            with open(file_path, "r", encoding="utf-8", errors="ignore") as f:
                content = f.read()
        except OSError as e:
            self.logger.debug(f"Could not read {file_path}: {e}")
            return {}

        return self.extract(content, file_path)

    def extract(self, content: str, file_path: str) -> Dependencies:
        """Extract resolved dependencies from ``content`` written at ``file_path``."""
        if not self.supports(file_path):
            return {}

        tree = self._parse(content.encode("utf-8"), file_path)
        if tree is None:
            self.logger.debug(f"Syntax errors in {file_path}, treating it as having no dependencies")
            return {}

        dependencies: Dependencies = {}
        for specifier, kind in self._iter_specifiers(tree.root_node):
            resolved = self.resolver.resolve(specifier, file_path)
            if resolved is None:
                continue
            # A target reached both ways is recorded as a static import
            if dependencies.get(resolved) is not EdgeKind.STATIC_IMPORT:
                dependencies[resolved] = kind

        return dependencies

    def _iter_specifiers(self, root: Node) -> Iterator[Tuple[str, EdgeKind]]:
        """Walk the syntax tree and yield every literal import specifier."""
        stack = [root]
        while stack:
            node = stack.pop()

            if node.type == "import_statement":
                source = node.child_by_field_name("source")
                if source is not None:
                    yield from self._literal(source, EdgeKind.STATIC_IMPORT)
                else:
                    for child in node.named_children:
                        if child.type == "import_require_clause":
                            yield from self._literal(child.child_by_field_name("source"), EdgeKind.DYNAMIC_REQUIRE)
                continue

            if node.type == "export_statement":
                source = node.child_by_field_name("source")
                if source is not None:
                    yield from self._literal(source, EdgeKind.STATIC_IMPORT)
                    continue

            if node.type == "call_expression":
                specifier = self._call_specifier(node)
                if specifier is not None:
                    yield specifier

            stack.extend(reversed(node.children))

    def _call_specifier(self, node: Node) -> Optional[Tuple[str, EdgeKind]]:
        """Specifier of a require('x') or import('x') call, if literal."""
        function = node.child_by_field_name("function")
        arguments = node.child_by_field_name("arguments")
        if function is None or arguments is None:
            return None

        if function.type == "import":
            kind = EdgeKind.DYNAMIC_REQUIRE
        elif function.type == "identifier" and function.text == b"require":
            kind = EdgeKind.DYNAMIC_REQUIRE
        else:
            return None

        args = arguments.named_children
        if not args:
            return None
        return next(iter(self._literal(args[0], kind)), None)

    @staticmethod
    def _literal(node: Optional[Node], kind: EdgeKind) -> Iterator[Tuple[str, EdgeKind]]:
        if node is None or node.type != "string":
            return
        text = node.text.decode("utf-8", errors="ignore")
        # Strip the quotes
        yield text[1:-1], kind
