import sys
from pathlib import Path

import pytest

# Add the repository root to the path for the root-level modules
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from codesynapse.graph.graph_store import GraphStore
from codesynapse.processor.dependency_extractor import DependencyExtractor
from codesynapse.processor.path_resolver import PathResolver
from codesynapse.server.channel import QueueChannel
from codesynapse.tests.helpers import write_file


@pytest.fixture
def store() -> GraphStore:
    return GraphStore()


@pytest.fixture
def resolver() -> PathResolver:
    return PathResolver()


@pytest.fixture
def extractor() -> DependencyExtractor:
    return DependencyExtractor()


@pytest.fixture
def channel() -> QueueChannel:
    return QueueChannel()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Two-file project: a.ts imports ./b, b.ts imports nothing."""
    root = tmp_path / "project"
    root.mkdir()
    write_file(root, "a.ts", "import { b } from './b';\n\nexport const a = b + 1;\n")
    write_file(root, "b.ts", "export const b = 1;\n")
    return root


@pytest.fixture
def sample_codebase(tmp_path: Path) -> Path:
    """A small mixed JavaScript/TypeScript codebase."""
    root = tmp_path / "codebase"
    root.mkdir()

    write_file(root, "src/index.ts", """
import { App } from './App';
import { formatDate } from './utils';
import './styles.css';
import React from 'react';

export * from './types';

const lazy = () => import('./lazy');

export default App;
""")

    write_file(root, "src/App.tsx", """
import React from 'react';
import { Button } from './components/Button';
import { formatDate } from './utils/index';

export function App() {
    return <Button label={formatDate(new Date())} />;
}
""")

    write_file(root, "src/components/Button.tsx", """
import React from 'react';

export const Button = ({ label }: { label: string }) => <button>{label}</button>;
""")

    write_file(root, "src/utils/index.ts", """
const path = require('path');
const helpers = require('./helpers');

export function formatDate(d: Date): string {
    return helpers.pad(d.getDate());
}
""")

    write_file(root, "src/utils/helpers.js", """
module.exports = { pad: (n) => String(n).padStart(2, '0') };
""")

    write_file(root, "src/types.ts", "export interface User { name: string; }\n")
    write_file(root, "src/lazy.ts", "export const later = true;\n")
    write_file(root, "src/styles.css", "body { margin: 0; }\n")
    write_file(root, "README.md", "# Sample\n")

    # Never part of the graph
    write_file(root, "node_modules/react/index.js", "module.exports = {};\n")
    write_file(root, "dist/bundle.js", "require('./chunk');\n")
    write_file(root, ".git/HEAD", "ref: refs/heads/main\n")

    return root
