import importlib
import sys
from pathlib import Path

import pytest

from codesynapse.config import Settings


class TestRequirements:
    """Test that all required dependencies are available."""

    def test_python_version(self):
        """Test Python version is supported."""
        assert sys.version_info >= (3, 9), f"Python 3.9+ required, got {sys.version_info}"

    @pytest.mark.parametrize("module_name", [
        "fastapi",
        "uvicorn",
        "pydantic",
        "pydantic_settings",
        "loguru",
        "watchdog",
        "tree_sitter",
        "tree_sitter_language_pack",
    ])
    def test_core_dependencies(self, module_name):
        """Test that core dependencies can be imported."""
        importlib.import_module(module_name)

    @pytest.mark.parametrize("grammar", ["javascript", "typescript", "tsx"])
    def test_tree_sitter_grammars(self, grammar):
        """Every grammar the extractor maps an extension to must load."""
        from tree_sitter import Parser
        from tree_sitter_language_pack import get_language

        parser = Parser(get_language(grammar))
        tree = parser.parse(b"import a from './a';\n")
        assert not tree.root_node.has_error


class TestSettings:
    """Configuration defaults and environment overrides."""

    def test_defaults(self, monkeypatch):
        for var in ("PORT", "SUPPORTED_EXTENSIONS", "DEFAULT_IGNORE_PATTERNS", "STABILITY_THRESHOLD_MS"):
            monkeypatch.delenv(var, raising=False)

        settings = Settings(_env_file=None)

        assert settings.port == 3004
        assert settings.supported_extensions_list == [".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs"]
        assert "node_modules" in settings.default_ignore_patterns_list
        assert ".git" in settings.default_ignore_patterns_list
        assert settings.stability_threshold_ms == 300
        assert settings.stats_debounce_ms == 500
        assert settings.diff_cache_ttl == 5.0

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("PORT", "4100")
        monkeypatch.setenv("SUPPORTED_EXTENSIONS", ".ts, .js ,")
        monkeypatch.setenv("CORS_ORIGINS", "http://a.test,http://b.test")

        settings = Settings(_env_file=None)

        assert settings.port == 4100
        assert settings.supported_extensions_list == [".ts", ".js"]
        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_ensure_directories(self, tmp_path):
        settings = Settings(_env_file=None, log_file=str(tmp_path / "nested" / "logs" / "app.log"))

        settings.ensure_directories()

        assert settings.log_dir.is_dir()


class TestPackaging:
    """Project metadata in pyproject.toml."""

    @pytest.fixture
    def project(self):
        tomllib = pytest.importorskip("tomllib")
        pyproject = Path(__file__).resolve().parents[2] / "pyproject.toml"
        with open(pyproject, "rb") as f:
            return tomllib.load(f)["project"]

    def test_readme_points_at_a_real_file(self, project):
        readme = project.get("readme")
        if readme is not None:
            assert (Path(__file__).resolve().parents[2] / readme).is_file()

    def test_language_pack_stays_below_runtime_download_releases(self, project):
        pins = [d for d in project["dependencies"] if d.startswith("tree-sitter-language-pack")]

        assert pins == ["tree-sitter-language-pack>=0.6,<1"]
