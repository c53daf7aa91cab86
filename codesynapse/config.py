from pathlib import Path
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Server Configuration
    host: str = Field(default="localhost")
    port: int = Field(default=3004)
    cors_origins: str = Field(default="http://localhost:3000")
    client_build_path: str = Field(default="client/build")

    # Dependency Extraction Configuration
    # Order matters: it is the probing priority used by the path resolver.
    supported_extensions: str = Field(default=".js,.jsx,.ts,.tsx,.mjs,.cjs")
    max_file_size: int = Field(default=10 * 1024 * 1024)

    # Watcher Configuration
    default_ignore_patterns: str = Field(
        default=".git,.svn,.hg,node_modules,bower_components,dist,build,out,.next,coverage,.cache,tmp,__pycache__,.venv,.DS_Store,Thumbs.db"
    )
    stability_threshold_ms: int = Field(default=300)
    stats_debounce_ms: int = Field(default=500)

    # Version Control Configuration
    diff_cache_ttl: float = Field(default=5.0)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_file: str = Field(default="logs/codesynapse.log")

    @property
    def supported_extensions_list(self) -> List[str]:
        """Get supported extensions as a list, in resolution priority order."""
        return [ext.strip() for ext in self.supported_extensions.split(",") if ext.strip()]

    @property
    def default_ignore_patterns_list(self) -> List[str]:
        """Get default ignore patterns as a list."""
        return [p.strip() for p in self.default_ignore_patterns.split(",") if p.strip()]

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        return Path(self.log_file).parent

    def ensure_directories(self):
        """Ensure necessary directories exist."""
        self.log_dir.mkdir(parents=True, exist_ok=True)


settings = Settings()
settings.ensure_directories()
