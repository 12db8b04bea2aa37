"""Configuration loading and management."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

DEFAULT_SOURCE_PATHS: dict[str, list[str]] = {
    "claude_code": ["~/.claude/projects"],
    "pi": ["~/.pi/agent/sessions"],
}


@dataclass
class SourceConfig:
    enabled: bool = True
    paths: list[str] = field(default_factory=list)


def _default_sources() -> dict[str, SourceConfig]:
    return {
        name: SourceConfig(enabled=True, paths=list(paths))
        for name, paths in DEFAULT_SOURCE_PATHS.items()
    }


@dataclass
class ArchiveConfig:
    archive_path: Path = field(default_factory=lambda: Path.home() / ".session-recall" / "archive")
    state_db: Path = field(
        default_factory=lambda: Path.home() / ".session-recall" / "state" / "index.db"
    )
    # A partial copy older than this is assumed abandoned by a crashed sync
    partial_stale_seconds: int = 600
    sources: dict[str, SourceConfig] = field(default_factory=_default_sources)


@dataclass
class TypesenseConfig:
    host: str = "localhost"
    port: int = 8108
    protocol: str = "http"
    api_key: str = "dev-api-key"
    collection: str = "exchanges"


@dataclass
class EmbeddingConfig:
    model: str = "all-MiniLM-L6-v2"
    dimensions: int = 384
    device: str = "cpu"


@dataclass
class SearchConfig:
    min_similarity: float = 0.25
    candidate_pool: int = 30
    snippet_length: int = 200


@dataclass
class Config:
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    typesense: TypesenseConfig = field(default_factory=TypesenseConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    search: SearchConfig = field(default_factory=SearchConfig)


def expand_env_var(value: str) -> str:
    """Expand environment variables in string (e.g. ${VAR})."""
    if value.startswith("${") and value.endswith("}"):
        env_var = value[2:-1]
        return os.environ.get(env_var, value)
    return value


def expand_path(path_str: str | Path) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expandvars(os.path.expanduser(str(path_str))))


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from YAML file."""
    if config_path is None:
        # Look for config in standard locations
        search_paths = [
            Path.cwd() / "config.yaml",
            Path.home() / ".config" / "session-recall" / "config.yaml",
            Path("/etc/session-recall/config.yaml"),
        ]
        for path in search_paths:
            if path.exists():
                config_path = path
                break

    if config_path is None or not config_path.exists():
        return Config()

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    defaults = Config()

    # Parse archive config, including the provider source layouts
    archive_data = data.get("archive", {})
    sources = _default_sources()
    for name, src_data in archive_data.get("sources", {}).items():
        src_data = src_data or {}
        sources[name] = SourceConfig(
            enabled=src_data.get("enabled", True),
            paths=src_data.get("paths", DEFAULT_SOURCE_PATHS.get(name, [])),
        )

    archive = ArchiveConfig(
        archive_path=expand_path(archive_data.get("archive_path", defaults.archive.archive_path)),
        state_db=expand_path(archive_data.get("state_db", defaults.archive.state_db)),
        partial_stale_seconds=archive_data.get(
            "partial_stale_seconds", defaults.archive.partial_stale_seconds
        ),
        sources=sources,
    )

    # Parse typesense config
    ts_data = data.get("typesense", {})
    typesense = TypesenseConfig(
        host=ts_data.get("host", "localhost"),
        port=ts_data.get("port", 8108),
        protocol=ts_data.get("protocol", "http"),
        api_key=expand_env_var(ts_data.get("api_key", "dev-api-key")),
        collection=ts_data.get("collection", "exchanges"),
    )

    emb_data = data.get("embedding", {})
    embedding = EmbeddingConfig(
        model=emb_data.get("model", defaults.embedding.model),
        dimensions=emb_data.get("dimensions", defaults.embedding.dimensions),
        device=emb_data.get("device", defaults.embedding.device),
    )

    search_data = data.get("search", {})
    search = SearchConfig(
        min_similarity=float(search_data.get("min_similarity", defaults.search.min_similarity)),
        candidate_pool=search_data.get("candidate_pool", defaults.search.candidate_pool),
        snippet_length=search_data.get("snippet_length", defaults.search.snippet_length),
    )

    return Config(
        archive=archive,
        typesense=typesense,
        embedding=embedding,
        search=search,
    )
