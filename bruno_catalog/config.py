"""YAML config loader."""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .errors import FatalConfigurationError
from .models import PopularityGate


@dataclass
class DownloadConfig:
    timeout: int = 30
    max_retries: int = 3
    backoff_factor: int = 2
    max_file_size: int = 10 * 1024 * 1024
    user_agent: str = "bruno-api-catalog/1.0.0"


@dataclass
class GitHubConfig:
    token: str = ""
    api_base: str = "https://api.github.com"
    min_stars: int = 10
    max_results: int = 1000
    file_patterns: List[str] = field(default_factory=lambda: [
        "openapi.json",
        "openapi.yaml",
        "openapi.yml",
        "swagger.json",
    ])
    per_page: int = 100
    max_pages: int = 10
    item_delay: float = 1.0
    page_delay: float = 1.0
    pattern_delay: float = 2.0
    quota_threshold: int = 2
    quota_buffer: float = 5.0
    max_retries: int = 3
    gates: Optional[List[PopularityGate]] = None


@dataclass
class APIsGuruConfig:
    list_url: str = "https://api.apis.guru/v2/list.json"
    delay: float = 1.0
    skip_existing: bool = True


@dataclass
class RenderConfig:
    theme: str = "light"


@dataclass
class AppConfig:
    data_dir: str = "data"
    db_path: str = "data/catalog.db"
    log_dir: str = "logs"
    download: DownloadConfig = field(default_factory=DownloadConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    apisguru: APIsGuruConfig = field(default_factory=APIsGuruConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    categories: Optional[Dict[str, List[str]]] = None

    @property
    def openapi_dir(self) -> str:
        return os.path.join(self.data_dir, "openapi")

    @property
    def collections_dir(self) -> str:
        return os.path.join(self.data_dir, "collections")

    @property
    def docs_dir(self) -> str:
        return os.path.join(self.data_dir, "docs")

    def ensure_dirs(self):
        for path in (self.openapi_dir, self.collections_dir, self.docs_dir):
            try:
                os.makedirs(path, exist_ok=True)
            except OSError as e:
                raise FatalConfigurationError(f"Unusable data directory {path}: {e}") from e
            if not os.access(path, os.W_OK):
                raise FatalConfigurationError(f"Data directory is not writable: {path}")


def _pick(cls, raw: dict) -> dict:
    return {k: v for k, v in (raw or {}).items() if k in cls.__dataclass_fields__}


def _load_gates(raw_gates) -> Optional[List[PopularityGate]]:
    if not raw_gates:
        return None
    gates = []
    for g in raw_gates:
        try:
            gates.append(PopularityGate(
                min_score=int(g["min"]),
                max_score=None if g.get("max") is None else int(g["max"]),
                label=str(g.get("label", "")),
            ))
        except (KeyError, TypeError, ValueError) as e:
            raise FatalConfigurationError(f"Invalid popularity gate {g!r}: {e}") from e
    return gates


def load_config(config_path: str = "config.yaml") -> AppConfig:
    load_dotenv()

    raw = {}
    if os.path.exists(config_path):
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

    download = DownloadConfig(**_pick(DownloadConfig, raw.get("download")))

    gh_raw = dict(raw.get("github") or {})
    gates = _load_gates(gh_raw.pop("gates", None))
    github = GitHubConfig(**_pick(GitHubConfig, gh_raw))
    github.gates = gates
    github.token = os.environ.get("GITHUB_TOKEN", github.token)

    apisguru = APIsGuruConfig(**_pick(APIsGuruConfig, raw.get("apisguru")))
    render = RenderConfig(**_pick(RenderConfig, raw.get("render")))

    return AppConfig(
        data_dir=os.environ.get("CATALOG_DATA_DIR", raw.get("data_dir", "data")),
        db_path=os.environ.get("CATALOG_DB_PATH", raw.get("db_path", "data/catalog.db")),
        log_dir=raw.get("log_dir", "logs"),
        download=download,
        github=github,
        apisguru=apisguru,
        render=render,
        categories=raw.get("categories"),
    )
