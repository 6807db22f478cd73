"""Data models for discovery, conversion, and scrape runs."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Candidate:
    owner: str
    repo_name: str
    path: str
    search_rank: int = 0


@dataclass(frozen=True)
class PopularityGate:
    min_score: int
    max_score: Optional[int] = None  # None = unbounded
    label: str = ""

    def covers(self, score: int) -> bool:
        if score < self.min_score:
            return False
        return self.max_score is None or score <= self.max_score

    def qualifier(self, field_name: str = "stars") -> str:
        if self.max_score is None:
            return f"{field_name}:>={self.min_score}"
        if self.min_score == self.max_score:
            return f"{field_name}:{self.min_score}"
        return f"{field_name}:{self.min_score}..{self.max_score}"


@dataclass(frozen=True)
class SubQuery:
    pattern: str
    gate: PopularityGate
    query: str


@dataclass(frozen=True)
class DiscoveredItem:
    name: str
    source: str
    download_url: str
    description: str = ""
    version: str = "1.0.0"
    source_url: str = ""
    github_url: Optional[str] = None
    popularity_score: int = 0
    spec: Optional[dict] = None
    raw_text: Optional[str] = None
    repo_owner: str = ""
    repo_name: str = ""
    file_path: str = ""
    provider: str = ""
    logo_url: Optional[str] = None
    categories: tuple = ()
    openapi_version: str = ""
    id: str = field(default_factory=new_id)
    discovered_at: str = field(default_factory=utcnow)

    @property
    def dedup_key(self) -> str:
        if self.repo_owner:
            return f"{self.repo_owner}/{self.repo_name}/{self.file_path}"
        return f"{self.source}/{self.name}/{self.version}"


@dataclass
class ConversionResult:
    item_id: str
    success: bool
    openapi_path: Optional[str] = None
    collection_path: Optional[str] = None
    docs_path: Optional[str] = None
    error_message: Optional[str] = None
    error_kind: Optional[str] = None
    failed_stage: Optional[str] = None


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ScrapeRun:
    source: str
    id: str = field(default_factory=new_id)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    items_found: int = 0
    items_processed: int = 0
    items_failed: int = 0
    status: RunStatus = RunStatus.PENDING
    errors: List[dict] = field(default_factory=list)
