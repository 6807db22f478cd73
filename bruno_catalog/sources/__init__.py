"""Source registry."""

from .apisguru import APIsGuruSource
from .base import BaseSource, DiscoveryOptions
from .github import GitHubSource

ALL_SOURCES = {
    "github": GitHubSource,
    "apisguru": APIsGuruSource,
}

__all__ = [
    "ALL_SOURCES", "APIsGuruSource", "BaseSource", "DiscoveryOptions", "GitHubSource", "create_source",
]


def create_source(name, config, db=None, downloader=None, **kwargs) -> BaseSource:
    try:
        source_cls = ALL_SOURCES[name]
    except KeyError:
        raise ValueError(f"Unknown source: {name}") from None
    return source_cls(config, db=db, downloader=downloader, **kwargs)
