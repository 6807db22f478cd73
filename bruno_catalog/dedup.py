"""In-memory dedup index, scoped to one crawl run."""

from typing import Set


def dedup_key(owner: str, repo: str, path: str) -> str:
    return f"{owner}/{repo}/{path}"


class DedupIndex:
    def __init__(self):
        self._keys: Set[str] = set()

    def has(self, key: str) -> bool:
        return key in self._keys

    def add(self, key: str):
        self._keys.add(key)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __len__(self) -> int:
        return len(self._keys)
