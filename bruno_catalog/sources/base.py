"""Abstract base class for all discovery sources."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

from ..config import AppConfig
from ..db import Database
from ..downloader import Downloader
from ..models import DiscoveredItem

logger = logging.getLogger("bruno_catalog")


@dataclass
class DiscoveryOptions:
    """Per-run overrides; ``None`` falls back to the config value."""

    min_stars: Optional[int] = None
    max_results: Optional[int] = None
    skip_existing: bool = True


class BaseSource(ABC):
    name: str = ""

    def __init__(self, config: AppConfig, db: Optional[Database] = None,
                 downloader: Optional[Downloader] = None,
                 sleep: Callable[[float], Awaitable[None]] = None):
        self.config = config
        self.db = db
        self.downloader = downloader or Downloader(config)
        self._sleep = sleep or asyncio.sleep

    def validate(self):
        """Raise FatalConfigurationError if this source cannot run."""

    @abstractmethod
    def discover(self, options: DiscoveryOptions) -> AsyncIterator[DiscoveredItem]:
        """Yield discovered items lazily; a fresh call starts over."""
        ...

    async def pause(self, seconds: float):
        if seconds > 0:
            await self._sleep(seconds)

    async def close(self):
        pass
