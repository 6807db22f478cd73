"""APIs.guru directory import: one bulk list fetch, no code search or quota tracking."""

import logging
from typing import AsyncIterator, List

from ..models import DiscoveredItem
from .base import BaseSource, DiscoveryOptions

logger = logging.getLogger("bruno_catalog")


def flatten(api_list: dict) -> List[DiscoveredItem]:
    """Turn the provider-keyed ``list.json`` into one item per preferred version."""
    items = []
    for provider_key, provider in (api_list or {}).items():
        if not isinstance(provider, dict):
            continue
        preferred = provider.get("preferred")
        version_data = (provider.get("versions") or {}).get(preferred)
        if not isinstance(version_data, dict):
            logger.warning(f"[apisguru] No preferred version found for {provider_key}")
            continue

        info = version_data.get("info") or {}
        spec_url = version_data.get("swaggerUrl") or ""
        if not spec_url:
            logger.warning(f"[apisguru] No spec URL for {provider_key}")
            continue

        source_url = spec_url
        origins = info.get("x-origin") or []
        if origins and isinstance(origins[0], dict) and origins[0].get("url"):
            source_url = origins[0]["url"]

        items.append(DiscoveredItem(
            name=str(info.get("title") or provider_key),
            description=str(info.get("description") or ""),
            version=str(info.get("version") or preferred),
            source="apis-guru",
            source_url=source_url,
            download_url=spec_url,
            popularity_score=0,
            provider=str(info.get("x-providerName") or provider_key),
            logo_url=info["x-logo"].get("url") if isinstance(info.get("x-logo"), dict) else None,
            categories=tuple(info.get("x-apisguru-categories") or ()),
            openapi_version=str(version_data.get("openapiVer") or "2.0"),
        ))
    return items


class APIsGuruSource(BaseSource):
    name = "apisguru"

    async def fetch_api_list(self) -> dict:
        logger.info(f"[{self.name}] Fetching APIs.guru catalog...")
        return await self.downloader.fetch_json(self.config.apisguru.list_url)

    async def discover(self, options: DiscoveryOptions) -> AsyncIterator[DiscoveredItem]:
        items = flatten(await self.fetch_api_list())
        logger.info(f"[{self.name}] Found {len(items)} APIs in APIs.guru catalog")

        skip_existing = options.skip_existing and self.config.apisguru.skip_existing
        emitted = skipped = 0
        for item in items:
            if options.max_results is not None and emitted >= options.max_results:
                break
            if skip_existing and self.db is not None and self.db.api_exists(item.name, item.version):
                skipped += 1
                logger.debug(f"[{self.name}] Skipping {item.name} (already exists)")
                continue
            if emitted:
                await self.pause(self.config.apisguru.delay)
            emitted += 1
            yield item

        logger.info(f"[{self.name}] Emitted {emitted} APIs, skipped {skipped} existing")
