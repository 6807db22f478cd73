"""Per-item conversion: spec -> normalized JSON -> collection -> docs.

Each stage writes its artifact under ``<data_dir>/<stage>/<item id>`` and
returns a Result. A failed stage stops the item but leaves earlier artifacts
in place. Re-processing an item overwrites its outputs.
"""

import json
import logging
import os
from typing import Callable, Optional, Tuple, Union

from .collection import Collection, read_collection, write_collection
from .config import AppConfig
from .converter import convert
from .downloader import Downloader
from .errors import (CatalogError, ConversionFailure, ErrorKind, InvalidSpecFormat, NetworkFailure,
                     RenderFailure)
from .models import ConversionResult, DiscoveredItem
from .normalizer import ParsedSpec, normalize
from .renderer import RenderOptions, render
from .result import Result

logger = logging.getLogger("bruno_catalog")


def _write_atomic(path: str, text: str):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        f.write(text)
    os.replace(tmp_path, path)


class ConversionPipeline:
    def __init__(self, config: AppConfig, downloader: Optional[Downloader] = None,
                 converter: Callable[[dict], Collection] = convert,
                 renderer: Callable[[Collection, RenderOptions, str], str] = render):
        self.config = config
        self.downloader = downloader or Downloader(config)
        self.converter = converter
        self.renderer = renderer

    async def close(self):
        await self.downloader.close()

    # -- stages -------------------------------------------------------------

    async def acquire_spec(self, item: DiscoveredItem) -> Result[Tuple[str, ParsedSpec]]:
        openapi_path = os.path.join(self.config.openapi_dir, f"{item.id}.json")
        hint = item.file_path or item.download_url
        try:
            raw: Union[str, bytes]
            if item.spec is not None:
                try:
                    raw = json.dumps(item.spec)
                except (TypeError, ValueError) as e:
                    raise InvalidSpecFormat(f"Spec for {item.name} is not JSON-serializable: {e}") from e
            elif item.raw_text is not None:
                raw = item.raw_text
            elif not item.download_url:
                raise NetworkFailure(f"No download URL for {item.name}")
            else:
                logger.info(f"  Downloading OpenAPI spec from {item.download_url}")
                raw = await self.downloader.fetch_bytes(item.download_url)

            parsed = normalize(raw, hint_extension=hint)
            if parsed.source_format == "yaml":
                logger.info("  Converting YAML to JSON...")
            _write_atomic(openapi_path, parsed.canonical_json)
        except CatalogError as e:
            return Result.from_error(e)
        except OSError as e:
            return Result.err(ErrorKind.STORAGE, f"Failed to save spec to {openapi_path}: {e}")
        return Result.ok((openapi_path, parsed))

    def build_collection(self, item: DiscoveredItem,
                         parsed: ParsedSpec) -> Result[Tuple[str, Collection]]:
        collection_path = os.path.join(self.config.collections_dir, item.id)
        try:
            tree = self.converter(parsed.document)
        except ConversionFailure as e:
            return Result.from_error(e)
        except Exception as e:
            # The converter is pluggable; anything it raises is a conversion failure.
            return Result.err(ErrorKind.CONVERSION, f"Failed to convert to collection: {e}")

        try:
            write_collection(tree, collection_path)
        except OSError as e:
            return Result.err(ErrorKind.CONVERSION, f"Failed to write collection: {e}")
        return Result.ok((collection_path, tree))

    def build_docs(self, item_id: str, title: str, tree: Collection,
                   source_url: Optional[str]) -> Result[str]:
        docs_path = os.path.join(self.config.docs_dir, item_id)
        options = RenderOptions(theme=self.config.render.theme, title=title, source_url=source_url)
        try:
            self.renderer(tree, options, docs_path)
        except RenderFailure as e:
            return Result.from_error(e)
        except Exception as e:
            return Result.err(ErrorKind.RENDER, f"Failed to generate documentation: {e}")
        return Result.ok(docs_path)

    # -- composition --------------------------------------------------------

    def _fail(self, name: str, result: ConversionResult, stage: str,
              failed: Result) -> ConversionResult:
        result.success = False
        result.failed_stage = stage
        result.error_kind = failed.kind.value
        result.error_message = f"{stage}: {failed.message}"
        logger.error(f"✗ Error processing {name}: {result.error_message}")
        return result

    async def process(self, item: DiscoveredItem) -> ConversionResult:
        """Run all stages for one item. Never raises."""
        logger.info(f"=== Processing: {item.name} ===")
        result = ConversionResult(item_id=item.id, success=False)

        logger.info("1. Acquiring OpenAPI spec...")
        spec = await self.acquire_spec(item)
        if not spec.is_ok:
            return self._fail(item.name, result, "download", spec)
        result.openapi_path, parsed = spec.value

        logger.info("2. Converting to collection...")
        collection = self.build_collection(item, parsed)
        if not collection.is_ok:
            return self._fail(item.name, result, "convert", collection)
        result.collection_path, tree = collection.value

        logger.info("3. Generating documentation...")
        docs = self.build_docs(item.id, item.name, tree, item.github_url or item.source_url)
        if not docs.is_ok:
            return self._fail(item.name, result, "render", docs)
        result.docs_path = docs.value

        result.success = True
        logger.info(f"✓ Successfully processed {item.name}")
        return result

    def regenerate_docs(self, api: dict) -> ConversionResult:
        """Re-render docs for a cataloged API from its existing collection directory."""
        result = ConversionResult(
            item_id=api["id"], success=False,
            openapi_path=api.get("openapi_path"),
            collection_path=api.get("collection_path"),
        )
        path = api.get("collection_path")
        if not path or not os.path.isdir(path):
            result.failed_stage = "render"
            result.error_kind = ErrorKind.RENDER.value
            result.error_message = f"Collection not found for {api['name']}"
            logger.warning(f"⚠ {result.error_message}, skipping")
            return result

        try:
            tree = read_collection(path)
        except (OSError, ValueError) as e:
            failed = Result.err(ErrorKind.RENDER, f"Unreadable collection: {e}")
            return self._fail(api["name"], result, "render", failed)

        docs = self.build_docs(api["id"], api["name"], tree, api.get("github_url") or api.get("source_url"))
        if not docs.is_ok:
            return self._fail(api["name"], result, "render", docs)
        result.docs_path = docs.value
        result.success = True
        logger.info(f"✓ Regenerated docs for {api['name']}")
        return result
