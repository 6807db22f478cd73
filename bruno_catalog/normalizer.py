"""Validate and normalize downloaded OpenAPI/Swagger documents to canonical JSON."""

import json
from dataclasses import dataclass
from typing import Optional, Union

import yaml

from .errors import InvalidSpecFormat

YAML_EXTENSIONS = (".yaml", ".yml")


@dataclass(frozen=True)
class ParsedSpec:
    document: dict
    canonical_json: str
    spec_version: str
    source_format: str  # "json" or "yaml"

    @property
    def is_swagger(self) -> bool:
        return self.spec_version.startswith("2")


def _parse_json(text: str):
    return json.loads(text)


def _parse_yaml(text: str):
    return yaml.safe_load(text)


def to_canonical_json(document: dict) -> str:
    # YAML can produce dates and other non-JSON scalars
    return json.dumps(document, indent=2, ensure_ascii=False, default=str)


def spec_version_of(document: dict) -> Optional[str]:
    version = document.get("openapi") or document.get("swagger")
    return str(version) if version else None


def normalize(raw: Union[bytes, str], hint_extension: Optional[str] = None) -> ParsedSpec:
    """Parse JSON or YAML and check it is an OpenAPI/Swagger document.

    JSON is tried first (cheap, common) unless the hint says YAML.
    Raises InvalidSpecFormat.
    """
    if isinstance(raw, bytes):
        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise InvalidSpecFormat(f"Spec is not valid UTF-8: {e}") from e
    else:
        text = raw

    if not text.strip():
        raise InvalidSpecFormat("Spec is empty")

    parsers = [("json", _parse_json), ("yaml", _parse_yaml)]
    if hint_extension and hint_extension.lower().endswith(YAML_EXTENSIONS):
        parsers.reverse()

    document = None
    source_format = None
    for fmt, parse in parsers:
        try:
            document = parse(text)
        except (ValueError, RecursionError, yaml.YAMLError):
            continue
        source_format = fmt
        break

    if source_format is None:
        raise InvalidSpecFormat("Downloaded file is not a valid OpenAPI spec (not JSON or YAML)")
    if not isinstance(document, dict):
        raise InvalidSpecFormat("Not a valid OpenAPI specification (top level is not a mapping)")

    version = spec_version_of(document)
    if not version:
        raise InvalidSpecFormat("Not a valid OpenAPI specification (missing openapi/swagger field)")

    try:
        canonical = to_canonical_json(document)
    except (TypeError, ValueError, RecursionError) as e:
        # safe_load accepts non-string keys and self-referencing anchors
        raise InvalidSpecFormat(f"Spec cannot be represented as JSON: {e}") from e

    return ParsedSpec(
        document=document,
        canonical_json=canonical,
        spec_version=version,
        source_format=source_format,
    )
