"""OpenAPI v3 / Swagger v2 document -> request-collection tree."""

import json
import logging
import re
from typing import Dict, List, Optional

from .collection import Collection, Environment, Folder, KeyValue, Request
from .errors import ConversionFailure

logger = logging.getLogger("bruno_catalog")

OPERATION_METHODS = ("get", "post", "put", "patch", "delete", "head", "options", "trace")
_PATH_PARAM = re.compile(r"\{([^}/]+)\}")
_SERVER_VAR = re.compile(r"\{([^}]+)\}")
MAX_SAMPLE_DEPTH = 4


def resolve_ref(document: dict, obj, _seen=None):
    """Follow local ``$ref`` pointers; unresolvable refs come back unchanged."""
    seen = _seen or set()
    while isinstance(obj, dict) and isinstance(obj.get("$ref"), str):
        ref = obj["$ref"]
        if not ref.startswith("#/") or ref in seen:
            return obj
        seen.add(ref)
        target = document
        for part in ref[2:].split("/"):
            part = part.replace("~1", "/").replace("~0", "~")
            if not isinstance(target, dict) or part not in target:
                return obj
            target = target[part]
        obj = target
    return obj


def _server_urls(document: dict) -> List[dict]:
    servers = []
    if document.get("swagger"):
        host = document.get("host")
        if host:
            schemes = document.get("schemes") or ["https"]
            base_path = document.get("basePath") or ""
            servers.append({"url": f"{schemes[0]}://{host}{base_path}", "description": ""})
        return servers

    for server in document.get("servers") or []:
        if not isinstance(server, dict) or not server.get("url"):
            continue
        url = server["url"]
        variables = server.get("variables") or {}

        def _default(m):
            var = variables.get(m.group(1)) or {}
            return str(var.get("default", m.group(0)))

        servers.append({
            "url": _SERVER_VAR.sub(_default, url).rstrip("/"),
            "description": server.get("description") or "",
        })
    return servers


def sample_from_schema(document: dict, schema, depth: int = 0):
    schema = resolve_ref(document, schema)
    if not isinstance(schema, dict) or depth > MAX_SAMPLE_DEPTH:
        return None
    for key in ("example", "default"):
        if key in schema:
            return schema[key]
    if schema.get("enum"):
        return schema["enum"][0]
    for combinator in ("allOf", "oneOf", "anyOf"):
        if schema.get(combinator):
            if combinator == "allOf":
                merged = {}
                for part in schema["allOf"]:
                    sample = sample_from_schema(document, part, depth + 1)
                    if isinstance(sample, dict):
                        merged.update(sample)
                return merged
            return sample_from_schema(document, schema[combinator][0], depth + 1)

    kind = schema.get("type")
    if kind == "object" or "properties" in schema:
        return {
            name: sample_from_schema(document, prop, depth + 1)
            for name, prop in (schema.get("properties") or {}).items()
        }
    if kind == "array":
        item = sample_from_schema(document, schema.get("items"), depth + 1)
        return [item] if item is not None else []
    return {
        "string": "",
        "integer": 0,
        "number": 0,
        "boolean": False,
    }.get(kind)


def _param_value(document: dict, param: dict) -> str:
    if "example" in param:
        value = param["example"]
    else:
        value = sample_from_schema(document, param.get("schema") or param)
    if value is None or value == "":
        return ""
    return value if isinstance(value, str) else json.dumps(value)


def _json_body(document: dict, op: dict, params: List[dict]) -> Optional[str]:
    example = None
    request_body = resolve_ref(document, op.get("requestBody"))
    if isinstance(request_body, dict):
        content = request_body.get("content") or {}
        media = next((v for k, v in content.items() if "json" in k), None)
        if not isinstance(media, dict):
            return None
        if "example" in media:
            example = media["example"]
        elif media.get("examples"):
            first = resolve_ref(document, next(iter(media["examples"].values())))
            example = first.get("value") if isinstance(first, dict) else None
        else:
            example = sample_from_schema(document, media.get("schema"))
    else:
        body_param = next((p for p in params if p.get("in") == "body"), None)
        if body_param is None:
            return None
        example = sample_from_schema(document, body_param.get("schema"))
    return json.dumps(example if example is not None else {}, indent=2, ensure_ascii=False)


def _merge_params(document: dict, shared: list, own: list) -> List[dict]:
    merged: Dict[tuple, dict] = {}
    for raw in list(shared or []) + list(own or []):
        param = resolve_ref(document, raw)
        if isinstance(param, dict) and param.get("name") and param.get("in"):
            merged[(param["name"], param["in"])] = param
    return list(merged.values())


def _build_request(document: dict, path: str, method: str, op: dict,
                   shared_params: list, seq: int) -> Request:
    params = _merge_params(document, shared_params, op.get("parameters"))
    name = op.get("summary") or op.get("operationId") or f"{method.upper()} {path}"
    docs = "\n\n".join(str(p) for p in (op.get("summary"), op.get("description")) if p)

    req = Request(
        name=str(name).strip()[:120],
        method=method.upper(),
        url="{{baseUrl}}" + _PATH_PARAM.sub(r":\1", path),
        seq=seq,
        docs=docs,
    )
    for param in params:
        kv = KeyValue(param["name"], _param_value(document, param), enabled=bool(param.get("required", False)))
        if param["in"] == "query":
            req.query.append(kv)
        elif param["in"] == "path":
            req.path_params.append(KeyValue(param["name"], kv.value))
        elif param["in"] == "header":
            req.headers.append(kv)

    body = _json_body(document, op, params)
    if body is not None:
        req.body_mode = "json"
        req.body = body
        if not any(h.name.lower() == "content-type" for h in req.headers):
            req.headers.append(KeyValue("Content-Type", "application/json"))
    return req


def convert(document: dict) -> Collection:
    """Build a collection tree from an OpenAPI or Swagger document.

    Operations are grouped into folders by their first tag; untagged
    operations stay at the collection root. One environment is generated per
    server (``host`` for Swagger 2); none when the document declares no
    server.
    """
    if not isinstance(document, dict):
        raise ConversionFailure("Spec document is not a mapping")

    paths = document.get("paths")
    if paths is None:
        paths = {}
    if not isinstance(paths, dict):
        raise ConversionFailure("'paths' is not a mapping")

    info = document.get("info") if isinstance(document.get("info"), dict) else {}
    tag_docs = {
        t["name"]: t.get("description") or ""
        for t in document.get("tags") or []
        if isinstance(t, dict) and t.get("name")
    }

    folders: Dict[str, Folder] = {}
    ungrouped: List[Request] = []
    for path, path_item in paths.items():
        path_item = resolve_ref(document, path_item)
        if not isinstance(path_item, dict):
            continue
        for method in OPERATION_METHODS:
            op = path_item.get(method)
            if not isinstance(op, dict):
                continue
            tags = [t for t in op.get("tags") or [] if isinstance(t, str) and t.strip()]
            if tags:
                folder = folders.get(tags[0])
                if folder is None:
                    folder = Folder(name=tags[0], docs=tag_docs.get(tags[0], ""), seq=len(folders) + 1)
                    folders[tags[0]] = folder
                folder.items.append(
                    _build_request(document, path, method, op, path_item.get("parameters"),
                                   len(folder.items) + 1))
            else:
                ungrouped.append(
                    _build_request(document, path, method, op, path_item.get("parameters"),
                                   len(ungrouped) + 1))

    environments = []
    for i, server in enumerate(_server_urls(document), start=1):
        env_name = server["description"] or ("Default" if i == 1 else f"Server {i}")
        environments.append(Environment(env_name, [KeyValue("baseUrl", server["url"])]))

    collection = Collection(
        name=str(info.get("title") or "Untitled API"),
        items=list(folders.values()) + ungrouped,
        docs=str(info.get("description") or ""),
        environments=environments,
    )
    logger.debug(f"Converted '{collection.name}': {len(folders)} folders, "
                 f"{len(collection.requests())} requests, {len(environments)} environments")
    return collection
