"""Request-collection tree and its on-disk ``.bru`` layout.

Layout written by ``write_collection``::

    <dest>/bruno.json
    <dest>/collection.bru
    <dest>/environments/<env>.bru
    <dest>/<request>.bru                 # ungrouped requests
    <dest>/<folder>/folder.bru
    <dest>/<folder>/<request>.bru
"""

import json
import logging
import os
import re
import shutil
from dataclasses import dataclass, field
from typing import Dict, List, Union

logger = logging.getLogger("bruno_catalog")

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_BLOCK_START = re.compile(r"^([A-Za-z:\-]+) \{$")
TEXT_BLOCKS = ("docs", "body:json", "body:text")
HTTP_METHODS = ("get", "post", "put", "patch", "delete", "head", "options", "trace")


@dataclass
class KeyValue:
    name: str
    value: str = ""
    enabled: bool = True


@dataclass
class Request:
    name: str
    method: str
    url: str
    seq: int = 1
    query: List[KeyValue] = field(default_factory=list)
    path_params: List[KeyValue] = field(default_factory=list)
    headers: List[KeyValue] = field(default_factory=list)
    body_mode: str = "none"
    body: str = ""
    docs: str = ""


@dataclass
class Folder:
    name: str
    items: List["Node"] = field(default_factory=list)
    docs: str = ""
    seq: int = 1


@dataclass
class Environment:
    name: str
    variables: List[KeyValue] = field(default_factory=list)


@dataclass
class Collection:
    name: str
    items: List["Node"] = field(default_factory=list)
    docs: str = ""
    environments: List[Environment] = field(default_factory=list)

    def requests(self) -> List[Request]:
        found = []
        stack = list(self.items)
        while stack:
            node = stack.pop(0)
            if isinstance(node, Folder):
                stack.extend(node.items)
            else:
                found.append(node)
        return found


Node = Union[Request, Folder]


def sanitize_name(name: str) -> str:
    if not name:
        return "unnamed"
    cleaned = _UNSAFE_CHARS.sub("-", name)
    cleaned = re.sub(r"\s+", " ", cleaned).strip().strip(".")
    return cleaned or "unnamed"


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _indent(text: str) -> str:
    return "\n".join(f"  {line}" if line else "" for line in text.splitlines())


def _text_block(name: str, text: str) -> str:
    return f"{name} {{\n{_indent(text)}\n}}\n"


def _dict_block(name: str, pairs: List[KeyValue]) -> str:
    lines = [f"  {'' if kv.enabled else '~'}{kv.name}: {kv.value}" for kv in pairs]
    return f"{name} {{\n" + "\n".join(lines) + "\n}\n"


def stringify_request(req: Request) -> str:
    blocks = [
        _dict_block("meta", [
            KeyValue("name", req.name),
            KeyValue("type", "http"),
            KeyValue("seq", str(req.seq)),
        ]),
        _dict_block(req.method.lower(), [
            KeyValue("url", req.url),
            KeyValue("body", req.body_mode),
            KeyValue("auth", "inherit"),
        ]),
    ]
    if req.query:
        blocks.append(_dict_block("params:query", req.query))
    if req.path_params:
        blocks.append(_dict_block("params:path", req.path_params))
    if req.headers:
        blocks.append(_dict_block("headers", req.headers))
    if req.body_mode != "none" and req.body:
        blocks.append(_text_block(f"body:{req.body_mode}", req.body))
    if req.docs:
        blocks.append(_text_block("docs", req.docs))
    return "\n".join(blocks)


def stringify_folder(folder: Folder) -> str:
    blocks = [_dict_block("meta", [KeyValue("name", folder.name), KeyValue("seq", str(folder.seq))])]
    if folder.docs:
        blocks.append(_text_block("docs", folder.docs))
    return "\n".join(blocks)


def stringify_collection(collection: Collection) -> str:
    blocks = [_dict_block("auth", [KeyValue("mode", "none")])]
    if collection.docs:
        blocks.append(_text_block("docs", collection.docs))
    return "\n".join(blocks)


def stringify_environment(env: Environment) -> str:
    return _dict_block("vars", env.variables)


def stringify(node) -> str:
    """Render one tree node as ``.bru`` file content."""
    if isinstance(node, Request):
        return stringify_request(node)
    if isinstance(node, Folder):
        return stringify_folder(node)
    if isinstance(node, Collection):
        return stringify_collection(node)
    if isinstance(node, Environment):
        return stringify_environment(node)
    raise TypeError(f"Cannot stringify {type(node).__name__}")


def _unique(name: str, used: set) -> str:
    candidate = name
    n = 2
    while candidate.lower() in used:
        candidate = f"{name} ({n})"
        n += 1
    used.add(candidate.lower())
    return candidate


def _write_items(items: List[Node], current: str):
    used = {"collection", "folder", "environments"}
    for item in items:
        if isinstance(item, Folder):
            folder_path = os.path.join(current, _unique(sanitize_name(item.name), used))
            os.makedirs(folder_path, exist_ok=True)
            with open(os.path.join(folder_path, "folder.bru"), "w", encoding="utf-8") as f:
                f.write(stringify_folder(item))
            _write_items(item.items, folder_path)
        else:
            filename = _unique(sanitize_name(item.name), used) + ".bru"
            with open(os.path.join(current, filename), "w", encoding="utf-8") as f:
                f.write(stringify_request(item))


def write_collection(collection: Collection, dest: str) -> str:
    """Write the tree under ``dest``, replacing whatever was there."""
    if os.path.isdir(dest):
        shutil.rmtree(dest)
    os.makedirs(dest)

    with open(os.path.join(dest, "bruno.json"), "w", encoding="utf-8") as f:
        json.dump({
            "version": "1",
            "name": collection.name,
            "type": "collection",
            "ignore": ["node_modules", ".git"],
        }, f, indent=2)

    with open(os.path.join(dest, "collection.bru"), "w", encoding="utf-8") as f:
        f.write(stringify_collection(collection))

    if collection.environments:
        env_dir = os.path.join(dest, "environments")
        os.makedirs(env_dir)
        env_names: set = set()
        for env in collection.environments:
            filename = _unique(sanitize_name(env.name), env_names) + ".bru"
            with open(os.path.join(env_dir, filename), "w", encoding="utf-8") as f:
                f.write(stringify_environment(env))

    _write_items(collection.items, dest)
    logger.debug(f"Wrote collection '{collection.name}' to {dest}")
    return dest


# ---------------------------------------------------------------------------
# Reading back
# ---------------------------------------------------------------------------

def parse_bru(text: str) -> Dict[str, Union[str, List[KeyValue]]]:
    """Parse the subset of ``.bru`` that ``stringify`` produces."""
    blocks: Dict[str, Union[str, List[KeyValue]]] = {}
    lines = text.splitlines()
    i = 0
    while i < len(lines):
        m = _BLOCK_START.match(lines[i])
        i += 1
        if not m:
            continue
        name = m.group(1)
        body = []
        while i < len(lines) and lines[i] != "}":
            body.append(lines[i])
            i += 1
        i += 1
        if name in TEXT_BLOCKS:
            blocks[name] = "\n".join(line[2:] if line.startswith("  ") else line for line in body)
        else:
            pairs = []
            for line in body:
                key, sep, value = line.strip().partition(":")
                if not sep:
                    continue
                enabled = not key.startswith("~")
                pairs.append(KeyValue(key.lstrip("~"), value.strip(), enabled))
            blocks[name] = pairs
    return blocks


def _meta(blocks, key, default=""):
    for kv in blocks.get("meta", []):
        if kv.name == key:
            return kv.value
    return default


def _seq(blocks) -> int:
    try:
        return int(_meta(blocks, "seq", "1"))
    except ValueError:
        return 1


def _read_request(path: str) -> Request:
    with open(path, encoding="utf-8") as f:
        blocks = parse_bru(f.read())
    method = next((m for m in HTTP_METHODS if m in blocks), "get")
    http = {kv.name: kv.value for kv in blocks.get(method, [])}
    body_mode = http.get("body", "none")
    return Request(
        name=_meta(blocks, "name", os.path.splitext(os.path.basename(path))[0]),
        method=method.upper(),
        url=http.get("url", ""),
        seq=_seq(blocks),
        query=blocks.get("params:query", []),
        path_params=blocks.get("params:path", []),
        headers=blocks.get("headers", []),
        body_mode=body_mode,
        body=blocks.get(f"body:{body_mode}", "") if body_mode != "none" else "",
        docs=blocks.get("docs", ""),
    )


def _read_items(current: str) -> List[Node]:
    folders, requests = [], []
    for entry in sorted(os.listdir(current)):
        path = os.path.join(current, entry)
        if os.path.isdir(path):
            if entry == "environments" or entry.startswith(".git") or entry == "node_modules":
                continue
            folder = Folder(name=entry, items=_read_items(path))
            folder_bru = os.path.join(path, "folder.bru")
            if os.path.exists(folder_bru):
                with open(folder_bru, encoding="utf-8") as f:
                    blocks = parse_bru(f.read())
                folder.name = _meta(blocks, "name", entry)
                folder.docs = blocks.get("docs", "")
                folder.seq = _seq(blocks)
            folders.append(folder)
        elif entry.endswith(".bru") and entry not in ("collection.bru", "folder.bru"):
            requests.append(_read_request(path))
    folders.sort(key=lambda f: (f.seq, f.name))
    requests.sort(key=lambda r: (r.seq, r.name))
    return folders + requests


def read_collection(path: str) -> Collection:
    """Load a collection directory written by ``write_collection``."""
    if not os.path.isdir(path):
        raise FileNotFoundError(f"Collection not found: {path}")

    name = os.path.basename(os.path.normpath(path))
    config_path = os.path.join(path, "bruno.json")
    if os.path.exists(config_path):
        with open(config_path, encoding="utf-8") as f:
            name = json.load(f).get("name") or name

    docs = ""
    root_path = os.path.join(path, "collection.bru")
    if os.path.exists(root_path):
        with open(root_path, encoding="utf-8") as f:
            docs = parse_bru(f.read()).get("docs", "")

    environments = []
    env_dir = os.path.join(path, "environments")
    if os.path.isdir(env_dir):
        for entry in sorted(os.listdir(env_dir)):
            if entry.endswith(".bru"):
                with open(os.path.join(env_dir, entry), encoding="utf-8") as f:
                    variables = parse_bru(f.read()).get("vars", [])
                environments.append(Environment(os.path.splitext(entry)[0], variables))

    return Collection(name=name, items=_read_items(path), docs=docs, environments=environments)
