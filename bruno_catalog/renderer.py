"""Static documentation site for a collection tree."""

import json
import logging
import os
import shutil
from dataclasses import asdict, dataclass
from html import escape
from typing import List, Optional

from .collection import Collection, Folder, Request
from .errors import RenderFailure

logger = logging.getLogger("bruno_catalog")

STYLE = {
    "light": "body{font-family:sans-serif;margin:2rem;color:#222;background:#fff}"
             "pre{background:#f5f5f5;padding:.5rem;overflow:auto}"
             ".method{font-weight:bold;margin-right:.5rem}",
    "dark": "body{font-family:sans-serif;margin:2rem;color:#ddd;background:#1e1e1e}"
            "pre{background:#2b2b2b;padding:.5rem;overflow:auto}"
            ".method{font-weight:bold;margin-right:.5rem}",
}


@dataclass
class RenderOptions:
    theme: str = "light"
    title: Optional[str] = None
    source_url: Optional[str] = None


def _anchor(prefix: str, index: int) -> str:
    return f"{prefix}-{index}"


def _render_request(req: Request, anchor: str) -> str:
    parts = [
        f'<section class="request" id="{anchor}">',
        f'<h3><span class="method">{escape(req.method)}</span>{escape(req.name)}</h3>',
        f"<code>{escape(req.url)}</code>",
    ]
    if req.docs:
        parts.append(f"<p>{escape(req.docs)}</p>")
    for label, pairs in (("Path parameters", req.path_params),
                         ("Query parameters", req.query),
                         ("Headers", req.headers)):
        if pairs:
            rows = "".join(
                f"<tr><td>{escape(kv.name)}</td><td>{escape(kv.value)}</td>"
                f"<td>{'' if kv.enabled else 'optional'}</td></tr>"
                for kv in pairs
            )
            parts.append(f"<h4>{label}</h4><table>{rows}</table>")
    if req.body_mode != "none" and req.body:
        parts.append(f"<h4>Body ({escape(req.body_mode)})</h4><pre>{escape(req.body)}</pre>")
    parts.append("</section>")
    return "\n".join(parts)


def _render_items(items, counter: List[int], nav: List[str], depth: int = 2) -> str:
    out = []
    for item in items:
        counter[0] += 1
        anchor = _anchor("item", counter[0])
        if isinstance(item, Folder):
            nav.append(f'<li class="folder"><a href="#{anchor}">{escape(item.name)}</a></li>')
            out.append(f'<section class="folder" id="{anchor}">')
            out.append(f"<h{depth}>{escape(item.name)}</h{depth}>")
            if item.docs:
                out.append(f"<p>{escape(item.docs)}</p>")
            out.append(_render_items(item.items, counter, nav, min(depth + 1, 6)))
            out.append("</section>")
        else:
            nav.append(f'<li><a href="#{anchor}">{escape(item.method)} {escape(item.name)}</a></li>')
            out.append(_render_request(item, anchor))
    return "\n".join(out)


def render_html(collection: Collection, options: RenderOptions) -> str:
    title = options.title or collection.name or "API Documentation"
    nav: List[str] = []
    body = _render_items(collection.items, [0], nav)

    header = [f"<h1>{escape(title)}</h1>"]
    if options.source_url:
        header.append(f'<p><a href="{escape(options.source_url, quote=True)}">Source</a></p>')
    if collection.docs:
        header.append(f"<p>{escape(collection.docs)}</p>")
    for env in collection.environments:
        for kv in env.variables:
            header.append(f"<p>{escape(env.name)}: <code>{escape(kv.name)} = {escape(kv.value)}</code></p>")

    return (
        "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"utf-8\">\n"
        f"<title>{escape(title)}</title>\n"
        f"<style>{STYLE.get(options.theme, STYLE['light'])}</style>\n"
        "</head>\n<body>\n"
        + "\n".join(header)
        + f"\n<nav><ul>{''.join(nav)}</ul></nav>\n<main>\n{body}\n</main>\n</body>\n</html>\n"
    )


def render(collection: Collection, options: RenderOptions, dest: str) -> str:
    """Write ``index.html`` and ``collection.json`` to ``dest``, replacing it."""
    try:
        html = render_html(collection, options)
        if os.path.isdir(dest):
            shutil.rmtree(dest)
        os.makedirs(dest)
        with open(os.path.join(dest, "index.html"), "w", encoding="utf-8") as f:
            f.write(html)
        with open(os.path.join(dest, "collection.json"), "w", encoding="utf-8") as f:
            json.dump(asdict(collection), f, indent=2, ensure_ascii=False)
    except (OSError, TypeError, ValueError) as e:
        raise RenderFailure(f"Failed to render docs for '{collection.name}': {e}") from e

    logger.debug(f"Rendered docs for '{collection.name}' to {dest}")
    return dest
