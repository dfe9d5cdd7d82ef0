"""Prompt catalog for the extraction tools.

Prompts live in prompts/prompts.json, grouped by tool. An entry is either a
string or a list of lines (joined with newlines), written as
`string.Template` text with `${name}` placeholders.
"""
from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any

PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"

# path -> (mtime_ns, catalog); reloaded when the file changes on disk
_catalogs: dict[Path, tuple[int, dict[str, Any]]] = {}


def load_catalog(path: Path | None = None) -> dict[str, Any]:
    path = path or PROMPTS_PATH
    mtime_ns = path.stat().st_mtime_ns
    cached = _catalogs.get(path)
    if cached and cached[0] == mtime_ns:
        return cached[1]

    catalog = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(catalog, dict):
        raise ValueError(f"Prompt catalog must be a JSON object: {path}")
    _catalogs[path] = (mtime_ns, catalog)
    return catalog


def get_template(key: str, path: Path | None = None) -> Template:
    """Look up a dotted key such as `extractor.basic_info`."""
    node: Any = load_catalog(path)
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(f"Prompt key not found: {key}")
        node = node[part]

    if isinstance(node, list) and all(isinstance(line, str) for line in node):
        node = "\n".join(node)
    if not isinstance(node, str):
        raise TypeError(f"Prompt {key} must be a string or a list of lines")
    return Template(node)


def render_prompt(key: str, **values: Any) -> str:
    template = get_template(key)
    try:
        return template.substitute(values)
    except KeyError as exc:
        raise KeyError(f"Prompt {key} needs a value for '{exc.args[0]}'") from exc


def clear_prompt_cache() -> None:
    _catalogs.clear()
