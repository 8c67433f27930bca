# steam_icon_restorer/core/keyvalue.py

"""
Ordered tree view of Valve's text KeyValues format (VDF / ACF).

Files like libraryfolders.vdf, appmanifest_*.acf and the PICS appinfo
buffers all use this format. Parsing is done by the ``vdf`` package; the
result is turned into a tree of KeyValueNode objects where sibling keys may
repeat and the order of appearance is preserved, so first-match lookups
behave like Steam's own.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

import vdf

__all__ = ["KeyValueNode", "KeyValueParseError", "load", "loads"]


class KeyValueParseError(ValueError):
    """Raised when a KeyValues document is malformed or cannot be read."""


@dataclass
class KeyValueNode:
    """A single key in a KeyValues tree.

    Attributes:
        name: The key name.
        value: The scalar value, or None for sections.
        children: Child nodes in document order.
    """

    name: str
    value: str | None = None
    children: list[KeyValueNode] = field(default_factory=list)

    def find_child(self, name: str) -> KeyValueNode | None:
        """Return the first child called ``name`` (case-insensitive), or None."""
        wanted = name.lower()
        for child in self.children:
            if child.name.lower() == wanted:
                return child
        return None

    def __getitem__(self, name: str) -> KeyValueNode:
        """Return the first matching child, or an empty placeholder node.

        The placeholder has no value and no children, which makes chained
        lookups like ``node["common"]["clienticon"].value`` safe.
        """
        child = self.find_child(name)
        if child is None:
            return KeyValueNode(name)
        return child

    def __iter__(self) -> Iterator[KeyValueNode]:
        return iter(self.children)

    def __len__(self) -> int:
        return len(self.children)

    def get(self, name: str, default: str | None = None) -> str | None:
        """Return the scalar value of the first child called ``name``."""
        child = self.find_child(name)
        if child is None or child.value is None:
            return default
        return child.value


def _to_nodes(mapping: Mapping) -> list[KeyValueNode]:
    # VDFDict.items() yields duplicate keys as separate pairs, in file order
    nodes = []
    for key, value in mapping.items():
        if isinstance(value, Mapping):
            nodes.append(KeyValueNode(key, children=_to_nodes(value)))
        else:
            nodes.append(KeyValueNode(key, value=str(value)))
    return nodes


def loads(data: str) -> KeyValueNode:
    """
    Parses a KeyValues string into a tree.

    Args:
        data (str): The KeyValues-formatted text.

    Returns:
        KeyValueNode: The document's root node (its first top-level key).

    Raises:
        TypeError: If data is not a string.
        KeyValueParseError: If the document is empty or malformed.
    """
    if not isinstance(data, str):
        raise TypeError(f"Can only load str, got {type(data).__name__}")

    try:
        parsed = vdf.loads(data, mapper=vdf.VDFDict, merge_duplicate_keys=False)
    except SyntaxError as e:
        raise KeyValueParseError(f"{e.msg.removeprefix('vdf.parse: ')} (line {e.lineno})") from e

    nodes = _to_nodes(parsed)
    if not nodes:
        raise KeyValueParseError("Document is empty")
    return nodes[0]


def load(path: Path) -> KeyValueNode:
    """
    Reads and parses a KeyValues file.

    Args:
        path (Path): The file to read. Undecodable bytes are replaced.

    Returns:
        KeyValueNode: The document's root node.

    Raises:
        KeyValueParseError: If the file cannot be read or is malformed.
    """
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise KeyValueParseError(f"Cannot read {path}: {e}") from e
    return loads(text)
