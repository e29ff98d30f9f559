"""A tree of DNS records keyed by path components."""

from __future__ import annotations

import json
from typing import Any

from kubedns.dnsutil import Service, service_path

_GO_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


class TreeCache:
    """Nodes hold child nodes and record entries, each keyed by name."""

    def __init__(self) -> None:
        self.child_nodes: dict[str, TreeCache] = {}
        self.entries: dict[str, Any] = {}

    def _sub_cache(self, path: tuple[str, ...]) -> TreeCache | None:
        node: TreeCache | None = self
        for subpath in path:
            node = node.child_nodes.get(subpath)
            if node is None:
                return None
        return node

    def _ensure_child_node(self, path: tuple[str, ...]) -> TreeCache:
        node = self
        for subpath in path:
            child = node.child_nodes.get(subpath)
            if child is None:
                child = TreeCache()
                node.child_nodes[subpath] = child
            node = child
        return node

    def get_entry(self, key: str, *args: str) -> Any:
        """Return the entry stored under key at the path args, or None."""
        node = self._sub_cache(args)
        if node is None:
            return None
        return node.entries.get(key)

    def get_values_for_path_with_wildcards(self, *args: str) -> list[Service]:
        """Collect records along the path args; "*" matches any component.

        A "*" before the last component skips children whose names start
        with "_". If the last component names an entry, only that entry is
        returned from that node; otherwise the entries of the node it leads
        to are returned.
        """
        found: list[Service] = []
        nodes = [self]
        if args:
            *prefix, last = args
            for subpath in prefix:
                if subpath == "*":
                    nodes = [
                        child
                        for node in nodes
                        for name, child in node.child_nodes.items()
                        if not name.startswith("_")
                    ]
                else:
                    nodes = [
                        node.child_nodes[subpath]
                        for node in nodes
                        if subpath in node.child_nodes
                    ]

            next_nodes = []
            for node in nodes:
                if last == "*":
                    next_nodes.append(node)
                elif last in node.entries:
                    found.append(node.entries[last])
                elif last in node.child_nodes:
                    next_nodes.append(node.child_nodes[last])
            nodes = next_nodes

        for node in nodes:
            found.extend(node.entries.values())
        return found

    def set_entry(self, key: str, val: Service, fqdn: str, *args: str) -> None:
        """Store val under key at path args, creating the path as needed.

        The record's key is set to the storage path derived from fqdn.
        """
        node = self._ensure_child_node(args)
        val.key = service_path(fqdn)
        node.entries[key] = val

    def set_sub_cache(self, key: str, sub_cache: TreeCache, *args: str) -> None:
        """Attach sub_cache as the child named key at path args."""
        node = self._ensure_child_node(args)
        node.child_nodes[key] = sub_cache

    def delete_path(self, *args: str) -> bool:
        """Remove the child node or entry at path args; True if one was removed."""
        if not args:
            return False
        parent = self._sub_cache(args[:-1])
        if parent is None:
            return False
        name = args[-1]
        if name in parent.child_nodes:
            del parent.child_nodes[name]
            return True
        if name in parent.entries:
            del parent.entries[name]
            return True
        return False

    def _to_json(self) -> dict[str, Any]:
        return {
            "ChildNodes": {
                name: self.child_nodes[name]._to_json()
                for name in sorted(self.child_nodes)
            },
            "Entries": {
                name: _entry_to_json(self.entries[name]) for name in sorted(self.entries)
            },
        }

    def serialize(self) -> str:
        """Tab-indented JSON dump of the whole tree with sorted keys."""
        text = json.dumps(self._to_json(), indent="\t", ensure_ascii=False)
        for char, escaped in _GO_JSON_ESCAPES.items():
            text = text.replace(char, escaped)
        return text


def _entry_to_json(value: Any) -> Any:
    if isinstance(value, Service):
        return value.to_dict()
    return value