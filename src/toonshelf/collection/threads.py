"""Comment threads built from flat (id, parentId) records.

Comments under an image are stored flat; replies point at their parent
through the ``parentId`` attribute. The forest is built once with an
adjacency map and rendered depth-first, instead of filtering the whole
list for every node.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from toonshelf.collection.models import Item

logger = logging.getLogger(__name__)

__all__ = ["CommentNode", "build_forest", "walk", "PARENT_FIELD"]

PARENT_FIELD = "parentId"


@dataclass
class CommentNode:
    item: Item
    children: list[CommentNode] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.item.key


def build_forest(items: Iterable[Item]) -> list[CommentNode]:
    """Group comments into root threads.

    Input order is preserved among siblings, so pass a collection already
    sorted by timestamp. Comments whose parent is unknown or themselves
    become roots; reply chains that loop back on themselves are cut at the
    first node seen twice and re-rooted there.

    Args:
        items: Comments of one scope.

    Returns:
        Root nodes in input order.

    """
    nodes: dict[str, CommentNode] = {}
    order: list[str] = []
    for item in items:
        if item.key in nodes:
            logger.warning("Duplicate comment id %s ignored", item.key)
            continue
        nodes[item.key] = CommentNode(item)
        order.append(item.key)

    children: dict[str, list[str]] = {}
    roots: list[str] = []
    for key in order:
        parent = nodes[key].item.attributes.get(PARENT_FIELD)
        if parent is None or parent == key or parent not in nodes:
            roots.append(key)
        else:
            children.setdefault(str(parent), []).append(key)

    attached: set[str] = set()

    def _attach(key: str) -> None:
        stack = [key]
        attached.add(key)
        while stack:
            current = stack.pop()
            for child in children.get(current, ()):
                if child in attached:
                    continue
                attached.add(child)
                nodes[current].children.append(nodes[child])
                stack.append(child)

    for key in roots:
        _attach(key)

    # Whatever is left sits on a parent cycle
    for key in order:
        if key not in attached:
            logger.warning("Comment %s is part of a reply cycle, promoted to root", key)
            roots.append(key)
            _attach(key)

    return [nodes[k] for k in roots]


def walk(forest: list[CommentNode]) -> Iterator[tuple[int, CommentNode]]:
    """Yield (depth, node) depth-first, parents before their replies."""
    stack: list[tuple[int, CommentNode]] = [(0, n) for n in reversed(forest)]
    while stack:
        depth, node = stack.pop()
        yield depth, node
        stack.extend((depth + 1, c) for c in reversed(node.children))
