"""Paths address a node by the ids of the moves leading to it from the root."""

from collections.abc import Sequence

from analysis_board.tree.node import Node

TreePath = tuple[str, ...]

ROOT: TreePath = ()


def head(path: TreePath) -> str:
    return path[0]


def tail(path: TreePath) -> TreePath:
    return path[1:]


def init(path: TreePath) -> TreePath:
    """The path of the parent node (the root is its own parent)."""
    return path[:-1]


def last(path: TreePath) -> str | None:
    return path[-1] if path else None


def contains(path: TreePath, prefix: TreePath) -> bool:
    """Whether `path` goes through the node at `prefix`."""
    return path[: len(prefix)] == prefix


def from_node_list(nodes: Sequence[Node]) -> TreePath:
    """Build the path of the last node of a root-first node list."""
    return tuple(node.id for node in nodes[1:])
