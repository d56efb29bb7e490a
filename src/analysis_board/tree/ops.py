from collections.abc import Callable, Iterator, Sequence
from typing import NamedTuple, TypeVar

from analysis_board.tree.node import Node
from analysis_board.tree.path import TreePath


class SubtreeCount(NamedTuple):
    nodes: int
    comments: int


def child_by_id(node: Node, child_id: str) -> Node | None:
    return next((c for c in node.children if c.id == child_id), None)


def remove_child(parent: Node, child_id: str) -> None:
    parent.children = [c for c in parent.children if c.id != child_id]


def mainline_node_list(root: Node) -> list[Node]:
    """Follow first children from `root` down to the end of the mainline."""
    nodes = [root]
    while nodes[-1].children:
        nodes.append(nodes[-1].children[0])
    return nodes


def take_path_while(nodes: Sequence[Node], predicate: Callable[[Node], bool]) -> TreePath:
    """Path of the longest prefix of a root-first node list whose nodes satisfy `predicate`.

    The root is skipped since it contributes nothing to a path.
    """
    path: list[str] = []
    for node in nodes[1:]:
        if not predicate(node):
            break
        path.append(node.id)
    return tuple(path)


T = TypeVar("T")


def with_mainline_child(node: Node, f: Callable[[Node], T]) -> T | None:
    return f(node.children[0]) if node.children else None


def walk(node: Node) -> Iterator[Node]:
    """Depth-first iteration over a subtree, parents before children."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def count_children_and_comments(node: Node) -> SubtreeCount:
    """Count the nodes (including `node`) and comments of a subtree."""
    nodes = comments = 0
    for n in walk(node):
        nodes += 1
        comments += len(n.comments)
    return SubtreeCount(nodes=nodes, comments=comments)


def reconstruct(parts: Sequence[Node]) -> Node:
    """Chain server tree parts into a single mainline, keeping any variations they carry."""
    if not parts:
        raise ValueError("Cannot reconstruct a tree from zero parts")
    root = parts[0]
    node = root
    for part in parts[1:]:
        if (existing := child_by_id(node, part.id)) is None:
            node.children.insert(0, part)
            node = part
        else:
            node = existing
    return root
