import logging
from collections.abc import Callable, Sequence

from analysis_board.ceval.eval import is_eval_better
from analysis_board.tree import ops
from analysis_board.tree.node import Node, Opening
from analysis_board.tree.path import ROOT, TreePath

logger = logging.getLogger(__name__)


class MoveTree:
    """Owns every node of a game's move tree and exposes path addressed operations.

    Callers never keep a node across a mutation; they keep paths and look nodes up again.
    Operations on a path that does not resolve leave the tree untouched and report
    failure with None (or False) instead of raising.
    """

    def __init__(self, root: Node) -> None:
        self.root = root

    @classmethod
    def from_parts(cls, parts: Sequence[Node]) -> "MoveTree":
        return cls(ops.reconstruct(parts))

    def node_at_path(self, path: TreePath) -> Node | None:
        node = self.root
        for node_id in path:
            child = ops.child_by_id(node, node_id)
            if child is None:
                return None
            node = child
        return node

    def path_exists(self, path: TreePath) -> bool:
        return self.node_at_path(path) is not None

    def get_node_list(self, path: TreePath) -> list[Node]:
        """Nodes from the root down to `path`, stopping where the path stops resolving."""
        nodes = [self.root]
        for node_id in path:
            child = ops.child_by_id(nodes[-1], node_id)
            if child is None:
                break
            nodes.append(child)
        return nodes

    def path_is_mainline(self, path: TreePath) -> bool:
        node = self.root
        for node_id in path:
            if not node.children or node.children[0].id != node_id:
                return False
            node = node.children[0]
        return True

    def last_ply(self) -> int:
        return ops.mainline_node_list(self.root)[-1].ply

    def update_at(self, path: TreePath, mutator: Callable[[Node], None]) -> Node | None:
        """Apply `mutator` to the node at `path` if there is one.

        Returns:
            The mutated node, or None when the path does not resolve
        """
        node = self.node_at_path(path)
        if node is None:
            return None
        mutator(node)
        return node

    def add_node(self, node: Node, path: TreePath) -> TreePath | None:
        """Attach `node` as a child of the node at `path`.

        A child with the same id is reused and only gains the legal move metadata it
        was missing.

        Returns:
            The path of the added (or reused) node, or None when `path` does not resolve
        """
        parent = self.node_at_path(path)
        if parent is None:
            return None
        new_path = (*path, node.id)
        if (existing := ops.child_by_id(parent, node.id)) is not None:
            if existing.dests is None and node.dests is not None:
                existing.dests = node.dests
            if existing.drops is None and node.drops is not None:
                existing.drops = node.drops
            return new_path
        parent.children.append(node)
        return new_path

    def add_nodes(self, nodes: Sequence[Node], path: TreePath) -> TreePath | None:
        """Add a line of consecutive nodes starting below `path`."""
        current: TreePath | None = path
        for node in nodes:
            if current is None:
                return None
            current = self.add_node(node, current)
        return current

    def add_dests(
        self,
        dests: dict[str, list[str]],
        path: TreePath,
        opening: Opening | None = None,
    ) -> bool:
        def attach(node: Node) -> None:
            node.dests = dests
            if opening is not None:
                node.opening = opening

        return self.update_at(path, attach) is not None

    def delete_node_at(self, path: TreePath) -> bool:
        if path == ROOT:
            logger.warning("Refusing to delete the root node")
            return False
        parent = self.node_at_path(path[:-1])
        if parent is None or ops.child_by_id(parent, path[-1]) is None:
            return False
        ops.remove_child(parent, path[-1])
        return True

    def promote_at(self, path: TreePath, to_mainline: bool) -> None:
        """Move the branch containing `path` to the front of its ancestors' children.

        With `to_mainline` every ancestor up to the root is reordered, otherwise only
        the nearest one where the branch was not already first.
        """
        nodes = self.get_node_list(path)
        for i in range(len(nodes) - 2, -1, -1):
            node, parent = nodes[i + 1], nodes[i]
            if parent.children[0].id != node.id:
                ops.remove_child(parent, node.id)
                parent.children.insert(0, node)
                if not to_mainline:
                    break
            elif node.force_variation:
                node.force_variation = False
                if not to_mainline:
                    break

    def merge(self, other: "MoveTree") -> None:
        """Fold another tree of the same game into this one without losing local branches."""
        _merge_nodes(self.root, other.root)

    def remove_ceval(self) -> None:
        for node in ops.walk(self.root):
            node.ceval = None
            node.threat = None

    def remove_computer_variations(self) -> None:
        for node in ops.mainline_node_list(self.root):
            node.children = [c for c in node.children if not c.comp]


def _merge_nodes(mine: Node, theirs: Node) -> None:
    if theirs.eval is not None:
        mine.eval = theirs.eval
    if theirs.ceval is not None and is_eval_better(theirs.ceval, mine.ceval):
        mine.ceval = theirs.ceval
    if theirs.threat is not None and is_eval_better(theirs.threat, mine.threat):
        mine.threat = theirs.threat
    if mine.dests is None:
        mine.dests = theirs.dests
    if mine.drops is None:
        mine.drops = theirs.drops
    if mine.opening is None:
        mine.opening = theirs.opening

    known_comments = {c.text for c in mine.comments}
    mine.comments.extend(c for c in theirs.comments if c.text not in known_comments)
    mine.shapes.extend(s for s in theirs.shapes if s not in mine.shapes)
    mine.glyphs.extend(g for g in theirs.glyphs if g not in mine.glyphs)

    for child in theirs.children:
        existing = ops.child_by_id(mine, child.id)
        if existing is None:
            mine.children.append(child)
        else:
            _merge_nodes(existing, child)
