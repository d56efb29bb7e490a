from analysis_board.tree.node import ClientEval


def is_eval_better(a: ClientEval, b: ClientEval | None) -> bool:
    """Decide whether evaluation `a` should replace the stored evaluation `b`.

    The order is, from most to least significant:

    1. anything beats no evaluation
    2. higher search depth
    3. at equal depth, a cloud evaluation beats a local one
    4. at equal depth and provenance, more searched nodes

    Whether the score is a mate or a centipawn value plays no part, and `max_depth`
    only decides how far a search goes, not how good its result is.
    """
    if b is None:
        return True
    if a.depth != b.depth:
        return a.depth > b.depth
    if a.cloud != b.cloud:
        return a.cloud
    return a.nodes > b.nodes


def merge_max_depth(stored: ClientEval, incoming: ClientEval) -> bool:
    """Raise the stored `max_depth` when a non-better evaluation searched towards a deeper target.

    Returns:
        Whether the stored evaluation was changed
    """
    if incoming.max_depth is None:
        return False
    if stored.max_depth is None or incoming.max_depth > stored.max_depth:
        stored.max_depth = incoming.max_depth
        return True
    return False
