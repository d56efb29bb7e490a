from analysis_board.tree.node import Node, Shape


def uci_to_squares(uci: str) -> tuple[str, str]:
    """Origin and destination squares of a UCI move; a drop starts and ends on its square."""
    if uci[1] == "@":
        return uci[2:4], uci[2:4]
    return uci[0:2], uci[2:4]


def _arrow(uci: str, brush: str) -> Shape:
    orig, dest = uci_to_squares(uci)
    return Shape(orig=orig, dest=dest, brush=brush)


def compute(node: Node, *, ceval_enabled: bool, threat_mode: bool) -> list[Shape]:
    """Arrows for the engine's preferred moves in the position of `node`."""
    shapes: list[Shape] = []
    if ceval_enabled and node.ceval is not None and node.ceval.pvs:
        best = node.ceval.best()
        if best is not None:
            shapes.append(_arrow(best, "paleBlue"))
        for pv in node.ceval.pvs[1:]:
            if pv.moves:
                shapes.append(_arrow(pv.moves[0], "paleGrey"))
    elif node.eval is not None and node.eval.best is not None:
        shapes.append(_arrow(node.eval.best, "paleGreen"))

    if threat_mode and node.threat is not None and (threat := node.threat.best()) is not None:
        shapes.append(_arrow(threat, "paleRed"))
    return shapes
