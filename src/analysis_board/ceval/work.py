from collections.abc import Sequence

import msgspec

from analysis_board.tree.node import Node
from analysis_board.tree.path import TreePath


class Work(msgspec.Struct, kw_only=True):
    """What the engine should currently analyse.

    The engine is given `initial_fen` plus `moves` so that it can detect repetitions;
    the move list restarts after the last castling move since castling rights cannot
    be replayed from an arbitrary earlier position in every variant.
    """

    path: TreePath
    ply: int
    initial_fen: str
    current_fen: str
    moves: list[str]
    threat_mode: bool
    multi_pv: int
    max_depth: int


def threat_fen(fen: str, ply: int) -> str:
    """The position with the side to move swapped, as if the opponent could move twice."""
    fields = fen.split(" ")
    fields[1] = "w" if ply % 2 == 1 else "b"
    if len(fields) > 3:
        fields[3] = "-"
    return " ".join(fields)


def build_work(
    path: TreePath,
    steps: Sequence[Node],
    *,
    threat_mode: bool,
    multi_pv: int,
    max_depth: int,
) -> Work:
    step = steps[-1]
    if threat_mode:
        fen = threat_fen(step.fen, step.ply)
        return Work(
            path=path,
            ply=step.ply,
            initial_fen=fen,
            current_fen=fen,
            moves=[],
            threat_mode=True,
            multi_pv=multi_pv,
            max_depth=max_depth,
        )

    initial_fen = steps[0].fen
    moves: list[str] = []
    for s in steps[1:]:
        if s.san is not None and s.san.startswith("O-O"):
            moves = []
            initial_fen = s.fen
        elif s.uci is not None:
            moves.append(s.uci)
    return Work(
        path=path,
        ply=step.ply,
        initial_fen=initial_fen,
        current_fen=step.fen,
        moves=moves,
        threat_mode=False,
        multi_pv=multi_pv,
        max_depth=max_depth,
    )
