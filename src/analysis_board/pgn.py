"""Building analysis data from PGN text or a FEN, locally or through a server."""

import io
import logging

import chess
import chess.pgn
import msgspec
import requests

from analysis_board.interfaces import AnalyseData, GameInfo
from analysis_board.tree.node import Comment, Glyph, Node, Shape
from analysis_board.variant import drop_squares, legal_dests, variant_board

logger = logging.getLogger(__name__)

NAG_SYMBOLS = {
    chess.pgn.NAG_GOOD_MOVE: "!",
    chess.pgn.NAG_MISTAKE: "?",
    chess.pgn.NAG_BRILLIANT_MOVE: "!!",
    chess.pgn.NAG_BLUNDER: "??",
    chess.pgn.NAG_SPECULATIVE_MOVE: "!?",
    chess.pgn.NAG_DUBIOUS_MOVE: "?!",
}

VARIANT_KEYS = {
    "chess960": "chess960",
    "crazyhouse": "crazyhouse",
    "atomic": "atomic",
    "antichess": "antichess",
    "horde": "horde",
    "racing kings": "racingKings",
    "three-check": "threeCheck",
    "king of the hill": "kingOfTheHill",
}


def _variant_key(game: chess.pgn.Game) -> str:
    name = game.headers.get("Variant", "standard").lower()
    if name in ("standard", "chess", "from position"):
        return "fromPosition" if "FEN" in game.headers else "standard"
    return VARIANT_KEYS.get(name, name)


def _annotations(game_node: chess.pgn.ChildNode, node: Node) -> None:
    if game_node.comment:
        node.comments.append(Comment(text=game_node.comment))
    node.glyphs = [Glyph(id=nag, symbol=NAG_SYMBOLS[nag]) for nag in sorted(game_node.nags) if nag in NAG_SYMBOLS]
    node.shapes = [
        Shape(
            orig=chess.square_name(arrow.tail),
            dest=chess.square_name(arrow.head) if arrow.head != arrow.tail else None,
            brush=arrow.color,
        )
        for arrow in game_node.arrows()
    ]


def _add_variations(game_node: chess.pgn.GameNode, board: chess.Board, node: Node) -> None:
    for variation in game_node.variations:
        move = variation.move
        uci = board.uci(move)
        san = board.san(move)
        board.push(move)
        child = Node(
            ply=board.ply(),
            fen=board.fen(),
            id=uci,
            uci=uci,
            san=san,
            check=board.is_check(),
            dests=legal_dests(board),
            drops=drop_squares(board),
            threefold=board.is_repetition(3),
        )
        _annotations(variation, child)
        node.children.append(child)
        _add_variations(variation, board, child)
        board.pop()


def analyse_data_from_pgn(pgn: str) -> AnalyseData:
    """Parse the first game of a PGN, variations and annotations included.

    Raises:
        ValueError: If the text holds no game or the game contains illegal moves
    """
    game = chess.pgn.read_game(io.StringIO(pgn))
    if game is None:
        raise ValueError("No game found in PGN")
    if game.errors:
        raise ValueError(f"Invalid PGN: {game.errors[0]}")

    variant = _variant_key(game)
    board = game.board()
    root = Node(ply=board.ply(), fen=board.fen(), dests=legal_dests(board), drops=drop_squares(board))
    if game.comment:
        root.comments.append(Comment(text=game.comment))
    _add_variations(game, board, root)

    mainline_plies = sum(1 for _ in game.mainline_moves())
    logger.info(f"Imported {variant} game of {mainline_plies} plies")
    return AnalyseData(
        game=GameInfo(
            id="imported",
            variant=variant,
            status=game_status(game),
            source="import",
            initial_fen=game.headers.get("FEN"),
            turns=root.ply + mainline_plies,
            started_at_turn=root.ply,
        ),
        tree_parts=[root],
    )


def game_status(game: chess.pgn.Game) -> int:
    """Map the PGN result onto a finished game status (30 mate, 31 resign, 34 draw)."""
    result = game.headers.get("Result", "*")
    if result == "1/2-1/2":
        return 34
    if result in ("1-0", "0-1"):
        return 30 if game.end().board().is_checkmate() else 31
    return 33  # unknown finish


def analyse_data_from_fen(fen: str, variant: str = "standard") -> AnalyseData:
    """Start an empty analysis from a position.

    Raises:
        ValueError: If the FEN does not parse or describes an impossible position
    """
    board = variant_board(variant, fen)
    if not board.is_valid():
        raise ValueError(f"Illegal position {fen!r}: {board.status()!r}")
    root = Node(ply=board.ply(), fen=board.fen(), dests=legal_dests(board), drops=drop_squares(board))
    return AnalyseData(
        game=GameInfo(variant=variant, initial_fen=board.fen(), turns=root.ply, started_at_turn=root.ply),
        orientation="white" if board.turn == chess.WHITE else "black",
        tree_parts=[root],
    )


class LocalAnalysisApi:
    """Imports PGNs in process, without a server."""

    def import_pgn(self, pgn: str) -> AnalyseData:
        return analyse_data_from_pgn(pgn)


class HttpAnalysisApi:
    """Imports PGNs through an analysis server."""

    def __init__(self, base_url: str, timeout: float = 10) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def import_pgn(self, pgn: str) -> AnalyseData:
        response = self.session.post(
            f"{self.base_url}/analysis/pgn",
            data={"pgn": pgn},
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return msgspec.json.decode(response.content, type=AnalyseData)
