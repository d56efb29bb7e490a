import chess
import chess.variant

STANDARD_KEYS = ("standard", "chess", "fromPosition")
DROP_VARIANTS = ("crazyhouse",)


def variant_board(variant: str, fen: str | None = None) -> chess.Board:
    """Set up a python-chess board for a variant key such as `standard` or `crazyhouse`.

    Raises:
        ValueError: If the variant is unknown or the FEN does not parse
    """
    if variant in STANDARD_KEYS:
        return chess.Board(fen) if fen else chess.Board()
    if variant == "chess960":
        return chess.Board(fen, chess960=True) if fen else chess.Board.from_chess960_pos(518)
    board_cls = chess.variant.find_variant(variant)
    return board_cls(fen) if fen else board_cls()


def legal_dests(board: chess.Board) -> dict[str, list[str]]:
    """Map each origin square to the squares its pieces can legally move to."""
    dests: dict[str, list[str]] = {}
    for move in board.legal_moves:
        if move.drop is not None:
            continue
        dests.setdefault(chess.square_name(move.from_square), []).append(chess.square_name(move.to_square))
    return {orig: sorted(set(targets)) for orig, targets in dests.items()}


def drop_squares(board: chess.Board) -> list[str] | None:
    """Squares where a piece may be dropped, or None when dropping is unrestricted.

    Drops are only restricted while in check, where they have to block.
    """
    if not isinstance(board, chess.variant.CrazyhouseBoard) or not board.is_check():
        return None
    return sorted({chess.square_name(m.to_square) for m in board.legal_moves if m.drop is not None})
