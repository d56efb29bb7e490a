"""An offline stand-in for the analysis server, computing moves with python-chess."""

import asyncio
import logging
from collections.abc import Callable, Sequence

import chess
import msgspec

from analysis_board.eval_cache import CloudEval, EvalGet
from analysis_board.interfaces import AnaDests, AnaDrop, AnaMove
from analysis_board.socket import AnalyseSocket, DestsMessage, Envelope, NodeMessage, encode
from analysis_board.throttle import SessionContext
from analysis_board.tree.node import Node
from analysis_board.tree.path import TreePath
from analysis_board.variant import drop_squares, legal_dests, variant_board

logger = logging.getLogger(__name__)

PROMOTIONS = {"queen": "q", "rook": "r", "bishop": "b", "knight": "n", "king": "k"}

History = Callable[[TreePath], Sequence[Node]]
CloudLookup = Callable[[str, int], CloudEval | None]


def node_after(board: chess.Board, move: chess.Move) -> Node:
    """Play `move` on `board` and describe the resulting position."""
    uci = board.uci(move)
    san = board.san(move)
    board.push(move)
    return Node(
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


class LocalServer:
    """Answers the board's outbound requests as the real server would.

    Replies are scheduled rather than delivered inside `send`, so the board finishes
    handling its own move before the resulting node arrives.

    Args:
        socket: The socket whose inbound side receives the replies
        context: Schedules reply delivery
        history: Looks up the node list down to a path, used to replay the game so
            repetitions are detected. Without it only the sent FEN is known.
        cloud_lookup: Answers evaluation lookups, typically `cloud.fetch_cloud_eval`. It
            runs in a worker thread, so lookups need a running event loop.
    """

    def __init__(
        self,
        socket: AnalyseSocket,
        context: SessionContext,
        history: History | None = None,
        cloud_lookup: CloudLookup | None = None,
    ) -> None:
        self.socket = socket
        self.context = context
        self.history = history
        self.cloud_lookup = cloud_lookup
        self._lookups: set[asyncio.Task] = set()
        socket.transport = self

    def __call__(self, raw: bytes) -> None:
        envelope = msgspec.json.decode(raw, type=Envelope)
        match envelope.t:
            case "anaMove":
                self._on_move(msgspec.json.decode(envelope.d, type=AnaMove))
            case "anaDrop":
                self._on_drop(msgspec.json.decode(envelope.d, type=AnaDrop))
            case "anaDests":
                self._on_dests(msgspec.json.decode(envelope.d, type=AnaDests))
            case "evalGet":
                self._on_eval_get(msgspec.json.decode(envelope.d, type=EvalGet))
            case _:
                logger.debug(f"Local server ignores {envelope.t}")

    def _reply(self, t: str, d: object = None) -> None:
        raw = encode(t, d)
        self.context.call_later(0, lambda: self.socket.receive(raw))

    def _board(self, variant: str, fen: str, path: TreePath) -> chess.Board:
        if self.history is not None:
            nodes = self.history(path)
            if len(nodes) == len(path) + 1:
                board = variant_board(variant, nodes[0].fen)
                for node in nodes[1:]:
                    board.push_uci(node.uci)
                if board.fen() == fen:
                    return board
                logger.debug(f"History of {path} does not lead to {fen}, using the FEN alone")
        return variant_board(variant, fen)

    def _on_move(self, req: AnaMove) -> None:
        promotion = PROMOTIONS.get(req.promotion, req.promotion) if req.promotion else ""
        try:
            board = self._board(req.variant, req.fen, req.path)
            move = board.parse_uci(f"{req.orig}{req.dest}{promotion}")
        except ValueError as e:
            logger.info(f"Rejecting move {req.orig}{req.dest} in {req.fen}: {e}")
            self._reply("stepFailure")
            return
        self._reply("node", NodeMessage(node=node_after(board, move), path=req.path, fen=req.fen))

    def _on_drop(self, req: AnaDrop) -> None:
        try:
            board = self._board(req.variant, req.fen, req.path)
            symbol = chess.PIECE_SYMBOLS[chess.PIECE_NAMES.index(req.role)].upper()
            move = board.parse_uci(f"{symbol}@{req.pos}")
        except ValueError as e:
            logger.info(f"Rejecting drop of {req.role} on {req.pos} in {req.fen}: {e}")
            self._reply("stepFailure")
            return
        self._reply("node", NodeMessage(node=node_after(board, move), path=req.path, fen=req.fen))

    def _on_dests(self, req: AnaDests) -> None:
        try:
            board = variant_board(req.variant, req.fen)
        except ValueError as e:
            logger.warning(f"Cannot compute destinations of {req.fen}: {e}")
            return
        self._reply("dests", DestsMessage(dests=legal_dests(board), path=req.path, fen=req.fen))

    def _on_eval_get(self, req: EvalGet) -> None:
        if self.cloud_lookup is None:
            return
        task = asyncio.get_running_loop().create_task(self._look_up(self.cloud_lookup, req))
        self._lookups.add(task)
        task.add_done_callback(self._lookups.discard)

    async def _look_up(self, cloud_lookup: CloudLookup, req: EvalGet) -> None:
        # blocking network call
        cloud_eval = await asyncio.to_thread(cloud_lookup, req.fen, req.mpv or 1)
        if cloud_eval is not None:
            cloud_eval.path = req.path
            self._reply("evalHit", cloud_eval)

    async def drain(self) -> None:
        """Wait for the evaluation lookups still in flight."""
        if self._lookups:
            await asyncio.gather(*self._lookups)
