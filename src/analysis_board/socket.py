"""JSON message codec between the analysis board and its server.

Every message is an envelope `{"t": type, "d": data}`. Outbound requests are encoded
and handed to a transport; inbound messages are decoded by type and dispatched to the
receiver (normally the `AnalyseController`).
"""

import logging
from collections.abc import Callable
from typing import Any, Protocol

import msgspec

from analysis_board.eval_cache import CloudEval, EvalCache
from analysis_board.interfaces import AnaDests, AnaDrop, AnalyseData, AnaMove
from analysis_board.tree.node import Node, Opening
from analysis_board.tree.path import TreePath

logger = logging.getLogger(__name__)

Transport = Callable[[bytes], None]


class Envelope(msgspec.Struct):
    t: str
    d: msgspec.Raw = msgspec.field(default_factory=lambda: msgspec.Raw(b"null"))


class NodeMessage(msgspec.Struct):
    """A new child `node` of the position `fen` found at `path`"""

    node: Node
    path: TreePath
    fen: str


class DestsMessage(msgspec.Struct, omit_defaults=True):
    dests: dict[str, list[str]]
    path: TreePath
    fen: str
    opening: Opening | None = None


class CrowdMessage(msgspec.Struct):
    nb: int


class Receiver(Protocol):
    eval_cache: EvalCache

    def add_node(self, node: Node, path: TreePath, fen: str | None = None) -> None: ...

    def add_dests(
        self,
        dests: dict[str, list[str]],
        path: TreePath,
        opening: Opening | None = None,
        fen: str | None = None,
    ) -> None: ...

    def reset(self) -> None: ...

    def merge_analysis_data(self, data: AnalyseData) -> None: ...


def encode(t: str, d: Any = None) -> bytes:
    return msgspec.json.encode({"t": t, "d": d})


class AnalyseSocket:
    """Implements the board's socket interface on top of a byte transport.

    Legal destination replies are cached per path, so revisiting a position answers
    from the cache instead of asking the server again. Inbound moves and destinations
    carry the FEN they were computed for, so the receiver can discard stale replies.
    """

    def __init__(self, transport: Transport | None = None) -> None:
        self.transport = transport
        self.receiver: Receiver | None = None
        self._dests_cache: dict[TreePath, DestsMessage] = {}
        self._handlers: dict[str, tuple[type, Callable[[Receiver, Any], None]]] = {
            "node": (NodeMessage, lambda r, m: r.add_node(m.node, m.path, m.fen)),
            "dests": (DestsMessage, self._on_dests),
            "evalHit": (CloudEval, lambda r, m: r.eval_cache.on_cloud_eval(m)),
            "crowd": (CrowdMessage, lambda r, m: r.eval_cache.on_crowd(m.nb)),
            "stepFailure": (msgspec.Raw, lambda r, m: r.reset()),
            "analysisProgress": (AnalyseData, lambda r, m: r.merge_analysis_data(m)),
        }

    def send(self, t: str, d: Any = None) -> None:
        if self.transport is None:
            raise RuntimeError("AnalyseSocket has no transport attached")
        self.transport(encode(t, d))

    def send_ana_move(self, move: AnaMove) -> None:
        self.send("anaMove", move)

    def send_ana_drop(self, drop: AnaDrop) -> None:
        self.send("anaDrop", drop)

    def send_ana_dests(self, req: AnaDests) -> None:
        cached = self._dests_cache.get(req.path)
        if cached is not None and cached.fen == req.fen and self.receiver is not None:
            self._on_dests(self.receiver, cached)
        else:
            self.send("anaDests", req)

    def clear_cache(self) -> None:
        self._dests_cache = {}

    def _on_dests(self, receiver: Receiver, message: DestsMessage) -> None:
        self._dests_cache[message.path] = message
        receiver.add_dests(message.dests, message.path, message.opening, message.fen)

    def receive(self, raw: bytes) -> bool:
        """Decode and dispatch one inbound message.

        Returns:
            Whether the message was understood and dispatched
        """
        if self.receiver is None:
            raise RuntimeError("AnalyseSocket has no receiver attached")
        try:
            envelope = msgspec.json.decode(raw, type=Envelope)
            if envelope.t not in self._handlers:
                logger.debug(f"Ignoring message of type {envelope.t}")
                return False
            data_type, handler = self._handlers[envelope.t]
            data = msgspec.json.decode(envelope.d, type=data_type)
        except msgspec.DecodeError as e:
            logger.warning(f"Dropping malformed message: {e}")
            return False
        handler(self.receiver, data)
        return True
