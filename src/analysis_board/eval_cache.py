"""Reads from and writes to the shared evaluation cache over the socket.

Lookups are keyed by position (fen). A fen maps to None while its lookup is
outstanding and to the fetched evaluation once it has arrived, so a position is
never requested twice.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import msgspec

from analysis_board.config import EvalCacheConfig
from analysis_board.throttle import SessionContext, Throttle
from analysis_board.tree.node import ClientEval, Node, Pv
from analysis_board.tree.path import TreePath

logger = logging.getLogger(__name__)


class CloudPv(msgspec.Struct, omit_defaults=True):
    moves: str  # space separated UCI moves
    cp: int | None = None
    mate: int | None = None


class CloudEval(msgspec.Struct, kw_only=True, omit_defaults=True):
    """Evaluation as stored in the shared cache"""

    fen: str
    knodes: int
    depth: int
    pvs: list[CloudPv]
    path: TreePath | None = None


class EvalGet(msgspec.Struct, kw_only=True, omit_defaults=True):
    fen: str
    path: TreePath
    variant: str | None = None
    mpv: int | None = None
    up: bool = False


class EvalPut(msgspec.Struct, kw_only=True, omit_defaults=True):
    fen: str
    knodes: int
    depth: int
    pvs: list[CloudPv]
    variant: str | None = None


def to_ceval(e: CloudEval) -> ClientEval:
    pvs = [Pv(moves=pv.moves.split(" "), cp=pv.cp, mate=pv.mate) for pv in e.pvs]
    best = pvs[0] if pvs else Pv(moves=[])
    return ClientEval(
        fen=e.fen,
        depth=e.depth,
        nodes=e.knodes * 1000,
        cp=best.cp,
        mate=best.mate if best.cp is None else None,
        pvs=pvs,
        cloud=True,
    )


def to_put_data(variant: str, ev: ClientEval, max_moves: int) -> EvalPut:
    return EvalPut(
        fen=ev.fen,
        knodes=round(ev.nodes / 1000),
        depth=ev.depth,
        pvs=[
            CloudPv(moves=" ".join(pv.moves[:max_moves]), cp=pv.cp, mate=pv.mate)
            for pv in ev.pvs
        ],
        variant=None if variant == "standard" else variant,
    )


@dataclass
class EvalCacheOpts:
    variant: str
    can_get: Callable[[Node], bool]
    can_put: Callable[[Node], bool]
    get_node: Callable[[], Node]
    send: Callable[[str, Any], None]
    receive: Callable[[ClientEval, TreePath], None]


class EvalCache:
    def __init__(self, opts: EvalCacheOpts, cfg: EvalCacheConfig, context: SessionContext, put_interval: float) -> None:
        self.opts = opts
        self.cfg = cfg
        self.fetched_by_fen: dict[str, CloudEval | None] = {}
        self.upgradable = False
        self.on_ceval = Throttle(put_interval, self._put_current, context)

    def quality_check(self, ev: ClientEval) -> bool:
        # evals under this node count may come from an imminent threefold repetition
        return ev.nodes > self.cfg.put_required_nodes and (
            ev.depth >= self.cfg.put_min_depth or ev.nodes > self.cfg.put_min_nodes
        )

    def _put_current(self) -> None:
        node = self.opts.get_node()
        ev = node.ceval
        if (
            ev is not None
            and not ev.cloud
            and node.fen in self.fetched_by_fen
            and self.quality_check(ev)
            and self.opts.can_put(node)
        ):
            logger.debug(f"Sharing depth {ev.depth} evaluation of {node.fen}")
            self.opts.send("evalPut", to_put_data(self.opts.variant, ev, self.cfg.put_max_moves))

    def fetch(self, path: TreePath, multi_pv: int) -> None:
        node = self.opts.get_node()
        if (node.ceval is not None and node.ceval.cloud) or not self.opts.can_get(node):
            return
        if node.fen in self.fetched_by_fen:
            if (cloud_eval := self.fetched_by_fen[node.fen]) is not None:
                self.opts.receive(to_ceval(cloud_eval), path)
            return
        self.fetched_by_fen[node.fen] = None
        self.opts.send(
            "evalGet",
            EvalGet(
                fen=node.fen,
                path=path,
                variant=None if self.opts.variant == "standard" else self.opts.variant,
                mpv=multi_pv if multi_pv > 1 else None,
                up=self.upgradable,
            ),
        )

    def on_cloud_eval(self, cloud_eval: CloudEval) -> None:
        self.fetched_by_fen[cloud_eval.fen] = cloud_eval
        if cloud_eval.path is None:
            logger.warning(f"Dropping cloud eval without a path for {cloud_eval.fen}")
            return
        self.opts.receive(to_ceval(cloud_eval), cloud_eval.path)

    def on_crowd(self, nb: int) -> None:
        self.upgradable = 2 < nb < 99999
