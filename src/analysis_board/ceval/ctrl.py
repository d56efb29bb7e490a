import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

import msgspec

from analysis_board.ceval.engine import (
    EngineOptions,
    EngineSettings,
    EngineWorker,
    WorkerFactory,
    uci_worker_factory,
)
from analysis_board.ceval.work import Work, build_work
from analysis_board.config import CevalConfig
from analysis_board.tree.node import ClientEval, Node
from analysis_board.tree.path import TreePath

logger = logging.getLogger(__name__)

DEEPER_MAX_DEPTH = 99


class CevalPrefs(msgspec.Struct, kw_only=True):
    """User choices that outlive a single engine instance"""

    enabled: bool = False
    multi_pv: int = 1
    threads: int = 1
    hash_size: int = 16
    infinite: bool = False

    @classmethod
    def from_config(cls, cfg: CevalConfig, *, enabled: bool = False) -> "CevalPrefs":
        return cls(
            enabled=enabled,
            multi_pv=cfg.multi_pv,
            threads=cfg.threads,
            hash_size=cfg.hash_size,
            infinite=cfg.infinite,
        )


@dataclass
class CevalOpts:
    variant: str
    possible: bool
    emit: Callable[[ClientEval, Work], None]
    on_crash: Callable[[str], None]
    failsafe: bool = False


@dataclass
class Started:
    path: TreePath
    steps: Sequence[Node]
    threat_mode: bool


class CevalController:
    """Owns one engine worker and the single live work item.

    Emissions belonging to superseded work are dropped here, before they reach the tree.
    """

    def __init__(
        self,
        opts: CevalOpts,
        cfg: CevalConfig,
        prefs: CevalPrefs,
        worker_factory: WorkerFactory = uci_worker_factory,
        after: Awaitable[None] | None = None,
    ) -> None:
        self.opts = opts
        self.cfg = cfg
        self.prefs = prefs
        self.worker: EngineWorker = worker_factory(
            EngineOptions(
                variant=opts.variant,
                engine_path=cfg.engine_path,
                failsafe_engine_path=cfg.failsafe_engine_path,
                failsafe=opts.failsafe,
            ),
            self._on_emit,
            opts.on_crash,
            after,
        )
        self.work: Work | None = None
        self.started: Started | None = None
        self.cur_eval: ClientEval | None = None
        self.is_deeper = False
        self.released: Awaitable[None] | None = None

    @property
    def possible(self) -> bool:
        return self.opts.possible

    @property
    def failsafe(self) -> bool:
        return self.opts.failsafe

    def enabled(self) -> bool:
        return self.opts.possible and self.prefs.enabled

    def toggle(self) -> None:
        if not self.opts.possible:
            return
        self.stop()
        self.prefs.enabled = not self.prefs.enabled

    def effective_max_depth(self) -> int:
        if self.is_deeper or self.prefs.infinite:
            return DEEPER_MAX_DEPTH
        return self.cfg.max_depth

    def settings(self) -> EngineSettings:
        return EngineSettings(
            threads=self.prefs.threads,
            hash_size=self.prefs.hash_size,
            infinite=self.prefs.infinite,
        )

    def start(
        self,
        path: TreePath,
        steps: Sequence[Node],
        threat_mode: bool,
        deeper: bool = False,
    ) -> None:
        if not self.enabled():
            return
        self.is_deeper = deeper
        max_depth = self.effective_max_depth()
        step = steps[-1]
        existing = step.threat if threat_mode else step.ceval
        if existing is not None and existing.depth >= max_depth:
            self.stop()
            return
        work = build_work(
            path,
            steps,
            threat_mode=threat_mode,
            multi_pv=self.prefs.multi_pv,
            max_depth=max_depth,
        )
        self.work = work
        self.cur_eval = None
        self.started = Started(path=path, steps=steps, threat_mode=threat_mode)
        logger.debug(f"Analysing {work.current_fen} to depth {max_depth}")
        self.worker.start(work, self.settings())

    def stop(self) -> None:
        if self.started is None:
            return
        self.worker.stop()
        self.work = None
        self.started = None

    def destroy(self) -> Awaitable[None] | None:
        self.stop()
        self.released = self.worker.destroy()
        return self.released

    def go_deeper(self) -> None:
        if self.started is None:
            return
        started = self.started
        self.stop()
        self.start(started.path, started.steps, started.threat_mode, deeper=True)

    def can_go_deeper(self) -> bool:
        if self.is_deeper or self.prefs.infinite:
            return False
        return self.work is None or (self.cur_eval is not None and self.cur_eval.depth >= self.work.max_depth)

    def set_multi_pv(self, value: int) -> None:
        self.prefs.multi_pv = value

    def set_threads(self, value: int) -> None:
        self.prefs.threads = value

    def set_hash_size(self, value: int) -> None:
        self.prefs.hash_size = value

    def set_infinite(self, value: bool) -> None:
        self.prefs.infinite = value

    def _on_emit(self, ev: ClientEval, work: Work) -> None:
        if not self.enabled() or work is not self.work:
            return
        self.cur_eval = ev
        self.opts.emit(ev, work)
