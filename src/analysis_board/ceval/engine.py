import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

import chess
import chess.engine
import msgspec

from analysis_board.ceval.work import Work
from analysis_board.tree.node import ClientEval, Pv
from analysis_board.variant import STANDARD_KEYS, variant_board

logger = logging.getLogger(__name__)

EmitFn = Callable[[ClientEval, Work], None]
CrashFn = Callable[[str], None]


class EngineSettings(msgspec.Struct, frozen=True):
    threads: int
    hash_size: int
    infinite: bool


class EngineOptions(msgspec.Struct, frozen=True, kw_only=True):
    """How to launch the engine process"""

    variant: str
    engine_path: str
    failsafe_engine_path: str | None = None
    failsafe: bool = False


class EngineWorker(Protocol):
    """An opaque analysis backend.

    `destroy` returns an awaitable that completes once any external process is gone,
    or None when the worker holds nothing external.
    """

    def start(self, work: Work, settings: EngineSettings) -> None: ...

    def stop(self) -> None: ...

    def destroy(self) -> Awaitable[None] | None: ...


WorkerFactory = Callable[[EngineOptions, EmitFn, CrashFn, Awaitable[None] | None], EngineWorker]


def board_for(work: Work, variant: str) -> chess.Board:
    """Set up the position of a work item, replaying its moves for repetition detection."""
    board = variant_board(variant, work.initial_fen)
    for uci in work.moves:
        board.push_uci(uci)
    return board


def score_to_white(score: chess.engine.PovScore) -> tuple[int | None, int | None]:
    """Convert a PovScore to (centipawns, mate) from White's perspective."""
    white = score.white()
    cp_val = white.score()
    return (cp_val, None) if cp_val is not None else (None, white.mate())


class UciEngineWorker:
    """Drives a UCI engine process through python-chess' asyncio API.

    One process is kept alive across work items and only spawned on the first start,
    after any previously destroyed worker released its own process.
    """

    def __init__(
        self,
        options: EngineOptions,
        emit: EmitFn,
        on_crash: CrashFn,
        after: Awaitable[None] | None = None,
    ) -> None:
        self.options = options
        self.emit = emit
        self.on_crash = on_crash
        self._after = after
        self._engine: chess.engine.Protocol | None = None
        self._settings: EngineSettings | None = None
        self._task: asyncio.Task | None = None
        self._work: Work | None = None
        self._lines: dict[int, Pv] = {}
        self._depth = 0

    @property
    def engine_path(self) -> str:
        if self.options.failsafe and self.options.failsafe_engine_path:
            return self.options.failsafe_engine_path
        return self.options.engine_path

    def start(self, work: Work, settings: EngineSettings) -> None:
        self.stop()
        self._work = work
        self._task = asyncio.get_running_loop().create_task(self._run(work, settings))

    def stop(self) -> None:
        self._work = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def destroy(self) -> Awaitable[None] | None:
        self.stop()
        engine, self._engine = self._engine, None
        if engine is not None:
            return asyncio.get_running_loop().create_task(_quit(engine))
        # a process dropped after a crash may still be quitting
        pending, self._after = self._after, None
        return pending

    async def _ensure_engine(self, settings: EngineSettings) -> chess.engine.Protocol:
        if self._after is not None:
            await self._after
            self._after = None
        if self._engine is None:
            logger.info(f"Starting engine {self.engine_path} (failsafe={self.options.failsafe})")
            _, self._engine = await chess.engine.popen_uci(self.engine_path)
            self._settings = None
        if settings != self._settings:
            await self._engine.configure(self._engine_config(self._engine, settings))
            self._settings = settings
        return self._engine

    def _engine_config(self, engine: chess.engine.Protocol, settings: EngineSettings) -> dict:
        threads, hash_size = settings.threads, settings.hash_size
        if self.options.failsafe and not self.options.failsafe_engine_path:
            threads, hash_size = 1, min(hash_size, 16)
        config = {}
        if "Threads" in engine.options:
            config["Threads"] = threads
        if "Hash" in engine.options:
            config["Hash"] = hash_size
        if self.options.variant not in (*STANDARD_KEYS, "chess960"):
            if "UCI_Variant" in engine.options:
                config["UCI_Variant"] = self.options.variant.lower()
        return config

    async def _run(self, work: Work, settings: EngineSettings) -> None:
        try:
            engine = await self._ensure_engine(settings)
            board = board_for(work, self.options.variant)
            limit = None if settings.infinite else chess.engine.Limit(depth=work.max_depth)
            self._lines, self._depth = {}, 0
            with await engine.analysis(board, limit, multipv=work.multi_pv) as analysis:
                async for info in analysis:
                    if work is not self._work:
                        break
                    if (ev := self._collect(info, work)) is not None:
                        self.emit(ev, work)
        except (chess.engine.EngineError, chess.engine.EngineTerminatedError, OSError) as e:
            logger.warning(f"Engine failed while analysing {work.current_fen}: {e!r}")
            broken, self._engine = self._engine, None
            if broken is not None and not isinstance(e, chess.engine.EngineTerminatedError):
                # protocol errors leave the process running, it quits before the next spawn
                self._after = asyncio.get_running_loop().create_task(_quit(broken))
            self.on_crash(repr(e))

    def _collect(self, info: chess.engine.InfoDict, work: Work) -> ClientEval | None:
        depth, score, pv = info.get("depth"), info.get("score"), info.get("pv")
        if depth is None or score is None or not pv:
            return None
        index = info.get("multipv", 1)
        if index == 1 and depth != self._depth:
            self._lines, self._depth = {}, depth
        cp, mate = score_to_white(score)
        self._lines[index] = Pv(moves=[m.uci() for m in pv], cp=cp, mate=mate)
        pvs = [self._lines[i] for i in sorted(self._lines)]
        time_spent = info.get("time")
        return ClientEval(
            fen=work.current_fen,
            depth=self._depth,
            max_depth=work.max_depth,
            nodes=info.get("nodes", 0),
            cp=pvs[0].cp,
            mate=pvs[0].mate,
            pvs=pvs,
            millis=int(time_spent * 1000) if time_spent is not None else None,
        )


async def _quit(engine: chess.engine.Protocol) -> None:
    try:
        await engine.quit()
    except chess.engine.EngineTerminatedError:
        logger.debug("Engine already terminated")
    except chess.engine.EngineError as e:
        logger.warning(f"Engine did not quit cleanly: {e!r}")


def uci_worker_factory(
    options: EngineOptions,
    emit: EmitFn,
    on_crash: CrashFn,
    after: Awaitable[None] | None,
) -> EngineWorker:
    return UciEngineWorker(options, emit, on_crash, after)
