"""The analysis board controller: cursor, jump protocol and engine coordination.

Every handler runs to completion on the event loop and leaves tree and cursor
consistent, since an engine emission for a stale path can arrive between any two
handlers.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

import chess
import msgspec
import requests

from analysis_board import autoshape
from analysis_board.ceval.ctrl import CevalController, CevalOpts, CevalPrefs
from analysis_board.ceval.engine import WorkerFactory, uci_worker_factory
from analysis_board.ceval.eval import is_eval_better, merge_max_depth
from analysis_board.config import AnalysisBoardConfig
from analysis_board.eval_cache import EvalCache, EvalCacheOpts
from analysis_board.interfaces import (
    AnaDests,
    AnaDrop,
    AnalyseData,
    AnalysisApi,
    AnaMove,
    BoardConfig,
    BoardView,
    Color,
    Explorer,
    Movable,
    Practice,
    Premovable,
    Retro,
    Socket,
    Sound,
    Study,
    is_playable,
    is_synthetic,
    opposite,
)
from analysis_board.pgn import analyse_data_from_fen
from analysis_board.prefs import PreferenceStore, StoredBooleanProp
from analysis_board.throttle import Debounce, SessionContext, Throttle
from analysis_board.tree import ops
from analysis_board.tree import path as tree_path
from analysis_board.tree.node import ClientEval, Node, Opening
from analysis_board.tree.path import ROOT, TreePath
from analysis_board.tree.tree import MoveTree
from analysis_board.variant import DROP_VARIANTS

logger = logging.getLogger(__name__)

GameOver = Literal["draw", "checkmate"]

ROLE_TO_SAN = {"pawn": "P", "knight": "N", "bishop": "B", "rook": "R", "queen": "Q"}


class _Silence:
    def move(self) -> None:
        pass

    def capture(self) -> None:
        pass

    def check(self) -> None:
        pass


class _ThrottledSound:
    """Each sound plays at most once per interval, extra plays are dropped."""

    def __init__(self, sound: Sound, interval: float, context: SessionContext) -> None:
        self.move = Throttle(interval, sound.move, context, trailing=False)
        self.capture = Throttle(interval, sound.capture, context, trailing=False)
        self.check = Throttle(interval, sound.check, context, trailing=False)


@dataclass
class AnalyseOpts:
    data: AnalyseData
    socket: Socket
    redraw: Callable[[], None] = lambda: None
    board: BoardView | None = None
    sound: Sound | None = None
    context: SessionContext = field(default_factory=SessionContext)
    config: AnalysisBoardConfig = field(default_factory=AnalysisBoardConfig)
    prefs: PreferenceStore = field(default_factory=PreferenceStore)
    worker_factory: WorkerFactory = uci_worker_factory
    api: AnalysisApi | None = None
    embed: bool = False
    ceval_enabled: bool = False
    initial_ply: int | Literal["last"] | None = None
    study: Study | None = None
    explorer: Explorer | None = None
    practice_factory: Callable[["AnalyseController"], Practice] | None = None
    retro_factory: Callable[["AnalyseController"], Retro] | None = None
    confirm: Callable[[str], bool] = lambda message: True
    on_change: Callable[[str, TreePath, int | None], None] | None = None
    on_toggle_computer: Callable[[bool], None] | None = None
    on_position_indicator: Callable[[int], None] | None = None


def _plural(noun: str, count: int) -> str:
    return f"{count} {noun}" + ("" if count == 1 else "s")


def _is_capture(fen: str, uci: str) -> bool:
    try:
        return chess.Board(fen).is_capture(chess.Move.from_uci(uci))
    except ValueError:
        return False


class AnalyseController:
    def __init__(self, opts: AnalyseOpts) -> None:
        self.opts = opts
        self.embed = opts.embed
        self.redraw = opts.redraw
        self.socket = opts.socket
        self.board = opts.board
        self.cfg = opts.config
        self.context = opts.context

        interval = self.cfg.throttle
        self.sound = _ThrottledSound(opts.sound or _Silence(), interval.sound, self.context)

        self.start_ceval = Throttle(interval.start_ceval, self._start_ceval, self.context)
        self.get_dests = Throttle(interval.dests, self._get_dests, self.context)
        self.on_change = Throttle(interval.on_change, self._on_change, self.context)
        self.update_position_indicator = Debounce(
            interval.position_indicator, self._update_position_indicator, self.context
        )

        self.show_auto_shapes = StoredBooleanProp(opts.prefs, "show-auto-shapes", True)
        self.show_gauge = StoredBooleanProp(opts.prefs, "show-gauge", True)
        self.show_computer = StoredBooleanProp(opts.prefs, "show-computer", True)

        self.study = opts.study
        self.study_practice = opts.study.practice if opts.study is not None else None
        self.explorer = opts.explorer
        self.practice: Practice | None = None
        self.retro: Retro | None = None

        self.flipped = False
        self.threat_mode = False
        self.redirecting = False
        self.just_played: str | None = None
        self.just_dropped: str | None = None
        self.just_captured: bool = False
        self.board_config: BoardConfig | None = None

        self.initialize(opts.data, merge=False)

        self.ceval_prefs = CevalPrefs.from_config(self.cfg.ceval, enabled=opts.ceval_enabled)
        self.ceval: CevalController | None = None
        self.instantiate_ceval()
        self.instantiate_eval_cache()

        self.initial_path = self._initial_path(opts.initial_ply)
        self.set_path(self.initial_path)

        self.show_ground()
        self._on_toggle_computer()
        self.start_ceval()

    def initialize(self, data: AnalyseData, merge: bool) -> None:
        self.data = data
        self.synthetic = is_synthetic(data)
        self.ongoing = not self.synthetic and is_playable(data)

        previous = self.tree if merge else None
        self.tree = MoveTree.from_parts(data.tree_parts)
        if previous is not None:
            self.tree.merge(previous)

        self.socket.clear_cache()
        self.game_path: TreePath | None = (
            None
            if self.synthetic or self.ongoing
            else tree_path.from_node_list(ops.mainline_node_list(self.tree.root))
        )

    def _initial_path(self, initial_ply: int | Literal["last"] | None) -> TreePath:
        if initial_ply is None:
            return ROOT
        mainline = ops.mainline_node_list(self.tree.root)
        if initial_ply == "last":
            return tree_path.from_node_list(mainline)
        return ops.take_path_while(mainline, lambda n: n.ply <= initial_ply)

    @property
    def variant(self) -> str:
        return self.data.game.variant

    # cursor

    def set_path(self, path: TreePath) -> None:
        self.node_list = self.tree.get_node_list(path)
        self.node = self.node_list[-1]
        # a path that no longer fully resolves is cut back to its deepest existing node
        self.path = tree_path.from_node_list(self.node_list)
        self.mainline = ops.mainline_node_list(self.tree.root)
        self.on_mainline = self.tree.path_is_mainline(self.path)

    def bottom_color(self) -> Color:
        return opposite(self.data.orientation) if self.flipped else self.data.orientation

    def top_color(self) -> Color:
        return opposite(self.bottom_color())

    def turn_color(self) -> Color:
        return "white" if self.node.ply % 2 == 0 else "black"

    def flip(self) -> None:
        self.flipped = not self.flipped
        if self.board is not None:
            self.board.set_orientation(self.bottom_color())
        if self.retro is not None:
            self.retro = None
            self.toggle_retro()
        if self.practice is not None:
            self.restart_practice()
        self.redraw()

    # board

    def make_board_config(self) -> BoardConfig:
        node = self.node
        color = self.turn_color()
        dests = node.dests
        # drops is None both for unrestricted drops and for variants without drops
        can_drop = self.variant in DROP_VARIANTS and (node.drops is None or bool(node.drops))
        if self.practice is not None:
            movable_color: Color | None = self.bottom_color()
        elif not self.embed and (dests or can_drop):
            movable_color = color
        else:
            movable_color = None

        config = BoardConfig(
            fen=node.fen,
            turn_color=color,
            movable=Movable(
                color=movable_color,
                dests=(dests or {}) if movable_color == color else {},
            )
            if not self.embed
            else Movable(),
            check=node.check,
            last_move=autoshape.uci_to_squares(node.uci) if node.uci else None,
        )
        if dests is None and not node.check:
            # premove while dests are loading, not in check where the wrong king would light up
            config.turn_color = opposite(color)
            config.movable.color = color
        config.premovable = Premovable(
            enabled=config.movable.color is not None and config.turn_color != config.movable.color
        )
        self.board_config = config
        return config

    def show_ground(self) -> None:
        self.on_change()
        if self.node.dests is None:
            self.get_dests()
        if self.board is not None:
            self.board.set(self.make_board_config())
            self.set_auto_shapes()
            if self.node.shapes:
                self.board.set_shapes(self.node.shapes)

    def _get_dests(self) -> None:
        if not self.embed and self.node.dests is None:
            self.socket.send_ana_dests(AnaDests(variant=self.variant, fen=self.node.fen, path=self.path))

    def _on_change(self) -> None:
        if self.opts.on_change is not None:
            mainline_ply = self.node.ply if self.on_mainline else None
            self.opts.on_change(self.node.fen, self.path, mainline_ply)

    def _update_position_indicator(self) -> None:
        if self.study is None and self.opts.on_position_indicator is not None:
            self.opts.on_position_indicator(self.node.ply)

    def set_auto_shapes(self) -> None:
        if self.board is None:
            return
        if not self.show_auto_shapes() or not self.show_computer():
            self.board.set_auto_shapes([])
            return
        self.board.set_auto_shapes(
            autoshape.compute(self.node, ceval_enabled=self.ceval.enabled(), threat_mode=self.threat_mode)
        )

    def _prepare_premoving(self) -> None:
        if self.board is None or self.board_config is None:
            return
        color = self.board_config.movable.color
        if color is None:
            return
        self.board_config = msgspec.structs.replace(
            self.board_config,
            turn_color=color,
            movable=Movable(color=opposite(color)),
            premovable=Premovable(enabled=True),
        )
        self.board.set(self.board_config)

    # navigation

    def _play_jump_sound(self) -> None:
        node = self.node
        if node.uci is None:
            self.sound.move()  # initial position
        elif self.just_played is None or not node.uci.startswith(self.just_played):
            if node.san is not None and "x" in node.san:
                self.sound.capture()
            else:
                self.sound.move()
        if node.san is not None and ("+" in node.san or "#" in node.san):
            self.sound.check()

    def jump(self, path: TreePath) -> None:
        previous = self.path
        self.set_path(path)
        path_changed = self.path != previous
        self.show_ground()
        if path_changed:
            self._play_jump_sound()
            self.threat_mode = False
            self.ceval.stop()
            self.start_ceval()
        self.just_played = None
        self.just_dropped = None
        self.just_captured = False
        if path_changed:
            for listener in (self.explorer, self.practice, self.retro, self.study):
                if listener is not None:
                    listener.on_jump(previous, self.path, self.node)
        self.update_position_indicator()

    def user_jump(self, path: TreePath) -> None:
        if self.board is not None:
            self.board.select_square(None)
        if self.practice is not None:
            previous = self.path
            self.practice.pre_user_jump(previous, path)
            self.jump(path)
            self.practice.post_user_jump(previous, self.path)
        else:
            self.jump(path)

    def can_jump_to(self, path: TreePath) -> bool:
        return self.study is None or self.study.can_jump_to(path)

    def user_jump_if_can(self, path: TreePath) -> bool:
        if not self.can_jump_to(path):
            return False
        self.user_jump(path)
        return True

    def mainline_path_to_ply(self, ply: int) -> TreePath:
        return ops.take_path_while(self.mainline, lambda n: n.ply <= ply)

    def jump_to_main(self, ply: int) -> None:
        self.user_jump(self.mainline_path_to_ply(ply))

    def jump_to_index(self, index: int) -> None:
        self.jump_to_main(index + 1 + self.data.game.started_at_turn)

    def jump_to_glyph_symbol(self, color: Color, symbol: str) -> None:
        """Jump to the next mainline move by `color` annotated with `symbol`, wrapping around."""
        parity = 1 if color == "white" else 0
        candidates = [n for n in self.mainline if n.ply % 2 == parity and any(g.symbol == symbol for g in n.glyphs)]
        target = next((n for n in candidates if n.ply > self.node.ply), candidates[0] if candidates else None)
        if target is not None:
            self.jump_to_main(target.ply)
        self.redraw()

    # moves

    def user_move(self, orig: str, dest: str, capture: bool = False, promotion: str | None = None) -> None:
        self.just_played = orig
        self.just_dropped = None
        if capture:
            self.sound.capture()
        else:
            self.sound.move()
        self.send_move(orig, dest, capture, promotion)

    def send_move(self, orig: str, dest: str, capture: bool = False, promotion: str | None = None) -> None:
        move = AnaMove(
            orig=orig,
            dest=dest,
            variant=self.variant,
            fen=self.node.fen,
            path=self.path,
            promotion=promotion,
        )
        if capture:
            self.just_captured = True
        if self.practice is not None:
            self.practice.on_user_move()
        self.socket.send_ana_move(move)
        self._prepare_premoving()
        self.redraw()

    def _can_drop(self, role: str, pos: str) -> bool:
        if role == "pawn" and pos[1] in "18":
            return False
        return self.node.drops is None or pos in self.node.drops

    def user_new_piece(self, role: str, pos: str) -> None:
        if not self._can_drop(role, pos):
            self.jump(self.path)
            return
        self.just_played = f"{ROLE_TO_SAN[role]}@{pos}"
        self.just_dropped = role
        self.just_captured = False
        self.sound.move()
        self.socket.send_ana_drop(
            AnaDrop(role=role, pos=pos, variant=self.variant, fen=self.node.fen, path=self.path)
        )
        self._prepare_premoving()
        self.redraw()

    def play_uci(self, uci: str) -> None:
        if uci[1] == "@":
            role = next(r for r, san in ROLE_TO_SAN.items() if san == uci[0].upper())
            self.user_new_piece(role, uci[2:4])
            return
        promotion = uci[4] if len(uci) > 4 else None
        self.send_move(uci[0:2], uci[2:4], _is_capture(self.node.fen, uci), promotion)

    def explorer_move(self, uci: str) -> None:
        self.play_uci(uci)
        if self.explorer is not None:
            self.explorer.loading(True)

    def next_node_best(self) -> str | None:
        return ops.with_mainline_child(self.node, lambda n: n.eval.best if n.eval is not None else None)

    def play_best_move(self) -> None:
        uci = self.next_node_best() or (self.node.ceval.best() if self.node.ceval is not None else None)
        if uci is not None:
            self.play_uci(uci)

    # tree mutations

    def _is_current_position(self, path: TreePath, fen: str | None, what: str) -> bool:
        if fen is None:
            return True
        found = self.tree.node_at_path(path)
        if found is not None and found.fen != fen:
            logger.info(f"Discarding {what} for {path}: computed for {fen}, node is now {found.fen}")
            return False
        return True

    def add_node(self, node: Node, path: TreePath, fen: str | None = None) -> None:
        if not self._is_current_position(path, fen, f"move {node.id}"):
            return
        new_path = self.tree.add_node(node, path)
        if new_path is None:
            logger.warning(f"Cannot add node {node.id} at {path}")
            self.redraw()
            return
        self.jump(new_path)
        self.redraw()
        if self.board is not None:
            self.board.play_premove()

    def add_dests(
        self,
        dests: dict[str, list[str]],
        path: TreePath,
        opening: Opening | None = None,
        fen: str | None = None,
    ) -> None:
        if not self._is_current_position(path, fen, "destinations"):
            return
        self.tree.add_dests(dests, path, opening)
        if path == self.path:
            self.show_ground()
            self.redraw()
            if self.game_over():
                self.ceval.stop()
        if self.board is not None:
            self.board.play_premove()

    def delete_node(self, path: TreePath) -> bool:
        node = self.tree.node_at_path(path)
        if node is None:
            return False
        count = ops.count_children_and_comments(node)
        if count.nodes >= 10 or count.comments > 0:
            message = f"Delete {_plural('move', count.nodes)}"
            if count.comments:
                message += f" and {_plural('comment', count.comments)}"
            if not self.opts.confirm(f"{message}?"):
                return False
        if not self.tree.delete_node_at(path):
            return False
        if tree_path.contains(self.path, path):
            self.user_jump(tree_path.init(path))
        else:
            self.jump(self.path)
        if self.study is not None:
            self.study.delete_node(path)
        return True

    def promote(self, path: TreePath, to_mainline: bool) -> None:
        self.tree.promote_at(path, to_mainline)
        self.jump(path)
        if self.study is not None:
            self.study.promote(path, to_mainline)

    def reset(self) -> None:
        self.show_ground()
        self.redraw()

    # reloading

    def reload_data(self, data: AnalyseData, merge: bool) -> None:
        self.initialize(data, merge)
        self.redirecting = False
        self.set_path(ROOT)
        self.instantiate_ceval()
        self.instantiate_eval_cache()
        # a jump to the unchanged root would not start the fresh engine
        self.start_ceval()

    async def change_pgn(self, pgn: str) -> bool:
        if self.opts.api is None:
            raise RuntimeError("No analysis API configured to import a PGN")
        self.redirecting = True
        self.redraw()
        try:
            data = await asyncio.to_thread(self.opts.api.import_pgn, pgn)
        except (requests.RequestException, msgspec.DecodeError, ValueError) as e:
            logger.warning(f"Could not import PGN: {e}")
            self.redirecting = False
            self.redraw()
            return False
        self.reload_data(data, merge=False)
        self.user_jump(self.mainline_path_to_ply(self.tree.last_ply()))
        self.redraw()
        return True

    def change_fen(self, fen: str) -> bool:
        self.redirecting = True
        try:
            data = analyse_data_from_fen(fen, self.variant)
        except ValueError as e:
            logger.warning(f"Could not set up position {fen!r}: {e}")
            self.redirecting = False
            self.redraw()
            return False
        self.reload_data(data, merge=False)
        self.jump(ROOT)
        self.redraw()
        return True

    def merge_analysis_data(self, data: AnalyseData) -> None:
        self.tree.merge(MoveTree.from_parts(data.tree_parts))
        if not self.show_computer():
            self.tree.remove_computer_variations()
        self.data.analysis = data.analysis
        if self.retro is not None:
            self.retro.on_merge_analysis_data()
        self.redraw()

    # evaluations

    def current_evals(self) -> dict[str, object]:
        return {"server": self.node.eval, "client": self.node.ceval}

    def on_new_ceval(self, ev: ClientEval, path: TreePath, threat_mode: bool) -> None:
        def apply(node: Node) -> None:
            stored = node.threat if threat_mode else node.ceval
            if is_eval_better(ev, stored):
                if stored is not None:
                    ev.retried = ev.retried or stored.retried
                if threat_mode:
                    node.threat = ev
                else:
                    node.ceval = ev
            elif stored is not None:
                merge_max_depth(stored, ev)

        node = self.tree.node_at_path(path)
        if node is None:
            return
        # threat evals probe a position with the side to move swapped, so no fen can match
        if node.fen != ev.fen and not threat_mode:
            logger.debug(f"Discarding eval of {ev.fen} for {path}, node is now {node.fen}")
            return
        self.tree.update_at(path, apply)

        if path != self.path:
            return
        self.set_auto_shapes()
        if not threat_mode:
            if self.retro is not None:
                self.retro.on_ceval()
            if self.practice is not None:
                self.practice.on_ceval()
            if self.study_practice is not None:
                self.study_practice.on_ceval()
            self.eval_cache.on_ceval()
            if ev.cloud and ev.depth >= self.ceval.effective_max_depth():
                self.ceval.stop()
        self.redraw()

    def instantiate_ceval(self, failsafe: bool = False) -> None:
        after = self.ceval.destroy() if self.ceval is not None else None
        self.ceval = CevalController(
            CevalOpts(
                variant=self.variant,
                possible=not self.embed and (self.synthetic or not is_playable(self.data)),
                emit=lambda ev, work: self.on_new_ceval(ev, work.path, work.threat_mode),
                on_crash=self._on_ceval_crash,
                failsafe=failsafe,
            ),
            self.cfg.ceval,
            self.ceval_prefs,
            self.opts.worker_factory,
            after,
        )

    def _on_ceval_crash(self, last_error: str) -> None:
        ceval = self.node.ceval
        logger.warning(f"Local eval failed after depth {ceval.depth if ceval else None}: {last_error}")
        if self.ceval.failsafe:
            logger.error("The failsafe engine crashed as well, continuing without local analysis")
            return
        if ceval is not None and ceval.depth >= self.cfg.ceval.crash_retry_depth and not ceval.retried:
            logger.info("Remaining on the regular engine for now")
            ceval.retried = True
            self.ceval.stop()
        else:
            logger.info("Falling back to the failsafe engine")
            self.instantiate_ceval(failsafe=True)
        self.start_ceval()

    def game_over(self, node: Node | None = None) -> GameOver | None:
        n = node or self.node
        if n.dests is None or n.dests or n.drops:
            return None
        return "checkmate" if n.check else "draw"

    def can_use_ceval(self) -> bool:
        return self.game_over() is None and not self.node.threefold

    def _start_ceval(self) -> None:
        if not self.ceval.enabled():
            return
        if self.can_use_ceval():
            self.ceval.start(self.path, self.node_list, self.threat_mode)
            self.eval_cache.fetch(self.path, self.ceval.prefs.multi_pv)
        else:
            self.ceval.stop()

    def toggle_ceval(self) -> None:
        self.ceval.toggle()
        self.set_auto_shapes()
        self.start_ceval()
        if not self.ceval.enabled():
            self.threat_mode = False
            if self.practice is not None:
                self.toggle_practice()
        self.redraw()

    def toggle_threat_mode(self) -> None:
        if self.node.check:
            return
        if not self.ceval.enabled():
            self.ceval.toggle()
        if not self.ceval.enabled():
            return
        self.threat_mode = not self.threat_mode
        if self.threat_mode and self.practice is not None:
            self.toggle_practice()
        self.set_auto_shapes()
        self.start_ceval()
        self.redraw()

    def disable_threat_mode(self) -> bool:
        return self.practice is not None

    def mandatory_ceval(self) -> bool:
        return self.study_practice is not None

    def _ceval_reset(self) -> None:
        self.ceval.stop()
        if not self.ceval.enabled():
            self.ceval.toggle()
        self.start_ceval()
        self.redraw()

    def ceval_set_multi_pv(self, value: int) -> None:
        self.ceval.set_multi_pv(value)
        # evaluations with a different line count are no longer comparable
        self.tree.remove_ceval()
        self._ceval_reset()

    def ceval_set_threads(self, value: int) -> None:
        self.ceval.set_threads(value)
        self._ceval_reset()

    def ceval_set_hash_size(self, value: int) -> None:
        self.ceval.set_hash_size(value)
        self._ceval_reset()

    def ceval_set_infinite(self, value: bool) -> None:
        self.ceval.set_infinite(value)
        self._ceval_reset()

    # evaluation cache

    def can_eval_get(self, node: Node) -> bool:
        return self.study is not None or node.ply < self.cfg.eval_cache.max_ply

    def can_eval_put(self, node: Node) -> bool:
        if not self.data.eval_put or not self.can_eval_get(node):
            return False
        if self.study is not None:
            return True
        # outside studies only share decent opening positions
        ceval = node.ceval
        return (
            node.ply < self.cfg.eval_cache.max_ply
            and ceval is not None
            and ceval.mate is None
            and ceval.cp is not None
            and abs(ceval.cp) < self.cfg.eval_cache.max_put_cp
        )

    def instantiate_eval_cache(self) -> None:
        self.eval_cache = EvalCache(
            EvalCacheOpts(
                variant=self.variant,
                can_get=self.can_eval_get,
                can_put=self.can_eval_put,
                get_node=lambda: self.node,
                send=self.socket.send,
                receive=lambda ev, path: self.on_new_ceval(ev, path, False),
            ),
            self.cfg.eval_cache,
            self.context,
            self.cfg.throttle.eval_put,
        )

    # display toggles

    def show_eval_gauge(self) -> bool:
        return (
            self.has_any_computer_analysis()
            and self.show_gauge()
            and self.game_over() is None
            and self.show_computer()
        )

    def has_any_computer_analysis(self) -> bool:
        return self.data.analysis is not None or self.ceval.enabled()

    def has_full_computer_analysis(self) -> bool:
        return self.mainline[0].eval is not None

    def _reset_auto_shapes(self) -> None:
        if self.show_auto_shapes():
            self.set_auto_shapes()
        elif self.board is not None:
            self.board.set_auto_shapes([])

    def toggle_auto_shapes(self, value: bool) -> None:
        self.show_auto_shapes.set(value)
        self._reset_auto_shapes()

    def toggle_gauge(self) -> None:
        self.show_gauge.set(not self.show_gauge())

    def _on_toggle_computer(self) -> None:
        if not self.show_computer():
            self.tree.remove_computer_variations()
            if self.ceval.enabled():
                self.toggle_ceval()
            if self.board is not None:
                self.board.set_auto_shapes([])
        else:
            self._reset_auto_shapes()

    def toggle_computer(self) -> None:
        value = not self.show_computer()
        self.show_computer.set(value)
        if not value and self.practice is not None:
            self.toggle_practice()
        if self.opts.on_toggle_computer is not None:
            self.opts.on_toggle_computer(value)
        self._on_toggle_computer()

    # sub features

    def toggle_retro(self) -> None:
        if self.retro is not None:
            self.retro = None
        elif self.opts.retro_factory is not None:
            self.retro = self.opts.retro_factory(self)
            if self.practice is not None:
                self.toggle_practice()
            if self.explorer is not None and self.explorer.enabled():
                self.toggle_explorer()
        self.set_auto_shapes()

    def toggle_explorer(self) -> None:
        if self.practice is not None:
            self.toggle_practice()
        if self.explorer is not None:
            self.explorer.toggle()

    def toggle_practice(self) -> None:
        if self.practice is not None or not self.ceval.possible or self.opts.practice_factory is None:
            self.practice = None
        else:
            if self.retro is not None:
                self.toggle_retro()
            if self.explorer is not None and self.explorer.enabled():
                self.toggle_explorer()
            self.practice = self.opts.practice_factory(self)
        self.set_auto_shapes()

    def restart_practice(self) -> None:
        self.practice = None
        self.toggle_practice()
