import pytest
import requests
from conftest import JumpRecorder, analyse_data, line, make_eval

from analysis_board.interfaces import AnaMove, AnalyseData, GameInfo
from analysis_board.pgn import LocalAnalysisApi, analyse_data_from_pgn
from analysis_board.tree.node import ClientEval, Node, ServerEval
from analysis_board.tree.path import ROOT

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"

RUY_LOPEZ = (
    "1. e4 e5 { solid } 2. Nf3 Nc6 3. Bb5 { the Spanish } a6 4. Ba4 Nf6 "
    "5. O-O Be7 6. Re1 b5 7. Bb3 d6 8. c3 O-O *"
)


def test_initial_ply_selects_mainline_position(make_ctrl):
    ctrl = make_ctrl(analyse_data("e2e4", "e7e5", "g1f3"), initial_ply=2)
    assert ctrl.path == ("e2e4", "e7e5")
    assert ctrl.node.ply == 2

    last = make_ctrl(analyse_data("e2e4", "e7e5", "g1f3"), initial_ply="last")
    assert last.path == ("e2e4", "e7e5", "g1f3")


def test_set_path_cuts_back_unresolved_path(make_ctrl):
    ctrl = make_ctrl(analyse_data("e2e4", "e7e5"))
    ctrl.set_path(("e2e4", "d7d5"))
    assert ctrl.path == ("e2e4",)
    assert ctrl.node.uci == "e2e4"


def test_jump_to_same_path_has_no_side_effects(make_ctrl, scheduler, sound, workers, jump_log):
    ctrl = make_ctrl(analyse_data("e2e4", "e7e5"), explorer=JumpRecorder("explorer", jump_log))
    ctrl.jump(("e2e4",))
    scheduler.advance(1)
    worker = workers.latest
    sounds, starts, stops, notified = len(sound.played), len(worker.started), worker.stops, len(jump_log)

    ctrl.jump(("e2e4",))
    scheduler.advance(1)

    assert ctrl.path == ("e2e4",)
    assert len(sound.played) == sounds
    assert len(worker.started) == starts
    assert worker.stops == stops
    assert len(jump_log) == notified


def test_jump_notifies_listeners_in_order(make_ctrl, jump_log):
    ctrl = make_ctrl(
        analyse_data("e2e4", "e7e5"),
        explorer=JumpRecorder("explorer", jump_log),
        study=JumpRecorder("study", jump_log),
    )
    ctrl.practice = JumpRecorder("practice", jump_log)
    ctrl.retro = JumpRecorder("retro", jump_log)

    ctrl.jump(("e2e4",))

    assert jump_log == [
        ("explorer", ROOT, ("e2e4",)),
        ("practice", ROOT, ("e2e4",)),
        ("retro", ROOT, ("e2e4",)),
        ("study", ROOT, ("e2e4",)),
    ]


def test_user_move_then_server_node(make_ctrl, scheduler, board, sound, socket, workers, jump_log):
    ctrl = make_ctrl(explorer=JumpRecorder("explorer", jump_log))

    ctrl.user_move("e2", "e4")

    assert socket.moves == [AnaMove(orig="e2", dest="e4", variant="standard", fen=START_FEN, path=ROOT)]
    assert sound.played == ["move"]
    assert ctrl.just_played == "e2"

    node = line("e2e4")[1]
    node.dests = None
    ctrl.add_node(node, ROOT)

    assert ctrl.path == ("e2e4",)
    # the move sound already played when the user moved
    assert sound.played == ["move"]
    assert socket.dests[-1].path == ("e2e4",)
    assert ctrl.threat_mode is False
    assert ctrl.just_played is None
    assert jump_log == [("explorer", ROOT, ("e2e4",))]
    assert board.config.premovable.enabled
    assert board.premoves_played == 1

    scheduler.advance(1)
    assert workers.latest.started[-1].path == ("e2e4",)

    ctrl.add_dests({"e7": ["e5", "e6"]}, ("e2e4",))
    assert board.config.movable.color == "black"
    assert board.config.movable.dests == {"e7": ["e5", "e6"]}
    assert board.config.turn_color == "black"


def test_add_node_at_missing_path_keeps_cursor(make_ctrl):
    ctrl = make_ctrl(analyse_data("e2e4"))
    node = line("e2e4", "e7e5")[2]
    ctrl.add_node(node, ("d2d4",))
    assert ctrl.path == ROOT
    assert not ctrl.tree.path_exists(("d2d4", "e7e5"))


def test_move_reply_for_replaced_position_is_discarded(make_ctrl):
    ctrl = make_ctrl(analyse_data("e2e4"))
    ctrl.change_fen("8/8/8/4k3/8/8/4P3/4K3 w - - 0 1")

    ctrl.add_node(line("d2d4")[1], ROOT, fen=START_FEN)

    assert ctrl.path == ROOT
    assert ctrl.tree.root.children == []


def test_dests_reply_for_replaced_position_is_discarded(make_ctrl):
    ctrl = make_ctrl(analyse_data("e2e4"))
    fen = "8/8/8/4k3/8/8/4P3/4K3 w - - 0 1"
    ctrl.change_fen(fen)
    dests = ctrl.tree.root.dests

    ctrl.add_dests({"g1": ["f3", "h3"]}, ROOT, fen=START_FEN)
    assert ctrl.tree.root.dests == dests
    assert "g1" not in ctrl.board.config.movable.dests

    ctrl.add_dests({"e1": ["d1"]}, ROOT, fen=fen)
    assert ctrl.tree.root.dests == {"e1": ["d1"]}


@pytest.mark.parametrize(
    "ucis, expected",
    [
        (("e2e4",), ["move"]),
        (("e2e4", "d7d5", "e4d5"), ["capture"]),
        (("e2e4", "f7f6", "d1h5"), ["move", "check"]),
    ],
)
def test_navigation_sounds(make_ctrl, scheduler, sound, ucis, expected):
    ctrl = make_ctrl(analyse_data(*ucis))
    ctrl.jump(ucis)
    assert sound.played == expected


def test_sounds_are_throttled(make_ctrl, scheduler, sound):
    ctrl = make_ctrl(analyse_data("e2e4", "e7e5"))
    ctrl.jump(("e2e4",))
    ctrl.jump(("e2e4", "e7e5"))
    assert sound.played == ["move"]

    scheduler.advance(0.05)
    ctrl.jump(("e2e4",))
    assert sound.played == ["move", "move"]


def test_position_indicator_is_debounced(make_ctrl, scheduler):
    plies = []
    ctrl = make_ctrl(analyse_data("e2e4", "e7e5", "g1f3"), on_position_indicator=plies.append)
    ctrl.jump(("e2e4",))
    ctrl.jump(("e2e4", "e7e5"))
    ctrl.jump(("e2e4", "e7e5", "g1f3"))

    scheduler.advance(0.5)
    assert plies == []
    scheduler.advance(0.5)
    assert plies == [3]


def test_on_change_is_throttled(make_ctrl, scheduler):
    changes = []
    ctrl = make_ctrl(
        analyse_data("e2e4", "e7e5", "g1f3"),
        on_change=lambda fen, path, ply: changes.append((path, ply)),
    )
    assert changes == [(ROOT, 0)]

    ctrl.jump(("e2e4",))
    ctrl.jump(("e2e4", "e7e5", "g1f3"))
    assert len(changes) == 1

    scheduler.advance(0.3)
    assert changes[-1] == (("e2e4", "e7e5", "g1f3"), 3)


def test_ceval_restarts_at_most_once_per_interval(make_ctrl, scheduler, workers):
    ctrl = make_ctrl(analyse_data("e2e4", "e7e5", "g1f3"))
    worker = workers.latest
    assert [w.path for w in worker.started] == [ROOT]

    ctrl.jump(("e2e4",))
    ctrl.jump(("e2e4", "e7e5"))
    ctrl.jump(("e2e4", "e7e5", "g1f3"))
    assert len(worker.started) == 1

    scheduler.advance(0.8)
    assert [w.path for w in worker.started] == [ROOT, ("e2e4", "e7e5", "g1f3")]


def test_stale_eval_is_discarded(make_ctrl, scheduler, workers):
    ctrl = make_ctrl(analyse_data("e2e4", "e7e5"))
    ctrl.jump(("e2e4",))
    scheduler.advance(1)
    worker = workers.latest
    old_work = worker.work
    fen_a = ctrl.node.fen

    ctrl.jump(("e2e4", "e7e5"))
    worker.emit(make_eval(fen_a, 12), old_work)
    scheduler.advance(1)
    worker.emit(make_eval(fen_a, 14), old_work)

    assert ctrl.tree.node_at_path(("e2e4",)).ceval is None
    assert ctrl.node.ceval is None


def test_eval_for_a_different_position_is_discarded(make_ctrl):
    ctrl = make_ctrl(analyse_data("e2e4", "e7e5"))
    fen_a = ctrl.tree.node_at_path(("e2e4",)).fen
    ctrl.on_new_ceval(make_eval(fen_a, 12), ("e2e4", "e7e5"), False)
    assert ctrl.tree.node_at_path(("e2e4", "e7e5")).ceval is None


def test_eval_for_a_missing_path_is_ignored(make_ctrl):
    ctrl = make_ctrl(analyse_data("e2e4"))
    ctrl.on_new_ceval(make_eval("x", 12), ("d2d4",), False)
    assert ctrl.node.ceval is None


def test_stored_eval_never_regresses(make_ctrl):
    ctrl = make_ctrl()
    fen = ctrl.node.fen

    ctrl.on_new_ceval(make_eval(fen, 14, max_depth=18), ROOT, False)
    ctrl.on_new_ceval(make_eval(fen, 10, cp=-300, max_depth=18), ROOT, False)
    assert ctrl.node.ceval.depth == 14
    assert ctrl.node.ceval.cp == 20

    ctrl.on_new_ceval(make_eval(fen, 12, max_depth=99), ROOT, False)
    assert ctrl.node.ceval.depth == 14
    assert ctrl.node.ceval.max_depth == 99

    ctrl.on_new_ceval(make_eval(fen, 14, cloud=True), ROOT, False)
    assert ctrl.node.ceval.cloud


def test_threat_eval_is_stored_separately(make_ctrl, scheduler):
    ctrl = make_ctrl(analyse_data("e2e4"))
    ctrl.jump(("e2e4",))
    threat = make_eval("threat position", 10, moves=("d7d5",))
    ctrl.on_new_ceval(threat, ("e2e4",), True)
    assert ctrl.node.threat is threat
    assert ctrl.node.ceval is None


@pytest.mark.parametrize("crash_depth", [22, 5])
def test_crash_policy(make_ctrl, scheduler, workers, crash_depth):
    ctrl = make_ctrl(analyse_data("e2e4"), max_depth=30)
    ctrl.jump(("e2e4",))
    scheduler.advance(1)
    worker = workers.latest
    worker.emit(make_eval(ctrl.node.fen, crash_depth))
    assert ctrl.node.ceval.depth == crash_depth

    worker.crash()
    if crash_depth >= 20:
        # a deep crash gets one more chance on the same engine
        assert ctrl.node.ceval.retried
        assert len(workers.created) == 1
        scheduler.advance(1)
        assert worker.started[-1].path == ("e2e4",)
        worker.crash()

    assert len(workers.created) == 2
    assert worker.destroyed
    assert workers.latest.options.failsafe
    scheduler.advance(1)
    assert workers.latest.started[-1].path == ("e2e4",)


def test_crash_of_failsafe_engine_is_final(make_ctrl, scheduler, workers):
    ctrl = make_ctrl(analyse_data("e2e4"))
    workers.latest.crash()
    assert ctrl.ceval.failsafe
    workers.latest.crash()
    assert len(workers.created) == 2


def test_retry_mark_survives_a_better_eval(make_ctrl, scheduler, workers):
    ctrl = make_ctrl(max_depth=40)
    workers.latest.emit(make_eval(ctrl.node.fen, 25))
    workers.latest.crash()
    scheduler.advance(1)
    workers.latest.emit(make_eval(ctrl.node.fen, 26))
    assert ctrl.node.ceval.depth == 26
    assert ctrl.node.ceval.retried

    workers.latest.crash()
    assert ctrl.ceval.failsafe


def test_delete_large_subtree_asks_for_confirmation(make_ctrl, jump_log):
    answers = []
    confirmed = [False]

    def confirm(message):
        answers.append(message)
        return confirmed[0]

    ctrl = make_ctrl(
        analyse_data_from_pgn(RUY_LOPEZ),
        confirm=confirm,
        study=JumpRecorder("study", jump_log),
    )
    target = ctrl.mainline_path_to_ply(2)
    ctrl.jump(ctrl.mainline_path_to_ply(6))

    assert not ctrl.delete_node(target)
    assert answers == ["Delete 15 moves and 2 comments?"]
    assert ctrl.tree.path_exists(target)
    assert ctrl.node.ply == 6

    confirmed[0] = True
    assert ctrl.delete_node(target)
    assert not ctrl.tree.path_exists(target)
    assert ctrl.path == ("e2e4",)
    assert ("study", "delete", target) in jump_log


def test_delete_small_subtree_without_confirmation(make_ctrl):
    answers = []
    ctrl = make_ctrl(analyse_data("e2e4", "e7e5"), confirm=lambda m: answers.append(m) or False)
    assert ctrl.delete_node(("e2e4", "e7e5"))
    assert answers == []
    assert ctrl.path == ROOT


def test_delete_outside_cursor_keeps_cursor(make_ctrl):
    ctrl = make_ctrl(analyse_data("e2e4", "e7e5"))
    ctrl.add_node(line("e2e4", "c7c5")[2], ("e2e4",))
    ctrl.jump(("e2e4", "e7e5"))
    assert ctrl.delete_node(("e2e4", "c7c5"))
    assert ctrl.path == ("e2e4", "e7e5")


def test_delete_root_or_missing_path_fails(make_ctrl):
    ctrl = make_ctrl(analyse_data("e2e4"))
    assert not ctrl.delete_node(ROOT)
    assert not ctrl.delete_node(("d2d4",))
    assert ctrl.tree.path_exists(("e2e4",))


def test_promote_variation(make_ctrl, jump_log):
    ctrl = make_ctrl(analyse_data("e2e4", "e7e5"), study=JumpRecorder("study", jump_log))
    ctrl.add_node(line("e2e4", "c7c5")[2], ("e2e4",))
    ctrl.promote(("e2e4", "c7c5"), True)
    assert ctrl.tree.path_is_mainline(("e2e4", "c7c5"))
    assert ctrl.path == ("e2e4", "c7c5")
    assert ("study", "promote", ("e2e4", "c7c5"), True) in jump_log


def test_user_jump_if_can_respects_study(make_ctrl, jump_log):
    study = JumpRecorder("study", jump_log)
    ctrl = make_ctrl(analyse_data("e2e4"), study=study)
    study.jumpable = False
    assert not ctrl.user_jump_if_can(("e2e4",))
    assert ctrl.path == ROOT

    study.jumpable = True
    assert ctrl.user_jump_if_can(("e2e4",))
    assert ctrl.path == ("e2e4",)


def test_user_jump_wraps_practice(make_ctrl, jump_log):
    ctrl = make_ctrl(analyse_data("e2e4"))
    ctrl.practice = JumpRecorder("practice", jump_log)
    ctrl.user_jump(("e2e4",))
    assert jump_log == [
        ("practice", "pre", ROOT, ("e2e4",)),
        ("practice", ROOT, ("e2e4",)),
        ("practice", "post", ROOT, ("e2e4",)),
    ]


def test_jump_to_index_and_glyph(make_ctrl):
    ctrl = make_ctrl(analyse_data_from_pgn("1. e4 e5 2. Nf3! Nc6 3. Bb5! a6 *"))
    ctrl.jump_to_index(0)
    assert ctrl.node.san == "e4"

    ctrl.jump_to_glyph_symbol("white", "!")
    assert ctrl.node.san == "Nf3"
    ctrl.jump_to_glyph_symbol("white", "!")
    assert ctrl.node.san == "Bb5"
    ctrl.jump_to_glyph_symbol("white", "!")
    assert ctrl.node.san == "Nf3"


@pytest.mark.parametrize(
    "ply, cp, mate, study, expected",
    [
        (9, 50, None, False, True),
        (10, 50, None, False, False),
        (9, 98, None, False, True),
        (9, 99, None, False, False),
        (9, -98, None, False, True),
        (9, None, 3, False, False),
        (15, 400, None, True, True),
    ],
)
def test_eval_put_eligibility(make_ctrl, jump_log, ply, cp, mate, study, expected):
    data = AnalyseData(game=GameInfo(), tree_parts=line(), eval_put=True)
    ctrl = make_ctrl(data, study=JumpRecorder("study", jump_log) if study else None)
    node = Node(ply=ply, fen="x", ceval=ClientEval(fen="x", depth=24, cp=cp, mate=mate))
    assert ctrl.can_eval_put(node) is expected


def test_eval_put_needs_permission(make_ctrl):
    ctrl = make_ctrl()
    node = Node(ply=2, fen="x", ceval=ClientEval(fen="x", depth=24, cp=10))
    assert not ctrl.can_eval_put(node)


def test_eval_get_eligibility(make_ctrl, jump_log):
    ctrl = make_ctrl()
    assert ctrl.can_eval_get(Node(ply=9, fen="x"))
    assert not ctrl.can_eval_get(Node(ply=10, fen="x"))

    in_study = make_ctrl(study=JumpRecorder("study", jump_log))
    assert in_study.can_eval_get(Node(ply=40, fen="x"))


def test_start_ceval_requests_cloud_eval(make_ctrl, socket):
    make_ctrl()
    assert socket.sent[-1][0] == "evalGet"
    assert socket.sent[-1][1].fen == START_FEN


def test_merge_analysis_keeps_local_branches(make_ctrl, jump_log):
    ctrl = make_ctrl(analyse_data("e2e4", "e7e5"))
    ctrl.retro = JumpRecorder("retro", jump_log)
    ctrl.add_node(line("e2e4", "c7c5")[2], ("e2e4",))
    ctrl.on_new_ceval(make_eval(ctrl.tree.root.fen, 20), ROOT, False)

    server = analyse_data("e2e4", "e7e5")
    server.tree_parts[0].ceval = make_eval(server.tree_parts[0].fen, 5)
    server.tree_parts[1].eval = ServerEval(cp=30, best="e7e5")
    server.analysis = {"id": "analysis"}
    ctrl.merge_analysis_data(server)

    assert ctrl.tree.path_exists(("e2e4", "c7c5"))
    assert ctrl.tree.node_at_path(("e2e4",)).eval.cp == 30
    assert ctrl.tree.root.ceval.depth == 20
    assert ctrl.has_full_computer_analysis() is False
    assert ctrl.data.analysis == {"id": "analysis"}
    assert ("retro", "merge") in jump_log


def test_toggle_threat_mode(make_ctrl, scheduler, workers):
    ctrl = make_ctrl(analyse_data("e2e4"))
    ctrl.jump(("e2e4",))
    scheduler.advance(1)

    ctrl.toggle_threat_mode()
    assert ctrl.threat_mode
    scheduler.advance(1)
    assert workers.latest.work.threat_mode

    ctrl.jump(ROOT)
    assert not ctrl.threat_mode


def test_threat_mode_unavailable_in_check(make_ctrl):
    ctrl = make_ctrl(analyse_data("e2e4", "f7f6", "d1h5"))
    ctrl.jump(("e2e4", "f7f6", "d1h5"))
    ctrl.toggle_threat_mode()
    assert not ctrl.threat_mode


def test_game_over_stops_engine(make_ctrl, scheduler, workers):
    mate = ("f2f3", "e7e5", "g2g4", "d8h4")
    ctrl = make_ctrl(analyse_data(*mate))
    ctrl.jump(mate)
    scheduler.advance(1)

    assert ctrl.game_over() == "checkmate"
    assert not ctrl.can_use_ceval()
    assert all(w.path != mate for w in workers.latest.started)


def test_finished_game_is_not_movable(make_ctrl, board):
    mate = ("f2f3", "e7e5", "g2g4", "d8h4")
    ctrl = make_ctrl(analyse_data(*mate))
    ctrl.jump(mate)

    assert ctrl.node.dests == {}
    assert ctrl.node.drops is None
    assert board.config.movable.color is None
    assert not board.config.premovable.enabled


def test_threefold_disables_engine(make_ctrl):
    shuffle = ("g1f3", "g8f6", "f3g1", "f6g8") * 2
    ctrl = make_ctrl(analyse_data(*shuffle))
    ctrl.jump(shuffle)
    assert ctrl.node.threefold
    assert ctrl.game_over() is None
    assert not ctrl.can_use_ceval()


def test_game_over_unknown_until_dests_arrive(make_ctrl):
    ctrl = make_ctrl()
    node = Node(ply=1, fen="x")
    assert ctrl.game_over(node) is None
    node.dests = {}
    assert ctrl.game_over(node) == "draw"


def test_multi_pv_change_clears_evals(make_ctrl, scheduler, workers):
    ctrl = make_ctrl(analyse_data("e2e4"))
    ctrl.on_new_ceval(make_eval(ctrl.node.fen, 16), ROOT, False)
    ctrl.ceval_set_multi_pv(3)
    assert ctrl.node.ceval is None
    scheduler.advance(1)
    assert workers.latest.work.multi_pv == 3


def test_play_uci_detects_capture(make_ctrl, socket):
    ctrl = make_ctrl(analyse_data("e2e4", "d7d5"))
    ctrl.jump(("e2e4", "d7d5"))
    ctrl.play_uci("e4d5")
    assert socket.moves[-1].orig == "e4"
    assert socket.moves[-1].dest == "d5"
    assert ctrl.just_captured


def test_play_best_move_uses_server_eval_then_ceval(make_ctrl, socket):
    ctrl = make_ctrl(analyse_data("e2e4"))
    ctrl.tree.node_at_path(("e2e4",)).eval = ServerEval(best="d2d4")
    ctrl.play_best_move()
    assert (socket.moves[-1].orig, socket.moves[-1].dest) == ("d2", "d4")

    ctrl.jump(("e2e4",))
    ctrl.on_new_ceval(make_eval(ctrl.node.fen, 12, moves=("c7c5",)), ("e2e4",), False)
    ctrl.play_best_move()
    assert (socket.moves[-1].orig, socket.moves[-1].dest) == ("c7", "c5")


def test_user_new_piece(make_ctrl, socket, board):
    ctrl = make_ctrl()
    ctrl.user_new_piece("pawn", "e8")
    assert socket.drops == []

    ctrl.user_new_piece("knight", "f3")
    assert socket.drops[-1].role == "knight"
    assert socket.drops[-1].pos == "f3"
    assert ctrl.just_played == "N@f3"


def test_explorer_move_marks_explorer_loading(make_ctrl, socket, jump_log):
    ctrl = make_ctrl(explorer=JumpRecorder("explorer", jump_log))
    ctrl.explorer_move("g1f3")
    assert socket.moves[-1].dest == "f3"
    assert ("explorer", "loading", True) in jump_log


def test_toggle_computer_hides_analysis(make_ctrl, board):
    toggled = []
    ctrl = make_ctrl(analyse_data("e2e4", "e7e5"), on_toggle_computer=toggled.append)
    variation = line("e2e4", "c7c5")[2]
    variation.comp = True
    ctrl.tree.add_node(variation, ("e2e4",))

    ctrl.toggle_computer()

    assert toggled == [False]
    assert not ctrl.tree.path_exists(("e2e4", "c7c5"))
    assert not ctrl.ceval.enabled()
    assert board.auto_shapes == []
    assert not ctrl.show_eval_gauge()


def test_auto_shapes_follow_ceval(make_ctrl, board):
    ctrl = make_ctrl()
    ctrl.on_new_ceval(make_eval(ctrl.node.fen, 12, moves=("d2d4",)), ROOT, False)
    assert [(s.orig, s.dest, s.brush) for s in board.auto_shapes] == [("d2", "d4", "paleBlue")]

    ctrl.toggle_auto_shapes(False)
    assert board.auto_shapes == []


def test_flip(make_ctrl, board):
    ctrl = make_ctrl()
    ctrl.flip()
    assert board.orientation == "black"
    assert ctrl.bottom_color() == "black"


def test_embed_board_is_not_movable(make_ctrl, board, workers):
    ctrl = make_ctrl(embed=True)
    assert board.config.movable.color is None
    assert not ctrl.ceval.possible
    assert workers.latest.started == []


def test_premove_config_after_sending_move(make_ctrl, board):
    ctrl = make_ctrl()
    ctrl.send_move("e2", "e4")
    assert board.config.turn_color == "white"
    assert board.config.movable.color == "black"
    assert board.config.premovable.enabled


@pytest.mark.asyncio
async def test_change_pgn_replaces_tree(make_ctrl, workers):
    ctrl = make_ctrl(api=LocalAnalysisApi())
    first_worker = workers.latest

    assert await ctrl.change_pgn("1. e4 e5 2. Nf3 *")

    assert ctrl.path == ("e2e4", "e7e5", "g1f3")
    assert not ctrl.redirecting
    assert first_worker.destroyed
    assert workers.latest is not first_worker


class OfflineApi:
    def import_pgn(self, pgn):
        raise requests.ConnectionError("offline")


@pytest.mark.asyncio
@pytest.mark.parametrize("api, pgn", [(OfflineApi(), "1. d4 *"), (LocalAnalysisApi(), "1. e4 Ke2 *")])
async def test_failed_pgn_import_keeps_session(make_ctrl, api, pgn):
    ctrl = make_ctrl(analyse_data("e2e4"), api=api)
    ctrl.jump(("e2e4",))

    assert not await ctrl.change_pgn(pgn)

    assert ctrl.path == ("e2e4",)
    assert ctrl.tree.path_exists(("e2e4",))
    assert not ctrl.redirecting


def test_change_fen(make_ctrl, scheduler, workers):
    ctrl = make_ctrl(analyse_data("e2e4"))
    fen = "8/8/8/4k3/8/8/4P3/4K3 w - - 0 1"
    assert ctrl.change_fen(fen)
    assert ctrl.tree.root.fen == fen
    assert ctrl.path == ROOT

    scheduler.advance(1)
    assert workers.latest.started[-1].path == ROOT
    assert workers.latest.started[-1].current_fen == fen

    assert not ctrl.change_fen("not a fen")
    assert ctrl.tree.root.fen == fen
