import chess
import pytest

from analysis_board.ceval.engine import EngineOptions
from analysis_board.config import AnalysisBoardConfig, CevalConfig
from analysis_board.ctrl import AnalyseController, AnalyseOpts
from analysis_board.interfaces import AnalyseData, GameInfo
from analysis_board.local import node_after
from analysis_board.prefs import PreferenceStore
from analysis_board.throttle import SessionContext
from analysis_board.tree.node import ClientEval, Node, Pv
from analysis_board.variant import legal_dests


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeHandle:
    def __init__(self, when, callback) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Runs callbacks only when the test advances the fake clock."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.pending: list[FakeHandle] = []

    def call_later(self, delay, callback):
        handle = FakeHandle(self.clock.now + delay, callback)
        self.pending.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        target = self.clock.now + seconds
        while True:
            due = [h for h in self.pending if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.pending.remove(handle)
            self.clock.now = max(self.clock.now, handle.when)
            handle.callback()
        self.pending = [h for h in self.pending if not h.cancelled]
        self.clock.now = target


class FakeBoard:
    def __init__(self) -> None:
        self.configs = []
        self.orientation = "white"
        self.auto_shapes = []
        self.shapes = []
        self.selected = "unset"
        self.premoves_played = 0

    @property
    def config(self):
        return self.configs[-1]

    def set(self, config) -> None:
        self.configs.append(config)

    def set_orientation(self, color) -> None:
        self.orientation = color

    def select_square(self, square) -> None:
        self.selected = square

    def play_premove(self) -> None:
        self.premoves_played += 1

    def set_auto_shapes(self, shapes) -> None:
        self.auto_shapes = shapes

    def set_shapes(self, shapes) -> None:
        self.shapes = shapes


class FakeSound:
    def __init__(self) -> None:
        self.played: list[str] = []

    def move(self) -> None:
        self.played.append("move")

    def capture(self) -> None:
        self.played.append("capture")

    def check(self) -> None:
        self.played.append("check")


class FakeSocket:
    def __init__(self) -> None:
        self.moves = []
        self.drops = []
        self.dests = []
        self.sent = []
        self.cache_clears = 0

    def send_ana_move(self, move) -> None:
        self.moves.append(move)

    def send_ana_drop(self, drop) -> None:
        self.drops.append(drop)

    def send_ana_dests(self, req) -> None:
        self.dests.append(req)

    def send(self, t, d=None) -> None:
        self.sent.append((t, d))

    def clear_cache(self) -> None:
        self.cache_clears += 1


class FakeWorker:
    def __init__(self, options: EngineOptions, emit, on_crash, after) -> None:
        self.options = options
        self.emit_fn = emit
        self.on_crash = on_crash
        self.after = after
        self.started = []
        self.stops = 0
        self.work = None
        self.destroyed = False

    def start(self, work, settings) -> None:
        self.work = work
        self.settings = settings
        self.started.append(work)

    def stop(self) -> None:
        self.stops += 1

    def destroy(self):
        self.destroyed = True
        return None

    def emit(self, ev: ClientEval, work=None) -> None:
        self.emit_fn(ev, work or self.work)

    def crash(self, error: str = "engine died") -> None:
        self.on_crash(error)


class FakeWorkers:
    """Worker factory that keeps every worker it created."""

    def __init__(self) -> None:
        self.created: list[FakeWorker] = []

    def __call__(self, options, emit, on_crash, after) -> FakeWorker:
        worker = FakeWorker(options, emit, on_crash, after)
        self.created.append(worker)
        return worker

    @property
    def latest(self) -> FakeWorker:
        return self.created[-1]


class JumpRecorder:
    """Stands in for explorer, practice, retro and study, logging every call in order."""

    def __init__(self, name: str, log: list) -> None:
        self.name = name
        self.log = log
        self.practice = None
        self.jumpable = True
        self.is_enabled = True

    def on_jump(self, prev, path, node) -> None:
        self.log.append((self.name, prev, path))

    def enabled(self) -> bool:
        return self.is_enabled

    def toggle(self) -> None:
        self.is_enabled = not self.is_enabled

    def loading(self, value) -> None:
        self.log.append((self.name, "loading", value))

    def can_jump_to(self, path) -> bool:
        return self.jumpable

    def delete_node(self, path) -> None:
        self.log.append((self.name, "delete", path))

    def promote(self, path, to_mainline) -> None:
        self.log.append((self.name, "promote", path, to_mainline))

    def pre_user_jump(self, prev, path) -> None:
        self.log.append((self.name, "pre", prev, path))

    def post_user_jump(self, prev, path) -> None:
        self.log.append((self.name, "post", prev, path))

    def on_ceval(self) -> None:
        self.log.append((self.name, "ceval"))

    def on_user_move(self) -> None:
        self.log.append((self.name, "user_move"))

    def on_merge_analysis_data(self) -> None:
        self.log.append((self.name, "merge"))


def line(*ucis: str, fen: str | None = None) -> list[Node]:
    """Root node followed by the nodes of a line of UCI moves, with real positions."""
    board = chess.Board(fen) if fen else chess.Board()
    nodes = [Node(ply=board.ply(), fen=board.fen(), dests=legal_dests(board))]
    for uci in ucis:
        nodes.append(node_after(board, chess.Move.from_uci(uci)))
    return nodes


def analyse_data(*ucis: str, fen: str | None = None, **game) -> AnalyseData:
    return AnalyseData(game=GameInfo(**game), tree_parts=line(*ucis, fen=fen))


def make_eval(
    fen: str,
    depth: int,
    *,
    cp: int = 20,
    nodes: int = 1000,
    cloud: bool = False,
    moves: tuple[str, ...] = ("e2e4",),
    **kwargs,
) -> ClientEval:
    return ClientEval(
        fen=fen,
        depth=depth,
        nodes=nodes,
        cp=cp,
        pvs=[Pv(moves=list(moves), cp=cp)],
        cloud=cloud,
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return FakeScheduler(clock)


@pytest.fixture
def context(clock, scheduler):
    return SessionContext(clock=clock, scheduler=scheduler)


@pytest.fixture
def board():
    return FakeBoard()


@pytest.fixture
def sound():
    return FakeSound()


@pytest.fixture
def socket():
    return FakeSocket()


@pytest.fixture
def workers():
    return FakeWorkers()


@pytest.fixture
def jump_log():
    return []


@pytest.fixture
def make_ctrl(context, board, sound, socket, workers):
    """Build a controller over fakes; keyword arguments override `AnalyseOpts` fields."""

    def make(data: AnalyseData | None = None, max_depth: int = 18, **overrides) -> AnalyseController:
        opts = AnalyseOpts(
            data=data or analyse_data(),
            socket=socket,
            board=board,
            sound=sound,
            context=context,
            config=AnalysisBoardConfig(ceval=CevalConfig(max_depth=max_depth)),
            prefs=PreferenceStore(),
            worker_factory=workers,
            ceval_enabled=True,
        )
        for key, value in overrides.items():
            setattr(opts, key, value)
        return AnalyseController(opts)

    return make
