"""Records exchanged with collaborators and the interfaces those collaborators implement."""

from typing import Any, Literal, Protocol

import msgspec

from analysis_board.tree.node import Node, Shape
from analysis_board.tree.path import TreePath

Color = Literal["white", "black"]

STATUS_ABORTED = 25


def opposite(color: Color) -> Color:
    return "black" if color == "white" else "white"


class GameInfo(msgspec.Struct, kw_only=True, omit_defaults=True):
    id: str = "synthetic"
    variant: str = "standard"
    status: int = 20  # started
    source: str | None = None
    initial_fen: str | None = None
    turns: int = 0
    started_at_turn: int = 0


class AnalyseData(msgspec.Struct, kw_only=True, omit_defaults=True):
    """Everything the server sends to open an analysis board"""

    game: GameInfo = msgspec.field(default_factory=GameInfo)
    orientation: Color = "white"
    tree_parts: list[Node]
    analysis: dict[str, Any] | None = None
    eval_put: bool = False


def is_synthetic(data: AnalyseData) -> bool:
    return data.game.id == "synthetic"


def is_playable(data: AnalyseData) -> bool:
    """Whether the game is still being played (imported games never are)."""
    return data.game.status < STATUS_ABORTED and data.game.source != "import"


class AnaMove(msgspec.Struct, kw_only=True, omit_defaults=True):
    orig: str
    dest: str
    variant: str
    fen: str
    path: TreePath
    promotion: str | None = None


class AnaDrop(msgspec.Struct, kw_only=True):
    role: str
    pos: str
    variant: str
    fen: str
    path: TreePath


class AnaDests(msgspec.Struct, kw_only=True):
    variant: str
    fen: str
    path: TreePath


class Movable(msgspec.Struct, omit_defaults=True):
    color: Color | None = None
    dests: dict[str, list[str]] = msgspec.field(default_factory=dict)


class Premovable(msgspec.Struct):
    enabled: bool = False


class BoardConfig(msgspec.Struct, kw_only=True, omit_defaults=True):
    """What the board view needs to render one position"""

    fen: str
    turn_color: Color
    movable: Movable = msgspec.field(default_factory=Movable)
    check: bool = False
    last_move: tuple[str, str] | None = None
    premovable: Premovable = msgspec.field(default_factory=Premovable)


class BoardView(Protocol):
    def set(self, config: BoardConfig) -> None: ...

    def set_orientation(self, color: Color) -> None: ...

    def select_square(self, square: str | None) -> None: ...

    def play_premove(self) -> None: ...

    def set_auto_shapes(self, shapes: list[Shape]) -> None: ...

    def set_shapes(self, shapes: list[Shape]) -> None: ...


class Sound(Protocol):
    def move(self) -> None: ...

    def capture(self) -> None: ...

    def check(self) -> None: ...


class Socket(Protocol):
    def send_ana_move(self, move: AnaMove) -> None: ...

    def send_ana_drop(self, drop: AnaDrop) -> None: ...

    def send_ana_dests(self, req: AnaDests) -> None: ...

    def send(self, t: str, d: Any) -> None: ...

    def clear_cache(self) -> None: ...


class JumpListener(Protocol):
    def on_jump(self, prev: TreePath, path: TreePath, node: Node) -> None: ...


class Explorer(JumpListener, Protocol):
    def enabled(self) -> bool: ...

    def toggle(self) -> None: ...

    def loading(self, value: bool) -> None: ...


class Practice(JumpListener, Protocol):
    def pre_user_jump(self, prev: TreePath, path: TreePath) -> None: ...

    def post_user_jump(self, prev: TreePath, path: TreePath) -> None: ...

    def on_ceval(self) -> None: ...

    def on_user_move(self) -> None: ...


class Retro(JumpListener, Protocol):
    def on_ceval(self) -> None: ...

    def on_merge_analysis_data(self) -> None: ...


class StudyPractice(Protocol):
    def on_ceval(self) -> None: ...


class Study(JumpListener, Protocol):
    practice: StudyPractice | None

    def can_jump_to(self, path: TreePath) -> bool: ...

    def delete_node(self, path: TreePath) -> None: ...

    def promote(self, path: TreePath, to_mainline: bool) -> None: ...


class AnalysisApi(Protocol):
    def import_pgn(self, pgn: str) -> AnalyseData: ...
