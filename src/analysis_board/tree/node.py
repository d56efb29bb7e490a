import msgspec


class Pv(msgspec.Struct, omit_defaults=True):
    """A principal variation with its evaluation from White's perspective"""

    moves: list[str]
    cp: int | None = None
    mate: int | None = None


class ClientEval(msgspec.Struct, kw_only=True, omit_defaults=True):
    """Evaluation of a position computed locally or read from the shared cache

    `cloud` marks evaluations fetched from the shared cache. `retried` is set on the
    stored evaluation when the engine crashed at a high depth and was given a second chance.
    """

    fen: str
    depth: int
    max_depth: int | None = None
    nodes: int = 0
    cp: int | None = None
    mate: int | None = None
    pvs: list[Pv] = msgspec.field(default_factory=list)
    millis: int | None = None
    cloud: bool = False
    retried: bool = False

    def best(self) -> str | None:
        if self.pvs and self.pvs[0].moves:
            return self.pvs[0].moves[0]
        return None


class ServerEval(msgspec.Struct, kw_only=True, omit_defaults=True):
    """Evaluation attached by the server's full game analysis"""

    cp: int | None = None
    mate: int | None = None
    best: str | None = None
    variation: str | None = None
    depth: int | None = None


class Shape(msgspec.Struct, omit_defaults=True):
    orig: str
    dest: str | None = None
    brush: str = "green"


class Comment(msgspec.Struct, omit_defaults=True):
    text: str
    by: str | None = None


class Glyph(msgspec.Struct):
    id: int
    symbol: str


class Opening(msgspec.Struct):
    eco: str
    name: str


class Node(msgspec.Struct, kw_only=True, omit_defaults=True):
    """Node in the move tree which represents a halfmove (ply) and its annotations

    `id` is the move that led here in UCI notation (drops as `N@f3`), empty for the root.
    `children[0]` is the mainline continuation. `dests` maps origin squares to reachable
    squares; None means not fetched yet and an empty mapping means no legal move.
    """

    ply: int
    fen: str
    id: str = ""
    uci: str | None = None
    san: str | None = None
    children: list["Node"] = msgspec.field(default_factory=list)

    check: bool = False
    dests: dict[str, list[str]] | None = None
    drops: list[str] | None = None
    threefold: bool = False
    opening: Opening | None = None

    eval: ServerEval | None = None
    ceval: ClientEval | None = None
    threat: ClientEval | None = None

    shapes: list[Shape] = msgspec.field(default_factory=list)
    comments: list[Comment] = msgspec.field(default_factory=list)
    glyphs: list[Glyph] = msgspec.field(default_factory=list)

    comp: bool = False  # computer variation
    force_variation: bool = False
