import functools
from pathlib import Path

import msgspec

CONFIG_FILE = Path("analysis_board.toml")


class CevalConfig(msgspec.Struct, kw_only=True):
    """Contains the configuration of the local analysis engine

    Attributes:
        engine_path: The UCI engine binary to run
        failsafe_engine_path: A lower capability engine used after repeated crashes
            (the regular binary with minimal resources when unset)
        threads: Engine threads
        hash_size: Engine hash table size in MB
        multi_pv: How many principal variations to request
        max_depth: The depth at which analysis of a position stops
        infinite: Whether to analyse without a depth limit
        crash_retry_depth: A crash reached at this depth or deeper is retried once
            on the same backend before falling back to the failsafe one
    """

    engine_path: str = "stockfish"
    failsafe_engine_path: str | None = None

    threads: int = 1
    hash_size: int = 16
    multi_pv: int = 1
    max_depth: int = 18
    infinite: bool = False

    crash_retry_depth: int = 20


class EvalCacheConfig(msgspec.Struct, kw_only=True):
    """Contains the rules for reading from and writing to the shared evaluation cache

    Attributes:
        max_ply: Positions at this ply or deeper are not looked up (outside a study)
        max_put_cp: Only evaluations within this centipawn band are shared (outside a study)
        put_min_depth: Minimum depth of a shared evaluation
        put_min_nodes: Node count that qualifies an evaluation regardless of depth
        put_required_nodes: Node count below which an evaluation is never shared
        put_max_moves: PV moves kept when sharing
    """

    max_ply: int = 10
    max_put_cp: int = 99

    put_min_depth: int = 20
    put_min_nodes: int = 3_000_000
    put_required_nodes: int = 500_000
    put_max_moves: int = 10


class ThrottleConfig(msgspec.Struct, kw_only=True):
    """Minimum intervals (seconds) between side effects"""

    start_ceval: float = 0.8
    dests: float = 0.8
    sound: float = 0.05
    on_change: float = 0.3
    position_indicator: float = 0.75
    eval_put: float = 0.5


class AnalysisBoardConfig(msgspec.Struct, kw_only=True):
    """Container for all configuration sections"""

    ceval: CevalConfig = msgspec.field(default_factory=CevalConfig)
    eval_cache: EvalCacheConfig = msgspec.field(default_factory=EvalCacheConfig)
    throttle: ThrottleConfig = msgspec.field(default_factory=ThrottleConfig)


@functools.cache
def load_config(path: Path = CONFIG_FILE) -> AnalysisBoardConfig:
    """Load the configuration from a TOML file, falling back to defaults"""
    if not path.exists():
        return AnalysisBoardConfig()

    with open(path, "rb") as f:
        return msgspec.toml.decode(f.read(), type=AnalysisBoardConfig)
