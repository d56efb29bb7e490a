import asyncio
import logging
from pathlib import Path
from typing import Annotated

import msgspec
import requests
from cyclopts import App, Parameter
from tqdm import tqdm

from analysis_board.cloud import fetch_cloud_eval
from analysis_board.config import CONFIG_FILE, load_config
from analysis_board.ctrl import AnalyseController, AnalyseOpts
from analysis_board.eval_cache import CloudEval
from analysis_board.local import LocalServer
from analysis_board.pgn import LocalAnalysisApi, analyse_data_from_pgn
from analysis_board.socket import AnalyseSocket
from analysis_board.throttle import SessionContext
from analysis_board.tree.node import ClientEval, Node

logger = logging.getLogger(__name__)

app = App(name="analysis-board", help="Analyse chess games with a local engine")


def format_eval(ev: ClientEval | None) -> str:
    if ev is None:
        return "-"
    if ev.mate is not None:
        return f"#{ev.mate}"
    if ev.cp is None:
        return "?"
    return f"{ev.cp / 100:+.2f}"


def _cloud_lookup(fen: str, multi_pv: int) -> CloudEval | None:
    try:
        return fetch_cloud_eval(fen, multi_pv)
    except requests.RequestException as e:
        logger.warning(f"Cloud evaluation lookup failed: {e}")
        return None


def _is_settled(ctrl: AnalyseController, node: Node, depth: int) -> bool:
    return not ctrl.can_use_ceval() or (node.ceval is not None and node.ceval.depth >= depth)


async def _analyse_game(
    pgn: str,
    config_path: Path,
    engine: str | None,
    depth: int | None,
    multi_pv: int | None,
    threads: int | None,
    hash_size: int | None,
    timeout: float,
    cloud: bool,
) -> list[tuple[Node, ClientEval | None]]:
    cfg = load_config(config_path)
    ceval_cfg = msgspec.structs.replace(
        cfg.ceval,
        engine_path=engine or cfg.ceval.engine_path,
        max_depth=depth or cfg.ceval.max_depth,
        multi_pv=multi_pv or cfg.ceval.multi_pv,
        threads=threads or cfg.ceval.threads,
        hash_size=hash_size or cfg.ceval.hash_size,
    )
    cfg = msgspec.structs.replace(cfg, ceval=ceval_cfg)

    context = SessionContext()
    socket = AnalyseSocket()
    ctrl: AnalyseController | None = None
    server = LocalServer(
        socket,
        context,
        history=lambda path: ctrl.tree.get_node_list(path),
        cloud_lookup=_cloud_lookup if cloud else None,
    )
    ctrl = AnalyseController(
        AnalyseOpts(
            data=analyse_data_from_pgn(pgn),
            socket=socket,
            context=context,
            config=cfg,
            api=LocalAnalysisApi(),
            ceval_enabled=True,
        )
    )
    socket.receiver = ctrl

    results = []
    try:
        for ply in tqdm(range(ctrl.data.game.started_at_turn, ctrl.tree.last_ply() + 1), desc="Analysing plies"):
            ctrl.jump_to_main(ply)
            node = ctrl.node
            try:
                async with asyncio.timeout(timeout):
                    while not _is_settled(ctrl, node, ceval_cfg.max_depth):
                        await asyncio.sleep(0.1)
            except TimeoutError:
                logger.warning(f"No depth {ceval_cfg.max_depth} evaluation of ply {ply} after {timeout}s")
            results.append((node, node.ceval))
    finally:
        await server.drain()
        if (released := ctrl.ceval.destroy()) is not None:
            await released
    return results


@app.command()
def analyse(
    pgn_file: Path,
    engine: Annotated[str | None, Parameter(help="UCI engine binary (overrides the config file)")] = None,
    depth: Annotated[int | None, Parameter(help="Depth to analyse every position to")] = None,
    multi_pv: Annotated[int | None, Parameter(help="Number of principal variations")] = None,
    threads: Annotated[int | None, Parameter(help="Engine threads")] = None,
    hash_size: Annotated[int | None, Parameter(name="--hash", help="Engine hash size in MB")] = None,
    timeout: Annotated[float, Parameter(help="Seconds to wait for each position")] = 60.0,
    cloud: Annotated[bool, Parameter(help="Look positions up in the cloud evaluation database")] = False,
    config: Annotated[Path, Parameter(help="Configuration file")] = CONFIG_FILE,
    verbose: Annotated[bool, Parameter(help="Log engine communication")] = False,
):
    """Evaluate every mainline position of the first game in a PGN file"""
    _setup_logging(verbose)
    results = asyncio.run(
        _analyse_game(
            pgn_file.read_text(),
            config,
            engine,
            depth,
            multi_pv,
            threads,
            hash_size,
            timeout,
            cloud,
        )
    )
    for node, ev in results:
        move = node.san or "start"
        best = ev.best() if ev is not None else None
        tqdm.write(f"{node.ply:>4} {move:<8} {format_eval(ev):>7}  depth {ev.depth if ev else 0:<3} best {best or '-'}")


@app.command(name="cloud")
def cloud_eval(
    fen: str,
    multi_pv: Annotated[int, Parameter(help="Number of principal variations")] = 1,
    variant: Annotated[str, Parameter(help="Variant key, e.g. standard or crazyhouse")] = "standard",
):
    """Print the cloud evaluation of a position"""
    _setup_logging(False)
    found = fetch_cloud_eval(fen, multi_pv, variant)
    if found is None:
        logger.info(f"No cloud evaluation for {fen}")
        return
    print(f"depth {found.depth}, {found.knodes} knodes")
    for pv in found.pvs:
        score = f"#{pv.mate}" if pv.mate is not None else f"{(pv.cp or 0) / 100:+.2f}"
        print(f"{score:>7}  {pv.moves}")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    chess_engine_logger = logging.getLogger("chess.engine")
    chess_engine_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


if __name__ == "__main__":
    app()
