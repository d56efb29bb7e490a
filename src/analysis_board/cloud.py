import logging
from http import HTTPStatus

import msgspec
import requests

from analysis_board.eval_cache import CloudEval

logger = logging.getLogger(__name__)

CLOUD_EVAL_URL = "https://lichess.org/api/cloud-eval"


def fetch_cloud_eval(
    fen: str,
    multi_pv: int = 1,
    variant: str = "standard",
    timeout: float = 10,
) -> CloudEval | None:
    """Look up a position in the public cloud evaluation database.

    Returns:
        The stored evaluation, or None when the position has not been evaluated
    """
    params: dict[str, str | int] = {"fen": fen, "multiPv": multi_pv}
    if variant != "standard":
        params["variant"] = variant
    response = requests.get(CLOUD_EVAL_URL, params=params, timeout=timeout)
    if response.status_code == HTTPStatus.NOT_FOUND:
        logger.debug(f"No cloud evaluation for {fen}")
        return None
    response.raise_for_status()
    return msgspec.json.decode(response.content, type=CloudEval)
