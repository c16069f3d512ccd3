"""Thread-pool dispatch shared by the vectorizer and the distance engine."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Optional, Sequence, Tuple

from tqdm import tqdm

logger = logging.getLogger(__name__)


def run_tasks(
    func: Callable[..., None],
    task_args: Sequence[Tuple[Any, ...]],
    n_jobs: Optional[int] = None,
    progress: bool = False,
    desc: Optional[str] = None,
) -> None:
    """
    Run ``func(*args)`` for every entry of ``task_args``.

    Tasks write their results into caller-owned buffers; each task must own
    the cells it writes. The first task error is re-raised once all
    submitted tasks have finished.

    Args:
        func: Task body, called for its side effect
        task_args: One argument tuple per task
        n_jobs: Worker threads; ``None`` lets the executor decide, ``1`` runs
            serially in the calling thread
        progress: Show a tqdm progress bar
        desc: Progress bar label
    """
    if n_jobs is not None and n_jobs < 1:
        raise ValueError(f"n_jobs must be a positive integer or None, got {n_jobs}")

    if n_jobs == 1 or len(task_args) <= 1:
        for args in tqdm(task_args, desc=desc, disable=not progress):
            func(*args)
        return

    with ThreadPoolExecutor(max_workers=n_jobs) as executor:
        futures = [executor.submit(func, *args) for args in task_args]
        for future in tqdm(
            as_completed(futures), total=len(futures), desc=desc, disable=not progress
        ):
            future.result()
    logger.debug("Finished %d tasks (%s)", len(task_args), desc or func.__name__)
