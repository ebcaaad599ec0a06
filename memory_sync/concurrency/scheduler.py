"""
Bounded fan-out of independent work items onto a thread pool.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed, Future
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from tqdm import tqdm

from ..exceptions import BatchCancelled

T = TypeVar("T")
R = TypeVar("R")


class CancelToken:
    """
    Cooperative cancellation flag shared by a batch.
    Workers observe it at their suspension points (before starting an item,
    inside paced sleeps, between polling rounds).
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise BatchCancelled("Batch was cancelled.")

    def sleep(self, seconds: float):
        """Interruptible sleep. Raises BatchCancelled if cancelled while waiting."""
        if seconds > 0 and self._event.wait(seconds):
            raise BatchCancelled("Batch was cancelled.")
        self.raise_if_cancelled()


def map_concurrently(items: Sequence[T],
                     max_parallelism: int,
                     work: Callable[[T], R],
                     cancel_token: Optional[CancelToken] = None,
                     desc: Optional[str] = None) -> List[R]:
    """
    Runs `work` on every item with at most `max_parallelism` calls in flight.

    - Results are returned in input order.
    - An exception raised by one item does not stop the others; once all
      items finished, the first failure (in input order) is re-raised.
      Callers that need per-item failure isolation encode it in `R`.
    - No retries at this layer.
    - On cancellation, items not yet started are dropped and BatchCancelled
      propagates; in-flight items stop at their next cancellation check.
    """
    if max_parallelism < 1:
        raise ValueError("max_parallelism must be at least 1")

    items = list(items)
    if not items:
        return []

    token = cancel_token or CancelToken()

    def guarded(item: T) -> R:
        token.raise_if_cancelled()
        return work(item)

    results: List[Optional[R]] = [None] * len(items)
    errors: Dict[int, BaseException] = {}

    executor = ThreadPoolExecutor(max_workers=min(max_parallelism, len(items)))
    try:
        future_to_index: Dict[Future, int] = {
            executor.submit(guarded, item): idx for idx, item in enumerate(items)
        }

        with tqdm(total=len(items), desc=desc, disable=desc is None) as progress:
            for future in as_completed(future_to_index):
                idx = future_to_index[future]
                try:
                    results[idx] = future.result()
                except BatchCancelled as e:
                    errors[idx] = e
                    token.cancel()
                except Exception as e:
                    errors[idx] = e
                progress.update(1)
    except KeyboardInterrupt:
        logging.warning("Interrupted; cancelling pending work items.")
        token.cancel()
        raise
    finally:
        executor.shutdown(wait=True, cancel_futures=token.cancelled)

    if token.cancelled:
        completed = len(items) - len(errors)
        raise BatchCancelled(f"Batch cancelled after {completed} completed items.", partial_results=results)

    if errors:
        first = min(errors)
        raise errors[first]

    return results  # type: ignore[return-value]
