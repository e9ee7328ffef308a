from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from .config import RESERVE_MAX_ATTEMPTS, RESERVE_RETRY_DELAY
from .ledger import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(
    fn: Callable[..., T],
    *args,
    attempts: int = RESERVE_MAX_ATTEMPTS,
    delay: float = RESERVE_RETRY_DELAY,
    **kwargs,
) -> T:
    """Call fn, retrying only on TransientStoreError.

    Business rejections are ordinary return values and pass straight through.
    The last TransientStoreError is re-raised once attempts are exhausted.
    """
    attempt = 1
    while True:
        try:
            return fn(*args, **kwargs)
        except TransientStoreError as exc:
            if attempt >= attempts:
                raise
            logger.warning(
                "%s (attempt %d/%d), retrying", exc, attempt, attempts
            )
            time.sleep(delay * attempt)
            attempt += 1
