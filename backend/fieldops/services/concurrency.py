# Overview: Service-layer operations for concurrency; retry helpers for optimistic writes.

from __future__ import annotations

import time

from .results import RejectReason


def retry_on_conflict(func, *, attempts: int = 2, backoff_base: float = 0.05):
    """
    Re-run a workflow operation that lost an optimistic-write race.

    func returns a WorkflowResult. Only CONCURRENT_MODIFICATION is retried:
    the failed attempt has already rolled back, so re-running reloads the
    current status and re-authorizes against it. Any other result (success
    or rejection) is returned as is.
    """
    result = None
    for attempt in range(attempts):
        result = func()
        if result.reason is not RejectReason.CONCURRENT_MODIFICATION:
            return result
        if attempt < attempts - 1 and backoff_base:
            time.sleep(backoff_base * (2 ** attempt))
    return result
