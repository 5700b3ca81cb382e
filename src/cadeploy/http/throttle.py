# src/cadeploy/http/throttle.py
from __future__ import annotations
import random
import time
from typing import Callable

# Statuses we retry
RETRY_STATUSES = {429, 500, 502, 503, 504}
# POST is not idempotent: a 5xx may come back after the create committed
POST_RETRY_STATUSES = {429}

def compute_sleep_seconds(attempt: int, retry_after_header: str | None) -> float:
    # Honor Retry-After (integer seconds)
    if retry_after_header and retry_after_header.isdigit():
        return int(retry_after_header)
    base = min(2 ** attempt, 8)  # 1,2,4,8 cap
    return base * (0.6 + 0.8 * random.random())  # jitter 60–140%

def sleep_backoff(seconds: float) -> None:
    if seconds > 0:
        time.sleep(seconds)


class Pacer:
    """
    Fixed courtesy delay between policy writes.
    Graph throttles CA writes hard; every template waits its turn.
    """
    def __init__(self, seconds: float, sleep: Callable[[float], None] | None = None):
        self.seconds = max(0.0, float(seconds))
        self._sleep = sleep or sleep_backoff
        self.waits = 0

    def wait(self) -> None:
        self.waits += 1
        self._sleep(self.seconds)
