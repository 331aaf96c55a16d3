"""Wall-clock timing for pages, queries and bulk batches"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator


@dataclass
class Elapsed:
    started: float = field(default_factory=time.perf_counter)
    ms: float = 0.0

    def stop(self) -> float:
        self.ms = (time.perf_counter() - self.started) * 1000
        return self.ms


@contextmanager
def timer() -> Iterator[Elapsed]:
    """
    Usage:
        with timer() as t:
            result = await paginator.fetch(...)
        logger.info(f"query1|TOTAL TIME: {t.ms:,.0f}ms")

    t.ms is set on exit, also when the block raises.
    """
    elapsed = Elapsed()
    try:
        yield elapsed
    finally:
        elapsed.stop()
