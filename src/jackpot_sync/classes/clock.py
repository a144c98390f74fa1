import time


class SystemClock:
    """Wall clock in unix seconds."""

    def now(self) -> float:
        return time.time()
