"""Clock used by the cache, the scorer and the broadcaster.

Injected everywhere wall-clock time matters so tests can move time
forward without sleeping.
"""

import time
from datetime import date


class SystemClock:
    """Real wall clock."""

    def now(self) -> float:
        return time.time()

    def today(self) -> date:
        return date.today()
