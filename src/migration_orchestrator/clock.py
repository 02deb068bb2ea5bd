"""Wall-clock implementation of the Clock protocol."""

from __future__ import annotations

import datetime as dt
import time


class SystemClock:
    """Real time; ``sleep`` blocks the calling thread."""

    def now(self) -> dt.datetime:
        return dt.datetime.now(dt.UTC)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)
