from __future__ import annotations

import time


def epoch_ms() -> int:
    return int(time.time() * 1000)


def monotonic_ms() -> float:
    """Milliseconds on a clock that never goes backwards (for durations only)."""
    return time.monotonic() * 1000.0
