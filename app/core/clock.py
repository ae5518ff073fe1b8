from __future__ import annotations

import time
from typing import Callable

# Milliseconds since the Unix epoch, the unit used for every timestamp on the wire.
Clock = Callable[[], int]


def system_clock() -> int:
    return int(time.time() * 1000)
