from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
	"""Current wall-clock time in epoch milliseconds."""
	return int(time.time() * 1000)
