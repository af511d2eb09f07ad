from __future__ import annotations

"""Process-wide tx outcome counters and the latest block height.

Every IntegrationNetwork in the process reports here; tests call reset()
between networks.
"""

import threading
from collections import Counter
from typing import Dict

_lock = threading.Lock()
_tx_counts: Counter = Counter()
_heights: Dict[str, int] = {}


def inc_counter(name: str, value: int = 1) -> None:
    with _lock:
        _tx_counts[name] += value


def set_gauge(name: str, value: int) -> None:
    with _lock:
        _heights[name] = value


def snapshot() -> dict:
    with _lock:
        return {"counters": dict(_tx_counts), "gauges": dict(_heights)}


def reset() -> None:
    with _lock:
        _tx_counts.clear()
        _heights.clear()
