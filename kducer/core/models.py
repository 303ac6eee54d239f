# ./kducer/core/models.py
from __future__ import annotations

"""Engine state models (pure data, no IO).

Constraints:
- This layer does not depend on pymodbus or threads.
- It can be referenced freely by drivers / services.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class KduStatus:
    """Engine status snapshot posted with lifecycle events.

    `retry` counts consecutive failed cycles since the last good one; it is reset
    to 0 as soon as a tick completes.
    """

    state: ConnectionState = ConnectionState.DISCONNECTED
    host: str = ""
    port: int = 0
    retry: int = 0
    backoff_s: float = 0.0
    results_pending: int = 0
    last_error: Optional[str] = None

    def as_event(self) -> dict:
        return {
            "connected": self.state is ConnectionState.CONNECTED,
            "state": self.state.value,
            "host": self.host,
            "port": self.port,
            "retry": self.retry,
            "backoff_s": self.backoff_s,
            "results_pending": self.results_pending,
            "err": self.last_error,
        }
