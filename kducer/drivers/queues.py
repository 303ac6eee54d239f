from __future__ import annotations

"""Hand-off queues between caller threads and the polling thread.

RequestQueue: callers submit commands, the polling thread pops one per tick.
    Each request carries a concurrent.futures.Future resolved exactly once.
    A future cancelled before it is popped is skipped (never reaches the KDU).
    Priority items (auto-disable after a result) are served before normal items.

ResultQueue: the polling thread pushes tightening results, callers pop them in
    FIFO order, either non-blocking or with a timeout / cancel event.
"""

import threading
import time
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Deque, Generic, List, Optional, TypeVar

from kducer.core.errors import (
    EngineStopped,
    KduConnectionError,
    ResultWaitTimeout,
    WaitCancelled,
)

T = TypeVar("T")

# granularity for noticing a cancel event while blocked
CANCEL_POLL_S = 0.05


@dataclass
class PendingRequest:
    cmd: Any
    future: Future = field(default_factory=Future)
    priority: bool = False
    submitted_at: float = field(default_factory=time.monotonic)


class RequestQueue:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._normal: Deque[PendingRequest] = deque()
        self._priority: Deque[PendingRequest] = deque()
        self._closed = False

    def submit(self, cmd: Any) -> Future:
        """Queue a command at the back; returns the future of its outcome."""
        req = PendingRequest(cmd)
        with self._lock:
            if self._closed:
                req.future.set_exception(EngineStopped("engine is stopped"))
                return req.future
            self._normal.append(req)
        return req.future

    def submit_priority(self, cmd: Any) -> Future:
        """Queue a command ahead of every normal (caller) request."""
        req = PendingRequest(cmd, priority=True)
        with self._lock:
            if self._closed:
                req.future.set_exception(EngineStopped("engine is stopped"))
                return req.future
            self._priority.append(req)
        return req.future

    def pop(self) -> Optional[PendingRequest]:
        """Pop the next live request and mark it running, or None if nothing is queued."""
        with self._lock:
            while self._priority or self._normal:
                req = self._priority.popleft() if self._priority else self._normal.popleft()
                # False means the caller cancelled it while queued
                if req.future.set_running_or_notify_cancel():
                    return req
            return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._priority) + len(self._normal)

    def close(self, exc: BaseException) -> int:
        """Refuse new requests and fail every queued one with `exc`. Returns the count failed."""
        with self._lock:
            self._closed = True
            pending: List[PendingRequest] = list(self._priority) + list(self._normal)
            self._priority.clear()
            self._normal.clear()
        n = 0
        for req in pending:
            if req.future.set_running_or_notify_cancel():
                req.future.set_exception(exc)
                n += 1
        return n


class ResultQueue(Generic[T]):
    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._items: Deque[T] = deque()
        self._disconnects = 0
        self._closed = False

    def push(self, item: T) -> None:
        with self._cond:
            self._items.append(item)
            self._cond.notify_all()

    def try_pop(self) -> Optional[T]:
        with self._cond:
            return self._items.popleft() if self._items else None

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def notify_disconnect(self) -> None:
        """Called by the polling thread on every transition to DISCONNECTED."""
        with self._cond:
            self._disconnects += 1
            self._cond.notify_all()

    def close(self) -> None:
        """Wake every waiter with EngineStopped; queued results can still be drained."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def pop_blocking(
        self,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        fail_on_disconnect: bool = False,
    ) -> T:
        """Wait for the next result.

        Raises:
            ResultWaitTimeout: nothing arrived within `timeout` seconds.
            WaitCancelled: `cancel_event` was set while waiting.
            KduConnectionError: `fail_on_disconnect` and the KDU disconnected while waiting.
            EngineStopped: the engine was torn down and the queue is empty.
        """
        deadline = None if timeout is None else time.monotonic() + float(timeout)
        with self._cond:
            seen_disconnects = self._disconnects
            while True:
                if self._items:
                    return self._items.popleft()
                if cancel_event is not None and cancel_event.is_set():
                    raise WaitCancelled("result wait cancelled")
                if fail_on_disconnect and self._disconnects != seen_disconnects:
                    raise KduConnectionError("KDU disconnected while waiting for a result")
                if self._closed:
                    raise EngineStopped("engine is stopped")

                wait_s = None
                if deadline is not None:
                    wait_s = deadline - time.monotonic()
                    if wait_s <= 0:
                        raise ResultWaitTimeout(f"no result within {timeout} s")
                if cancel_event is not None:
                    wait_s = CANCEL_POLL_S if wait_s is None else min(wait_s, CANCEL_POLL_S)
                self._cond.wait(wait_s)
