from __future__ import annotations

"""Kducer: thread-safe client facade for one Kolver KDU controller.

Usage:
    with Kducer("192.168.5.150") as kdu:
        kdu.select_program(5)
        res = kdu.get_result(timeout=30)
        print(res.torque, res.is_ok)

Every call is safe from any thread. The socket is owned by the polling thread
(KduWorker); callers only enqueue commands and wait on their futures.
"""

import queue
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime
from typing import Any, Optional

from pymodbus.client import ModbusTcpClient

from kducer.config.addresses import (
    DEFAULT_KDU_PORT,
    DEFAULT_UNIT_ID,
    POLL_INTERVAL_S,
    RX_TX_TIMEOUT_S,
)
from kducer.core.controller_settings import ControllerSettings
from kducer.core.errors import ResultWaitTimeout
from kducer.core.models import ConnectionState, KduStatus
from kducer.core.program import TighteningProgram
from kducer.core.result import TighteningResult
from kducer.core.sequence import SequenceOfPrograms
from kducer.drivers.connection import ClientFactory, ConnectionManager
from kducer.drivers.kdu_worker import (
    CmdGetDateTime,
    CmdGetProgramNumber,
    CmdGetSequenceNumber,
    CmdReadProgram,
    CmdReadSequence,
    CmdReadSettings,
    CmdRunUntilResult,
    CmdSelectProgram,
    CmdSelectSequence,
    CmdSendProgram,
    CmdSendSequence,
    CmdSendSettings,
    CmdSetDateTime,
    CmdSetHighResGraphMode,
    CmdSetToolEnabled,
    KduWorker,
    WorkerCmd,
)
from kducer.drivers.queues import RequestQueue, ResultQueue


class Kducer:
    def __init__(
        self,
        host: str,
        port: int = DEFAULT_KDU_PORT,
        unit_id: int = DEFAULT_UNIT_ID,
        rx_tx_timeout_s: float = RX_TX_TIMEOUT_S,
        poll_interval_s: float = POLL_INTERVAL_S,
        start: bool = True,
        client_factory: ClientFactory = ModbusTcpClient,
        event_q: Optional[queue.Queue] = None,
    ):
        self.conn = ConnectionManager(
            host, port=port, unit_id=unit_id, timeout_s=rx_tx_timeout_s, client_factory=client_factory
        )
        self.requests = RequestQueue()
        self.results: ResultQueue[TighteningResult] = ResultQueue()
        self.worker = KduWorker(
            self.conn, self.requests, self.results, event_q=event_q, poll_interval_s=poll_interval_s
        )
        if start:
            self.start()

    # ---- lifecycle ----
    def start(self) -> None:
        if not self.worker.is_alive():
            self.worker.start()

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the engine and close the socket. Pending commands fail with EngineStopped."""
        self.worker.stop()
        if self.worker.is_alive():
            self.worker.join(timeout)
        elif self.worker.ident is None:
            # never started: nothing else will tear the queues down
            self.worker._teardown()

    def __enter__(self) -> "Kducer":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def is_connected(self, timeout: float = 0.0) -> bool:
        """True if the KDU is connected now, or becomes connected within `timeout` seconds."""
        return self.conn.is_connected_within(timeout)

    @property
    def connection_state(self) -> ConnectionState:
        return self.conn.state

    def status(self) -> KduStatus:
        return self.worker.status()

    # ---- results ----
    def has_new_result(self) -> bool:
        return len(self.results) > 0

    def try_get_result(self) -> Optional[TighteningResult]:
        return self.results.try_pop()

    def get_result(
        self,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        fail_on_disconnect: bool = False,
    ) -> TighteningResult:
        """Block until the next tightening result.

        Raises ResultWaitTimeout, WaitCancelled, KduConnectionError (only with
        fail_on_disconnect) or EngineStopped.
        """
        return self.results.pop_blocking(
            timeout=timeout, cancel_event=cancel_event, fail_on_disconnect=fail_on_disconnect
        )

    # ---- commands ----
    def submit(self, cmd: WorkerCmd) -> Future:
        if not isinstance(cmd, WorkerCmd):
            raise TypeError(f"not a KDU command: {type(cmd).__name__}")
        return self.requests.submit(cmd)

    def _run(self, cmd: WorkerCmd, timeout: Optional[float]) -> Any:
        return self.submit(cmd).result(timeout)

    def get_program_number(self, timeout: Optional[float] = None) -> int:
        return self._run(CmdGetProgramNumber(), timeout)

    def select_program(self, number: int, timeout: Optional[float] = None) -> None:
        self._run(CmdSelectProgram(number), timeout)

    def get_sequence_number(self, timeout: Optional[float] = None) -> int:
        return self._run(CmdGetSequenceNumber(), timeout)

    def select_sequence(self, number: int, timeout: Optional[float] = None) -> None:
        self._run(CmdSelectSequence(number), timeout)

    def enable_screwdriver(self, timeout: Optional[float] = None) -> None:
        self._run(CmdSetToolEnabled(True), timeout)

    def disable_screwdriver(self, timeout: Optional[float] = None) -> None:
        self._run(CmdSetToolEnabled(False), timeout)

    def run_screwdriver_until_result(
        self, timeout: Optional[float] = None, cancel_event: Optional[threading.Event] = None
    ) -> TighteningResult:
        """Run the tool (coil 32) with the selected program until the KDU reports a result.

        Meant for fixtured screwdrivers. The result is returned here only, it does not
        go through get_result(). Raises ResultWaitTimeout after `timeout` seconds and
        WaitCancelled when `cancel_event` is set; both release the run coil.
        """
        cmd = CmdRunUntilResult(cancel_event if cancel_event is not None else threading.Event())
        fut = self.submit(cmd)
        try:
            return fut.result(timeout)
        except FutureTimeout:
            fut.cancel()
            cmd.cancel_event.set()
            raise ResultWaitTimeout(f"no result within {timeout} s") from None

    def get_program(self, number: int, timeout: Optional[float] = None) -> TighteningProgram:
        return self._run(CmdReadProgram(number), timeout)

    def send_program(self, number: int, program: TighteningProgram, timeout: Optional[float] = None) -> None:
        self._run(CmdSendProgram(number, program), timeout)

    def get_sequence(
        self, number: int, legacy: bool = False, timeout: Optional[float] = None
    ) -> SequenceOfPrograms:
        return self._run(CmdReadSequence(number, legacy=legacy), timeout)

    def send_sequence(self, number: int, sequence: SequenceOfPrograms, timeout: Optional[float] = None) -> None:
        self._run(CmdSendSequence(number, sequence), timeout)

    def get_settings(self, timeout: Optional[float] = None) -> ControllerSettings:
        return self._run(CmdReadSettings(), timeout)

    def send_settings(self, settings: ControllerSettings, timeout: Optional[float] = None) -> None:
        self._run(CmdSendSettings(settings), timeout)

    def get_date_time(self, timeout: Optional[float] = None) -> datetime:
        return self._run(CmdGetDateTime(), timeout)

    def set_date_time(self, when: Optional[datetime] = None, timeout: Optional[float] = None) -> None:
        self._run(CmdSetDateTime(when or datetime.now()), timeout)

    def set_high_res_graph_mode(self, enabled: bool = True, timeout: Optional[float] = None) -> None:
        self._run(CmdSetHighResGraphMode(enabled), timeout)

    # ---- options ----
    @property
    def poll_interval_s(self) -> float:
        return self.worker.poll_interval_s

    @poll_interval_s.setter
    def poll_interval_s(self, value: float) -> None:
        if value < 0:
            raise ValueError("poll_interval_s must be >= 0")
        self.worker.poll_interval_s = float(value)

    @property
    def lock_until_get_result(self) -> bool:
        return self.worker.lock_until_get_result

    @lock_until_get_result.setter
    def lock_until_get_result(self, value: bool) -> None:
        self.worker.lock_until_get_result = bool(value)

    @property
    def lock_indefinitely_after_result(self) -> bool:
        return self.worker.lock_indefinitely_after_result

    @lock_indefinitely_after_result.setter
    def lock_indefinitely_after_result(self, value: bool) -> None:
        self.worker.lock_indefinitely_after_result = bool(value)

    @property
    def replace_result_timestamp_with_local(self) -> bool:
        return self.worker.replace_result_timestamp_with_local

    @replace_result_timestamp_with_local.setter
    def replace_result_timestamp_with_local(self, value: bool) -> None:
        self.worker.replace_result_timestamp_with_local = bool(value)

    @property
    def read_graphs(self) -> bool:
        return self.worker.read_graphs

    @read_graphs.setter
    def read_graphs(self, value: bool) -> None:
        self.worker.read_graphs = bool(value)
