from __future__ import annotations

"""KDU Modbus TCP polling engine (polling + command queue).

Responsibilities:
- own the single Modbus TCP session to the KDU (through ConnectionManager)
- every tick: execute ONE queued command, or, if none is queued, poll for a new
  tightening result (IR 294 flag + IR 295..361 result, graphs when enabled)
- push decoded results to the ResultQueue, in the order the KDU reports them
- report lifecycle events through event_q as (kind, payload) tuples

Command errors:
- a transport error fails the command with KduConnectionError and reconnects
- anything else (Modbus rejection, bad reply, bad command) fails only that
  command; the engine keeps ticking until stop()

Reconnect policy:
- on any transport error the in-flight command fails with KduConnectionError,
  the socket is dropped and a new one is opened
- retries never stop; backoff schedule 0s / 0.5s / 1s / 2s / 5s (5s repeats)
- after every (re)connect IR 294 is read once to clear a stale new-result flag

Lock after result:
- lock_until_get_result: disable the tool after each result, enable it again
  once the ResultQueue is empty
- lock_indefinitely_after_result: disable the tool after each result, never
  re-enable automatically
Both the disable and the re-enable are queued with priority, ahead of caller commands.

Run until result (CmdRunUntilResult):
- while active, every tick reads the result block and, with no result yet,
  writes coil 32 again; queued commands wait until the run ends
- the result resolves the command's future and is not pushed to the ResultQueue;
  lock-after-result does not apply
"""

import queue
import struct
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from kducer.config.addresses import (
    COIL_RUN_SCREWDRIVER,
    COIL_STOP_MOTOR,
    DATE_TIME_WORDS,
    GRAPH_WORDS,
    HR_DATE_TIME,
    HR_GENERAL_SETTINGS,
    HR_HIGH_RES_GRAPH,
    HR_PROGRAM_NUMBER,
    HR_SEQUENCE_NUMBER,
    IR_ANGLE_GRAPH,
    IR_NEW_RESULT_FLAG,
    IR_TORQUE_GRAPH,
    POLL_BASE,
    POLL_INTERVAL_S,
    POLL_WORDS,
    PR_SEQ_CHANGE_WAIT_S,
    PROGRAM_MAX,
    PROGRAM_MIN,
    PROGRAM_WORDS,
    RESULTS_BACKLOG_WARN,
    SEQUENCE_BYTES_LEGACY,
    SEQUENCE_MAX,
    SEQUENCE_MIN,
    SEQUENCE_WORDS,
    SETTINGS_WORDS,
    SHORT_WAIT_S,
    program_reg,
    sequence_reg,
)
from kducer.core.controller_settings import ControllerSettings
from kducer.core.errors import (
    DecodingError,
    EngineStopped,
    KduConnectionError,
    KducerError,
    WaitCancelled,
)
from kducer.core.graph import TorqueAngleTimeGraph
from kducer.core.modbus_codec import get_u16
from kducer.core.models import KduStatus
from kducer.core.program import TighteningProgram
from kducer.core.result import TighteningResult
from kducer.core.sequence import SequenceOfPrograms
from kducer.drivers.connection import ConnectionManager
from kducer.drivers.queues import PendingRequest, RequestQueue, ResultQueue
from kducer.utils.logger import log, log_exc, warn


def _check_program_number(number: int) -> None:
    if not (PROGRAM_MIN <= int(number) <= PROGRAM_MAX):
        raise ValueError(f"program number must be {PROGRAM_MIN}..{PROGRAM_MAX}, got {number}")


def _check_sequence_number(number: int) -> None:
    if not (SEQUENCE_MIN <= int(number) <= SEQUENCE_MAX):
        raise ValueError(f"sequence number must be {SEQUENCE_MIN}..{SEQUENCE_MAX}, got {number}")


def _check_type(value: Any, cls: type, what: str) -> None:
    if not isinstance(value, cls):
        raise TypeError(f"{what} must be a {cls.__name__}, got {type(value).__name__}")


def decode_date_time(block: bytes) -> datetime:
    yy, mo, dd, hh, mi, ss = struct.unpack(">6H", block)
    try:
        return datetime(2000 + yy, mo, dd, hh, mi, ss)
    except ValueError as e:
        raise DecodingError(f"KDU reported an invalid date/time {block.hex()}: {e}") from e


def encode_date_time(when: datetime) -> bytes:
    return struct.pack(">6H", when.year % 100, when.month, when.day, when.hour, when.minute, when.second)


# =========================
# Worker commands
# =========================
# Commands are validated and encoded on the caller's thread; the polling
# thread only puts ready-made blocks on the wire.
@dataclass
class CmdGetProgramNumber:
    pass


@dataclass
class CmdSelectProgram:
    number: int

    def __post_init__(self) -> None:
        _check_program_number(self.number)


@dataclass
class CmdGetSequenceNumber:
    pass


@dataclass
class CmdSelectSequence:
    number: int

    def __post_init__(self) -> None:
        _check_sequence_number(self.number)


@dataclass
class CmdSetToolEnabled:
    enabled: bool


@dataclass
class CmdReadProgram:
    number: int

    def __post_init__(self) -> None:
        _check_program_number(self.number)


@dataclass
class CmdSendProgram:
    number: int
    program: TighteningProgram
    block: bytes = field(init=False, repr=False)

    def __post_init__(self) -> None:
        _check_program_number(self.number)
        _check_type(self.program, TighteningProgram, "program")
        self.block = self.program.to_bytes()


@dataclass
class CmdReadSequence:
    number: int
    legacy: bool = False

    def __post_init__(self) -> None:
        _check_sequence_number(self.number)


@dataclass
class CmdSendSequence:
    number: int
    sequence: SequenceOfPrograms
    block: bytes = field(init=False, repr=False)

    def __post_init__(self) -> None:
        _check_sequence_number(self.number)
        _check_type(self.sequence, SequenceOfPrograms, "sequence")
        self.block = self.sequence.to_bytes()


@dataclass
class CmdReadSettings:
    pass


@dataclass
class CmdSendSettings:
    settings: ControllerSettings
    block: bytes = field(init=False, repr=False)

    def __post_init__(self) -> None:
        _check_type(self.settings, ControllerSettings, "settings")
        self.block = self.settings.to_bytes()


@dataclass
class CmdGetDateTime:
    pass


@dataclass
class CmdSetDateTime:
    when: datetime
    block: bytes = field(init=False, repr=False)

    def __post_init__(self) -> None:
        _check_type(self.when, datetime, "when")
        self.block = encode_date_time(self.when)


@dataclass
class CmdSetHighResGraphMode:
    enabled: bool


@dataclass
class CmdRunUntilResult:
    """Hold coil 32 until the KDU reports a result; resolves with that result.

    Spans several ticks. Setting `cancel_event` releases the coil on the next tick.
    """

    cancel_event: threading.Event = field(default_factory=threading.Event)


WorkerCmd = (
    CmdGetProgramNumber
    | CmdSelectProgram
    | CmdGetSequenceNumber
    | CmdSelectSequence
    | CmdSetToolEnabled
    | CmdReadProgram
    | CmdSendProgram
    | CmdReadSequence
    | CmdSendSequence
    | CmdReadSettings
    | CmdSendSettings
    | CmdGetDateTime
    | CmdSetDateTime
    | CmdSetHighResGraphMode
    | CmdRunUntilResult
)


class KduWorker(threading.Thread):
    """KDU polling engine thread.

    All socket traffic happens on this thread. It runs until stop() and cannot be
    restarted; on exit every queued command fails with EngineStopped.
    """

    BACKOFF_SCHEDULE_S = [0.0, 0.5, 1.0, 2.0, 5.0]

    def __init__(
        self,
        conn: ConnectionManager,
        requests: RequestQueue,
        results: ResultQueue,
        event_q: Optional[queue.Queue] = None,
        poll_interval_s: float = POLL_INTERVAL_S,
    ):
        super().__init__(daemon=True, name=f"kdu-{conn.host}")
        self.conn = conn
        self.requests = requests
        self.results = results
        self.event_q = event_q

        self.stop_event = threading.Event()

        # runtime options, read every tick
        self.poll_interval_s = float(poll_interval_s)
        self.lock_until_get_result = False
        self.lock_indefinitely_after_result = False
        self.replace_result_timestamp_with_local = True
        self.read_graphs = True

        self.high_res_graph = False       # last mode accepted by the KDU
        self.retry_count = 0              # consecutive failed cycles
        self.last_error: Optional[str] = None
        self._auto_locked = False         # tool disabled by lock-after-result
        self._running: Optional[PendingRequest] = None  # active CmdRunUntilResult
        self._backlog_warn = RESULTS_BACKLOG_WARN

    # ---- public API ----
    def stop(self) -> None:
        self.stop_event.set()

    def status(self) -> KduStatus:
        return KduStatus(
            state=self.conn.state,
            host=self.conn.host,
            port=self.conn.port,
            retry=self.retry_count,
            backoff_s=self._next_backoff() if self.retry_count else 0.0,
            results_pending=len(self.results),
            last_error=self.last_error,
        )

    # ---- internal ----
    def _post(self, kind: str, payload: Any) -> None:
        if self.event_q is not None:
            self.event_q.put((kind, payload))

    def _settle(self, seconds: float) -> None:
        self.stop_event.wait(seconds)

    def _on_connected(self) -> None:
        # clear new result flag if already present
        self.conn.read_input_registers(IR_NEW_RESULT_FLAG, 1)
        self._backlog_warn = RESULTS_BACKLOG_WARN
        self._post("kdu_connected", self.status().as_event())

    def _read_word(self, hr: int) -> int:
        return get_u16(self.conn.read_holding_registers(hr, 1), 0)

    def _set_tool_enabled(self, enabled: bool) -> None:
        # coil 34 is "stop motor": True disables the screwdriver
        self.conn.write_coil(COIL_STOP_MOTOR, not enabled)
        self._settle(SHORT_WAIT_S)

    def _select(self, hr: int, number: int) -> None:
        if self._read_word(hr) == number:
            return
        self.conn.write_register(hr, number)
        # the KDU needs time to load the program before it accepts a tightening
        self._settle(PR_SEQ_CHANGE_WAIT_S)

    def _handle_cmd(self, c: WorkerCmd) -> Any:
        # 1) program / sequence selection
        if isinstance(c, CmdGetProgramNumber):
            return self._read_word(HR_PROGRAM_NUMBER)
        if isinstance(c, CmdSelectProgram):
            self._select(HR_PROGRAM_NUMBER, int(c.number))
            return None
        if isinstance(c, CmdGetSequenceNumber):
            return self._read_word(HR_SEQUENCE_NUMBER)
        if isinstance(c, CmdSelectSequence):
            self._select(HR_SEQUENCE_NUMBER, int(c.number))
            return None

        # 2) tool enable / disable
        if isinstance(c, CmdSetToolEnabled):
            self._set_tool_enabled(bool(c.enabled))
            if c.enabled:
                self._auto_locked = False
            return None

        # 3) register blocks
        if isinstance(c, CmdReadProgram):
            return TighteningProgram(self.conn.read_holding_registers(program_reg(c.number), PROGRAM_WORDS))
        if isinstance(c, CmdSendProgram):
            self.conn.write_registers(program_reg(c.number), c.block)
            return None
        if isinstance(c, CmdReadSequence):
            words = SEQUENCE_BYTES_LEGACY // 2 if c.legacy else SEQUENCE_WORDS
            return SequenceOfPrograms.from_bytes(self.conn.read_holding_registers(sequence_reg(c.number), words))
        if isinstance(c, CmdSendSequence):
            self.conn.write_registers(sequence_reg(c.number), c.block)
            return None
        if isinstance(c, CmdReadSettings):
            return ControllerSettings(self.conn.read_holding_registers(HR_GENERAL_SETTINGS, SETTINGS_WORDS))
        if isinstance(c, CmdSendSettings):
            self.conn.write_registers(HR_GENERAL_SETTINGS, c.block)
            return None

        # 4) clock and graph mode
        if isinstance(c, CmdGetDateTime):
            return decode_date_time(self.conn.read_holding_registers(HR_DATE_TIME, DATE_TIME_WORDS))
        if isinstance(c, CmdSetDateTime):
            self.conn.write_registers(HR_DATE_TIME, c.block)
            return None
        if isinstance(c, CmdSetHighResGraphMode):
            # older firmware answers with an exception response -> ModbusRejection
            self.conn.write_register(HR_HIGH_RES_GRAPH, 1 if c.enabled else 0)
            self.high_res_graph = bool(c.enabled)
            return None

        raise TypeError(f"unknown WorkerCmd type: {type(c).__name__}")

    def _fail(self, req: PendingRequest, e: Exception) -> None:
        """Deliver a non-transport failure to the caller; the engine carries on."""
        cmd = type(req.cmd).__name__
        if isinstance(e, WaitCancelled):
            log("KDU_RUN_CANCELLED", cmd=cmd)
        elif isinstance(e, DecodingError):
            warn("KDU_DECODE_ERR", cmd=cmd, err=e)
        elif isinstance(e, KducerError):
            warn("KDU_REJECT", cmd=cmd, err=e)
        else:
            log_exc("KDU_CMD_FAILED", e, cmd=cmd)
        req.future.set_exception(e)

    def _execute(self, req: PendingRequest) -> None:
        try:
            if isinstance(req.cmd, CmdRunUntilResult):
                self._start_run(req)
                return
            value = self._handle_cmd(req.cmd)
        except KduConnectionError as e:
            req.future.set_exception(e)
            raise
        except Exception as e:
            self._fail(req, e)
            return
        except BaseException as e:
            req.future.set_exception(e)
            raise
        req.future.set_result(value)

    def _read_result(self, block: bytes) -> TighteningResult:
        """Decode the result behind a set flag; `block` is the IR 294.. poll block."""
        graph = None
        if self.read_graphs:
            tb = self.conn.read_input_registers(IR_TORQUE_GRAPH, GRAPH_WORDS)
            ab = self.conn.read_input_registers(IR_ANGLE_GRAPH, GRAPH_WORDS)
            graph = TorqueAngleTimeGraph.from_blocks(tb, ab)
        return TighteningResult.from_block(
            block[2:], graph=graph, replace_timestamp=self.replace_result_timestamp_with_local
        )

    def _poll(self) -> None:
        block = self.conn.read_input_registers(POLL_BASE, POLL_WORDS)
        if get_u16(block, 0) == 1:
            res = self._read_result(block)
            self.results.push(res)
            summary = res.summary()
            log("KDU_RESULT", **summary)
            self._post("kdu_result", summary)

            if self.lock_until_get_result or self.lock_indefinitely_after_result:
                self._auto_locked = True
                self.requests.submit_priority(CmdSetToolEnabled(False))
            return

        if (
            self._auto_locked
            and self.lock_until_get_result
            and not self.lock_indefinitely_after_result
            and len(self.results) == 0
        ):
            self._auto_locked = False
            self.requests.submit_priority(CmdSetToolEnabled(True))

    # ---- run until result ----
    def _start_run(self, req: PendingRequest) -> None:
        if req.cmd.cancel_event.is_set():
            raise WaitCancelled("run cancelled before it started")
        # a flag left over from a manual tightening must not end the run
        self.conn.read_input_registers(IR_NEW_RESULT_FLAG, 1)
        self.conn.write_coil(COIL_RUN_SCREWDRIVER, True)
        self._running = req
        log("KDU_RUN_START", host=self.conn.host)

    def _run_step(self, cmd: CmdRunUntilResult) -> Optional[TighteningResult]:
        if cmd.cancel_event.is_set():
            self.conn.write_coil(COIL_RUN_SCREWDRIVER, False)
            raise WaitCancelled("run cancelled")
        block = self.conn.read_input_registers(POLL_BASE, POLL_WORDS)
        if get_u16(block, 0) != 1:
            self.conn.write_coil(COIL_RUN_SCREWDRIVER, True)
            return None
        self.conn.write_coil(COIL_RUN_SCREWDRIVER, False)
        return self._read_result(block)

    def _run_tick(self) -> None:
        req = self._running
        try:
            res = self._run_step(req.cmd)
        except KduConnectionError as e:
            self._running = None
            req.future.set_exception(e)
            raise
        except Exception as e:
            self._running = None
            self._fail(req, e)
            return
        if res is not None:
            self._running = None
            log("KDU_RUN_RESULT", **res.summary())
            req.future.set_result(res)

    def _check_backlog(self) -> None:
        n = len(self.results)
        if n >= self._backlog_warn:
            warn("KDU_RESULTS_BACKLOG", pending=n, hint="results queue is not being consumed")
            self._backlog_warn *= 10

    def _next_backoff(self) -> float:
        """Return next backoff seconds based on current retry_count (after increment)."""
        idx = max(0, self.retry_count - 1)
        idx = min(idx, len(self.BACKOFF_SCHEDULE_S) - 1)
        return float(self.BACKOFF_SCHEDULE_S[idx])

    def _on_transport_error(self, e: KduConnectionError, was_connected: bool) -> None:
        self.conn.invalidate()
        if was_connected:
            self.results.notify_disconnect()

        self.retry_count += 1
        self.last_error = str(e)
        backoff_s = self._next_backoff()
        if was_connected:
            warn("KDU_IO_ERR", err=e, retry=self.retry_count, backoff_s=backoff_s)
        else:
            warn("KDU_CONNECT_FAIL", err=e, retry=self.retry_count, backoff_s=backoff_s)
        self._post("kdu_err", self.status().as_event())
        self._settle(backoff_s)

    def _tick(self) -> None:
        if self._running is not None:
            self._run_tick()
            return
        req = self.requests.pop()
        if req is None:
            self._poll()
        else:
            self._execute(req)

    def _loop(self) -> None:
        while not self.stop_event.is_set():
            t0 = time.monotonic()
            was_connected = self.conn.is_connected
            try:
                if not was_connected:
                    self.conn.connect()
                    # CONNECTED is published: any failure from here on is a disconnect
                    was_connected = True
                    self._on_connected()
                self._tick()
            except KduConnectionError as e:
                self._on_transport_error(e, was_connected)
                continue
            except DecodingError as e:
                warn("KDU_DECODE_ERR", cmd="poll", err=e)
            except KducerError as e:
                # a poll rejected by the KDU (e.g. busy): keep polling
                warn("KDU_REJECT", cmd="poll", err=e)

            self.retry_count = 0
            self.last_error = None
            self._check_backlog()
            self.stop_event.wait(max(0.0, self.poll_interval_s - (time.monotonic() - t0)))

    def _teardown(self) -> None:
        if self._running is not None:
            req, self._running = self._running, None
            if self.conn.is_connected:
                try:
                    self.conn.write_coil(COIL_RUN_SCREWDRIVER, False)
                except KducerError as e:
                    warn("KDU_RUN_RELEASE_FAIL", err=e)
            req.future.set_exception(EngineStopped("KDU engine stopped during run"))
        n = self.requests.close(EngineStopped("KDU engine stopped"))
        self.results.close()
        self.conn.disconnect_final()
        log("KDU_ENGINE_STOP", host=self.conn.host, failed_requests=n)
        self._post("kdu_stopped", self.status().as_event())

    def run(self) -> None:
        log("KDU_ENGINE_START", host=self.conn.host, port=self.conn.port)
        try:
            self._loop()
        except Exception as e:
            log_exc("KDU_ENGINE_CRASH", e)
            self.last_error = str(e)
            self._post("kdu_err", {**self.status().as_event(), "fatal": True})
        finally:
            self._teardown()
