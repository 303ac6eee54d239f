from __future__ import annotations

"""Modbus TCP connection to the KDU (single session).

Responsibilities:
- create / connect / close the pymodbus client (only one socket open at a time)
- publish the connection state; callers may wait on it but never drive it
- wrap register/coil calls so every failure lands in the kducer error taxonomy:
    socket timeout, reset, refused, short reply  -> KduConnectionError
    Modbus exception response                    -> ModbusRejection / ModbusServerBusy

Only the polling thread calls connect()/invalidate() and the wire helpers.
"""

import threading
from typing import Callable, List, Optional

from pymodbus.client import ModbusTcpClient
from pymodbus.exceptions import ModbusException

from kducer.config.addresses import DEFAULT_KDU_PORT, DEFAULT_UNIT_ID, RX_TX_TIMEOUT_S
from kducer.core.errors import EngineStopped, KduConnectionError, rejection_for
from kducer.core.modbus_codec import bytes_to_regs, regs_to_bytes
from kducer.core.models import ConnectionState
from kducer.utils.logger import log

ClientFactory = Callable[..., ModbusTcpClient]


class ConnectionManager:
    def __init__(
        self,
        host: str,
        port: int = DEFAULT_KDU_PORT,
        unit_id: int = DEFAULT_UNIT_ID,
        timeout_s: float = RX_TX_TIMEOUT_S,
        client_factory: ClientFactory = ModbusTcpClient,
    ):
        self.host = host
        self.port = int(port)
        self.unit_id = int(unit_id)
        self.timeout_s = float(timeout_s)
        self._client_factory = client_factory

        self.client: Optional[ModbusTcpClient] = None
        self._state = ConnectionState.DISCONNECTED
        self._closed = False
        self._cond = threading.Condition()

    # ---- state ----
    @property
    def state(self) -> ConnectionState:
        with self._cond:
            return self._state

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def _set_state(self, st: ConnectionState) -> None:
        with self._cond:
            if self._state is not st:
                self._state = st
                self._cond.notify_all()

    def is_connected_within(self, timeout: float) -> bool:
        """Wait up to `timeout` seconds for CONNECTED; never starts a connection attempt."""
        with self._cond:
            return self._cond.wait_for(
                lambda: self._state is ConnectionState.CONNECTED or self._closed,
                timeout=max(0.0, float(timeout)),
            ) and self._state is ConnectionState.CONNECTED

    # ---- lifecycle ----
    def connect(self) -> None:
        if self._closed:
            raise EngineStopped("connection was finally closed")
        self._drop_client()
        self._set_state(ConnectionState.CONNECTING)
        # retries=0: a lost reply must surface as a timeout, the engine reconnects itself
        client = self._client_factory(self.host, port=self.port, timeout=self.timeout_s, retries=0)
        self.client = client
        try:
            ok = bool(client.connect())
        except (ModbusException, OSError) as e:
            self.invalidate()
            raise KduConnectionError(f"connect to {self.host}:{self.port} failed: {e}") from e
        if not ok:
            self.invalidate()
            raise KduConnectionError(f"connect to {self.host}:{self.port} failed")
        self._set_state(ConnectionState.CONNECTED)
        log("KDU_CONNECT", host=self.host, port=self.port)

    def invalidate(self) -> None:
        """Drop the current socket; the next connect() opens a fresh one."""
        self._drop_client()
        self._set_state(ConnectionState.DISCONNECTED)

    def disconnect_final(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()
        self.invalidate()

    def _drop_client(self) -> None:
        c, self.client = self.client, None
        if c is None:
            return
        try:
            c.close()
        except (ModbusException, OSError) as e:
            log("KDU_CLOSE_ERR", err=e)

    # ---- wire helpers ----
    def _require_client(self) -> ModbusTcpClient:
        if self.client is None or self._state is not ConnectionState.CONNECTED:
            raise KduConnectionError("not connected")
        return self.client

    def _call(self, what: str, fn, *args, **kwargs):
        try:
            rr = fn(*args, device_id=self.unit_id, **kwargs)
        except (ModbusException, OSError) as e:
            raise KduConnectionError(f"{what} failed: {e}") from e
        if rr is None:
            raise KduConnectionError(f"{what}: no response")
        if rr.isError():
            code = getattr(rr, "exception_code", None)
            if code is None:
                # e.g. an IO error returned instead of raised
                raise KduConnectionError(f"{what} failed: {rr}")
            raise rejection_for(f"{what} rejected by KDU: {rr}", code)
        return rr

    def _read(self, what: str, fn, address: int, count: int) -> bytes:
        rr = self._call(what, fn, address, count=count)
        regs: List[int] = list(getattr(rr, "registers", None) or [])
        if len(regs) < count:
            raise KduConnectionError(f"{what}: short reply ({len(regs)} of {count} registers)")
        return regs_to_bytes(regs[:count])

    def read_input_registers(self, address: int, count: int) -> bytes:
        c = self._require_client()
        return self._read(f"read IR{address}+{count}", c.read_input_registers, address, count)

    def read_holding_registers(self, address: int, count: int) -> bytes:
        c = self._require_client()
        return self._read(f"read HR{address}+{count}", c.read_holding_registers, address, count)

    def write_register(self, address: int, value: int) -> None:
        c = self._require_client()
        self._call(f"write HR{address}", c.write_register, address, int(value) & 0xFFFF)

    def write_registers(self, address: int, block: bytes) -> None:
        c = self._require_client()
        self._call(f"write HR{address}+{len(block) // 2}", c.write_registers, address, bytes_to_regs(block))

    def write_coil(self, address: int, value: bool) -> None:
        c = self._require_client()
        self._call(f"write coil {address}", c.write_coil, address, bool(value))
