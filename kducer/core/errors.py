from __future__ import annotations

"""Error taxonomy shared by the codec, the queues and the engine.

- transport failures (KduConnectionError) trigger a reconnect
- protocol rejections (ModbusRejection) go to the caller, never retried
- decoding contract violations (DecodingError) fail fast
"""

from typing import Optional

# Modbus exception code: "server device busy"
MODBUS_EXC_SERVER_BUSY = 6


class KducerError(Exception):
    pass


class KduConnectionError(KducerError, ConnectionError):
    """Timeout, reset, refused or missing reply on the KDU socket."""


class ModbusRejection(KducerError):
    """The KDU answered with a Modbus exception response."""

    def __init__(self, message: str, exception_code: Optional[int] = None):
        super().__init__(message)
        self.exception_code = exception_code


class ModbusServerBusy(ModbusRejection):
    """Exception code 6, e.g. the KDU configuration menu is open on the touch screen."""


class DecodingError(KducerError, ValueError):
    pass


class GraphWidthError(DecodingError):
    """More than 70 samples cannot be rendered in the 70-column forms."""


class ResultWaitTimeout(KducerError, TimeoutError):
    pass


class WaitCancelled(KducerError):
    pass


class EngineStopped(KducerError):
    pass


def rejection_for(message: str, exception_code: Optional[int]) -> ModbusRejection:
    if exception_code == MODBUS_EXC_SERVER_BUSY:
        return ModbusServerBusy(message, exception_code)
    return ModbusRejection(message, exception_code)
