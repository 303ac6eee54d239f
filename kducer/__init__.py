"""kducer: Modbus TCP client for Kolver KDU torque controllers."""

from kducer.core.controller_settings import ControllerSettings
from kducer.core.errors import (
    DecodingError,
    EngineStopped,
    GraphWidthError,
    KduConnectionError,
    KducerError,
    ModbusRejection,
    ModbusServerBusy,
    ResultWaitTimeout,
    WaitCancelled,
)
from kducer.core.graph import TorqueAngleTimeGraph
from kducer.core.kdu_file import KduDataFile, parse_kdu_data, read_kdu_data_file
from kducer.core.models import ConnectionState
from kducer.core.program import TighteningProgram
from kducer.core.result import TighteningResult
from kducer.core.sequence import SequenceOfPrograms
from kducer.services.kducer import Kducer

__version__ = "0.1.0"

__all__ = [
    "ConnectionState",
    "ControllerSettings",
    "DecodingError",
    "EngineStopped",
    "GraphWidthError",
    "KduConnectionError",
    "KduDataFile",
    "Kducer",
    "KducerError",
    "ModbusRejection",
    "ModbusServerBusy",
    "ResultWaitTimeout",
    "SequenceOfPrograms",
    "TighteningProgram",
    "TighteningResult",
    "TorqueAngleTimeGraph",
    "WaitCancelled",
    "parse_kdu_data",
    "read_kdu_data_file",
]
