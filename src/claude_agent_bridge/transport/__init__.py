"""Transports carrying JSON lines between the SDK and the CLI."""

from .base import Transport, TransportState
from .framing import DEFAULT_MAX_BUFFER_SIZE, JsonFrameReader
from .mock import MockTransport
from .subprocess_cli import SubprocessCLITransport, find_cli_path

__all__ = [
    "DEFAULT_MAX_BUFFER_SIZE",
    "JsonFrameReader",
    "MockTransport",
    "SubprocessCLITransport",
    "Transport",
    "TransportState",
    "find_cli_path",
]
