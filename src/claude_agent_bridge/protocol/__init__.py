"""Control protocol layer.

wire holds the envelope formats; control and streaming are imported from
their modules directly (claude_agent_bridge.protocol.control).
"""

from .wire import (
    ControlRequest,
    ControlResponse,
    ControlSubtype,
    FrameKind,
    classify,
    fetch_dual,
)

__all__ = [
    "ControlRequest",
    "ControlResponse",
    "ControlSubtype",
    "FrameKind",
    "classify",
    "fetch_dual",
]
