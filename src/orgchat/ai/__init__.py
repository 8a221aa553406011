"""Language-model client and the transports that stream replies into documents."""

from .client import AIClient, AIStreamEvent, ClientSettings
from .transport import RecordingTransport, StreamingTransport, Transport

__all__ = [
    "AIClient",
    "AIStreamEvent",
    "ClientSettings",
    "RecordingTransport",
    "StreamingTransport",
    "Transport",
]
