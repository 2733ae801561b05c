"""Services layer - platform API access and chat output."""

from .chat import ChatSink
from .helix import ApiResponse, HelixClient, Page

__all__ = [
    "ApiResponse",
    "ChatSink",
    "HelixClient",
    "Page",
]
