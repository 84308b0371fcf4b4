"""Local SSE relay for OpenAI-compatible chat completions."""

from .app import create_app
from .errors import ChatRelayError, ConfigError, ParseError, TransportError, UpstreamError
from .gateway import ApiGateway
from .models import ConnectionSettings, GenerateParams, Message, ModelDescriptor
from .store import ChatStore
from .vendor import VendorAdapter, normalize_base_url

__all__ = [
    "ApiGateway",
    "ChatRelayError",
    "ChatStore",
    "ConfigError",
    "ConnectionSettings",
    "GenerateParams",
    "Message",
    "ModelDescriptor",
    "ParseError",
    "TransportError",
    "UpstreamError",
    "VendorAdapter",
    "create_app",
    "normalize_base_url",
]

__version__ = "0.1.0"
