"""ICY now-playing metadata proxy with a coalescing cache."""
from icyproxy.cache import MetadataCache
from icyproxy.errors import (
    ConfigurationError,
    ConnectError,
    DecodeError,
    FetchError,
    FetchTimeout,
    ServiceError,
    TransportError,
)
from icyproxy.icy import StreamMetadata, decode_stream_title, fetch_metadata
from icyproxy.service import MetadataService

__all__ = [
    "ConfigurationError",
    "ConnectError",
    "DecodeError",
    "FetchError",
    "FetchTimeout",
    "MetadataCache",
    "MetadataService",
    "ServiceError",
    "StreamMetadata",
    "TransportError",
    "decode_stream_title",
    "fetch_metadata",
]
