"""Failures that can reach the HTTP boundary.

Each class carries the status code and the public message the route renders.
The exception text itself (``str(e)``) is only ever logged.
"""


class ServiceError(Exception):
    status = 500
    message = "Internal error"


class ConfigurationError(ServiceError):
    """The upstream stream URL could not be resolved."""
    status = 500
    message = "Configuration error"


class FetchError(ServiceError):
    """Base for everything that can go wrong talking to the upstream stream."""
    status = 502
    message = "Failed to fetch metadata"


class ConnectError(FetchError):
    """DNS failure, refused connection or TLS handshake error."""
    message = "Failed to fetch metadata"


class TransportError(FetchError):
    """I/O failure after the response started."""
    message = "Stream error"


class DecodeError(FetchError):
    """Metadata block geometry does not match the bytes actually received."""
    message = "Failed to parse metadata"


class FetchTimeout(FetchError):
    status = 504
    message = "Request timeout"
