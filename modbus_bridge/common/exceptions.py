"""
Custom Exception Classes for the Modbus Bridge

Hierarchical exception structure shared by the poll, publish and status
services.
"""


class BridgeError(Exception):
    """Base exception for all bridge errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(BridgeError):
    """Configuration artifact is missing, unreadable or malformed"""

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        super().__init__(f"Config Error: {message}", recoverable=False)


class TransportError(BridgeError):
    """Modbus/network communication errors"""

    def __init__(
        self,
        message: str,
        host: str | None = None,
        port: int | None = None,
        address: int | None = None,
    ):
        self.host = host
        self.port = port
        self.address = address
        super().__init__(f"Transport Error: {message}", recoverable=True)


class QueryError(BridgeError):
    """Alarm store unreachable or query failed"""

    def __init__(self, message: str, query: str | None = None):
        self.query = query
        super().__init__(f"Query Error: {message}", recoverable=True)


class PublishError(BridgeError):
    """Message could not be handed to the broker"""

    def __init__(self, message: str, topic: str | None = None):
        self.topic = topic
        super().__init__(f"Publish Error: {message}", recoverable=True)
