from relay.services.connection_manager import ConnectionManager, ConnectionState

__all__ = [
    "ConnectionManager",
    "ConnectionState",
]
