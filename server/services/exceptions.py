"""Data-access exception hierarchy.

Failures of the wrapped remote operation are not wrapped: when no cached or
fallback value exists the original exception propagates unchanged.
"""


class DataAccessError(Exception):
    """Base exception for all data-access errors."""


class ConnectionUnhealthy(DataAccessError):
    """The connection pool is degraded. Internal signal, triggers the fallback chain."""

    def __init__(self, operation_name: str):
        self.operation_name = operation_name
        super().__init__(f"Connection unhealthy while executing {operation_name}")


class NoCachedDataAvailable(DataAccessError):
    """Neither a valid cache entry nor a fallback value exists."""

    def __init__(self, operation_name: str):
        self.operation_name = operation_name
        super().__init__(
            f"No cached data available for {operation_name} and the database connection is unstable"
        )


class UnknownEndpointError(DataAccessError):
    """Requested resource endpoint is not served by the remote API."""

    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        super().__init__(f"Unknown endpoint: {endpoint}")


class RemoteOperationError(DataAccessError):
    """Remote API answered but reported failure."""

    def __init__(self, endpoint: str, message: str, status_code: int = None):
        self.endpoint = endpoint
        self.status_code = status_code
        super().__init__(f"[{endpoint}] {message}")
