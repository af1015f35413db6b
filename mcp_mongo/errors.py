"""
Exception hierarchy shared across the MCP MongoDB server.
"""


class MCPMongoError(Exception):
    """Base exception class for server errors."""
    pass


class ConfigurationError(MCPMongoError):
    """Raised when there's a configuration-related error."""
    pass


# --- Store errors ---
class StoreError(MCPMongoError):
    """Raised when the document store reports a failure."""
    pass


class DuplicateKeyError(StoreError):
    """Raised when an insert violates the unique email index."""
    pass


class ValidationError(StoreError):
    """Raised when a required field is missing or has the wrong kind."""
    pass


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached or is not connected."""
    pass


class StoreConnectionError(StoreError):
    """Raised when the startup connection attempt fails."""
    pass


class CloseError(StoreError):
    """Raised when closing the client fails."""
    pass


# --- Protocol errors ---
class UnknownToolError(MCPMongoError):
    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class UnknownPromptError(MCPMongoError):
    def __init__(self, name: str):
        super().__init__(f"Unknown prompt: {name}")
        self.name = name


class ShuttingDownError(MCPMongoError):
    def __init__(self):
        super().__init__("Server is shutting down, cannot process request")
