"""
MongoDB connection lifecycle.
"""
from enum import Enum
from typing import Optional

from loguru import logger
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from .config import Settings
from .errors import CloseError, StoreConnectionError, StoreUnavailableError
from .store import USERS_COLLECTION, UserStore


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    CLOSED = "closed"


class ConnectionManager:
    """Manages the lifecycle of the MongoDB client."""

    def __init__(self, settings: Settings, client_factory=AsyncMongoClient):
        self.settings = settings
        self._client_factory = client_factory
        self._client = None
        self._store: Optional[UserStore] = None
        self._state = ConnectionState.DISCONNECTED

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def users(self) -> UserStore:
        """The user store; only available while connected."""
        if not self.is_connected or self._store is None:
            raise StoreUnavailableError(f"Database is not connected (state: {self._state.value})")
        return self._store

    @staticmethod
    def sanitize_uri(uri: str) -> str:
        """Returns a version of the connection URI safe for logging."""
        try:
            at_index = uri.rfind('@')
            if at_index != -1:
                return uri[:uri.find('://') + 3] + '*****@' + uri[at_index + 1:]
            return uri
        except Exception:
            return "Invalid MongoDB URI format"

    async def connect(self) -> None:
        """
        Connect to MongoDB, verify the server answers and ensure indexes.

        Raises:
            StoreConnectionError: If the server cannot be reached in time
        """
        safe_uri = self.sanitize_uri(self.settings.mongodb_uri)
        logger.info(f"Connecting to MongoDB at {safe_uri}...")
        self._state = ConnectionState.CONNECTING

        client = None
        try:
            client = self._client_factory(
                self.settings.mongodb_uri,
                serverSelectionTimeoutMS=self.settings.server_selection_timeout_ms,
                heartbeatFrequencyMS=self.settings.heartbeat_frequency_ms,
                tz_aware=True,
            )
            await client.admin.command("ping")
            database = client.get_database(self.settings.database_name)
            store = UserStore(database[USERS_COLLECTION])
            await store.ensure_indexes()
        except Exception as e:
            self._state = ConnectionState.DISCONNECTED
            logger.error(f"MongoDB connection error: {e}")
            if client is not None:
                try:
                    await client.close()
                except PyMongoError as close_err:
                    logger.debug(f"Ignoring close error after failed connect: {close_err}")
            raise StoreConnectionError(f"Could not connect to MongoDB at {safe_uri}: {e}") from e

        self._client = client
        self._store = store
        self._state = ConnectionState.CONNECTED
        logger.info(f"Connected to MongoDB database '{self.settings.database_name}'")

    async def close(self) -> None:
        """
        Close the client if it is connected; any other state is a no-op.

        Raises:
            CloseError: If the driver fails while closing
        """
        if self._state is not ConnectionState.CONNECTED:
            logger.debug(f"Skipping close, connection is {self._state.value}")
            return

        logger.info("Closing MongoDB connection...")
        self._state = ConnectionState.CLOSING
        try:
            await self._client.close()
        except Exception as e:
            logger.error(f"Error closing MongoDB connection: {e}")
            raise CloseError(str(e)) from e
        finally:
            self._store = None
        self._client = None
        self._state = ConnectionState.CLOSED
        logger.info("MongoDB connection closed.")
