"""
Process-wide server context: the store connection, the shutdown flag and the
set of requests currently running against the store.
"""
import asyncio
import threading
from contextlib import contextmanager
from typing import Iterator

from loguru import logger

from .connection import ConnectionManager
from .errors import ShuttingDownError


class ServerContext:
    """Shared state handed to the tool dispatcher and the supervisor."""

    def __init__(self, connection: ConnectionManager):
        self.connection = connection
        self._flag_lock = threading.Lock()
        self._shutting_down = False
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def begin_shutdown(self) -> bool:
        """Set the shutdown flag. Returns False if it was already set."""
        with self._flag_lock:
            if self._shutting_down:
                return False
            self._shutting_down = True
            return True

    @contextmanager
    def request(self) -> Iterator[None]:
        """
        Register a request for the duration of the block.

        Raises:
            ShuttingDownError: If shutdown has already begun
        """
        # Check and register without yielding to the loop in between.
        if self._shutting_down:
            raise ShuttingDownError()
        self._in_flight += 1
        self._idle.clear()
        try:
            yield
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._idle.set()

    async def drain(self, timeout: float) -> bool:
        """Wait for in-flight requests to finish. Returns False on timeout."""
        if self._idle.is_set():
            return True
        logger.info(f"Waiting for {self._in_flight} in-flight request(s) to finish...")
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                f"{self._in_flight} request(s) still running after {timeout}s, closing anyway"
            )
            return False
