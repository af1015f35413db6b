"""
Process supervision: termination signals, unhandled faults and the
once-only graceful shutdown sequence.
"""
import asyncio
import os
import signal
from typing import Callable, Optional, Set

from loguru import logger

from .context import ServerContext

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)

EXIT_OK = 0
EXIT_FAILURE = 1

TRANSPORT_CLOSE_TIMEOUT = 2.0


class ProcessSupervisor:
    """Runs the shutdown sequence exactly once and forces exit on repeats."""

    def __init__(
        self,
        context: ServerContext,
        drain_timeout: float = 5.0,
        transport_timeout: float = TRANSPORT_CLOSE_TIMEOUT,
        exit_func: Callable[[int], None] = os._exit,
    ):
        self.context = context
        self.drain_timeout = drain_timeout
        self.transport_timeout = transport_timeout
        self._exit = exit_func
        self._transport: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._finished = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.exit_code: Optional[int] = None

    # --- Handler registration ---
    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        """Hook termination signals and unhandled loop exceptions."""
        self._loop = loop
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.warning(f"Cannot install handler for {sig.name} on this platform")
        loop.set_exception_handler(self._on_loop_exception)

    def uninstall(self) -> None:
        if self._loop is None:
            return
        for sig in SHUTDOWN_SIGNALS:
            try:
                self._loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                pass
        self._loop.set_exception_handler(None)
        self._loop = None

    def attach_transport(self, transport: asyncio.Task) -> None:
        self._transport = transport

    def _spawn_shutdown(self, reason: str) -> None:
        task = asyncio.ensure_future(self.shutdown(reason))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_signal(self, sig: signal.Signals) -> None:
        self._spawn_shutdown(sig.name)

    def _on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        message = context.get("message", "Unhandled exception in event loop")
        if exc is None:
            logger.warning(f"Event loop reported: {message}")
            return
        logger.opt(exception=exc).error(f"Unhandled rejection: {message}")
        self._spawn_shutdown("unhandledRejection")

    # --- Shutdown ---
    async def _close_transport(self) -> None:
        transport = self._transport
        if transport is None or transport.done():
            return
        logger.info("Closing MCP transport...")
        transport.cancel()
        # The stdio reader blocks in a worker thread that ignores cancellation.
        done, _ = await asyncio.wait({transport}, timeout=self.transport_timeout)
        if not done:
            logger.warning(f"MCP transport did not stop within {self.transport_timeout}s")

    async def shutdown(self, reason: str, exit_code: int = EXIT_OK) -> int:
        """
        Tear down the transport and the store, then exit the process.

        The first call does the work; any later call logs a warning and exits
        the process immediately with a failure code.
        """
        if not self.context.begin_shutdown():
            logger.warning("Already shutting down, forcing exit...")
            self._exit(EXIT_FAILURE)
            return EXIT_FAILURE

        logger.info(f"Received {reason}, shutting down gracefully...")
        try:
            # New calls are now rejected; let the running ones finish first.
            await self.context.drain(self.drain_timeout)
            await self._close_transport()

            if self.context.connection.is_connected:
                await self.context.connection.close()

            logger.info("Graceful shutdown completed")
        except Exception as e:
            logger.exception(f"Error during shutdown: {e}")
            exit_code = EXIT_FAILURE

        self.exit_code = exit_code
        self._finished.set()
        self._exit(exit_code)
        return exit_code

    async def supervise(self, transport: asyncio.Task) -> int:
        """Wait for the transport to end or a shutdown to finish; return the exit code."""
        self.attach_transport(transport)
        finished = asyncio.ensure_future(self._finished.wait())
        try:
            await asyncio.wait({transport, finished}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            finished.cancel()

        if transport.done():
            reason = "transport-closed"
            if not transport.cancelled() and transport.exception() is not None:
                logger.opt(exception=transport.exception()).error("Uncaught exception in MCP transport")
                reason = "uncaughtException"
            if not self.context.shutting_down:
                return await self.shutdown(reason)

        await self._finished.wait()
        return self.exit_code
