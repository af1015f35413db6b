#!/usr/bin/env python

import sys
import argparse
import asyncio
import os
from typing import Callable, Optional

from loguru import logger
from mcp.server.lowlevel import NotificationOptions, Server
from mcp.server.stdio import stdio_server

from . import __version__
from .config import Settings, load_settings
from .connection import ConnectionManager
from .context import ServerContext
from .errors import ConfigurationError, StoreConnectionError
from .prompts import PromptCatalog
from .supervisor import EXIT_FAILURE, ProcessSupervisor
from .tools import ToolDispatcher

# --- Configuration Constants ---
SERVER_NAME = "mcp-mongo"
LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"


# --- Configure Logger ---
def configure_logging(level: str = "INFO") -> None:
    """Send all log output to stderr; stdout carries the MCP protocol."""
    logger.remove()
    logger.add(sys.stderr, level=level, colorize=True, format=LOG_FORMAT)


# --- Application Setup ---
def build_server(context: ServerContext) -> Server:
    """Create the MCP server and register the tool and prompt handlers."""
    dispatcher = ToolDispatcher(context)
    catalog = PromptCatalog()
    server = Server(SERVER_NAME, version=__version__)

    @server.list_tools()
    async def list_tools():
        return dispatcher.list_tools()

    @server.call_tool()
    async def call_tool(name: str, arguments: dict):
        return await dispatcher.dispatch(name, arguments)

    @server.list_prompts()
    async def list_prompts():
        return catalog.list_prompts()

    @server.get_prompt()
    async def get_prompt(name: str, arguments: Optional[dict] = None):
        return catalog.get_prompt(name, arguments)

    return server


async def serve_stdio(server: Server) -> None:
    """Serve MCP requests over stdin/stdout until the stream closes."""
    options = server.create_initialization_options(
        notification_options=NotificationOptions(prompts_changed=True, tools_changed=True),
    )
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, options)


async def run(
    settings: Settings,
    exit_func: Callable[[int], None] = os._exit,
    transport_factory=serve_stdio,
    connection: Optional[ConnectionManager] = None,
) -> int:
    """Connect, serve and shut down. Returns the process exit code."""
    context = ServerContext(connection or ConnectionManager(settings))
    supervisor = ProcessSupervisor(
        context, drain_timeout=settings.shutdown_drain_timeout, exit_func=exit_func
    )
    supervisor.install(asyncio.get_running_loop())

    try:
        try:
            await context.connection.connect()
        except StoreConnectionError:
            # Fail fast: nothing is useful without the store.
            return EXIT_FAILURE

        try:
            server = build_server(context)
            transport = asyncio.create_task(transport_factory(server))
        except Exception as e:
            logger.exception(f"Fatal error starting server: {e}")
            return await supervisor.shutdown("startup-error", exit_code=EXIT_FAILURE)

        logger.info("MCP MongoDB server is running and ready to accept connections!")
        return await supervisor.supervise(transport)
    finally:
        supervisor.uninstall()


# --- Command-line interface ---
def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="MCP MongoDB Server")
    parser.add_argument(
        "mongodb_uri",
        nargs="?",
        default=None,
        help="MongoDB connection URI (default: $MONGODB_URI or mongodb://localhost:27017/mcp-mongo)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for stderr output (default: $LOG_LEVEL or INFO)",
    )
    return parser.parse_args(argv)


# --- Main Execution ---
def main(argv=None) -> None:
    """Main entry point for the application."""
    args = parse_arguments(argv)
    configure_logging()

    try:
        settings = load_settings({"mongodb_uri": args.mongodb_uri, "log_level": args.log_level})
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(EXIT_FAILURE)

    configure_logging(settings.log_level)

    try:
        exit_code = asyncio.run(run(settings))
    except Exception as e:
        logger.exception(f"Fatal error in main: {e}")
        exit_code = EXIT_FAILURE
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
