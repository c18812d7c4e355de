"""taskmem MCP server. Entry point for the project memory and task bridge."""

from __future__ import annotations

import asyncio
import logging
import sys

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from taskmem import __version__
from taskmem.backends import get_backend
from taskmem.config import load_config, validate_config
from taskmem.core.dispatcher import ToolDispatcher, ToolSpec
from taskmem.core.errors import ConfigError
from taskmem.core.session import Session
from taskmem.core.tools import TOOLS

# stdout carries the protocol; logs go to stderr
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("taskmem")

INSTRUCTIONS = (
    "Persistent project memory and task tracking for AI agents. Work is organized into "
    "projects; every memory and task belongs to one. Operations without an explicit "
    "project use the current project, which is picked automatically (the last project "
    "marked current, else the most recently created) and changed with create_project "
    "or set_current_project."
)


def tool_definition(spec: ToolSpec) -> types.Tool:
    return types.Tool(
        name=spec.name,
        description=spec.description,
        inputSchema=spec.input_schema(),
        annotations=types.ToolAnnotations(
            readOnlyHint=spec.read_only,
            destructiveHint=False,
        ),
    )


def build_server(dispatcher: ToolDispatcher) -> Server:
    """Wire the dispatcher into a low-level MCP server."""
    server = Server("taskmem", version=__version__, instructions=INSTRUCTIONS)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return [tool_definition(spec) for spec in dispatcher.tools()]

    # Arguments are validated by the dispatcher so failures use the tool envelope
    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: dict | None) -> types.CallToolResult:
        response = await asyncio.to_thread(dispatcher.dispatch, name, arguments)
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=response.text)],
            isError=response.is_error,
        )

    return server


async def serve(dispatcher: ToolDispatcher) -> None:
    server = build_server(dispatcher)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    """Run the taskmem MCP server over stdio."""
    try:
        config = load_config()
        logging.getLogger().setLevel(config.log_level)
        validate_config(config)
        backend = get_backend(config)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)

    try:
        backend.start()
        backend.validate()
    except Exception as e:
        logger.error("Failed to validate %s backend: %s", backend.name, e)
        backend.close()
        sys.exit(1)

    logger.info("taskmem %s started (%s backend)", __version__, backend.name)
    dispatcher = ToolDispatcher(Session(backend), TOOLS)
    exit_code = 0
    try:
        asyncio.run(serve(dispatcher))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down.")
    except Exception:
        logger.exception("Server error")
        exit_code = 1
    finally:
        backend.close()
        logger.info("taskmem stopped.")

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
