"""Test MCP wiring and process exit behaviour of taskmem.server."""

import asyncio
from unittest.mock import MagicMock, patch

import mcp.types as types
import pytest

from taskmem import server as server_mod
from taskmem.config import Config, RemoteConfig
from taskmem.core.dispatcher import ToolDispatcher
from taskmem.core.errors import ConfigError, UpstreamError
from taskmem.core.session import Session
from taskmem.core.tools import TOOLS
from tests.helpers import FakeBackend


def _dispatcher():
    return ToolDispatcher(Session(FakeBackend()), TOOLS)


# ── Protocol wiring ──────────────────────────────────────────


def test_tool_definition_exposes_schema_unchanged():
    spec = next(s for s in TOOLS if s.name == "search_memory")
    tool = server_mod.tool_definition(spec)
    assert tool.name == "search_memory"
    assert tool.inputSchema == spec.input_schema()
    assert tool.annotations.readOnlyHint is True


def test_list_tools_handler():
    server = server_mod.build_server(_dispatcher())
    handler = server.request_handlers[types.ListToolsRequest]
    result = asyncio.run(handler(types.ListToolsRequest(method="tools/list")))
    assert [t.name for t in result.root.tools] == [s.name for s in TOOLS]


def test_call_tool_handler_renders_envelope():
    server = server_mod.build_server(_dispatcher())
    handler = server.request_handlers[types.CallToolRequest]

    request = types.CallToolRequest(
        method="tools/call",
        params=types.CallToolRequestParams(name="create_project", arguments={"name": "Alpha"}),
    )
    result = asyncio.run(handler(request)).root
    assert result.content[0].text.startswith("Project created successfully")
    assert result.isError is False

    request = types.CallToolRequest(
        method="tools/call",
        params=types.CallToolRequestParams(name="store_memory", arguments={"importance": 42}),
    )
    result = asyncio.run(handler(request)).root
    assert result.content[0].text.startswith("Error: Invalid arguments for store_memory")
    assert result.isError is True


def test_call_tool_flags_resolution_failure_as_error():
    """With no project anywhere, a memory write is reported to the host as an error."""
    server = server_mod.build_server(_dispatcher())
    handler = server.request_handlers[types.CallToolRequest]
    request = types.CallToolRequest(
        method="tools/call",
        params=types.CallToolRequestParams(name="store_memory", arguments={"content": "note"}),
    )
    result = asyncio.run(handler(request)).root
    assert result.isError is True
    assert "create_project" in result.content[0].text


# ── main() exit codes ────────────────────────────────────────


def _remote_config():
    return Config(backend="remote", remote=RemoteConfig(api_key="k"))


@patch("taskmem.server.load_config")
def test_missing_credential_exits_nonzero(mock_load):
    mock_load.return_value = Config(backend="remote")
    with pytest.raises(SystemExit) as exc:
        server_mod.main()
    assert exc.value.code == 1


@patch("taskmem.server.load_config", side_effect=ConfigError("TASKMEM_DB_PORT must be a number"))
def test_bad_config_exits_nonzero(mock_load):
    with pytest.raises(SystemExit) as exc:
        server_mod.main()
    assert exc.value.code == 1


@patch("taskmem.server.get_backend")
@patch("taskmem.server.load_config")
def test_validation_failure_exits_nonzero(mock_load, mock_get_backend):
    mock_load.return_value = _remote_config()
    backend = MagicMock()
    backend.validate.side_effect = UpstreamError("Invalid API key", status=401)
    mock_get_backend.return_value = backend

    with pytest.raises(SystemExit) as exc:
        server_mod.main()
    assert exc.value.code == 1
    backend.close.assert_called_once()


@patch("taskmem.server.serve", new=MagicMock())
@patch("taskmem.server.asyncio.run")
@patch("taskmem.server.get_backend")
@patch("taskmem.server.load_config")
def test_interrupt_exits_cleanly(mock_load, mock_get_backend, mock_run):
    mock_load.return_value = _remote_config()
    backend = MagicMock()
    mock_get_backend.return_value = backend
    mock_run.side_effect = KeyboardInterrupt

    server_mod.main()

    backend.start.assert_called_once()
    backend.close.assert_called_once()


@patch("taskmem.server.serve", new=MagicMock())
@patch("taskmem.server.asyncio.run")
@patch("taskmem.server.get_backend")
@patch("taskmem.server.load_config")
def test_serve_crash_exits_nonzero(mock_load, mock_get_backend, mock_run):
    mock_load.return_value = _remote_config()
    backend = MagicMock()
    mock_get_backend.return_value = backend
    mock_run.side_effect = RuntimeError("stdin closed unexpectedly")

    with pytest.raises(SystemExit) as exc:
        server_mod.main()
    assert exc.value.code == 1
    backend.close.assert_called_once()
