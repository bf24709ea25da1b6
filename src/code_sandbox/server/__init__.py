"""MCP server module."""

from code_sandbox.server.app import create_app, create_server, main
from code_sandbox.server.tools import progress_reporter, register_resources, register_tools, tool_errors

__all__ = [
    "create_app",
    "create_server",
    "main",
    "progress_reporter",
    "register_resources",
    "register_tools",
    "tool_errors",
]
