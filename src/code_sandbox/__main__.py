"""Run the MCP server with ``python -m code_sandbox``."""

from code_sandbox.server import main

main()
