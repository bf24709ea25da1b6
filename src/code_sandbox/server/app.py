"""MCP server and ASGI application."""

import time

from mcp.server.fastmcp import FastMCP
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Mount, Route

from code_sandbox import __version__
from code_sandbox.config import Config
from code_sandbox.observability import configure_logging, get_logger
from code_sandbox.server.tools import register_resources, register_tools
from code_sandbox.service import CodeSandbox

logger = get_logger(__name__)

INSTRUCTIONS = (
    "Run code in isolated Docker containers. Use run_code for one-off snippets and "
    "run_project for local project directories. For multi-step work, call "
    "sandbox_initialize, then sandbox_exec and the copy tools, and finish with sandbox_stop."
)


def create_server(config: Config | None = None, sandbox: CodeSandbox | None = None) -> FastMCP:
    """Create the MCP server with every sandbox tool and the logs resource.

    Args:
        config: Configuration; defaults when omitted
        sandbox: Service to serve; built from ``config`` when omitted

    Returns:
        FastMCP server
    """
    config = config or (sandbox.config if sandbox else Config())
    sandbox = sandbox or CodeSandbox(config)
    mcp = FastMCP(
        config.server.name,
        instructions=INSTRUCTIONS,
        host=config.server.host,
        port=config.server.port,
    )
    register_tools(mcp, sandbox)
    register_resources(mcp, sandbox)
    return mcp


def create_app(config: Config | None = None, sandbox: CodeSandbox | None = None) -> Starlette:
    """Create the ASGI application serving MCP over SSE.

    Args:
        config: Configuration; defaults when omitted
        sandbox: Service to serve; built from ``config`` when omitted

    Returns:
        Starlette application
    """
    mcp = create_server(config, sandbox)

    async def health(request: Request) -> Response:
        """Health check endpoint."""
        return JSONResponse(
            {
                "status": "ok",
                "version": __version__,
                "timestamp": time.time(),
            }
        )

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/ping", health, methods=["GET"]),  # Alias
        Mount("/", app=mcp.sse_app()),
    ]
    return Starlette(routes=routes)


def main() -> None:
    """Entry point for the MCP server.

    Configuration is read from the file named by CODE_SANDBOX_CONFIG. Logs go
    to stderr; stdout carries the stdio transport.
    """
    config = Config.from_env()
    configure_logging(level=config.logging.level, format=config.logging.format)
    logger.info(
        "Starting server",
        context={"name": config.server.name, "transport": config.server.transport, "version": __version__},
    )

    if config.server.transport == "sse":
        import uvicorn

        uvicorn.run(create_app(config), host=config.server.host, port=config.server.port)
        return
    create_server(config).run(transport="stdio")


if __name__ == "__main__":
    main()
