"""MCP tool handlers.

Every handler returns plain text. Failures from the sandbox are returned as
an ``Error: ...`` result instead of a protocol fault, so the calling model
can read and react to them.
"""

import functools
import json
from collections.abc import Awaitable, Callable
from typing import Any

from mcp.server.fastmcp import Context, FastMCP

from code_sandbox.exceptions import SandboxError
from code_sandbox.languages import LanguageName, language_names
from code_sandbox.observability import RequestContext, get_logger, short_id
from code_sandbox.progress import ProgressEvent, ProgressReporter
from code_sandbox.service import CodeSandbox

logger = get_logger(__name__)

ToolHandler = Callable[..., Awaitable[str]]


def tool_errors(fn: ToolHandler) -> ToolHandler:
    """Bind request context around a handler and render sandbox failures as text."""

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> str:
        async with RequestContext(tool=fn.__name__, container_id=kwargs.get("container_id_or_name")):
            try:
                return await fn(*args, **kwargs)
            except SandboxError as e:
                logger.error("Tool failed", error=e)
                return f"Error: {e}"

    return wrapper


def progress_reporter(ctx: Context | None) -> ProgressReporter:
    """Reporter for the request behind ``ctx``; disabled without a progress token."""
    if ctx is None:
        return ProgressReporter.disabled()
    try:
        meta = ctx.request_context.meta
    except ValueError:
        # Invoked outside an MCP request
        return ProgressReporter.disabled()
    token = getattr(meta, "progressToken", None) if meta is not None else None
    if token is None:
        return ProgressReporter.disabled()
    session = ctx.session

    async def send(event: ProgressEvent) -> None:
        await session.send_progress_notification(
            progress_token=event.token,
            progress=event.value,
            total=event.total,
        )

    return ProgressReporter(token=token, send=send)


def register_tools(mcp: FastMCP, sandbox: CodeSandbox) -> None:
    """Register sandbox tools."""
    languages = ", ".join(language_names())

    @mcp.tool(
        description=(
            "Run code in a fresh sandboxed container and return its output. "
            f"Supported languages: {languages}. Third-party imports are detected "
            "and installed automatically before the code runs."
        )
    )
    @tool_errors
    async def run_code(
        ctx: Context,
        code: str,
        language: LanguageName,
        entrypoint: str | None = None,
    ) -> str:
        """Run a code snippet.

        Args:
            code: Program text
            language: Programming language of the code
            entrypoint: Optional custom run command, e.g. "python main.py"
        """
        outcome = await sandbox.run_code(code, language, entrypoint=entrypoint, progress=progress_reporter(ctx))
        return outcome.text

    @mcp.tool(
        description=(
            "Run a local project directory in a sandboxed container. The directory is "
            "mounted at /app and its dependency manifest, if any, is installed first. "
            f"Supported languages: {languages}."
        )
    )
    @tool_errors
    async def run_project(
        ctx: Context,
        project_dir: str,
        language: LanguageName,
        entrypoint: str,
        background: bool = False,
    ) -> str:
        """Run a project.

        Args:
            project_dir: Absolute path of the project directory
            language: Programming language of the project
            entrypoint: Command that starts the project, e.g. "node src/index.js"
            background: Return immediately after the container starts
        """
        outcome = await sandbox.run_project(
            project_dir,
            language,
            entrypoint,
            background=background,
            progress=progress_reporter(ctx),
        )
        if outcome.background:
            return f"Container ID: {outcome.handle.id}\n{outcome.message}"
        return outcome.text

    @mcp.tool()
    @tool_errors
    async def sandbox_initialize(ctx: Context, image: str | None = None, name: str | None = None) -> str:
        """Initialize a new interactive sandbox container and return its id.

        Args:
            image: Base image; python:3.12-slim-bookworm by default
            name: Optional container name
        """
        handle = await sandbox.initialize(image=image, name=name, progress=progress_reporter(ctx))
        return f"container_id: {handle.id}"

    @mcp.tool()
    @tool_errors
    async def sandbox_list() -> str:
        """List running sandbox containers as JSON."""
        containers = await sandbox.list()
        return json.dumps(
            [
                {
                    "container_id": short_id(info.id),
                    "name": info.name,
                    "image": info.image,
                    "status": info.status,
                }
                for info in containers
            ],
            indent=2,
        )

    @mcp.tool()
    @tool_errors
    async def sandbox_exec(container_id_or_name: str, commands: list[str] | str) -> str:
        """Run shell commands in a sandbox, in order, stopping at the first failure.

        Args:
            container_id_or_name: Sandbox container id or name
            commands: One command or a list of commands
        """
        transcript = await sandbox.exec(container_id_or_name, commands)
        return transcript.render()

    @mcp.tool()
    @tool_errors
    async def copy_project(container_id_or_name: str, local_src_dir: str, dest_dir: str | None = None) -> str:
        """Copy a local directory tree into a sandbox.

        Args:
            container_id_or_name: Sandbox container id or name
            local_src_dir: Local directory to copy
            dest_dir: Sandbox directory to copy into; /app by default
        """
        return await sandbox.copy_project(container_id_or_name, local_src_dir, dest_dir)

    @mcp.tool()
    @tool_errors
    async def copy_file(container_id_or_name: str, local_src_file: str, dest_path: str | None = None) -> str:
        """Copy a single local file into a sandbox.

        Args:
            container_id_or_name: Sandbox container id or name
            local_src_file: Local file to copy
            dest_path: Sandbox path; relative paths are under /app
        """
        return await sandbox.copy_file(container_id_or_name, local_src_file, dest_path)

    @mcp.tool()
    @tool_errors
    async def write_file_sandbox(
        container_id_or_name: str,
        file_name: str,
        file_contents: str,
        dest_dir: str | None = None,
    ) -> str:
        """Write text content to a file inside a sandbox.

        Args:
            container_id_or_name: Sandbox container id or name
            file_name: Name of the file to create
            file_contents: Text to write
            dest_dir: Sandbox directory; /app by default
        """
        return await sandbox.write_file(container_id_or_name, file_name, file_contents, dest_dir)

    @mcp.tool()
    @tool_errors
    async def copy_file_from_sandbox(
        container_id_or_name: str,
        container_src_path: str,
        local_dest_path: str | None = None,
    ) -> str:
        """Copy a single file out of a sandbox.

        Args:
            container_id_or_name: Sandbox container id or name
            container_src_path: File path in the sandbox; relative paths are under /app
            local_dest_path: Local destination; the file's name in the current directory by default
        """
        return await sandbox.copy_file_from_sandbox(container_id_or_name, container_src_path, local_dest_path)

    @mcp.tool()
    @tool_errors
    async def sandbox_stop(container_id_or_name: str) -> str:
        """Stop and remove a sandbox container and its volumes.

        Args:
            container_id_or_name: Sandbox container id or name
        """
        return await sandbox.stop(container_id_or_name)


def register_resources(mcp: FastMCP, sandbox: CodeSandbox) -> None:
    """Register container log resources."""

    @mcp.resource(
        "containers://{container_id}/logs",
        name="container-logs",
        description="Full stdout and stderr of a sandbox container",
        mime_type="text/plain",
    )
    async def container_logs(container_id: str) -> str:
        async with RequestContext(tool="container_logs", container_id=container_id):
            output = await sandbox.logs(container_id)
            return output.text()
