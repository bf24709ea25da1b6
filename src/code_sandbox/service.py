"""Main CodeSandbox class for code-sandbox."""

import os
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from code_sandbox.composer import ComposedCommand, compose_inline, compose_project
from code_sandbox.config import Config
from code_sandbox.demux import DemuxedOutput
from code_sandbox.dependencies import detect
from code_sandbox.exceptions import InvalidArgumentError, PathNotFoundError
from code_sandbox.languages import Language, get_profile
from code_sandbox.observability import Timer, get_logger
from code_sandbox.plugins import create_engine
from code_sandbox.progress import ProgressReporter
from code_sandbox.protocols import ContainerEngine, ContainerInfo, Mount
from code_sandbox.sandbox import (
    ExecTranscript,
    FileTransfer,
    RunOutcome,
    RunSpec,
    SandboxHandle,
    SandboxManager,
    SandboxTarget,
)

logger = get_logger(__name__)


class CodeSandbox:
    """Runs untrusted code in disposable containers.

    Example usage:
        # Load from config file
        sandbox = CodeSandbox.from_config("config.yaml")

        # Run a snippet; dependencies are detected and installed first
        outcome = await sandbox.run_code("import requests; print(1)", "python")
        print(outcome.text)

        # Or drive a long-lived environment
        handle = await sandbox.initialize(name="scratch")
        transcript = await sandbox.exec(handle, ["ls -la", "python --version"])
        await sandbox.stop(handle)
    """

    def __init__(self, config: Config | None = None, engine: ContainerEngine | None = None) -> None:
        """Initialize the sandbox service.

        Args:
            config: Configuration; defaults when omitted
            engine: Container engine; created from ``config.engine`` when omitted
        """
        self.config = config or Config()
        self.engine = engine or create_engine(self.config.engine)
        self.manager = SandboxManager(self.engine, self.config.sandbox)
        self.transfer = FileTransfer(self.manager)

    @classmethod
    def from_config(cls, path: str | Path) -> "CodeSandbox":
        """Create a CodeSandbox from a configuration file.

        Args:
            path: Path to YAML or JSON configuration file

        Returns:
            Configured CodeSandbox instance
        """
        return cls(Config.from_file(path))

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "CodeSandbox":
        """Create a CodeSandbox from a configuration dictionary."""
        return cls(Config.from_dict(config_dict))

    def image_for(self, language: Language | str) -> str:
        """Base image for a language, honoring configured overrides."""
        profile = get_profile(language)
        return self.config.sandbox.images.get(profile.language, profile.image)

    async def run_code(
        self,
        code: str,
        language: Language | str,
        entrypoint: str | Sequence[str] | None = None,
        progress: ProgressReporter | None = None,
    ) -> RunOutcome:
        """Run a snippet in a fresh environment and wait for it to exit.

        Imported third-party packages are detected and installed before the
        snippet runs. Staged files live in a temporary host directory mounted
        at the working directory for the duration of the run.

        Args:
            code: Program text
            language: Language of the program
            entrypoint: Custom run command
            progress: Progress destination

        Returns:
            Outcome with the exit code and combined output
        """
        profile = get_profile(language)
        dependencies = detect(code, profile.language)
        command = compose_inline(profile.language, code, dependencies, entrypoint)
        logger.info(
            "Running code",
            context={
                "language": profile.language.value,
                "dependencies": dependencies.to_list(),
                "install": command.install is not None,
            },
        )

        with Timer() as t:
            if command.files:
                with tempfile.TemporaryDirectory(prefix="code-sandbox-", ignore_cleanup_errors=True) as staging:
                    _stage(command, staging)
                    outcome = await self.manager.run(
                        self._run_spec(profile.language, command, staging),
                        progress=progress,
                    )
            else:
                outcome = await self.manager.run(
                    self._run_spec(profile.language, command),
                    progress=progress,
                )
        logger.info(
            "Code finished",
            context={"container_id": outcome.handle.short_id, "exit_code": outcome.exit_code},
            duration_ms=t.duration_ms,
        )
        return outcome

    async def run_project(
        self,
        project_dir: str,
        language: Language | str,
        entrypoint: str | Sequence[str],
        background: bool = False,
        progress: ProgressReporter | None = None,
    ) -> RunOutcome:
        """Run a local project directory, mounted at the working directory.

        Args:
            project_dir: Absolute path of the project on the host
            language: Language of the project
            entrypoint: Run command
            background: Return as soon as the environment starts
            progress: Progress destination

        Returns:
            Outcome with output, or a status message in background mode
        """
        if not project_dir or not os.path.isabs(project_dir):
            raise InvalidArgumentError(f"Project directory must be an absolute path: {project_dir!r}")
        if not os.path.isdir(project_dir):
            raise PathNotFoundError(f"Project directory does not exist: {project_dir}")
        profile = get_profile(language)
        command = compose_project(profile.language, project_dir, entrypoint)
        logger.info(
            "Running project",
            context={
                "language": profile.language.value,
                "project_dir": project_dir,
                "manifest": command.manifest,
                "background": background,
            },
        )
        return await self.manager.run(
            self._run_spec(profile.language, command, project_dir),
            background=background,
            progress=progress,
        )

    def _run_spec(self, language: Language, command: ComposedCommand, mount_source: str | None = None) -> RunSpec:
        workdir = self.config.sandbox.workdir
        mounts = [Mount(source=mount_source, target=workdir)] if mount_source else []
        return RunSpec(
            image=self.image_for(language),
            command=command.argv,
            mounts=mounts,
            working_dir=workdir,
        )

    async def initialize(
        self,
        image: str | None = None,
        name: str | None = None,
        progress: ProgressReporter | None = None,
    ) -> SandboxHandle:
        """Create and start an interactive environment."""
        return await self.manager.initialize(image=image, name=name, progress=progress)

    async def list(self) -> list[ContainerInfo]:
        """Running environments created by this package."""
        return await self.manager.list()

    async def exec(self, target: SandboxTarget, commands: str | Sequence[str]) -> ExecTranscript:
        """Run commands in sequence, stopping at the first failure."""
        return await self.manager.exec(target, commands)

    async def logs(self, target: SandboxTarget) -> DemuxedOutput:
        """Full output of an environment."""
        return await self.manager.logs(target)

    async def stop(self, target: SandboxTarget) -> str:
        """Stop and remove an environment."""
        return await self.manager.stop(target)

    async def copy_project(self, target: SandboxTarget, local_dir: str, dest_dir: str | None = None) -> str:
        """Copy a local directory tree into an environment."""
        return await self.transfer.copy_project(target, local_dir, dest_dir)

    async def copy_file(self, target: SandboxTarget, local_file: str, dest_path: str | None = None) -> str:
        """Copy one local file into an environment."""
        return await self.transfer.copy_file(target, local_file, dest_path)

    async def write_file(
        self,
        target: SandboxTarget,
        file_name: str,
        contents: str,
        dest_dir: str | None = None,
    ) -> str:
        """Write text content to a file inside an environment."""
        return await self.transfer.write_file(target, file_name, contents, dest_dir)

    async def copy_file_from_sandbox(
        self,
        target: SandboxTarget,
        src_path: str,
        local_dest: str | None = None,
    ) -> str:
        """Copy one file out of an environment."""
        return await self.transfer.copy_file_from_sandbox(target, src_path, local_dest)

    def close(self) -> None:
        """Release the engine's client connection, if it holds one."""
        close = getattr(self.engine, "close", None)
        if close is not None:
            close()


def _stage(command: ComposedCommand, directory: str) -> None:
    root = Path(directory)
    # Containers may run as a non-root user
    root.chmod(0o755)
    for name, data in command.files.items():
        path = root / name
        path.write_bytes(data)
        path.chmod(0o644)
