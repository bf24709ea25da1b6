"""Environment lifecycle management.

Each handle moves through ``created -> running -> waiting -> exited``.
Teardown (``stopped -> removed``) is reachable from any state but removed,
and only an explicit stop gets there: environments are never reaped
automatically, and foreground runs leave the exited environment in place
so its logs stay readable.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from code_sandbox.config import SandboxConfig
from code_sandbox.demux import DemuxedOutput, demux
from code_sandbox.exceptions import InvalidArgumentError, SandboxError, WaitError
from code_sandbox.observability import Timer, get_logger, short_id
from code_sandbox.progress import COMPLETE, CREATE, PULL, START, ProgressReporter, tick_while
from code_sandbox.protocols import ContainerEngine, ContainerInfo, ContainerSpec, Mount
from code_sandbox.utils.validation import validate_container_name

logger = get_logger(__name__)


class SandboxState(str, Enum):
    """Lifecycle states of an environment."""

    CREATED = "created"
    RUNNING = "running"
    WAITING = "waiting"
    EXITED = "exited"
    STOPPED = "stopped"
    REMOVED = "removed"


_TEARDOWN = {SandboxState.STOPPED, SandboxState.REMOVED}

TRANSITIONS: dict[SandboxState, set[SandboxState]] = {
    SandboxState.CREATED: {SandboxState.RUNNING} | _TEARDOWN,
    SandboxState.RUNNING: {SandboxState.WAITING, SandboxState.EXITED} | _TEARDOWN,
    SandboxState.WAITING: {SandboxState.EXITED} | _TEARDOWN,
    SandboxState.EXITED: set(_TEARDOWN),
    SandboxState.STOPPED: {SandboxState.REMOVED},
    SandboxState.REMOVED: set(),
}


@dataclass
class SandboxHandle:
    """An environment created by this manager.

    The id is only known once the engine has created the environment, so a
    handle never exists for a failed create.
    """

    id: str
    image: str
    name: str | None = None
    state: SandboxState = SandboxState.CREATED

    @property
    def short_id(self) -> str:
        return short_id(self.id)

    def transition(self, state: SandboxState) -> None:
        """Move to ``state``.

        Raises:
            InvalidArgumentError: If the transition is not allowed
        """
        if state not in TRANSITIONS[self.state]:
            raise InvalidArgumentError(
                f"Container {self.short_id} cannot go from {self.state.value} to {state.value}"
            )
        self.state = state


SandboxTarget = SandboxHandle | str


@dataclass
class RunSpec:
    """What to run in a fresh environment."""

    image: str
    command: list[str]
    mounts: list[Mount] = field(default_factory=list)
    working_dir: str | None = None
    name: str | None = None


@dataclass
class RunOutcome:
    """Result of a run.

    Background runs carry a status message; foreground runs carry the exit
    code and the environment's output.
    """

    handle: SandboxHandle
    background: bool
    exit_code: int | None = None
    output: DemuxedOutput | None = None
    message: str = ""

    @property
    def text(self) -> str:
        if self.output is None:
            return self.message
        return self.output.text()


@dataclass
class ExecStep:
    """One command of an exec call."""

    command: str
    exit_code: int
    output: DemuxedOutput


@dataclass
class ExecTranscript:
    """Commands run by one exec call, up to and including the first failure."""

    steps: list[ExecStep] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(step.exit_code == 0 for step in self.steps)

    @property
    def exit_code(self) -> int:
        """Exit code of the last command run."""
        return self.steps[-1].exit_code if self.steps else 0

    def render(self) -> str:
        """Plain-text transcript labelled by command, blocks separated by blank lines."""
        lines: list[str] = []
        for index, step in enumerate(self.steps):
            if index:
                lines.append("\n\n")
            lines.append(f"$ {step.command}\n")
            stdout = step.output.text("stdout")
            stderr = step.output.text("stderr")
            if stdout:
                lines.append(stdout if stdout.endswith("\n") else stdout + "\n")
            if stderr:
                lines.append(f"Error: {stderr}" if stderr.endswith("\n") else f"Error: {stderr}\n")
            if step.exit_code != 0:
                lines.append(f"Command exited with code {step.exit_code}\n")
        return "".join(lines)


def target_id(target: SandboxTarget) -> str:
    """Engine reference (id or name) for a handle or a caller-supplied string."""
    ref = target.id if isinstance(target, SandboxHandle) else target
    if not ref or not ref.strip():
        raise InvalidArgumentError("Container id or name is required")
    return ref.strip()


class SandboxManager:
    """Drives environments through their lifecycle on a container engine.

    Holds no per-request state: every call acts on a fresh environment or
    one identified by the caller.
    """

    def __init__(self, engine: ContainerEngine, config: SandboxConfig | None = None) -> None:
        """Initialize manager.

        Args:
            engine: Container engine implementation
            config: Lifecycle settings
        """
        self.engine = engine
        self.config = config or SandboxConfig()

    @property
    def labels(self) -> dict[str, str]:
        return {self.config.label: "true"}

    async def _pull(self, image: str, progress: ProgressReporter) -> None:
        await progress.report(PULL)
        with Timer() as t:
            await self.engine.pull(image, always=self.config.pull_policy == "always")
        logger.debug("Image ready", context={"image": image}, duration_ms=t.duration_ms)

    async def _discard(self, container_id: str) -> None:
        try:
            await self.engine.remove(container_id, volumes=True, force=True)
        except SandboxError as e:
            logger.warning(
                "Failed to remove container after start failure",
                context={"container_id": container_id},
                error=e,
            )

    async def _create_and_start(self, spec: ContainerSpec, progress: ProgressReporter) -> SandboxHandle:
        container_id = await self.engine.create(spec)
        handle = SandboxHandle(id=container_id, image=spec.image, name=spec.name)
        await progress.report(CREATE)
        try:
            await self.engine.start(container_id)
        except SandboxError:
            await self._discard(container_id)
            raise
        handle.transition(SandboxState.RUNNING)
        logger.info(
            "Container started",
            context={"container_id": handle.short_id, "image": spec.image, "name": spec.name},
        )
        return handle

    async def initialize(
        self,
        image: str | None = None,
        name: str | None = None,
        progress: ProgressReporter | None = None,
    ) -> SandboxHandle:
        """Create and start an interactive environment.

        Args:
            image: Base image; the configured default when omitted
            name: Optional container name
            progress: Progress destination

        Returns:
            Handle of the running environment

        Raises:
            ImagePullError: If the image cannot be pulled
            EnvironmentCreateError: If the environment cannot be created
            EnvironmentStartError: If the environment cannot be started
        """
        progress = progress or ProgressReporter.disabled()
        image = image or self.config.default_image
        if name:
            validate_container_name(name)
        await self._pull(image, progress)
        spec = ContainerSpec(
            image=image,
            name=name or None,
            working_dir=self.config.workdir,
            tty=True,
            stdin_open=True,
            labels=self.labels,
        )
        handle = await self._create_and_start(spec, progress)
        await progress.report(COMPLETE)
        return handle

    async def run(
        self,
        spec: RunSpec,
        background: bool = False,
        progress: ProgressReporter | None = None,
    ) -> RunOutcome:
        """Run a command in a fresh environment.

        In background mode this returns as soon as the environment starts.
        Otherwise it waits for the exit, reporting progress ticks, and
        returns the full output. The environment is not removed either way.

        Raises:
            ImagePullError: If the image cannot be pulled
            EnvironmentCreateError: If the environment cannot be created
            EnvironmentStartError: If the environment cannot be started
            WaitError: If waiting fails, times out or is cancelled
            LogRetrievalError: If the output cannot be read
        """
        if not spec.command:
            raise InvalidArgumentError("A command is required")
        progress = progress or ProgressReporter.disabled()
        await self._pull(spec.image, progress)
        container_spec = ContainerSpec(
            image=spec.image,
            command=list(spec.command),
            name=spec.name,
            working_dir=spec.working_dir or self.config.workdir,
            mounts=list(spec.mounts),
            labels=self.labels,
        )
        handle = await self._create_and_start(container_spec, progress)
        await progress.report(START)

        if background:
            await progress.report(COMPLETE)
            return RunOutcome(
                handle=handle,
                background=True,
                message=(
                    "Container started in background mode. "
                    f"Use 'docker logs {handle.short_id}' or the containers://{handle.id}/logs "
                    "resource to view output."
                ),
            )

        exit_code = await self._wait(handle, progress)
        output = await self.logs(handle)
        await progress.report(COMPLETE)
        return RunOutcome(handle=handle, background=False, exit_code=exit_code, output=output)

    async def _wait(self, handle: SandboxHandle, progress: ProgressReporter) -> int:
        handle.transition(SandboxState.WAITING)
        timeout = self.config.wait_timeout_seconds
        ticking = tick_while(
            self.engine.wait(handle.id),
            progress,
            start=START,
            interval=self.config.progress_interval_seconds,
        )
        try:
            with Timer() as t:
                exit_code = await asyncio.wait_for(ticking, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise WaitError(f"Timed out after {timeout}s waiting for container {handle.short_id}") from e
        except asyncio.CancelledError as e:
            raise WaitError(f"Wait for container {handle.short_id} was cancelled") from e
        handle.transition(SandboxState.EXITED)
        logger.info(
            "Container exited",
            context={"container_id": handle.short_id, "exit_code": exit_code},
            duration_ms=t.duration_ms,
        )
        return exit_code

    async def logs(self, target: SandboxTarget) -> DemuxedOutput:
        """Full output of an environment, demultiplexed.

        Raises:
            LogRetrievalError: If the output cannot be read or decoded
        """
        raw = await self.engine.logs(target_id(target))
        return demux(raw.chunks, tty=raw.tty)

    async def run_command(self, target: SandboxTarget, command: str) -> ExecStep:
        """Run one shell command in a running environment."""
        raw = await self.engine.exec(target_id(target), ["sh", "-c", command])
        return ExecStep(
            command=command,
            exit_code=raw.exit_code,
            output=demux(raw.output.chunks, tty=raw.output.tty),
        )

    async def exec(self, target: SandboxTarget, commands: str | Sequence[str]) -> ExecTranscript:
        """Run commands in sequence, stopping at the first non-zero exit.

        Args:
            target: Environment handle, id or name
            commands: One command or a list, each run with ``sh -c``

        Returns:
            Transcript of the commands that ran
        """
        commands = [commands] if isinstance(commands, str) else list(commands)
        if not commands or any(not command or not command.strip() for command in commands):
            raise InvalidArgumentError("At least one non-empty command is required")
        ref = target_id(target)

        transcript = ExecTranscript()
        for command in commands:
            step = await self.run_command(ref, command)
            transcript.steps.append(step)
            if step.exit_code != 0:
                logger.info(
                    "Command failed, skipping the rest",
                    context={"container_id": ref, "exit_code": step.exit_code},
                )
                break
        return transcript

    async def list(self) -> list[ContainerInfo]:
        """Snapshot of running environments created by this package."""
        return await self.engine.list(label=self.config.label)

    async def stop(self, target: SandboxTarget) -> str:
        """Stop an environment, then force-remove it with its volumes.

        Returns:
            Confirmation message
        """
        ref = target_id(target)
        handle = target if isinstance(target, SandboxHandle) else None
        if handle is not None and handle.state is SandboxState.REMOVED:
            raise InvalidArgumentError(f"Container {handle.short_id} is already removed")

        await self.engine.stop(ref, timeout=self.config.stop_timeout_seconds)
        if handle is not None and handle.state is not SandboxState.STOPPED:
            handle.transition(SandboxState.STOPPED)
        await self.engine.remove(ref, volumes=True, force=True)
        if handle is not None:
            handle.transition(SandboxState.REMOVED)
        logger.info("Container removed", context={"container_id": ref})
        return f"Successfully stopped and removed container: {ref}"
