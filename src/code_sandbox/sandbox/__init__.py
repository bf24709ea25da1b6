"""Environment lifecycle and file transfer."""

from code_sandbox.sandbox.manager import (
    ExecStep,
    ExecTranscript,
    RunOutcome,
    RunSpec,
    SandboxHandle,
    SandboxManager,
    SandboxState,
    SandboxTarget,
)
from code_sandbox.sandbox.transfer import FileTransfer

__all__ = [
    "ExecStep",
    "ExecTranscript",
    "FileTransfer",
    "RunOutcome",
    "RunSpec",
    "SandboxHandle",
    "SandboxManager",
    "SandboxState",
    "SandboxTarget",
]
