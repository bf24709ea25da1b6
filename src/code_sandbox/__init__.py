"""code-sandbox - Run untrusted code in disposable Docker containers over MCP."""

__version__ = "0.1.0"

from code_sandbox.config import Config
from code_sandbox.exceptions import SandboxError
from code_sandbox.languages import Language, LanguageProfile, get_profile
from code_sandbox.observability import (
    LogLevel,
    RequestContext,
    StructuredLogger,
    Timer,
    configure_logging,
    get_logger,
)
from code_sandbox.sandbox import ExecTranscript, RunOutcome, SandboxHandle, SandboxState
from code_sandbox.service import CodeSandbox

__all__ = [
    # Core
    "CodeSandbox",
    "Config",
    "ExecTranscript",
    "Language",
    "LanguageProfile",
    "RunOutcome",
    "SandboxError",
    "SandboxHandle",
    "SandboxState",
    "get_profile",
    # Observability
    "LogLevel",
    "RequestContext",
    "StructuredLogger",
    "Timer",
    "configure_logging",
    "get_logger",
]
