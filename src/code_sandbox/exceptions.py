"""Code sandbox exceptions."""


class SandboxError(Exception):
    """Base exception for code-sandbox."""

    pass


class ConfigError(SandboxError):
    """Configuration error."""

    pass


class UnsupportedLanguageError(SandboxError):
    """Language is not registered."""

    pass


class InvalidArgumentError(SandboxError):
    """Required field is missing or malformed."""

    pass


class PathNotFoundError(SandboxError):
    """Local path does not exist."""

    pass


class PermissionDeniedError(SandboxError):
    """Permission denied for the requested operation."""

    pass


class ArchiveError(SandboxError):
    """Failed to build or extract an archive."""

    pass


class EngineError(SandboxError):
    """Container engine call failed."""

    pass


class ImagePullError(EngineError):
    """Failed to pull the base image."""

    pass


class EnvironmentCreateError(EngineError):
    """Failed to create the environment."""

    pass


class EnvironmentStartError(EngineError):
    """Failed to start the environment."""

    pass


class EnvironmentNotFoundError(EngineError):
    """Environment does not exist."""

    pass


class WaitError(EngineError):
    """Waiting for the environment failed, timed out or was cancelled."""

    pass


class LogRetrievalError(EngineError):
    """Failed to retrieve or decode environment output."""

    pass
