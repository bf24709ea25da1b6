"""Input validation utilities."""

import re

from code_sandbox.exceptions import InvalidArgumentError

# Docker container names: must start with a letter or number
CONTAINER_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$")


def validate_container_name(value: str, max_length: int = 128) -> str:
    """Validate a container name.

    Args:
        value: The name to validate
        max_length: Maximum allowed length

    Returns:
        The validated name

    Raises:
        InvalidArgumentError: If the name is invalid
    """
    if not value:
        raise InvalidArgumentError("Container name cannot be empty")

    if len(value) > max_length:
        raise InvalidArgumentError(f"Container name exceeds maximum length of {max_length}")

    if not CONTAINER_NAME_RE.match(value):
        raise InvalidArgumentError(
            f"Invalid container name {value!r}: must start with alphanumeric and contain only "
            "alphanumeric characters, underscores, periods, and hyphens"
        )

    return value


def validate_file_name(value: str) -> str:
    """Validate a bare file name (no directory part).

    Raises:
        InvalidArgumentError: If the name is empty, a path, or a dot entry
    """
    if not value or not value.strip():
        raise InvalidArgumentError("File name cannot be empty")

    if "/" in value or "\\" in value or "\0" in value:
        raise InvalidArgumentError(f"Invalid file name {value!r}: contains forbidden characters")

    if value in (".", ".."):
        raise InvalidArgumentError(f"Invalid file name {value!r}")

    return value
