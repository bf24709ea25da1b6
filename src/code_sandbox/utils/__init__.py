"""Utility modules."""

from code_sandbox.utils.validation import validate_container_name, validate_file_name

__all__ = ["validate_container_name", "validate_file_name"]
