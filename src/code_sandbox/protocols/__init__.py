"""Protocol interfaces for pluggable backends."""

from code_sandbox.protocols.engine import (
    ArchiveBlob,
    ContainerEngine,
    ContainerInfo,
    ContainerSpec,
    Mount,
    RawExec,
    RawOutput,
)

__all__ = [
    "ArchiveBlob",
    "ContainerEngine",
    "ContainerInfo",
    "ContainerSpec",
    "Mount",
    "RawExec",
    "RawOutput",
]
