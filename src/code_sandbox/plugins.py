"""Plugin discovery via Python entry points."""

from importlib import import_module
from importlib.metadata import entry_points
from typing import Any

from code_sandbox.config import EngineConfig
from code_sandbox.exceptions import ConfigError
from code_sandbox.protocols import ContainerEngine

ENGINE_GROUP = "code_sandbox.engines"

# Engines shipped with the package, available without installed metadata
BUILTIN_ENGINES = {
    "docker": "code_sandbox.backends.docker:DockerEngine",
}


def _load(target: str) -> Any:
    module_name, _, attr = target.partition(":")
    return getattr(import_module(module_name), attr)


def discover_engines() -> dict[str, Any]:
    """Discover all registered engine classes.

    Returns:
        Dictionary mapping engine names to their classes
    """
    engines = {name: _load(target) for name, target in BUILTIN_ENGINES.items()}
    for ep in entry_points(group=ENGINE_GROUP):
        engines[ep.name] = ep.load()
    return engines


def get_engine_class(name: str) -> Any:
    """Get an engine class by name.

    Raises:
        ConfigError: If no engine is registered under the name
    """
    engines = discover_engines()
    if name not in engines:
        available = ", ".join(sorted(engines)) or "(none)"
        raise ConfigError(f"Engine '{name}' not found. Available: {available}")
    return engines[name]


def create_engine(config: EngineConfig) -> ContainerEngine:
    """Create the configured ContainerEngine.

    Args:
        config: Engine settings; ``backend`` names the engine

    Returns:
        A ContainerEngine implementation
    """
    cls = get_engine_class(config.backend)
    return cls(**config.model_dump(exclude={"backend"}))
