"""Install and run command composition.

Inline code gets a manifest synthesized from its detected dependencies;
projects get the install step matching the first manifest found on disk.
Either way the install step is chained to the run step with ``&&``.
"""

import json
import shlex
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from code_sandbox.dependencies import DependencySet
from code_sandbox.dependencies.lexer import GO_SYNTAX, tokenize
from code_sandbox.exceptions import InvalidArgumentError, PathNotFoundError
from code_sandbox.languages import Language, LanguageProfile, get_profile


@dataclass(frozen=True)
class ComposedCommand:
    """Final invocation for an environment.

    Attributes:
        run: Run step as argv tokens
        install: Install step as a shell string, run first when present
        files: Files to stage in the working directory, keyed by name
        manifest: Manifest the install step reads
    """

    run: tuple[str, ...]
    install: str | None = None
    files: Mapping[str, bytes] = field(default_factory=dict)
    manifest: str | None = None

    def __post_init__(self) -> None:
        if not self.run:
            raise InvalidArgumentError("Composed command has no run step")

    @property
    def shell(self) -> str:
        """The whole invocation as one shell string."""
        run = shlex.join(self.run)
        return f"{self.install} && {run}" if self.install else run

    @property
    def argv(self) -> list[str]:
        """Container command: plain argv, or a shell when an install step is chained."""
        if self.install:
            return ["/bin/sh", "-c", self.shell]
        return list(self.run)


def _requirements_txt(dependencies: DependencySet) -> bytes:
    return "".join(f"{name}\n" for name in dependencies).encode()


def _package_json(dependencies: DependencySet) -> bytes:
    document = {
        "name": "sandbox",
        "private": True,
        "dependencies": {name: "latest" for name in dependencies},
    }
    return (json.dumps(document, indent=2) + "\n").encode()


def _go_mod(dependencies: DependencySet) -> bytes:
    # Requirements are resolved by `go mod tidy`
    return b"module sandbox\n\ngo 1.23\n"


MANIFEST_WRITERS: dict[Language, Callable[[DependencySet], bytes]] = {
    Language.PYTHON: _requirements_txt,
    Language.GO: _go_mod,
    Language.NODEJS: _package_json,
}


def _require_go_main(code: str) -> None:
    tokens = tokenize(code, GO_SYNTAX)
    if len(tokens) < 2 or not (tokens[0].is_word("package") and tokens[1].is_word("main")):
        raise InvalidArgumentError("Go code must declare 'package main'")
    has_main = any(
        tokens[i].is_word("func") and tokens[i + 1].is_word("main")
        for i in range(len(tokens) - 1)
    )
    if not has_main:
        raise InvalidArgumentError("Go code must define 'func main()'")


ENTRYPOINT_CHECKS: dict[Language, Callable[[str], None]] = {
    Language.GO: _require_go_main,
}


def _split_entrypoint(entrypoint: str | Sequence[str]) -> list[str]:
    if isinstance(entrypoint, str):
        try:
            tokens = shlex.split(entrypoint)
        except ValueError as e:
            raise InvalidArgumentError(f"Malformed entrypoint {entrypoint!r}: {e}") from e
    else:
        tokens = [str(token) for token in entrypoint]
    if not tokens:
        raise InvalidArgumentError("Entrypoint is required")
    return tokens


def apply_extension_flags(profile: LanguageProfile, tokens: Sequence[str]) -> tuple[str, ...]:
    """Insert the runtime flags chosen by the final argument's extension.

    A bare source path is prefixed with the language's run command.
    Entrypoints driven by another tool (``npm start``) are left untouched.
    """
    tokens = list(tokens)
    flags = profile.flags_for(tokens[-1])
    if tokens[0] == profile.runtime:
        head, rest = tokens[:1], tokens[1:]
    elif len(tokens) == 1 and profile.runs_file(tokens[0]):
        head, rest = list(profile.run_command), tokens
    else:
        return tuple(tokens)
    missing = [flag for flag in flags if flag not in rest]
    return (*head, *missing, *rest)


def compose_inline(
    language: Language | str,
    code: str,
    dependencies: Iterable[str] | None = None,
    entrypoint: str | Sequence[str] | None = None,
) -> ComposedCommand:
    """Compose the command for inline code.

    Args:
        language: Language of the code
        code: Program text
        dependencies: Detected packages; an install step is added when non-empty
        entrypoint: Custom run command; the code is then materialized as the
            language's source file

    Returns:
        The composed command with any files it needs staged

    Raises:
        UnsupportedLanguageError: If the language is not registered
        InvalidArgumentError: If the code is empty or has no runnable entrypoint
    """
    profile = get_profile(language)
    if not code or not code.strip():
        raise InvalidArgumentError("Code is required")
    check = ENTRYPOINT_CHECKS.get(profile.language)
    if check and entrypoint is None:
        check(code)

    dependencies = DependencySet(dependencies or ())
    files: dict[str, bytes] = {}
    if entrypoint is not None:
        files[profile.source_file] = code.encode()
        run = apply_extension_flags(profile, _split_entrypoint(entrypoint))
    elif profile.inline_flag:
        run = (*profile.run_command, profile.inline_flag, code)
    else:
        files[profile.source_file] = code.encode()
        run = apply_extension_flags(profile, [profile.source_file])

    if not dependencies:
        return ComposedCommand(run=run, files=files)
    files[profile.inline_manifest] = MANIFEST_WRITERS[profile.language](dependencies)
    return ComposedCommand(
        run=run,
        install=profile.inline_install,
        files=files,
        manifest=profile.inline_manifest,
    )


def find_manifest(profile: LanguageProfile, project_dir: str | Path) -> str | None:
    """First of the profile's manifest filenames present in ``project_dir``."""
    root = Path(project_dir)
    return next((name for name in profile.manifests if (root / name).is_file()), None)


def compose_project(
    language: Language | str,
    project_dir: str | Path,
    entrypoint: str | Sequence[str],
) -> ComposedCommand:
    """Compose the command for a project directory.

    Args:
        language: Language of the project
        project_dir: Local project directory
        entrypoint: Run command, e.g. ``python app.py`` or ``src/index.ts``

    Returns:
        The composed command; it has an install step exactly when a
        recognized manifest exists in the project directory

    Raises:
        UnsupportedLanguageError: If the language is not registered
        PathNotFoundError: If the project directory does not exist
        InvalidArgumentError: If the entrypoint is empty or malformed
    """
    profile = get_profile(language)
    if not Path(project_dir).is_dir():
        raise PathNotFoundError(f"Project directory does not exist: {project_dir}")
    run = apply_extension_flags(profile, _split_entrypoint(entrypoint))
    manifest = find_manifest(profile, project_dir)
    if manifest is None:
        return ComposedCommand(run=run)
    return ComposedCommand(run=run, install=profile.install_commands[manifest], manifest=manifest)
