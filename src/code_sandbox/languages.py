"""Catalogue of supported languages and their execution conventions."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Literal

from code_sandbox.exceptions import UnsupportedLanguageError


class Language(str, Enum):
    """Supported languages, in presentation order."""

    PYTHON = "python"
    GO = "go"
    NODEJS = "nodejs"


# Identifiers accepted by the tool schemas; kept in step with Language
LanguageName = Literal["python", "go", "nodejs"]


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(mapping)


def _extension(path: str) -> str:
    name = path.rsplit("/", 1)[-1]
    _, dot, ext = name.rpartition(".")
    return f".{ext}" if dot else ""


@dataclass(frozen=True)
class LanguageProfile:
    """Execution conventions for one language.

    Attributes:
        language: Registry key
        image: Base image reference
        manifests: Dependency manifest filenames, in search order
        install_commands: Install incantation keyed by manifest filename
        run_command: Runtime invocation the source (or code) is appended to
        source_file: File inline code is materialized into
        inline_flag: Flag that accepts code as an argument; None means the
            runtime only runs files
        inline_manifest: Manifest synthesized for inline dependencies
        inline_install: Install step run against the synthesized manifest
        extension_flags: Extra runtime flags keyed by file extension
    """

    language: Language
    image: str
    manifests: tuple[str, ...]
    install_commands: Mapping[str, str]
    run_command: tuple[str, ...]
    source_file: str
    inline_manifest: str
    inline_install: str
    inline_flag: str | None = None
    extension_flags: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: _frozen({}))

    @property
    def runtime(self) -> str:
        """Executable that runs source for this language."""
        return self.run_command[0]

    def runs_file(self, path: str) -> bool:
        """Whether the runtime executes files with the extension of ``path``."""
        return _extension(path) in self.extension_flags

    def flags_for(self, path: str) -> tuple[str, ...]:
        """Runtime flags selected by the extension of ``path``."""
        return self.extension_flags.get(_extension(path), ())


_STRIP_TYPES = ("--experimental-strip-types",)
_PIP_INSTALL = "pip install --quiet --disable-pip-version-check"
_NPM_INSTALL = "npm install --silent --no-audit --no-fund"

_PROFILES: dict[Language, LanguageProfile] = {
    Language.PYTHON: LanguageProfile(
        language=Language.PYTHON,
        image="python:3.12-slim-bookworm",
        manifests=("requirements.txt", "pyproject.toml", "setup.py"),
        install_commands=_frozen({
            "requirements.txt": f"{_PIP_INSTALL} -r requirements.txt",
            "pyproject.toml": f"{_PIP_INSTALL} .",
            "setup.py": f"{_PIP_INSTALL} .",
        }),
        run_command=("python",),
        source_file="main.py",
        inline_manifest="requirements.txt",
        inline_install=f"{_PIP_INSTALL} -r requirements.txt",
        inline_flag="-c",
        extension_flags=_frozen({".py": ()}),
    ),
    Language.GO: LanguageProfile(
        language=Language.GO,
        image="golang:1.23-bookworm",
        manifests=("go.mod",),
        install_commands=_frozen({
            "go.mod": "go mod download",
        }),
        run_command=("go", "run"),
        source_file="main.go",
        inline_manifest="go.mod",
        inline_install="go mod tidy",
        extension_flags=_frozen({".go": ()}),
    ),
    Language.NODEJS: LanguageProfile(
        language=Language.NODEJS,
        image="node:23-slim",
        manifests=("package.json",),
        install_commands=_frozen({
            "package.json": _NPM_INSTALL,
        }),
        run_command=("node",),
        source_file="main.ts",
        inline_manifest="package.json",
        inline_install=_NPM_INSTALL,
        extension_flags=_frozen({
            ".ts": _STRIP_TYPES,
            ".mts": _STRIP_TYPES,
            ".cts": _STRIP_TYPES,
            ".js": (),
            ".mjs": (),
            ".cjs": (),
        }),
    ),
}


def get_profile(language: Language | str) -> LanguageProfile:
    """Look up the profile for a language.

    Args:
        language: Language enum member or its string value

    Returns:
        The registered profile

    Raises:
        UnsupportedLanguageError: If the language is not registered
    """
    try:
        return _PROFILES[Language(language)]
    except ValueError:
        raise UnsupportedLanguageError(
            f"Unsupported language: {language!r}. Supported: {', '.join(language_names())}"
        ) from None


def language_names() -> list[str]:
    """Registered language identifiers in presentation order."""
    return [language.value for language in Language]


def all_profiles() -> list[LanguageProfile]:
    """Registered profiles in presentation order."""
    return [_PROFILES[language] for language in Language]
