"""Static dependency detection over source text."""

from collections.abc import Callable, Iterator
from dataclasses import dataclass

from code_sandbox.dependencies import golang, javascript, python
from code_sandbox.dependencies.base import DependencySet
from code_sandbox.languages import Language, get_profile


@dataclass(frozen=True)
class ImportGrammar:
    """Scanner and name reduction for one language."""

    scan: Callable[[str], Iterator[str]]
    normalize: Callable[[str], str | None]


GRAMMARS: dict[Language, ImportGrammar] = {
    Language.PYTHON: ImportGrammar(python.scan, python.normalize),
    Language.GO: ImportGrammar(golang.scan, golang.normalize),
    Language.NODEJS: ImportGrammar(javascript.scan, javascript.normalize),
}


def detect(source: str, language: Language | str) -> DependencySet:
    """Detect third-party packages imported by source text.

    Args:
        source: Program text; it is scanned, never executed
        language: Language of the source

    Returns:
        Installable package names in first-occurrence order, excluding the
        standard library and local imports

    Raises:
        UnsupportedLanguageError: If the language is not registered
    """
    profile = get_profile(language)
    grammar = GRAMMARS[profile.language]
    found = DependencySet()
    for module in grammar.scan(source or ""):
        name = grammar.normalize(module)
        if name:
            found.add(name)
    return found
