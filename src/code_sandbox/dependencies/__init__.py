"""Dependency detection for inline source."""

from code_sandbox.dependencies.base import DependencySet
from code_sandbox.dependencies.detector import GRAMMARS, ImportGrammar, detect

__all__ = ["DependencySet", "GRAMMARS", "ImportGrammar", "detect"]
