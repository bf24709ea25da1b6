"""Tests for the dependency detector entry point and DependencySet."""

import pytest

from code_sandbox.dependencies import GRAMMARS, DependencySet, detect
from code_sandbox.exceptions import UnsupportedLanguageError
from code_sandbox.languages import Language


class TestDependencySet:
    """Tests for DependencySet."""

    def test_deduplicates_in_first_occurrence_order(self) -> None:
        """Repeats are dropped and order follows discovery."""
        deps = DependencySet(["b", "a", "b", "", "c", "a"])
        assert deps.to_list() == ["b", "a", "c"]
        assert len(deps) == 3
        assert "a" in deps

    def test_equality_ignores_order(self) -> None:
        """Equality is set equality."""
        assert DependencySet(["a", "b"]) == DependencySet(["b", "a"])
        assert DependencySet(["a", "b"]) == {"a", "b"}
        assert DependencySet(["a"]) != DependencySet(["a", "b"])

    def test_unhashable(self) -> None:
        """A mutable set cannot be hashed."""
        with pytest.raises(TypeError):
            hash(DependencySet())


class TestDetect:
    """Tests for detect()."""

    def test_every_language_has_a_grammar(self) -> None:
        """Each registered language can be scanned."""
        assert set(GRAMMARS) == set(Language)

    @pytest.mark.parametrize("language", ["python", "go", "nodejs"])
    def test_empty_source(self, language: str) -> None:
        """Empty source yields an empty set."""
        assert len(detect("", language)) == 0

    def test_unsupported_language(self) -> None:
        """Unknown languages are rejected."""
        with pytest.raises(UnsupportedLanguageError):
            detect("puts 1", "ruby")

    def test_detection_never_executes_source(self, tmp_path) -> None:
        """Source is scanned as text only."""
        marker = tmp_path / "ran"
        source = f"import os\nopen({str(marker)!r}, 'w').write('x')\nimport requests\n"
        assert detect(source, Language.PYTHON) == {"requests"}
        assert not marker.exists()
