"""Tests for Python import detection."""

import pytest

from code_sandbox.dependencies import detect
from code_sandbox.dependencies.python import normalize, scan


class TestScan:
    """Tests for the Python import scanner."""

    def test_plain_and_dotted_imports(self) -> None:
        """Plain, dotted and aliased imports are all found."""
        source = "import numpy as np, os.path\nimport requests.adapters\n"
        assert list(scan(source)) == ["numpy", "os.path", "requests.adapters"]

    def test_from_imports_skip_imported_names(self) -> None:
        """Names after ``from X import`` are not taken for modules."""
        source = "from flask import Flask, request\nfrom pandas.io import (\n    json,\n    sql,\n)\n"
        assert list(scan(source)) == ["flask", "pandas.io"]

    def test_relative_from_import_yields_nothing(self) -> None:
        """Relative imports have no module to report."""
        assert list(scan("from . import sibling\nfrom ..pkg import x\n")) == []

    def test_imports_inside_functions_and_after_semicolons(self) -> None:
        """Nested and same-line statements are recognized."""
        source = "def f():\n    import httpx\n    return 1\nx = 1; from rich import print\n"
        assert list(scan(source)) == ["httpx", "rich"]

    def test_text_in_strings_and_comments_ignored(self) -> None:
        """Import-like text in literals and comments is not code."""
        source = '# import torch\ns = "import pandas"\ndoc = """\nfrom scipy import stats\n"""\n'
        assert list(scan(source)) == []

    def test_dynamic_imports_with_literal_argument(self) -> None:
        """__import__ and import_module with a string literal are detected."""
        source = "import importlib\nm = importlib.import_module('yaml')\nn = __import__(\"toml\")\nk = __import__(name)\n"
        assert list(scan(source)) == ["importlib", "yaml", "toml"]

    def test_from_as_identifier_is_not_an_import(self) -> None:
        """``from`` in ``raise ... from`` and ``yield from`` is ignored."""
        source = "def g():\n    yield from gen()\ntry:\n    pass\nexcept E as e:\n    raise X from e\n"
        assert list(scan(source)) == []

    def test_malformed_source_scans_prefix(self) -> None:
        """Tokenizing stops at the malformed part without raising."""
        source = "import click\nx = (\n"
        assert list(scan(source)) == ["click"]


class TestNormalize:
    """Tests for module name reduction."""

    @pytest.mark.parametrize(
        "module,expected",
        [
            ("PIL.Image", "pillow"),
            ("sklearn.linear_model", "scikit-learn"),
            ("cv2", "opencv-python"),
            ("yaml", "pyyaml"),
            ("bs4", "beautifulsoup4"),
            ("requests.adapters", "requests"),
            ("numpy", "numpy"),
        ],
    )
    def test_third_party(self, module: str, expected: str) -> None:
        """Third-party modules reduce to their distribution name."""
        assert normalize(module) == expected

    @pytest.mark.parametrize("module", ["os", "os.path", "json", "asyncio", "__future__", ".local", ""])
    def test_dropped(self, module: str) -> None:
        """Standard-library and relative modules are dropped."""
        assert normalize(module) is None


class TestDetect:
    """End-to-end detection for Python."""

    def test_stdlib_only_yields_empty_set(self) -> None:
        """Standard-library-only source has no dependencies."""
        source = "import os, sys\nfrom collections import Counter\nimport json\nprint(1+1)\n"
        assert len(detect(source, "python")) == 0

    def test_repeats_collapse_to_one_entry(self) -> None:
        """Repeated imports are reported once, in first-occurrence order."""
        source = "import requests\nfrom PIL import Image\nimport requests.adapters\nimport PIL\n"
        found = detect(source, "python")
        assert found.to_list() == ["requests", "pillow"]
        assert found == {"pillow", "requests"}
