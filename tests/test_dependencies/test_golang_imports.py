"""Tests for Go import detection."""

import pytest

from code_sandbox.dependencies import detect
from code_sandbox.dependencies.golang import normalize, scan

GROUPED = '''package main

import (
    "fmt"
    "net/http"

    log "github.com/sirupsen/logrus"
    _ "github.com/lib/pq"
    . "golang.org/x/exp/slices"
)

func main() {
    fmt.Println("import \\"not/real\\"")
}
'''


class TestScan:
    """Tests for the Go import scanner."""

    def test_grouped_imports(self) -> None:
        """Grouped declarations with named, blank and dot imports are found."""
        assert list(scan(GROUPED)) == [
            "fmt",
            "net/http",
            "github.com/sirupsen/logrus",
            "github.com/lib/pq",
            "golang.org/x/exp/slices",
        ]

    def test_single_imports(self) -> None:
        """Single-line declarations, with and without a name, are found."""
        source = 'package main\nimport "os"\nimport r "github.com/go-redis/redis/v9"\nimport `example.com/raw`\n'
        assert list(scan(source)) == ["os", "github.com/go-redis/redis/v9", "example.com/raw"]

    def test_commented_imports_ignored(self) -> None:
        """Imports inside comments are not code."""
        source = 'package main\n// import "github.com/a/b"\n/* import "github.com/c/d" */\n'
        assert list(scan(source)) == []


class TestNormalize:
    """Tests for import path reduction."""

    @pytest.mark.parametrize("path", ["fmt", "net/http", "encoding/json", "C", "./local", ""])
    def test_dropped(self, path: str) -> None:
        """Standard-library, cgo and relative paths are dropped."""
        assert normalize(path) is None

    def test_module_path_kept_whole(self) -> None:
        """Third-party import paths are kept in full."""
        assert normalize("github.com/gin-gonic/gin/binding") == "github.com/gin-gonic/gin/binding"


class TestDetect:
    """End-to-end detection for Go."""

    def test_stdlib_only_yields_empty_set(self) -> None:
        """Standard-library-only source has no dependencies."""
        source = 'package main\nimport (\n"fmt"\n"os"\n)\nfunc main() { fmt.Println(os.Args) }\n'
        assert len(detect(source, "go")) == 0

    def test_third_party_paths(self) -> None:
        """Third-party paths are reported in order."""
        assert detect(GROUPED, "go").to_list() == [
            "github.com/sirupsen/logrus",
            "github.com/lib/pq",
            "golang.org/x/exp/slices",
        ]
