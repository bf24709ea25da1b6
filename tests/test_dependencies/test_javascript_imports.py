"""Tests for JavaScript and TypeScript import detection."""

import pytest

from code_sandbox.dependencies import detect
from code_sandbox.dependencies.javascript import normalize, scan


class TestScan:
    """Tests for the JavaScript import scanner."""

    def test_require_and_dynamic_import(self) -> None:
        """require() and import() with literal arguments are found."""
        source = "const a = require('lodash');\nconst b = await import(\"chalk\");\n"
        assert list(scan(source)) == ["lodash", "chalk"]

    def test_static_import_forms(self) -> None:
        """Default, named, namespace and side-effect imports are found."""
        source = (
            "import express from 'express';\n"
            "import { z } from \"zod\";\n"
            "import * as fs from 'node:fs';\n"
            "import type { Foo } from '@types/foo';\n"
            "import 'dotenv/config';\n"
        )
        assert list(scan(source)) == ["express", "zod", "node:fs", "@types/foo", "dotenv/config"]

    def test_multiline_named_import(self) -> None:
        """A named import list spanning lines is followed to its ``from``."""
        source = "import {\n  useState,\n  useEffect,\n} from 'react';\n"
        assert list(scan(source)) == ["react"]

    def test_reexports(self) -> None:
        """export ... from is a dependency; local exports are not."""
        source = "export { x } from 'left-pad';\nexport * from './local';\nexport const y = 1;\n"
        assert list(scan(source)) == ["left-pad", "./local"]

    def test_member_access_is_not_an_import(self) -> None:
        """obj.require('x') and import.meta are ignored."""
        source = "loader.require('nope');\nconsole.log(import.meta.url);\n"
        assert list(scan(source)) == []

    def test_comments_strings_and_regex_ignored(self) -> None:
        """Import-like text in comments, strings and regex literals is not code."""
        source = (
            "// import a from 'commented';\n"
            "/* require('blocked') */\n"
            "const s = \"require('quoted')\";\n"
            "const r = /import x from 'regex'/;\n"
            "const t = `import x from 'template'`;\n"
            "const a = require('axios');\n"
        )
        assert list(scan(source)) == ["axios"]

    def test_default_in_binding_list(self) -> None:
        """``default`` inside braces is a binding, not an export statement."""
        source = (
            'export { default } from "lodash-es";\n'
            'import { default as dayjs } from "dayjs";\n'
            "export { default as Button, x } from './button';\n"
        )
        assert list(scan(source)) == ["lodash-es", "dayjs", "./button"]
        assert detect(source, "nodejs").to_list() == ["lodash-es", "dayjs"]

    def test_export_default_is_not_a_reexport(self) -> None:
        """``export default`` ends the clause before a later ``from``."""
        source = "export default function load() {}\nconst from = 1;\n"
        assert list(scan(source)) == []

    def test_template_substitutions_scanned(self) -> None:
        """Code inside ``${...}`` is scanned; template text is not."""
        source = (
            'const msg = `${require("chalk").red("x")} import y from \'nope\'`;\n'
            "const nested = `${ {a: require('ms')}.a }`;\n"
        )
        assert list(scan(source)) == ["chalk", "ms"]


class TestNormalize:
    """Tests for specifier reduction."""

    @pytest.mark.parametrize(
        "specifier,expected",
        [
            ("lodash", "lodash"),
            ("lodash/fp", "lodash"),
            ("@org/pkg", "@org/pkg"),
            ("@org/pkg/sub/path", "@org/pkg"),
        ],
    )
    def test_packages(self, specifier: str, expected: str) -> None:
        """Specifiers reduce to an installable package."""
        assert normalize(specifier) == expected

    @pytest.mark.parametrize(
        "specifier",
        ["./util", "../lib", "/abs/path", "~/x", "#internal", "node:fs", "fs", "path/posix", "https://x.dev/m.js", "@", "@scope"],
    )
    def test_dropped(self, specifier: str) -> None:
        """Relative, scheme, builtin and malformed specifiers are dropped."""
        assert normalize(specifier) is None


class TestDetect:
    """End-to-end detection for Node.js."""

    def test_builtins_only_yields_empty_set(self) -> None:
        """Builtin-only source has no dependencies."""
        source = "const fs = require('fs');\nimport path from 'node:path';\nimport { x } from './x.js';\n"
        assert len(detect(source, "nodejs")) == 0

    def test_scoped_package_is_one_unit(self) -> None:
        """A scoped package and its subpaths collapse to one entry."""
        source = "import a from '@org/pkg';\nimport b from '@org/pkg/sub';\nrequire('@org/pkg');\n"
        assert detect(source, "nodejs").to_list() == ["@org/pkg"]
