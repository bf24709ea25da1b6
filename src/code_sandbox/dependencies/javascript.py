"""JavaScript and TypeScript import scanning."""

from collections.abc import Iterator

from code_sandbox.dependencies.lexer import JS_SYNTAX, Token, TokenKind, tokenize

# Node's builtin modules (module.builtinModules, without internal entries)
NODE_BUILTINS = frozenset({
    "assert", "async_hooks", "buffer", "child_process", "cluster", "console",
    "constants", "crypto", "dgram", "diagnostics_channel", "dns", "domain",
    "events", "fs", "http", "http2", "https", "inspector", "module", "net",
    "os", "path", "perf_hooks", "process", "punycode", "querystring",
    "readline", "repl", "stream", "string_decoder", "sys", "timers",
    "tls", "trace_events", "tty", "url", "util", "v8", "vm", "wasi",
    "worker_threads", "zlib",
})

# Tokens that end an import/export clause before any ``from``
_CLAUSE_STOPS = frozenset({";", "=", "(", ")"})
_STATEMENT_WORDS = frozenset({
    "import", "export", "const", "let", "var", "function", "class", "default",
})
_CLAUSE_LIMIT = 512


def _is_member_access(tokens: list[Token], i: int) -> bool:
    """True when the word at ``i`` follows a property dot (but not a spread)."""
    if i == 0 or not tokens[i - 1].is_punct("."):
        return False
    return not (i >= 2 and tokens[i - 2].is_punct("."))


def _call_argument(tokens: list[Token], i: int) -> str | None:
    """String literal passed as the first argument of the call at ``i``."""
    if i + 2 < len(tokens) and tokens[i + 1].is_punct("(") and tokens[i + 2].kind is TokenKind.STRING:
        return tokens[i + 2].value
    return None


def _from_clause(tokens: list[Token], start: int) -> str | None:
    """Module named by the ``from '...'`` that closes the clause at ``start``.

    Inside a ``{...}`` binding list, words such as ``default`` are bindings
    and do not end the clause.
    """
    end = min(len(tokens), start + _CLAUSE_LIMIT)
    depth = 0
    for j in range(start, end):
        tok = tokens[j]
        if tok.kind is TokenKind.STRING:
            return None
        if tok.kind is TokenKind.PUNCT:
            if tok.value in _CLAUSE_STOPS:
                return None
            if tok.value == "{":
                depth += 1
            elif tok.value == "}":
                depth = max(depth - 1, 0)
        elif tok.kind is TokenKind.WORD:
            if tok.value == "from" and depth == 0 and j + 1 < len(tokens) and tokens[j + 1].kind is TokenKind.STRING:
                return tokens[j + 1].value
            if tok.value in _STATEMENT_WORDS and depth == 0:
                return None
    return None


def scan(source: str) -> Iterator[str]:
    """Yield module specifiers imported by JavaScript or TypeScript source.

    Recognizes ``require('x')``, dynamic ``import('x')``, side-effect
    ``import 'x'``, ``import ... from 'x'`` and ``export ... from 'x'``.
    """
    tokens = tokenize(source, JS_SYNTAX)
    for i, tok in enumerate(tokens):
        if tok.kind is not TokenKind.WORD or _is_member_access(tokens, i):
            continue
        if tok.value == "require":
            target = _call_argument(tokens, i)
        elif tok.value == "import":
            nxt = tokens[i + 1] if i + 1 < len(tokens) else None
            if nxt is None or nxt.is_punct("."):
                continue
            if nxt.is_punct("("):
                target = _call_argument(tokens, i)
            elif nxt.kind is TokenKind.STRING:
                target = nxt.value
            else:
                target = _from_clause(tokens, i + 1)
        elif tok.value == "export":
            target = _from_clause(tokens, i + 1)
        else:
            continue
        if target:
            yield target


def normalize(specifier: str) -> str | None:
    """Reduce a module specifier to its npm package name.

    ``@scope/pkg/sub`` keeps ``@scope/pkg``; ``pkg/sub`` reduces to ``pkg``.
    Returns None for relative paths, URL or scheme imports (``node:``,
    ``bun:``), subpath aliases and builtins.
    """
    specifier = specifier.strip()
    if not specifier or specifier[0] in "./~#":
        return None
    parts = specifier.split("/")
    if ":" in parts[0]:
        return None
    if specifier.startswith("@"):
        if len(parts) < 2 or not parts[1] or len(parts[0]) < 2:
            return None
        return f"{parts[0]}/{parts[1]}"
    if parts[0] in NODE_BUILTINS:
        return None
    return parts[0]
