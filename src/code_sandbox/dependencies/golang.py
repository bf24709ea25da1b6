"""Go import scanning."""

from collections.abc import Iterator

from code_sandbox.dependencies.lexer import GO_SYNTAX, TokenKind, tokenize


def scan(source: str) -> Iterator[str]:
    """Yield import paths declared by Go source.

    Handles single and grouped declarations with named, blank (``_``) and
    dot imports.
    """
    tokens = tokenize(source, GO_SYNTAX)
    i = 0
    while i < len(tokens):
        if not tokens[i].is_word("import"):
            i += 1
            continue
        i += 1
        if i < len(tokens) and tokens[i].is_punct("("):
            i += 1
            while i < len(tokens) and not tokens[i].is_punct(")"):
                if tokens[i].kind is TokenKind.STRING:
                    yield tokens[i].value
                i += 1
            continue
        # Optional package name, "_" or "."
        if i < len(tokens) and (tokens[i].kind is TokenKind.WORD or tokens[i].is_punct(".")):
            i += 1
        if i < len(tokens) and tokens[i].kind is TokenKind.STRING:
            yield tokens[i].value
            i += 1


def normalize(path: str) -> str | None:
    """Return the import path unless it belongs to the standard library.

    Standard-library paths are exactly those whose first element has no dot
    (``fmt``, ``net/http``); ``C`` is the cgo pseudo-package.
    """
    path = path.strip()
    if not path or path == "C" or path.startswith("."):
        return None
    if "." not in path.split("/", 1)[0]:
        return None
    return path
