"""Python import scanning."""

import ast
import io
import sys
import tokenize
from collections.abc import Iterator

from code_sandbox.observability import get_logger

logger = get_logger(__name__)

# Import names whose distribution is published under another name
PACKAGE_ALIASES = {
    "Crypto": "pycryptodome",
    "MySQLdb": "mysqlclient",
    "OpenSSL": "pyopenssl",
    "PIL": "pillow",
    "attr": "attrs",
    "bs4": "beautifulsoup4",
    "cv2": "opencv-python",
    "dateutil": "python-dateutil",
    "docx": "python-docx",
    "dotenv": "python-dotenv",
    "fitz": "pymupdf",
    "gi": "pygobject",
    "jose": "python-jose",
    "jwt": "pyjwt",
    "magic": "python-magic",
    "multipart": "python-multipart",
    "pptx": "python-pptx",
    "serial": "pyserial",
    "skimage": "scikit-image",
    "sklearn": "scikit-learn",
    "slugify": "python-slugify",
    "telegram": "python-telegram-bot",
    "usb": "pyusb",
    "yaml": "pyyaml",
    "zmq": "pyzmq",
}

STDLIB_MODULES = frozenset(sys.stdlib_module_names) | {"__future__", "__main__"}

_IGNORED = frozenset({tokenize.COMMENT, tokenize.NL, tokenize.ENCODING})
_BOUNDARIES = frozenset({tokenize.NEWLINE, tokenize.INDENT, tokenize.DEDENT})
_DYNAMIC_IMPORTERS = frozenset({"__import__", "import_module"})


def _tokens(source: str) -> list[tokenize.TokenInfo]:
    tokens = []
    try:
        for tok in tokenize.generate_tokens(io.StringIO(source).readline):
            if tok.type not in _IGNORED:
                tokens.append(tok)
    except (tokenize.TokenError, SyntaxError) as e:
        # Scan whatever was read before the malformed part
        logger.debug("Stopped tokenizing malformed source", context={"reason": str(e)})
    return tokens


def _is_op(tokens: list[tokenize.TokenInfo], i: int, value: str) -> bool:
    return i < len(tokens) and tokens[i].type == tokenize.OP and tokens[i].string == value


def _is_name(tokens: list[tokenize.TokenInfo], i: int, value: str | None = None) -> bool:
    return (
        i < len(tokens)
        and tokens[i].type == tokenize.NAME
        and (value is None or tokens[i].string == value)
    )


def _dotted_name(tokens: list[tokenize.TokenInfo], i: int) -> tuple[str | None, int]:
    """Read ``a.b.c`` starting at ``i``; returns (name, next index)."""
    if not _is_name(tokens, i):
        return None, i
    parts = [tokens[i].string]
    i += 1
    while _is_op(tokens, i, ".") and _is_name(tokens, i + 1):
        parts.append(tokens[i + 1].string)
        i += 2
    return ".".join(parts), i


def _import_names(tokens: list[tokenize.TokenInfo], i: int) -> tuple[list[str], int]:
    """Parse the module list of ``import a.b as c, d``."""
    names = []
    while True:
        name, i = _dotted_name(tokens, i)
        if name is None:
            return names, i
        names.append(name)
        if _is_name(tokens, i, "as"):
            i += 2
        if not _is_op(tokens, i, ","):
            return names, i
        i += 1


def _from_module(tokens: list[tokenize.TokenInfo], i: int) -> tuple[str | None, int]:
    """Parse ``from X import ...``; relative imports yield no module.

    Returns the index past the imported names so they are never taken
    for modules themselves.
    """
    module = None
    if not (_is_op(tokens, i, ".") or _is_op(tokens, i, "...")):
        module, i = _dotted_name(tokens, i)
    depth = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok.type == tokenize.OP and tok.string in "([{":
            depth += 1
        elif tok.type == tokenize.OP and tok.string in ")]}":
            depth -= 1
        elif depth <= 0 and (tok.type in _BOUNDARIES or (tok.type == tokenize.OP and tok.string == ";")):
            break
        i += 1
    return module, i


def _string_argument(tokens: list[tokenize.TokenInfo], i: int) -> str | None:
    """Literal first argument of a call whose name sits at ``i``."""
    if not _is_op(tokens, i + 1, "(") or i + 2 >= len(tokens):
        return None
    tok = tokens[i + 2]
    if tok.type != tokenize.STRING:
        return None
    try:
        value = ast.literal_eval(tok.string)
    except (ValueError, SyntaxError):
        return None
    return value if isinstance(value, str) else None


def scan(source: str) -> Iterator[str]:
    """Yield module names imported by Python source.

    Recognizes ``import`` and ``from ... import`` statements anywhere in the
    file, including parenthesized multi-line forms, and literal arguments to
    ``__import__`` and ``importlib.import_module``.
    """
    tokens = _tokens(source)
    statement_start = True
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if _is_name(tokens, i, "import"):
            names, i = _import_names(tokens, i + 1)
            yield from names
            statement_start = False
            continue
        if statement_start and _is_name(tokens, i, "from"):
            module, i = _from_module(tokens, i + 1)
            if module:
                yield module
            continue
        if tok.type == tokenize.NAME and tok.string in _DYNAMIC_IMPORTERS:
            target = _string_argument(tokens, i)
            if target:
                yield target
        statement_start = tok.type in _BOUNDARIES or (
            tok.type == tokenize.OP and tok.string in (";", ":")
        )
        i += 1


def normalize(module: str) -> str | None:
    """Reduce a module name to its installable distribution name.

    Returns None for relative imports and standard-library modules.
    """
    if not module or module.startswith("."):
        return None
    top = module.split(".", 1)[0]
    if not top.isidentifier() or top in STDLIB_MODULES:
        return None
    return PACKAGE_ALIASES.get(top, top)
