"""Minimal lexer for C-family source (Go, JavaScript, TypeScript).

Only enough of each grammar is recognized to tell code apart from comments
and string literals, so import scanning never matches text inside either.
"""

from dataclasses import dataclass
from enum import Enum


class TokenKind(Enum):
    """Kinds of lexical token."""

    WORD = "word"
    STRING = "string"
    PUNCT = "punct"


@dataclass(frozen=True)
class Token:
    """A lexical token. STRING values hold the literal's contents without quotes."""

    kind: TokenKind
    value: str

    def is_punct(self, value: str) -> bool:
        return self.kind is TokenKind.PUNCT and self.value == value

    def is_word(self, value: str) -> bool:
        return self.kind is TokenKind.WORD and self.value == value


@dataclass(frozen=True)
class Syntax:
    """Comment and literal rules for one language.

    Attributes:
        quotes: Quote characters whose literals honor backslash escapes
        raw_quotes: Quote characters whose literals are taken verbatim
        multiline_quotes: Quote characters allowed to span lines
        regex_literals: Whether ``/.../`` can start a regular expression
        template_quotes: Quote characters of literals with ``${...}`` substitutions
    """

    quotes: str
    raw_quotes: str = ""
    multiline_quotes: str = ""
    regex_literals: bool = False
    template_quotes: str = ""
    line_comment: str = "//"
    block_comment: tuple[str, str] = ("/*", "*/")


GO_SYNTAX = Syntax(quotes="\"'", raw_quotes="`", multiline_quotes="`")
JS_SYNTAX = Syntax(quotes="\"'", template_quotes="`", regex_literals=True)

# Keywords after which a slash starts a regular expression rather than a division
_REGEX_PRECEDING_WORDS = frozenset({
    "return", "typeof", "instanceof", "in", "of", "new", "delete", "void",
    "throw", "case", "do", "else", "yield", "await",
})


def _is_word_char(ch: str) -> bool:
    return ch.isalnum() or ch in "_$"


def _read_literal(source: str, start: int, quote: str, syntax: Syntax) -> tuple[str, int]:
    """Read a quoted literal starting at ``start``; returns (contents, next index)."""
    escapes = quote not in syntax.raw_quotes
    multiline = quote in syntax.multiline_quotes
    chars: list[str] = []
    i, n = start + 1, len(source)
    while i < n:
        ch = source[i]
        if escapes and ch == "\\":
            chars.append(source[i + 1:i + 2])
            i += 2
            continue
        if ch == quote:
            return "".join(chars), i + 1
        if ch == "\n" and not multiline:
            # Unterminated single-line literal ends at the line break
            return "".join(chars), i
        chars.append(ch)
        i += 1
    return "".join(chars), n


def _regex_allowed(tokens: list[Token]) -> bool:
    if not tokens:
        return True
    last = tokens[-1]
    if last.kind is TokenKind.STRING:
        return False
    if last.kind is TokenKind.WORD:
        return last.value in _REGEX_PRECEDING_WORDS
    return last.value not in ")]}"


def _skip_regex(source: str, start: int) -> int:
    """Skip a regular expression literal; returns the index after its flags."""
    i, n = start + 1, len(source)
    in_class = False
    while i < n:
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "\n":
            return i
        if in_class:
            in_class = ch != "]"
        elif ch == "[":
            in_class = True
        elif ch == "/":
            i += 1
            break
        i += 1
    while i < n and _is_word_char(source[i]):
        i += 1
    return i


def _read_template(source: str, start: int, syntax: Syntax, tokens: list[Token]) -> int:
    """Read a template literal, lexing each ``${...}`` substitution as code.

    The literal text is emitted as one STRING token ahead of the tokens of
    its substitutions. Returns the index after the closing quote.
    """
    quote = source[start]
    slot = len(tokens)
    tokens.append(Token(TokenKind.STRING, ""))
    chars: list[str] = []
    i, n = start + 1, len(source)
    while i < n:
        ch = source[i]
        if ch == "\\":
            chars.append(source[i + 1:i + 2])
            i += 2
        elif ch == quote:
            i += 1
            break
        elif source.startswith("${", i):
            i = _lex(source, i + 2, syntax, tokens, nested=True)
        else:
            chars.append(ch)
            i += 1
    tokens[slot] = Token(TokenKind.STRING, "".join(chars))
    return i


def _lex(source: str, start: int, syntax: Syntax, tokens: list[Token], nested: bool = False) -> int:
    """Append tokens from ``start``; returns the index where lexing stopped.

    A nested run lexes a template substitution and stops after the brace
    that closes it.
    """
    open_block, close_block = syntax.block_comment
    depth = 0
    i, n = start, len(source)
    while i < n:
        ch = source[i]
        if ch.isspace():
            i += 1
        elif source.startswith(syntax.line_comment, i):
            end = source.find("\n", i)
            i = n if end < 0 else end
        elif source.startswith(open_block, i):
            end = source.find(close_block, i + len(open_block))
            if end < 0:
                return n
            i = end + len(close_block)
        elif ch in syntax.template_quotes:
            i = _read_template(source, i, syntax, tokens)
        elif ch in syntax.quotes or ch in syntax.raw_quotes:
            value, i = _read_literal(source, i, ch, syntax)
            tokens.append(Token(TokenKind.STRING, value))
        elif ch == "/" and syntax.regex_literals and _regex_allowed(tokens):
            i = _skip_regex(source, i)
        elif _is_word_char(ch):
            end = i + 1
            while end < n and _is_word_char(source[end]):
                end += 1
            tokens.append(Token(TokenKind.WORD, source[i:end]))
            i = end
        elif nested and ch == "}" and depth == 0:
            return i + 1
        else:
            if nested and ch == "{":
                depth += 1
            elif nested and ch == "}":
                depth -= 1
            tokens.append(Token(TokenKind.PUNCT, ch))
            i += 1
    return n


def tokenize(source: str, syntax: Syntax) -> list[Token]:
    """Split source into tokens, dropping whitespace and comments.

    An unterminated block comment ends the token stream.
    """
    tokens: list[Token] = []
    _lex(source, 0, syntax, tokens)
    return tokens
